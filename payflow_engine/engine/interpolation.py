"""
Template Variable Resolver for the Workflow Engine.

Resolves {{dot.path}} references in node configuration against the running
execution context, e.g. {{trigger.amount}}, {{openai-1.content}},
{{nodes.http-1.output.status}} or {{previous.content}}.

Configuration is walked value by value; only string leaves are rewritten.
A reference that cannot be resolved is left in place untouched.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from .context import ExecutionContext

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

# Fields of a NodeExecutionResult; anything else under nodes.<id> is looked up in its output
RESULT_ENVELOPE_FIELDS = {"success", "output", "logs", "triggeredAt"}

# Scope roots that are not node outputs, so the legacy ".output" hop does not apply
NON_OUTPUT_ROOTS = {"nodes", "input"}


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def resolve_path(scope: Dict[str, Any], path: str) -> Any:
    """
    Walk a dot-separated path through nested dicts (and lists, by numeric segment).

    Legacy forms are accepted: trigger.output.x and <nodeId>.output.x resolve
    like trigger.x and <nodeId>.x, because the scope already holds outputs.

    Returns:
        The value found, or MISSING
    """
    parts = [part.strip() for part in path.strip().split(".")]
    if not parts or not parts[0]:
        return MISSING

    root = parts[0]
    value: Any = scope
    for index, part in enumerate(parts):
        if isinstance(value, dict):
            if part in value:
                value = value[part]
                continue
            if index == 1 and part == "output" and root not in NON_OUTPUT_ROOTS:
                continue
            if (
                index == 2
                and root == "nodes"
                and part not in RESULT_ENVELOPE_FIELDS
                and isinstance(value.get("output"), dict)
                and part in value["output"]
            ):
                value = value["output"][part]
                continue
            return MISSING
        if isinstance(value, (list, tuple)) and part.isdigit():
            position = int(part)
            if position < len(value):
                value = value[position]
                continue
        return MISSING

    return value


def render_value(value: Any) -> str:
    """Text form of a substituted value: strings verbatim, anything else as compact JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


class Interpolator:
    """Substitute {{path}} references in node configuration."""

    def __init__(self, preserve_types: bool = True):
        self.preserve_types = preserve_types

    @staticmethod
    def build_scope(context: ExecutionContext, node_input: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Lookup object for one node: upstream outputs by id, trigger, nodes, input and previous."""
        node_input = node_input or {}
        scope: Dict[str, Any] = {
            node_id: entry.get("output") for node_id, entry in context.node_results.items()
        }
        scope["trigger"] = context.trigger_output
        scope["nodes"] = context.node_outputs_snapshot()
        scope["input"] = node_input
        scope["previous"] = node_input.get("previous")
        return scope

    def interpolate(
        self,
        data: Any,
        context: ExecutionContext,
        node_input: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Resolve every reference in a node's configuration.

        Never raises: if resolution breaks unexpectedly the original data is
        returned so the node runs with its raw configuration.
        """
        if not data:
            return data

        try:
            scope = self.build_scope(context, node_input)
            resolved = self.resolve_value(data, scope)
        except Exception as e:
            logger.warning(f"Interpolation failed, using raw node configuration: {e}")
            return data

        template_count = self.count_templates(data)
        if template_count:
            logger.debug(f"Resolved {template_count} template reference(s)")
        return resolved

    def resolve_value(self, value: Any, scope: Dict[str, Any]) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, scope)
        if isinstance(value, dict):
            return {key: self.resolve_value(item, scope) for key, item in value.items()}
        if isinstance(value, list):
            return [self.resolve_value(item, scope) for item in value]
        return value

    def _resolve_string(self, template: str, scope: Dict[str, Any]) -> Any:
        if "{{" not in template:
            return template

        if self.preserve_types:
            match = TEMPLATE_PATTERN.fullmatch(template)
            if match:
                resolved = resolve_path(scope, match.group(1))
                if resolved is MISSING:
                    logger.debug(f"Could not resolve template variable: {template}")
                    return template
                return resolved

        def replacer(match: "re.Match[str]") -> str:
            resolved = resolve_path(scope, match.group(1))
            if resolved is MISSING:
                logger.debug(f"Could not resolve template variable: {match.group(0)}")
                return match.group(0)
            return render_value(resolved)

        return TEMPLATE_PATTERN.sub(replacer, template)

    @classmethod
    def count_templates(cls, value: Any) -> int:
        """Count the number of template references in a value."""
        if isinstance(value, str):
            return len(TEMPLATE_PATTERN.findall(value))
        if isinstance(value, dict):
            return sum(cls.count_templates(item) for item in value.values())
        if isinstance(value, list):
            return sum(cls.count_templates(item) for item in value)
        return 0
