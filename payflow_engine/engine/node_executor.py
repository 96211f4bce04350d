"""
Node Executor.

Interpolates a node's configuration, merges in its resolved input and
dispatches to the handler registered for the node type.
"""

import logging
from typing import Any, Dict, Optional

from ..core.config import get_settings
from ..models.execution import NodeExecutionResult
from ..models.workflow import Node
from ..nodes.base import NodeRun, is_trigger_node
from ..nodes.factory import NodeHandlerFactory, get_node_handler_factory
from .context import ExecutionContext
from .interpolation import Interpolator


class NodeExecutor:
    """Executes one non-trigger node."""

    def __init__(
        self,
        factory: Optional[NodeHandlerFactory] = None,
        interpolator: Optional[Interpolator] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.factory = factory or get_node_handler_factory()
        self.interpolator = interpolator or Interpolator(
            preserve_types=get_settings().interpolation_preserve_types
        )

    def build_config(self, node: Node, node_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        """Interpolated node data with the resolved input layered on top (input wins)."""
        interpolated = self.interpolator.interpolate(node.data, context, node_input)
        if not isinstance(interpolated, dict):
            interpolated = {}
        return {**interpolated, **node_input}

    async def execute(
        self,
        node: Node,
        node_input: Dict[str, Any],
        context: ExecutionContext,
    ) -> NodeExecutionResult:
        """
        Execute a node and return its result.

        Unknown node types pass their input through unchanged. Any handler
        error propagates to the caller.
        """
        if is_trigger_node(node.type):
            self.logger.debug(f"Trigger node {node.id} resolves to the trigger payload")
            return NodeExecutionResult(output=context.trigger_output, logs=["trigger"])

        handler = self.factory.get_handler(node.type)
        if handler is None:
            self.logger.warning(f"⚠️  Unknown node type: {node.type}, passing through")
            return NodeExecutionResult(output=node_input, logs=[f"Unknown node type {node.type}; input passed through"])

        config = self.build_config(node, node_input, context)
        run = NodeRun(node=node, input=node_input, context=context)

        self.logger.info(f"▶️  Executing node {node.id} ({node.type})")
        output: Any = await handler.execute(config, run)
        return NodeExecutionResult(success=True, output=output, logs=run.logs)
