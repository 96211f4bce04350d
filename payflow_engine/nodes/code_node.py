"""
Code node handler.

The node's `code` is the body of a function taking `input` and `context`;
whatever it returns becomes the node output.
"""

import inspect
import textwrap
from typing import Any, Dict

from ..core.config import get_settings
from ..exceptions import NodeExecutionError
from .base import NodeHandler, NodeRun

FUNCTION_NAME = "_node_code"


class CodeNodeHandler(NodeHandler):
    """Run a user snippet in-process. Not a sandbox."""

    node_types = ("code",)

    @staticmethod
    def compile_snippet(code: str, node_id: str):
        body = textwrap.indent(textwrap.dedent(code), "    ") if code.strip() else "    return None"
        source = f"def {FUNCTION_NAME}(input, context):\n{body}\n"
        namespace: Dict[str, Any] = {}
        exec(compile(source, f"<code node {node_id}>", "exec"), namespace)
        return namespace[FUNCTION_NAME]

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        if not get_settings().code_node_enabled:
            raise NodeExecutionError("Code nodes are disabled", node_id=run.node.id, node_type=run.node.type)

        code = config.get("code") or ""
        snippet_context = {
            "executionId": run.context.execution_id,
            "workflowId": run.context.workflow_id,
            "trigger": run.context.trigger_output,
            "nodes": run.context.node_outputs_snapshot(),
        }

        try:
            function = self.compile_snippet(str(code), run.node.id)
            value = function(run.input, snippet_context)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            raise NodeExecutionError(
                f"Code execution failed: {e}", node_id=run.node.id, node_type=run.node.type
            ) from e

        run.log("Code executed")
        return value if isinstance(value, dict) else {"result": value}
