"""
Node handler that routes through the provider adapter registry.
"""

from typing import Any, Dict, Optional, Tuple

from ..services.api_adapters import AdapterContext, get_adapter
from .base import NodeHandler, NodeRun

# node type -> (provider id, default operation)
ADAPTER_ROUTES: Dict[str, Tuple[str, Optional[str]]] = {
    "aiAgent": ("agent", "agent.tools"),
    "ai-agent": ("agent", "agent.tools"),
    "webhookResponse": ("webhook", "respond"),
    "respondToWebhook": ("webhook", "respond"),
    "respond-to-webhook": ("webhook", "respond"),
    "respond": ("webhook", "respond"),
    "alchemy": ("alchemy", "alchemy.getTransactions"),
    "coingate": ("coingate", "payment.create"),
    "postgres": ("postgres", "postgres.query"),
}

# Routes whose operation is fixed regardless of configuration
FIXED_OPERATION_TYPES = frozenset(
    {"aiAgent", "ai-agent", "webhookResponse", "respondToWebhook", "respond-to-webhook", "respond"}
)


class AdapterNodeHandler(NodeHandler):
    """Executes agent, webhook response, Alchemy, CoinGate and Postgres nodes via their adapters."""

    node_types = tuple(ADAPTER_ROUTES)

    def resolve_route(self, node_type: str, config: Dict[str, Any]) -> Tuple[str, str]:
        provider_id, default_operation = ADAPTER_ROUTES[node_type]
        if node_type in FIXED_OPERATION_TYPES:
            return provider_id, default_operation
        return provider_id, config.get("operation") or default_operation

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        provider_id, operation = self.resolve_route(run.node.type, config)
        adapter = get_adapter(provider_id)
        credentials = run.context.get_credential(adapter.credential_key)

        adapter_context = AdapterContext(
            user_id=run.user_id,
            execution_id=run.context.execution_id,
            workflow_id=run.context.workflow_id,
            node_id=run.node.id,
        )
        self.logger.info(f"Dispatching {run.node.id} to {provider_id}/{operation}")

        result = await adapter.execute(operation, config, credentials, adapter_context)
        for line in result.logs:
            run.log(line)
        return result.output
