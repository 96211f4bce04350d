"""
Base classes for node handlers.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..engine.context import ExecutionContext
from ..exceptions import NodeExecutionError
from ..models.workflow import Node
from ..services.api_adapters.base import HTTPRequestMixin

# Nodes whose output is the trigger payload; the orchestrator never dispatches them
TRIGGER_NODE_TYPES = frozenset(
    {"trigger", "phantomWatch", "metamaskWatch", "webhook", "schedule", "coingateWebhook"}
)


def is_trigger_node(node_type: str) -> bool:
    return node_type in TRIGGER_NODE_TYPES


@dataclass
class NodeRun:
    """Everything a handler may see while executing one node."""

    node: Node
    input: Dict[str, Any]
    context: ExecutionContext
    logs: List[str] = field(default_factory=list)

    @property
    def user_id(self) -> str:
        return self.context.user_id

    def log(self, message: str) -> None:
        self.logs.append(message)


class NodeHandler(HTTPRequestMixin, ABC):
    """Base class for all node handlers."""

    node_types: Tuple[str, ...] = ()

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._init_http(http_client, timeout)

    def can_handle(self, node_type: str) -> bool:
        return node_type in self.node_types

    @abstractmethod
    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        """Run the node with its merged configuration and return its output."""
        pass

    @staticmethod
    def require(config: Dict[str, Any], key: str, run: NodeRun, message: Optional[str] = None) -> Any:
        value = config.get(key)
        if value is None or value == "":
            raise NodeExecutionError(
                message or f"'{key}' is required",
                node_id=run.node.id,
                node_type=run.node.type,
            )
        return value
