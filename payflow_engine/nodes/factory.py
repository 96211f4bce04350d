"""
Node Handler Factory.

Holds the dispatch table mapping node types to handlers. The table is
walked in registration order and the first handler that accepts a type wins.
"""

from typing import List, Optional

import httpx

from .adapter_node import AdapterNodeHandler
from .base import NodeHandler
from .chat_nodes import SlackNodeHandler, TelegramNodeHandler
from .code_node import CodeNodeHandler
from .email_node import EmailNodeHandler, GmailNodeHandler
from .google_sheets_node import GoogleSheetsNodeHandler
from .http_node import HTTPNodeHandler
from .openai_node import OpenAINodeHandler

DEFAULT_HANDLERS = (
    AdapterNodeHandler,
    OpenAINodeHandler,
    EmailNodeHandler,
    GmailNodeHandler,
    GoogleSheetsNodeHandler,
    HTTPNodeHandler,
    SlackNodeHandler,
    TelegramNodeHandler,
    CodeNodeHandler,
)


class NodeHandlerFactory:
    """Factory resolving node types to handlers."""

    def __init__(self):
        self._handlers: List[NodeHandler] = []

    def register_handler(self, handler: NodeHandler) -> None:
        """Register a handler; earlier registrations take precedence."""
        self._handlers.append(handler)

    def get_handler(self, node_type: str) -> Optional[NodeHandler]:
        for handler in self._handlers:
            if handler.can_handle(node_type):
                return handler
        return None

    def get_supported_node_types(self) -> List[str]:
        return [node_type for handler in self._handlers for node_type in handler.node_types]

    def is_supported(self, node_type: str) -> bool:
        return self.get_handler(node_type) is not None


def create_default_factory(http_client: Optional[httpx.AsyncClient] = None) -> NodeHandlerFactory:
    """Factory with every built-in handler, optionally sharing one HTTP client."""
    factory = NodeHandlerFactory()
    for handler_class in DEFAULT_HANDLERS:
        factory.register_handler(handler_class(http_client=http_client))
    return factory


# Global factory instance
_node_handler_factory: Optional[NodeHandlerFactory] = None


def get_node_handler_factory() -> NodeHandlerFactory:
    """Get the global node handler factory instance."""
    global _node_handler_factory
    if _node_handler_factory is None:
        _node_handler_factory = create_default_factory()
    return _node_handler_factory
