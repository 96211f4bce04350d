"""
Provider adapters for external service integrations.

Importing this package registers every adapter.
"""

from .base import (
    AdapterContext,
    AdapterResult,
    APIError,
    AuthenticationError,
    ProviderAdapter,
    RetryConfig,
    TemporaryError,
    TransportError,
    UnknownProviderError,
    UnsupportedOperationError,
    ValidationError,
    get_adapter,
    list_adapters,
    register_adapter,
    set_adapter,
)
from .agent import AgentAdapter
from .alchemy import AlchemyAdapter
from .coingate import CoingateAdapter
from .postgres import PostgresAdapter
from .webhook_response import WebhookResponseAdapter

__all__ = [
    "AdapterContext",
    "AdapterResult",
    "APIError",
    "AuthenticationError",
    "ProviderAdapter",
    "RetryConfig",
    "TemporaryError",
    "TransportError",
    "UnknownProviderError",
    "UnsupportedOperationError",
    "ValidationError",
    "get_adapter",
    "list_adapters",
    "register_adapter",
    "set_adapter",
    "AgentAdapter",
    "AlchemyAdapter",
    "CoingateAdapter",
    "PostgresAdapter",
    "WebhookResponseAdapter",
]
