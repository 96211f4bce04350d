"""
Base classes and utilities for provider adapters.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

import httpx

from ...core.config import get_settings
from ...models.credential import CredentialType, ProviderCredential

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for adapter errors."""

    pass


class ValidationError(APIError):
    """Raised when operation input is missing or malformed."""

    pass


class AuthenticationError(APIError):
    """Raised when the credential is missing or of the wrong type."""

    pass


class TransportError(APIError):
    """Raised for non-2xx responses; keeps the status and raw body."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TemporaryError(APIError):
    """Raised for timeouts and connection failures that may be retried."""

    pass


class UnsupportedOperationError(APIError):
    """Raised when an adapter is asked for an operation it does not declare."""

    pass


class UnknownProviderError(APIError):
    """Raised when no adapter is registered for a provider id."""

    pass


@dataclass
class RetryConfig:
    """Retry policy for one adapter operation; only TemporaryError is retried."""

    max_attempts: int = 1
    backoff_seconds: float = 0.5
    backoff_multiplier: float = 2.0


@dataclass
class AdapterContext:
    """What an adapter may know about the run that invoked it."""

    user_id: str
    execution_id: str
    workflow_id: Optional[str] = None
    node_id: Optional[str] = None


@dataclass
class AdapterResult:
    """Uniform result of an adapter operation."""

    success: bool
    output: Dict[str, Any]
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None


class HTTPRequestMixin:
    """Outbound HTTP through httpx; an injected AsyncClient is reused, otherwise one per request."""

    def _init_http(self, http_client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._http_client = http_client
        self.timeout = timeout if timeout is not None else get_settings().http_timeout

    async def make_http_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json_data: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request; connection problems become TemporaryError."""
        request_kwargs: Dict[str, Any] = {
            "method": method,
            "url": url,
            "headers": headers,
            "params": params,
            "timeout": self.timeout,
        }
        if json_data is not None:
            request_kwargs["json"] = json_data

        try:
            if self._http_client is not None:
                return await self._http_client.request(**request_kwargs)
            async with httpx.AsyncClient() as client:
                return await client.request(**request_kwargs)
        except httpx.TimeoutException:
            raise TemporaryError(f"Request timeout after {self.timeout}s")
        except httpx.ConnectError as e:
            raise TemporaryError(f"Connection failed: {e}")

    def raise_for_status(self, response: httpx.Response, label: str) -> None:
        if not response.is_success:
            raise TransportError(
                f"{label} API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )


class ProviderAdapter(HTTPRequestMixin, ABC):
    """Base class for all provider adapters."""

    provider_id: str = ""
    supported_operations: List[str] = []
    # Credential entry the adapter consumes; defaults to provider_id
    credential_provider: Optional[str] = None
    retry_policies: Dict[str, RetryConfig] = {}

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._init_http(http_client, timeout)

    @property
    def credential_key(self) -> str:
        return self.credential_provider or self.provider_id

    async def execute(
        self,
        operation: str,
        input_data: Dict[str, Any],
        credentials: Optional[ProviderCredential],
        context: AdapterContext,
    ) -> AdapterResult:
        """
        Run one operation.

        Raises:
            UnsupportedOperationError: operation not declared by this adapter
            AuthenticationError: credential missing or of the wrong type
            ValidationError: required input missing or malformed
            TransportError: the external service answered with an error
        """
        if operation not in self.supported_operations:
            raise UnsupportedOperationError(
                f"Unsupported operation for {self.provider_id}: {operation}"
            )

        policy = self.retry_policies.get(operation, RetryConfig())
        logs: List[str] = []
        delay = policy.backoff_seconds
        attempt = 1
        while True:
            logs.append(f"{operation}: attempt {attempt}")
            try:
                output = await self.execute_operation(operation, input_data, credentials, context)
                break
            except TemporaryError as e:
                if attempt >= policy.max_attempts:
                    raise
                self.logger.warning(f"{operation} attempt {attempt} failed, retrying in {delay}s: {e}")
                logs.append(f"{operation}: retrying after {e}")
                await asyncio.sleep(delay)
                delay *= policy.backoff_multiplier
                attempt += 1

        logs.append(f"{operation}: completed")
        return AdapterResult(success=True, output=output, logs=logs)

    @abstractmethod
    async def execute_operation(
        self,
        operation: str,
        input_data: Dict[str, Any],
        credentials: Optional[ProviderCredential],
        context: AdapterContext,
    ) -> Dict[str, Any]:
        """Perform the operation and map the raw response to a flat output."""
        pass

    def require_api_key(self, credentials: Optional[ProviderCredential], label: str) -> str:
        if credentials is None or credentials.type != CredentialType.API_KEY or not credentials.api_key:
            raise AuthenticationError(f"{label} requires API key credentials")
        return credentials.api_key


# Registry for provider adapters
_adapter_registry: Dict[str, Type[ProviderAdapter]] = {}
_adapter_instances: Dict[str, ProviderAdapter] = {}


def register_adapter(provider_id: str):
    """Decorator to register a provider adapter class."""

    def decorator(adapter_class: Type[ProviderAdapter]):
        adapter_class.provider_id = provider_id
        _adapter_registry[provider_id] = adapter_class
        _adapter_instances.pop(provider_id, None)
        return adapter_class

    return decorator


def get_adapter(provider_id: str) -> ProviderAdapter:
    """Get the shared adapter instance for a provider id."""
    adapter = _adapter_instances.get(provider_id)
    if adapter is not None:
        return adapter

    adapter_class = _adapter_registry.get(provider_id)
    if adapter_class is None:
        raise UnknownProviderError(f"No adapter registered for provider: {provider_id}")

    adapter = adapter_class()
    _adapter_instances[provider_id] = adapter
    return adapter


def set_adapter(provider_id: str, adapter: ProviderAdapter) -> None:
    """Override the shared instance for a provider (used for wiring custom HTTP clients)."""
    if provider_id not in _adapter_registry:
        raise UnknownProviderError(f"No adapter registered for provider: {provider_id}")
    _adapter_instances[provider_id] = adapter


def list_adapters() -> List[str]:
    """List all registered provider ids."""
    return list(_adapter_registry.keys())
