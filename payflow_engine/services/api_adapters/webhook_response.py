"""
Webhook Response Adapter

Builds the HTTP reply a webhook-triggered workflow hands back to its caller.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ...models.credential import ProviderCredential
from .base import AdapterContext, ProviderAdapter, ValidationError, register_adapter

DEFAULT_HEADERS = {"Content-Type": "application/json"}


@register_adapter("webhook")
class WebhookResponseAdapter(ProviderAdapter):
    """Webhook adapter: respond. Needs no credentials."""

    supported_operations = ["respond"]

    async def execute_operation(
        self,
        operation: str,
        input_data: Dict[str, Any],
        credentials: Optional[ProviderCredential],
        context: AdapterContext,
    ) -> Dict[str, Any]:
        status = input_data.get("statusCode", 200)
        try:
            status = int(status)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid status code: {status!r}")
        if not 100 <= status <= 599:
            raise ValidationError(f"Status code must be between 100 and 599, got {status}")

        headers = input_data.get("headers") or {}
        if not isinstance(headers, dict):
            raise ValidationError("Headers must be an object")

        body = input_data["body"] if "body" in input_data else input_data.get("previous")

        return {
            "statusCode": status,
            "headers": {**DEFAULT_HEADERS, **{str(k): str(v) for k, v in headers.items()}},
            "body": body,
            "respondedAt": datetime.now(timezone.utc).isoformat(),
        }
