"""
CoinGate Provider Adapter

Creates CoinGate payment orders whose status callbacks come back to this
service's webhook route.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from ...core.config import get_settings
from ...models.credential import ProviderCredential
from .base import AdapterContext, ProviderAdapter, ValidationError, register_adapter

ORDERS_URL = "https://api.coingate.com/v2/orders"


def _order_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data.get("id"),
        "orderId": data.get("order_id"),
        "status": data.get("status"),
        "priceAmount": data.get("price_amount"),
        "priceCurrency": data.get("price_currency"),
        "receiveAmount": data.get("receive_amount"),
        "receiveCurrency": data.get("receive_currency"),
        "paymentAddress": data.get("payment_address"),
        "token": data.get("token"),
    }


@register_adapter("coingate")
class CoingateAdapter(ProviderAdapter):
    """CoinGate adapter: payment.create and payment.webhook both create an order."""

    supported_operations = ["payment.webhook", "payment.create"]

    async def execute_operation(
        self,
        operation: str,
        input_data: Dict[str, Any],
        credentials: Optional[ProviderCredential],
        context: AdapterContext,
    ) -> Dict[str, Any]:
        api_key = self.require_api_key(credentials, "CoinGate")
        return await self._create_payment_order(input_data, api_key, context)

    @staticmethod
    def _validate(input_data: Dict[str, Any]) -> None:
        price_amount = input_data.get("priceAmount")
        if not price_amount or isinstance(price_amount, bool) or not isinstance(price_amount, (int, float)):
            raise ValidationError("Price amount is required and must be a number")
        if not input_data.get("priceCurrency") or not isinstance(input_data["priceCurrency"], str):
            raise ValidationError("Price currency is required")
        if not input_data.get("receiveCurrency") or not isinstance(input_data["receiveCurrency"], str):
            raise ValidationError("Receive currency is required")

    @staticmethod
    def callback_url(context: AdapterContext) -> str:
        query = urlencode({"workflowId": context.workflow_id or "", "executionId": context.execution_id})
        return f"{get_settings().app_url}/api/webhooks/coingate?{query}"

    async def _create_payment_order(
        self, input_data: Dict[str, Any], api_key: str, context: AdapterContext
    ) -> Dict[str, Any]:
        self._validate(input_data)

        payload: Dict[str, Any] = {
            "price_amount": input_data["priceAmount"],
            "price_currency": input_data["priceCurrency"],
            "receive_currency": input_data["receiveCurrency"],
            "callback_url": self.callback_url(context),
        }
        for source_key, target_key in (
            ("orderId", "order_id"),
            ("successUrl", "success_url"),
            ("cancelUrl", "cancel_url"),
        ):
            value = input_data.get(source_key)
            if value and isinstance(value, str):
                payload[target_key] = value

        response = await self.make_http_request(
            "POST",
            ORDERS_URL,
            headers={"Authorization": f"Token {api_key}", "Content-Type": "application/json"},
            json_data=payload,
        )
        self.raise_for_status(response, "CoinGate")

        data = response.json()
        output = _order_fields(data)
        output.update(
            {
                "paymentUrl": data.get("payment_url"),
                "createdAt": data.get("created_at"),
                "expireAt": data.get("expire_at"),
            }
        )
        return output

    @staticmethod
    def process_webhook(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Map a CoinGate status callback to the trigger output shape."""
        output = _order_fields(payload)
        output["webhookReceivedAt"] = datetime.now(timezone.utc).isoformat()
        return output
