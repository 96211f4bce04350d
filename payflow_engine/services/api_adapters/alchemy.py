"""
Alchemy Provider Adapter

Blockchain address monitoring through Alchemy Notify webhooks and asset
transfer lookups over JSON-RPC.
"""

import re
from typing import Any, Dict, Optional

from ...core.config import get_settings
from ...models.credential import ProviderCredential
from .base import (
    AdapterContext,
    ProviderAdapter,
    RetryConfig,
    TransportError,
    ValidationError,
    register_adapter,
)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

CREATE_WEBHOOK_URL = "https://dashboard.alchemy.com/api/create-webhook"

NETWORK_URLS = {
    "ETH_MAINNET": "https://eth-mainnet.g.alchemy.com/v2/{api_key}",
    "ETH_SEPOLIA": "https://eth-sepolia.g.alchemy.com/v2/{api_key}",
    "POLYGON_MAINNET": "https://polygon-mainnet.g.alchemy.com/v2/{api_key}",
    "POLYGON_MUMBAI": "https://polygon-mumbai.g.alchemy.com/v2/{api_key}",
    "ARBITRUM_MAINNET": "https://arb-mainnet.g.alchemy.com/v2/{api_key}",
    "OPTIMISM_MAINNET": "https://opt-mainnet.g.alchemy.com/v2/{api_key}",
}

TRANSFER_CATEGORIES = ["external", "internal", "erc20", "erc721", "erc1155"]


@register_adapter("alchemy")
class AlchemyAdapter(ProviderAdapter):
    """Alchemy adapter: alchemy.watchAddress, alchemy.getTransactions."""

    supported_operations = ["alchemy.watchAddress", "alchemy.getTransactions"]
    # Read-only lookups are safe to repeat
    retry_policies = {"alchemy.getTransactions": RetryConfig(max_attempts=3, backoff_seconds=0.5)}

    async def execute_operation(
        self,
        operation: str,
        input_data: Dict[str, Any],
        credentials: Optional[ProviderCredential],
        context: AdapterContext,
    ) -> Dict[str, Any]:
        api_key = self.require_api_key(credentials, "Alchemy")

        if operation == "alchemy.watchAddress":
            return await self._watch_address(input_data, api_key, context)
        return await self._get_transactions(input_data, api_key)

    @staticmethod
    def _require_address(input_data: Dict[str, Any]) -> str:
        address = input_data.get("address")
        if not address or not isinstance(address, str):
            raise ValidationError("Address is required")
        return address

    async def _watch_address(self, input_data: Dict[str, Any], api_key: str, context: AdapterContext) -> Dict[str, Any]:
        """Create an ADDRESS_ACTIVITY webhook for the address."""
        address = self._require_address(input_data)
        network = input_data.get("network") or "ETH_MAINNET"

        if not ADDRESS_PATTERN.match(address):
            raise ValidationError("Invalid Ethereum address format")

        payload = {
            "network": network,
            "webhook_type": "ADDRESS_ACTIVITY",
            "webhook_url": f"{get_settings().app_url}/api/webhooks/alchemy",
            "addresses": [address],
            "metadata": {
                "userId": context.user_id,
                "workflowId": context.workflow_id,
                "nodeId": context.node_id,
            },
        }

        response = await self.make_http_request(
            "POST",
            CREATE_WEBHOOK_URL,
            headers={"Content-Type": "application/json", "X-Alchemy-Token": api_key},
            json_data=payload,
        )
        self.raise_for_status(response, "Alchemy")

        data = response.json()
        webhook = data.get("data", data) if isinstance(data, dict) else {}
        return {
            "webhookId": webhook.get("id"),
            "address": address,
            "network": network,
            "status": "active",
            "message": f"Now watching {address} on {network}",
        }

    async def _get_transactions(self, input_data: Dict[str, Any], api_key: str) -> Dict[str, Any]:
        """Most recent incoming transfers for the address."""
        address = self._require_address(input_data)
        network = input_data.get("network") or "ETH_MAINNET"
        limit = input_data.get("limit") or 10
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise ValidationError("Limit must be an integer")

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "alchemy_getAssetTransfers",
            "params": [
                {
                    "fromBlock": "0x0",
                    "toBlock": "latest",
                    "toAddress": address,
                    "category": TRANSFER_CATEGORIES,
                    "maxCount": hex(limit),
                    "order": "desc",
                }
            ],
        }

        response = await self.make_http_request(
            "POST",
            self.network_url(network, api_key),
            headers={"Content-Type": "application/json"},
            json_data=payload,
        )
        self.raise_for_status(response, "Alchemy")

        data = response.json()
        if data.get("error"):
            raise TransportError(
                f"Alchemy RPC error: {data['error'].get('message')}",
                status_code=response.status_code,
                body=response.text,
            )

        transfers = (data.get("result") or {}).get("transfers") or []
        return {
            "address": address,
            "network": network,
            "transactions": transfers,
            "count": len(transfers),
        }

    @staticmethod
    def network_url(network: str, api_key: str) -> str:
        template = NETWORK_URLS.get(network, NETWORK_URLS["ETH_MAINNET"])
        return template.format(api_key=api_key)
