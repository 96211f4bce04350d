"""
Chat notification node handlers: Slack incoming webhooks and the Telegram Bot API.
"""

from typing import Any, Dict

from ..core.config import get_settings
from ..exceptions import NodeExecutionError
from .base import NodeHandler, NodeRun

TELEGRAM_API = "https://api.telegram.org"


def _message(config: Dict[str, Any], run: NodeRun) -> str:
    message = config.get("message") or config.get("text")
    if message:
        return str(message)
    previous = run.input.get("previous")
    if isinstance(previous, dict) and previous.get("content"):
        return str(previous["content"])
    return ""


class SlackNodeHandler(NodeHandler):
    """Post a message to a Slack incoming webhook."""

    node_types = ("slack",)

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        webhook_url = config.get("webhookUrl")
        if not webhook_url:
            credential = run.context.get_credential("slack")
            if credential is not None:
                webhook_url = credential.data.get("webhookUrl") or credential.api_key
        if not webhook_url:
            raise NodeExecutionError(
                "Slack webhook URL not configured", node_id=run.node.id, node_type=run.node.type
            )

        payload: Dict[str, Any] = {"text": _message(config, run)}
        if config.get("blocks"):
            payload["blocks"] = config["blocks"]

        response = await self.make_http_request(
            "POST", webhook_url, headers={"Content-Type": "application/json"}, json_data=payload
        )
        if not response.is_success:
            self.logger.warning(f"Slack webhook answered {response.status_code}: {response.text}")
        run.log(f"Slack webhook -> {response.status_code}")
        return {"sent": response.is_success, "status": response.status_code}


class TelegramNodeHandler(NodeHandler):
    """Send a message with the Telegram Bot API."""

    node_types = ("telegram",)

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        credential = run.context.get_credential("telegram")
        bot_token = (
            config.get("botToken")
            or (credential.api_key if credential is not None else None)
            or get_settings().telegram_bot_token
        )
        chat_id = config.get("chatId")
        if not bot_token or not chat_id:
            raise NodeExecutionError(
                "Telegram bot token or chat ID not configured", node_id=run.node.id, node_type=run.node.type
            )

        payload: Dict[str, Any] = {"chat_id": chat_id, "text": _message(config, run)}
        if config.get("parseMode"):
            payload["parse_mode"] = config["parseMode"]

        response = await self.make_http_request(
            "POST",
            f"{TELEGRAM_API}/bot{bot_token}/sendMessage",
            headers={"Content-Type": "application/json"},
            json_data=payload,
        )
        self.raise_for_status(response, "Telegram")
        run.log(f"Telegram message sent to {chat_id}")
        return response.json()
