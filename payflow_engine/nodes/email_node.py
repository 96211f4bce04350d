"""
Email node handlers: Resend for `email`, the Gmail REST API for `gmail`/`gmailSend`.
"""

import base64
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from ..core.config import get_settings
from ..exceptions import NodeExecutionError
from ..models.credential import ProviderCredential
from .base import NodeHandler, NodeRun

RESEND_URL = "https://api.resend.com/emails"
GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


def _recipients(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part).strip() for part in value if str(part).strip()]
    return []


def _body(config: Dict[str, Any], run: NodeRun) -> str:
    body = config.get("body") or config.get("message") or config.get("text")
    if body:
        return str(body)
    previous = run.input.get("previous")
    if isinstance(previous, dict) and previous.get("content"):
        return str(previous["content"])
    return ""


class EmailNodeHandler(NodeHandler):
    """Send an email through the Resend HTTP API."""

    node_types = ("email",)

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        settings = get_settings()
        credential = run.context.get_credential("resend")
        api_key = (credential.api_key if credential else None) or settings.resend_token
        if not api_key:
            raise NodeExecutionError("Resend API key not configured", node_id=run.node.id, node_type=run.node.type)

        to = _recipients(self.require(config, "to", run, "Recipient ('to') is required"))
        sender = config.get("from") or settings.resend_email
        if not sender:
            raise NodeExecutionError("Sender ('from') is required", node_id=run.node.id, node_type=run.node.type)

        payload: Dict[str, Any] = {
            "from": sender,
            "to": to,
            "subject": config.get("subject") or "",
        }
        body = _body(config, run)
        if config.get("html"):
            payload["html"] = config["html"]
        else:
            payload["text"] = body

        self.logger.info(f"📧 Sending email to: {', '.join(to)}")
        response = await self.make_http_request(
            "POST",
            RESEND_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json_data=payload,
        )
        self.raise_for_status(response, "Resend")

        data = response.json()
        run.log(f"Email sent to {len(to)} recipient(s)")
        return {"sent": True, "id": data.get("id"), "to": config["to"]}


class GmailNodeHandler(NodeHandler):
    """Send an email through the Gmail API with the user's OAuth token."""

    node_types = ("gmail", "gmailSend")

    @staticmethod
    def _access_token(run: NodeRun) -> Optional[str]:
        for provider in ("gmail", "google"):
            credential: Optional[ProviderCredential] = run.context.get_credential(provider)
            if credential is not None and credential.access_token:
                return credential.access_token
        return None

    @staticmethod
    def build_raw_message(to: List[str], subject: str, body: str, sender: Optional[str] = None,
                          html: bool = False) -> str:
        message = EmailMessage()
        message["To"] = ", ".join(to)
        message["Subject"] = subject
        if sender:
            message["From"] = sender
        message.set_content(body, subtype="html" if html else "plain")
        return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        access_token = self._access_token(run)
        if not access_token:
            raise NodeExecutionError(
                "Gmail requires an OAuth2 credential", node_id=run.node.id, node_type=run.node.type
            )

        to = _recipients(self.require(config, "to", run, "Recipient ('to') is required"))
        subject = str(config.get("subject") or "")
        raw = self.build_raw_message(
            to, subject, _body(config, run), config.get("from"), html=bool(config.get("isHtml"))
        )

        self.logger.info(f"📧 Sending Gmail message to: {', '.join(to)}")
        response = await self.make_http_request(
            "POST",
            GMAIL_SEND_URL,
            headers={"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"},
            json_data={"raw": raw},
        )
        self.raise_for_status(response, "Gmail")

        data = response.json()
        run.log(f"Gmail message {data.get('id')} sent")
        return {
            "sent": True,
            "messageId": data.get("id"),
            "threadId": data.get("threadId"),
            "to": config["to"],
            "subject": subject,
        }
