"""
WhatsApp Cloud API client.
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Optional
import logging

import httpx

from ..config import WhatsAppConfig
from ..exceptions import ChannelDeliveryError

logger = logging.getLogger(__name__)


@dataclass
class InboundWhatsAppMessage:
    """A text message received on the business number."""
    message_id: str
    phone: str
    text: str
    contact_name: Optional[str] = None
    phone_number_id: Optional[str] = None
    timestamp: Optional[str] = None


class WhatsAppService:
    """Webhook parsing and message sending for the WhatsApp Cloud API."""

    def __init__(self, config: WhatsAppConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def verify_request(self, mode: Optional[str], token: Optional[str]) -> bool:
        """Check a webhook subscription handshake."""
        return (
            mode == "subscribe"
            and bool(self.config.verify_token)
            and token == self.config.verify_token
        )

    def parse_messages(self, payload: Dict[str, Any]) -> List[InboundWhatsAppMessage]:
        """Text messages with a non-empty body from a webhook payload."""
        if payload.get("object") != "whatsapp_business_account":
            return []

        messages: List[InboundWhatsAppMessage] = []
        for entry in payload.get("entry", []) or []:
            for change in entry.get("changes", []) or []:
                if change.get("field") != "messages":
                    continue
                value = change.get("value", {}) or {}
                names = {
                    contact.get("wa_id"): (contact.get("profile") or {}).get("name")
                    for contact in value.get("contacts", []) or []
                }
                phone_number_id = (value.get("metadata") or {}).get("phone_number_id")

                for message in value.get("messages", []) or []:
                    if message.get("type") != "text":
                        logger.debug(f"Ignoring WhatsApp message of type {message.get('type')}")
                        continue
                    body = ((message.get("text") or {}).get("body") or "").strip()
                    if not body:
                        continue
                    sender = message.get("from", "")
                    messages.append(InboundWhatsAppMessage(
                        message_id=message.get("id", ""),
                        phone=sender,
                        text=body,
                        contact_name=names.get(sender),
                        phone_number_id=phone_number_id,
                        timestamp=message.get("timestamp")
                    ))
        return messages

    async def send_message(self, to: str, body: str) -> Dict[str, Any]:
        """Send a text message. Raises ChannelDeliveryError on failure."""
        if not self.config.access_token or not self.config.phone_number_id:
            raise ChannelDeliveryError("WhatsApp access token or phone number id is not configured")

        url = f"{self.config.graph_url.rstrip('/')}/{self.config.api_version}/{self.config.phone_number_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to.lstrip("+"),
            "type": "text",
            "text": {"body": body},
        }

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self.transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.config.access_token}"}
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send WhatsApp message to {to}: {e}")
            raise ChannelDeliveryError(f"WhatsApp send failed: {e}") from e

        logger.info(f"Sent WhatsApp message to {to}")
        return response.json()
