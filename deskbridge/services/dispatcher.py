"""
Delivery of AI replies: Jira comment, WhatsApp relay and webhook forwarding.
"""

from typing import Dict, Any, Optional
import logging

from sqlalchemy.orm import Session

from ..exceptions import ChannelDeliveryError, TicketGatewayError
from .assistant import ChatResult
from .jira import JiraCredentials, JiraService
from .service_registry import ServiceRegistry
from .webhook_forwarder import WebhookForwarder, build_payload
from .whatsapp import WhatsAppService

logger = logging.getLogger(__name__)


def ticket_thread_id(issue_key: str) -> str:
    """Thread id shared by every channel talking about one ticket."""
    return f"ticket_{issue_key}"


class ReplyDispatcher:
    """Posts a processed turn everywhere it has to go. Delivery failures are logged, never raised."""

    def __init__(
        self,
        db: Session,
        registry: ServiceRegistry,
        jira: JiraService,
        forwarder: WebhookForwarder,
        whatsapp: Optional[WhatsAppService] = None
    ):
        self.db = db
        self.registry = registry
        self.jira = jira
        self.forwarder = forwarder
        self.whatsapp = whatsapp

    def jira_credentials(self, service_id: str, user_id: Optional[str]) -> Optional[JiraCredentials]:
        """Service-specific Jira identity, if the service has one."""
        service = self.registry.get_service(service_id, user_id)
        if service is not None and service.jira_email and service.jira_api_token:
            return JiraCredentials(service.jira_email, service.jira_api_token)
        return None

    async def add_customer_comment(self, issue_key: str, text: str) -> bool:
        """Record an inbound customer message on the ticket with the widget identity."""
        try:
            await self.jira.add_comment(issue_key, text, identity="widget")
            return True
        except TicketGatewayError as e:
            logger.error(f"Failed to record customer message on {issue_key}: {e}")
            return False

    async def deliver(
        self,
        issue_key: Optional[str],
        result: ChatResult,
        inbound_message: str,
        author: Optional[str],
        source: str,
        user_id: Optional[str] = None,
        whatsapp_to: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        outcome: Dict[str, Any] = {"commentPosted": False, "whatsappSent": False, "webhooksDelivered": 0}

        if issue_key:
            try:
                await self.jira.add_comment(
                    issue_key,
                    result.response,
                    identity="ai",
                    credentials=self.jira_credentials(result.service_id, user_id)
                )
                outcome["commentPosted"] = True
            except TicketGatewayError as e:
                logger.error(f"Failed to post AI response to {issue_key}: {e}")

        if whatsapp_to and self.whatsapp is not None:
            try:
                await self.whatsapp.send_message(whatsapp_to, result.response)
                outcome["whatsappSent"] = True
            except ChannelDeliveryError as e:
                logger.error(f"Failed to relay AI response for {issue_key} to WhatsApp: {e}")

        payload = build_payload(
            issue_key=issue_key,
            message=inbound_message,
            author=author,
            source=source,
            thread_id=result.thread_id,
            assistant_id=result.assistant_id,
            assistant_name=result.assistant_name,
            response=result.response,
            context=context
        )
        outcome["webhooksDelivered"] = await self.forwarder.forward(self.db, user_id, result.service_id, payload)
        return outcome
