"""
WhatsApp conversation handling: reset keywords, routing of new conversations,
ticket creation and AI replies for mapped phones.
"""

from typing import Dict, Any, Optional
import logging

from ..config import Config
from ..exceptions import ChannelDeliveryError, ProviderUnavailable, ServiceNotConfigured, TicketGatewayError
from .assistant import AssistantEngine
from .dispatcher import ReplyDispatcher, ticket_thread_id
from .intent_router import (
    RouteDecision, build_service_list_message, load_routable_services, parse_service_selection, route_to_service
)
from .jira import format_channel_comment
from .phone_mapper import PhoneTicketMapper, normalize_phone
from .service_registry import ServiceRegistry
from .state import BoundedKeySet, JiraWebhookState
from .whatsapp import InboundWhatsAppMessage, WhatsAppService

logger = logging.getLogger(__name__)

RESET_KEYWORDS = ("menu", "inicio", "reiniciar", "reset", "volver", "start")

NO_SERVICES_MESSAGE = "Sorry, no services are available right now. Please try again later."


class WhatsAppConversationHandler:
    """Processes one inbound WhatsApp text message end to end."""

    def __init__(
        self,
        config: Config,
        state: JiraWebhookState,
        seen_messages: BoundedKeySet,
        engine: AssistantEngine,
        registry: ServiceRegistry,
        mapper: PhoneTicketMapper,
        dispatcher: ReplyDispatcher,
        whatsapp: WhatsAppService
    ):
        self.config = config
        self.state = state
        self.seen_messages = seen_messages
        self.engine = engine
        self.registry = registry
        self.mapper = mapper
        self.dispatcher = dispatcher
        self.whatsapp = whatsapp

    async def handle(self, message: InboundWhatsAppMessage) -> Dict[str, Any]:
        """Returns a small status dict describing what was done."""
        if message.message_id and not self.seen_messages.add(message.message_id):
            logger.info(f"WhatsApp message {message.message_id} already processed")
            return {"status": "duplicate"}

        phone = normalize_phone(message.phone)
        user_id = self.config.whatsapp.default_user_id

        if message.text.strip().lower() in RESET_KEYWORDS:
            self.mapper.delete(phone)
            services = load_routable_services(self.registry, user_id)
            await self._send(phone, build_service_list_message(services) if services else NO_SERVICES_MESSAGE)
            return {"status": "reset"}

        mapping = self.mapper.get(phone)
        if mapping is None:
            mapping = await self._start_conversation(phone, message, user_id)
            if mapping is None:
                return {"status": "no_service"}

        issue_key = mapping.issue_key
        await self.dispatcher.add_customer_comment(
            issue_key, format_channel_comment("WhatsApp", message.contact_name or phone, message.text)
        )

        disabled = self.registry.get_disabled_ticket(issue_key, mapping.user_id)
        if disabled is not None:
            logger.info(f"AI assistant disabled for {issue_key}, WhatsApp message only recorded")
            return {"status": "disabled", "issueKey": issue_key}

        # the comment just added echoes back through the Jira webhook; keep it inside the window
        self.state.throttle.record(issue_key)

        context = {
            "jiraIssueKey": issue_key,
            "authorName": message.contact_name,
            "phone": phone,
            "conversationType": "whatsapp",
        }
        try:
            result = await self.engine.process_chat_for_service(
                message.text, mapping.service_id, ticket_thread_id(issue_key), context, mapping.user_id
            )
        except (ServiceNotConfigured, ProviderUnavailable) as e:
            logger.error(f"Could not answer WhatsApp message for {issue_key}: {e}")
            return {"status": "error", "issueKey": issue_key, "error": str(e)}

        self.state.conversations.append(issue_key, "user", message.contact_name or phone, message.text)
        self.state.conversations.append(issue_key, "assistant", result.assistant_name or "AI Assistant", result.response)

        await self.dispatcher.deliver(
            issue_key,
            result,
            inbound_message=message.text,
            author=message.contact_name or phone,
            source="whatsapp",
            user_id=mapping.user_id,
            whatsapp_to=phone,
            context=context
        )
        return {"status": "answered", "issueKey": issue_key, "threadId": result.thread_id}

    async def _start_conversation(self, phone: str, message: InboundWhatsAppMessage, user_id: Optional[str]):
        """Route a first message to a service and open a ticket for it."""
        services = load_routable_services(self.registry, user_id)
        if not services:
            logger.warning(f"No active services for WhatsApp user {user_id}")
            await self._send(phone, NO_SERVICES_MESSAGE)
            return None

        # a reply to the service menu wins over keyword routing
        selected = parse_service_selection(services, message.text)
        if selected is not None:
            decision = RouteDecision(selected.service_id, "selection")
        else:
            decision = route_to_service(services, message.text, self.config.whatsapp.default_service_id)
        service = self.registry.get_service(decision.service_id, user_id)
        if service is None or not service.project_key:
            logger.error(f"Routed WhatsApp conversation to {decision.service_id} but it has no project key")
            await self._send(phone, NO_SERVICES_MESSAGE)
            return None

        name = message.contact_name or phone
        try:
            issue_key = await self.dispatcher.jira.create_issue(
                service.project_key,
                f"WhatsApp: {name} ({phone})",
                f"Conversation started on WhatsApp by {name} ({phone}).\n\nFirst message: {message.text}",
                labels=["whatsapp"]
            )
        except TicketGatewayError as e:
            logger.error(f"Failed to create ticket for WhatsApp contact {phone}: {e}")
            return None

        logger.info(f"New WhatsApp conversation {phone} routed to {decision.service_id} ({decision.source}) as {issue_key}")
        return self.mapper.set(phone, issue_key, decision.service_id, user_id, message.contact_name)

    async def _send(self, phone: str, text: str) -> None:
        try:
            await self.whatsapp.send_message(phone, text)
        except ChannelDeliveryError as e:
            logger.error(f"Failed to send WhatsApp message to {phone}: {e}")
