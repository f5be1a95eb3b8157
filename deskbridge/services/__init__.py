"""
Services for DeskBridge.
"""

from .llm import LLMService
from .assistant import AssistantEngine, ChatResult
from .comment_intake import JiraCommentIntake, classify_comment
from .conversation_store import ConversationStore
from .dispatcher import ReplyDispatcher
from .jira import JiraService
from .phone_mapper import PhoneTicketMapper, normalize_phone
from .service_registry import ServiceRegistry
from .state import JiraWebhookState, TurnHistory
from .webhook_forwarder import WebhookForwarder
from .whatsapp import WhatsAppService
from .whatsapp_intake import WhatsAppConversationHandler

__all__ = [
    "LLMService", "AssistantEngine", "ChatResult", "JiraCommentIntake", "classify_comment",
    "ConversationStore", "ReplyDispatcher", "JiraService", "PhoneTicketMapper", "normalize_phone",
    "ServiceRegistry", "JiraWebhookState", "TurnHistory", "WebhookForwarder", "WhatsAppService",
    "WhatsAppConversationHandler"
]
