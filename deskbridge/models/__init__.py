"""
Database models for DeskBridge.
"""

from .thread import ChatThread, ChatMessage
from .service_configuration import ServiceConfiguration, DisabledTicket
from .whatsapp_mapping import WhatsAppMapping
from .webhook import WebhookConfig, SavedWebhook

__all__ = [
    "ChatThread", "ChatMessage", "ServiceConfiguration", "DisabledTicket",
    "WhatsAppMapping", "WebhookConfig", "SavedWebhook"
]
