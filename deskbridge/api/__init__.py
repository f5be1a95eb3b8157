"""
API endpoints for DeskBridge.
"""

from .main import create_app
from .jira import jira_router
from .whatsapp import whatsapp_router
from .chat import chat_router
from .widget import widget_router
from .admin import admin_router

__all__ = ["create_app", "jira_router", "whatsapp_router", "chat_router", "widget_router", "admin_router"]
