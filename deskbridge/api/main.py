"""
Main FastAPI application for DeskBridge.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .. import __version__
from ..config import Config, set_config
from ..database import init_database, create_engine, session_scope
from ..services.conversation_store import ConversationStore
from ..services.jira import JiraService
from ..services.llm import LLMService
from ..services.service_registry import ServiceRegistry
from ..services.state import BoundedKeySet, JiraWebhookState, TurnHistory
from ..services.webhook_forwarder import WebhookForwarder
from ..services.whatsapp import WhatsAppService
from .admin import admin_router
from .chat import chat_router
from .jira import jira_router
from .whatsapp import whatsapp_router
from .widget import widget_router

logger = logging.getLogger(__name__)


def create_app(
    app_config: Config,
    llm_service: Optional[LLMService] = None,
    jira_service: Optional[JiraService] = None,
    whatsapp_service: Optional[WhatsAppService] = None,
    forwarder: Optional[WebhookForwarder] = None
) -> FastAPI:
    """Create FastAPI application. Collaborators can be injected, otherwise they are built from config."""
    set_config(app_config)

    app = FastAPI(
        title="DeskBridge",
        description="Bridge between Jira, OpenAI assistants and customer chat channels",
        version=__version__
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine, database_url = create_engine(app_config.database)
    init_database(engine, database_url)

    app.state.config = app_config
    app.state.engine = engine
    app.state.llm = llm_service or LLMService(app_config.openai)
    app.state.jira = jira_service or JiraService(app_config.jira)
    app.state.whatsapp = whatsapp_service or WhatsAppService(app_config.whatsapp)
    app.state.forwarder = forwarder or WebhookForwarder(app_config.webhooks)
    app.state.webhook_state = JiraWebhookState(
        dedup_capacity=app_config.intake.dedup_capacity,
        dedup_retain=app_config.intake.dedup_retain,
        throttle_seconds=app_config.intake.throttle_seconds,
        conversation_log_size=app_config.intake.conversation_log_size
    )
    app.state.turn_history = TurnHistory(max_turns=app_config.openai.history_size)
    app.state.whatsapp_seen = BoundedKeySet(capacity=100, retain=50)

    _prepare_database(engine, app_config)

    app.include_router(jira_router, prefix="/api/jira", tags=["jira"])
    app.include_router(chat_router, prefix="/api/chat", tags=["chat"])
    app.include_router(widget_router, prefix="/api/widget", tags=["widget"])

    if app_config.whatsapp.enabled:
        app.include_router(whatsapp_router, prefix="/api/whatsapp", tags=["whatsapp"])

    if app_config.admin.enabled:
        app.include_router(admin_router, prefix="/admin", tags=["admin"])

    @app.get("/api/ping")
    async def ping():
        return {"message": "DeskBridge is running"}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


def _prepare_database(engine, app_config: Config) -> None:
    """Seed configured services and run the startup retention sweep."""
    with session_scope(engine) as session:
        if app_config.services:
            ServiceRegistry(session).seed_services(app_config.services)
            logger.info(f"Seeded {len(app_config.services)} services from configuration")
        if app_config.retention.sweep_on_startup:
            ConversationStore(session).cleanup_old_threads(app_config.retention.thread_days)
