"""
Shared helpers for API routers: building per-request services from app state.
"""

from datetime import datetime
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import Config
from ..services.assistant import AssistantEngine
from ..services.conversation_store import ConversationStore
from ..services.dispatcher import ReplyDispatcher
from ..services.service_registry import ServiceRegistry


def get_app_config(request: Request) -> Config:
    return request.app.state.config


def build_engine(request: Request, db: Session) -> AssistantEngine:
    """Assistant engine bound to this request's database session."""
    state = request.app.state
    return AssistantEngine(
        registry=ServiceRegistry(db),
        store=ConversationStore(db, store_messages=state.config.conversations.store_messages),
        llm=state.llm,
        history=state.turn_history,
        config=state.config.openai
    )


def build_dispatcher(request: Request, db: Session) -> ReplyDispatcher:
    state = request.app.state
    return ReplyDispatcher(
        db=db,
        registry=ServiceRegistry(db),
        jira=state.jira,
        forwarder=state.forwarder,
        whatsapp=state.whatsapp
    )


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Request body as a dict; empty dict when it is not a JSON object."""
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": datetime.utcnow().isoformat()}
    )
