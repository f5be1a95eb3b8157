"""
Jira webhook endpoints.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging

from ..database import get_session
from ..services.comment_intake import JiraCommentIntake
from ..services.phone_mapper import PhoneTicketMapper
from ..services.service_registry import ServiceRegistry
from .common import build_dispatcher, build_engine, get_app_config

logger = logging.getLogger(__name__)

jira_router = APIRouter()


@jira_router.post("/webhook")
async def handle_jira_webhook(request: Request, db: Session = Depends(get_session)):
    """Handle Jira webhook events. Always 200 unless something unexpected breaks."""
    state = request.app.state.webhook_state
    try:
        payload = await request.json()
        logger.debug(f"Jira webhook received: {payload.get('webhookEvent')}")

        intake = JiraCommentIntake(
            state=state,
            config=get_app_config(request),
            engine=build_engine(request, db),
            registry=ServiceRegistry(db),
            mapper=PhoneTicketMapper(db),
            dispatcher=build_dispatcher(request, db)
        )
        result = await intake.handle(payload)
        return result.body

    except Exception as e:
        state.stats.errors += 1
        logger.error(f"Error processing Jira webhook: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Failed to process webhook",
                "timestamp": datetime.utcnow().isoformat(),
                "errorDetails": type(e).__name__,
            }
        )


@jira_router.get("/conversations/{issue_key}")
async def get_issue_conversation(issue_key: str, request: Request):
    """Recent comments and AI replies seen for an issue since startup."""
    entries = request.app.state.webhook_state.conversations.get(issue_key)
    return {"success": True, "issueKey": issue_key, "entries": entries, "count": len(entries)}
