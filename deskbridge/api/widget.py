"""
Website chat widget endpoints.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from ..database import get_session
from ..exceptions import ProviderUnavailable, ServiceNotConfigured, TicketGatewayError
from ..services.dispatcher import ticket_thread_id
from ..services.jira import format_channel_comment
from .common import build_dispatcher, build_engine, error_response, get_app_config, read_json_body

logger = logging.getLogger(__name__)

widget_router = APIRouter()


@widget_router.post("/connect")
async def connect_to_ticket(request: Request):
    """Attach a widget session to an existing ticket."""
    data = await read_json_body(request)
    issue_key = data.get("issueKey")
    if not issue_key:
        return error_response(400, "issueKey is required")

    try:
        issue = await request.app.state.jira.get_issue(issue_key)
    except TicketGatewayError as e:
        if e.status_code == 404:
            return error_response(404, f"Issue {issue_key} not found")
        logger.error(f"Failed to load {issue_key} for widget: {e}")
        return error_response(502, "Issue tracker unavailable")

    fields = issue.get("fields") or {}
    return {
        "success": True,
        "issueKey": issue_key,
        "summary": fields.get("summary"),
        "status": (fields.get("status") or {}).get("name"),
        "threadId": ticket_thread_id(issue_key),
    }


@widget_router.post("/messages")
async def send_widget_message(request: Request, db: Session = Depends(get_session)):
    """Record a widget message on its ticket and answer it with the assistant."""
    data = await read_json_body(request)
    issue_key = data.get("issueKey")
    message = data.get("message")
    customer_info = data.get("customerInfo") or {}

    if not issue_key or not isinstance(message, str) or not message.strip():
        return error_response(400, "issueKey and message are required")

    config = get_app_config(request)
    state = request.app.state.webhook_state
    customer_name = customer_info.get("name") if isinstance(customer_info, dict) else None
    thread_id = ticket_thread_id(issue_key)

    dispatcher = build_dispatcher(request, db)
    comment_posted = await dispatcher.add_customer_comment(
        issue_key, format_channel_comment("Widget Chat", customer_name, message)
    )
    state.conversations.append(issue_key, "user", customer_name or "Customer", message)

    disabled = dispatcher.registry.get_disabled_ticket(issue_key)
    if disabled is not None:
        return {
            "success": True,
            "message": "AI Assistant disabled for this ticket",
            "disabled": True,
            "reason": disabled.reason,
            "aiResponse": None,
            "threadId": thread_id,
            "commentPosted": comment_posted,
        }

    state.throttle.record(issue_key)

    context = {
        "jiraIssueKey": issue_key,
        "authorName": customer_name,
        "customerInfo": customer_info,
        "conversationType": "widget",
    }
    engine = build_engine(request, db)
    try:
        result = await engine.process_chat_for_service(message, config.chat.widget_service_id, thread_id, context)
    except ServiceNotConfigured as e:
        logger.error(f"Widget service not configured: {e}")
        return error_response(404, str(e))
    except ProviderUnavailable as e:
        logger.error(f"Widget reply failed for {issue_key}: {e}")
        return error_response(503, "AI provider unavailable")
    except Exception as e:
        logger.error(f"Unexpected error answering widget message for {issue_key}: {e}")
        return error_response(500, "Internal server error")

    state.conversations.append(issue_key, "assistant", result.assistant_name or "AI Assistant", result.response)
    try:
        delivery = await dispatcher.deliver(
            issue_key,
            result,
            inbound_message=message,
            author=customer_name,
            source="widget",
            context=context
        )
    except Exception as e:
        logger.error(f"Unexpected error delivering widget reply for {issue_key}: {e}")
        return error_response(500, "Internal server error")

    response = {
        "success": True,
        "message": "Message sent to Jira",
        "aiResponse": result.response,
        "threadId": result.thread_id,
        "assistantName": result.assistant_name,
        "commentPosted": comment_posted,
    }
    response.update({key: value for key, value in delivery.items() if key != "commentPosted"})
    response["aiCommentPosted"] = delivery["commentPosted"]
    return response
