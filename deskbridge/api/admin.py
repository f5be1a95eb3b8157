"""
Operator API endpoints.
"""

from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session
import httpx
import logging
import secrets

from ..config import get_config
from ..database import get_session
from ..models.webhook import WebhookConfig
from ..services.conversation_store import ConversationStore
from ..services.service_registry import ServiceRegistry

logger = logging.getLogger(__name__)

admin_router = APIRouter()
security = HTTPBasic()


def verify_admin_credentials(credentials: HTTPBasicCredentials) -> bool:
    """Verify admin credentials."""
    config = get_config()

    if not config.admin.enabled:
        return False

    if not config.admin.username or not config.admin.password:
        return False

    return (
        secrets.compare_digest(credentials.username, config.admin.username) and
        secrets.compare_digest(credentials.password, config.admin.password)
    )


def require_admin(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    if not verify_admin_credentials(credentials):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return credentials.username


@admin_router.get("/webhook-stats")
async def get_webhook_stats(request: Request, admin: str = Depends(require_admin)):
    """Jira webhook counters since the last reset."""
    stats = request.app.state.webhook_state.stats
    return {"success": True, "stats": stats.to_dict()}


@admin_router.post("/webhook-stats/reset")
async def reset_webhook_stats(request: Request, admin: str = Depends(require_admin)):
    """Reset Jira webhook counters."""
    stats = request.app.state.webhook_state.stats
    stats.reset()
    logger.info(f"Webhook stats reset by {admin}")
    return {"success": True, "stats": stats.to_dict()}


@admin_router.put("/services/{service_id}")
async def upsert_service(
    service_id: str,
    service_data: Dict[str, Any],
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """Create or replace a service configuration (per user when userId is given)."""
    if not service_data.get("serviceName"):
        raise HTTPException(status_code=400, detail="serviceName is required")

    registry = ServiceRegistry(db)
    service = registry.upsert_service(
        service_id=service_id,
        service_name=service_data["serviceName"],
        assistant_id=service_data.get("assistantId"),
        assistant_name=service_data.get("assistantName"),
        project_key=service_data.get("projectKey"),
        keywords=service_data.get("keywords") or [],
        is_active=bool(service_data.get("isActive", True)),
        user_id=service_data.get("userId"),
        jira_email=service_data.get("jiraEmail"),
        jira_api_token=service_data.get("jiraApiToken")
    )
    return {
        "success": True,
        "service": {
            "serviceId": service.service_id,
            "serviceName": service.service_name,
            "assistantId": service.assistant_id,
            "assistantName": service.assistant_name,
            "projectKey": service.project_key,
            "keywords": service.keywords,
            "isActive": service.is_active,
            "userId": service.user_id,
        }
    }


@admin_router.post("/tickets/{issue_key}/disable")
async def disable_ticket(
    issue_key: str,
    request: Request,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """Switch off AI replies for a ticket."""
    try:
        data = await request.json()
    except ValueError:
        data = {}
    data = data if isinstance(data, dict) else {}

    ticket = ServiceRegistry(db).disable_ticket(
        issue_key,
        reason=data.get("reason"),
        disabled_by=data.get("disabledBy") or admin,
        user_id=data.get("userId")
    )
    return {
        "success": True,
        "issueKey": ticket.issue_key,
        "reason": ticket.reason,
        "disabledBy": ticket.disabled_by,
        "disabledAt": ticket.disabled_at.isoformat(),
    }


@admin_router.delete("/tickets/{issue_key}/disable")
async def enable_ticket(
    issue_key: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """Switch AI replies for a ticket back on."""
    if not ServiceRegistry(db).enable_ticket(issue_key, user_id):
        raise HTTPException(status_code=404, detail=f"Ticket {issue_key} is not disabled")
    return {"success": True, "issueKey": issue_key}


@admin_router.get("/threads/stats")
async def get_thread_stats(admin: str = Depends(require_admin), db: Session = Depends(get_session)):
    return {"success": True, "stats": ConversationStore(db).get_stats()}


@admin_router.post("/threads/cleanup")
async def cleanup_threads(
    request: Request,
    days: Optional[int] = Query(None, ge=1),
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """Delete threads without activity for `days` days (default from configuration)."""
    retention_days = days or request.app.state.config.retention.thread_days
    deleted = ConversationStore(db).cleanup_old_threads(retention_days)
    return {"success": True, "deleted": deleted, "days": retention_days}


def is_valid_webhook_url(url: Any) -> bool:
    if not isinstance(url, str):
        return False
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


@admin_router.put("/webhooks")
async def upsert_webhook_config(
    webhook_data: Dict[str, Any],
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """Create or replace the forwarding webhook of a user/service pair."""
    if not webhook_data.get("url"):
        raise HTTPException(status_code=400, detail="url is required")
    if not is_valid_webhook_url(webhook_data["url"]):
        raise HTTPException(status_code=400, detail="url must be an absolute http(s) URL")

    user_id = webhook_data.get("userId")
    service_id = webhook_data.get("serviceId")

    query = db.query(WebhookConfig)
    query = query.filter(WebhookConfig.user_id == user_id) if user_id else query.filter(WebhookConfig.user_id.is_(None))
    query = query.filter(WebhookConfig.service_id == service_id) if service_id else query.filter(WebhookConfig.service_id.is_(None))
    webhook = query.first()
    if webhook is None:
        webhook = WebhookConfig(user_id=user_id, service_id=service_id)
        db.add(webhook)

    webhook.url = webhook_data["url"]
    webhook.is_enabled = bool(webhook_data.get("isEnabled", True))
    webhook.filter_enabled = bool(webhook_data.get("filterEnabled", False))
    webhook.filter_condition = webhook_data.get("filterCondition") or "response_value"
    webhook.filter_value = webhook_data.get("filterValue")
    db.commit()

    logger.info(f"Webhook config saved for user={user_id} service={service_id} by {admin}")
    return {"success": True, "id": webhook.id}
