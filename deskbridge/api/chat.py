"""
Direct chat endpoints.
"""

from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from ..database import get_session
from ..exceptions import ProviderUnavailable, ServiceNotConfigured
from .common import build_engine, error_response, get_app_config, read_json_body

logger = logging.getLogger(__name__)

chat_router = APIRouter()


@chat_router.post("/direct")
async def direct_chat(request: Request, db: Session = Depends(get_session)):
    """Chat with the default direct-chat service."""
    data = await read_json_body(request)
    config = get_app_config(request)
    return await _process_chat(request, db, data, config.chat.direct_service_id)


@chat_router.post("/services/{service_id}")
async def service_chat(service_id: str, request: Request, db: Session = Depends(get_session)):
    """Chat with an explicit service, optionally for a specific user."""
    data = await read_json_body(request)
    return await _process_chat(request, db, data, service_id)


async def _process_chat(request: Request, db: Session, data: Dict[str, Any], service_id: str):
    message: Optional[str] = data.get("message")
    if not isinstance(message, str) or not message.strip():
        return error_response(400, "Message is required")

    context = data.get("context") or {}
    if not isinstance(context, dict):
        return error_response(400, "Context must be an object")

    engine = build_engine(request, db)
    try:
        result = await engine.process_chat_for_service(
            message,
            service_id,
            thread_id=data.get("threadId"),
            context=context,
            user_id=data.get("userId")
        )
    except ServiceNotConfigured as e:
        logger.warning(f"Chat for unconfigured service: {e}")
        return error_response(404, str(e))
    except ProviderUnavailable as e:
        logger.error(f"Chat failed for service {service_id}: {e}")
        return error_response(503, "AI provider unavailable")
    except Exception as e:
        logger.error(f"Unexpected error in chat for service {service_id}: {e}")
        return error_response(500, "Internal server error")

    return result.to_dict()
