"""
WhatsApp Cloud API webhook endpoints.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
import logging

from ..database import get_session
from ..services.phone_mapper import PhoneTicketMapper
from ..services.service_registry import ServiceRegistry
from ..services.whatsapp_intake import WhatsAppConversationHandler
from .common import build_dispatcher, build_engine, get_app_config, read_json_body

logger = logging.getLogger(__name__)

whatsapp_router = APIRouter()


@whatsapp_router.get("/webhook")
async def verify_whatsapp_webhook(request: Request):
    """Subscription handshake."""
    params = request.query_params
    whatsapp = request.app.state.whatsapp

    if whatsapp.verify_request(params.get("hub.mode"), params.get("hub.verify_token")):
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(params.get("hub.challenge", ""))

    logger.warning("WhatsApp webhook verification failed")
    return PlainTextResponse("Forbidden", status_code=403)


@whatsapp_router.post("/webhook")
async def handle_whatsapp_webhook(request: Request, db: Session = Depends(get_session)):
    """Handle inbound messages. Always acknowledged so Meta does not retry."""
    payload = await read_json_body(request)
    whatsapp = request.app.state.whatsapp

    messages = whatsapp.parse_messages(payload)
    if not messages:
        return PlainTextResponse("ok")

    handler = WhatsAppConversationHandler(
        config=get_app_config(request),
        state=request.app.state.webhook_state,
        seen_messages=request.app.state.whatsapp_seen,
        engine=build_engine(request, db),
        registry=ServiceRegistry(db),
        mapper=PhoneTicketMapper(db),
        dispatcher=build_dispatcher(request, db),
        whatsapp=whatsapp
    )

    for message in messages:
        try:
            outcome = await handler.handle(message)
            logger.info(f"WhatsApp message {message.message_id} from {message.phone}: {outcome.get('status')}")
        except Exception as e:
            logger.error(f"Error processing WhatsApp message {message.message_id}: {e}")

    return PlainTextResponse("ok")
