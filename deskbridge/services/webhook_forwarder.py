"""
Forwarding of processed conversation turns to user-configured webhooks.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, List, Optional
import logging

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import WebhookForwardConfig
from ..models.webhook import WebhookConfig, SavedWebhook

logger = logging.getLogger(__name__)


@dataclass
class WebhookTarget:
    name: str
    url: str
    is_enabled: bool = True
    filter_enabled: bool = False
    filter_condition: Optional[str] = "response_value"
    filter_value: Optional[str] = None


def extract_response_value(response: Optional[str]) -> Optional[str]:
    """The `value` field of a JSON AI response, or None."""
    if not response:
        return None
    try:
        data = json.loads(response)
    except (TypeError, ValueError):
        return None
    if isinstance(data, dict) and "value" in data:
        return str(data["value"])
    return None


def should_forward(target: WebhookTarget, response: Optional[str]) -> bool:
    """Apply the target's enable flag and value filter to an AI response."""
    if not target.is_enabled:
        return False
    if not target.filter_enabled:
        return True

    condition = (target.filter_condition or "response_value").lower()
    expected = target.filter_value

    if condition == "contains":
        return bool(expected) and expected in (response or "")

    value = extract_response_value(response)
    if condition == "not_equals":
        return value != expected
    # 'response_value' and 'equals'
    return value is not None and value == expected


def build_payload(
    issue_key: Optional[str],
    message: str,
    author: Optional[str],
    source: str,
    thread_id: Optional[str] = None,
    assistant_id: Optional[str] = None,
    assistant_name: Optional[str] = None,
    response: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "issueKey": issue_key,
        "message": message,
        "author": author,
        "timestamp": datetime.utcnow().isoformat(),
        "source": source,
        "threadId": thread_id,
    }
    optional = {
        "assistantId": assistant_id,
        "assistantName": assistant_name,
        "response": response,
        "context": context,
    }
    payload.update({key: value for key, value in optional.items() if value is not None})
    return payload


class WebhookForwarder:
    """Send conversation turns to the webhooks configured for a user and service."""

    def __init__(self, config: WebhookForwardConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def get_targets(self, db: Session, user_id: Optional[str], service_id: Optional[str]) -> List[WebhookTarget]:
        """Best-matching WebhookConfig plus every matching enabled SavedWebhook."""
        targets: List[WebhookTarget] = []

        candidates = []
        for pair in ((user_id, service_id), (user_id, None), (None, service_id), (None, None)):
            if pair not in candidates:
                candidates.append(pair)

        for candidate_user, candidate_service in candidates:
            config = self._find_config(db, candidate_user, candidate_service)
            if config is not None:
                targets.append(WebhookTarget(
                    name="primary",
                    url=config.url,
                    is_enabled=bool(config.is_enabled),
                    filter_enabled=bool(config.filter_enabled),
                    filter_condition=config.filter_condition,
                    filter_value=config.filter_value
                ))
                break

        query = db.query(SavedWebhook).filter(SavedWebhook.is_enabled.is_(True))
        query = query.filter(SavedWebhook.user_id == user_id) if user_id else query.filter(SavedWebhook.user_id.is_(None))
        query = query.filter(or_(SavedWebhook.service_id.is_(None), SavedWebhook.service_id == service_id))
        for saved in query.order_by(SavedWebhook.id).all():
            targets.append(WebhookTarget(
                name=saved.name,
                url=saved.url,
                is_enabled=True,
                filter_enabled=bool(saved.filter_enabled),
                filter_condition=saved.filter_condition,
                filter_value=saved.filter_value
            ))

        return targets

    @staticmethod
    def _find_config(db: Session, user_id: Optional[str], service_id: Optional[str]) -> Optional[WebhookConfig]:
        query = db.query(WebhookConfig)
        query = query.filter(WebhookConfig.user_id == user_id) if user_id else query.filter(WebhookConfig.user_id.is_(None))
        query = query.filter(WebhookConfig.service_id == service_id) if service_id else query.filter(WebhookConfig.service_id.is_(None))
        return query.first()

    async def forward(
        self,
        db: Session,
        user_id: Optional[str],
        service_id: Optional[str],
        payload: Dict[str, Any]
    ) -> int:
        """Deliver payload to every target whose filter passes. Returns the number of deliveries."""
        targets = self.get_targets(db, user_id, service_id)
        if not targets:
            return 0

        delivered = 0
        response_text = payload.get("response")
        async with httpx.AsyncClient(
            timeout=self.config.timeout,
            transport=self.transport,
            headers={"User-Agent": self.config.user_agent, "Content-Type": "application/json"}
        ) as client:
            for target in targets:
                if not should_forward(target, response_text):
                    logger.debug(f"Webhook '{target.name}' filtered out for service {service_id}")
                    continue
                try:
                    result = await client.post(target.url, json=payload)
                    result.raise_for_status()
                    delivered += 1
                    logger.info(f"Forwarded turn to webhook '{target.name}' ({result.status_code})")
                except (httpx.HTTPError, httpx.InvalidURL) as e:
                    logger.error(f"Webhook '{target.name}' delivery to {target.url} failed: {e}")

        return delivered
