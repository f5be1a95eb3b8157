"""
Phone-to-ticket mapping for the WhatsApp channel.
"""

from datetime import datetime
from typing import Optional
import logging
import re

from sqlalchemy.orm import Session

from ..models.whatsapp_mapping import WhatsAppMapping

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """Canonical '+digits' form of a phone number; input returned unchanged if it has no digits."""
    if phone is None:
        return phone
    digits = _NON_DIGITS.sub("", phone)
    return f"+{digits}" if digits else phone


class PhoneTicketMapper:
    """Durable association between a phone number and its ticket, service and owner."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, phone: str) -> Optional[WhatsAppMapping]:
        return self.db.query(WhatsAppMapping).filter(WhatsAppMapping.phone == normalize_phone(phone)).first()

    def set(
        self,
        phone: str,
        issue_key: str,
        service_id: str,
        user_id: Optional[str],
        contact_name: Optional[str] = None
    ) -> WhatsAppMapping:
        """Upsert the mapping for phone. Last write wins."""
        normalized = normalize_phone(phone)
        now = datetime.utcnow()
        mapping = self.db.query(WhatsAppMapping).filter(WhatsAppMapping.phone == normalized).first()

        if mapping is None:
            mapping = WhatsAppMapping(phone=normalized, created_at=now)
            self.db.add(mapping)

        mapping.issue_key = issue_key
        mapping.service_id = service_id
        mapping.user_id = user_id
        mapping.contact_name = contact_name
        mapping.updated_at = now

        self.db.commit()
        self.db.refresh(mapping)
        logger.info(f"WhatsApp mapping {normalized} -> {issue_key} (service={service_id})")
        return mapping

    def find_by_issue(self, issue_key: str) -> Optional[WhatsAppMapping]:
        """Most recently updated mapping pointing at an issue."""
        return self.db.query(WhatsAppMapping).filter(
            WhatsAppMapping.issue_key == issue_key
        ).order_by(WhatsAppMapping.updated_at.desc()).first()

    def delete(self, phone: str) -> bool:
        deleted = self.db.query(WhatsAppMapping).filter(
            WhatsAppMapping.phone == normalize_phone(phone)
        ).delete(synchronize_session=False)
        self.db.commit()
        return bool(deleted)
