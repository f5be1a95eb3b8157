"""
WhatsApp phone to ticket mapping model.
"""

from sqlalchemy import Column, String, DateTime
from datetime import datetime

from .base import Base


class WhatsAppMapping(Base):
    """Ticket, service and owner of a WhatsApp conversation."""

    __tablename__ = "whatsapp_mappings"

    phone = Column(String, primary_key=True)  # normalized, '+' followed by digits
    issue_key = Column(String, nullable=False, index=True)
    service_id = Column(String, nullable=False)
    user_id = Column(String, nullable=True)
    contact_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<WhatsAppMapping(phone='{self.phone}', issue_key='{self.issue_key}')>"
