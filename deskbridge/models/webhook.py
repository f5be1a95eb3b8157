"""
Outbound webhook models.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from datetime import datetime

from .base import Base


class WebhookConfig(Base):
    """Primary forwarding target for a user and/or service (NULL matches any)."""

    __tablename__ = "webhook_configs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    service_id = Column(String, nullable=True, index=True)
    url = Column(String, nullable=False)
    is_enabled = Column(Boolean, default=True)
    filter_enabled = Column(Boolean, default=False)
    filter_condition = Column(String, default="response_value")
    filter_value = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<WebhookConfig(user_id='{self.user_id}', service_id='{self.service_id}', url='{self.url}')>"


class SavedWebhook(Base):
    """Additional named forwarding target."""

    __tablename__ = "saved_webhooks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    service_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_enabled = Column(Boolean, default=True)
    filter_enabled = Column(Boolean, default=False)
    filter_condition = Column(String, default="response_value")
    filter_value = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<SavedWebhook(name='{self.name}', url='{self.url}')>"
