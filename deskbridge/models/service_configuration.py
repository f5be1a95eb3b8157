"""
Service configuration and disabled ticket models.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, UniqueConstraint
from datetime import datetime

from .base import Base


class ServiceConfiguration(Base):
    """Assistant binding for a service, global (user_id NULL) or per user."""

    __tablename__ = "service_configurations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    service_id = Column(String, nullable=False, index=True)
    service_name = Column(String, nullable=False)
    assistant_id = Column(String, nullable=True)
    assistant_name = Column(String, nullable=True)
    project_key = Column(String, nullable=True)
    keywords = Column(JSON, nullable=True)  # list of routing keywords
    is_active = Column(Boolean, default=True)
    jira_email = Column(String, nullable=True)
    jira_api_token = Column(String, nullable=True)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'service_id', name='uq_service_configurations_user_service'),
    )

    def __repr__(self):
        return f"<ServiceConfiguration(service_id='{self.service_id}', user_id='{self.user_id}', active={self.is_active})>"


class DisabledTicket(Base):
    """Ticket for which AI processing is switched off."""

    __tablename__ = "disabled_tickets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    issue_key = Column(String, nullable=False, index=True)
    reason = Column(String, nullable=True)
    disabled_by = Column(String, nullable=True)
    disabled_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'issue_key', name='uq_disabled_tickets_user_issue'),
    )

    def __repr__(self):
        return f"<DisabledTicket(issue_key='{self.issue_key}', user_id='{self.user_id}')>"
