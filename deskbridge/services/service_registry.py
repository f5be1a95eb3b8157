"""
Service registry: which assistant handles which service, globally or per user.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import ServiceSeedConfig
from ..exceptions import ServiceNotConfigured
from ..models.service_configuration import ServiceConfiguration, DisabledTicket

logger = logging.getLogger(__name__)


@dataclass
class AssistantBinding:
    """A usable service resolved to its assistant."""
    service_id: str
    service_name: str
    assistant_id: str
    assistant_name: Optional[str] = None
    project_key: Optional[str] = None
    user_id: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    jira_email: Optional[str] = None
    jira_api_token: Optional[str] = None


class ServiceRegistry:
    """Lookup and maintenance of service configurations and disabled tickets."""

    def __init__(self, db: Session):
        self.db = db

    def get_service(self, service_id: str, user_id: Optional[str] = None) -> Optional[ServiceConfiguration]:
        """Per-user configuration if present, else the global one."""
        if user_id:
            service = self.db.query(ServiceConfiguration).filter(
                ServiceConfiguration.user_id == user_id,
                ServiceConfiguration.service_id == service_id
            ).first()
            if service is not None:
                return service

        return self.db.query(ServiceConfiguration).filter(
            ServiceConfiguration.user_id.is_(None),
            ServiceConfiguration.service_id == service_id
        ).first()

    def get_active_assistant(self, service_id: str, user_id: Optional[str] = None) -> AssistantBinding:
        """Resolve a service to its assistant, raising ServiceNotConfigured when unusable."""
        service = self.get_service(service_id, user_id)

        if service is None:
            raise ServiceNotConfigured(service_id, "service not found")
        if not service.is_active:
            raise ServiceNotConfigured(service_id, "service is inactive")
        if not service.assistant_id:
            raise ServiceNotConfigured(service_id, "no assistant assigned")

        return AssistantBinding(
            service_id=service.service_id,
            service_name=service.service_name,
            assistant_id=service.assistant_id,
            assistant_name=service.assistant_name,
            project_key=service.project_key,
            user_id=service.user_id,
            keywords=list(service.keywords or []),
            jira_email=service.jira_email,
            jira_api_token=service.jira_api_token
        )

    def list_active_services(self, user_id: Optional[str] = None) -> List[ServiceConfiguration]:
        """Active services visible to a user, ordered by service name."""
        own: List[ServiceConfiguration] = []
        if user_id:
            own = self.db.query(ServiceConfiguration).filter(ServiceConfiguration.user_id == user_id).all()
        shadowed = {service.service_id for service in own}

        global_services = self.db.query(ServiceConfiguration).filter(
            ServiceConfiguration.user_id.is_(None)
        ).all()

        services = [service for service in own if service.is_active]
        services.extend(
            service for service in global_services
            if service.is_active and service.service_id not in shadowed
        )
        return sorted(services, key=lambda service: (service.service_name or "").lower())

    def find_service_by_project(self, project_key: str) -> Optional[ServiceConfiguration]:
        """First active service bound to a Jira project key."""
        return self.db.query(ServiceConfiguration).filter(
            ServiceConfiguration.project_key == project_key,
            ServiceConfiguration.is_active.is_(True)
        ).order_by(ServiceConfiguration.service_name).first()

    def upsert_service(
        self,
        service_id: str,
        service_name: str,
        assistant_id: Optional[str] = None,
        assistant_name: Optional[str] = None,
        project_key: Optional[str] = None,
        keywords: Optional[List[str]] = None,
        is_active: bool = True,
        user_id: Optional[str] = None,
        jira_email: Optional[str] = None,
        jira_api_token: Optional[str] = None
    ) -> ServiceConfiguration:
        """Create or replace a service configuration."""
        query = self.db.query(ServiceConfiguration).filter(ServiceConfiguration.service_id == service_id)
        if user_id:
            query = query.filter(ServiceConfiguration.user_id == user_id)
        else:
            query = query.filter(ServiceConfiguration.user_id.is_(None))
        service = query.first()

        if service is None:
            service = ServiceConfiguration(service_id=service_id, user_id=user_id)
            self.db.add(service)

        service.service_name = service_name
        service.assistant_id = assistant_id
        service.assistant_name = assistant_name
        service.project_key = project_key
        service.keywords = list(keywords or [])
        service.is_active = is_active
        service.jira_email = jira_email
        service.jira_api_token = jira_api_token
        service.last_updated = datetime.utcnow()

        self.db.commit()
        self.db.refresh(service)
        logger.info(f"Saved service configuration {service_id} (user={user_id}, active={is_active})")
        return service

    def seed_services(self, seeds: List[ServiceSeedConfig]) -> None:
        """Upsert services declared in the configuration file into the global registry."""
        for seed in seeds:
            self.upsert_service(
                service_id=seed.service_id,
                service_name=seed.service_name,
                assistant_id=seed.assistant_id,
                assistant_name=seed.assistant_name,
                project_key=seed.project_key,
                keywords=seed.keywords,
                is_active=seed.is_active
            )

    def get_disabled_ticket(self, issue_key: str, user_id: Optional[str] = None) -> Optional[DisabledTicket]:
        """Global or user-specific disable record for an issue."""
        query = self.db.query(DisabledTicket).filter(DisabledTicket.issue_key == issue_key)
        if user_id:
            query = query.filter(or_(DisabledTicket.user_id.is_(None), DisabledTicket.user_id == user_id))
        else:
            query = query.filter(DisabledTicket.user_id.is_(None))
        return query.first()

    def disable_ticket(
        self,
        issue_key: str,
        reason: Optional[str] = None,
        disabled_by: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> DisabledTicket:
        """Switch off AI processing for an issue."""
        query = self.db.query(DisabledTicket).filter(DisabledTicket.issue_key == issue_key)
        if user_id:
            query = query.filter(DisabledTicket.user_id == user_id)
        else:
            query = query.filter(DisabledTicket.user_id.is_(None))
        ticket = query.first()

        if ticket is None:
            ticket = DisabledTicket(issue_key=issue_key, user_id=user_id)
            self.db.add(ticket)

        ticket.reason = reason
        ticket.disabled_by = disabled_by
        ticket.disabled_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(ticket)
        logger.info(f"AI assistant disabled for {issue_key} (user={user_id}, by={disabled_by})")
        return ticket

    def enable_ticket(self, issue_key: str, user_id: Optional[str] = None) -> bool:
        """Remove the disable record. Returns False if there was none."""
        query = self.db.query(DisabledTicket).filter(DisabledTicket.issue_key == issue_key)
        if user_id:
            query = query.filter(DisabledTicket.user_id == user_id)
        else:
            query = query.filter(DisabledTicket.user_id.is_(None))

        deleted = query.delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            logger.info(f"AI assistant re-enabled for {issue_key} (user={user_id})")
        return bool(deleted)
