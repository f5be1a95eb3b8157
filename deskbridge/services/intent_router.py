"""
Keyword-based routing of new conversations to a service.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional
import logging
import re

from .service_registry import ServiceRegistry

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


@dataclass
class RoutableService:
    """A service candidate for routing, with normalized keywords."""
    service_id: str
    service_name: str
    keywords: List[str] = field(default_factory=list)


@dataclass
class RouteDecision:
    service_id: Optional[str]
    source: str  # 'selection', 'keyword' or 'default'


def parse_keywords(raw: Any) -> List[str]:
    """Keywords from a list or a comma separated string, lowercased, trimmed, empties dropped."""
    if raw is None:
        return []
    if isinstance(raw, str):
        items: Iterable[Any] = raw.split(",")
    else:
        items = raw
    return [str(item).strip().lower() for item in items if str(item).strip()]


def normalize_message(text: Optional[str]) -> str:
    """Trim, lowercase and collapse whitespace."""
    return _WHITESPACE.sub(" ", (text or "").strip().lower())


def load_routable_services(registry: ServiceRegistry, user_id: Optional[str] = None) -> List[RoutableService]:
    """Active services of a user, in stable name order."""
    return [
        RoutableService(
            service_id=service.service_id,
            service_name=service.service_name,
            keywords=parse_keywords(service.keywords)
        )
        for service in registry.list_active_services(user_id)
    ]


def route_to_service(
    services: List[RoutableService],
    message: Optional[str],
    default_service_id: Optional[str] = None
) -> RouteDecision:
    """
    Pick the service for a new conversation.

    The first service (in the given order) with a keyword equal to a word of the
    message, or contained in the whole normalized message, wins. Otherwise the
    default service is used when it is active, else the first active service.
    """
    phrase = normalize_message(message)

    if phrase:
        words = set(phrase.split(" "))
        for service in services:
            for keyword in service.keywords:
                if keyword in words or keyword in phrase:
                    logger.debug(f"Routed to {service.service_id} by keyword '{keyword}'")
                    return RouteDecision(service_id=service.service_id, source="keyword")

    return RouteDecision(service_id=_fallback_service_id(services, default_service_id), source="default")


def _fallback_service_id(services: List[RoutableService], default_service_id: Optional[str]) -> Optional[str]:
    if default_service_id and any(service.service_id == default_service_id for service in services):
        return default_service_id
    if services:
        return services[0].service_id
    return default_service_id


def parse_service_selection(
    services: List[RoutableService],
    reply: Optional[str],
    allow_keywords: bool = True
) -> Optional[RoutableService]:
    """Resolve a reply to a presented service list: 1-based number, name or id, or keyword."""
    text = normalize_message(reply)
    if not text:
        return None

    if text.isdigit():
        index = int(text)
        if 1 <= index <= len(services):
            return services[index - 1]
        return None

    for service in services:
        if text == normalize_message(service.service_name) or text == service.service_id.lower():
            return service

    if allow_keywords:
        for service in services:
            if text in service.keywords:
                return service

    return None


def build_service_list_message(services: List[RoutableService]) -> str:
    """Numbered menu of services for a chat channel."""
    lines = ["Please choose a service by replying with its number or name:", ""]
    for index, service in enumerate(services, start=1):
        lines.append(f"{index}. {service.service_name}")
    return "\n".join(lines)
