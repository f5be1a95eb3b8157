"""
Jira comment intake: event filtering, duplicate detection, AI loop prevention
and per-issue throttling in front of the assistant engine.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Iterable, Optional, Tuple
import logging

from ..config import Config
from ..exceptions import ProviderUnavailable, ServiceNotConfigured
from .assistant import AssistantEngine
from .dispatcher import ReplyDispatcher, ticket_thread_id
from .jira import extract_text_from_adf
from .phone_mapper import PhoneTicketMapper
from .service_registry import ServiceRegistry
from .state import JiraWebhookState

logger = logging.getLogger(__name__)

EVENT_COMMENT_CREATED = "comment_created"

# substring match: "ai" also hits addresses such as gmail.com, which are then treated as AI authors
AI_IDENTITY_MARKERS = ("ai", "assistant", "bot", "movonte", "automation", "noreply")

AI_SIGNATURE_PHRASES = (
    "ai response",
    "asistente",
    "automático",
    "soy un asistente",
    "puedo ayudarte",
    "gracias por contactar",
    "respuesta automática",
    "how can i assist you",
    "estoy aquí para ayudarte",
    "chat widget connected",
)


class IntakeOutcome(str, Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    SKIPPED_AI = "skipped_ai"
    SKIPPED_WIDGET = "skipped_widget"
    THROTTLED = "throttled"
    DISABLED = "disabled"
    PROCESSED = "processed"
    NOT_ANSWERED = "not_answered"


@dataclass(frozen=True)
class CommentAuthor:
    """The fields of a comment that authorship detection looks at."""
    display_name: str = ""
    email: str = ""
    account_id: str = ""
    body: str = ""


@dataclass(frozen=True)
class CommentClassification:
    is_ai: bool
    reason: Optional[str] = None


@dataclass
class IntakeResult:
    outcome: IntakeOutcome
    body: Dict[str, Any]


def classify_comment(
    comment: CommentAuthor,
    bot_account_ids: Iterable[str] = (),
    ai_emails: Iterable[str] = ()
) -> CommentClassification:
    """Decide whether a comment was written by an assistant or automation."""
    name = (comment.display_name or "").lower()
    email = (comment.email or "").lower()

    for marker in AI_IDENTITY_MARKERS:
        if marker in name:
            return CommentClassification(True, f"display name contains '{marker}'")
        if marker in email:
            return CommentClassification(True, f"email contains '{marker}'")

    if email and email in {address.lower() for address in ai_emails if address}:
        return CommentClassification(True, "author is the AI identity")

    if comment.account_id and comment.account_id in set(bot_account_ids):
        return CommentClassification(True, "known bot account")

    body = (comment.body or "").lower()
    for phrase in AI_SIGNATURE_PHRASES:
        if phrase in body:
            return CommentClassification(True, f"body contains '{phrase}'")

    return CommentClassification(False)


def comment_key(issue_key: str, comment_id: Any, created: Any) -> str:
    return f"{issue_key}_{comment_id}_{created}"


def parse_jira_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Jira's '2024-01-01T10:00:00.000+0000' style timestamps."""
    if not value:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class JiraCommentIntake:
    """Turns Jira comment webhooks into at most one AI reply per human comment."""

    def __init__(
        self,
        state: JiraWebhookState,
        config: Config,
        engine: AssistantEngine,
        registry: ServiceRegistry,
        mapper: PhoneTicketMapper,
        dispatcher: ReplyDispatcher
    ):
        self.state = state
        self.config = config
        self.engine = engine
        self.registry = registry
        self.mapper = mapper
        self.dispatcher = dispatcher

    async def handle(self, payload: Dict[str, Any]) -> IntakeResult:
        stats = self.state.stats
        stats.total_received += 1

        event = payload.get("webhookEvent")
        issue = payload.get("issue") or {}
        issue_key = issue.get("key")
        comment = payload.get("comment") or {}

        if event != EVENT_COMMENT_CREATED:
            logger.debug(f"Ignoring Jira event {event} for {issue_key}")
            return IntakeResult(IntakeOutcome.IGNORED, {
                "success": True,
                "message": "Event processed but no action taken",
                "event": event,
            })

        if not issue_key or not comment:
            return IntakeResult(IntakeOutcome.IGNORED, {
                "success": True,
                "message": "Missing issue or comment in payload",
                "event": event,
            })

        active_project = self.config.jira.active_project
        if active_project and issue_key.split("-")[0] != active_project:
            logger.info(f"Ignoring {issue_key}: not in active project {active_project}")
            return IntakeResult(IntakeOutcome.IGNORED, {
                "success": True,
                "message": "Issue does not belong to the active project",
                "reason": "wrong_project",
            })

        key = comment_key(issue_key, comment.get("id"), comment.get("created"))
        if not self.state.processed_comments.add(key):
            stats.duplicates_skipped += 1
            logger.info(f"Duplicate comment {key} skipped")
            return IntakeResult(IntakeOutcome.DUPLICATE, {
                "success": True,
                "message": "Comment already processed",
                "duplicate": True,
            })

        author = comment.get("author") or {}
        body_text = extract_text_from_adf(comment.get("body")).strip()
        candidate = CommentAuthor(
            display_name=author.get("displayName") or "",
            email=author.get("emailAddress") or "",
            account_id=author.get("accountId") or "",
            body=body_text
        )

        widget_email = (self.config.jira.widget_email or "").lower()
        if widget_email and candidate.email.lower() == widget_email:
            logger.debug(f"Comment {key} written by the widget identity, already answered")
            return IntakeResult(IntakeOutcome.SKIPPED_WIDGET, {
                "success": True,
                "message": "Skipped widget comment",
                "widgetComment": True,
            })

        classification = classify_comment(
            candidate,
            bot_account_ids=self.config.jira.bot_account_ids,
            ai_emails=[self.config.jira.email] if self.config.jira.email else []
        )
        if classification.is_ai:
            stats.ai_comments_skipped += 1
            logger.info(f"Skipping AI comment on {issue_key}: {classification.reason}")
            return IntakeResult(IntakeOutcome.SKIPPED_AI, {
                "success": True,
                "message": "Skipped AI comment",
                "aiComment": True,
                "reason": classification.reason,
            })

        created = parse_jira_timestamp(comment.get("created"))
        if created is not None:
            age = self.state.clock() - created.timestamp()
            if age < self.config.intake.recency_warning_seconds:
                logger.warning(f"Comment on {issue_key} is only {age:.1f}s old; possible reply loop")

        allowed, remaining = self.state.throttle.try_acquire(issue_key)
        if not allowed:
            stats.throttled_requests += 1
            logger.info(f"Throttled {issue_key}: {remaining}s left in window")
            return IntakeResult(IntakeOutcome.THROTTLED, {
                "success": True,
                "message": f"Throttled - wait {remaining}s",
                "throttled": True,
                "remainingTime": remaining,
            })

        service_id, user_id, whatsapp_to = self._resolve_service(issue_key)

        disabled = self.registry.get_disabled_ticket(issue_key, user_id)
        if disabled is not None:
            logger.info(f"AI assistant disabled for {issue_key}: {disabled.reason}")
            return IntakeResult(IntakeOutcome.DISABLED, {
                "success": True,
                "message": "AI Assistant disabled for this ticket",
                "disabled": True,
                "reason": disabled.reason,
            })

        fields = issue.get("fields") or {}
        status = fields.get("status")
        context = {
            "jiraIssueKey": issue_key,
            "issueSummary": fields.get("summary"),
            "issueStatus": status.get("name") if isinstance(status, dict) else status,
            "authorName": candidate.display_name,
            "isJiraComment": True,
            "conversationType": "jira-ticket",
        }
        message = f"From {candidate.display_name} on Jira issue {issue_key}: {body_text}"
        self.state.conversations.append(issue_key, "user", candidate.display_name, body_text)

        try:
            result = await self.engine.process_chat_for_service(
                message, service_id, ticket_thread_id(issue_key), context, user_id
            )
        except ServiceNotConfigured as e:
            stats.errors += 1
            logger.error(f"Cannot answer {issue_key}: {e}")
            return self._not_answered("service_not_configured", str(e))
        except ProviderUnavailable as e:
            stats.errors += 1
            logger.error(f"AI provider unavailable for {issue_key}: {e}")
            return self._not_answered("provider_unavailable", str(e))

        if not result.response.strip():
            return self._not_answered("empty_response", "Assistant returned an empty response")

        self.state.conversations.append(issue_key, "assistant", result.assistant_name or "AI Assistant", result.response)
        delivery = await self.dispatcher.deliver(
            issue_key,
            result,
            inbound_message=body_text,
            author=candidate.display_name,
            source="jira",
            user_id=user_id,
            whatsapp_to=whatsapp_to,
            context=context
        )

        stats.successful_responses += 1
        logger.info(f"AI response #{stats.successful_responses} sent for {issue_key}")

        body = result.to_dict()
        body.update({"aiResponse": True, "responseCount": stats.successful_responses})
        body.update(delivery)
        return IntakeResult(IntakeOutcome.PROCESSED, body)

    def _resolve_service(self, issue_key: str) -> Tuple[str, Optional[str], Optional[str]]:
        """Service id, owning user and WhatsApp phone (if any) for an issue."""
        mapping = self.mapper.find_by_issue(issue_key)
        if mapping is not None:
            return mapping.service_id, mapping.user_id, mapping.phone

        service = self.registry.find_service_by_project(issue_key.split("-")[0])
        if service is not None:
            return service.service_id, service.user_id, None

        return self.config.jira.default_service_id, None, None

    @staticmethod
    def _not_answered(reason: str, error: str) -> IntakeResult:
        return IntakeResult(IntakeOutcome.NOT_ANSWERED, {
            "success": True,
            "aiResponse": False,
            "reason": reason,
            "error": error,
        })
