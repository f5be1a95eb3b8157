"""
Tests for the Jira comment intake pipeline.
"""

import logging
import pytest
from datetime import datetime, timezone

from deskbridge.config import WebhookForwardConfig
from deskbridge.services.assistant import AssistantEngine
from deskbridge.services.comment_intake import IntakeOutcome, JiraCommentIntake
from deskbridge.services.conversation_store import ConversationStore
from deskbridge.services.dispatcher import ReplyDispatcher
from deskbridge.services.phone_mapper import PhoneTicketMapper
from deskbridge.services.state import JiraWebhookState, TurnHistory
from deskbridge.services.webhook_forwarder import WebhookForwarder

CREATED = "2024-01-01T10:00:00.000+0000"
CREATED_TS = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc).timestamp()


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_payload(
    issue_key="SUP-1",
    comment_id="10001",
    text="The checkout page shows a blank screen.",
    display_name="John Smith",
    email="john.smith@customer.com",
    account_id="557058:human",
    created=CREATED,
    event="comment_created"
):
    return {
        "webhookEvent": event,
        "issue": {
            "key": issue_key,
            "fields": {"summary": "Checkout broken", "status": {"name": "Open"}},
        },
        "comment": {
            "id": comment_id,
            "created": created,
            "author": {"displayName": display_name, "emailAddress": email, "accountId": account_id},
            "body": {
                "type": "doc",
                "version": 1,
                "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
            },
        },
    }


@pytest.fixture
def clock():
    return FakeClock(CREATED_TS + 60)


@pytest.fixture
def intake_state(clock):
    return JiraWebhookState(clock=clock)


@pytest.fixture
def intake(test_config, test_session, seeded_registry, intake_state, fake_llm, fake_jira, fake_whatsapp):
    engine = AssistantEngine(
        registry=seeded_registry,
        store=ConversationStore(test_session),
        llm=fake_llm,
        history=TurnHistory(),
        config=test_config.openai
    )
    dispatcher = ReplyDispatcher(
        db=test_session,
        registry=seeded_registry,
        jira=fake_jira,
        forwarder=WebhookForwarder(WebhookForwardConfig()),
        whatsapp=fake_whatsapp
    )
    return JiraCommentIntake(
        state=intake_state,
        config=test_config,
        engine=engine,
        registry=seeded_registry,
        mapper=PhoneTicketMapper(test_session),
        dispatcher=dispatcher
    )


@pytest.mark.asyncio
async def test_human_comment_gets_ai_reply(intake, intake_state, fake_llm, fake_jira):
    """Test that a human comment is answered once and posted as the AI identity."""
    result = await intake.handle(make_payload())

    assert result.outcome == IntakeOutcome.PROCESSED
    assert result.body["aiResponse"] is True
    assert result.body["threadId"] == "ticket_SUP-1"
    assert result.body["serviceId"] == "support"
    assert result.body["commentPosted"] is True
    assert result.body["responseCount"] == 1

    assert len(fake_llm.runs) == 1
    assert fake_llm.runs[0][1] == "asst_support"
    assert fake_llm.added_messages[0][1] == (
        "From John Smith on Jira issue SUP-1: The checkout page shows a blank screen."
    )

    assert len(fake_jira.comments) == 1
    assert fake_jira.comments[0]["issue_key"] == "SUP-1"
    assert fake_jira.comments[0]["identity"] == "ai"
    assert fake_jira.comments[0]["text"] == fake_llm.reply

    assert intake_state.stats.total_received == 1
    assert intake_state.stats.successful_responses == 1


@pytest.mark.asyncio
async def test_duplicate_delivery_is_skipped(intake, intake_state, fake_llm, fake_jira):
    """Test that the same comment delivered twice yields exactly one reply."""
    first = await intake.handle(make_payload())
    second = await intake.handle(make_payload())

    assert first.outcome == IntakeOutcome.PROCESSED
    assert second.outcome == IntakeOutcome.DUPLICATE
    assert second.body["duplicate"] is True
    assert len(fake_llm.runs) == 1
    assert len(fake_jira.comments) == 1
    assert intake_state.stats.duplicates_skipped == 1


@pytest.mark.asyncio
async def test_ai_author_is_skipped(intake, intake_state, fake_llm):
    """Test that a comment by an assistant-named author is not answered."""
    result = await intake.handle(make_payload(display_name="Movonte Assistant Bot", email="helper@movonte.com"))

    assert result.outcome == IntakeOutcome.SKIPPED_AI
    assert result.body["aiComment"] is True
    assert fake_llm.runs == []
    assert intake_state.stats.ai_comments_skipped == 1


@pytest.mark.asyncio
async def test_ai_signature_body_is_skipped(intake, fake_llm):
    """Test that an AI greeting posted under a human-looking name is not answered."""
    result = await intake.handle(make_payload(
        text="¡Hola! Soy el asistente de Movonte. ¿En qué puedo ayudarte hoy?"
    ))

    assert result.outcome == IntakeOutcome.SKIPPED_AI
    assert fake_llm.runs == []


@pytest.mark.asyncio
async def test_own_ai_identity_is_skipped(intake, fake_llm):
    """Test that comments posted with the configured AI identity are not answered."""
    result = await intake.handle(make_payload(display_name="Helpdesk", email="helpdesk@example.com"))

    assert result.outcome == IntakeOutcome.SKIPPED_AI
    assert fake_llm.runs == []


@pytest.mark.asyncio
async def test_widget_identity_comment_is_skipped(intake, fake_llm):
    """Test that customer messages relayed by the widget identity are not answered twice."""
    result = await intake.handle(make_payload(
        display_name="Website Chat",
        email="widget@example.com",
        text="[Widget Chat] Jane: Where is my order?"
    ))

    assert result.outcome == IntakeOutcome.SKIPPED_WIDGET
    assert result.body["widgetComment"] is True
    assert fake_llm.runs == []


@pytest.mark.asyncio
async def test_other_events_are_ignored(intake, intake_state, fake_llm):
    """Test that non comment events are acknowledged without action."""
    result = await intake.handle(make_payload(event="jira:issue_updated"))

    assert result.outcome == IntakeOutcome.IGNORED
    assert result.body == {
        "success": True,
        "message": "Event processed but no action taken",
        "event": "jira:issue_updated",
    }
    assert fake_llm.runs == []
    assert intake_state.stats.total_received == 1


@pytest.mark.asyncio
async def test_payload_without_comment_is_ignored(intake):
    """Test that a comment event without comment data is ignored."""
    payload = make_payload()
    del payload["comment"]

    result = await intake.handle(payload)

    assert result.outcome == IntakeOutcome.IGNORED


@pytest.mark.asyncio
async def test_second_comment_within_window_is_throttled(intake, intake_state, clock, fake_llm):
    """Test that a second comment 2 seconds after a reply waits 8 more seconds."""
    first = await intake.handle(make_payload(comment_id="10001"))
    clock.now += 2
    second = await intake.handle(make_payload(comment_id="10002"))

    assert first.outcome == IntakeOutcome.PROCESSED
    assert second.outcome == IntakeOutcome.THROTTLED
    assert second.body["throttled"] is True
    assert second.body["remainingTime"] == 8
    assert second.body["message"] == "Throttled - wait 8s"
    assert len(fake_llm.runs) == 1
    assert intake_state.stats.throttled_requests == 1


@pytest.mark.asyncio
async def test_comment_after_window_is_answered(intake, clock, fake_llm):
    """Test that the throttle window reopens after 10 seconds."""
    await intake.handle(make_payload(comment_id="10001"))
    clock.now += 10
    result = await intake.handle(make_payload(comment_id="10002"))

    assert result.outcome == IntakeOutcome.PROCESSED
    assert len(fake_llm.runs) == 2
    # both comments of the issue share one remote conversation
    assert fake_llm.runs[0][0] == fake_llm.runs[1][0]


@pytest.mark.asyncio
async def test_processed_comment_memory_is_bounded(intake, intake_state):
    """Test that 150 distinct comments leave at most 100 remembered keys."""
    for index in range(150):
        await intake.handle(make_payload(comment_id=str(20000 + index)))

    assert len(intake_state.processed_comments) <= 100


@pytest.mark.asyncio
async def test_disabled_ticket_is_not_answered(intake, seeded_registry, fake_llm, fake_jira):
    """Test that disabled tickets are acknowledged without an AI reply."""
    seeded_registry.disable_ticket("SUP-1", reason="Handled by a human agent", disabled_by="admin")

    result = await intake.handle(make_payload())

    assert result.outcome == IntakeOutcome.DISABLED
    assert result.body["disabled"] is True
    assert result.body["reason"] == "Handled by a human agent"
    assert fake_llm.runs == []
    assert fake_jira.comments == []


@pytest.mark.asyncio
async def test_unknown_project_uses_default_service(intake, fake_llm):
    """Test that issues of unmapped projects go to the default service."""
    result = await intake.handle(make_payload(issue_key="ABC-7"))

    assert result.outcome == IntakeOutcome.PROCESSED
    assert result.body["serviceId"] == "landing-page"
    assert fake_llm.runs[0][1] == "asst_landing"


@pytest.mark.asyncio
async def test_unconfigured_service_is_not_answered(intake, test_config, intake_state, fake_jira):
    """Test that a missing service is reported without failing the webhook."""
    test_config.jira.default_service_id = "missing-service"

    result = await intake.handle(make_payload(issue_key="ABC-7"))

    assert result.outcome == IntakeOutcome.NOT_ANSWERED
    assert result.body["success"] is True
    assert result.body["aiResponse"] is False
    assert result.body["reason"] == "service_not_configured"
    assert "missing-service" in result.body["error"]
    assert fake_jira.comments == []
    assert intake_state.stats.errors == 1


@pytest.mark.asyncio
async def test_provider_outage_is_not_answered(intake, fake_llm, fake_jira):
    """Test that failing assistant and fallback produce no comment."""
    fake_llm.fail_assistant = True
    fake_llm.fail_completion = True

    result = await intake.handle(make_payload())

    assert result.outcome == IntakeOutcome.NOT_ANSWERED
    assert result.body["reason"] == "provider_unavailable"
    assert fake_jira.comments == []


@pytest.mark.asyncio
async def test_fallback_reply_is_posted(intake, fake_llm, fake_jira):
    """Test that the completion fallback answers when the assistant path fails."""
    fake_llm.fail_assistant = True

    result = await intake.handle(make_payload())

    assert result.outcome == IntakeOutcome.PROCESSED
    assert result.body["fallback"] is True
    assert fake_jira.comments[0]["text"] == "Fallback reply"
    assert fake_llm.completion_calls[0][-1]["content"].startswith("[Ticket Jira: SUP-1] From John Smith")


@pytest.mark.asyncio
async def test_active_project_filter(intake, test_config, fake_llm):
    """Test that issues outside the active project are ignored."""
    test_config.jira.active_project = "WEB"

    result = await intake.handle(make_payload(issue_key="SUP-1"))

    assert result.outcome == IntakeOutcome.IGNORED
    assert result.body["reason"] == "wrong_project"
    assert fake_llm.runs == []


@pytest.mark.asyncio
async def test_reply_is_relayed_to_whatsapp(intake, test_session, fake_whatsapp, fake_llm):
    """Test that replies on a WhatsApp-born ticket go back to the phone."""
    PhoneTicketMapper(test_session).set("+15551234567", "SAL-3", "sales", None, "Ana")

    result = await intake.handle(make_payload(issue_key="SAL-3"))

    assert result.outcome == IntakeOutcome.PROCESSED
    assert result.body["serviceId"] == "sales"
    assert result.body["whatsappSent"] is True
    assert fake_whatsapp.sent == [("+15551234567", fake_llm.reply)]


@pytest.mark.asyncio
async def test_comment_failure_still_counts_as_processed(intake, fake_jira):
    """Test that a failed Jira post is reported in the body, not raised."""
    fake_jira.fail_comments = True

    result = await intake.handle(make_payload())

    assert result.outcome == IntakeOutcome.PROCESSED
    assert result.body["commentPosted"] is False


@pytest.mark.asyncio
async def test_conversation_log_records_both_sides(intake, intake_state, fake_llm):
    """Test that the per-issue log holds the comment and the reply."""
    await intake.handle(make_payload())

    entries = intake_state.conversations.get("SUP-1")
    assert [entry["role"] for entry in entries] == ["user", "assistant"]
    assert entries[0]["author"] == "John Smith"
    assert entries[1]["content"] == fake_llm.reply


@pytest.mark.asyncio
async def test_fresh_comment_warns_and_is_still_answered(intake, clock, fake_llm, fake_jira, caplog):
    """Test that a comment younger than 5 seconds logs a loop warning but is processed."""
    clock.now = CREATED_TS + 2

    with caplog.at_level(logging.WARNING, logger="deskbridge.services.comment_intake"):
        result = await intake.handle(make_payload())

    assert "possible reply loop" in caplog.text
    assert result.outcome == IntakeOutcome.PROCESSED
    assert result.body["aiResponse"] is True
    assert len(fake_llm.runs) == 1
    assert fake_jira.comments[0]["text"] == fake_llm.reply


@pytest.mark.asyncio
async def test_older_comment_does_not_warn(intake, fake_llm, caplog):
    """Test that comments outside the recency window log no loop warning."""
    with caplog.at_level(logging.WARNING, logger="deskbridge.services.comment_intake"):
        await intake.handle(make_payload())

    assert "possible reply loop" not in caplog.text
    assert len(fake_llm.runs) == 1
