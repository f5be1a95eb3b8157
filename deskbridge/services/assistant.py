"""
AI conversation engine: service to assistant resolution, remote thread lifecycle
and response post-processing.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Tuple
import logging

from ..config import OpenAIConfig
from ..exceptions import ProviderUnavailable, ProviderRunTimeout
from .conversation_store import ConversationStore
from .llm import LLMService
from .service_registry import AssistantBinding, ServiceRegistry
from .state import TurnHistory

logger = logging.getLogger(__name__)

REPORT_TRIGGERS = ("report", "reporte", "resumen", "summary", "informe")

FAILED_RUN_STATUSES = {"failed", "cancelled", "expired", "incomplete", "requires_action"}

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful customer support assistant. Answer clearly and concisely "
    "in the language the customer writes in."
)

NO_HISTORY_REPORT = "There is no conversation history for this thread yet, so there is nothing to summarize."

REPORT_PROMPT_HEADER = (
    "Generate a structured report of the following conversation. Include: a short summary, "
    "the customer's main requests, the answers already given, open issues and recommended next steps."
)

_CITATION_PATTERNS = [
    re.compile(r"【[^】]*】"),
    re.compile(r"\[[^\[\]]*:\d+[^\[\]]*\]"),
]


def strip_citations(text: str) -> str:
    """Remove assistant file-search citation markers and the spacing they leave behind."""
    if not text:
        return text
    for pattern in _CITATION_PATTERNS:
        text = pattern.sub("", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"[ \t]+([.,;:!?])", r"\1", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def is_report_request(message: str, context: Optional[Dict[str, Any]] = None) -> bool:
    """Whether a message asks for a conversation report (never true for the report call itself)."""
    if context and context.get("is_report_generation"):
        return False
    text = (message or "").strip().lower()
    return any(text == trigger or trigger in text for trigger in REPORT_TRIGGERS)


def build_report_prompt(history: List[Dict[str, str]]) -> str:
    lines = [REPORT_PROMPT_HEADER, "", "Conversation:"]
    for turn in history:
        lines.append(f"{turn['role'].upper()}: {turn['content']}")
    return "\n".join(lines)


@dataclass
class ChatResult:
    """Outcome of one processed chat turn."""
    response: str
    thread_id: str
    service_id: str
    assistant_id: Optional[str] = None
    assistant_name: Optional[str] = None
    remote_conversation_id: Optional[str] = None
    fallback_used: bool = False
    report: bool = False
    thread_recreated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": True,
            "response": self.response,
            "threadId": self.thread_id,
            "serviceId": self.service_id,
            "assistantId": self.assistant_id,
            "assistantName": self.assistant_name,
        }
        if self.fallback_used:
            data["fallback"] = True
        if self.report:
            data["report"] = True
        if self.thread_recreated:
            data["threadRecreated"] = True
        return data


class AssistantEngine:
    """Processes chat turns for a service through its OpenAI assistant."""

    def __init__(
        self,
        registry: ServiceRegistry,
        store: ConversationStore,
        llm: LLMService,
        history: TurnHistory,
        config: OpenAIConfig
    ):
        self.registry = registry
        self.store = store
        self.llm = llm
        self.history = history
        self.config = config

    async def process_chat_for_service(
        self,
        message: str,
        service_id: str,
        thread_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> ChatResult:
        """
        Run one chat turn for a service.

        Raises:
            ValueError: empty message
            ServiceNotConfigured: service unknown, inactive or without assistant
            ProviderUnavailable: assistant run and completion fallback both failed
        """
        if not message or not message.strip():
            raise ValueError("Message must not be empty")

        context = dict(context or {})
        binding = self.registry.get_active_assistant(service_id, user_id)

        if is_report_request(message, context):
            return await self._generate_report(binding, thread_id, context, user_id)

        effective_thread_id = thread_id or f"user_{user_id or 'anonymous'}_{int(time.time() * 1000)}"
        ticket_key = context.get("jiraIssueKey") or context.get("ticketKey")

        remote_id = None
        recreated = False
        fallback_used = False
        try:
            remote_id, recreated = await self._resolve_remote_conversation(effective_thread_id, binding, ticket_key, user_id)
            reply = await self._run_assistant(remote_id, binding.assistant_id, message)
        except ProviderUnavailable as e:
            logger.warning(f"Assistant path failed for service {service_id} (thread {effective_thread_id}): {e}; using completion fallback")
            reply = await self._fallback_completion(binding, effective_thread_id, message, context)
            fallback_used = True

        cleaned = strip_citations(reply)

        self.history.append(effective_thread_id, "user", message)
        self.history.append(effective_thread_id, "assistant", cleaned)
        self.store.append_message(effective_thread_id, "user", message)
        self.store.append_message(effective_thread_id, "assistant", cleaned)
        self.store.touch(effective_thread_id)

        logger.info(f"Processed chat for service {service_id} on thread {effective_thread_id} (fallback={fallback_used})")
        return ChatResult(
            response=cleaned,
            thread_id=effective_thread_id,
            service_id=binding.service_id,
            assistant_id=binding.assistant_id,
            assistant_name=binding.assistant_name,
            remote_conversation_id=remote_id,
            fallback_used=fallback_used,
            thread_recreated=recreated
        )

    async def _resolve_remote_conversation(
        self,
        thread_id: str,
        binding: AssistantBinding,
        ticket_key: Optional[str],
        user_id: Optional[str]
    ) -> Tuple[str, bool]:
        """Remote conversation id for a thread and whether it had to be recreated."""
        mapping = self.store.get_thread(thread_id)

        if mapping is not None:
            if await self.llm.thread_exists(mapping.remote_conversation_id):
                return mapping.remote_conversation_id, False

            logger.warning(
                f"Remote conversation {mapping.remote_conversation_id} of thread {thread_id} is gone; "
                f"starting a new one, earlier assistant history is not carried over"
            )
            remote_id = await self.llm.create_thread()
            self.store.save_thread(thread_id, remote_id, binding.service_id, ticket_key, user_id)
            return remote_id, True

        remote_id = await self.llm.create_thread()
        self.store.save_thread(thread_id, remote_id, binding.service_id, ticket_key, user_id)
        return remote_id, False

    async def _run_assistant(self, remote_id: str, assistant_id: str, message: str) -> str:
        await self.llm.add_user_message(remote_id, message)
        run_id = await self.llm.start_run(remote_id, assistant_id)

        status = await self._wait_for_run(remote_id, run_id)
        if status != "completed":
            raise ProviderUnavailable(f"Assistant run {run_id} ended with status '{status}'")

        reply = await self.llm.get_latest_reply(remote_id)
        if not reply:
            raise ProviderUnavailable(f"Assistant run {run_id} completed without a reply")
        return reply

    async def _wait_for_run(self, remote_id: str, run_id: str) -> str:
        """Poll a run until it reaches a terminal status or the timeout passes."""
        deadline = time.monotonic() + self.config.run_timeout

        while True:
            status = await self.llm.get_run_status(remote_id, run_id)
            if status == "completed" or status in FAILED_RUN_STATUSES:
                return status
            if time.monotonic() >= deadline:
                raise ProviderRunTimeout(f"Assistant run {run_id} still '{status}' after {self.config.run_timeout}s")
            await asyncio.sleep(self.config.run_poll_interval)

    async def _fallback_completion(
        self,
        binding: AssistantBinding,
        thread_id: str,
        message: str,
        context: Dict[str, Any]
    ) -> str:
        """Direct chat completion with the assistant's instructions as system prompt."""
        try:
            instructions = await self.llm.get_assistant_instructions(binding.assistant_id)
        except ProviderUnavailable as e:
            logger.warning(f"Could not load instructions of assistant {binding.assistant_id}: {e}")
            instructions = None

        ticket_key = context.get("jiraIssueKey")
        user_message = f"[Ticket Jira: {ticket_key}] {message}" if ticket_key else message

        messages = self.llm.format_messages_with_context(
            user_message,
            self.history.recent(thread_id, self.config.history_window),
            [instructions or DEFAULT_SYSTEM_PROMPT]
        )
        reply = await self.llm.chat_completion(messages)
        if not reply or not reply.strip():
            raise ProviderUnavailable("Completion fallback returned an empty reply")
        return reply

    async def _generate_report(
        self,
        binding: AssistantBinding,
        thread_id: Optional[str],
        context: Dict[str, Any],
        user_id: Optional[str]
    ) -> ChatResult:
        """Summarize the whole thread through the assistant, on the same thread id."""
        history: List[Dict[str, str]] = []
        mapping = self.store.get_thread(thread_id) if thread_id else None

        if mapping is not None:
            try:
                if await self.llm.thread_exists(mapping.remote_conversation_id):
                    history = await self.llm.list_messages(mapping.remote_conversation_id)
            except ProviderUnavailable as e:
                logger.warning(f"Could not read remote history of thread {thread_id}: {e}")

        if not history and thread_id:
            history = self.history.recent(thread_id, self.history.max_turns)

        if not history:
            logger.info(f"Report requested for thread {thread_id} without history")
            return ChatResult(
                response=NO_HISTORY_REPORT,
                thread_id=thread_id or f"user_{user_id or 'anonymous'}_{int(time.time() * 1000)}",
                service_id=binding.service_id,
                assistant_id=binding.assistant_id,
                assistant_name=binding.assistant_name,
                report=True
            )

        report_context = dict(context)
        report_context["is_report_generation"] = True
        result = await self.process_chat_for_service(
            build_report_prompt(history),
            binding.service_id,
            thread_id,
            report_context,
            user_id
        )
        result.report = True
        return result
