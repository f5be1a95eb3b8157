"""
LLM service for OpenAI Assistants and chat completion.
"""

import openai
from typing import List, Dict, Any, Optional
import logging

from ..config import OpenAIConfig
from ..exceptions import ProviderUnavailable

logger = logging.getLogger(__name__)

TRUNCATION_NOTICE = "[Response was truncated due to length limits.]"


class LLMService:
    """Async OpenAI client wrapper used by the assistant engine."""

    def __init__(self, config: OpenAIConfig, client: Optional[openai.AsyncOpenAI] = None):
        self.config = config
        self.client = client or openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url
        )

    async def create_thread(self) -> str:
        """Create a remote conversation and return its id."""
        try:
            thread = await self.client.beta.threads.create()
        except openai.OpenAIError as e:
            logger.error(f"Failed to create OpenAI thread: {e}")
            raise ProviderUnavailable(f"Could not create thread: {e}") from e
        logger.debug(f"Created OpenAI thread {thread.id}")
        return thread.id

    async def thread_exists(self, remote_id: str) -> bool:
        """Whether the provider still knows a remote conversation."""
        try:
            await self.client.beta.threads.retrieve(remote_id)
            return True
        except openai.NotFoundError:
            return False
        except openai.OpenAIError as e:
            logger.error(f"Failed to retrieve OpenAI thread {remote_id}: {e}")
            raise ProviderUnavailable(f"Could not retrieve thread: {e}") from e

    async def add_user_message(self, remote_id: str, content: str) -> None:
        try:
            await self.client.beta.threads.messages.create(
                thread_id=remote_id,
                role="user",
                content=content
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to add message to thread {remote_id}: {e}")
            raise ProviderUnavailable(f"Could not add message: {e}") from e

    async def start_run(self, remote_id: str, assistant_id: str) -> str:
        """Start an assistant run and return the run id."""
        try:
            run = await self.client.beta.threads.runs.create(
                thread_id=remote_id,
                assistant_id=assistant_id
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to start run on thread {remote_id}: {e}")
            raise ProviderUnavailable(f"Could not start run: {e}") from e
        return run.id

    async def get_run_status(self, remote_id: str, run_id: str) -> str:
        try:
            run = await self.client.beta.threads.runs.retrieve(run_id=run_id, thread_id=remote_id)
        except openai.OpenAIError as e:
            logger.error(f"Failed to retrieve run {run_id}: {e}")
            raise ProviderUnavailable(f"Could not retrieve run: {e}") from e
        return run.status

    async def get_latest_reply(self, remote_id: str) -> Optional[str]:
        """Text of the newest assistant message in a thread."""
        try:
            page = await self.client.beta.threads.messages.list(thread_id=remote_id, order="desc", limit=10)
        except openai.OpenAIError as e:
            logger.error(f"Failed to list messages of thread {remote_id}: {e}")
            raise ProviderUnavailable(f"Could not list messages: {e}") from e

        for message in page.data:
            if message.role == "assistant":
                return self._message_text(message)
        return None

    async def list_messages(self, remote_id: str, limit: int = 100) -> List[Dict[str, str]]:
        """Thread history, oldest first, as role/content dicts."""
        try:
            page = await self.client.beta.threads.messages.list(thread_id=remote_id, order="asc", limit=limit)
        except openai.OpenAIError as e:
            logger.error(f"Failed to list messages of thread {remote_id}: {e}")
            raise ProviderUnavailable(f"Could not list messages: {e}") from e

        return [{"role": message.role, "content": self._message_text(message)} for message in page.data]

    async def get_assistant_instructions(self, assistant_id: str) -> Optional[str]:
        try:
            assistant = await self.client.beta.assistants.retrieve(assistant_id)
        except openai.OpenAIError as e:
            logger.error(f"Failed to retrieve assistant {assistant_id}: {e}")
            raise ProviderUnavailable(f"Could not retrieve assistant: {e}") from e
        return assistant.instructions

    async def chat_completion(self, messages: List[Dict[str, str]]) -> str:
        """Plain chat completion with the fallback model."""
        kwargs: Dict[str, Any] = {
            "model": self.config.fallback_model,
            "messages": messages,
        }
        if self.config.fallback_model.startswith("gpt-5"):
            kwargs["max_completion_tokens"] = self.config.max_tokens
        else:
            kwargs["max_tokens"] = self.config.max_tokens
            kwargs["temperature"] = self.config.temperature

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"LLM request failed: {e}")
            raise ProviderUnavailable(f"Chat completion failed: {e}") from e

        choice = response.choices[0]
        content = choice.message.content or ""
        if choice.finish_reason == "length":
            content = f"{content.rstrip()}...\n\n{TRUNCATION_NOTICE}" if content.strip() else TRUNCATION_NOTICE
        return content

    def format_messages_with_context(
        self,
        user_message: str,
        conversation_history: List[Dict[str, str]],
        system_prompts: Optional[List[str]] = None
    ) -> List[Dict[str, str]]:
        """Format messages with conversation context."""
        messages = []

        if system_prompts:
            for system_prompt in system_prompts:
                messages.append({"role": "system", "content": system_prompt})

        messages.extend(conversation_history)

        if user_message:
            messages.append({"role": "user", "content": user_message})

        return messages

    @staticmethod
    def _message_text(message: Any) -> str:
        parts = []
        for block in message.content or []:
            if getattr(block, "type", None) == "text":
                parts.append(block.text.value)
        return "\n".join(parts)
