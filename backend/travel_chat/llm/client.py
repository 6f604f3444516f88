"""Anthropic client wrapper for streaming chat sessions."""

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import anthropic

from travel_chat.llm.chat.errors import SessionInitFailed, StreamFailed, is_credential_error
from travel_chat.llm.chat.models import ChatMessage, ChatRole, ChatSessionConfig
from travel_chat.llm.chat.session import RemoteChatClient

logger = logging.getLogger(__name__)

CLAUDE_MODEL = "claude-opus-4-5-20251101"


class AnthropicChatClient(RemoteChatClient):
    """Wrapper around the Anthropic Messages API.

    The API keeps no conversation state, so the handle is just the session
    configuration and every turn replays the supplied history.
    """

    provider = "anthropic"

    def __init__(self, api_key: str | None = None, model: str | None = None):
        """Initialize the client.

        Args:
            api_key: Anthropic API key. If not provided, uses ANTHROPIC_API_KEY env var.
            model: Model to use. Defaults to ANTHROPIC_MODEL env var or CLAUDE_MODEL.
        """
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model or os.getenv("ANTHROPIC_MODEL", CLAUDE_MODEL)
        self._client: anthropic.AsyncAnthropic | None = None

    async def open_session(self, config: ChatSessionConfig) -> ChatSessionConfig:
        if not self.api_key:
            raise SessionInitFailed(
                "Anthropic API key is not set. Set ANTHROPIC_API_KEY.",
                credential_invalid=True,
            )
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return config.model_copy(update={"model": self.model})

    async def stream_turn(
        self,
        handle: Any,
        utterance: str,
        prior_history: list[ChatMessage],
    ) -> AsyncIterator[str]:
        if self._client is None:
            raise StreamFailed("Anthropic session is not open")

        kwargs: dict[str, Any] = {
            "model": handle.model,
            "max_tokens": handle.max_output_tokens,
            "messages": to_anthropic_messages(prior_history, utterance),
            "temperature": min(handle.temperature, 1.0),
            "top_k": handle.top_k,
        }
        if handle.system_instruction:
            kwargs["system"] = handle.system_instruction

        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except anthropic.APIError as e:
            logger.error(f"Failed to send message to Claude: {e}")
            raise StreamFailed(
                f"Failed to get response from Claude: {e}",
                credential_invalid=isinstance(e, anthropic.AuthenticationError) or is_credential_error(e),
            ) from e


def to_anthropic_messages(history: list[ChatMessage], utterance: str) -> list[dict[str, str]]:
    """Convert history to alternating user/assistant messages.

    Consecutive messages from the same role (e.g. after an empty reply) are
    merged, and the utterance is appended if history does not already end with it.
    """
    messages: list[dict[str, str]] = []
    for msg in history:
        if not msg.content:
            continue
        role = "assistant" if msg.role == ChatRole.MODEL else "user"
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n\n" + msg.content
        else:
            messages.append({"role": role, "content": msg.content})

    if not messages or messages[-1]["role"] != "user" or not messages[-1]["content"].endswith(utterance):
        if messages and messages[-1]["role"] == "user":
            messages[-1]["content"] += "\n\n" + utterance
        else:
            messages.append({"role": "user", "content": utterance})

    # The API requires the first message to come from the user
    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages
