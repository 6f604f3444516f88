"""Gemini client wrapper for streaming chat sessions."""

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import chats, types

from travel_chat.llm.chat.errors import SessionInitFailed, StreamFailed, is_credential_error
from travel_chat.llm.chat.models import ChatMessage, ChatSessionConfig
from travel_chat.llm.chat.session import RemoteChatClient

logger = logging.getLogger(__name__)


class GeminiChatClient(RemoteChatClient):
    """Wrapper around Google GenAI chats with server-side conversation memory.

    The chat object returned by ``open_session`` keeps the conversation, so
    ``stream_turn`` only sends the new utterance.
    """

    provider = "gemini"

    def __init__(self, api_key: str | None = None):
        """Initialize the client.

        Args:
            api_key: Google API key. If not provided, uses GOOGLE_API_KEY or
                GEMINI_API_KEY env var. A missing key is reported when a
                session is opened.
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if not self.api_key:
            raise SessionInitFailed(
                "Gemini API key is not set. Set GOOGLE_API_KEY or GEMINI_API_KEY.",
                credential_invalid=True,
            )
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def open_session(self, config: ChatSessionConfig) -> chats.AsyncChat:
        client = self._get_client()
        chat = client.aio.chats.create(
            model=config.model,
            config=types.GenerateContentConfig(
                system_instruction=config.system_instruction,
                temperature=config.temperature,
                top_p=config.top_p,
                top_k=config.top_k,
                max_output_tokens=config.max_output_tokens,
            ),
        )
        logger.info(f"Gemini chat created for model {config.model}")
        return chat

    async def stream_turn(
        self,
        handle: Any,
        utterance: str,
        prior_history: list[ChatMessage],
    ) -> AsyncIterator[str]:
        try:
            stream = await handle.send_message_stream(utterance)
            async for chunk in stream:
                text = chunk.text
                if text:
                    yield text
        except Exception as e:
            logger.error(f"Failed to send message to Gemini: {e}")
            raise StreamFailed(
                f"Failed to get response from Gemini: {e}",
                credential_invalid=is_credential_error(e),
            ) from e


def gemini_available() -> bool:
    """Check if Gemini is available (API key is set)."""
    return bool(os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"))
