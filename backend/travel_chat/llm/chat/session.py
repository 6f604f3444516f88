"""Remote chat client interface and the session handle it produces."""

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any, ClassVar

from travel_chat.llm.chat.errors import SessionInitFailed, is_credential_error
from travel_chat.llm.chat.models import ChatMessage, ChatSessionConfig

logger = logging.getLogger(__name__)


class RemoteChatClient(ABC):
    """Abstract base class for remote language-model chat services.

    Implementations open a conversation context and stream the reply to an
    utterance as text fragments.

    Example implementation:
        class EchoClient(RemoteChatClient):
            provider = "echo"

            async def open_session(self, config):
                return object()

            async def stream_turn(self, handle, utterance, prior_history):
                for word in utterance.split():
                    yield word + " "
    """

    provider: ClassVar[str]

    @abstractmethod
    async def open_session(self, config: ChatSessionConfig) -> Any:
        """Open a remote conversation and return its opaque handle.

        Raises:
            SessionInitFailed: If the session could not be opened.
        """
        ...

    @abstractmethod
    def stream_turn(
        self,
        handle: Any,
        utterance: str,
        prior_history: list[ChatMessage],
    ) -> AsyncIterator[str]:
        """Send an utterance and yield the reply as text fragments.

        ``prior_history`` is the conversation so far, including the utterance
        as its last user message. Clients with server-side memory may ignore it.
        Closing the iterator early must stop consumption of the reply.

        Raises:
            StreamFailed: If the reply fails at any point.
        """
        ...

    async def close_session(self, handle: Any) -> None:
        """Release a session handle. Most providers have nothing to release."""
        return None


class ChatSession:
    """A live remote conversation owned by one SessionManager.

    Identity matters: a turn compares the session it started with against the
    manager's current session to detect that it was superseded.
    """

    def __init__(self, handle: Any, config: ChatSessionConfig, session_id: str | None = None):
        self.session_id = session_id or str(uuid.uuid4())[:12]
        self.handle = handle
        self.config = config
        self.created_at = datetime.now()
        self._active = True

    @property
    def is_active(self) -> bool:
        """Whether the session has not been superseded or closed."""
        return self._active

    def invalidate(self) -> None:
        self._active = False

    def get_info(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "model": self.config.model,
            "created_at": self.created_at.isoformat(),
            "is_active": self.is_active,
        }


async def open_chat_session(client: RemoteChatClient, config: ChatSessionConfig) -> ChatSession:
    """Open a remote session and wrap its handle.

    Provider exceptions are converted to SessionInitFailed, flagged when they
    look like a credential problem.
    """
    try:
        handle = await client.open_session(config)
    except SessionInitFailed:
        raise
    except Exception as e:
        raise SessionInitFailed(
            f"Failed to open chat session: {e}",
            credential_invalid=is_credential_error(e),
        ) from e

    session = ChatSession(handle=handle, config=config)
    logger.info(f"Opened {client.provider} chat session {session.session_id} (model {config.model})")
    return session
