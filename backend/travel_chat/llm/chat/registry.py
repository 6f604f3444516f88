"""ConversationRegistry handles conversation lifecycle and storage."""

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Any

from travel_chat.llm.chat.manager import SessionManager
from travel_chat.llm.chat.session import RemoteChatClient

logger = logging.getLogger(__name__)

# Singleton registry instance
_registry: "ConversationRegistry | None" = None


def get_chat_client(provider: str | None = None) -> RemoteChatClient:
    """Create the remote chat client selected by CHAT_PROVIDER.

    Args:
        provider: "gemini" (default) or "anthropic".
    """
    provider = (provider or os.getenv("CHAT_PROVIDER", "gemini")).lower()
    if provider == "gemini":
        from travel_chat.llm.gemini_client import GeminiChatClient

        return GeminiChatClient()
    if provider == "anthropic":
        from travel_chat.llm.client import AnthropicChatClient

        return AnthropicChatClient()
    raise ValueError(f"Unknown chat provider: {provider}")


class ConversationRegistry:
    """Keeps active conversations in memory.

    Responsibilities:
    - Create conversations backed by a shared remote client
    - Get/delete conversations by ID
    - Cleanup idle conversations
    """

    def __init__(
        self,
        client: RemoteChatClient | None = None,
        session_timeout_minutes: int | None = None,
    ):
        """Initialize the registry.

        Args:
            client: Remote chat client. Created from CHAT_PROVIDER on first use if omitted.
            session_timeout_minutes: How long idle conversations live before cleanup.
        """
        if session_timeout_minutes is None:
            session_timeout_minutes = int(os.getenv("CHAT_SESSION_TIMEOUT_MINUTES", "30"))
        self._client = client
        self._conversations: dict[str, SessionManager] = {}
        self._session_timeout = timedelta(minutes=session_timeout_minutes)
        self._cleanup_task: asyncio.Task | None = None

    @property
    def client(self) -> RemoteChatClient:
        if self._client is None:
            self._client = get_chat_client()
        return self._client

    @property
    def active_conversation_count(self) -> int:
        return len(self._conversations)

    def create_conversation(self) -> SessionManager:
        """Register a new, uninitialized conversation."""
        manager = SessionManager(client=self.client)
        self._conversations[manager.conversation_id] = manager
        logger.info(
            f"Created conversation {manager.conversation_id} "
            f"(total conversations: {len(self._conversations)})"
        )
        return manager

    def get_conversation(self, conversation_id: str) -> SessionManager | None:
        """Get a conversation by ID, refreshing its idle timer."""
        manager = self._conversations.get(conversation_id)
        if manager:
            manager.last_activity = datetime.now()
        return manager

    async def close_conversation(self, conversation_id: str) -> bool:
        """Close and remove a conversation.

        Returns:
            True if the conversation was found and closed, False otherwise.
        """
        manager = self._conversations.pop(conversation_id, None)
        if manager:
            await manager.close()
            logger.info(f"Closed conversation {conversation_id}")
            return True
        return False

    async def cleanup_expired(self) -> int:
        """Close conversations that have been idle too long.

        Conversations with a turn in flight are left alone.
        """
        now = datetime.now()
        expired_ids = [
            cid for cid, m in self._conversations.items()
            if not m.is_busy and now - m.last_activity > self._session_timeout
        ]

        for conversation_id in expired_ids:
            logger.info(f"Cleaning up expired conversation {conversation_id}")
            await self.close_conversation(conversation_id)

        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired conversation(s)")

        return len(expired_ids)

    async def start_cleanup_task(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Started conversation cleanup background task")

    async def stop_cleanup_task(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Stopped conversation cleanup background task")

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(60)  # Check every minute
                await self.cleanup_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in conversation cleanup task: {e}")

    async def shutdown(self) -> None:
        """Stop cleanup and close all conversations."""
        await self.stop_cleanup_task()

        for conversation_id in list(self._conversations.keys()):
            await self.close_conversation(conversation_id)

        logger.info("Conversation registry shutdown complete")

    def get_stats(self) -> dict[str, Any]:
        now = datetime.now()
        return {
            "active_conversations": len(self._conversations),
            "conversations_by_state": self._count_by_state(),
            "oldest_conversation_age_seconds": self._oldest_conversation_age(now),
            "cleanup_task_running": self._cleanup_task is not None,
        }

    def _count_by_state(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for m in self._conversations.values():
            counts[m.state.value] = counts.get(m.state.value, 0) + 1
        return counts

    def _oldest_conversation_age(self, now: datetime) -> float | None:
        if not self._conversations:
            return None
        oldest = min(m.created_at for m in self._conversations.values())
        return (now - oldest).total_seconds()


def get_registry() -> ConversationRegistry:
    """Get the singleton conversation registry."""
    global _registry
    if _registry is None:
        _registry = ConversationRegistry()
    return _registry


async def init_registry() -> ConversationRegistry:
    """Initialize the registry and start background tasks."""
    registry = get_registry()
    await registry.start_cleanup_task()
    return registry


async def shutdown_registry() -> None:
    """Shutdown the registry."""
    global _registry
    if _registry:
        await _registry.shutdown()
        _registry = None
