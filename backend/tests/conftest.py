"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from travel_chat.llm.chat import registry as registry_module
from travel_chat.llm.chat.models import ChatMessage, ChatSessionConfig, Profile
from travel_chat.llm.chat.registry import ConversationRegistry
from travel_chat.llm.chat.session import RemoteChatClient
from travel_chat.main import app


class FakeChatClient(RemoteChatClient):
    """Scripted RemoteChatClient.

    Each call to stream_turn plays the next script in ``turns``. Script items
    are text fragments, exceptions (raised in place) or asyncio.Event gates
    the stream waits on. ``open_gates`` holds Events that open_session waits
    on before returning, one per call.
    """

    provider = "fake"

    def __init__(self) -> None:
        self.turns: list[list[Any]] = []
        self.open_errors: list[Exception | None] = []
        self.open_gates: list[asyncio.Event | None] = []
        self.opened: list[ChatSessionConfig] = []
        self.closed_handles: list[Any] = []
        self.calls: list[dict[str, Any]] = []
        self.closed_streams = 0

    async def open_session(self, config: ChatSessionConfig) -> str:
        self.opened.append(config)
        index = len(self.opened)
        error = self.open_errors.pop(0) if self.open_errors else None
        gate = self.open_gates.pop(0) if self.open_gates else None
        if gate is not None:
            await gate.wait()
        if error is not None:
            raise error
        return f"handle-{index}"

    def stream_turn(
        self,
        handle: Any,
        utterance: str,
        prior_history: list[ChatMessage],
    ) -> AsyncIterator[str]:
        self.calls.append({"handle": handle, "utterance": utterance, "history": prior_history})
        script = self.turns.pop(0) if self.turns else []
        return self._play(script)

    async def close_session(self, handle: Any) -> None:
        self.closed_handles.append(handle)

    async def _play(self, script: list[Any]) -> AsyncIterator[str]:
        try:
            for item in script:
                await asyncio.sleep(0)
                if isinstance(item, asyncio.Event):
                    await item.wait()
                elif isinstance(item, BaseException):
                    raise item
                else:
                    yield item
        finally:
            self.closed_streams += 1


@pytest.fixture
def fake_client() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def profile() -> Profile:
    return Profile(
        destination="Tokyo",
        date_range="3/1-3/5",
        party_size=2,
        budget=500000,
        style="backpacking",
        interests="food",
    )


@pytest.fixture
def registry(fake_client: FakeChatClient):
    """Install a registry backed by the fake client as the singleton."""
    registry = ConversationRegistry(client=fake_client, session_timeout_minutes=30)
    registry_module._registry = registry
    yield registry
    registry_module._registry = None


@pytest.fixture
async def client(registry: ConversationRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
