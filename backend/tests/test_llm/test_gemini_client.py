"""Tests for the Gemini chat client."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from travel_chat.llm.chat.errors import SessionInitFailed, StreamFailed
from travel_chat.llm.chat.models import ChatSessionConfig
from travel_chat.llm.chat.session import open_chat_session
from travel_chat.llm.gemini_client import GeminiChatClient, gemini_available


class FakeChunk:
    """Minimal stand-in for a streamed GenerateContentResponse."""

    def __init__(self, text):
        self.text = text


async def chunk_stream(*texts):
    for text in texts:
        yield FakeChunk(text)


async def collect(stream):
    return [fragment async for fragment in stream]


@pytest.fixture
def mock_genai():
    """Patch genai.Client and expose the mock instance."""
    with patch("travel_chat.llm.gemini_client.genai.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        yield mock_client_class, mock_client


class TestGeminiChatClient:
    """Tests for GeminiChatClient."""

    @pytest.mark.asyncio
    async def test_open_session_creates_chat(self, mock_genai):
        """Test the chat is created with model, persona and sampling settings."""
        mock_client_class, mock_client = mock_genai
        client = GeminiChatClient(api_key="test-key")
        config = ChatSessionConfig(
            model="gemini-2.5-flash",
            system_instruction="Be thrifty.",
            temperature=0.9,
            top_p=0.95,
            top_k=64,
        )

        handle = await client.open_session(config)

        mock_client_class.assert_called_once_with(api_key="test-key")
        create = mock_client.aio.chats.create
        assert handle is create.return_value
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["config"].system_instruction == "Be thrifty."
        assert kwargs["config"].temperature == 0.9
        assert kwargs["config"].top_p == 0.95
        assert kwargs["config"].top_k == 64

    @pytest.mark.asyncio
    async def test_client_reused_across_sessions(self, mock_genai):
        """Test the underlying genai client is created once."""
        mock_client_class, _ = mock_genai
        client = GeminiChatClient(api_key="test-key")

        await client.open_session(ChatSessionConfig())
        await client.open_session(ChatSessionConfig())

        assert mock_client_class.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch, mock_genai):
        """Test a missing key fails session open as a credential problem."""
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        client = GeminiChatClient()

        with pytest.raises(SessionInitFailed) as exc_info:
            await open_chat_session(client, ChatSessionConfig())

        assert exc_info.value.credential_invalid
        assert not gemini_available()

    def test_api_key_from_env(self, monkeypatch):
        """Test GEMINI_API_KEY is used when GOOGLE_API_KEY is absent."""
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")

        assert GeminiChatClient().api_key == "env-key"
        assert gemini_available()

    @pytest.mark.asyncio
    async def test_stream_turn_yields_text_chunks(self):
        """Test only non-empty chunk text is yielded, in order."""
        chat = MagicMock()
        chat.send_message_stream = AsyncMock(return_value=chunk_stream("Hel", None, "", "lo!"))
        client = GeminiChatClient(api_key="test-key")

        fragments = await collect(client.stream_turn(chat, "Hi", []))

        assert fragments == ["Hel", "lo!"]
        chat.send_message_stream.assert_awaited_once_with("Hi")

    @pytest.mark.asyncio
    async def test_stream_turn_wraps_errors(self):
        """Test SDK errors surface as StreamFailed."""
        chat = MagicMock()
        chat.send_message_stream = AsyncMock(side_effect=RuntimeError("500 INTERNAL"))
        client = GeminiChatClient(api_key="test-key")

        with pytest.raises(StreamFailed) as exc_info:
            await collect(client.stream_turn(chat, "Hi", []))

        assert "500 INTERNAL" in exc_info.value.message
        assert not exc_info.value.credential_invalid

    @pytest.mark.asyncio
    async def test_stream_turn_flags_credential_errors(self):
        """Test the not-found entity signature is flagged."""

        async def failing_stream():
            yield FakeChunk("partial")
            raise RuntimeError("404 NOT_FOUND. Requested entity was not found.")

        chat = MagicMock()
        chat.send_message_stream = AsyncMock(return_value=failing_stream())
        client = GeminiChatClient(api_key="test-key")

        fragments = []
        with pytest.raises(StreamFailed) as exc_info:
            async for fragment in client.stream_turn(chat, "Hi", []):
                fragments.append(fragment)

        assert fragments == ["partial"]
        assert exc_info.value.credential_invalid
