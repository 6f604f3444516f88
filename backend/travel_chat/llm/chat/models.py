"""Pydantic models for chat sessions."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, PositiveInt


class ChatRole(str, Enum):
    """Role of a chat message sender."""

    USER = "user"
    MODEL = "model"


class SessionState(str, Enum):
    """Lifecycle state of a conversation."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    AWAITING_RESPONSE = "awaiting_response"
    FAILED = "failed"


class ChatMessage(BaseModel):
    """A single message in a conversation.

    Model replies are built in place while their turn is streaming.
    """

    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        use_enum_values = True


class Profile(BaseModel):
    """Travel plan collected before the first turn.

    Field aliases are the token names used by the bootstrap prompt template.
    """

    destination: str = Field(min_length=1)
    date_range: str = Field(min_length=1, alias="dateRange")
    party_size: PositiveInt = Field(alias="partySize")
    budget: PositiveInt
    style: str = Field(min_length=1)
    interests: str = Field(min_length=1)

    model_config = {"populate_by_name": True, "frozen": True, "str_strip_whitespace": True}

    def template_values(self) -> dict[str, str]:
        """Textual value for each template token, numbers as plain digits."""
        return {key: str(value) for key, value in self.model_dump(by_alias=True).items()}


class ChatSessionConfig(BaseModel):
    """Configuration used to open a remote chat session."""

    model: str = "gemini-2.5-flash"
    system_instruction: str | None = None
    temperature: float = 0.9
    top_p: float = 0.95
    top_k: int = 64
    max_output_tokens: int = 4096


class Question(BaseModel):
    """A profile question shown to the user before chatting."""

    id: str
    text: str
    type: str = "text"  # "text" or "number"
    key: str  # Profile field alias the answer is stored under


class ChatEvent(BaseModel):
    """An event published by a SessionManager to its subscribers."""

    event: str  # "conversation", "state", "history", "error" or "complete"
    conversation_id: str | None = None
    state: SessionState | None = None
    messages: list[ChatMessage] | None = None
    error: dict[str, Any] | None = None

    class Config:
        use_enum_values = True


class ConversationInfo(BaseModel):
    """Snapshot of a conversation for API consumers."""

    conversation_id: str
    state: SessionState
    created_at: datetime
    last_activity: datetime
    messages: list[ChatMessage]
    profile: Profile | None = None
    last_error: dict[str, Any] | None = None

    class Config:
        use_enum_values = True


class SendMessageRequest(BaseModel):
    """Request to send a user message in an existing conversation."""

    message: str = Field(description="User message text")
