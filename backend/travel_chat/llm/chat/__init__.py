"""Streaming chat session infrastructure.

This module provides the core abstractions for the travel chat:
- SessionManager: owns one conversation's session, state and history
- RemoteChatClient: interface to the remote model service
- ConversationRegistry: keeps conversations alive between requests
"""

from travel_chat.llm.chat.errors import (
    ChatError,
    InvalidProfileField,
    SessionInitFailed,
    SessionNotReady,
    StreamFailed,
)
from travel_chat.llm.chat.manager import HistoryListener, SessionManager, parse_profile
from travel_chat.llm.chat.models import (
    ChatEvent,
    ChatMessage,
    ChatRole,
    ChatSessionConfig,
    Profile,
    SessionState,
)
from travel_chat.llm.chat.registry import ConversationRegistry, get_chat_client, get_registry
from travel_chat.llm.chat.session import ChatSession, RemoteChatClient

__all__ = [
    "ChatError",
    "ChatEvent",
    "ChatMessage",
    "ChatRole",
    "ChatSession",
    "ChatSessionConfig",
    "ConversationRegistry",
    "HistoryListener",
    "InvalidProfileField",
    "Profile",
    "RemoteChatClient",
    "SessionInitFailed",
    "SessionManager",
    "SessionNotReady",
    "SessionState",
    "StreamFailed",
    "get_chat_client",
    "get_registry",
    "parse_profile",
]
