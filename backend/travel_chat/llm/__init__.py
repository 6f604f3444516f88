"""LLM integration module for the travel chat."""

from travel_chat.llm.client import AnthropicChatClient
from travel_chat.llm.gemini_client import GeminiChatClient, gemini_available

__all__ = [
    # Claude client
    "AnthropicChatClient",
    # Gemini client
    "GeminiChatClient",
    "gemini_available",
]
