"""Chat API endpoints for streaming travel conversations."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from travel_chat.llm.chat.errors import ChatError
from travel_chat.llm.chat.manager import SessionManager
from travel_chat.llm.chat.models import (
    ChatEvent,
    ConversationInfo,
    Profile,
    Question,
    SendMessageRequest,
    SessionState,
)
from travel_chat.llm.chat.prompts import INITIAL_QUESTIONS
from travel_chat.llm.chat.registry import get_registry

logger = logging.getLogger(__name__)

router = APIRouter()

# Turns keep running if the client disconnects; hold references until done
_background_turns: set[asyncio.Task] = set()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _format_sse(event: ChatEvent) -> str:
    return f"data: {event.model_dump_json(exclude_none=True)}\n\n"


def _stream_operation(
    manager: SessionManager,
    operation: Callable[[], Awaitable[None]],
) -> StreamingResponse:
    """Run a manager operation and stream its events as SSE.

    Events published by the manager while the operation runs are forwarded
    in order, followed by a final ``complete`` event with the resulting state.
    """
    queue: asyncio.Queue[ChatEvent | None] = asyncio.Queue()

    async def listener(event: ChatEvent) -> None:
        await queue.put(event)

    unsubscribe = manager.subscribe(listener)

    async def run() -> None:
        try:
            await operation()
        except ChatError as e:
            # Remote failures were already published by the manager
            if manager.last_error is not e:
                await queue.put(ChatEvent(event="error", error=e.to_dict()))
        except Exception as e:
            logger.exception(f"Unexpected error in conversation {manager.conversation_id}: {e}")
            await queue.put(ChatEvent(event="error", error={"kind": "internal_error", "message": str(e)}))
        finally:
            await queue.put(None)

    task = asyncio.create_task(run())
    _background_turns.add(task)
    task.add_done_callback(_background_turns.discard)

    async def event_generator() -> AsyncGenerator[str, None]:
        try:
            yield _format_sse(ChatEvent(event="conversation", conversation_id=manager.conversation_id))
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield _format_sse(event)
            yield _format_sse(ChatEvent(
                event="complete",
                conversation_id=manager.conversation_id,
                state=manager.state,
            ))
        finally:
            unsubscribe()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def _get_conversation_or_404(conversation_id: str) -> SessionManager:
    manager = get_registry().get_conversation(conversation_id)
    if not manager:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return manager


@router.get("/chat/questions")
async def list_questions() -> list[Question]:
    """Questions used to collect the travel profile."""
    return INITIAL_QUESTIONS


@router.post("/chat/conversations")
async def start_conversation(profile: Profile) -> StreamingResponse:
    """Start a conversation from a travel profile.

    Streams the bootstrap turn as SSE:
    data: {"event": "conversation", "conversation_id": "..."}
    data: {"event": "state", "state": "initializing"}
    data: {"event": "history", "messages": [...]}
    data: {"event": "error", "error": {"kind": "...", "message": "..."}}
    data: {"event": "complete", "state": "ready"}
    """
    manager = get_registry().create_conversation()
    return _stream_operation(manager, lambda: manager.start(profile))


@router.post("/chat/conversations/{conversation_id}/messages")
async def send_message(conversation_id: str, request: SendMessageRequest) -> StreamingResponse:
    """Send a user message and stream the reply as SSE."""
    message = request.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    manager = _get_conversation_or_404(conversation_id)
    if manager.state != SessionState.READY:
        raise HTTPException(
            status_code=409,
            detail=f"Conversation is {manager.state.value}, not ready for a new message",
        )

    return _stream_operation(manager, lambda: manager.send(message))


@router.post("/chat/conversations/{conversation_id}/retry")
async def retry_conversation(conversation_id: str) -> StreamingResponse:
    """Retry the failed turn (or restart with the last profile) and stream it as SSE."""
    manager = _get_conversation_or_404(conversation_id)
    if manager.state != SessionState.FAILED:
        raise HTTPException(
            status_code=409,
            detail=f"Conversation is {manager.state.value}, nothing to retry",
        )
    if manager.session is None and manager.profile is None:
        raise HTTPException(
            status_code=409,
            detail="Travel profile is required again; start a new conversation",
        )

    return _stream_operation(manager, manager.retry)


@router.get("/chat/conversations/{conversation_id}")
async def get_conversation(conversation_id: str) -> ConversationInfo:
    """Get the state and history of a conversation."""
    return _get_conversation_or_404(conversation_id).get_info()


@router.delete("/chat/conversations/{conversation_id}")
async def close_conversation(conversation_id: str) -> dict[str, str]:
    """Explicitly close a conversation."""
    if not await get_registry().close_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "closed", "conversation_id": conversation_id}


# Admin endpoint for monitoring
@router.get("/chat/stats")
async def get_chat_stats() -> dict[str, Any]:
    """Get conversation statistics (admin endpoint)."""
    return get_registry().get_stats()
