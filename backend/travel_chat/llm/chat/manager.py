"""SessionManager drives one streaming conversation with a remote model.

The manager owns the session handle, the lifecycle state and the message
history. Each reply is folded into a single model message as fragments arrive,
and subscribers receive the full history after every change.

State machine:
    uninitialized -> initializing -> awaiting_response -> ready
    ready -> awaiting_response -> ready | failed
    failed -> (retry) awaiting_response | initializing
    any -> (start) initializing
"""

import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from travel_chat.llm.chat.errors import (
    ChatError,
    InvalidProfileField,
    SessionInitFailed,
    SessionNotReady,
    StreamFailed,
    is_credential_error,
)
from travel_chat.llm.chat.models import (
    ChatEvent,
    ChatMessage,
    ChatRole,
    ChatSessionConfig,
    ConversationInfo,
    Profile,
    SessionState,
)
from travel_chat.llm.chat.prompts import (
    INITIAL_PROMPT_TEMPLATE,
    default_session_config,
    render_bootstrap_prompt,
)
from travel_chat.llm.chat.session import ChatSession, RemoteChatClient, open_chat_session

logger = logging.getLogger(__name__)

# Type alias for event subscribers
HistoryListener = Callable[[ChatEvent], Awaitable[None]]


def parse_profile(profile: Profile | Mapping[str, Any]) -> Profile:
    """Validate a raw profile mapping.

    Raises:
        InvalidProfileField: If fields are missing or invalid.
    """
    if isinstance(profile, Profile):
        return profile
    try:
        return Profile.model_validate(profile)
    except ValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise InvalidProfileField(
            f"Invalid travel profile field(s): {', '.join(fields)}",
            fields=fields,
        ) from e


class SessionManager:
    """Owns one chat session, its state and its message history.

    Calls to start/send/retry are expected to be serialized by the caller.
    A start() issued while a turn is streaming supersedes that turn: its
    remaining fragments are dropped and its stream is closed.
    """

    def __init__(
        self,
        client: RemoteChatClient,
        config: ChatSessionConfig | None = None,
        template: str = INITIAL_PROMPT_TEMPLATE,
        conversation_id: str | None = None,
    ):
        self.conversation_id = conversation_id or str(uuid.uuid4())[:12]
        self.created_at = datetime.now()
        self.last_activity = datetime.now()
        self._client = client
        self._config = config or default_session_config()
        self._template = template
        self._state = SessionState.UNINITIALIZED
        self._session: ChatSession | None = None
        self._messages: list[ChatMessage] = []
        self._profile: Profile | None = None
        self._reply: ChatMessage | None = None  # model message of the open turn
        self._failed_reply: ChatMessage | None = None  # partial reply of a failed turn
        self._last_utterance: str | None = None
        self._last_error: ChatError | None = None
        self._generation = 0
        self._listeners: list[HistoryListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def messages(self) -> list[ChatMessage]:
        """Copy of the message history."""
        return [m.model_copy() for m in self._messages]

    @property
    def profile(self) -> Profile | None:
        return self._profile

    @property
    def session(self) -> ChatSession | None:
        return self._session

    @property
    def last_error(self) -> ChatError | None:
        return self._last_error

    @property
    def is_busy(self) -> bool:
        """Whether a session open or a turn is in flight."""
        return self._state in (SessionState.INITIALIZING, SessionState.AWAITING_RESPONSE)

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        """Register an event listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start(self, profile: Profile | Mapping[str, Any]) -> None:
        """Open a fresh session and run the bootstrap turn for a profile.

        Any previous session is invalidated and its history discarded.

        Raises:
            InvalidProfileField: If the profile does not validate. No state change.
            SessionInitFailed: If the remote session could not be opened.
            StreamFailed: If the bootstrap reply failed.
        """
        profile = parse_profile(profile)
        self._touch()
        self._profile = profile

        await self._supersede()
        generation = self._generation
        await self._set_state(SessionState.INITIALIZING)
        await self._publish_history()

        try:
            session = await open_chat_session(self._client, self._config)
        except SessionInitFailed as e:
            if generation != self._generation:
                logger.info(f"Ignoring init failure of superseded start for {self.conversation_id}")
                return
            if e.credential_invalid:
                # Profile has to be collected again along with a new key
                self._profile = None
                e.profile_required = True
            await self._fail(e)
            raise

        if generation != self._generation:
            logger.info(f"Discarding session {session.session_id}: superseded during open")
            await self._release_session(session)
            return

        self._session = session
        self._state = SessionState.READY
        logger.info(f"Conversation {self.conversation_id} ready on session {session.session_id}")

        utterance = render_bootstrap_prompt(profile, self._template)
        self._messages.append(ChatMessage(role=ChatRole.USER, content=utterance))
        await self._set_state(SessionState.AWAITING_RESPONSE)
        await self._publish_history()
        await self._run_turn(session, utterance)

    async def send(self, text: str) -> None:
        """Send a user message and stream the model's reply into history.

        Raises:
            SessionNotReady: If the conversation is not ready. History is unchanged.
            StreamFailed: If the reply failed.
        """
        session = self._session
        if self._state != SessionState.READY or session is None:
            logger.warning(
                f"Rejected send on conversation {self.conversation_id} in state {self._state.value}"
            )
            raise SessionNotReady(f"Cannot send a message while the session is {self._state.value}")

        self._touch()
        await self._set_state(SessionState.AWAITING_RESPONSE)
        self._messages.append(ChatMessage(role=ChatRole.USER, content=text))
        await self._publish_history()
        await self._run_turn(session, text)

    async def retry(self) -> None:
        """Retry after a failure.

        With a live session the failed turn is replayed for the same utterance;
        its partial reply is dropped and no user message is added. Without a
        session, start() is re-run with the last profile.

        Raises:
            SessionNotReady: If not failed, or no profile is left to restart with.
        """
        if self._state != SessionState.FAILED:
            raise SessionNotReady(f"Nothing to retry while the session is {self._state.value}")

        self._touch()
        session = self._session
        if session is not None and self._last_utterance is not None:
            logger.info(f"Retrying last turn of conversation {self.conversation_id}")
            self._discard_failed_reply()
            self._last_error = None
            await self._set_state(SessionState.AWAITING_RESPONSE)
            await self._publish_history()
            await self._run_turn(session, self._last_utterance)
            return

        if self._profile is None:
            raise SessionNotReady(
                "No travel profile to restart with; start a new conversation",
                profile_required=True,
            )

        logger.info(f"Restarting conversation {self.conversation_id} with the last profile")
        await self.start(self._profile)

    async def close(self) -> None:
        """Invalidate the current session and drop subscribers.

        A turn in flight is abandoned and the conversation ends up failed.
        """
        await self._supersede()
        if self._state != SessionState.UNINITIALIZED:
            await self._set_state(SessionState.FAILED)
        self._listeners.clear()

    def get_info(self) -> ConversationInfo:
        return ConversationInfo(
            conversation_id=self.conversation_id,
            state=self._state,
            created_at=self.created_at,
            last_activity=self.last_activity,
            messages=self.messages,
            profile=self._profile,
            last_error=self._last_error.to_dict() if self._last_error else None,
        )

    # ------------------------------------------------------------------
    # Turn handling
    # ------------------------------------------------------------------

    async def _run_turn(self, session: ChatSession, utterance: str) -> None:
        """Stream one reply and fold it into a single model message."""
        self._last_utterance = utterance
        self._reply = None
        self._failed_reply = None

        stream = self._client.stream_turn(session.handle, utterance, self.messages)
        try:
            async for fragment in stream:
                if not self._owns(session):
                    logger.debug(f"Dropping fragment for superseded session {session.session_id}")
                    return
                self._fold(fragment)
                await self._publish_history()
        except Exception as e:
            if not self._owns(session):
                logger.info(f"Ignoring stream failure of superseded session {session.session_id}: {e}")
                return
            self._failed_reply = self._reply
            self._reply = None
            error = e if isinstance(e, StreamFailed) else StreamFailed(
                f"Failed to get response from the model: {e}",
                credential_invalid=is_credential_error(e),
            )
            if error.credential_invalid:
                await self._drop_credentials(error)
            await self._fail(error)
            if error is e:
                raise
            raise error from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        if not self._owns(session):
            return
        self._reply = None
        await self._set_state(SessionState.READY)

    def _fold(self, fragment: str) -> None:
        if self._reply is None:
            self._reply = ChatMessage(role=ChatRole.MODEL, content=fragment)
            self._messages.append(self._reply)
        else:
            self._reply.content += fragment

    def _owns(self, session: ChatSession) -> bool:
        return session is self._session and session.is_active

    def _discard_failed_reply(self) -> None:
        failed = self._failed_reply
        self._failed_reply = None
        if failed is not None:
            self._messages = [m for m in self._messages if m is not failed]

    async def _supersede(self) -> None:
        """Invalidate the current session and reset the conversation."""
        self._generation += 1
        old = self._session
        self._session = None
        self._messages = []
        self._reply = None
        self._failed_reply = None
        self._last_utterance = None
        self._last_error = None

        if old is not None:
            await self._release_session(old)
            logger.info(f"Superseded session {old.session_id} of conversation {self.conversation_id}")

    async def _release_session(self, session: ChatSession) -> None:
        session.invalidate()
        try:
            await self._client.close_session(session.handle)
        except Exception as e:
            logger.warning(f"Error closing session {session.session_id}: {e}")

    async def _drop_credentials(self, error: ChatError) -> None:
        """Forget the session and profile after the remote rejected the key."""
        session = self._session
        self._session = None
        self._profile = None
        error.profile_required = True
        if session is not None:
            await self._release_session(session)
        logger.warning(f"Conversation {self.conversation_id} needs a new key and profile")

    async def _fail(self, error: ChatError) -> None:
        logger.error(f"Conversation {self.conversation_id} failed ({error.kind}): {error.message}")
        self._last_error = error
        await self._set_state(SessionState.FAILED)
        await self._emit(ChatEvent(event="error", error=error.to_dict()))

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def _set_state(self, state: SessionState) -> None:
        self._state = state
        await self._emit(ChatEvent(event="state", state=state))

    async def _publish_history(self) -> None:
        await self._emit(ChatEvent(event="history", messages=self.messages))

    async def _emit(self, event: ChatEvent) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.exception(f"Chat listener failed on {event.event} event: {e}")

    def _touch(self) -> None:
        self.last_activity = datetime.now()
