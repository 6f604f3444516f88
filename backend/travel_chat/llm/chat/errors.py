"""Errors raised by the chat session layer.

Every failure carries a machine-readable ``kind`` plus a human-readable
message. Remote failures that look like a rejected or unknown credential are
flagged with ``credential_invalid`` so callers can prompt for a new key.
"""

from typing import Any

# Substrings the remote services use when the key or project is unusable
CREDENTIAL_MARKERS = (
    "requested entity was not found",
    "api key",
    "api_key_invalid",
    "permission denied",
    "permission_denied",
    "unauthenticated",
)


class ChatError(Exception):
    """Base exception for chat session errors."""

    kind = "chat_error"

    def __init__(
        self,
        message: str,
        credential_invalid: bool = False,
        profile_required: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.credential_invalid = credential_invalid
        self.profile_required = profile_required

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "credential_invalid": self.credential_invalid,
            "profile_required": self.profile_required,
        }


class SessionNotReady(ChatError):
    """An operation was attempted in a state that does not allow it."""

    kind = "session_not_ready"


class SessionInitFailed(ChatError):
    """The remote chat session could not be opened."""

    kind = "session_init_failed"


class StreamFailed(ChatError):
    """The response stream failed, before or after yielding fragments."""

    kind = "stream_failed"


class InvalidProfileField(ChatError):
    """The travel profile is missing fields or has invalid values."""

    kind = "invalid_profile_field"

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["fields"] = self.fields
        return data


def is_credential_error(error: BaseException) -> bool:
    """Check whether a provider exception points at a bad credential.

    Looks at HTTP-style status codes exposed by the provider SDKs and at the
    error text for the markers the services are known to return.
    """
    code = getattr(error, "code", None) or getattr(error, "status_code", None)
    if code in (401, 403):
        return True

    text = str(error).lower()
    return any(marker in text for marker in CREDENTIAL_MARKERS)
