"""Tests for chat models and errors."""

import pytest
from pydantic import ValidationError

from travel_chat.llm.chat.errors import (
    InvalidProfileField,
    SessionInitFailed,
    SessionNotReady,
    StreamFailed,
    is_credential_error,
)
from travel_chat.llm.chat.manager import parse_profile
from travel_chat.llm.chat.models import ChatMessage, ChatRole, Profile


class TestProfile:
    """Tests for the Profile model."""

    def test_populate_by_alias_or_name(self):
        """Test both template aliases and field names are accepted."""
        by_alias = Profile.model_validate({
            "destination": "Rome",
            "dateRange": "April",
            "partySize": 2,
            "budget": 900,
            "style": "mid-range",
            "interests": "history",
        })
        by_name = Profile(
            destination="Rome",
            date_range="April",
            party_size=2,
            budget=900,
            style="mid-range",
            interests="history",
        )

        assert by_alias == by_name

    def test_template_values(self, profile):
        """Test template values are keyed by alias and stringified."""
        values = profile.template_values()

        assert values == {
            "destination": "Tokyo",
            "dateRange": "3/1-3/5",
            "partySize": "2",
            "budget": "500000",
            "style": "backpacking",
            "interests": "food",
        }

    def test_non_positive_numbers_rejected(self):
        """Test party size and budget must be positive."""
        with pytest.raises(ValidationError):
            Profile(
                destination="Rome",
                date_range="April",
                party_size=0,
                budget=-5,
                style="mid-range",
                interests="history",
            )

    def test_whitespace_only_answers_rejected(self):
        """Test a blank answer does not count as a filled-in field."""
        with pytest.raises(ValidationError):
            Profile(
                destination="   ",
                date_range="April",
                party_size=2,
                budget=900,
                style="mid-range",
                interests="history",
            )

    def test_answers_are_stripped(self):
        """Test surrounding whitespace is trimmed from text answers."""
        profile = Profile(
            destination="  Tokyo ",
            date_range="April\n",
            party_size=2,
            budget=900,
            style="mid-range",
            interests="history",
        )

        assert profile.destination == "Tokyo"
        assert profile.date_range == "April"

    def test_profile_is_immutable(self, profile):
        """Test a captured profile cannot be changed."""
        with pytest.raises(ValidationError):
            profile.destination = "Seoul"

    def test_parse_profile_lists_fields(self):
        """Test parse_profile reports every bad field."""
        with pytest.raises(InvalidProfileField) as exc_info:
            parse_profile({"destination": "", "budget": "lots"})

        fields = exc_info.value.fields
        assert "destination" in fields
        assert "budget" in fields
        assert "style" in fields
        assert exc_info.value.to_dict()["fields"] == fields

    def test_parse_profile_passthrough(self, profile):
        """Test an existing Profile is returned unchanged."""
        assert parse_profile(profile) is profile


class TestChatMessage:
    """Tests for ChatMessage."""

    def test_role_stored_as_value(self):
        """Test roles serialize as plain strings."""
        msg = ChatMessage(role=ChatRole.MODEL, content="hi")

        assert msg.role == "model"
        assert msg.role == ChatRole.MODEL
        assert msg.model_dump()["role"] == "model"


class TestErrors:
    """Tests for chat errors and credential detection."""

    def test_error_kinds(self):
        """Test each error exposes a distinct kind."""
        kinds = {
            SessionNotReady("x").kind,
            SessionInitFailed("x").kind,
            StreamFailed("x").kind,
            InvalidProfileField("x").kind,
        }
        assert len(kinds) == 4

    def test_to_dict(self):
        """Test the error payload carries message and flags."""
        err = StreamFailed("Failed to get response", credential_invalid=True)

        assert str(err) == "Failed to get response"
        assert err.to_dict() == {
            "kind": "stream_failed",
            "message": "Failed to get response",
            "credential_invalid": True,
            "profile_required": False,
        }

    @pytest.mark.parametrize(
        "message",
        [
            "404 NOT_FOUND. Requested entity was not found.",
            "400 INVALID_ARGUMENT. API key not valid. Please pass a valid API key.",
            "403 PERMISSION_DENIED",
        ],
    )
    def test_credential_markers(self, message):
        """Test known credential messages are detected."""
        assert is_credential_error(RuntimeError(message))

    def test_credential_status_codes(self):
        """Test 401/403 status codes are detected."""

        class StatusError(Exception):
            def __init__(self, status_code: int):
                super().__init__("request failed")
                self.status_code = status_code

        class CodeError(Exception):
            code = 401

        assert is_credential_error(StatusError(403))
        assert is_credential_error(CodeError("nope"))
        assert not is_credential_error(StatusError(500))

    def test_other_errors_not_credential(self):
        """Test ordinary failures are not flagged."""
        assert not is_credential_error(RuntimeError("503 UNAVAILABLE: model overloaded"))
        assert not is_credential_error(TimeoutError())
