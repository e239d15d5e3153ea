"""Tests for patchright_daemon.errors."""

from __future__ import annotations

import pytest
from patchright._impl._errors import TargetClosedError

from patchright_daemon.errors import (
    ApplicationError,
    ChannelTimeoutError,
    DaemonError,
    FatalStartupError,
    SessionLostError,
    classify_engine_error,
)


class TestClassifyEngineError:
    def test_target_closed_error(self):
        err = classify_engine_error(TargetClosedError("Target closed"))
        assert isinstance(err, SessionLostError)

    @pytest.mark.parametrize(
        "message",
        [
            "Target page, context or browser has been closed",
            "Browser closed.",
            "Page closed",
            "Connection closed while reading from the driver",
            "Browser has been disconnected",
        ],
    )
    def test_session_lost_messages(self, message):
        err = classify_engine_error(Exception(message))
        assert isinstance(err, SessionLostError)
        assert str(err) == message

    @pytest.mark.parametrize(
        "message",
        [
            "ReferenceError: foo is not defined",
            "Timeout 30000ms exceeded.",
            "net::ERR_NAME_NOT_RESOLVED at https://nope.invalid/",
            "net::ERR_CONNECTION_CLOSED at http://localhost:1/",
            "net::ERR_CONNECTION_REFUSED at http://localhost:1/",
        ],
    )
    def test_application_messages(self, message):
        err = classify_engine_error(Exception(message))
        assert isinstance(err, ApplicationError)
        assert str(err) == message

    def test_typed_error_passes_through(self):
        original = FatalStartupError("no browser")
        assert classify_engine_error(original) is original

    def test_empty_message_uses_type_name(self):
        err = classify_engine_error(ValueError())
        assert isinstance(err, ApplicationError)
        assert str(err) == "ValueError"


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls", [SessionLostError, ApplicationError, FatalStartupError]
    )
    def test_subclasses_daemon_error(self, cls):
        assert issubclass(cls, DaemonError)

    def test_timeout_carries_bound(self):
        err = ChannelTimeoutError("late", timeout=2.5)
        assert err.timeout == 2.5
        assert str(err) == "late"
