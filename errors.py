"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

CAPTURE_UNAVAILABLE = "CAPTURE_UNAVAILABLE"
NETWORK_ERROR = "NETWORK_ERROR"
DAEMON_UNAVAILABLE = "DAEMON_UNAVAILABLE"
DAEMON_ERROR = "DAEMON_ERROR"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"
NO_ACTIVE_EDITOR = "NO_ACTIVE_EDITOR"
CANCELLED = "CANCELLED"
SESSION_ACTIVE = "SESSION_ACTIVE"

ERROR_MESSAGES = {
    CAPTURE_UNAVAILABLE: "Microphone is not available or permission was denied.",
    NETWORK_ERROR: "Connection to the Dictate2Me daemon failed, please retry.",
    DAEMON_UNAVAILABLE: "Dictate2Me daemon is not running. Please start it first.",
    DAEMON_ERROR: "The Dictate2Me daemon reported an error.",
    NO_ACTIVE_TARGET: "No active input target, text was not inserted.",
    NO_ACTIVE_EDITOR: "No active note found.",
    CANCELLED: "Dictation was cancelled.",
    SESSION_ACTIVE: "Dictation is already running.",
}


class DictationError(Exception):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code
        self.message = str(self)


class SessionActiveError(DictationError):
    def __init__(self, message: str = "session already active") -> None:
        super().__init__(SESSION_ACTIVE, message)


class ProtocolError(ValueError):
    """Raised for frames that cannot be decoded as protocol messages."""
