"""Core data models for the dictation client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    RECORDING = "RECORDING"
    STOPPING = "STOPPING"
    FAILED = "FAILED"


class ControllerState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    ERROR = "ERROR"


class RequestOutcome(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class SessionConfig:
    language: str
    enable_correction: bool = True


@dataclass(frozen=True)
class FinalResult:
    transcript: str
    corrected: str = ""
    confidence: float = 0.0


@dataclass(frozen=True)
class CursorPosition:
    line: int = 0
    ch: int = 0

    def advanced_by(self, text: str) -> CursorPosition:
        """Position just past ``text`` inserted at this position."""
        newlines = text.count("\n")
        if not newlines:
            return CursorPosition(self.line, self.ch + len(text))
        return CursorPosition(self.line + newlines, len(text) - text.rfind("\n") - 1)


@dataclass(frozen=True)
class ServiceResult:
    text: str
    outcome: RequestOutcome
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == RequestOutcome.OK


@dataclass(frozen=True)
class ReconcileOutcome:
    inserted: Optional[str] = None
    confidence_percent: Optional[int] = None


@dataclass
class PasteResult:
    success: bool
    reason: str
    clipboard_restored: bool
