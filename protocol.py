"""Encode and decode the daemon's streaming wire protocol.

Every frame is a UTF-8 JSON text frame of the form ``{"type": ..., "data": ...}``.

Client to daemon:
  start   {"language": str, "enableCorrection": bool}
  audio   {"data": base64 PCM16LE}
  stop    (no data)

Daemon to client:
  partial {"text": str}
  final   {"transcript": str, "corrected": str, "confidence": float}
  error   {"message": str}

Unknown daemon message types decode to ``UnknownMessage`` instead of failing.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import urlsplit, urlunsplit

from errors import ProtocolError
from models import FinalResult, SessionConfig


# ---------------------------------------------------------------------------
# Client -> daemon
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StartMessage:
    config: SessionConfig


@dataclass(frozen=True)
class AudioMessage:
    pcm16_bytes: bytes


@dataclass(frozen=True)
class StopMessage:
    pass


# ---------------------------------------------------------------------------
# Daemon -> client
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PartialMessage:
    text: str


@dataclass(frozen=True)
class FinalMessage:
    result: FinalResult


@dataclass(frozen=True)
class ErrorMessage:
    message: str


@dataclass(frozen=True)
class UnknownMessage:
    type: str
    data: dict = field(default_factory=dict)


ClientMessage = Union[StartMessage, AudioMessage, StopMessage]
ServerMessage = Union[PartialMessage, FinalMessage, ErrorMessage, UnknownMessage]

_DEFAULT_ERROR_MESSAGE = "Unknown error"


def stream_url(api_url: str) -> str:
    """Derive the WebSocket streaming endpoint from the daemon's base API URL.

    ``http://localhost:8765/api/v1`` becomes ``ws://localhost:8765/api/v1/stream``.
    """
    parts = urlsplit(api_url.strip())
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    if scheme not in ("ws", "wss"):
        raise ValueError(f"unsupported API URL scheme: {api_url!r}")
    path = parts.path.rstrip("/") + "/stream"
    return urlunsplit((scheme, parts.netloc, path, parts.query, ""))


# ---------------------------------------------------------------------------
# Client messages
# ---------------------------------------------------------------------------

def encode_client_message(msg: ClientMessage) -> str:
    """Encode a client message dataclass to a JSON text frame.

    Raises:
        TypeError: If msg is not a client message type.
    """
    if isinstance(msg, StartMessage):
        obj: dict[str, Any] = {
            "type": "start",
            "data": {
                "language": msg.config.language,
                "enableCorrection": msg.config.enable_correction,
            },
        }
    elif isinstance(msg, AudioMessage):
        obj = {
            "type": "audio",
            "data": {"data": base64.b64encode(msg.pcm16_bytes).decode("ascii")},
        }
    elif isinstance(msg, StopMessage):
        obj = {"type": "stop"}
    else:
        raise TypeError(f"Unknown client message type: {type(msg)}")
    return json.dumps(obj)


def decode_client_message(text: str) -> ClientMessage:
    """Decode a client frame; used on the daemon side and by test doubles.

    Raises:
        ProtocolError: On invalid JSON, an unknown type or bad audio payload.
    """
    msg_type, data = _split_frame(text)
    if msg_type == "start":
        return StartMessage(
            SessionConfig(
                language=str(data.get("language", "")),
                enable_correction=bool(data.get("enableCorrection", False)),
            )
        )
    if msg_type == "audio":
        try:
            payload = base64.b64decode(str(data.get("data", "")), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ProtocolError(f"invalid base64 audio: {exc}") from exc
        if len(payload) % 2:
            raise ProtocolError("audio payload length must be even")
        return AudioMessage(payload)
    if msg_type == "stop":
        return StopMessage()
    raise ProtocolError(f"unknown client message type: {msg_type!r}")


# ---------------------------------------------------------------------------
# Daemon messages
# ---------------------------------------------------------------------------

def encode_server_message(msg: ServerMessage) -> str:
    """Encode a daemon message dataclass to a JSON text frame."""
    if isinstance(msg, PartialMessage):
        obj: dict[str, Any] = {"type": "partial", "data": {"text": msg.text}}
    elif isinstance(msg, FinalMessage):
        obj = {
            "type": "final",
            "data": {
                "transcript": msg.result.transcript,
                "corrected": msg.result.corrected,
                "confidence": msg.result.confidence,
            },
        }
    elif isinstance(msg, ErrorMessage):
        obj = {"type": "error", "data": {"message": msg.message}}
    elif isinstance(msg, UnknownMessage):
        obj = {"type": msg.type, "data": msg.data}
    else:
        raise TypeError(f"Unknown server message type: {type(msg)}")
    return json.dumps(obj)


def decode_server_message(text: str) -> ServerMessage:
    """Decode a daemon text frame into a typed message.

    Raises:
        ProtocolError: On invalid JSON or a frame without a ``type`` field.
    """
    msg_type, data = _split_frame(text)
    if msg_type == "partial":
        return PartialMessage(text=str(data.get("text") or ""))
    if msg_type == "final":
        return FinalMessage(
            FinalResult(
                transcript=str(data.get("transcript") or ""),
                corrected=str(data.get("corrected") or ""),
                confidence=_clamp_confidence(data.get("confidence")),
            )
        )
    if msg_type == "error":
        return ErrorMessage(message=str(data.get("message") or _DEFAULT_ERROR_MESSAGE))
    return UnknownMessage(type=msg_type, data=data)


def _split_frame(text: str | bytes) -> tuple[str, dict]:
    try:
        obj = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON frame: {exc}") from exc
    if not isinstance(obj, dict):
        raise ProtocolError("Frame must be a JSON object")
    msg_type = obj.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ProtocolError("Frame missing 'type' field")
    data = obj.get("data")
    return msg_type, data if isinstance(data, dict) else {}


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return min(1.0, max(0.0, confidence))
