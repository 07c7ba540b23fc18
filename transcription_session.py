"""Streaming transcription session over the daemon's WebSocket endpoint.

One session owns one connection at a time.  The ``start`` frame is sent as
soon as the transport opens, before any audio.  Audio frames arrive on the
capture thread, are handed to the event loop with ``call_soon_threadsafe``
and drained in capture order by a single send task.  Daemon frames are
decoded by a receive task and forwarded to ``on_event``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Awaitable, Callable, Optional

from errors import (
    CANCELLED,
    CAPTURE_UNAVAILABLE,
    NETWORK_ERROR,
    DictationError,
    ProtocolError,
    SessionActiveError,
)
from interfaces import AudioCapture, Connection
from models import AudioFrame, SessionConfig, SessionState
from protocol import (
    AudioMessage,
    ErrorMessage,
    ServerMessage,
    StartMessage,
    StopMessage,
    UnknownMessage,
    decode_server_message,
    encode_client_message,
)
from transport import open_websocket

logger = logging.getLogger(__name__)

Connector = Callable[[str, str, float], Awaitable[Connection]]
EventCallback = Callable[[ServerMessage], None]
StateCallback = Callable[[SessionState, SessionState], None]
ClosedCallback = Callable[[str, str], None]

_LIVE_STATES = (SessionState.CONNECTING, SessionState.RECORDING)


class TranscriptionSession:
    def __init__(
        self,
        stream_url: str,
        capture: AudioCapture,
        token: str = "",
        on_event: Optional[EventCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_closed: Optional[ClosedCallback] = None,
        connector: Optional[Connector] = None,
        open_timeout_s: float = 5.0,
        close_timeout_s: float = 3.0,
        send_queue_maxsize: int = 64,
    ) -> None:
        self._stream_url = stream_url
        self._capture = capture
        self._token = token
        self._on_event = on_event
        self._on_state_change = on_state_change
        self._on_closed = on_closed
        self._connector = connector or open_websocket
        self._open_timeout_s = open_timeout_s
        self._close_timeout_s = close_timeout_s
        self._send_queue_maxsize = send_queue_maxsize

        self._state = SessionState.IDLE
        self._generation = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connection: Optional[Connection] = None
        self._send_queue: Optional[asyncio.Queue[AudioFrame | None]] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._abort_task: Optional[asyncio.Task] = None
        self._frame_handler: Optional[Callable[[AudioFrame], None]] = None
        self.dropped_frames = 0

    @property
    def state(self) -> SessionState:
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, config: SessionConfig) -> None:
        if self._state != SessionState.IDLE:
            raise SessionActiveError(f"session already active ({self._state.value})")
        self._loop = asyncio.get_running_loop()
        self._generation += 1
        generation = self._generation
        self._transition(SessionState.CONNECTING)

        try:
            connection = await self._connector(
                self._stream_url, self._token, self._open_timeout_s
            )
        except Exception as exc:
            logger.warning("Could not connect to %s: %s", self._stream_url, exc)
            if self._state != SessionState.IDLE:
                self._transition(SessionState.IDLE)
            raise DictationError(NETWORK_ERROR, f"cannot connect to daemon: {exc}") from exc

        if self._state != SessionState.CONNECTING or generation != self._generation:
            await _close_quietly(connection)
            raise DictationError(CANCELLED, "connection cancelled")

        self._connection = connection
        logger.info("Connected to %s (language=%s, correction=%s)",
                    self._stream_url, config.language, config.enable_correction)
        try:
            await connection.send(encode_client_message(StartMessage(config)))
        except Exception as exc:
            logger.warning("Failed to send start message: %s", exc)
            await self._release(SessionState.IDLE)
            raise DictationError(NETWORK_ERROR, f"cannot start stream: {exc}") from exc
        if self._state != SessionState.CONNECTING:
            raise DictationError(CANCELLED, "connection cancelled")

        self._send_queue = asyncio.Queue()
        self._frame_handler = functools.partial(self._on_frame, generation)
        self._capture.on_data(self._frame_handler)
        self._capture.on_error(functools.partial(self._on_capture_error, generation))
        self._drain_task = self._loop.create_task(self._drain_loop(connection, self._send_queue))
        self._receive_task = self._loop.create_task(self._receive_loop(connection))

        if not self._capture.start():
            logger.warning("Audio capture unavailable, tearing the stream down")
            await self.disconnect()
            raise DictationError(CAPTURE_UNAVAILABLE)
        self._transition(SessionState.RECORDING)

    async def disconnect(self) -> None:
        """Stop streaming and close the transport; safe to call in any state."""
        if self._state == SessionState.FAILED:
            if self._connection is None:
                self._transition(SessionState.IDLE)
            return
        if self._state not in _LIVE_STATES:
            return

        self._transition(SessionState.STOPPING)
        self._release_capture()
        await self._flush_audio()

        connection = self._connection
        if connection is not None:
            try:
                await connection.send(encode_client_message(StopMessage()))
            except Exception as exc:
                logger.debug("Could not send stop message: %s", exc)
            else:
                await self._wait_for_remote_close()
        await self._release(SessionState.IDLE)

    # ------------------------------------------------------------------
    # Audio path
    # ------------------------------------------------------------------

    def _on_frame(self, generation: int, frame: AudioFrame) -> None:
        """Capture-thread entry point; must not block."""
        loop = self._loop
        if loop is None or self._state != SessionState.RECORDING:
            return
        try:
            loop.call_soon_threadsafe(self._enqueue_frame, generation, frame)
        except RuntimeError:
            pass  # loop already closed

    def _enqueue_frame(self, generation: int, frame: AudioFrame) -> None:
        queue = self._send_queue
        if (
            generation != self._generation
            or self._state != SessionState.RECORDING
            or queue is None
        ):
            return
        if queue.qsize() >= self._send_queue_maxsize:
            self.dropped_frames += 1
            logger.warning("Send queue full, dropping audio frame (%d dropped)", self.dropped_frames)
            return
        queue.put_nowait(frame)

    async def _drain_loop(self, connection: Connection, queue: asyncio.Queue[AudioFrame | None]) -> None:
        while True:
            frame = await queue.get()
            if frame is None:
                return
            try:
                await connection.send(encode_client_message(AudioMessage(frame.pcm16_bytes)))
            except Exception as exc:
                logger.warning("Error sending audio frame, stopping send loop: %s", exc)
                return

    async def _flush_audio(self) -> None:
        """Let frames captured before the stop request reach the daemon."""
        queue = self._send_queue
        task = self._drain_task
        if queue is None or task is None or task.done():
            return
        queue.put_nowait(None)
        await asyncio.wait({task}, timeout=self._close_timeout_s)
        if not task.done():
            logger.warning("Timed out flushing audio, discarding %d frames", queue.qsize())
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Receive path
    # ------------------------------------------------------------------

    async def _receive_loop(self, connection: Connection) -> None:
        try:
            async for raw in connection:
                if not isinstance(raw, str):
                    logger.debug("Ignoring unexpected binary frame")
                    continue
                try:
                    message = decode_server_message(raw)
                except ProtocolError as exc:
                    logger.warning("Ignoring malformed frame: %s", exc)
                    continue
                if isinstance(message, UnknownMessage):
                    logger.warning("Unknown message type: %s", message.type)
                    continue
                if isinstance(message, ErrorMessage) and self._state in _LIVE_STATES:
                    logger.error("Daemon error: %s", message.message)
                    self._transition(SessionState.FAILED)
                    self._emit(message)
                    await self._release(SessionState.FAILED)
                    return
                self._emit(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Transport error: %s", exc)

        if self._state in _LIVE_STATES:
            logger.warning("Connection closed by daemon")
            await self._release(SessionState.IDLE)
            self._notify_closed(NETWORK_ERROR, "connection closed by daemon")

    async def _wait_for_remote_close(self) -> None:
        task = self._receive_task
        if task is None or task.done():
            return
        await asyncio.wait({task}, timeout=self._close_timeout_s)

    # ------------------------------------------------------------------
    # Capture errors
    # ------------------------------------------------------------------

    def _on_capture_error(self, generation: int, message: str) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._handle_capture_error, generation, message)
        except RuntimeError:
            pass

    def _handle_capture_error(self, generation: int, message: str) -> None:
        loop = self._loop
        if loop is None or generation != self._generation or self._state != SessionState.RECORDING:
            return
        self._abort_task = loop.create_task(self._abort_after_capture_error(generation, message))

    async def _abort_after_capture_error(self, generation: int, message: str) -> None:
        if generation != self._generation or self._state != SessionState.RECORDING:
            return
        await self.disconnect()
        self._notify_closed(CAPTURE_UNAVAILABLE, f"audio capture failed: {message}")

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _release_capture(self) -> None:
        handler = self._frame_handler
        self._frame_handler = None
        if handler is not None and self._capture.detach(handler):
            self._capture.stop()

    async def _release(self, final_state: SessionState) -> None:
        self._release_capture()
        current = asyncio.current_task()
        tasks = [
            t for t in (self._drain_task, self._receive_task, self._abort_task) if t is not None
        ]
        self._drain_task = None
        self._receive_task = None
        self._abort_task = None
        pending = [t for t in tasks if t is not current and not t.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Session task failed during teardown")

        connection = self._connection
        self._connection = None
        self._send_queue = None
        if connection is not None:
            await _close_quietly(connection)
            logger.info("Stream closed")
        self._transition(final_state)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _emit(self, message: ServerMessage) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(message)
        except Exception:
            logger.exception("Event handler failed for %s", type(message).__name__)

    def _notify_closed(self, code: str, reason: str) -> None:
        if self._on_closed is None:
            return
        try:
            self._on_closed(code, reason)
        except Exception:
            logger.exception("Close handler failed")

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("Session %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


async def _close_quietly(connection: Connection) -> None:
    try:
        await connection.close()
    except Exception as exc:
        logger.debug("Error closing transport: %s", exc)
