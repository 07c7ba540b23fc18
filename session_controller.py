"""Top-level dictation state machine."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from config import DictationSettings
from errors import (
    CAPTURE_UNAVAILABLE,
    DAEMON_ERROR,
    DAEMON_UNAVAILABLE,
    ERROR_MESSAGES,
    NETWORK_ERROR,
    NO_ACTIVE_EDITOR,
    DictationError,
)
from health import check_daemon_health
from interfaces import AudioCapture, Document, Notifier, StatusIndicator
from models import ControllerState, SessionConfig, SessionState
from protocol import ErrorMessage, ServerMessage, stream_url
from reconciler import ResultReconciler
from transcription_session import TranscriptionSession

logger = logging.getLogger(__name__)

SettingsProvider = Callable[[], DictationSettings]
DocumentProvider = Callable[[], Optional[Document]]
HealthCheck = Callable[[str], Awaitable[tuple[bool, str]]]
SessionFactory = Callable[..., TranscriptionSession]
StateCallback = Callable[[ControllerState, ControllerState], None]


class SessionController:
    def __init__(
        self,
        capture: AudioCapture,
        settings_provider: SettingsProvider,
        document_provider: DocumentProvider,
        status: StatusIndicator,
        notifier: Notifier,
        health_check: HealthCheck = check_daemon_health,
        session_factory: SessionFactory = TranscriptionSession,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._capture = capture
        self._settings_provider = settings_provider
        self._document_provider = document_provider
        self._status = status
        self._notifier = notifier
        self._health_check = health_check
        self._session_factory = session_factory
        self._on_state_change = on_state_change

        self._lock = asyncio.Lock()
        self._state = ControllerState.IDLE
        self._session: Optional[TranscriptionSession] = None
        self._last_result: Optional[str] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    @property
    def last_result(self) -> Optional[str]:
        return self._last_result

    @property
    def last_error(self) -> Optional[str]:
        """Error code of the most recent failure, cleared by a successful start."""
        return self._last_error

    async def toggle(self) -> None:
        async with self._lock:
            if self._session is not None:
                await self._stop_locked()
            else:
                await self._start_locked()

    async def start(self) -> bool:
        async with self._lock:
            return await self._start_locked()

    async def stop(self) -> None:
        async with self._lock:
            await self._stop_locked()

    def repeat_last(self) -> bool:
        """Insert the last accepted transcript again at the cursor."""
        text = self._last_result
        if not text:
            self._status.set_status("Nothing to repeat")
            return False
        document = self._document_provider()
        if document is None:
            self._report(NO_ACTIVE_EDITOR, ERROR_MESSAGES[NO_ACTIVE_EDITOR])
            return False
        if not self._make_reconciler(document, self._settings_provider()).insert(text):
            return False
        self._status.set_status("🔁 Repeated")
        return True

    async def test_connection(self) -> bool:
        healthy, detail = await self._health_check(self._settings_provider().api_url)
        logger.info("Connection test: %s", detail)
        if healthy:
            self._notifier.notify("✅ Connection successful!")
        else:
            self._notifier.notify("❌ Connection failed. Is the daemon running?")
        return healthy

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _start_locked(self) -> bool:
        if self._session is not None:
            return True

        document = self._document_provider()
        if document is None:
            self._report(NO_ACTIVE_EDITOR, ERROR_MESSAGES[NO_ACTIVE_EDITOR])
            return False

        settings = self._settings_provider()
        if settings.auto_check_daemon:
            healthy, detail = await self._health_check(settings.api_url)
            if not healthy:
                logger.warning("Daemon health check failed: %s", detail)
                self._report(DAEMON_UNAVAILABLE, ERROR_MESSAGES[DAEMON_UNAVAILABLE])
                return False

        try:
            url = stream_url(settings.api_url)
        except ValueError as exc:
            self._report(NETWORK_ERROR, str(exc))
            return False

        reconciler = self._make_reconciler(document, settings)
        session = self._session_factory(
            url,
            self._capture,
            token=settings.api_token,
            on_event=lambda message: self._handle_event(session, reconciler, message),
            on_closed=lambda code, reason: self._handle_closed(session, code, reason),
        )
        self._session = session
        try:
            await session.connect(SessionConfig(settings.language, settings.enable_correction))
        except DictationError as exc:
            logger.warning("Dictation failed to start: %s", exc)
            self._session = None
            await session.disconnect()
            self._report(exc.code, f"Failed to start dictation: {exc.message}")
            return False

        self._last_error = None
        self._transition(ControllerState.RECORDING)
        self._status.set_status("🎤 Recording...")
        self._notifier.notify("🎤 Dictation started")
        return True

    async def _stop_locked(self) -> None:
        session = self._session
        if session is None:
            return
        await session.disconnect()
        self._session = None
        self._status.set_status("Ready")
        self._notifier.notify("⏹️ Dictation stopped")
        self._transition(ControllerState.IDLE)

    def _handle_event(
        self,
        session: TranscriptionSession,
        reconciler: ResultReconciler,
        message: ServerMessage,
    ) -> None:
        if session is not self._session:
            logger.debug("Ignoring %s from a replaced session", type(message).__name__)
            return
        outcome = reconciler.apply(message)
        if outcome.inserted is not None:
            self._last_result = outcome.inserted
        if isinstance(message, ErrorMessage) and session.state == SessionState.FAILED:
            logger.warning("%s: %s", DAEMON_ERROR, message.message)
            self._last_error = DAEMON_ERROR
            self._session = None
            self._transition(ControllerState.ERROR)

    def _handle_closed(self, session: TranscriptionSession, code: str, reason: str) -> None:
        if session is not self._session:
            return
        self._session = None
        self._last_error = code
        if code == CAPTURE_UNAVAILABLE:
            self._status.set_status("Microphone unavailable")
        else:
            self._status.set_status("Connection lost")
        self._notifier.notify(f"❌ Dictation stopped: {reason}")
        self._transition(ControllerState.IDLE)

    def _make_reconciler(self, document: Document, settings: DictationSettings) -> ResultReconciler:
        return ResultReconciler(
            document,
            self._status,
            self._notifier,
            enable_correction=settings.enable_correction,
            show_partial_results=settings.show_partial_results,
            show_confidence=settings.show_confidence,
        )

    def _report(self, code: str, message: str) -> None:
        logger.info("%s: %s", code, message)
        self._last_error = code
        self._status.set_status("Error")
        self._notifier.notify(f"❌ {message}")
        self._transition(ControllerState.ERROR)

    def _transition(self, to_state: ControllerState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
