"""Application entrypoint: tray app driving dictation into the focused window."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Coroutine, Optional

from audio_capture import SoundDeviceCapture
from auto_paste import ClipboardDocument, ClipboardPasteService, dependencies_available
from config import DictationSettings, JsonConfigStore
from hotkey import GlobalHotkeyAdapter
from legacy import ApiCorrector, ApiTranscriber, LegacyDictation
from logging_setup import setup_logging
from models import ControllerState
from overlay import OverlayWindow
from session_controller import SessionController

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

ICON_IDLE = "#888888"
ICON_RECORDING = "#FF4444"
ICON_ERROR = "#FF8800"

_TOGGLE_SETTINGS = (
    ("enable_correction", "Enable text correction"),
    ("show_partial_results", "Show partial results"),
    ("show_confidence", "Show confidence score"),
    ("auto_check_daemon", "Auto-check daemon"),
)


def _create_icon(color: str = ICON_IDLE, size: int = 22) -> QIcon:
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


def _run_asyncio_loop(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    loop.run_forever()


class UIBridge(QObject):
    status_signal = Signal(str)
    notice_signal = Signal(str)
    state_signal = Signal(str, str)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.settings = self.config_store.load()

        self.loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=_run_asyncio_loop, args=(self.loop,), daemon=True, name="DictationLoop"
        )
        self._loop_thread.start()

        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.status_signal.connect(self._on_status_ui)
        self.ui.notice_signal.connect(self._on_notice_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)

        self.capture = SoundDeviceCapture()
        self.document = ClipboardDocument(ClipboardPasteService())
        self.controller = SessionController(
            capture=self.capture,
            settings_provider=lambda: self.settings,
            document_provider=self._active_document,
            status=self,
            notifier=self,
            on_state_change=self._on_state_change,
        )
        self.hotkey = GlobalHotkeyAdapter(self.settings.hotkey)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self._setup_menu()
        self.set_status("Ready")
        self.tray.show()

    # ------------------------------------------------------------------
    # StatusIndicator / Notifier (called from the asyncio thread)
    # ------------------------------------------------------------------

    def set_status(self, text: str) -> None:
        self.ui.status_signal.emit(text)

    def notify(self, text: str) -> None:
        self.ui.notice_signal.emit(text)

    def _on_state_change(self, from_state: ControllerState, to_state: ControllerState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _active_document(self) -> Optional[ClipboardDocument]:
        return self.document if dependencies_available() else None

    # ------------------------------------------------------------------
    # Menu
    # ------------------------------------------------------------------

    def _setup_menu(self) -> None:
        menu = QMenu()

        self._toggle_action = QAction("Start Dictation", menu)
        self._toggle_action.triggered.connect(self._on_toggle)
        menu.addAction(self._toggle_action)

        repeat_action = QAction("Repeat Last Transcription", menu)
        repeat_action.triggered.connect(lambda: self.loop.call_soon_threadsafe(self.controller.repeat_last))
        menu.addAction(repeat_action)

        legacy_action = QAction("Quick Dictation (3 s, REST)", menu)
        legacy_action.triggered.connect(self._on_quick_dictation)
        menu.addAction(legacy_action)

        menu.addSeparator()
        settings_menu = menu.addMenu("Settings")
        for name, label in (("api_url", "API URL"), ("api_token", "API Token"), ("language", "Language")):
            action = QAction(f"{label}...", settings_menu)
            action.triggered.connect(lambda _checked=False, n=name, l=label: self._edit_text_setting(n, l))
            settings_menu.addAction(action)
        settings_menu.addSeparator()
        for name, label in _TOGGLE_SETTINGS:
            action = QAction(label, settings_menu)
            action.setCheckable(True)
            action.setChecked(getattr(self.settings, name))
            action.toggled.connect(lambda checked, n=name: self._update_settings(**{n: checked}))
            settings_menu.addAction(action)

        test_action = QAction("Test Connection", menu)
        test_action.triggered.connect(lambda: self._submit(self.controller.test_connection()))
        menu.addAction(test_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _edit_text_setting(self, name: str, label: str) -> None:
        value, ok = QInputDialog.getText(None, label, label, text=getattr(self.settings, name))
        if ok:
            self._update_settings(**{name: value.strip()})

    def _update_settings(self, **changes: Any) -> None:
        self.settings = self.config_store.update(**changes)
        logger.info("Settings updated: %s", ", ".join(changes))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _on_toggle(self) -> None:
        self._submit(self.controller.toggle())

    def _on_quick_dictation(self) -> None:
        if self.controller.is_recording:
            self.notify("Stop streaming dictation first")
            return
        settings: DictationSettings = self.settings
        dictation = LegacyDictation(
            capture=self.capture,
            transcriber=ApiTranscriber(settings.api_url, token=settings.api_token),
            corrector=ApiCorrector(settings.api_url, token=settings.api_token),
            status=self,
        )
        self._submit(dictation.run(self._active_document()))

    def _submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error("Background task failed", exc_info=future.exception())

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_status_ui(self, text: str) -> None:
        self.tray.setToolTip(f"Dictate2Me: {text}")
        if self.controller.is_recording:
            self.overlay.show_status(text)

    def _on_notice_ui(self, text: str) -> None:
        self.overlay.show_notice(text)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == ControllerState.RECORDING.value:
            self.tray.setIcon(_create_icon(ICON_RECORDING))
            self._toggle_action.setText("Stop Dictation")
        elif to_state == ControllerState.IDLE.value:
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self._toggle_action.setText("Start Dictation")
            self.overlay.hide_with_delay(1500)
        elif to_state == ControllerState.ERROR.value:
            self.tray.setIcon(_create_icon(ICON_ERROR))
            self._toggle_action.setText("Start Dictation")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(on_activate=self._on_toggle)
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)
            self.overlay.show_notice(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        try:
            self._submit(self.controller.stop()).result(timeout=5.0)
        except Exception:
            logger.exception("Error stopping dictation on quit")
        self.capture.stop()
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.app.quit()


def main() -> int:
    parser = argparse.ArgumentParser(description="Dictate2Me desktop dictation client")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    args = parser.parse_args()
    setup_logging(Path.home() / ".dictate2me" / "logs", verbose=args.verbose)

    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
