"""Global toggle hotkey adapter based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


class GlobalHotkeyAdapter:
    def __init__(self, hotkey: str = "<ctrl>+<shift>+d") -> None:
        self._hotkey = hotkey
        self._listener: Optional[object] = None
        self._lock = threading.Lock()

    def start(self, on_activate: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        with self._lock:
            if self._listener is not None:
                return
            # Validates the combination before the listener thread starts.
            keyboard.HotKey.parse(self._hotkey)
            self._listener = keyboard.GlobalHotKeys({self._hotkey: on_activate})
            self._listener.start()
        logger.info("Global hotkey registered: %s", self._hotkey)

    def stop(self) -> None:
        with self._lock:
            listener = self._listener
            self._listener = None
        if listener is not None:
            listener.stop()
