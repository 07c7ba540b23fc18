"""Clipboard-based text insertion into the focused application."""

from __future__ import annotations

import logging
import sys
import time

from errors import NO_ACTIVE_TARGET, DictationError
from interfaces import PasteService
from models import CursorPosition, PasteResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


def dependencies_available() -> bool:
    return pyperclip is not None and Controller is not None and Key is not None


class ClipboardPasteService:
    def __init__(self, restore_delay_s: float = 0.1) -> None:
        self._restore_delay_s = restore_delay_s

    def paste_text(self, text: str) -> PasteResult:
        if not text.strip():
            return PasteResult(success=False, reason="empty text", clipboard_restored=True)
        if not dependencies_available():
            return PasteResult(
                success=False,
                reason="clipboard/keyboard dependency missing",
                clipboard_restored=False,
            )

        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
            self._press_paste_chord()
            time.sleep(self._restore_delay_s)
            pyperclip.copy(old_clip)
            return PasteResult(success=True, reason="ok", clipboard_restored=True)
        except Exception as exc:
            logger.warning("Paste failed: %s", exc)
            restored = False
            if old_clip is not None:
                try:
                    pyperclip.copy(old_clip)
                    restored = True
                except Exception:
                    logger.exception("Could not restore the clipboard")
            return PasteResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=restored,
            )

    @staticmethod
    def _press_paste_chord() -> None:
        modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
        keyboard = Controller()
        keyboard.press(modifier)
        keyboard.press("v")
        keyboard.release("v")
        keyboard.release(modifier)


class ClipboardDocument:
    """Document backed by whatever application currently has keyboard focus.

    The focused application owns the real caret; the cursor kept here only
    tracks what this process has inserted.
    """

    def __init__(self, paste_service: PasteService) -> None:
        self._paste_service = paste_service
        self._cursor = CursorPosition()

    def get_cursor(self) -> CursorPosition:
        return self._cursor

    def replace_range(self, text: str, at: CursorPosition) -> None:
        result = self._paste_service.paste_text(text)
        if not result.success:
            raise DictationError(NO_ACTIVE_TARGET, result.reason)

    def set_cursor(self, position: CursorPosition) -> None:
        self._cursor = position
