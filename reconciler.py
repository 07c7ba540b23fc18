"""Applies daemon results to the document and the status indicator."""

from __future__ import annotations

import logging
import math
from typing import Optional

from errors import DictationError
from interfaces import Document, Notifier, StatusIndicator
from models import FinalResult, ReconcileOutcome
from protocol import ErrorMessage, FinalMessage, PartialMessage, ServerMessage

logger = logging.getLogger(__name__)


def confidence_percent(confidence: float) -> int:
    """Round ``confidence * 100`` to the nearest integer, halves rounding up."""
    return int(math.floor(confidence * 100 + 0.5))


class ResultReconciler:
    """Turns partial/final/error events into previews, insertions and notices.

    Events are applied in arrival order.  Repeated finals are inserted again;
    the protocol carries no sequence numbers to deduplicate them.
    """

    def __init__(
        self,
        document: Document,
        status: StatusIndicator,
        notifier: Notifier,
        enable_correction: bool = True,
        show_partial_results: bool = True,
        show_confidence: bool = True,
    ) -> None:
        self._document = document
        self._status = status
        self._notifier = notifier
        self._enable_correction = enable_correction
        self._show_partial_results = show_partial_results
        self._show_confidence = show_confidence

    def apply(self, message: ServerMessage) -> ReconcileOutcome:
        if isinstance(message, PartialMessage):
            self._apply_partial(message.text)
            return ReconcileOutcome()
        if isinstance(message, FinalMessage):
            return self._apply_final(message.result)
        if isinstance(message, ErrorMessage):
            self._notifier.notify(f"❌ Error: {message.message}")
            self._status.set_status("Error")
            return ReconcileOutcome()
        logger.warning("Ignoring unsupported event %r", message)
        return ReconcileOutcome()

    def choose_text(self, result: FinalResult) -> str:
        if self._enable_correction and result.corrected:
            return result.corrected
        return result.transcript

    def insert(self, text: str) -> bool:
        """Insert ``text`` plus a trailing space at the cursor and advance past it."""
        payload = text + " "
        cursor = self._document.get_cursor()
        try:
            self._document.replace_range(payload, cursor)
        except DictationError as exc:
            logger.warning("Insertion failed: %s", exc)
            self._notifier.notify(f"❌ {exc.message}")
            self._status.set_status("Insert failed")
            return False
        self._document.set_cursor(cursor.advanced_by(payload))
        return True

    def _apply_partial(self, text: str) -> None:
        if self._show_partial_results:
            self._status.set_status(f"💭 {text}")

    def _apply_final(self, result: FinalResult) -> ReconcileOutcome:
        text = self.choose_text(result)
        if not text:
            return ReconcileOutcome()
        if not self.insert(text):
            return ReconcileOutcome()

        percent: Optional[int] = None
        if self._show_confidence:
            percent = confidence_percent(result.confidence)
            self._status.set_status(f"✓ Inserted ({percent}% confidence)")
        else:
            self._status.set_status("✓ Inserted")
        return ReconcileOutcome(inserted=text, confidence_percent=percent)
