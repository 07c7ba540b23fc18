"""Overlay window for dictation status previews and notices."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

_STATUS_STYLE = (
    "color: white; font-size: 16px; padding: 12px;"
    "background: rgba(0,0,0,190); border-radius: 10px;"
)
_NOTICE_STYLE = (
    "color: #FFD36B; font-size: 16px; padding: 12px;"
    "background: rgba(0,0,0,210); border-radius: 10px;"
)


class OverlayWindow(QWidget):
    """Frameless always-on-top label pinned to the bottom center of the screen."""

    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint
            | Qt.FramelessWindowHint
            | Qt.Tool
            | Qt.WindowDoesNotAcceptFocus
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)
        self.setFixedWidth(520)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setStyleSheet(_STATUS_STYLE)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        self.setLayout(layout)

        self._hide_timer = QTimer(self)
        self._hide_timer.setSingleShot(True)
        self._hide_timer.timeout.connect(self.hide)

    def show_status(self, text: str) -> None:
        """Show a persistent status line until replaced or hidden."""
        self._hide_timer.stop()
        self._show(text, _STATUS_STYLE)

    def show_notice(self, text: str, hide_after_ms: int = 2500) -> None:
        """Show a transient notice that hides itself."""
        self._show(text, _NOTICE_STYLE)
        self._hide_timer.start(hide_after_ms)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._hide_timer.start(delay_ms)

    def _show(self, text: str, style: str) -> None:
        self._label.setStyleSheet(style)
        self._label.setText(text)
        self._place()
        self.show()

    def _place(self) -> None:
        screen = QApplication.primaryScreen() if QApplication is not None else None
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + geom.height() - self.height() - 60
        self.move(x, y)
