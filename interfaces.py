"""Protocol interfaces shared by the session, reconciler and controller."""

from __future__ import annotations

from typing import AsyncIterator, Callable, Optional, Protocol, Union

from models import AudioFrame, CursorPosition, PasteResult

FrameCallback = Callable[[AudioFrame], None]
CaptureErrorCallback = Callable[[str], None]


class AudioCapture(Protocol):
    def start(self) -> bool: ...

    def stop(self) -> None: ...

    def on_data(self, callback: Optional[FrameCallback]) -> None: ...

    def on_error(self, callback: Optional[CaptureErrorCallback]) -> None: ...

    def detach(self, callback: FrameCallback) -> bool: ...


class Connection(Protocol):
    """Duplex message transport; ``websockets`` client connections satisfy it."""

    async def send(self, message: Union[str, bytes]) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[Union[str, bytes]]: ...


class Document(Protocol):
    def get_cursor(self) -> CursorPosition: ...

    def replace_range(self, text: str, at: CursorPosition) -> None: ...

    def set_cursor(self, position: CursorPosition) -> None: ...


class StatusIndicator(Protocol):
    def set_status(self, text: str) -> None: ...


class Notifier(Protocol):
    def notify(self, text: str) -> None: ...


class PasteService(Protocol):
    def paste_text(self, text: str) -> PasteResult: ...
