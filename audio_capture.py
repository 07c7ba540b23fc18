"""Microphone capture producing PCM16 audio frames."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import numpy as np

from interfaces import CaptureErrorCallback, FrameCallback
from models import AudioFrame

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
BLOCKSIZE = 4096


def float_to_pcm16(samples: Any) -> bytes:
    """Convert float samples in [-1.0, 1.0] to little-endian 16-bit PCM.

    Samples are clamped first; negative values scale by 32768 and positive
    values by 32767, then truncate toward zero.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.trunc(scaled).astype("<i2").tobytes()


class SoundDeviceCapture:
    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        channels: int = 1,
        blocksize: int = BLOCKSIZE,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.blocksize = blocksize
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._on_data: Optional[FrameCallback] = None
        self._on_error: Optional[CaptureErrorCallback] = None
        self.dropped_chunks = 0

    @property
    def running(self) -> bool:
        return self._running

    def on_data(self, callback: Optional[FrameCallback]) -> None:
        """Register the frame callback, replacing any previous registration."""
        with self._lock:
            self._on_data = callback

    def on_error(self, callback: Optional[CaptureErrorCallback]) -> None:
        with self._lock:
            self._on_error = callback

    def detach(self, callback: FrameCallback) -> bool:
        """Clear both callbacks if ``callback`` is still the registered one."""
        with self._lock:
            if self._on_data is not callback:
                return False
            self._on_data = None
            self._on_error = None
            return True

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return True
            if sd is None:
                error = "sounddevice is not installed"
            else:
                error = self._open_stream()
            if error is None:
                self._running = True
                logger.info(
                    "Audio capture started: %d Hz, %d ch, blocksize=%d",
                    self.sample_rate,
                    self.channels,
                    self.blocksize,
                )
                return True
            on_error = self._on_error

        logger.error("Audio capture failed to start: %s", error)
        if on_error is not None:
            on_error(error)
        return False

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._close_stream()
        logger.info("Audio capture stopped (overflows=%d)", self.dropped_chunks)

    def _open_stream(self) -> Optional[str]:
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
        except Exception as exc:
            self._close_stream()
            return str(exc) or type(exc).__name__
        return None

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception:
            logger.exception("Error while closing the input stream")

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        callback = self._on_data
        if not self._running or callback is None:
            return
        if status:
            self.dropped_chunks += 1
            logger.debug("Input stream status: %s", status)
        samples = np.asarray(indata, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples[:, 0]
        frame = AudioFrame(
            pcm16_bytes=float_to_pcm16(samples),
            sample_rate=self.sample_rate,
            channels=1,
            timestamp_ms=int(time.time() * 1000),
        )
        callback(frame)
