"""Tests for SoundDeviceCapture and PCM conversion."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np

import audio_capture
from audio_capture import SoundDeviceCapture, float_to_pcm16
from models import AudioFrame


def _samples(pcm: bytes) -> list[int]:
    return np.frombuffer(pcm, dtype="<i2").tolist()


# ---------------------------------------------------------------
# PCM conversion
# ---------------------------------------------------------------

def test_pcm16_scaling_and_clamping() -> None:
    pcm = float_to_pcm16([-1.5, -1.0, -0.5, 0.0, 0.5, 1.0, 1.5])
    assert _samples(pcm) == [-32768, -32768, -16384, 0, 16383, 32767, 32767]


def test_pcm16_truncates_toward_zero() -> None:
    assert _samples(float_to_pcm16([0.99999, -0.00001])) == [32766, 0]


def test_pcm16_is_monotonic() -> None:
    values = np.array(_samples(float_to_pcm16(np.linspace(-2.0, 2.0, 2001))))
    assert np.all(np.diff(values) >= 0)
    assert values.min() >= -32768 and values.max() <= 32767


def test_pcm16_is_little_endian() -> None:
    assert float_to_pcm16([1.0]) == b"\xff\x7f"


# ---------------------------------------------------------------
# Capture lifecycle
# ---------------------------------------------------------------

def _capture_with_fake_sd() -> tuple[SoundDeviceCapture, MagicMock]:
    fake_sd = MagicMock()
    return SoundDeviceCapture(), fake_sd


def test_start_opens_float32_stream() -> None:
    capture, fake_sd = _capture_with_fake_sd()
    with patch.object(audio_capture, "sd", fake_sd):
        assert capture.start() is True
        assert capture.start() is True
        capture.stop()
        capture.stop()

    fake_sd.InputStream.assert_called_once()
    kwargs = fake_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 16000
    assert kwargs["channels"] == 1
    assert kwargs["dtype"] == "float32"
    assert kwargs["blocksize"] == 4096
    stream = fake_sd.InputStream.return_value
    stream.start.assert_called_once()
    stream.stop.assert_called_once()
    stream.close.assert_called_once()
    assert not capture.running


def test_start_failure_reports_error_and_returns_false() -> None:
    capture, fake_sd = _capture_with_fake_sd()
    fake_sd.InputStream.side_effect = Exception("Permission denied")
    errors: list[str] = []
    capture.on_error(errors.append)

    with patch.object(audio_capture, "sd", fake_sd):
        assert capture.start() is False

    assert errors == ["Permission denied"]
    assert not capture.running


def test_start_without_sounddevice() -> None:
    capture = SoundDeviceCapture()
    errors: list[str] = []
    capture.on_error(errors.append)

    with patch.object(audio_capture, "sd", None):
        assert capture.start() is False

    assert errors == ["sounddevice is not installed"]


def test_on_data_replaces_previous_callback() -> None:
    capture, fake_sd = _capture_with_fake_sd()
    first: list[AudioFrame] = []
    second: list[AudioFrame] = []
    capture.on_data(first.append)
    capture.on_data(second.append)

    with patch.object(audio_capture, "sd", fake_sd):
        capture.start()
        capture._on_audio(np.zeros((4096, 1), dtype=np.float32), 4096, None, None)
        capture.stop()

    assert first == []
    assert len(second) == 1
    assert len(second[0].pcm16_bytes) == 4096 * 2
    assert second[0].sample_rate == 16000
    assert second[0].channels == 1


def test_frames_after_stop_are_dropped() -> None:
    capture, fake_sd = _capture_with_fake_sd()
    frames: list[AudioFrame] = []
    capture.on_data(frames.append)

    with patch.object(audio_capture, "sd", fake_sd):
        capture.start()
        capture.stop()
    capture._on_audio(np.zeros((16, 1), dtype=np.float32), 16, None, None)

    assert frames == []


def test_overflow_status_is_counted() -> None:
    capture, fake_sd = _capture_with_fake_sd()
    capture.on_data(lambda frame: None)

    with patch.object(audio_capture, "sd", fake_sd):
        capture.start()
        capture._on_audio(np.zeros((16, 1), dtype=np.float32), 16, None, "input overflow")
        capture._on_audio(np.zeros((16, 1), dtype=np.float32), 16, None, None)
        capture.stop()

    assert capture.dropped_chunks == 1


def test_detach_only_clears_matching_callback() -> None:
    capture = SoundDeviceCapture()
    errors: list[str] = []

    def current(frame: AudioFrame) -> None:
        pass

    def stale(frame: AudioFrame) -> None:
        pass

    capture.on_data(current)
    capture.on_error(errors.append)

    assert capture.detach(stale) is False
    assert capture._on_data is current
    assert capture.detach(current) is True
    assert capture._on_data is None
    assert capture._on_error is None
