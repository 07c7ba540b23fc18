"""Tests for the REST dictation path."""

from __future__ import annotations

import json

import httpx
import pytest

from legacy import ApiCorrector, ApiTranscriber, LegacyDictation
from models import AudioFrame, CursorPosition, RequestOutcome, ServiceResult

API_URL = "http://localhost:8765/api/v1"


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------
# REST clients
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_transcribe_posts_raw_pcm() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "ola mundo"})

    async with _client(handler) as client:
        result = await ApiTranscriber(API_URL, client=client).transcribe(b"\x01\x00\x02\x00")

    assert result == ServiceResult("ola mundo", RequestOutcome.OK)
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/v1/transcribe"
    assert seen[0].headers["content-type"] == "application/octet-stream"
    assert seen[0].content == b"\x01\x00\x02\x00"


@pytest.mark.asyncio
async def test_correct_posts_json() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"corrected": "Olá, mundo."})

    async with _client(handler) as client:
        result = await ApiCorrector(API_URL + "/", client=client).correct("ola mundo")

    assert result.ok
    assert result.text == "Olá, mundo."
    assert bodies == [{"text": "ola mundo"}]


@pytest.mark.asyncio
async def test_blank_answer_is_empty_outcome() -> None:
    async with _client(lambda r: httpx.Response(200, json={"text": "  "})) as client:
        result = await ApiTranscriber(API_URL, client=client).transcribe(b"\x00\x00")
    assert result.outcome == RequestOutcome.EMPTY


@pytest.mark.asyncio
async def test_server_error_is_failed_outcome() -> None:
    async with _client(lambda r: httpx.Response(500)) as client:
        result = await ApiTranscriber(API_URL, client=client).transcribe(b"\x00\x00")
    assert result.outcome == RequestOutcome.FAILED
    assert not result.ok


@pytest.mark.asyncio
async def test_timeout_is_failed_outcome() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as client:
        result = await ApiCorrector(API_URL, client=client).correct("x")
    assert result == ServiceResult("", RequestOutcome.FAILED, "timeout")


# ---------------------------------------------------------------
# Fixed-window dictation
# ---------------------------------------------------------------

class BurstCapture:
    """Delivers its frames synchronously as soon as it starts."""

    def __init__(self, frames: list[bytes], start_ok: bool = True, fail_after_frames: str = "") -> None:
        self.frames = frames
        self.start_ok = start_ok
        self.fail_after_frames = fail_after_frames
        self.stop_calls = 0
        self.callback = None
        self.error_callback = None

    def start(self) -> bool:
        if not self.start_ok:
            if self.error_callback is not None:
                self.error_callback("Permission denied")
            return False
        if self.callback is not None:
            for pcm in self.frames:
                self.callback(AudioFrame(pcm16_bytes=pcm))
        if self.fail_after_frames and self.error_callback is not None:
            self.error_callback(self.fail_after_frames)
        return True

    def stop(self) -> None:
        self.stop_calls += 1

    def on_data(self, callback) -> None:  # noqa: ANN001
        self.callback = callback

    def on_error(self, callback) -> None:  # noqa: ANN001
        self.error_callback = callback

    def detach(self, callback) -> bool:  # noqa: ANN001
        if self.callback is not callback:
            return False
        self.callback = None
        self.error_callback = None
        return True


class FakeTranscriber:
    def __init__(self, results: list[ServiceResult]) -> None:
        self.results = list(results)
        self.closed = False

    async def transcribe(self, pcm16_bytes: bytes) -> ServiceResult:
        return self.results.pop(0)

    async def close(self) -> None:
        self.closed = True


class FakeCorrector:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.closed = False

    async def correct(self, text: str) -> ServiceResult:
        if self.ok:
            return ServiceResult(text.capitalize() + ".", RequestOutcome.OK)
        return ServiceResult("", RequestOutcome.FAILED, "boom")

    async def close(self) -> None:
        self.closed = True


class FakeDocument:
    def __init__(self) -> None:
        self.text = ""
        self.cursor = CursorPosition()

    def get_cursor(self) -> CursorPosition:
        return self.cursor

    def replace_range(self, text: str, at: CursorPosition) -> None:
        self.text += text

    def set_cursor(self, position: CursorPosition) -> None:
        self.cursor = position


class StatusRecorder:
    def __init__(self) -> None:
        self.statuses: list[str] = []

    def set_status(self, text: str) -> None:
        self.statuses.append(text)


@pytest.mark.asyncio
async def test_last_corrected_chunk_is_inserted() -> None:
    capture = BurstCapture([b"\x00\x00" * 4, b"\x01\x00" * 4])
    transcriber = FakeTranscriber([
        ServiceResult("first", RequestOutcome.OK),
        ServiceResult("second", RequestOutcome.OK),
    ])
    status = StatusRecorder()
    document = FakeDocument()
    dictation = LegacyDictation(capture, transcriber, FakeCorrector(), status)

    inserted = await dictation.run(document, duration_s=0.01)

    assert inserted == "Second."
    assert document.text == "Second.\n"
    assert document.cursor == CursorPosition(1, 0)
    assert status.statuses == ["🎤 Recording...", "✅ First.", "✅ Second.", "📝 Ready"]
    assert capture.stop_calls == 1
    assert dictation.fallback_used is False


@pytest.mark.asyncio
async def test_failures_fall_back_to_simulated_results() -> None:
    capture = BurstCapture([b"\x00\x00" * 4])
    transcriber = FakeTranscriber([ServiceResult("", RequestOutcome.FAILED, "refused")])
    status = StatusRecorder()
    document = FakeDocument()
    dictation = LegacyDictation(capture, transcriber, FakeCorrector(ok=False), status)

    inserted = await dictation.run(document, duration_s=0.01)

    assert inserted == "[simulated transcript: 8 bytes]."
    assert dictation.fallback_used is True
    assert status.statuses[1].startswith("⚠️")


@pytest.mark.asyncio
async def test_no_document_inserts_nothing() -> None:
    capture = BurstCapture([b"\x00\x00"])
    transcriber = FakeTranscriber([ServiceResult("hi", RequestOutcome.OK)])
    status = StatusRecorder()
    dictation = LegacyDictation(capture, transcriber, FakeCorrector(), status)

    assert await dictation.run(None, duration_s=0.01) is None
    assert status.statuses[-1] == "Insert failed"


@pytest.mark.asyncio
async def test_capture_failure_is_reported_as_microphone_problem() -> None:
    capture = BurstCapture([b"\x00\x00"], start_ok=False)
    status = StatusRecorder()
    document = FakeDocument()
    transcriber, corrector = FakeTranscriber([]), FakeCorrector()
    dictation = LegacyDictation(capture, transcriber, corrector, status)

    assert await dictation.run(document, duration_s=0.01) is None
    assert document.text == ""
    assert capture.stop_calls == 1
    assert status.statuses[-1] == "Microphone unavailable"
    assert "Insert failed" not in status.statuses
    assert transcriber.closed and corrector.closed


@pytest.mark.asyncio
async def test_capture_error_during_window_inserts_nothing() -> None:
    capture = BurstCapture([b"\x00\x00" * 4], fail_after_frames="device unplugged")
    transcriber = FakeTranscriber([ServiceResult("partial words", RequestOutcome.OK)])
    status = StatusRecorder()
    document = FakeDocument()
    dictation = LegacyDictation(capture, transcriber, FakeCorrector(), status)

    assert await dictation.run(document, duration_s=0.01) is None
    assert document.text == ""
    assert status.statuses[-1] == "Microphone unavailable"


@pytest.mark.asyncio
async def test_run_closes_both_api_clients() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/transcribe"):
            return httpx.Response(200, json={"text": "ola"})
        return httpx.Response(200, json={"corrected": "Olá."})

    transcriber_http = _client(handler)
    corrector_http = _client(handler)
    dictation = LegacyDictation(
        BurstCapture([b"\x00\x00" * 4]),
        ApiTranscriber(API_URL, client=transcriber_http),
        ApiCorrector(API_URL, client=corrector_http),
        StatusRecorder(),
    )

    assert await dictation.run(FakeDocument(), duration_s=0.01) == "Olá."
    assert transcriber_http.is_closed
    assert corrector_http.is_closed


@pytest.mark.asyncio
async def test_token_is_sent_as_bearer_header() -> None:
    auth: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        auth.append(request.headers.get("authorization"))
        if request.url.path.endswith("/transcribe"):
            return httpx.Response(200, json={"text": "ola"})
        return httpx.Response(200, json={"corrected": "Olá."})

    async with _client(handler) as client:
        transcribed = await ApiTranscriber(API_URL, token="s3cret", client=client).transcribe(b"\x00\x00")
        corrected = await ApiCorrector(API_URL, token="s3cret", client=client).correct("ola")
        await ApiCorrector(API_URL, client=client).correct("ola")

    assert transcribed.ok and corrected.ok
    assert auth == ["Bearer s3cret", "Bearer s3cret", None]


@pytest.mark.asyncio
async def test_token_does_not_replace_content_type() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "ola"})

    async with _client(handler) as client:
        await ApiTranscriber(API_URL, token="s3cret", client=client).transcribe(b"\x00\x00")

    assert seen[0].headers["content-type"] == "application/octet-stream"
    assert seen[0].headers["authorization"] == "Bearer s3cret"
