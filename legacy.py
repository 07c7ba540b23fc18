"""Non-streaming dictation against the daemon's REST endpoints.

Each captured chunk is posted to ``/transcribe`` and the transcript to
``/correct``.  Failed or empty answers fall back to local placeholders so the
status indicator keeps updating; the fallbacks are not part of the daemon
contract.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from errors import CAPTURE_UNAVAILABLE, ERROR_MESSAGES, DictationError
from interfaces import AudioCapture, Document, StatusIndicator
from models import AudioFrame, RequestOutcome, ServiceResult

logger = logging.getLogger(__name__)

LEGACY_TIMEOUT_S = 4.0


class _ApiClient:
    def __init__(
        self,
        api_url: str,
        token: str = "",
        timeout_s: float = LEGACY_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = api_url.rstrip("/")
        self.timeout = timeout_s
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = client

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def _post(self, path: str, field: str, headers: Optional[dict] = None, **kwargs) -> ServiceResult:
        try:
            http = await self._get_http()
            response = await http.post(
                f"{self.url}{path}",
                headers={**self._headers, **(headers or {})},
                timeout=self.timeout,
                **kwargs,
            )
            response.raise_for_status()
            value = response.json().get(field) or ""
        except httpx.TimeoutException:
            logger.warning("%s timed out after %.1fs", path, self.timeout)
            return ServiceResult("", RequestOutcome.FAILED, "timeout")
        except Exception as e:
            logger.warning("%s failed: %s", path, e)
            return ServiceResult("", RequestOutcome.FAILED, str(e))
        text = str(value)
        if not text.strip():
            return ServiceResult("", RequestOutcome.EMPTY)
        return ServiceResult(text, RequestOutcome.OK)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


class ApiTranscriber(_ApiClient):
    async def transcribe(self, pcm16_bytes: bytes) -> ServiceResult:
        return await self._post(
            "/transcribe",
            "text",
            content=pcm16_bytes,
            headers={"Content-Type": "application/octet-stream"},
        )


class ApiCorrector(_ApiClient):
    async def correct(self, text: str) -> ServiceResult:
        return await self._post("/correct", "corrected", json={"text": text})


class SimulatedTranscriber:
    def transcribe(self, pcm16_bytes: bytes) -> str:
        return f"[simulated transcript: {len(pcm16_bytes)} bytes]"


class SimulatedCorrector:
    def correct(self, text: str) -> str:
        return text + "."


class LegacyDictation:
    """Record for a fixed window, then insert the last corrected chunk."""

    def __init__(
        self,
        capture: AudioCapture,
        transcriber: ApiTranscriber,
        corrector: ApiCorrector,
        status: StatusIndicator,
    ) -> None:
        self._capture = capture
        self._transcriber = transcriber
        self._corrector = corrector
        self._status = status
        self._fallback_transcriber = SimulatedTranscriber()
        self._fallback_corrector = SimulatedCorrector()
        self.fallback_used = False

    async def run(self, document: Optional[Document], duration_s: float = 3.0) -> Optional[str]:
        """Record for ``duration_s`` and insert the result; always closes both API clients."""
        loop = asyncio.get_running_loop()
        chunks: asyncio.Queue[AudioFrame | None] = asyncio.Queue()
        capture_errors: list[str] = []

        def on_frame(frame: AudioFrame) -> None:
            loop.call_soon_threadsafe(chunks.put_nowait, frame)

        def on_error(message: str) -> None:
            loop.call_soon_threadsafe(capture_errors.append, message)

        self.fallback_used = False
        self._status.set_status("🎤 Recording...")
        self._capture.on_data(on_frame)
        self._capture.on_error(on_error)
        worker = loop.create_task(self._process(chunks))
        started = False
        try:
            started = self._capture.start()
            if started:
                await asyncio.sleep(duration_s)
        finally:
            if self._capture.detach(on_frame):
                self._capture.stop()
            chunks.put_nowait(None)
            try:
                last_corrected = await worker
            finally:
                await self._transcriber.close()
                await self._corrector.close()

        if not started or capture_errors:
            reason = capture_errors[0] if capture_errors else ERROR_MESSAGES[CAPTURE_UNAVAILABLE]
            logger.warning("%s: %s", CAPTURE_UNAVAILABLE, reason)
            self._status.set_status("Microphone unavailable")
            return None

        if document is None or not last_corrected:
            logger.info("Nothing inserted (document=%s, text=%r)", document is not None, last_corrected)
            self._status.set_status("Insert failed")
            return None
        text = last_corrected + "\n"
        cursor = document.get_cursor()
        try:
            document.replace_range(text, cursor)
        except DictationError as exc:
            logger.warning("Insertion failed: %s", exc)
            self._status.set_status("Insert failed")
            return None
        document.set_cursor(cursor.advanced_by(text))
        self._status.set_status("📝 Ready")
        return last_corrected

    async def _process(self, chunks: asyncio.Queue[AudioFrame | None]) -> str:
        last_corrected = ""
        while True:
            frame = await chunks.get()
            if frame is None:
                return last_corrected
            last_corrected = await self._process_chunk(frame.pcm16_bytes)
            marker = "⚠️" if self.fallback_used else "✅"
            self._status.set_status(f"{marker} {last_corrected}")

    async def _process_chunk(self, pcm16_bytes: bytes) -> str:
        transcribed = await self._transcriber.transcribe(pcm16_bytes)
        if transcribed.ok:
            transcript = transcribed.text
        else:
            logger.debug("Transcription %s, using fallback", transcribed.outcome.value)
            transcript = self._fallback_transcriber.transcribe(pcm16_bytes)
            self.fallback_used = True

        corrected = await self._corrector.correct(transcript)
        if corrected.ok:
            return corrected.text
        logger.debug("Correction %s, using fallback", corrected.outcome.value)
        self.fallback_used = True
        return self._fallback_corrector.correct(transcript)
