"""HTTP client that uploads recordings to the relay and stores the results."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from .config import require_backend_url
from .models import Transcript
from .storage import StorageWriteError, TranscriptStore

TRANSCRIBE_PATH = "/api/transcribe"
UPLOAD_PREFIX = "aufnahme"
UPLOAD_SUFFIX = ".m4a"
UPLOAD_MIME_TYPE = "audio/m4a"
DEFAULT_TIMEOUT = 120.0

logger = logging.getLogger(__name__)


class RelayClientError(RuntimeError):
    """Base class for failures the user should see as a message."""


class TranscriptionRequestError(RelayClientError):
    """The relay answered with an error status or an explicit error message."""


class NoTranscriptError(RelayClientError):
    """The relay succeeded but produced no usable transcript."""

    def __init__(self, message: str = "backend returned no transcript") -> None:
        super().__init__(message)


class RelayPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transcript: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class TranscriptionResult:
    transcript: str
    summary: Optional[str]
    duration: Optional[float] = None
    record: Optional[Transcript] = None

    @property
    def saved(self) -> bool:
        return self.record is not None


def upload_filename(now_ms: Optional[int] = None, suffix: str = UPLOAD_SUFFIX) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{UPLOAD_PREFIX}-{now_ms}{suffix}"


class RelayClient:
    """Send recordings to ``<base_url>/api/transcribe``."""

    def __init__(
        self,
        base_url: Optional[str],
        store: Optional[TranscriptStore] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.store = store if store is not None else TranscriptStore()
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=require_backend_url(self.base_url),
            timeout=self.timeout,
            transport=self._transport,
        )

    def transcribe(
        self,
        audio_path: Path,
        started_at: Optional[float] = None,
        *,
        suffix: str = UPLOAD_SUFFIX,
        mime_type: str = UPLOAD_MIME_TYPE,
    ) -> TranscriptionResult:
        """Upload ``audio_path`` and persist the returned transcript.

        ``started_at`` is the epoch time the recording began; when given, the
        elapsed time is stored as the transcript duration. A failure to store
        the transcript is logged and the result is still returned.
        """

        with self._client() as client:
            payload = self._post_audio(client, Path(audio_path), suffix, mime_type)

        if payload.error:
            raise TranscriptionRequestError(payload.error)

        transcript = (payload.transcript or "").strip()
        if not transcript:
            raise NoTranscriptError()

        summary = (payload.summary or "").strip() or None
        duration = time.time() - started_at if started_at is not None else None
        result = TranscriptionResult(transcript=transcript, summary=summary, duration=duration)

        try:
            result.record = self.store.save(transcript, summary, duration)
        except StorageWriteError as exc:
            logger.error("Transcript could not be saved locally: %s", exc)
        return result

    def _post_audio(
        self, client: httpx.Client, audio_path: Path, suffix: str, mime_type: str
    ) -> RelayPayload:
        try:
            with audio_path.open("rb") as fh:
                response = client.post(
                    TRANSCRIBE_PATH,
                    files={"file": (upload_filename(suffix=suffix), fh, mime_type)},
                )
        except httpx.HTTPError as exc:
            raise TranscriptionRequestError(f"Request to the transcription service failed: {exc}") from exc

        if not response.is_success:
            raise TranscriptionRequestError(_error_message(response))

        try:
            return RelayPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TranscriptionRequestError("Transcription service returned an invalid response.") from exc

    def health(self) -> Dict[str, Any]:
        with self._client() as client:
            try:
                response = client.get("/health")
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise TranscriptionRequestError(f"Health check failed: {exc}") from exc
            return response.json()


def _error_message(response: httpx.Response) -> str:
    text = response.text.strip()
    try:
        detail = response.json().get("error")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, str) and detail.strip():
        return detail.strip()
    return text or f"Transcription service returned HTTP {response.status_code}."
