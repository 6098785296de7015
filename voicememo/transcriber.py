"""Speech-to-text backends used by the relay server."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import openai
from openai import OpenAI

from .models import ServerSettings

GENERIC_ERROR = "Unknown transcription error."

logger = logging.getLogger(__name__)


class ExternalServiceError(RuntimeError):
    """Raised when the transcription or summarization service fails."""


class TranscriptionBackend(Protocol):
    """Common interface for speech-to-text services."""

    def transcribe(self, audio: bytes, filename: str, mime_type: str) -> str:
        """Return the plain-text transcription of ``audio``."""


def create_openai_client(settings: ServerSettings) -> OpenAI:
    if not settings.openai_api_key:
        raise ExternalServiceError("An OpenAI API key is required for the relay server.")
    return OpenAI(api_key=settings.openai_api_key, timeout=settings.openai_timeout)


def call_service(action: str, func, *args, **kwargs):
    """Run an SDK call, translating SDK failures into :class:`ExternalServiceError`."""

    try:
        return func(*args, **kwargs)
    except openai.APITimeoutError as exc:
        logger.error("%s timed out: %s", action, exc)
        raise ExternalServiceError(GENERIC_ERROR) from exc
    except openai.OpenAIError as exc:
        logger.error("%s failed: %s", action, exc)
        raise ExternalServiceError(str(exc) or GENERIC_ERROR) from exc


class OpenAITranscriber:
    """Cloud transcription using the OpenAI audio API."""

    def __init__(self, client: OpenAI, model: str) -> None:
        self._client = client
        self._model = model

    def transcribe(self, audio: bytes, filename: str, mime_type: str) -> str:
        response = call_service(
            "Transcription",
            self._client.audio.transcriptions.create,
            model=self._model,
            file=(filename, audio, mime_type),
            response_format="text",
        )
        return _response_text(response)


def _response_text(response: object) -> str:
    if isinstance(response, str):
        return response.strip()
    text: Optional[str] = getattr(response, "text", None)
    return text.strip() if isinstance(text, str) else ""
