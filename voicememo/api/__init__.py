"""FastAPI relay between voicememo clients and the hosted transcription service."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import load_server_settings
from ..models import ServerSettings
from ..summarizer import OpenAISummarizer, Summarizer
from ..transcriber import GENERIC_ERROR, OpenAITranscriber, TranscriptionBackend, create_openai_client
from .uploads import PayloadTooLargeError, read_audio_upload

logger = logging.getLogger(__name__)

NO_FILE_ERROR = "no audio file was sent"
MISSING_KEY_ERROR = "OPENAI_API_KEY is not configured."
NOT_FOUND_TEXT = "Route not found."


class JSONUTF8Response(JSONResponse):
    media_type = "application/json; charset=utf-8"


class HealthResponse(BaseModel):
    status: str = "ok"


class TranscribeResponse(BaseModel):
    transcript: Optional[str]
    summary: Optional[str]


class ErrorResponse(BaseModel):
    error: str


def _error(status_code: int, message: str) -> JSONUTF8Response:
    return JSONUTF8Response(ErrorResponse(error=message).model_dump(), status_code=status_code)


def create_app(
    settings: Optional[ServerSettings] = None,
    transcriber: Optional[TranscriptionBackend] = None,
    summarizer: Optional[Summarizer] = None,
) -> FastAPI:
    """Build the relay application.

    ``transcriber`` and ``summarizer`` default to the OpenAI backed services
    when an API key is configured.
    """

    settings = settings or load_server_settings()

    if not settings.openai_api_key:
        logger.warning("No OPENAI_API_KEY set. Transcription requests will be rejected.")
    elif transcriber is None or summarizer is None:
        client = create_openai_client(settings)
        transcriber = transcriber or OpenAITranscriber(client, settings.transcription_model)
        summarizer = summarizer or OpenAISummarizer(client, settings.summary_model)

    app = FastAPI(
        title="voicememo relay",
        description="Forwards voice memos to a transcription and summarization service.",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings

    @app.middleware("http")
    async def cors_headers(request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            response: Response = Response(
                status_code=status.HTTP_204_NO_CONTENT,
                headers={
                    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
                    "Access-Control-Allow-Headers": "Content-Type,Authorization",
                },
            )
        else:
            response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = settings.cors_allow_origin
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return PlainTextResponse(NOT_FOUND_TEXT, status_code=status.HTTP_404_NOT_FOUND)
        return _error(exc.status_code, str(exc.detail))

    @app.get("/health")
    async def healthcheck() -> Response:
        return JSONUTF8Response(HealthResponse().model_dump())

    @app.post("/api/transcribe")
    async def transcribe(request: Request) -> Response:
        if not settings.openai_api_key or transcriber is None or summarizer is None:
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, MISSING_KEY_ERROR)

        try:
            upload = await read_audio_upload(request, max_bytes=settings.max_upload_bytes)
            if upload is None:
                return _error(status.HTTP_400_BAD_REQUEST, NO_FILE_ERROR)

            transcript = await run_in_threadpool(
                transcriber.transcribe, upload.data, upload.filename, upload.mime_type
            )
            transcript = (transcript or "").strip()

            summary = ""
            if transcript:
                summary = await run_in_threadpool(summarizer.summarise, transcript)
                summary = (summary or "").strip()
        except PayloadTooLargeError as exc:
            logger.warning("Rejected upload: %s", exc)
            return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, str(exc))
        except Exception as exc:  # noqa: BLE001 - every failure becomes a JSON error
            logger.exception("Transcription or summarization failed")
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or GENERIC_ERROR)

        payload = TranscribeResponse(transcript=transcript or None, summary=summary or None)
        return JSONUTF8Response(payload.model_dump())

    return app
