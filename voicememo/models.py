"""Dataclasses describing persistent objects for voicememo."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

MAX_UPLOAD_BYTES = 25 * 1024 * 1024


@dataclass(slots=True, frozen=True)
class Transcript:
    """Represents a stored transcript entry."""

    id: str
    transcript: str
    summary: Optional[str]
    created_at: str
    duration: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "transcript": self.transcript,
            "summary": self.summary,
            "createdAt": self.created_at,
        }
        if self.duration is not None:
            data["duration"] = self.duration
        return data

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Transcript":
        if not isinstance(payload, dict):
            raise TypeError(f"Transcript entry must be an object, got {type(payload).__name__}")
        for key in ("id", "transcript", "createdAt"):
            if not isinstance(payload[key], str):
                raise TypeError(f"Transcript field {key!r} must be a string")
        summary = payload.get("summary")
        if summary is not None and not isinstance(summary, str):
            raise TypeError("Transcript field 'summary' must be a string or null")
        duration = payload.get("duration")
        if duration is not None and (isinstance(duration, bool) or not isinstance(duration, (int, float))):
            raise TypeError("Transcript field 'duration' must be a number")
        return cls(
            id=payload["id"],
            transcript=payload["transcript"],
            summary=summary,
            created_at=payload["createdAt"],
            duration=float(duration) if duration is not None else None,
        )


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    backend_url: Optional[str] = None
    request_timeout: float = 120.0
    store_path: Optional[str] = None


@dataclass(slots=True)
class ServerSettings:
    """Relay server settings, read from the environment."""

    host: str = "0.0.0.0"
    port: int = 4000
    openai_api_key: Optional[str] = None
    cors_allow_origin: str = "*"
    transcription_model: str = "gpt-4o-mini-transcribe"
    summary_model: str = "gpt-4o-mini"
    openai_timeout: float = 120.0
    max_upload_bytes: int = MAX_UPLOAD_BYTES
