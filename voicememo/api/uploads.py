"""Streaming extraction of the uploaded audio file from a multipart request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import python_multipart
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header
from starlette.requests import Request

from ..models import MAX_UPLOAD_BYTES

DEFAULT_FILENAME = "aufnahme.m4a"
DEFAULT_MIME_TYPE = "audio/m4a"


class PayloadTooLargeError(ValueError):
    """Raised as soon as the uploaded file grows past the size limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"The audio file exceeds the limit of {limit // (1024 * 1024)} MB.")
        self.limit = limit


class MalformedUploadError(ValueError):
    """Raised when a multipart request cannot be parsed."""


@dataclass(slots=True)
class AudioUpload:
    data: bytes
    filename: str
    mime_type: str


class _AudioPartCollector:
    """Parser callbacks that keep only the first file part named ``field_name``."""

    def __init__(self, field_name: str, max_bytes: int) -> None:
        self.field_name = field_name
        self.max_bytes = max_bytes
        self.filename: Optional[str] = None
        self.mime_type: Optional[str] = None
        self.chunks: List[bytes] = []
        self.size = 0
        self.over_limit = False
        self._found = False
        self._capturing = False
        self._headers: Dict[bytes, bytes] = {}
        self._field = b""
        self._value = b""

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}
        self._field = b""
        self._value = b""

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._field.lower()] = self._value
        self._field = b""
        self._value = b""

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition"))
        name = options.get(b"name", b"").decode("utf-8", errors="replace")
        is_file = b"filename" in options
        self._capturing = is_file and name == self.field_name and not self._found
        if not self._capturing:
            return
        self._found = True
        filename = options[b"filename"].decode("utf-8", errors="replace")
        mime_type = self._headers.get(b"content-type", b"").decode("latin-1").strip()
        self.filename = filename or DEFAULT_FILENAME
        self.mime_type = mime_type or DEFAULT_MIME_TYPE

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if not self._capturing or self.over_limit:
            return
        self.size += end - start
        if self.size > self.max_bytes:
            self.over_limit = True
            self.chunks.clear()
            return
        self.chunks.append(data[start:end])

    def on_part_end(self) -> None:
        self._capturing = False

    def result(self) -> Optional[AudioUpload]:
        if not self._found or self.size == 0:
            return None
        return AudioUpload(
            data=b"".join(self.chunks),
            filename=self.filename or DEFAULT_FILENAME,
            mime_type=self.mime_type or DEFAULT_MIME_TYPE,
        )


async def read_audio_upload(
    request: Request,
    field_name: str = "file",
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> Optional[AudioUpload]:
    """Stream the request body and return the uploaded audio file.

    Returns ``None`` when the body is not multipart or carries no non-empty
    ``field_name`` file. Raises :class:`PayloadTooLargeError` as soon as the
    file exceeds ``max_bytes``; the rest of the body is never read.
    """

    content_type, params = parse_options_header(request.headers.get("content-type"))
    if content_type != b"multipart/form-data":
        return None
    boundary = params.get(b"boundary")
    if not boundary:
        raise MalformedUploadError("Missing multipart boundary.")

    collector = _AudioPartCollector(field_name, max_bytes)
    parser = python_multipart.MultipartParser(boundary, collector.callbacks())
    try:
        async for chunk in request.stream():
            if not chunk:
                continue
            parser.write(chunk)
            if collector.over_limit:
                raise PayloadTooLargeError(max_bytes)
        parser.finalize()
    except MultipartParseError as exc:
        raise MalformedUploadError(f"Malformed multipart body: {exc}") from exc
    return collector.result()
