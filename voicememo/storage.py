"""JSON slot backed persistence for voicememo transcripts.

All transcripts live in a single serialised list. Reading is forgiving: a
missing, unreadable or corrupt slot is treated as "no transcripts" and only
logged. Writing is strict: a failed write raises :class:`StorageWriteError` so
callers never assume a record was kept.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from .models import Transcript

APP_DIR = Path.home() / ".voicememo"
STORE_PATH = APP_DIR / "transcripts.json"

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when something goes wrong while accessing the storage."""


class StorageReadError(StorageError):
    """The persisted collection could not be read or decoded."""


class StorageWriteError(StorageError):
    """The persisted collection could not be written or removed."""


class Slot(Protocol):
    """A single named entry in a key-value store."""

    def read(self) -> Optional[bytes]:
        """Return the stored bytes, or ``None`` when nothing is stored."""

    def write(self, data: bytes) -> None:
        ...

    def remove(self) -> None:
        ...


class FileSlot:
    """Keep the slot in a file on disk."""

    def __init__(self, path: Path = STORE_PATH) -> None:
        self.path = Path(path)

    def read(self) -> Optional[bytes]:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageReadError(f"Could not read {self.path}: {exc}") from exc

    def write(self, data: bytes) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            tmp_path.replace(self.path)
        except OSError as exc:
            raise StorageWriteError(f"Could not write {self.path}: {exc}") from exc

    def remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageWriteError(f"Could not remove {self.path}: {exc}") from exc


def decode_collection(raw: Optional[bytes]) -> List[Transcript]:
    """Parse the stored bytes into transcripts, raising on corrupt data."""

    if not raw:
        return []
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageReadError(f"Stored transcripts are not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise StorageReadError("Stored transcripts are not a list")
    if not all(isinstance(item, dict) for item in payload):
        raise StorageReadError("Stored transcripts contain an entry that is not an object")
    try:
        return [Transcript.from_dict(item) for item in payload]
    except (KeyError, TypeError, ValueError) as exc:
        raise StorageReadError(f"Malformed transcript entry: {exc!r}") from exc


def encode_collection(records: Iterable[Transcript]) -> bytes:
    return json.dumps([record.to_dict() for record in records], ensure_ascii=False).encode("utf-8")


def _created_key(record: Transcript) -> float:
    try:
        return datetime.fromisoformat(record.created_at.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return float("-inf")


def sort_newest_first(records: Iterable[Transcript]) -> List[Transcript]:
    """Order by ``created_at`` descending.

    The sort is stable, so records sharing a timestamp keep their stored
    order, which is newest-inserted first.
    """

    return sorted(records, key=_created_key, reverse=True)


def next_transcript_id(existing: Iterable[str], now_ms: int) -> str:
    taken = set(existing)
    candidate = now_ms
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


def _utc_timestamp(now: float) -> str:
    moment = datetime.fromtimestamp(now, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TranscriptStore:
    """Create, list and delete transcripts kept in a single slot."""

    def __init__(self, slot: Optional[Slot] = None) -> None:
        self.slot = slot if slot is not None else FileSlot()

    def save(
        self,
        transcript: str,
        summary: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> Transcript:
        now = time.time()
        existing = self.list()
        record = Transcript(
            id=next_transcript_id((item.id for item in existing), int(now * 1000)),
            transcript=transcript,
            summary=summary,
            created_at=_utc_timestamp(now),
            duration=duration,
        )
        self.slot.write(encode_collection([record, *existing]))
        logger.debug("Saved transcript %s", record.id)
        return record

    def list(self) -> List[Transcript]:
        try:
            records = decode_collection(self.slot.read())
        except StorageReadError as exc:
            logger.error("Failed to load transcripts, treating store as empty: %s", exc)
            return []
        return sort_newest_first(records)

    def get(self, transcript_id: str) -> Optional[Transcript]:
        for record in self.list():
            if record.id == transcript_id:
                return record
        return None

    def delete(self, transcript_id: str) -> None:
        records = self.list()
        remaining = [record for record in records if record.id != transcript_id]
        self.slot.write(encode_collection(remaining))
        if len(remaining) != len(records):
            logger.debug("Deleted transcript %s", transcript_id)

    def clear_all(self) -> None:
        self.slot.remove()
        logger.debug("Cleared all transcripts")
