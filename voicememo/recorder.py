"""Microphone capture and the record → upload session flow."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import numpy as np

from .client import RelayClient, TranscriptionResult

logger = logging.getLogger(__name__)

IDLE = "idle"
RECORDING = "recording"
UPLOADING = "uploading"


class Recorder(Protocol):
    def start(self) -> None:
        ...

    def stop(self) -> Path:
        """Stop capturing and return the path of the written audio file."""


@dataclass(frozen=True, slots=True)
class AudioFormat:
    """Container written by the recorder and announced on upload."""

    suffix: str
    mime_type: str
    soundfile_format: str


WAV = AudioFormat(".wav", "audio/wav", "WAV")
FLAC = AudioFormat(".flac", "audio/flac", "FLAC")


def write_recording(frames: List[np.ndarray], samplerate: int, audio_format: AudioFormat = WAV) -> Path:
    """Write captured frames to a temporary file in ``audio_format``."""

    if not frames:
        raise RuntimeError("No audio was captured.")
    try:
        import soundfile as sf  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "The `soundfile` package is required to write audio files. Install voicememo[record]."
        ) from exc

    fd, filename = tempfile.mkstemp(suffix=audio_format.suffix, prefix="voicememo-")
    os.close(fd)
    path = Path(filename)
    try:
        sf.write(path, np.concatenate(frames, axis=0), samplerate, format=audio_format.soundfile_format)
    except Exception:
        path.unlink(missing_ok=True)
        raise
    return path


class AudioRecorder:
    """Capture the default microphone until :meth:`stop` is called."""

    def __init__(
        self,
        samplerate: int = 16000,
        channels: int = 1,
        audio_format: AudioFormat = WAV,
    ) -> None:
        try:
            import sounddevice as sd  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "The `sounddevice` package is required for recording. Install voicememo[record]."
            ) from exc

        self._sd = sd
        self.samplerate = samplerate
        self.channels = channels
        self.audio_format = audio_format
        self._stream = None
        self._frames: List[np.ndarray] = []

    @property
    def active(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        if self.active:
            return

        self._frames = []
        stream = self._sd.InputStream(
            samplerate=self.samplerate,
            channels=self.channels,
            dtype="float32",
            callback=self._on_audio,
        )
        stream.start()
        self._stream = stream

    def stop(self) -> Path:
        if not self.active:
            raise RuntimeError("Recording is not active.")

        stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            stream.close()

        frames, self._frames = self._frames, []
        return write_recording(frames, self.samplerate, self.audio_format)

    def _on_audio(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Recorder status: %s", status)
        self._frames.append(indata.copy())


class RecordingSession:
    """Drive one recording at a time and hand the audio to the relay client.

    Errors never escape :meth:`start` or :meth:`stop`; they end up in
    :attr:`error` as a message ready for display and the session returns to
    ``idle``.
    """

    def __init__(
        self,
        client: RelayClient,
        recorder: Optional[Recorder] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self._recorder = recorder
        self._clock = clock
        self.state = IDLE
        self.started_at: Optional[float] = None
        self.error: Optional[str] = None
        self.last_result: Optional[TranscriptionResult] = None

    @property
    def recorder(self) -> Recorder:
        if self._recorder is None:
            self._recorder = AudioRecorder()
        return self._recorder

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, self._clock() - self.started_at)

    def start(self) -> bool:
        if self.state != IDLE:
            self.error = "A recording or upload is already in progress."
            return False
        try:
            self.recorder.start()
        except Exception as exc:  # noqa: BLE001 - surfaced through self.error
            logger.exception("Failed to start recording")
            self._fail(exc, "Recording could not be started.")
            return False
        self.error = None
        self.started_at = self._clock()
        self.state = RECORDING
        return True

    def stop(self) -> Optional[TranscriptionResult]:
        if self.state != RECORDING:
            self.error = "No recording is running."
            return None

        audio_path: Optional[Path] = None
        try:
            audio_path = self.recorder.stop()
            self.state = UPLOADING
            audio_format: Optional[AudioFormat] = getattr(self.recorder, "audio_format", None)
            if audio_format is None:
                result = self.client.transcribe(audio_path, self.started_at)
            else:
                result = self.client.transcribe(
                    audio_path,
                    self.started_at,
                    suffix=audio_format.suffix,
                    mime_type=audio_format.mime_type,
                )
        except Exception as exc:  # noqa: BLE001 - surfaced through self.error
            logger.exception("Failed to transcribe recording")
            self._fail(exc, "The recording could not be transcribed.")
            return None
        finally:
            if audio_path is not None:
                audio_path.unlink(missing_ok=True)

        self.last_result = result
        self.error = None
        self._reset()
        return result

    def _fail(self, exc: Exception, fallback: str) -> None:
        self.error = str(exc) or fallback
        self._reset()

    def _reset(self) -> None:
        self.state = IDLE
        self.started_at = None
