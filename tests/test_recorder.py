import sys
import types

import numpy as np
import pytest

from voicememo.client import NoTranscriptError, TranscriptionResult
from voicememo.recorder import FLAC, IDLE, RECORDING, WAV, AudioRecorder, RecordingSession, write_recording


class FakeRecorder:
    audio_format = WAV

    def __init__(self, path, fail_start=False):
        self.path = path
        self.fail_start = fail_start
        self.started = 0

    def start(self):
        if self.fail_start:
            raise RuntimeError("Microphone access was denied.")
        self.started += 1

    def stop(self):
        self.path.write_bytes(b"RIFF....WAVE")
        return self.path


class FakeClient:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def transcribe(self, audio_path, started_at=None, **kwargs):
        self.calls.append((audio_path, started_at, kwargs))
        if self.error is not None:
            raise self.error
        return TranscriptionResult(transcript="Hallo Welt", summary=None, duration=3.0)


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_record_and_transcribe(tmp_path):
    audio = tmp_path / "memo.wav"
    client = FakeClient()
    clock = Clock()
    session = RecordingSession(client, FakeRecorder(audio), clock=clock)

    assert session.start()
    assert session.state == RECORDING
    clock.now += 3
    assert session.elapsed() == 3

    result = session.stop()

    assert result.transcript == "Hallo Welt"
    assert session.last_result is result
    assert session.state == IDLE
    assert session.error is None
    assert session.started_at is None
    assert client.calls == [(audio, 1000.0, {"suffix": ".wav", "mime_type": "audio/wav"})]
    assert not audio.exists()


def test_transcription_failure_becomes_error_state(tmp_path):
    audio = tmp_path / "memo.wav"
    session = RecordingSession(FakeClient(error=NoTranscriptError()), FakeRecorder(audio))

    session.start()
    result = session.stop()

    assert result is None
    assert session.error == "backend returned no transcript"
    assert session.state == IDLE
    assert session.started_at is None
    assert session.elapsed() == 0.0
    assert not audio.exists()


def test_start_failure_becomes_error_state(tmp_path):
    session = RecordingSession(FakeClient(), FakeRecorder(tmp_path / "memo.wav", fail_start=True))

    assert not session.start()
    assert session.error == "Microphone access was denied."
    assert session.state == IDLE


def test_only_one_recording_at_a_time(tmp_path):
    recorder = FakeRecorder(tmp_path / "memo.wav")
    session = RecordingSession(FakeClient(), recorder)

    assert session.start()
    assert not session.start()
    assert session.error
    assert session.state == RECORDING
    assert recorder.started == 1


def test_stop_without_recording(tmp_path):
    client = FakeClient()
    session = RecordingSession(client, FakeRecorder(tmp_path / "memo.wav"))

    assert session.stop() is None
    assert session.error == "No recording is running."
    assert client.calls == []


def test_recorder_format_is_announced_on_upload(tmp_path):
    audio = tmp_path / "memo.flac"
    recorder = FakeRecorder(audio)
    recorder.audio_format = FLAC
    client = FakeClient()
    session = RecordingSession(client, recorder, clock=Clock())

    session.start()
    session.stop()

    assert client.calls == [(audio, 1000.0, {"suffix": ".flac", "mime_type": "audio/flac"})]


class FakeStream:
    def __init__(self, device, callback, fail_stop=False):
        self.device = device
        self.callback = callback
        self.fail_stop = fail_stop
        self.closed = False

    def start(self):
        self.callback(np.zeros((4, 1), dtype="float32"), 4, None, None)

    def stop(self):
        if self.fail_stop:
            raise RuntimeError("PortAudio error")

    def close(self):
        self.closed = True


class FakeSoundDevice:
    def __init__(self):
        self.streams = []
        self.fail_stop = False

    def InputStream(self, samplerate, channels, dtype, callback):
        stream = FakeStream(self, callback, fail_stop=self.fail_stop)
        self.streams.append(stream)
        return stream


class FakeSoundFile:
    def __init__(self):
        self.writes = []

    def write(self, path, data, samplerate, format):
        self.writes.append((path, data.shape, samplerate, format))
        path.write_bytes(b"audio")


@pytest.fixture
def sound(monkeypatch):
    device = FakeSoundDevice()
    soundfile = FakeSoundFile()
    device_module = types.ModuleType("sounddevice")
    device_module.InputStream = device.InputStream
    soundfile_module = types.ModuleType("soundfile")
    soundfile_module.write = soundfile.write
    monkeypatch.setitem(sys.modules, "sounddevice", device_module)
    monkeypatch.setitem(sys.modules, "soundfile", soundfile_module)
    return device, soundfile


def test_audio_recorder_writes_captured_frames(sound):
    device, soundfile = sound
    recorder = AudioRecorder(samplerate=8000, audio_format=FLAC)

    recorder.start()
    assert recorder.active
    path = recorder.stop()

    try:
        assert path.suffix == ".flac"
        assert path.name.startswith("voicememo-")
        assert soundfile.writes == [(path, (4, 1), 8000, "FLAC")]
        assert device.streams[0].closed
        assert not recorder.active
    finally:
        path.unlink(missing_ok=True)


def test_failed_stream_stop_still_releases_the_recorder(sound):
    device, _ = sound
    device.fail_stop = True
    recorder = AudioRecorder()

    recorder.start()
    with pytest.raises(RuntimeError, match="PortAudio error"):
        recorder.stop()

    assert not recorder.active
    assert device.streams[0].closed

    device.fail_stop = False
    recorder.start()
    assert len(device.streams) == 2
    recorder.stop().unlink()


def test_second_start_keeps_the_running_stream(sound):
    device, _ = sound
    recorder = AudioRecorder()

    recorder.start()
    recorder.start()

    assert len(device.streams) == 1
    recorder.stop().unlink()


def test_stop_without_start_raises(sound):
    with pytest.raises(RuntimeError, match="not active"):
        AudioRecorder().stop()


def test_write_recording_requires_frames(sound):
    with pytest.raises(RuntimeError, match="No audio was captured"):
        write_recording([], 16000)
