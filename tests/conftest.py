import json
import os

import pytest

from ticketscribe.models import Stream
from ticketscribe.recorder import AudioSources, RecordingSession, SessionState


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Stands in for requests.Session; replays queued responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self):
        if not self.responses:
            raise AssertionError("unexpected HTTP call")
        return self.responses.pop(0)

    def post(self, url, **kwargs):
        files = kwargs.get("files")
        if files:
            # Read while the caller's file handle is still open.
            kwargs["file_bytes"] = {key: value[1].read() for key, value in files.items()}
        self.calls.append(("POST", url, kwargs))
        return self._next()

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self._next()


def make_stopped_session(tmp_path, mic_bytes=0, system_bytes=None, log_text=None):
    """A session that looks like it just finished recording into tmp_path."""
    monitor = "alsa_output.default.monitor" if system_bytes is not None else None
    session = RecordingSession(sources=AudioSources(mic="alsa_input.default", monitor=monitor))
    out_dir = tmp_path / "rec"
    out_dir.mkdir(exist_ok=True)
    session.output_dir = str(out_dir)
    session.start_time = 1000.0
    session.stop_time = 1065.0
    sizes = {Stream.MIC: mic_bytes}
    if system_bytes is not None:
        sizes[Stream.SYSTEM] = system_bytes
    for stream, size in sizes.items():
        path = out_dir / f"{stream.value}.mp3"
        path.write_bytes(b"\x01" * size)
        session.files[stream] = str(path)
        log_path = out_dir / f"ffmpeg_{stream.value}.log"
        if log_text:
            log_path.write_text(log_text, encoding="utf-8")
        session.logs[stream] = str(log_path)
    session.state = SessionState.STOPPED
    return session


@pytest.fixture
def stopped_session(tmp_path):
    def _make(**kwargs):
        return make_stopped_session(tmp_path, **kwargs)

    return _make


@pytest.fixture
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith(("ASANA_", "OPENAI_", "ANTHROPIC_", "LLM_", "WHISPER_", "TRANSCRIPTION_")):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch
