"""Audio capture through PulseAudio sources and ffmpeg recorder processes."""

from __future__ import annotations

import logging
import os
import re
import shutil
import signal
import subprocess
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .config import AudioConfig
from .errors import (
    AudioSetupError,
    MissingDependencyError,
    NoMicrophoneError,
    NoSourcesError,
    SessionStateError,
)
from .models import Stream

logger = logging.getLogger("ticketscribe")

REQUIRED_TOOLS = {"pactl": "pulseaudio-utils", "ffmpeg": "ffmpeg"}
MONITOR_SUFFIX = ".monitor"
MIC_NAME_PATTERN = re.compile(r"input|capture", re.IGNORECASE)
DIAGNOSTIC_PATTERN = re.compile(r"error|warning|invalid|no such|failed|refused", re.IGNORECASE)
DIAGNOSTIC_TAIL_LINES = 6
EMPTY_STREAM_MB = 0.01
STOP_TIMEOUT_S = 10.0

OUTPUT_NAMES = {Stream.MIC: "mic.mp3", Stream.SYSTEM: "system.mp3"}


class SessionState(str, Enum):
    IDLE = "idle"
    SOURCES_KNOWN = "sources_known"
    RECORDING = "recording"
    STOPPED = "stopped"
    CLOSED = "closed"


@dataclass(frozen=True)
class AudioSources:
    mic: Optional[str] = None
    monitor: Optional[str] = None

    def for_stream(self, stream: Stream) -> Optional[str]:
        return self.mic if stream is Stream.MIC else self.monitor

    @property
    def monitor_available(self) -> bool:
        return self.monitor is not None

    def describe(self) -> str:
        lines = [f"  Microphone  : {self.mic or '(none found)'}"]
        if self.monitor:
            lines.append(f"  System audio: {self.monitor}")
        else:
            lines.append("  System audio: not available (mic-only mode)")
        return "\n".join(lines)


def command_exists(cmd: str) -> bool:
    return shutil.which(cmd) is not None


def check_dependencies() -> None:
    missing = {tool: pkg for tool, pkg in REQUIRED_TOOLS.items() if not command_exists(tool)}
    if missing:
        raise MissingDependencyError(missing)


def list_source_names() -> List[str]:
    try:
        raw = subprocess.run(
            ["pactl", "list", "sources", "short"],
            capture_output=True,
            text=True,
            check=False,
        ).stdout
    except OSError as exc:
        logger.debug("pactl failed: %s", exc)
        raw = ""
    if not raw.strip():
        raise NoSourcesError(
            "Could not query PulseAudio sources. Is PulseAudio running?\n"
            "Try: pulseaudio --start"
        )
    names = []
    for line in raw.splitlines():
        parts = line.split()
        if len(parts) > 1:
            names.append(parts[1])
    return names


def is_monitor(name: str) -> bool:
    return name.endswith(MONITOR_SUFFIX)


def select_mic_source(names: List[str]) -> Optional[str]:
    for name in names:
        if MIC_NAME_PATTERN.search(name) and not is_monitor(name):
            return name
    return next((name for name in names if not is_monitor(name)), None)


def select_monitor_source(names: List[str]) -> Optional[str]:
    return next((name for name in names if is_monitor(name)), None)


def detect_sources() -> AudioSources:
    check_dependencies()
    names = list_source_names()
    sources = AudioSources(mic=select_mic_source(names), monitor=select_monitor_source(names))
    logger.info("Detected sources mic=%s monitor=%s (of %s)", sources.mic, sources.monitor, names)
    return sources


def read_capture_diagnostic(log_path: Optional[str]) -> Optional[str]:
    if not log_path or not os.path.exists(log_path):
        return None
    with open(log_path, "r", encoding="utf-8", errors="replace") as handle:
        lines = [line.rstrip("\n") for line in handle if line.strip()]
    relevant = [line for line in lines if DIAGNOSTIC_PATTERN.search(line)]
    if not relevant:
        relevant = lines[-DIAGNOSTIC_TAIL_LINES:]
    text = "\n".join(relevant).strip()
    return text or None


class RecordingSession:
    """One recording: mic stream plus the system monitor stream when available.

    Lifecycle: idle -> sources_known -> recording -> stopped -> closed. A
    session is never restarted; create a new one for the next recording.
    """

    def __init__(
        self,
        audio: Optional[AudioConfig] = None,
        sources: Optional[AudioSources] = None,
    ) -> None:
        self.audio = audio or AudioConfig()
        self.sources = sources
        self.state = SessionState.IDLE if sources is None else SessionState.SOURCES_KNOWN
        self.output_dir: Optional[str] = None
        self.files: Dict[Stream, str] = {}
        self.logs: Dict[Stream, str] = {}
        self.processes: Dict[Stream, subprocess.Popen] = {}
        self.start_time: Optional[float] = None
        self.stop_time: Optional[float] = None

    def detect_sources(self) -> AudioSources:
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"Cannot detect sources in state {self.state.value}.")
        self.sources = detect_sources()
        self.state = SessionState.SOURCES_KNOWN
        return self.sources

    def describe_sources(self) -> str:
        if self.sources is None:
            return "  Audio sources not detected yet."
        return self.sources.describe()

    @property
    def streams(self) -> List[Stream]:
        return list(self.files)

    def start(self) -> None:
        if self.state is not SessionState.SOURCES_KNOWN:
            raise SessionStateError(f"Cannot start recording in state {self.state.value}.")
        if not self.sources or not self.sources.mic:
            raise NoMicrophoneError("No microphone source found. Cannot record.")

        self.output_dir = tempfile.mkdtemp(prefix="ticketscribe-")
        self.start_time = time.time()
        for stream in (Stream.MIC, Stream.SYSTEM):
            source = self.sources.for_stream(stream)
            if not source:
                continue
            self.files[stream] = os.path.join(self.output_dir, OUTPUT_NAMES[stream])
            self.logs[stream] = os.path.join(self.output_dir, f"ffmpeg_{stream.value}.log")
            try:
                self.processes[stream] = self._spawn_capture(stream, source)
            except OSError as exc:
                for proc in self.processes.values():
                    proc.kill()
                    proc.wait()
                self.processes = {}
                raise AudioSetupError(f"Could not start ffmpeg for {source}: {exc}") from exc
        self.state = SessionState.RECORDING
        logger.info("Recording started in %s streams=%s", self.output_dir, self.streams)

    def _spawn_capture(self, stream: Stream, source: str) -> subprocess.Popen:
        cmd = [
            "ffmpeg",
            "-y",
            "-f",
            "pulse",
            "-i",
            source,
            "-ar",
            str(self.audio.sample_rate_hz),
            "-ac",
            str(self.audio.channels),
            "-codec:a",
            "libmp3lame",
            "-b:a",
            self.audio.bitrate,
            self.files[stream],
        ]
        with open(self.logs[stream], "wb") as log_handle:
            # Own process group: a Ctrl+C at the terminal must not reach ffmpeg.
            return subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=log_handle,
                start_new_session=True,
            )

    def elapsed(self) -> int:
        if self.start_time is None:
            return 0
        end = self.stop_time if self.stop_time is not None else time.time()
        return int(end - self.start_time)

    def stop(self) -> None:
        if self.state is not SessionState.RECORDING:
            return
        self.stop_time = time.time()
        try:
            for proc in self.processes.values():
                try:
                    proc.send_signal(signal.SIGINT)
                except (ProcessLookupError, OSError) as exc:
                    logger.debug("SIGINT to recorder %s failed: %s", proc.pid, exc)
            for stream, proc in self.processes.items():
                try:
                    proc.wait(timeout=STOP_TIMEOUT_S)
                except subprocess.TimeoutExpired:
                    logger.warning("Recorder for %s did not exit; terminating", stream.value)
                    proc.terminate()
                    proc.wait()
        finally:
            # Recorders live in their own session; nothing else will stop them.
            for stream, proc in self.processes.items():
                if proc.poll() is None:
                    logger.warning("Killing recorder for %s after interrupted stop", stream.value)
                    proc.kill()
                    proc.wait()
            self.processes = {}
            self.state = SessionState.STOPPED
        logger.info("Recording stopped after %ss", self.elapsed())

    def file_size_mb(self, stream: Stream) -> float:
        path = self.files.get(stream)
        if not path or not os.path.exists(path):
            return 0
        return round(os.path.getsize(path) / 1_048_576.0, 1)

    def is_empty(self, stream: Stream) -> bool:
        path = self.files.get(stream)
        if not path or not os.path.exists(path):
            return True
        # Raw size, not the rounded display value.
        return os.path.getsize(path) / 1_048_576.0 < EMPTY_STREAM_MB

    def last_capture_diagnostic(self, stream: Stream) -> Optional[str]:
        return read_capture_diagnostic(self.logs.get(stream))

    def cleanup(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        if self.state is SessionState.RECORDING:
            raise SessionStateError("Stop the recording before cleaning up.")
        if self.output_dir:
            shutil.rmtree(self.output_dir, ignore_errors=True)
        self.state = SessionState.CLOSED
