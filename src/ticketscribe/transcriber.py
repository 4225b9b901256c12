"""Transcription through a Whisper-compatible HTTP API or Faster-Whisper."""

from __future__ import annotations

import glob
import logging
import os
import subprocess
import tempfile
import threading
from typing import Callable, List, Optional

import requests

from .config import TranscriptionConfig
from .errors import TranscriptionBackendError

logger = logging.getLogger("ticketscribe")

MIN_AUDIO_BYTES = 1024
# API limit is 25 MB; leave a margin for the multipart envelope.
MAX_UPLOAD_BYTES = 24 * 1024 * 1024

MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
}


def mime_type(path: str) -> str:
    return MIME_TYPES.get(os.path.splitext(path)[1].lower(), "audio/mpeg")


def split_audio(path: str, output_dir: str, segment_seconds: int) -> List[str]:
    pattern = os.path.join(output_dir, "chunk_%03d.mp3")
    result = subprocess.run(
        [
            "ffmpeg",
            "-y",
            "-i",
            path,
            "-f",
            "segment",
            "-segment_time",
            str(segment_seconds),
            "-codec",
            "copy",
            pattern,
        ],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=False,
    )
    if result.returncode != 0:
        raise TranscriptionBackendError("Failed to split audio file for chunked transcription")
    chunks = sorted(glob.glob(os.path.join(output_dir, "chunk_*.mp3")))
    if not chunks:
        raise TranscriptionBackendError(f"No chunks produced from {path}")
    return chunks


class Transcriber:
    def __init__(
        self,
        config: Optional[TranscriptionConfig] = None,
        language: str = "en",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or TranscriptionConfig()
        self.language = language
        self.session = session or requests.Session()
        self._model = None
        self._model_lock = threading.Lock()

    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ) -> Optional[str]:
        """Return the transcript, or None when the file holds nothing worth sending."""
        if not os.path.exists(audio_path) or os.path.getsize(audio_path) <= MIN_AUDIO_BYTES:
            logger.info("Skipping transcription of %s: missing or too small", audio_path)
            return None
        language = language or self.language

        if self.config.backend == "faster-whisper":
            return self._transcribe_local(audio_path, language)

        if os.path.getsize(audio_path) > MAX_UPLOAD_BYTES:
            return self._transcribe_chunked(audio_path, language, progress_cb)
        text = self._call_api(audio_path, language)
        if progress_cb:
            progress_cb(1, 1)
        return text

    def _transcribe_chunked(
        self,
        audio_path: str,
        language: str,
        progress_cb: Optional[Callable[[int, int], None]],
    ) -> str:
        with tempfile.TemporaryDirectory(prefix="ticketscribe-chunks-") as tmp:
            chunks = split_audio(audio_path, tmp, self.config.segment_seconds)
            logger.info("Transcribing %s in %s chunks", audio_path, len(chunks))
            texts = []
            for idx, chunk in enumerate(chunks, start=1):
                texts.append(self._call_api(chunk, language))
                if progress_cb:
                    progress_cb(idx, len(chunks))
        return " ".join(texts)

    def _call_api(self, audio_path: str, language: str) -> str:
        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        data = {
            "model": self.config.model,
            # faster-whisper-server reads model_name instead of model.
            "model_name": self.config.model,
            "language": language,
        }
        try:
            with open(audio_path, "rb") as handle:
                files = {"file": (os.path.basename(audio_path), handle, mime_type(audio_path))}
                response = self.session.post(
                    self.config.api_url,
                    headers=headers,
                    data=data,
                    files=files,
                    timeout=self.config.timeout_s,
                )
        except requests.RequestException as exc:
            raise TranscriptionBackendError(f"Whisper API request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            message = None
            try:
                message = (response.json().get("error") or {}).get("message")
            except (ValueError, AttributeError):
                message = None
            raise TranscriptionBackendError(
                f"Whisper API error: HTTP {response.status_code}: "
                f"{message or (response.text or '')[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionBackendError("Whisper API returned invalid JSON.") from exc
        text = payload.get("text") if isinstance(payload, dict) else None
        if text is None:
            raise TranscriptionBackendError(f"Whisper returned no text. Response: {payload!r}")
        return text.strip()

    def _load_model(self):
        with self._model_lock:
            if self._model is None:
                try:
                    from faster_whisper import WhisperModel
                except Exception as exc:  # pragma: no cover - optional dependency
                    raise TranscriptionBackendError(
                        "faster-whisper is required for TRANSCRIPTION_BACKEND=faster-whisper."
                    ) from exc
                logger.info("Loading faster-whisper model %s", self.config.model)
                self._model = WhisperModel(self.config.model)
            return self._model

    def _transcribe_local(self, audio_path: str, language: str) -> str:
        model = self._load_model()
        segments, _info = model.transcribe(audio_path, language=language)
        texts = [seg.text.strip() for seg in segments]
        return " ".join(text for text in texts if text)
