"""Configuration handling."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = "ticketscribe.yml"

OPENAI_TRANSCRIBE_URL = "https://api.openai.com/v1/audio/transcriptions"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
ASANA_BASE_URL = "https://app.asana.com/api/1.0"


@dataclass
class AudioConfig:
    sample_rate_hz: int = 16000
    channels: int = 1
    bitrate: str = "32k"


@dataclass
class TranscriptionConfig:
    backend: str = "api"
    api_url: str = OPENAI_TRANSCRIBE_URL
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini-transcribe"
    segment_seconds: int = 600
    timeout_s: float = 300.0


@dataclass
class SummarizationConfig:
    provider: str = "anthropic"
    api_url: str = ANTHROPIC_MESSAGES_URL
    api_key: Optional[str] = None
    model: str = "claude-sonnet-4-6"
    max_tokens: int = 4096
    timeout_s: float = 300.0


@dataclass
class Config:
    tracker_token: Optional[str] = None
    tracker_url: str = ASANA_BASE_URL
    local: bool = False
    language: str = "en"
    log_dir: str = field(
        default_factory=lambda: os.path.join(os.path.expanduser("~"), ".ticketscribe", "logs")
    )
    audio: AudioConfig = field(default_factory=AudioConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)


def _env(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_settings_file(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_config(
    path: Optional[str] = None,
    local: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Build the run configuration from the settings file and the environment.

    Non-secret defaults come from the optional YAML file; credentials and
    endpoints always come from the environment (``.env`` is loaded first when
    reading the real process environment).
    """
    if environ is None:
        load_dotenv(override=False)
        environ = os.environ

    data: dict = {}
    if path:
        data = load_settings_file(path)
    elif os.path.exists(DEFAULT_CONFIG_PATH):
        data = load_settings_file(DEFAULT_CONFIG_PATH)

    audio = AudioConfig(**data.get("audio", {}))
    transcription = TranscriptionConfig(**data.get("transcription", {}))
    summarization = SummarizationConfig(**data.get("summarization", {}))

    config = Config(
        tracker_token=_env(environ, "ASANA_ACCESS_TOKEN"),
        local=local,
        language=data.get("language", "en"),
        audio=audio,
        transcription=transcription,
        summarization=summarization,
    )
    if data.get("log_dir"):
        config.log_dir = data["log_dir"]

    config.language = _env(environ, "TRANSCRIPTION_LANGUAGE") or config.language
    config.log_dir = os.path.expanduser(_env(environ, "TICKETSCRIBE_LOG_DIR") or config.log_dir)

    transcription.backend = _env(environ, "TRANSCRIPTION_BACKEND") or transcription.backend
    if local:
        transcription.api_url = _env(environ, "WHISPER_API_URL") or ""
        transcription.api_key = _env(environ, "WHISPER_API_KEY")
        transcription.model = _env(environ, "WHISPER_MODEL") or "default"
    else:
        transcription.api_key = _env(environ, "OPENAI_API_KEY")
        transcription.model = _env(environ, "WHISPER_MODEL") or transcription.model
    if transcription.backend == "faster-whisper" and not _env(environ, "WHISPER_MODEL"):
        transcription.model = "small"

    if local:
        summarization.provider = _env(environ, "LLM_PROVIDER") or "openai"
        summarization.api_url = _env(environ, "LLM_API_URL") or ""
        summarization.api_key = _env(environ, "LLM_API_KEY")
        summarization.model = _env(environ, "LLM_MODEL") or "default"
    else:
        summarization.provider = _env(environ, "LLM_PROVIDER") or summarization.provider
        summarization.model = _env(environ, "LLM_MODEL") or summarization.model
        if summarization.provider == "openai":
            summarization.api_url = _env(environ, "LLM_API_URL") or OPENAI_CHAT_URL
            summarization.api_key = _env(environ, "LLM_API_KEY") or _env(environ, "OPENAI_API_KEY")
            if summarization.model == SummarizationConfig.model:
                summarization.model = "gpt-4o-mini"
        else:
            summarization.api_key = _env(environ, "ANTHROPIC_API_KEY") or _env(
                environ, "LLM_API_KEY"
            )
    return config


def missing_settings(config: Config) -> list[str]:
    missing = []
    if not config.tracker_token:
        missing.append("ASANA_ACCESS_TOKEN")
    if config.local:
        if config.transcription.backend == "api" and not config.transcription.api_url:
            missing.append("WHISPER_API_URL")
        if not config.summarization.api_url:
            missing.append("LLM_API_URL")
    else:
        if config.transcription.backend == "api" and not config.transcription.api_key:
            missing.append("OPENAI_API_KEY")
        if not config.summarization.api_key:
            if config.summarization.provider == "openai":
                missing.append("LLM_API_KEY")
            else:
                missing.append("ANTHROPIC_API_KEY")
    return missing


def validate_config(config: Config) -> Config:
    missing = missing_settings(config)
    if missing:
        hint = (
            "Copy .env.example to .env and fill in your API keys.\n"
            "To use local models instead, run with --local and set WHISPER_API_URL "
            "and LLM_API_URL in .env."
        )
        raise ConfigurationError.for_missing(missing, hint=hint)
    if config.transcription.backend not in ("api", "faster-whisper"):
        raise ConfigurationError(
            "TRANSCRIPTION_BACKEND must be 'api' or 'faster-whisper'."
        )
    if config.summarization.provider not in ("anthropic", "openai"):
        raise ConfigurationError("LLM_PROVIDER must be 'anthropic' or 'openai'.")
    return config
