"""Error taxonomy."""

from __future__ import annotations


class TicketscribeError(Exception):
    """Base class for every error raised by ticketscribe."""


class ConfigurationError(TicketscribeError):
    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        super().__init__(message)

    @classmethod
    def for_missing(cls, missing: list[str], hint: str = "") -> "ConfigurationError":
        message = f"Missing required environment variables: {', '.join(missing)}"
        if hint:
            message = f"{message}\n{hint}"
        return cls(message, missing=missing)


class AudioSetupError(TicketscribeError):
    pass


class MissingDependencyError(AudioSetupError):
    def __init__(self, tools: dict[str, str]) -> None:
        self.tools = dict(tools)
        listed = ", ".join(
            tool if package == tool else f"{tool} ({package})"
            for tool, package in self.tools.items()
        )
        super().__init__(
            f"Missing required tools: {listed}\n"
            f"Install with: sudo apt-get install {' '.join(self.tools.values())}"
        )


class NoSourcesError(AudioSetupError):
    pass


class NoMicrophoneError(AudioSetupError):
    pass


class SessionStateError(AudioSetupError):
    pass


class TotalSilenceError(TicketscribeError):
    pass


class BackendError(TicketscribeError):
    pass


class TranscriptionBackendError(BackendError):
    pass


class SummarizationBackendError(BackendError):
    pass


class TicketBackendError(BackendError):
    pass


class EmptyStreamWarning(UserWarning):
    """A stream recorded (almost) nothing; the other stream is still used."""

    def __init__(self, label: str, source: str | None, diagnostic: str | None = None) -> None:
        self.label = label
        self.source = source
        self.diagnostic = diagnostic
        super().__init__(label, source, diagnostic)

    def __str__(self) -> str:
        lines = [f"Warning: {self.label} ({self.source or 'unknown source'}) recorded nothing."]
        if self.diagnostic:
            tail = [line.strip() for line in self.diagnostic.splitlines() if line.strip()]
            lines.append(f"ffmpeg: {'  '.join(tail[-3:])}")
        lines.append("Continuing with the other stream only.")
        return "\n".join(lines)
