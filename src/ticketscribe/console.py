"""Terminal output discipline and the recording wait loop."""

from __future__ import annotations

import logging
import select
import signal
import sys
import threading
import time
from typing import Callable, Optional, TextIO

from .models import Stream

logger = logging.getLogger("ticketscribe")

RECORD_GLYPH = "\033[31m●\033[0m"
DIVIDER = "─" * 60


def format_elapsed(seconds: int) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


class Terminal:
    """Single writer discipline for stdout.

    Every write takes the same lock, so a flushed background block is never
    interleaved with the live timer line or a prompt.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stdout
        self.lock = threading.Lock()

    def write_block(self, text: str) -> None:
        if not text.endswith("\n"):
            text += "\n"
        with self.lock:
            self.stream.write(text)
            self.stream.flush()

    def print(self, text: str = "") -> None:
        self.write_block(text)

    def live(self, text: str) -> None:
        with self.lock:
            self.stream.write(f"\r{text}   ")
            self.stream.flush()

    def prompt(self, message: str, reader: Callable[[], str] = input) -> str:
        with self.lock:
            self.stream.write(message)
            self.stream.flush()
        return reader()


class StopToken:
    """Set once by whichever stop path fires first (Enter or Ctrl+C)."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason: Optional[str] = None

    def request(self, reason: str) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
        logger.info("Stop requested (%s)", reason)
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def stdin_line_ready(timeout: float, stdin: Optional[TextIO] = None) -> bool:
    """Consume one line of input if one is ready within ``timeout``.

    Only a terminal is polled with ``select``. Piped input may already sit in
    the text buffer where ``select`` cannot see it, so the next line (or end
    of input) is read directly and always counts as a stop.
    """
    stdin = stdin or sys.stdin
    try:
        interactive = stdin.isatty()
    except (AttributeError, ValueError):
        interactive = False
    if not interactive:
        stdin.readline()
        return True
    try:
        ready, _, _ = select.select([stdin], [], [], timeout)
    except (OSError, ValueError):
        # Not a selectable stream (closed or redirected); fall back to sleeping.
        time.sleep(timeout)
        return False
    if not ready:
        return False
    stdin.readline()
    return True


def recording_status(session) -> str:
    sizes = " | ".join(
        f"{stream.value}: {session.file_size_mb(stream)} MB" for stream in session.streams
    )
    return f"  {RECORD_GLYPH} {format_elapsed(session.elapsed())}  {sizes}"


def wait_for_stop(
    session,
    terminal: Terminal,
    token: Optional[StopToken] = None,
    interval: float = 0.5,
    input_ready: Callable[[float], bool] = stdin_line_ready,
) -> StopToken:
    """Show the live timer until Enter or Ctrl+C, then return the token."""
    token = token or StopToken()
    previous = None
    in_main_thread = threading.current_thread() is threading.main_thread()
    if in_main_thread:
        previous = signal.signal(signal.SIGINT, lambda _sig, _frame: token.request("interrupt"))
    try:
        while not token.is_set():
            terminal.live(recording_status(session))
            if input_ready(interval):
                token.request("enter")
    finally:
        if in_main_thread:
            signal.signal(
                signal.SIGINT, previous if previous is not None else signal.default_int_handler
            )
    terminal.print("")
    return token


def stream_sizes_line(session) -> str:
    parts = [f"Duration: {format_elapsed(session.elapsed())}"]
    for stream in (Stream.MIC, Stream.SYSTEM):
        size = session.file_size_mb(stream)
        if size > 0:
            parts.append(f"{stream.label}: {size} MB")
    return "  " + "  ".join(parts)
