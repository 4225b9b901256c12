"""Background post-processing of finished recordings.

Each finished recording becomes a ``BackgroundUnit`` running on its own
thread. A unit never writes to the terminal; everything it says goes into
its own ``UnitOutput`` buffer, which the interactive loop flushes as one
block once the unit has finished.

Ordering: completed units are reported in the order they *finished*, not the
order they were submitted, so a short recording's summary is shown as soon as
it is ready even if an earlier, longer recording is still transcribing. Each
unit is reported exactly once, by either ``poll_completed`` or ``drain_all``.

There is no cancellation. Once submitted, a unit runs to success or to a
captured failure.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, TextIO

from .console import Terminal
from .errors import SessionStateError
from .models import SummaryMode, TicketContext
from .recorder import RecordingSession, SessionState

logger = logging.getLogger("ticketscribe")

Runner = Callable[[RecordingSession, TicketContext, SummaryMode, TextIO], object]


class UnitStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def glyph(self) -> str:
        return {
            UnitStatus.PENDING: "…",
            UnitStatus.SUCCEEDED: "✓",
            UnitStatus.FAILED: "✗",
        }[self]


class UnitOutput:
    """Append-only text buffer; sealed when its unit finishes."""

    def __init__(self) -> None:
        self._fragments: List[str] = []
        self._sealed = False
        self._lock = threading.Lock()

    def write(self, text: str) -> int:
        with self._lock:
            if self._sealed:
                raise ValueError("write to a finished unit's output")
            self._fragments.append(text)
        return len(text)

    def flush(self) -> None:
        pass

    def seal(self) -> None:
        with self._lock:
            self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def fragments(self) -> List[str]:
        with self._lock:
            return list(self._fragments)

    def getvalue(self) -> str:
        with self._lock:
            return "".join(self._fragments)

    def discard(self) -> None:
        with self._lock:
            self._fragments = []


@dataclass(eq=False)
class BackgroundUnit:
    label: str
    session: RecordingSession
    ticket: TicketContext
    mode: SummaryMode
    sequence: int
    output: UnitOutput = field(default_factory=UnitOutput)
    status: UnitStatus = UnitStatus.PENDING
    error: Optional[Exception] = None
    finished: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None

    @property
    def done(self) -> bool:
        return self.finished.is_set()

    def describe(self) -> str:
        return f"{self.status.glyph} {self.label}"


class BackgroundScheduler:
    def __init__(
        self,
        runner: Runner,
        terminal: Optional[Terminal] = None,
        mode: SummaryMode = SummaryMode.REQUIREMENTS,
    ) -> None:
        self.runner = runner
        self.terminal = terminal or Terminal()
        self.mode = mode
        self._sequence = itertools.count(1)
        self._cond = threading.Condition()
        self._outstanding: List[BackgroundUnit] = []
        self._finished: List[BackgroundUnit] = []

    def submit(
        self,
        session: RecordingSession,
        ticket: TicketContext,
        label: Optional[str] = None,
        mode: Optional[SummaryMode] = None,
    ) -> BackgroundUnit:
        if session.state is not SessionState.STOPPED:
            raise SessionStateError(
                f"Only a stopped recording can be submitted (state {session.state.value})."
            )
        unit = BackgroundUnit(
            label=label or ticket.name or ticket.task_id,
            session=session,
            ticket=ticket,
            mode=mode or self.mode,
            sequence=next(self._sequence),
        )
        unit.thread = threading.Thread(
            target=self._run,
            args=(unit,),
            name=f"unit-{unit.sequence}",
            daemon=True,
        )
        with self._cond:
            self._outstanding.append(unit)
        logger.info("Submitted unit %s (%s)", unit.sequence, unit.label)
        unit.thread.start()
        return unit

    def _run(self, unit: BackgroundUnit) -> None:
        try:
            self.runner(unit.session, unit.ticket, unit.mode, unit.output)
            unit.status = UnitStatus.SUCCEEDED
        except Exception as exc:
            logger.exception("Unit %s (%s) failed", unit.sequence, unit.label)
            unit.error = exc
            unit.status = UnitStatus.FAILED
            unit.output.write(f"\nError: {exc}\n")
        finally:
            try:
                unit.session.cleanup()
            except Exception as exc:
                logger.warning("Cleanup for unit %s failed: %s", unit.sequence, exc)
            unit.output.seal()
            with self._cond:
                unit.finished.set()
                self._finished.append(unit)
                self._cond.notify_all()
            logger.info("Unit %s finished: %s", unit.sequence, unit.status.value)

    def outstanding(self) -> List[BackgroundUnit]:
        with self._cond:
            return list(self._outstanding)

    def status_line(self) -> str:
        units = self.outstanding()
        if not units:
            return ""
        return "  Background: " + " | ".join(unit.describe() for unit in units)

    def poll_completed(self) -> List[BackgroundUnit]:
        with self._cond:
            completed = self._finished
            self._finished = []
            for unit in completed:
                self._outstanding.remove(unit)
        return completed

    def drain_all(self) -> List[BackgroundUnit]:
        pending = [unit for unit in self.outstanding() if not unit.done]
        if pending:
            self.terminal.print(
                f"\nWaiting for {len(pending)} background job(s) to finish..."
            )
            self.terminal.print(self.status_line())
        while True:
            try:
                with self._cond:
                    while len(self._finished) < len(self._outstanding):
                        self._cond.wait(0.5)
                break
            except KeyboardInterrupt:
                remaining = [unit for unit in self.outstanding() if not unit.done]
                self.terminal.print(
                    f"\nStill waiting for {len(remaining)} background job(s); "
                    "they cannot be cancelled."
                )
        return self.poll_completed()

    def flush(self, unit: BackgroundUnit) -> bool:
        text = unit.output.getvalue()
        unit.output.discard()
        if not text.strip():
            return False
        self.terminal.write_block(f"\n{unit.describe()}\n{text.rstrip()}\n")
        return True

    def flush_completed(self) -> List[BackgroundUnit]:
        completed = self.poll_completed()
        for unit in completed:
            self.flush(unit)
        return completed
