"""Post-recording pipeline: transcribe, summarize, update the ticket."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, TextIO

from .console import DIVIDER, stream_sizes_line
from .errors import EmptyStreamWarning, TotalSilenceError
from .models import Stream, SummaryMode, SummaryResult, TicketContext
from .recorder import RecordingSession
from .summarizer import Summarizer
from .tracker import AsanaClient
from .transcriber import Transcriber

logger = logging.getLogger("ticketscribe")


@dataclass
class Services:
    transcriber: Transcriber
    summarizer: Summarizer
    tracker: AsanaClient


def _say(out: TextIO, text: str = "") -> None:
    out.write(f"{text}\n")


def check_streams(session: RecordingSession, out: TextIO) -> list[Stream]:
    """Return the streams worth transcribing, warning about the empty ones."""
    usable = []
    for stream in session.streams:
        if not session.is_empty(stream):
            usable.append(stream)
            continue
        warning = EmptyStreamWarning(
            stream.label,
            session.sources.for_stream(stream) if session.sources else None,
            session.last_capture_diagnostic(stream),
        )
        logger.warning("%s", warning)
        for line in str(warning).splitlines():
            _say(out, f"  {line}")
        _say(out)
    if not usable:
        raise TotalSilenceError("Both audio streams are empty, nothing to transcribe.")
    return usable


def transcribe_streams(
    session: RecordingSession,
    streams: list[Stream],
    transcriber: Transcriber,
    out: TextIO,
) -> Dict[Stream, Optional[str]]:
    labels = {Stream.MIC: "your audio", Stream.SYSTEM: "meeting audio"}
    transcripts: Dict[Stream, Optional[str]] = {}
    for stream in streams:

        def _progress(done: int, total: int, stream: Stream = stream) -> None:
            if total > 1:
                _say(out, f"  {labels[stream]}: chunk {done}/{total}")

        _say(out, f"Transcribing {labels[stream]}...")
        transcripts[stream] = transcriber.transcribe(session.files[stream], progress_cb=_progress)
    if not any((text or "").strip() for text in transcripts.values()):
        raise TotalSilenceError("Transcription produced no text.")
    return transcripts


def update_ticket(
    tracker: AsanaClient,
    ticket: TicketContext,
    summary: SummaryResult,
    mode: SummaryMode,
    out: TextIO,
) -> None:
    if mode.updates_description:
        _say(out, "Updating Asana ticket...")
        tracker.prepend_description(ticket.task_id, summary.html, ticket.description_html)
    else:
        _say(out, "Adding comment to Asana ticket...")
        tracker.add_comment(ticket.task_id, summary.html)
    _say(out, f"Updated: {ticket.permalink or ticket.task_id}")


def process_recording(
    session: RecordingSession,
    ticket: TicketContext,
    services: Services,
    mode: SummaryMode,
    out: TextIO,
) -> Optional[SummaryResult]:
    """Run everything that happens after a recording stops.

    Errors propagate to the caller; the ticket is only touched once a
    non-empty summary exists.
    """
    _say(out, stream_sizes_line(session))
    _say(out)

    streams = check_streams(session, out)
    transcripts = transcribe_streams(session, streams, services.transcriber, out)

    _say(out, f"Summarizing with {services.summarizer.label}...")
    summary = services.summarizer.summarize(
        ticket.name,
        ticket.description_html,
        transcripts.get(Stream.MIC),
        transcripts.get(Stream.SYSTEM),
        mode,
    )
    if summary.is_empty:
        _say(out, "Nothing meaningful to add; ticket left unchanged.")
        return None

    _say(out, DIVIDER)
    _say(out, summary.plain)
    _say(out, DIVIDER)
    update_ticket(services.tracker, ticket, summary, mode, out)
    return summary
