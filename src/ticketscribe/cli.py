"""CLI entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, List, Optional, TextIO

from .config import Config, load_config, validate_config
from .console import Terminal, wait_for_stop
from .errors import (
    AudioSetupError,
    ConfigurationError,
    TicketBackendError,
    TicketscribeError,
)
from .logging_utils import setup_logging
from .models import SummaryMode, TicketContext
from .pipeline import Services, process_recording
from .recorder import AudioSources, RecordingSession, detect_sources
from .scheduler import BackgroundScheduler
from .summarizer import Summarizer
from .tracker import AsanaClient, parse_task_id
from .transcriber import Transcriber

logger = logging.getLogger("ticketscribe")

EXAMPLES = """\
examples:
  ticketscribe                                   interactive: one recording per ticket
  ticketscribe https://app.asana.com/0/123456/789012
  ticketscribe --discover https://app.asana.com/1/ws/project/123/task/456

Required environment variables (set in .env):
  ASANA_ACCESS_TOKEN   Asana personal access token
  OPENAI_API_KEY       OpenAI key for Whisper transcription (not needed with --local)
  ANTHROPIC_API_KEY    Anthropic key for Claude summarization (not needed with --local)
With --local set WHISPER_API_URL and LLM_API_URL (optionally LLM_PROVIDER, LLM_MODEL).
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ticketscribe",
        description=(
            "Record a meeting about an Asana ticket, transcribe and summarize it, "
            "and write the summary back into the ticket."
        ),
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "ticket",
        nargs="?",
        help="Asana task URL. Omit to record several tickets interactively.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SummaryMode],
        default=SummaryMode.REQUIREMENTS.value,
        help="Summary style (requirements prepends to the description, others comment).",
    )
    parser.add_argument(
        "-d",
        "--discover",
        action="store_const",
        dest="mode",
        const=SummaryMode.DISCOVERY.value,
        help="Shortcut for --mode discovery.",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Use local transcription and LLM endpoints (WHISPER_API_URL, LLM_API_URL).",
    )
    parser.add_argument("--config", help="YAML settings file.")
    parser.add_argument("--language", help="Transcription language code (default en).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def build_services(config: Config) -> Services:
    return Services(
        transcriber=Transcriber(config.transcription, language=config.language),
        summarizer=Summarizer(config.summarization),
        tracker=AsanaClient(config.tracker_token or "", base_url=config.tracker_url),
    )


def show_ticket(terminal: Terminal, ticket: TicketContext, mode: SummaryMode) -> None:
    lines = ["", f"  Ticket : {ticket.name}"]
    if ticket.project_name:
        lines.append(f"  Project: {ticket.project_name}")
    lines.append(f"  Mode   : {mode.title}")
    terminal.print("\n".join(lines) + "\n")


def show_sources(terminal: Terminal, sources: AudioSources) -> None:
    terminal.print(sources.describe())
    if not sources.monitor_available:
        terminal.print(
            "  Note: only your microphone will be captured; others in the meeting "
            "will not be transcribed."
        )
    terminal.print("")


def record(sources: AudioSources, config: Config, terminal: Terminal) -> RecordingSession:
    """Record until Enter or Ctrl+C and return the stopped session."""
    session = RecordingSession(config.audio, sources=sources)
    try:
        session.start()
    except Exception:
        session.cleanup()
        raise
    terminal.print("Recording. Press Enter or Ctrl+C to stop.\n")
    try:
        wait_for_stop(session, terminal)
        session.stop()
    except BaseException:
        # The caller never receives this session, so it cannot clean it up.
        session.stop()
        session.cleanup()
        raise
    return session


def run_once(
    reference: str,
    config: Config,
    mode: SummaryMode,
    terminal: Terminal,
    services: Optional[Services] = None,
) -> int:
    task_id = parse_task_id(reference)
    if not task_id:
        print("Could not parse a task ID from that URL.", file=sys.stderr)
        return 1
    services = services or build_services(config)
    session: Optional[RecordingSession] = None
    try:
        terminal.print("Fetching ticket...")
        ticket = services.tracker.fetch_ticket(task_id)
        show_ticket(terminal, ticket, mode)

        terminal.print("Detecting audio sources...")
        sources = detect_sources()
        show_sources(terminal, sources)

        session = record(sources, config, terminal)
        process_recording(session, ticket, services, mode, terminal.stream)
    except TicketscribeError as exc:
        logger.error("Run failed: %s", exc)
        print(f"\nError: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 1
    finally:
        if session is not None:
            session.cleanup()
    return 0


def run_interactive(
    config: Config,
    mode: SummaryMode,
    terminal: Terminal,
    make_services: Optional[Callable[[], Services]] = None,
    reader=input,
) -> int:
    make_services = make_services or (lambda: build_services(config))
    # Foreground lookups get their own clients; every unit builds fresh ones.
    tracker = make_services().tracker

    def _runner(session, ticket, unit_mode, out: TextIO):
        return process_recording(session, ticket, make_services(), unit_mode, out)

    scheduler = BackgroundScheduler(_runner, terminal=terminal, mode=mode)

    terminal.print("Detecting audio sources...")
    try:
        sources = detect_sources()
    except AudioSetupError as exc:
        print(f"\nAudio setup failed: {exc}", file=sys.stderr)
        return 1
    show_sources(terminal, sources)

    try:
        while True:
            scheduler.flush_completed()
            status = scheduler.status_line()
            if status:
                terminal.print(status)
            try:
                reference = terminal.prompt("Ticket URL (blank to finish): ", reader).strip()
            except (EOFError, KeyboardInterrupt):
                terminal.print("")
                break
            if not reference:
                break

            task_id = parse_task_id(reference)
            if not task_id:
                terminal.print("  Could not parse a task ID from that URL.\n")
                continue
            try:
                ticket = tracker.fetch_ticket(task_id)
            except TicketBackendError as exc:
                terminal.print(f"  {exc}\n")
                continue
            show_ticket(terminal, ticket, mode)

            session = record(sources, config, terminal)
            unit = scheduler.submit(session, ticket)
            terminal.print(f"  Processing in background: {unit.label}\n")
    except KeyboardInterrupt:
        terminal.print("")
    except AudioSetupError as exc:
        print(f"\nAudio setup failed: {exc}", file=sys.stderr)
        _drain(scheduler)
        return 1

    _drain(scheduler)
    return 0


def _drain(scheduler: BackgroundScheduler) -> List:
    units = scheduler.drain_all()
    for unit in units:
        scheduler.flush(unit)
    return units


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    mode = SummaryMode(args.mode)

    try:
        config = validate_config(load_config(args.config, local=bool(args.local)))
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except (OSError, ValueError, TypeError) as exc:
        print(f"Could not load settings: {exc}", file=sys.stderr)
        return 1
    if args.language:
        config.language = args.language

    _logger, log_path = setup_logging(
        config.log_dir, level=logging.DEBUG if args.verbose else logging.INFO
    )
    logger.info("Starting mode=%s local=%s log=%s", mode.value, config.local, log_path)

    terminal = Terminal()
    if args.ticket and args.ticket.strip():
        return run_once(args.ticket.strip(), config, mode, terminal)
    return run_interactive(config, mode, terminal)


if __name__ == "__main__":
    raise SystemExit(main())
