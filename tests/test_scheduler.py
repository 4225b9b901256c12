import io
import threading

import pytest

from ticketscribe.console import Terminal
from ticketscribe.errors import SessionStateError, TranscriptionBackendError
from ticketscribe.models import SummaryMode, TicketContext
from ticketscribe.recorder import AudioSources, RecordingSession, SessionState
from ticketscribe.scheduler import BackgroundScheduler, UnitOutput, UnitStatus


def _ticket(idx):
    return TicketContext(task_id=str(idx), name=f"Ticket {idx}")


def _gated_runner(gates, started=None):
    """Each unit writes a line, then waits until the test opens its gate."""

    def _runner(session, ticket, mode, out):
        out.write(f"summary for {ticket.name}\n")
        if started is not None:
            started[ticket.task_id].set()
        if not gates[ticket.task_id].wait(5):
            raise AssertionError("gate never opened")
        if ticket.task_id == "fail":
            raise TranscriptionBackendError("Whisper API error: HTTP 500: boom")

    return _runner


def test_drain_returns_each_unit_once_with_its_output(stopped_session):
    gates = {str(idx): threading.Event() for idx in range(4)}
    terminal = Terminal(io.StringIO())
    scheduler = BackgroundScheduler(_gated_runner(gates), terminal=terminal)

    submitted = [scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(idx)) for idx in range(4)]
    assert [unit.sequence for unit in submitted] == [1, 2, 3, 4]
    for gate in gates.values():
        gate.set()

    drained = scheduler.drain_all()
    assert sorted(unit.sequence for unit in drained) == [1, 2, 3, 4]
    assert len(set(map(id, drained))) == 4
    for unit in drained:
        assert unit.status is UnitStatus.SUCCEEDED
        assert unit.output.getvalue() == f"summary for {unit.ticket.name}\n"
        assert unit.session.state is SessionState.CLOSED
    assert scheduler.outstanding() == []
    assert scheduler.drain_all() == []


def test_completed_units_are_reported_in_finish_order(stopped_session):
    gates = {"1": threading.Event(), "2": threading.Event()}
    scheduler = BackgroundScheduler(_gated_runner(gates), terminal=Terminal(io.StringIO()))
    first = scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(1))
    second = scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(2))

    assert scheduler.poll_completed() == []
    gates["2"].set()
    second.finished.wait(5)
    assert scheduler.poll_completed() == [second]
    assert scheduler.outstanding() == [first]
    assert "… Ticket 1" in scheduler.status_line()

    gates["1"].set()
    assert scheduler.drain_all() == [first]
    assert scheduler.poll_completed() == []


def test_submit_returns_before_the_pipeline_finishes(stopped_session):
    gates = {"1": threading.Event()}
    started = {"1": threading.Event()}
    scheduler = BackgroundScheduler(_gated_runner(gates, started), terminal=Terminal(io.StringIO()))

    unit = scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(1))
    assert started["1"].wait(5)
    assert not unit.done
    assert unit.status is UnitStatus.PENDING
    gates["1"].set()
    scheduler.drain_all()
    assert unit.done


def test_failure_is_captured_in_the_unit_buffer(stopped_session):
    gates = {"fail": threading.Event()}
    gates["fail"].set()
    out = io.StringIO()
    scheduler = BackgroundScheduler(_gated_runner(gates), terminal=Terminal(out))

    unit = scheduler.submit(stopped_session(mic_bytes=20_000), TicketContext("fail", "Broken"))
    [drained] = scheduler.drain_all()

    assert drained is unit
    assert unit.status is UnitStatus.FAILED
    assert isinstance(unit.error, TranscriptionBackendError)
    assert "Error: Whisper API error: HTTP 500: boom" in unit.output.getvalue()
    assert unit.session.state is SessionState.CLOSED

    assert scheduler.flush(unit)
    flushed = out.getvalue()
    assert "✗ Broken" in flushed
    assert "summary for Broken" in flushed
    assert unit.output.getvalue() == ""


def test_drain_reports_outstanding_count(stopped_session):
    gates = {"1": threading.Event(), "2": threading.Event()}
    started = {"1": threading.Event(), "2": threading.Event()}
    out = io.StringIO()
    scheduler = BackgroundScheduler(_gated_runner(gates, started), terminal=Terminal(out))
    scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(1))
    scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(2))
    started["1"].wait(5)
    started["2"].wait(5)

    timer = threading.Timer(0.2, lambda: [gate.set() for gate in gates.values()])
    timer.start()
    drained = scheduler.drain_all()
    timer.join()

    assert len(drained) == 2
    assert "Waiting for 2 background job(s) to finish" in out.getvalue()


def test_flush_skips_blank_output(stopped_session):
    out = io.StringIO()
    scheduler = BackgroundScheduler(lambda *args: args[3].write("  \n\n"), terminal=Terminal(out))
    unit = scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(1))
    scheduler.drain_all()

    assert scheduler.flush(unit) is False
    assert out.getvalue() == ""


def test_flush_writes_one_block(stopped_session):
    out = io.StringIO()

    def _runner(session, ticket, mode, buffer):
        buffer.write("line one\n")
        buffer.write(f"mode {mode.value}\n")

    scheduler = BackgroundScheduler(_runner, terminal=Terminal(out), mode=SummaryMode.DISCOVERY)
    unit = scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(7))
    assert unit.finished.wait(5)
    assert scheduler.flush_completed() == [unit]
    assert out.getvalue() == "\n✓ Ticket 7\nline one\nmode discovery\n"


def test_unit_output_is_sealed_after_finish(stopped_session):
    scheduler = BackgroundScheduler(lambda *args: None, terminal=Terminal(io.StringIO()))
    unit = scheduler.submit(stopped_session(mic_bytes=20_000), _ticket(1))
    scheduler.drain_all()
    assert unit.output.sealed
    with pytest.raises(ValueError):
        unit.output.write("late")


def test_unit_output_keeps_fragment_order():
    output = UnitOutput()
    output.write("a")
    output.write("b")
    assert output.fragments == ["a", "b"]
    assert output.getvalue() == "ab"


def test_submit_requires_stopped_session():
    scheduler = BackgroundScheduler(lambda *args: None, terminal=Terminal(io.StringIO()))
    session = RecordingSession(sources=AudioSources(mic="RDPSource"))
    with pytest.raises(SessionStateError):
        scheduler.submit(session, _ticket(1))
    assert scheduler.outstanding() == []
