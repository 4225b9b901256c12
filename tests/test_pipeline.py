import io

import pytest

from ticketscribe.errors import TotalSilenceError
from ticketscribe.models import SummaryMode, SummaryResult, TicketContext
from ticketscribe.pipeline import Services, check_streams, process_recording


class FakeTranscriber:
    def __init__(self, texts):
        self.texts = texts
        self.paths = []

    def transcribe(self, audio_path, progress_cb=None):
        self.paths.append(audio_path)
        if progress_cb is not None:
            progress_cb(1, 2)
            progress_cb(2, 2)
        return self.texts.get(audio_path.rsplit("/", 1)[-1])


class FakeSummarizer:
    label = "Claude (test)"

    def __init__(self, plain="## Requirements\n- Export to CSV"):
        self.plain = plain
        self.calls = []

    def summarize(self, task_name, existing_description, mic_transcript, system_transcript, mode):
        self.calls.append((task_name, existing_description, mic_transcript, system_transcript, mode))
        html = "<strong>Requirements</strong>" if self.plain.strip() else ""
        return SummaryResult(plain=self.plain.strip(), html=html)


class FakeTracker:
    def __init__(self):
        self.prepended = []
        self.comments = []

    def prepend_description(self, task_id, new_html, existing_html):
        self.prepended.append((task_id, new_html, existing_html))

    def add_comment(self, task_id, html):
        self.comments.append((task_id, html))


TICKET = TicketContext(
    task_id="1201",
    name="CSV export",
    description_html="<body><p>Old notes</p></body>",
    permalink="https://app.asana.com/0/1/1201",
)


def _services(texts, plain="## Requirements\n- Export to CSV"):
    return Services(
        transcriber=FakeTranscriber(texts),
        summarizer=FakeSummarizer(plain),
        tracker=FakeTracker(),
    )


def test_requirements_mode_prepends_to_description(stopped_session):
    session = stopped_session(mic_bytes=20_000, system_bytes=20_000)
    services = _services({"mic.mp3": "we need csv", "system.mp3": "by friday"})
    out = io.StringIO()

    summary = process_recording(session, TICKET, services, SummaryMode.REQUIREMENTS, out)

    assert summary.plain.startswith("## Requirements")
    assert services.tracker.prepended == [
        ("1201", "<strong>Requirements</strong>", "<body><p>Old notes</p></body>")
    ]
    assert services.tracker.comments == []
    name, existing, mic, system, mode = services.summarizer.calls[0]
    assert (name, mic, system, mode) == ("CSV export", "we need csv", "by friday", SummaryMode.REQUIREMENTS)
    text = out.getvalue()
    assert "Duration: 01:05" in text
    assert "your audio: chunk 1/2" in text
    assert "Updated: https://app.asana.com/0/1/1201" in text


@pytest.mark.parametrize("mode", [SummaryMode.DISCOVERY, SummaryMode.REVIEW])
def test_other_modes_add_a_comment(stopped_session, mode):
    session = stopped_session(mic_bytes=20_000)
    services = _services({"mic.mp3": "what about auth?"})
    out = io.StringIO()

    process_recording(session, TICKET, services, mode, out)

    assert services.tracker.prepended == []
    assert services.tracker.comments == [("1201", "<strong>Requirements</strong>")]
    assert "Adding comment to Asana ticket..." in out.getvalue()


def test_one_empty_stream_warns_and_continues(stopped_session):
    session = stopped_session(
        mic_bytes=20_000,
        system_bytes=0,
        log_text="Stream mapping\n[pulse] Connection refused\n",
    )
    services = _services({"mic.mp3": "only me talking"})
    out = io.StringIO()

    process_recording(session, TICKET, services, SummaryMode.REQUIREMENTS, out)

    text = out.getvalue()
    assert "Warning: System audio (alsa_output.default.monitor) recorded nothing." in text
    assert "Connection refused" in text
    assert "Continuing with the other stream only." in text
    assert [path.rsplit("/", 1)[-1] for path in services.transcriber.paths] == ["mic.mp3"]
    _, _, mic, system, _ = services.summarizer.calls[0]
    assert (mic, system) == ("only me talking", None)
    assert len(services.tracker.prepended) == 1


def test_both_streams_empty_leaves_ticket_untouched(stopped_session):
    session = stopped_session(mic_bytes=100, system_bytes=0)
    services = _services({})

    with pytest.raises(TotalSilenceError):
        process_recording(session, TICKET, services, SummaryMode.REQUIREMENTS, io.StringIO())

    assert services.transcriber.paths == []
    assert services.summarizer.calls == []
    assert services.tracker.prepended == []
    assert services.tracker.comments == []


def test_blank_transcripts_stop_before_summarizing(stopped_session):
    session = stopped_session(mic_bytes=20_000, system_bytes=20_000)
    services = _services({"mic.mp3": "   ", "system.mp3": None})

    with pytest.raises(TotalSilenceError, match="no text"):
        process_recording(session, TICKET, services, SummaryMode.DISCOVERY, io.StringIO())

    assert services.summarizer.calls == []
    assert services.tracker.comments == []


def test_empty_summary_skips_ticket_update(stopped_session):
    session = stopped_session(mic_bytes=20_000)
    services = _services({"mic.mp3": "small talk about the weather"}, plain="  \n")
    out = io.StringIO()

    result = process_recording(session, TICKET, services, SummaryMode.REQUIREMENTS, out)

    assert result is None
    assert services.tracker.prepended == []
    assert "Nothing meaningful to add; ticket left unchanged." in out.getvalue()


def test_check_streams_keeps_only_non_empty(stopped_session):
    session = stopped_session(mic_bytes=0, system_bytes=20_000)
    out = io.StringIO()

    streams = check_streams(session, out)

    assert [stream.value for stream in streams] == ["system"]
    assert "Microphone (alsa_input.default) recorded nothing." in out.getvalue()
