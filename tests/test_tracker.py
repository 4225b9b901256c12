import pytest

from conftest import FakeResponse, FakeSession
from ticketscribe.errors import TicketBackendError
from ticketscribe.tracker import AsanaClient, merge_description, parse_task_id, strip_body


@pytest.mark.parametrize(
    "reference, expected",
    [
        ("https://app.asana.com/0/111/444555", "444555"),
        ("https://app.asana.com/0/111/444555/f", "444555"),
        ("https://app.asana.com/1/22/project/123/task/789", "789"),
        ("https://x.com/1/ws/project/123/task/789?focus=true", "789"),
        ("app.asana.com/0/1/2", "2"),
    ],
)
def test_parse_task_id_extracts_task_segment(reference, expected):
    assert parse_task_id(reference) == expected


@pytest.mark.parametrize(
    "reference",
    ["https://example.com/no/task", "", "not a url", "https://app.asana.com/0/abc/def", None, 42],
)
def test_parse_task_id_returns_none_for_other_input(reference):
    assert parse_task_id(reference) is None


def test_merge_description_without_existing_content():
    merged = merge_description("<h2>N</h2>", "")
    assert merged == "<body><h2>N</h2></body>"
    assert "<hr/>" not in merged


def test_merge_description_puts_new_content_first():
    merged = merge_description("<h2>N</h2>", "<body><p>Old</p></body>")
    assert merged.count("<body>") == 1
    assert merged.count("</body>") == 1
    assert merged.count("<hr/>") == 1
    assert merged.index("<h2>N</h2>") < merged.index("<hr/>") < merged.index("<p>Old</p>")


def test_strip_body_handles_attributes_and_whitespace():
    assert strip_body('  <body class="x">\n<p>Old</p>\n</body>  ') == "<p>Old</p>"
    assert strip_body(None) == ""


def test_fetch_ticket_builds_context():
    session = FakeSession(
        FakeResponse(
            payload={
                "data": {
                    "name": "Checkout flow",
                    "html_notes": "<body>Existing</body>",
                    "permalink_url": "https://app.asana.com/0/1/42",
                    "projects": [{"name": "Payments"}],
                }
            }
        )
    )
    client = AsanaClient("token", session=session)
    ticket = client.fetch_ticket("42")

    assert ticket.task_id == "42"
    assert ticket.name == "Checkout flow"
    assert ticket.description_html == "<body>Existing</body>"
    assert ticket.project_name == "Payments"
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url.endswith("/tasks/42")
    assert "html_notes" in kwargs["params"]["opt_fields"]
    assert kwargs["headers"]["Authorization"] == "Bearer token"


def test_prepend_description_sends_merged_notes():
    session = FakeSession(FakeResponse(payload={"data": {}}))
    client = AsanaClient("token", session=session)
    client.prepend_description("42", "<strong>New</strong>", "<body>Old</body>")

    method, url, kwargs = session.calls[0]
    assert method == "PUT"
    assert kwargs["json"] == {
        "data": {"html_notes": "<body><strong>New</strong>\n<hr/>\nOld</body>"}
    }


def test_add_comment_posts_story():
    session = FakeSession(FakeResponse(payload={"data": {}}))
    AsanaClient("token", session=session).add_comment("42", "<ul><li>x</li></ul>")

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url.endswith("/tasks/42/stories")
    assert kwargs["json"]["data"]["html_text"] == "<body><ul><li>x</li></ul></body>"


def test_backend_error_carries_asana_messages():
    session = FakeSession(
        FakeResponse(404, payload={"errors": [{"message": "Unknown object"}, {"message": "again"}]})
    )
    with pytest.raises(TicketBackendError) as excinfo:
        AsanaClient("token", session=session).fetch_ticket("42")
    assert "HTTP 404" in str(excinfo.value)
    assert "Unknown object; again" in str(excinfo.value)


def test_backend_error_with_non_json_body():
    session = FakeSession(FakeResponse(500, text="upstream exploded"))
    with pytest.raises(TicketBackendError, match="upstream exploded"):
        AsanaClient("token", session=session).add_comment("42", "x")
