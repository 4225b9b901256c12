"""Asana ticket access."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

import requests

from .config import ASANA_BASE_URL
from .errors import TicketBackendError
from .models import TicketContext

logger = logging.getLogger("ticketscribe")

TASK_FIELDS = "name,html_notes,notes,permalink_url,projects.name"

# https://app.asana.com/1/{workspace}/project/{project}/task/{task}
_TASK_SEGMENT = re.compile(r"/task/(\d+)")
# https://app.asana.com/0/{project}/{task}[/f]
_PROJECT_TASK_PAIR = re.compile(r"(?:^|//)[\w.-]+/0/\d+/(\d+)")

_BODY_OPEN = re.compile(r"\A\s*<body[^>]*>", re.IGNORECASE)
_BODY_CLOSE = re.compile(r"</body>\s*\Z", re.IGNORECASE)

DESCRIPTION_DIVIDER = "\n<hr/>\n"


def parse_task_id(reference: Any) -> Optional[str]:
    if not isinstance(reference, str):
        return None
    match = _TASK_SEGMENT.search(reference) or _PROJECT_TASK_PAIR.search(reference)
    return match.group(1) if match else None


def strip_body(html: Optional[str]) -> str:
    inner = (html or "").strip()
    inner = _BODY_OPEN.sub("", inner, count=1)
    inner = _BODY_CLOSE.sub("", inner, count=1)
    return inner.strip()


def merge_description(new_html: str, existing_html: Optional[str]) -> str:
    inner = strip_body(existing_html)
    divider = DESCRIPTION_DIVIDER if inner else ""
    return f"<body>{new_html}{divider}{inner}</body>"


class AsanaClient:
    def __init__(
        self,
        access_token: str,
        base_url: str = ASANA_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout_s: float = 30.0,
    ) -> None:
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    def fetch_ticket(self, task_id: str) -> TicketContext:
        data = self._request("GET", f"/tasks/{task_id}", "fetch task", params={"opt_fields": TASK_FIELDS})
        return TicketContext.from_api(task_id, data.get("data") or {})

    def prepend_description(self, task_id: str, new_html: str, existing_html: Optional[str]) -> dict:
        body = {"html_notes": merge_description(new_html, existing_html)}
        logger.info("Prepending %s chars to task %s", len(new_html), task_id)
        return self._request("PUT", f"/tasks/{task_id}", "update task", payload=body)

    def add_comment(self, task_id: str, html: str) -> dict:
        body = {"html_text": f"<body>{html}</body>"}
        logger.info("Adding comment to task %s", task_id)
        return self._request("POST", f"/tasks/{task_id}/stories", "add comment", payload=body)

    def _request(
        self,
        method: str,
        path: str,
        context: str,
        params: Optional[dict] = None,
        payload: Optional[dict] = None,
    ) -> dict:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                params=params,
                json={"data": payload} if payload is not None else None,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise TicketBackendError(f"Asana API error ({context}): {exc}") from exc

        if not 200 <= response.status_code < 300:
            try:
                errors = response.json().get("errors") or []
                messages = "; ".join(str(err.get("message")) for err in errors)
            except (ValueError, AttributeError):
                messages = response.text
            raise TicketBackendError(
                f"Asana API error ({context}): HTTP {response.status_code}: {messages or response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise TicketBackendError(f"Asana API error ({context}): invalid JSON response") from exc
