"""Data models for ticketscribe."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Stream(str, Enum):
    MIC = "mic"
    SYSTEM = "system"

    @property
    def label(self) -> str:
        return "Microphone" if self is Stream.MIC else "System audio"


class SummaryMode(str, Enum):
    REQUIREMENTS = "requirements"
    DISCOVERY = "discovery"
    REVIEW = "review"

    @property
    def title(self) -> str:
        return {
            SummaryMode.REQUIREMENTS: "Requirements",
            SummaryMode.DISCOVERY: "Discovery",
            SummaryMode.REVIEW: "Decision review",
        }[self]

    @property
    def updates_description(self) -> bool:
        # Only requirements are merged into the ticket body; the rest become comments.
        return self is SummaryMode.REQUIREMENTS


@dataclass(frozen=True)
class TicketContext:
    task_id: str
    name: str
    description_html: str = ""
    permalink: Optional[str] = None
    project_name: Optional[str] = None

    @classmethod
    def from_api(cls, task_id: str, data: dict) -> "TicketContext":
        projects = data.get("projects") or []
        project_name = projects[0].get("name") if projects else None
        return cls(
            task_id=task_id,
            name=data.get("name") or "",
            description_html=data.get("html_notes") or data.get("notes") or "",
            permalink=data.get("permalink_url"),
            project_name=project_name,
        )


@dataclass(frozen=True)
class SummaryResult:
    plain: str
    html: str

    @property
    def is_empty(self) -> bool:
        return not self.plain.strip()
