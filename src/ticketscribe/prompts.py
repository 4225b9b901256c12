"""Prompt builders, one per summary mode."""

from __future__ import annotations

import re
from typing import Optional

DESCRIPTION_LIMIT = 2000

OUTPUT_RULES = """\
OUTPUT RULES (apply to every line you write):
- Output ONLY section headers starting with "## " and bullet lines starting with "- ". No other prose, no preamble, no closing remarks.
- Every bullet must be traceable to something actually said in the transcript. Never invent names, numbers, dates or decisions.
- Omit any section that would have zero real bullets. Never write placeholder bullets such as "None" or "N/A".
- If nothing meaningful was discussed, output nothing at all (an empty response)."""


def describe_existing(existing_description: Optional[str]) -> str:
    if not existing_description or not existing_description.strip():
        return "(no existing description)"
    text = re.sub(r"<[^>]+>", " ", existing_description)
    text = re.sub(r" +", " ", text).strip()
    return text[:DESCRIPTION_LIMIT] or "(no existing description)"


def transcript_section(mic_transcript: Optional[str], system_transcript: Optional[str]) -> str:
    mine = (mic_transcript or "").strip()
    others = (system_transcript or "").strip()
    if mine and others:
        return (
            "YOUR CONTRIBUTIONS (microphone):\n"
            f"{mine}\n\n"
            "OTHERS IN THE MEETING (system audio):\n"
            f"{others}"
        )
    if mine:
        return (
            "MEETING TRANSCRIPT (microphone only, system audio was not captured):\n"
            f"{mine}"
        )
    return (
        "MEETING TRANSCRIPT (system audio only, microphone was not captured):\n"
        f"{others}"
    )


def _header(intro: str, task_name: str, existing_description: Optional[str], transcript: str) -> str:
    return (
        f"{intro}\n\n"
        f"TICKET NAME: {task_name}\n\n"
        "EXISTING TICKET DESCRIPTION (for reference only, do not repeat what is already captured here):\n"
        f"{describe_existing(existing_description)}\n\n"
        "MEETING DISCUSSION:\n"
        f"{transcript}\n"
    )


def build_requirements_prompt(
    task_name: str,
    existing_description: Optional[str],
    mic_transcript: Optional[str],
    system_transcript: Optional[str],
) -> str:
    intro = (
        "You are analyzing a transcript from an engineering planning meeting. "
        "The team was reviewing a ticket and clarifying its requirements."
    )
    body = """
Extract only the NEW requirements and decisions from the meeting discussion. Focus on what was said in the transcript, not on restating the ticket description.

Use this exact format:

## Requirements
- [Each concrete requirement or decision, specific and actionable, written as acceptance criteria when possible]

## Key Context & Background
- [Only critical context that is not a requirement, not already in the ticket description, and not redundant with the Requirements section. This section is rarely needed.]

Keep the output minimal. If the transcript is unclear or garbled, skip those parts.
"""
    transcript = transcript_section(mic_transcript, system_transcript)
    return _header(intro, task_name, existing_description, transcript) + body + "\n" + OUTPUT_RULES


def build_discovery_prompt(
    task_name: str,
    existing_description: Optional[str],
    mic_transcript: Optional[str],
    system_transcript: Optional[str],
) -> str:
    intro = (
        "You are capturing notes from a product discovery conversation. The team was "
        "exploring a ticket, discussing open questions, unknowns, and what needs to be "
        "figured out before work can proceed."
    )
    body = """
Surface the key discovery outputs from this conversation. Focus on what was explored and what remains uncertain, not on implementation details.

Use this exact format:

## Open Questions
- [Unresolved questions with no obvious next step to answer them]

## Context & Background
- [Context, constraints, assumptions, dependencies or external factors surfaced in the conversation]

## Next Steps
- [Concrete actions, research tasks or conversations that need to happen, with the owner if mentioned]

DEDUPLICATION: a question and the action that answers it are the same item. If the discussion produced a clear next step for a question, list it only under Next Steps.
"""
    transcript = transcript_section(mic_transcript, system_transcript)
    return _header(intro, task_name, existing_description, transcript) + body + "\n" + OUTPUT_RULES


def build_review_prompt(
    task_name: str,
    existing_description: Optional[str],
    mic_transcript: Optional[str],
    system_transcript: Optional[str],
) -> str:
    intro = (
        "You are recording the outcome of a decision review. The team was reviewing "
        "work on a ticket and deciding how to proceed."
    )
    body = """
Record the decisions reached and what they commit the team to.

Use this exact format:

## Decisions
- [Each decision that was explicitly agreed, stated as the outcome]

## Rationale
- [Reasons given in the discussion for the decisions above]

## Rejected Alternatives
- [Options that were considered and explicitly ruled out]

## Follow-ups
- [Actions that were agreed as a result of the decisions, with the owner if mentioned]

Only record a decision if the transcript shows agreement. Tentative ideas are not decisions.
"""
    transcript = transcript_section(mic_transcript, system_transcript)
    return _header(intro, task_name, existing_description, transcript) + body + "\n" + OUTPUT_RULES
