"""Meeting summarization through Anthropic or an OpenAI-compatible chat API."""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional

import requests

from .config import SummarizationConfig
from .errors import SummarizationBackendError
from .models import SummaryMode, SummaryResult
from .prompts import build_discovery_prompt, build_requirements_prompt, build_review_prompt

logger = logging.getLogger("ticketscribe")

ANTHROPIC_VERSION = "2023-06-01"

PromptBuilder = Callable[[str, Optional[str], Optional[str], Optional[str]], str]

PROMPT_BUILDERS: Dict[SummaryMode, PromptBuilder] = {
    SummaryMode.REQUIREMENTS: build_requirements_prompt,
    SummaryMode.DISCOVERY: build_discovery_prompt,
    SummaryMode.REVIEW: build_review_prompt,
}

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def escape_html(value: str) -> str:
    cleaned = _CONTROL_CHARS.sub("", value)
    return cleaned.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def plain_to_html(text: str) -> str:
    """Render the header/bullet summary as Asana rich text.

    Asana does not accept <p>, <br> or <hr> inside notes, so lines are
    separated by newlines only.
    """
    html: List[str] = []
    in_list = False
    for line in (line.rstrip() for line in text.strip().splitlines()):
        if line.startswith("## "):
            if in_list:
                html.append("</ul>")
                in_list = False
            html.append(f"<strong>{escape_html(line[3:].strip())}</strong>")
        elif line.startswith("- "):
            if not in_list:
                html.append("<ul>")
                in_list = True
            html.append(f"<li>{escape_html(line[2:].strip())}</li>")
        else:
            if in_list:
                html.append("</ul>")
                in_list = False
            if line:
                html.append(escape_html(line))
    if in_list:
        html.append("</ul>")
    return "\n".join(html)


class Summarizer:
    def __init__(
        self,
        config: Optional[SummarizationConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or SummarizationConfig()
        self.session = session or requests.Session()

    @property
    def label(self) -> str:
        if self.config.provider == "anthropic":
            return f"Claude ({self.config.model})"
        return self.config.model

    def summarize(
        self,
        task_name: str,
        existing_description: Optional[str],
        mic_transcript: Optional[str],
        system_transcript: Optional[str],
        mode: SummaryMode = SummaryMode.REQUIREMENTS,
    ) -> SummaryResult:
        builder = PROMPT_BUILDERS[SummaryMode(mode)]
        prompt = builder(task_name, existing_description, mic_transcript, system_transcript)
        logger.info(
            "Summarizing %r mode=%s provider=%s", task_name, SummaryMode(mode).value, self.config.provider
        )
        if self.config.provider == "openai":
            reply = self._call_openai(prompt)
        else:
            reply = self._call_anthropic(prompt)
        plain = reply.strip()
        return SummaryResult(plain=plain, html=plain_to_html(plain))

    def _post(self, headers: dict, payload: dict) -> dict:
        try:
            response = self.session.post(
                self.config.api_url,
                headers=headers,
                json=payload,
                timeout=self.config.timeout_s,
            )
        except requests.RequestException as exc:
            raise SummarizationBackendError(f"LLM request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            message = None
            try:
                error = response.json().get("error")
                message = error.get("message") if isinstance(error, dict) else error
            except (ValueError, AttributeError):
                message = None
            raise SummarizationBackendError(
                f"LLM API error: HTTP {response.status_code}: {message or response.text}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise SummarizationBackendError("LLM API returned invalid JSON.") from exc
        if not isinstance(data, dict):
            raise SummarizationBackendError(f"Unexpected LLM response: {data!r}")
        return data

    def _call_anthropic(self, prompt: str) -> str:
        headers = {
            "x-api-key": self.config.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        data = self._post(headers, payload)
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise SummarizationBackendError(f"Unexpected Anthropic response: {data!r}") from exc
        if not isinstance(text, str):
            raise SummarizationBackendError(f"Unexpected Anthropic response: {data!r}")
        return text

    def _call_openai(self, prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        payload = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        data = self._post(headers, payload)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise SummarizationBackendError(f"Unexpected LLM response: {data!r}") from exc
        # Some local servers return null content for an empty completion.
        if text is None:
            return ""
        if not isinstance(text, str):
            raise SummarizationBackendError(f"Unexpected LLM response: {data!r}")
        return text
