"""
Provider wire formats for the summarization endpoint.

Two request shapes are spoken:

- Google's ``generateContent`` API: the key travels in the URL, the prompt in
  ``contents[0].parts[0].text``. "flash" models have thinking switched off so
  the small token budget is spent on the answer.
- Everything else speaks the OpenAI-compatible chat-completions shape with a
  bearer token (OpenAI, DeepSeek, and most self-hosted gateways).

Responses are not fully decoded. The first ``"text"`` (Google) or
``"content"`` (others) string in the body is the summary; anything else in the
payload is ignored.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import structlog

from pawnmem.config import ProviderSettings
from pawnmem.memory.entry import MemoryEntry
from pawnmem.types import SummaryTemplate

logger = structlog.get_logger(__name__)

TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 200

# Both {model}/{api_key} and the legacy *_PLACEHOLDER spellings are accepted.
_URL_PLACEHOLDERS = {
    "model": ("{model}", "MODEL_PLACEHOLDER"),
    "api_key": ("{api_key}", "API_KEY_PLACEHOLDER"),
}

_STRING_BODY = r'"((?:[^"\\]|\\.)*)"'
_GOOGLE_TEXT = re.compile(r'"text"\s*:\s*' + _STRING_BODY, re.DOTALL)
_CHAT_CONTENT = re.compile(r'"content"\s*:\s*' + _STRING_BODY, re.DOTALL)


@dataclass(frozen=True)
class PreparedRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]


def _fill_url(url: str, settings: ProviderSettings) -> str:
    for placeholder in _URL_PLACEHOLDERS["model"]:
        url = url.replace(placeholder, settings.model)
    key_embedded = False
    for placeholder in _URL_PLACEHOLDERS["api_key"]:
        if placeholder in url:
            url = url.replace(placeholder, settings.api_key)
            key_embedded = True
    if not key_embedded and "key=" not in url:
        url += ("&" if "?" in url else "?") + f"key={settings.api_key}"
    return url


def build_request(settings: ProviderSettings, prompt: str) -> PreparedRequest:
    """Encode one summarization prompt for the configured provider."""
    headers = {"Content-Type": "application/json"}

    if settings.is_google:
        generation: dict[str, Any] = {
            "temperature": TEMPERATURE,
            "maxOutputTokens": MAX_OUTPUT_TOKENS,
        }
        if "flash" in settings.model.lower():
            generation["thinkingConfig"] = {"thinkingBudget": 0}
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation,
        }
        return PreparedRequest(url=_fill_url(settings.api_url, settings), headers=headers, body=body)

    headers["Authorization"] = f"Bearer {settings.api_key}"
    body = {
        "model": settings.model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": TEMPERATURE,
        "max_tokens": MAX_OUTPUT_TOKENS,
    }
    return PreparedRequest(url=settings.api_url, headers=headers, body=body)


def parse_response(settings: ProviderSettings, response_text: str) -> Optional[str]:
    """Pull the summary text out of a raw response body, or None."""
    if not response_text:
        return None
    pattern = _GOOGLE_TEXT if settings.is_google else _CHAT_CONTENT
    match = pattern.search(response_text)
    if match is None:
        logger.warning(
            "providers.response_unparsed",
            provider=settings.provider,
            preview=response_text[:200],
        )
        return None
    try:
        text = json.loads(f'"{match.group(1)}"')
    except json.JSONDecodeError:
        logger.warning("providers.response_unescape_failed", provider=settings.provider)
        return None
    text = text.strip()
    return text or None


_TEMPLATES = {
    SummaryTemplate.DEEP_ARCHIVE: {
        "limit": 15,
        "intro": "Create a deep archive entry for the colonist {name}.",
        "list_header": "Summarized mid-term memories:",
        "rules": (
            "Distil core personality traits and character.",
            "Record important milestones and turning points.",
            "Merge similar experiences and highlight long-term trends.",
            "Be extremely concise, no more than 60 characters.",
            "Output only the archive summary, no JSON or other formatting.",
        ),
        "example": (
            "Example: Skilled builder and researcher, the colony's technical core. "
            "Repelled a major mechanoid raid in year 2. Close friends with the doctor."
        ),
    },
    SummaryTemplate.DAILY_SUMMARY: {
        "limit": 20,
        "intro": "Summarize the following memories of the colonist {name}.",
        "list_header": "Memories:",
        "rules": (
            "Extract places, people and events.",
            "Merge similar events and mark their frequency (×N).",
            "Be extremely concise, no more than 80 characters.",
            "Output only the summary text, no JSON or other formatting.",
        ),
        "example": None,
    },
}


def build_prompt(
    agent_name: str,
    entries: Sequence[MemoryEntry],
    template: SummaryTemplate,
) -> str:
    layout = _TEMPLATES.get(template, _TEMPLATES[SummaryTemplate.DAILY_SUMMARY])
    lines = [layout["intro"].format(name=agent_name), "", layout["list_header"]]
    lines.extend(
        f"{index}. {entry.content}"
        for index, entry in enumerate(entries[: layout["limit"]], start=1)
    )
    lines.extend(["", "Requirements:"])
    lines.extend(f"{index}. {rule}" for index, rule in enumerate(layout["rules"], start=1))
    if layout["example"]:
        lines.extend(["", layout["example"]])
    return "\n".join(lines) + "\n"
