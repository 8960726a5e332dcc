"""Best-effort title and tag suggestions for a note."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .client import ClientSettings
from .errors import TransportError

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_TITLES = frozenset({"", "untitled"})
CONTENT_EXCERPT_CHARS = 500
_JSON_SPAN = re.compile(r"\{[\s\S]*\}")
_SYSTEM_PROMPT = (
    "You are a note assistant that suggests titles and tags. Reply with JSON only, "
    "without any explanation."
)


@dataclass(slots=True)
class TitleSuggestion:
    title: str | None = None
    tags: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.title and not self.tags


def needs_title(current_title: str | None) -> bool:
    return (current_title or "").strip().lower() in PLACEHOLDER_TITLES


def build_title_request(content: str, *, current_title: str | None = None) -> str:
    if needs_title(current_title):
        instructions = (
            "Based on the note below, produce:\n"
            "1. A concise title (2-8 words)\n"
            "2. Two to four relevant tags\n\n"
            "Use the same language as the note. Reply in exactly this JSON format:\n"
            '{"title": "Title", "tags": ["tag1", "tag2"]}'
        )
    else:
        instructions = (
            "Based on the note below, produce two to four relevant tags.\n"
            "Use the same language as the note. Reply in exactly this JSON format:\n"
            '{"tags": ["tag1", "tag2"]}'
        )
    return f"{instructions}\n\nNote content:\n{content[:CONTENT_EXCERPT_CHARS]}"


def parse_suggestion(text: str | None) -> TitleSuggestion:
    """Extract the first JSON object from ``text``; malformed output yields nothing."""

    if not text:
        return TitleSuggestion()
    match = _JSON_SPAN.search(text)
    if match is None:
        return TitleSuggestion()
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        LOGGER.debug("Title suggestion was not valid JSON: %r", text)
        return TitleSuggestion()
    if not isinstance(payload, dict):
        return TitleSuggestion()
    title = payload.get("title")
    tags = payload.get("tags")
    return TitleSuggestion(
        title=title.strip() if isinstance(title, str) and title.strip() else None,
        tags=[str(tag).strip() for tag in tags if str(tag).strip()] if isinstance(tags, list) else [],
    )


async def generate_title_and_tags(
    settings: ClientSettings,
    content: str,
    *,
    current_title: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    max_attempts: int = 2,
) -> TitleSuggestion:
    """Ask the endpoint for a title and tags; any failure yields an empty suggestion."""

    if not (settings.api_key or "").strip() or not content.strip():
        return TitleSuggestion()

    payload = {
        "model": settings.model,
        "messages": [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": build_title_request(content, current_title=current_title)},
        ],
        "max_tokens": 150,
    }
    headers = {"Authorization": f"Bearer {settings.api_key.strip()}", **dict(settings.default_headers or {})}
    client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=settings.connect_timeout))
    try:
        async for attempt in _retrying(max_attempts):
            with attempt:
                response = await client.post(settings.chat_completions_url, json=payload, headers=headers)
                if not response.is_success:
                    raise TransportError.from_status(response.status_code, response.reason_phrase)
                body = response.json()
    except (TransportError, httpx.HTTPError, ValueError) as exc:
        LOGGER.info("Title suggestion unavailable: %s", exc)
        return TitleSuggestion()
    finally:
        if http_client is None:
            await client.aclose()

    try:
        text = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        LOGGER.debug("Title suggestion response had no message content")
        return TitleSuggestion()
    return parse_suggestion(text if isinstance(text, str) else None)


def _retrying(max_attempts: int) -> AsyncRetrying:
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=0.5, max=4.0),
        retry=retry_if_exception(_is_retryable),
    )


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, TransportError):
        status = exc.status_code or 0
        return status == 429 or status >= 500
    return False


__all__ = [
    "TitleSuggestion",
    "build_title_request",
    "generate_title_and_tags",
    "needs_title",
    "parse_suggestion",
]
