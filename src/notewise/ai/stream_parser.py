"""Decoding helpers for streamed chat-completion responses.

The endpoint streams newline-delimited records of the form ``data: {...}``.
Each payload is either the literal terminator or a JSON object whose
incremental text lives at ``choices[0].delta.content``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .errors import MalformedRecordError

STREAM_PREFIX = "data:"
STREAM_TERMINATOR = "[DONE]"


class RecordKind(Enum):
    """Classification of a single streamed line."""

    IGNORED = "ignored"
    TERMINATOR = "terminator"
    DELTA = "delta"


@dataclass(slots=True, frozen=True)
class StreamRecord:
    """One decoded line of the response body."""

    kind: RecordKind
    delta: str = ""

    @property
    def has_text(self) -> bool:
        return self.kind is RecordKind.DELTA and bool(self.delta)


_IGNORED = StreamRecord(RecordKind.IGNORED)
_TERMINATOR = StreamRecord(RecordKind.TERMINATOR)


def parse_record(line: str) -> StreamRecord:
    """Decode ``line`` into a :class:`StreamRecord`.

    Lines that do not carry the ``data:`` prefix (blank keep-alives, SSE
    comments, ``event:`` fields) are ignored. A ``data:`` payload that is not
    a JSON object raises :class:`MalformedRecordError`; callers skip it.
    """

    stripped = line.strip()
    if not stripped.startswith(STREAM_PREFIX):
        return _IGNORED
    payload = stripped[len(STREAM_PREFIX):].strip()
    if not payload:
        return _IGNORED
    if payload == STREAM_TERMINATOR:
        return _TERMINATOR
    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedRecordError(message=f"Invalid JSON record: {exc.msg}", record=payload) from exc
    if not isinstance(decoded, Mapping):
        raise MalformedRecordError(message="Record payload is not an object", record=payload)
    return StreamRecord(RecordKind.DELTA, extract_delta(decoded))


def extract_delta(payload: Mapping[str, Any]) -> str:
    """Return ``choices[0].delta.content`` or an empty string."""

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, Mapping):
        return ""
    delta = first.get("delta")
    if not isinstance(delta, Mapping):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class LineBuffer:
    """Accumulates text chunks and releases only complete lines.

    Complete lines keep their trailing newline; the final partial line is
    released once by :meth:`flush` when the stream ends.
    """

    __slots__ = ("_pending",)

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, text: str) -> list[str]:
        if not text:
            return []
        self._pending += text
        if "\n" not in self._pending:
            return []
        *complete, self._pending = self._pending.split("\n")
        return [f"{line}\n" for line in complete]

    def flush(self) -> str | None:
        remainder, self._pending = self._pending, ""
        return remainder or None

    def reset(self) -> None:
        self._pending = ""


__all__ = [
    "LineBuffer",
    "RecordKind",
    "STREAM_PREFIX",
    "STREAM_TERMINATOR",
    "StreamRecord",
    "extract_delta",
    "parse_record",
]
