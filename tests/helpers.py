"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Iterable

from notewise.ai.client import StreamRequest, StreamSession, TextHandler
from notewise.chat.message_model import ChatRole
from notewise.services.message_store import SqliteMessageStore


class ManualClock:
    """Monotonic clock advanced explicitly by tests."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class StartCall:
    request: StreamRequest
    on_chunk: TextHandler | None = None
    on_line: TextHandler | None = None
    on_finish: TextHandler | None = None
    on_error: TextHandler | None = None
    chunks: list[str] = field(default_factory=list)
    cancelled: bool = False


class FakeStreamClient:
    """Callback-driven stand-in for :class:`notewise.ai.client.StreamClient`.

    Tests drive the active session with :meth:`emit`, :meth:`finish` and
    :meth:`fail`. Like the real client, starting a new session cancels the
    previous one, and a cancelled session delivers nothing further.
    """

    def __init__(self, *, config_error: str | None = None) -> None:
        self.config_error = config_error
        self.calls: list[StartCall] = []
        self.cancel_count = 0
        self._active: StartCall | None = None

    @property
    def active(self) -> StartCall | None:
        return self._active

    @property
    def last_request(self) -> StreamRequest:
        return self.calls[-1].request

    def start(
        self,
        request: StreamRequest,
        *,
        on_chunk: TextHandler | None = None,
        on_line: TextHandler | None = None,
        on_finish: TextHandler | None = None,
        on_error: TextHandler | None = None,
    ) -> StreamSession | None:
        self.cancel()
        call = StartCall(request, on_chunk, on_line, on_finish, on_error)
        self.calls.append(call)
        if self.config_error is not None:
            if on_error is not None:
                on_error(self.config_error)
            return None
        self._active = call
        return StreamSession(session_id=f"fake-{len(self.calls)}", request=request)

    def cancel(self) -> bool:
        call = self._active
        if call is None:
            return False
        call.cancelled = True
        self._active = None
        self.cancel_count += 1
        return True

    def emit(self, *chunks: str) -> None:
        call = self._require_active()
        for chunk in chunks:
            call.chunks.append(chunk)
            if call.on_chunk is not None:
                call.on_chunk(chunk)

    def finish(self, full_text: str | None = None) -> None:
        call = self._require_active()
        self._active = None
        if call.on_finish is not None:
            call.on_finish("".join(call.chunks) if full_text is None else full_text)

    def fail(self, message: str) -> None:
        call = self._require_active()
        self._active = None
        if call.on_error is not None:
            call.on_error(message)

    def respond(self, *chunks: str) -> None:
        self.emit(*chunks)
        self.finish()

    def _require_active(self) -> StartCall:
        if self._active is None:
            raise AssertionError("no active stream session")
        return self._active


class RecordingMessageStore(SqliteMessageStore):
    """In-memory SQLite store that remembers every message it created."""

    def __init__(self) -> None:
        super().__init__()
        self.created: list[tuple[int, ChatRole, str]] = []

    def create_message(self, note_id: int, role: ChatRole, content: str) -> int:
        self.created.append((note_id, role, content))
        return super().create_message(note_id, role, content)


def sse_body(chunks: Iterable[str], *, done: bool = True, extra_lines: Iterable[str] = ()) -> bytes:
    """Build an OpenAI-style event-stream body carrying ``chunks``."""

    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": chunk}}]})
        for chunk in chunks
    ]
    lines.extend(extra_lines)
    if done:
        lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode("utf-8")
