"""Chat message and pending-exchange data models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Mapping, Optional

ChatRole = Literal["user", "assistant"]
CHAT_ROLES: tuple[ChatRole, ...] = ("user", "assistant")
ERROR_REPLY_PREFIX = "Error: "


def format_error_reply(message: str) -> str:
    """Render a stream failure as the assistant reply recorded in the conversation."""

    return f"{ERROR_REPLY_PREFIX}{message}"


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """A persisted row of a note's conversation."""

    id: int
    note_id: int
    role: ChatRole
    content: str
    timestamp: str

    @property
    def is_user(self) -> bool:
        return self.role == "user"

    @property
    def is_assistant(self) -> bool:
        return self.role == "assistant"

    @property
    def is_error(self) -> bool:
        return self.is_assistant and self.content.startswith(ERROR_REPLY_PREFIX)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "note_id": self.note_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ChatMessage":
        role = str(row["role"])
        if role not in CHAT_ROLES:
            raise ValueError(f"Unsupported chat role: {role!r}")
        return cls(
            id=int(row["id"]),
            note_id=int(row["note_id"]),
            role=role,  # type: ignore[arg-type]
            content=str(row["content"]),
            timestamp=str(row["timestamp"]),
        )


@dataclass(slots=True, frozen=True)
class NoteContext:
    """The note a chat session is grounded on."""

    note_id: int
    title: str = ""
    content: str = ""


@dataclass(slots=True)
class PendingExchange:
    """A request/response pair that has not been persisted yet.

    ``pending_user_text`` is shown immediately and written to the log once
    the stream ends, unless ``is_retry_mode`` says it is already persisted.
    """

    note_id: int
    prompt_text: str
    pending_user_text: Optional[str] = None
    is_retry_mode: bool = False
    streaming_assistant_text: str = ""

    def append(self, chunk: str) -> None:
        self.streaming_assistant_text += chunk


__all__ = [
    "CHAT_ROLES",
    "ChatMessage",
    "ChatRole",
    "ERROR_REPLY_PREFIX",
    "NoteContext",
    "PendingExchange",
    "format_error_reply",
]
