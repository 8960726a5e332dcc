"""Persistence for per-note chat conversations."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import RLock
from typing import Callable, Protocol

from ..chat.message_model import CHAT_ROLES, ChatMessage, ChatRole

LOGGER = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageStore(Protocol):
    """Operations the chat session needs from the message log."""

    def create_message(self, note_id: int, role: ChatRole, content: str) -> int:
        ...

    def list_messages(self, note_id: int) -> list[ChatMessage]:
        ...

    def update_message(self, message_id: int, content: str) -> bool:
        ...

    def delete_message(self, message_id: int) -> bool:
        ...

    def delete_messages_after(self, note_id: int, timestamp: str) -> int:
        ...

    def clear_messages(self, note_id: int) -> int:
        ...


class SqliteMessageStore:
    """SQLite-backed :class:`MessageStore`.

    Timestamps are ISO-8601 UTC strings with microsecond precision and are
    strictly increasing per store, so ordering and "later than" comparisons
    on the text column are total.
    """

    def __init__(self, path: Path | str = MEMORY_DATABASE, *, clock: Callable[[], datetime] = _utcnow) -> None:
        target = str(path)
        if target != MEMORY_DATABASE:
            Path(target).expanduser().parent.mkdir(parents=True, exist_ok=True)
            target = str(Path(target).expanduser())
        self._path = target
        self._clock = clock
        self._conn = sqlite3.connect(target, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if target != MEMORY_DATABASE:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = RLock()
        self._create_schema()
        self._last_timestamp = self._load_last_timestamp()

    @property
    def path(self) -> str:
        return self._path

    def _create_schema(self) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS chat_messages (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        note_id INTEGER NOT NULL,
                        role TEXT NOT NULL CHECK(role IN ('user', 'assistant')),
                        content TEXT NOT NULL,
                        timestamp TEXT NOT NULL
                    )
                    """
                )
                self._conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_chat_messages_note_id ON chat_messages(note_id)"
                )
                self._conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_chat_messages_timestamp ON chat_messages(timestamp)"
                )

    def create_message(self, note_id: int, role: ChatRole, content: str) -> int:
        if role not in CHAT_ROLES:
            raise ValueError(f"Unsupported chat role: {role!r}")
        with self._lock:
            timestamp = self._next_timestamp()
            with self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO chat_messages (note_id, role, content, timestamp) VALUES (?, ?, ?, ?)",
                    (note_id, role, content, timestamp),
                )
        message_id = int(cursor.lastrowid)
        LOGGER.debug("Stored %s message %s for note %s", role, message_id, note_id)
        return message_id

    def get_message(self, message_id: int) -> ChatMessage | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM chat_messages WHERE id = ?", (message_id,)).fetchone()
        return ChatMessage.from_row(row) if row is not None else None

    def list_messages(self, note_id: int) -> list[ChatMessage]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM chat_messages WHERE note_id = ? ORDER BY timestamp ASC, id ASC",
                (note_id,),
            ).fetchall()
        return [ChatMessage.from_row(row) for row in rows]

    def update_message(self, message_id: int, content: str) -> bool:
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    "UPDATE chat_messages SET content = ? WHERE id = ?",
                    (content, message_id),
                )
        return cursor.rowcount > 0

    def delete_message(self, message_id: int) -> bool:
        with self._lock:
            with self._conn:
                cursor = self._conn.execute("DELETE FROM chat_messages WHERE id = ?", (message_id,))
        return cursor.rowcount > 0

    def delete_messages_after(self, note_id: int, timestamp: str) -> int:
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM chat_messages WHERE note_id = ? AND timestamp > ?",
                    (note_id, timestamp),
                )
        if cursor.rowcount:
            LOGGER.debug("Truncated %d messages after %s in note %s", cursor.rowcount, timestamp, note_id)
        return cursor.rowcount

    def clear_messages(self, note_id: int) -> int:
        with self._lock:
            with self._conn:
                cursor = self._conn.execute("DELETE FROM chat_messages WHERE note_id = ?", (note_id,))
        return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:
                LOGGER.debug("Failed to close message store", exc_info=True)

    # ------------------------------------------------------------------
    # Timestamps
    # ------------------------------------------------------------------
    def _next_timestamp(self) -> str:
        now = self._clock().astimezone(timezone.utc)
        last = self._last_timestamp
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_timestamp = now
        return now.isoformat(timespec="microseconds")

    def _load_last_timestamp(self) -> datetime | None:
        with self._lock:
            row = self._conn.execute("SELECT MAX(timestamp) AS latest FROM chat_messages").fetchone()
        latest = row["latest"] if row is not None else None
        if not latest:
            return None
        try:
            parsed = datetime.fromisoformat(latest)
        except ValueError:
            LOGGER.warning("Ignoring unparseable chat timestamp %r", latest)
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


__all__ = ["MEMORY_DATABASE", "MessageStore", "SqliteMessageStore"]
