"""Conversation lifecycle for the per-note chat panel."""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Sequence

from ..ai.client import StreamRequest
from ..ai.prompts import DEFAULT_CHAT_CONTEXT_CHARS, ActionKind, build_chat_instruction
from ..editor.diff_controller import StreamStarter
from ..services.message_store import MessageStore
from .message_model import ChatMessage, NoteContext, PendingExchange, format_error_reply

LOGGER = logging.getLogger(__name__)


class ChatSessionController:
    """Owns one note's persisted conversation plus a single pending exchange.

    Every flow that starts a stream is rejected while an exchange is pending,
    and every terminal stream outcome resolves the exchange exactly once:
    the reply (or a formatted error) is persisted and the slot is cleared.
    """

    def __init__(
        self,
        store: MessageStore,
        stream_client: StreamStarter,
        *,
        on_change: Callable[[], None] | None = None,
        context_chars: int = DEFAULT_CHAT_CONTEXT_CHARS,
    ) -> None:
        self._store = store
        self._stream = stream_client
        self._on_change = on_change
        self._context_chars = context_chars
        self._note: NoteContext | None = None
        self._messages: list[ChatMessage] = []
        self._pending: PendingExchange | None = None

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------
    @property
    def note(self) -> NoteContext | None:
        return self._note

    @property
    def messages(self) -> Sequence[ChatMessage]:
        return tuple(self._messages)

    @property
    def pending(self) -> PendingExchange | None:
        return self._pending

    @property
    def is_streaming(self) -> bool:
        return self._pending is not None

    # ------------------------------------------------------------------
    # Note binding
    # ------------------------------------------------------------------
    def open_note(self, note: NoteContext | None) -> None:
        """Bind the session to ``note`` (or none) and load its conversation.

        Re-opening the same note only refreshes the grounding context. A
        different note abandons the pending exchange without persisting it.
        """

        previous = self._note
        if note is not None and previous is not None and note.note_id == previous.note_id:
            self._note = note
            return
        self._drop_pending()
        self._note = note
        self._reload()
        self._notify()

    def update_note(self, *, title: str | None = None, content: str | None = None) -> None:
        note = self._note
        if note is None:
            return
        self._note = NoteContext(
            note_id=note.note_id,
            title=note.title if title is None else title,
            content=note.content if content is None else content,
        )

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------
    def send(self, text: str) -> bool:
        content = (text or "").strip()
        if not content:
            return False
        if not self._can_start("send"):
            return False
        self._start_exchange(content, pending_user_text=content, is_retry_mode=False)
        return True

    def edit(self, message_id: int, new_text: str) -> bool:
        """Rewrite a user message, truncate everything after it, and regenerate."""

        content = (new_text or "").strip()
        if not content or not self._can_start("edit"):
            return False
        message = self._find(message_id)
        if message is None or not message.is_user:
            LOGGER.debug("Edit rejected: message %s is not a user message in this note", message_id)
            return False
        self._store.delete_messages_after(message.note_id, message.timestamp)
        self._store.update_message(message.id, content)
        self._reload()
        self._start_exchange(content, pending_user_text=None, is_retry_mode=True)
        return True

    def retry(self, message: ChatMessage | int) -> bool:
        """Regenerate an assistant reply from the user message just before it."""

        if not self._can_start("retry"):
            return False
        message_id = message.id if isinstance(message, ChatMessage) else int(message)
        index = self._index_of(message_id)
        if index is None or index == 0:
            return False
        target = self._messages[index]
        previous = self._messages[index - 1]
        if not target.is_assistant or not previous.is_user:
            LOGGER.debug("Retry rejected for message %s: no preceding user message", message_id)
            return False
        self._store.delete_message(target.id)
        self._reload()
        self._start_exchange(previous.content, pending_user_text=None, is_retry_mode=True)
        return True

    def delete(self, message_id: int) -> bool:
        if self._note is None:
            return False
        removed = self._store.delete_message(message_id)
        if removed:
            self._reload()
            self._notify()
        return removed

    def clear(self) -> None:
        self._drop_pending()
        note = self._note
        if note is not None:
            self._store.clear_messages(note.note_id)
        self._messages = []
        self._notify()

    def close(self) -> None:
        """Abandon any in-flight exchange; nothing is persisted for it."""

        if self._drop_pending():
            self._notify()

    # ------------------------------------------------------------------
    # Stream callbacks
    # ------------------------------------------------------------------
    def _handle_chunk(self, exchange: PendingExchange, chunk: str) -> None:
        if self._pending is not exchange:
            return
        exchange.append(chunk)
        self._notify()

    def _handle_finish(self, exchange: PendingExchange, full_text: str) -> None:
        self._resolve(exchange, full_text)

    def _handle_error(self, exchange: PendingExchange, message: str) -> None:
        self._resolve(exchange, format_error_reply(message))

    def _resolve(self, exchange: PendingExchange, assistant_text: str) -> None:
        if self._pending is not exchange:
            return
        self._pending = None
        try:
            if not exchange.is_retry_mode and exchange.pending_user_text:
                self._store.create_message(exchange.note_id, "user", exchange.pending_user_text)
            self._store.create_message(exchange.note_id, "assistant", assistant_text)
            self._reload()
        finally:
            self._notify()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _can_start(self, flow: str) -> bool:
        if self._note is None:
            LOGGER.debug("Chat %s rejected: no note selected", flow)
            return False
        if self._pending is not None:
            LOGGER.debug("Chat %s rejected: a reply is still streaming", flow)
            return False
        return True

    def _start_exchange(self, prompt_text: str, *, pending_user_text: str | None, is_retry_mode: bool) -> None:
        note = self._note
        assert note is not None
        exchange = PendingExchange(
            note_id=note.note_id,
            prompt_text=prompt_text,
            pending_user_text=pending_user_text,
            is_retry_mode=is_retry_mode,
        )
        self._pending = exchange
        self._notify()
        request = StreamRequest(
            action=ActionKind.CUSTOM,
            user_text=prompt_text,
            system_prompt=build_chat_instruction(note.title, note.content, max_chars=self._context_chars),
        )
        self._stream.start(
            request,
            on_chunk=partial(self._handle_chunk, exchange),
            on_finish=partial(self._handle_finish, exchange),
            on_error=partial(self._handle_error, exchange),
        )

    def _drop_pending(self) -> bool:
        if self._pending is None:
            return False
        self._pending = None
        self._stream.cancel()
        LOGGER.debug("Dropped pending chat exchange")
        return True

    def _reload(self) -> None:
        note = self._note
        self._messages = list(self._store.list_messages(note.note_id)) if note is not None else []

    def _find(self, message_id: int) -> ChatMessage | None:
        index = self._index_of(message_id)
        return self._messages[index] if index is not None else None

    def _index_of(self, message_id: int) -> int | None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            LOGGER.debug("Chat change listener failed", exc_info=True)


__all__ = ["ChatSessionController"]
