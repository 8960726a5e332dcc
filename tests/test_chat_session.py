"""Tests for the per-note chat session controller."""

from __future__ import annotations

import pytest

from notewise.ai.prompts import ActionKind
from notewise.chat.message_model import ChatMessage, NoteContext
from notewise.chat.session import ChatSessionController
from tests.helpers import FakeStreamClient, RecordingMessageStore

NOTE = NoteContext(note_id=1, title="Roadmap", content="Ship the beta in May.")


@pytest.fixture
def changes() -> list[int]:
    return []


@pytest.fixture
def session(
    message_store: RecordingMessageStore, stream_client: FakeStreamClient, changes: list[int]
) -> ChatSessionController:
    controller = ChatSessionController(message_store, stream_client, on_change=lambda: changes.append(1))
    controller.open_note(NOTE)
    return controller


def _seed(store: RecordingMessageStore, *pairs: tuple[str, str], note_id: int = 1) -> list[ChatMessage]:
    for role, content in pairs:
        store.create_message(note_id, role, content)  # type: ignore[arg-type]
    store.created.clear()
    return store.list_messages(note_id)


# =============================================================================
# Send
# =============================================================================


class TestSend:
    def test_successful_send_persists_user_then_assistant(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        finished: list[str] = []

        assert session.send("  Summarize this  ") is True

        pending = session.pending
        assert pending is not None
        assert pending.pending_user_text == "Summarize this"
        assert pending.is_retry_mode is False
        assert message_store.created == []

        call = stream_client.calls[0]
        original_finish = call.on_finish
        assert original_finish is not None
        call.on_finish = lambda text: (finished.append(text), original_finish(text))  # type: ignore[assignment]
        stream_client.emit("Key ", "point ", "one.")
        assert session.pending is not None
        assert session.pending.streaming_assistant_text == "Key point one."
        stream_client.finish()

        assert finished == ["Key point one."]
        assert message_store.created == [(1, "user", "Summarize this"), (1, "assistant", "Key point one.")]
        assert [(m.role, m.content) for m in session.messages] == [
            ("user", "Summarize this"),
            ("assistant", "Key point one."),
        ]
        assert session.pending is None
        assert session.is_streaming is False

    def test_send_grounds_request_on_note(
        self, session: ChatSessionController, stream_client: FakeStreamClient
    ) -> None:
        session.send("What is due?")

        request = stream_client.last_request
        assert request.action is ActionKind.CUSTOM
        assert request.user_text == "What is due?"
        assert "- Title: Roadmap" in request.system_prompt
        assert "Ship the beta in May." in request.system_prompt

    def test_send_error_persists_user_and_error_reply(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        session.send("Hello")
        stream_client.emit("partial")
        stream_client.fail("API error: 503 Service Unavailable")

        assert message_store.created == [
            (1, "user", "Hello"),
            (1, "assistant", "Error: API error: 503 Service Unavailable"),
        ]
        assert session.pending is None
        assert session.messages[-1].is_error

    def test_configuration_error_is_recorded_in_conversation(
        self, message_store: RecordingMessageStore
    ) -> None:
        stream_client = FakeStreamClient(config_error="Configure an API key in settings first")
        session = ChatSessionController(message_store, stream_client)
        session.open_note(NOTE)

        assert session.send("Hi") is True

        assert message_store.created == [
            (1, "user", "Hi"),
            (1, "assistant", "Error: Configure an API key in settings first"),
        ]
        assert session.pending is None

    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    def test_blank_send_is_rejected(
        self, text: str, session: ChatSessionController, stream_client: FakeStreamClient
    ) -> None:
        assert session.send(text) is False
        assert stream_client.calls == []

    def test_send_without_note_is_rejected(
        self, message_store: RecordingMessageStore, stream_client: FakeStreamClient
    ) -> None:
        session = ChatSessionController(message_store, stream_client)

        assert session.send("Hello") is False
        assert stream_client.calls == []

    def test_second_send_while_streaming_is_rejected(
        self, session: ChatSessionController, stream_client: FakeStreamClient
    ) -> None:
        session.send("first")

        assert session.send("second") is False
        assert len(stream_client.calls) == 1
        assert session.pending is not None
        assert session.pending.pending_user_text == "first"

    def test_listener_is_notified_of_progress(
        self, session: ChatSessionController, stream_client: FakeStreamClient, changes: list[int]
    ) -> None:
        changes.clear()
        session.send("Hi")
        stream_client.respond("a", "b")

        assert len(changes) == 4


# =============================================================================
# Edit
# =============================================================================


class TestEdit:
    def test_edit_truncates_later_messages_and_regenerates(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        seeded = _seed(
            message_store,
            ("user", "First question"),
            ("assistant", "First answer"),
            ("user", "Second question"),
            ("assistant", "Second answer"),
        )
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)

        assert session.edit(seeded[0].id, "Better question") is True

        assert [(m.role, m.content) for m in session.messages] == [("user", "Better question")]
        pending = session.pending
        assert pending is not None and pending.is_retry_mode is True
        assert stream_client.last_request.user_text == "Better question"

        stream_client.respond("Better answer")

        messages = session.messages
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Better question"),
            ("assistant", "Better answer"),
        ]
        assert messages[0].id == seeded[0].id
        assert message_store.created == [(1, "assistant", "Better answer")]

    def test_edit_failure_records_only_error_reply(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        seeded = _seed(message_store, ("user", "Question"), ("assistant", "Answer"))
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)

        session.edit(seeded[0].id, "Question v2")
        stream_client.fail("Network error: reset")

        assert message_store.created == [(1, "assistant", "Error: Network error: reset")]
        assert [m.content for m in session.messages] == ["Question v2", "Error: Network error: reset"]

    def test_edit_rejects_assistant_messages(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        seeded = _seed(message_store, ("user", "Question"), ("assistant", "Answer"))
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)

        assert session.edit(seeded[1].id, "Rewritten answer") is False
        assert session.edit(seeded[0].id, "  ") is False
        assert stream_client.calls == []
        assert len(session.messages) == 2


# =============================================================================
# Retry
# =============================================================================


class TestRetry:
    def test_retry_replaces_assistant_reply(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        seeded = _seed(message_store, ("user", "Question"), ("assistant", "Error: API error: 500"))
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)

        assert session.retry(session.messages[1]) is True

        assert [m.id for m in session.messages] == [seeded[0].id]
        assert stream_client.last_request.user_text == "Question"
        stream_client.respond("Real answer")

        assert message_store.created == [(1, "assistant", "Real answer")]
        assert [m.content for m in session.messages] == ["Question", "Real answer"]

    def test_retry_without_preceding_user_message_is_a_no_op(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        _seed(message_store, ("assistant", "Greeting"), ("assistant", "Follow-up"))
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)
        before = session.messages

        assert session.retry(before[0]) is False
        assert session.retry(before[1].id) is False

        assert session.messages == before
        assert message_store.list_messages(1) == list(before)
        assert stream_client.calls == []

    def test_retry_of_user_message_is_rejected(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        _seed(message_store, ("user", "Q1"), ("user", "Q2"))
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)

        assert session.retry(session.messages[1]) is False
        assert stream_client.calls == []

    def test_retry_while_streaming_is_rejected(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        _seed(message_store, ("user", "Q"), ("assistant", "A"))
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)
        session.send("Another")

        assert session.retry(session.messages[1]) is False
        assert len(stream_client.calls) == 1


# =============================================================================
# Delete, clear, note switching
# =============================================================================


class TestHousekeeping:
    def test_delete_removes_single_message(
        self, session: ChatSessionController, message_store: RecordingMessageStore
    ) -> None:
        seeded = _seed(message_store, ("user", "Q"), ("assistant", "A"), ("user", "Q2"))
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)

        assert session.delete(seeded[1].id) is True
        assert [m.content for m in session.messages] == ["Q", "Q2"]
        assert session.delete(seeded[1].id) is False

    def test_clear_cancels_stream_and_wipes_note(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        _seed(message_store, ("user", "Q"), ("assistant", "A"))
        _seed(message_store, ("user", "Other note"), note_id=9)
        session.open_note(NoteContext(note_id=2))
        session.open_note(NOTE)
        session.send("Pending")

        session.clear()

        assert stream_client.cancel_count == 1
        assert session.pending is None
        assert session.messages == ()
        assert message_store.list_messages(1) == []
        assert len(message_store.list_messages(9)) == 1
        assert message_store.created == []

    def test_switching_notes_drops_pending_exchange(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        session.send("About note one")
        call = stream_client.calls[0]

        session.open_note(NoteContext(note_id=2, title="Other"))

        assert call.cancelled is True
        assert session.pending is None
        assert call.on_finish is not None
        call.on_finish("late reply")
        assert message_store.created == []
        assert message_store.list_messages(1) == []

    def test_reopening_same_note_refreshes_context_only(
        self, session: ChatSessionController, stream_client: FakeStreamClient
    ) -> None:
        session.send("Question")

        session.open_note(NoteContext(note_id=1, title="Roadmap v2", content="Ship in June."))

        assert session.pending is not None
        assert stream_client.cancel_count == 0
        assert session.note is not None and session.note.title == "Roadmap v2"

    def test_update_note_changes_grounding(
        self, session: ChatSessionController, stream_client: FakeStreamClient
    ) -> None:
        session.update_note(content="Ship in July.")
        session.send("When?")

        assert "Ship in July." in stream_client.last_request.system_prompt
        assert "- Title: Roadmap" in stream_client.last_request.system_prompt

    def test_close_abandons_pending_without_persisting(
        self,
        session: ChatSessionController,
        message_store: RecordingMessageStore,
        stream_client: FakeStreamClient,
    ) -> None:
        session.send("Hello")
        stream_client.emit("Hi")

        session.close()

        assert session.pending is None
        assert stream_client.cancel_count == 1
        assert message_store.created == []
