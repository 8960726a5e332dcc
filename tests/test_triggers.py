"""Tests for the slash-command tracker and the context menu."""

from __future__ import annotations

from notewise.ai.prompts import ActionKind, TemplateKind
from notewise.editor.surface import ScreenPosition
from notewise.editor.text_surface import PlainTextSurface
from notewise.editor.triggers import (
    DEFAULT_SLASH_COMMANDS,
    ContextMenu,
    SlashCommand,
    SlashCommandTracker,
    context_menu_items,
)


def _tracker(surface: PlainTextSurface, *, blocked: bool = False) -> tuple[SlashCommandTracker, list[SlashCommand]]:
    selected: list[SlashCommand] = []
    tracker = SlashCommandTracker(surface, selected.append, is_blocked=lambda: blocked)
    return tracker, selected


def _command(key: str) -> SlashCommand:
    return next(command for command in DEFAULT_SLASH_COMMANDS if command.key == key)


class TestSlashCommandTracker:
    def test_typing_slash_opens_menu_below_cursor(self) -> None:
        surface = PlainTextSurface("Intro\n")
        tracker, _ = _tracker(surface)

        surface.type_text("/")
        tracker.handle_text_change()

        assert tracker.is_open
        assert tracker.menu_position == ScreenPosition(top=44.0, left=8.0)
        assert tracker.query == ""

    def test_query_filters_commands(self) -> None:
        surface = PlainTextSurface("")
        tracker, _ = _tracker(surface)
        surface.type_text("/")
        tracker.handle_text_change()

        surface.type_text("me")
        tracker.handle_text_change()

        assert tracker.query == "me"
        assert [command.key for command in tracker.filtered_commands()] == ["meeting"]

    def test_space_closes_menu(self) -> None:
        surface = PlainTextSurface("")
        tracker, _ = _tracker(surface)
        surface.type_text("/")
        tracker.handle_text_change()

        surface.type_text("hello world")
        tracker.handle_text_change()

        assert tracker.is_open is False

    def test_deleting_slash_closes_menu(self) -> None:
        surface = PlainTextSurface("abc")
        tracker, _ = _tracker(surface)
        surface.type_text("/")
        tracker.handle_text_change()

        surface.delete_range(3, 4)
        tracker.handle_text_change()

        assert tracker.is_open is False

    def test_escape_closes_menu(self) -> None:
        surface = PlainTextSurface("")
        tracker, _ = _tracker(surface)
        surface.type_text("/")
        tracker.handle_text_change()

        assert tracker.handle_key("Escape") is True
        assert tracker.is_open is False
        assert tracker.handle_key("Escape") is False

    def test_blocked_tracker_never_opens(self) -> None:
        surface = PlainTextSurface("")
        tracker, _ = _tracker(surface, blocked=True)
        surface.type_text("/")
        tracker.handle_text_change()

        assert tracker.is_open is False

    def test_select_removes_query_and_invokes_action(self) -> None:
        surface = PlainTextSurface("Agenda: ")
        tracker, selected = _tracker(surface)
        surface.type_text("/")
        tracker.handle_text_change()
        surface.type_text("mee")
        tracker.handle_text_change()

        assert tracker.select(_command("meeting")) is True

        assert surface.text == "Agenda: "
        assert selected == [_command("meeting")]
        assert selected[0].action is ActionKind.TEMPLATE
        assert selected[0].template is TemplateKind.MEETING
        assert tracker.is_open is False

    def test_select_without_open_menu_is_ignored(self) -> None:
        tracker, selected = _tracker(PlainTextSurface("text"))

        assert tracker.select(_command("continue")) is False
        assert selected == []


class TestContextMenu:
    def test_items_depend_on_selection(self) -> None:
        assert context_menu_items(False) == [ActionKind.CONTINUE]
        assert context_menu_items(True) == [
            ActionKind.REFINE,
            ActionKind.SUMMARIZE,
            ActionKind.TRANSLATE,
            ActionKind.CONTINUE,
        ]

    def test_choose_invokes_action_and_closes(self) -> None:
        surface = PlainTextSurface("some words", selection=(0, 4))
        chosen: list[tuple[ActionKind, str | None]] = []
        menu = ContextMenu(surface, lambda action, instruction: chosen.append((action, instruction)))

        assert menu.open(ScreenPosition(top=10, left=10)) is True
        assert menu.choose("refine") is True

        assert chosen == [(ActionKind.REFINE, None)]
        assert menu.is_open is False

    def test_selection_actions_unavailable_without_selection(self) -> None:
        surface = PlainTextSurface("some words")
        chosen: list[tuple[ActionKind, str | None]] = []
        menu = ContextMenu(surface, lambda action, instruction: chosen.append((action, instruction)))
        menu.open(ScreenPosition(top=0, left=0))

        assert menu.choose("summarize") is False
        assert chosen == []
        assert menu.is_open is True

    def test_blank_custom_instruction_is_ignored(self) -> None:
        surface = PlainTextSurface("some words")
        chosen: list[tuple[ActionKind, str | None]] = []
        menu = ContextMenu(surface, lambda action, instruction: chosen.append((action, instruction)))
        menu.open(ScreenPosition(top=0, left=0))

        assert menu.choose("custom", "   ") is False
        assert menu.choose("custom", " Shorten it ") is True
        assert chosen == [(ActionKind.CUSTOM, "Shorten it")]

    def test_menu_is_blocked_while_diff_active(self) -> None:
        menu = ContextMenu(PlainTextSurface("x"), lambda *_: None, is_blocked=lambda: True)

        assert menu.open(ScreenPosition(top=0, left=0)) is False
        assert menu.choose("continue") is False
