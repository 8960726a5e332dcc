"""Slash-command and context-menu entry points into the diff controller."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from ..ai.prompts import ActionKind, TemplateKind
from .surface import DocumentSurface, ScreenPosition

LOGGER = logging.getLogger(__name__)

SLASH_TRIGGER = "/"
MENU_OFFSET = 4.0


@dataclass(slots=True, frozen=True)
class SlashCommand:
    """One entry of the slash menu."""

    key: str
    label: str
    description: str
    action: ActionKind
    template: TemplateKind | None = None

    def matches(self, query: str) -> bool:
        needle = query.strip().lower()
        if not needle:
            return True
        return needle in self.key or needle in self.label.lower()


DEFAULT_SLASH_COMMANDS: tuple[SlashCommand, ...] = (
    SlashCommand("continue", "AI continue", "Keep writing from the text above", ActionKind.CONTINUE),
    SlashCommand(
        "meeting", "Meeting notes", "Generate a structured meeting template", ActionKind.TEMPLATE, TemplateKind.MEETING
    ),
    SlashCommand(
        "brainstorm", "Brainstorm outline", "Generate a five-point outline", ActionKind.TEMPLATE, TemplateKind.BRAINSTORM
    ),
    SlashCommand("code", "Code", "Generate code from the description", ActionKind.TEMPLATE, TemplateKind.CODE),
)


class SlashCommandTracker:
    """Watches edits for a typed ``/`` and manages the slash menu lifecycle.

    The host calls :meth:`handle_text_change` after every document update and
    :meth:`handle_key` for key presses. ``on_select`` receives the chosen
    command once the ``/query`` text has been removed from the document.
    """

    def __init__(
        self,
        surface: DocumentSurface,
        on_select: Callable[[SlashCommand], object],
        *,
        is_blocked: Callable[[], bool] = lambda: False,
        commands: Sequence[SlashCommand] = DEFAULT_SLASH_COMMANDS,
    ) -> None:
        self._surface = surface
        self._on_select = on_select
        self._is_blocked = is_blocked
        self._commands = tuple(commands)
        self._slash_offset: int | None = None
        self._position: ScreenPosition | None = None
        self._query = ""

    @property
    def is_open(self) -> bool:
        return self._slash_offset is not None

    @property
    def menu_position(self) -> ScreenPosition | None:
        return self._position

    @property
    def query(self) -> str:
        return self._query

    def handle_text_change(self) -> None:
        if self._is_blocked():
            return
        cursor = self._surface.get_selection().cursor
        if self._surface.get_text_before(cursor, 1) == SLASH_TRIGGER:
            geometry = self._surface.get_cursor_screen_position()
            self._slash_offset = cursor - 1
            self._position = ScreenPosition(top=geometry.line_bottom + MENU_OFFSET, left=geometry.left)
            self._query = ""
            LOGGER.debug("Slash menu opened at offset %s", self._slash_offset)
            return
        if self._slash_offset is None:
            return
        typed = ""
        if cursor > self._slash_offset:
            typed = self._surface.get_text_before(cursor, cursor - self._slash_offset)
        if not typed.startswith(SLASH_TRIGGER) or " " in typed:
            self.close()
            return
        self._query = typed[len(SLASH_TRIGGER):]

    def handle_key(self, key: str) -> bool:
        """Return ``True`` when the key was consumed by the menu."""

        if key == "Escape" and self.is_open:
            self.close()
            return True
        return False

    def filtered_commands(self) -> list[SlashCommand]:
        return [command for command in self._commands if command.matches(self._query)]

    def select(self, command: SlashCommand) -> bool:
        if self._slash_offset is None:
            return False
        cursor = self._surface.get_selection().cursor
        self._surface.delete_range(self._slash_offset, cursor)
        self.close()
        LOGGER.debug("Slash command selected: %s", command.key)
        self._on_select(command)
        return True

    def close(self) -> None:
        self._slash_offset = None
        self._position = None
        self._query = ""


# ---------------------------------------------------------------------------
# Context menu
# ---------------------------------------------------------------------------
_SELECTION_ITEMS = (ActionKind.REFINE, ActionKind.SUMMARIZE, ActionKind.TRANSLATE)
_ALWAYS_ITEMS = (ActionKind.CONTINUE,)


def context_menu_items(has_selection: bool) -> list[ActionKind]:
    """Actions offered by the context menu; ``custom`` is always available as free text."""

    items = list(_SELECTION_ITEMS) if has_selection else []
    items.extend(_ALWAYS_ITEMS)
    return items


class ContextMenu:
    """Right-click menu that starts document actions."""

    def __init__(
        self,
        surface: DocumentSurface,
        on_action: Callable[[ActionKind, str | None], object],
        *,
        is_blocked: Callable[[], bool] = lambda: False,
    ) -> None:
        self._surface = surface
        self._on_action = on_action
        self._is_blocked = is_blocked
        self._position: ScreenPosition | None = None
        self._items: list[ActionKind] = []

    @property
    def is_open(self) -> bool:
        return self._position is not None

    @property
    def position(self) -> ScreenPosition | None:
        return self._position

    @property
    def items(self) -> list[ActionKind]:
        return list(self._items)

    def open(self, position: ScreenPosition) -> bool:
        if self._is_blocked():
            LOGGER.debug("Context menu suppressed while a diff is active")
            return False
        selection = self._surface.get_selection()
        self._items = context_menu_items(bool(selection.text.strip()))
        self._position = position
        return True

    def close(self) -> None:
        self._position = None
        self._items = []

    def choose(self, action: ActionKind | str, instruction: str | None = None) -> bool:
        if not self.is_open:
            return False
        kind = ActionKind.parse(action)
        if kind is ActionKind.CUSTOM:
            instruction = (instruction or "").strip()
            if not instruction:
                return False
        elif kind not in self._items:
            LOGGER.debug("Context menu action %s is not available", kind.value)
            return False
        self.close()
        self._on_action(kind, instruction if kind is ActionKind.CUSTOM else None)
        return True


__all__ = [
    "ContextMenu",
    "DEFAULT_SLASH_COMMANDS",
    "SlashCommand",
    "SlashCommandTracker",
    "context_menu_items",
]
