"""Narrow capability interface onto the host's rich-text editor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True, frozen=True)
class Selection:
    """Current selection span; ``start == end`` is a bare cursor."""

    start: int
    end: int
    text: str = ""

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    @property
    def cursor(self) -> int:
        """Caret offset; the head of a selection is its end."""
        return self.end


@dataclass(slots=True, frozen=True)
class ScreenPosition:
    """Cursor geometry relative to the editor container, in pixels.

    ``bottom`` is the lower edge of the cursor's line when the host knows it.
    """

    top: float
    left: float
    bottom: float | None = None

    @property
    def line_bottom(self) -> float:
        return self.top if self.bottom is None else self.bottom


class DocumentSurface(Protocol):
    """Operations the AI controllers need from the editing surface."""

    def get_text_before(self, cursor: int, max_chars: int) -> str:
        ...

    def get_selection(self) -> Selection:
        ...

    def delete_selection(self) -> None:
        ...

    def delete_range(self, start: int, end: int) -> None:
        ...

    def set_cursor(self, offset: int) -> None:
        """Collapse the selection to a caret at ``offset``."""
        ...

    def insert_text_at_cursor(self, text: str) -> None:
        ...

    def get_cursor_screen_position(self) -> ScreenPosition:
        ...

    def get_serialized_content(self) -> str:
        ...

    def set_editable(self, editable: bool) -> None:
        ...


__all__ = ["DocumentSurface", "ScreenPosition", "Selection"]
