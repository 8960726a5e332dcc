"""In-memory plain text implementation of :class:`DocumentSurface`."""

from __future__ import annotations

import logging

from .surface import ScreenPosition, Selection

LOGGER = logging.getLogger(__name__)


class PlainTextSurface:
    """A text buffer with a cursor/selection, used by the CLI and tests.

    Screen geometry is synthesized from line and column numbers using a
    fixed line height and character width.
    """

    def __init__(
        self,
        text: str = "",
        *,
        selection: tuple[int, int] | None = None,
        line_height: float = 20.0,
        char_width: float = 8.0,
    ) -> None:
        self._text = text
        start, end = selection if selection is not None else (len(text), len(text))
        self._start, self._end = self._clamp(start, end)
        self._line_height = line_height
        self._char_width = char_width
        self._editable = True

    @property
    def text(self) -> str:
        return self._text

    @property
    def editable(self) -> bool:
        return self._editable

    def select(self, start: int, end: int | None = None) -> None:
        self._start, self._end = self._clamp(start, start if end is None else end)

    def type_text(self, text: str) -> None:
        """Simulate user typing at the cursor; ignored while read-only."""

        if not self._editable:
            LOGGER.debug("Ignoring typed text while surface is read-only")
            return
        self.insert_text_at_cursor(text)

    # ------------------------------------------------------------------
    # DocumentSurface
    # ------------------------------------------------------------------
    def get_text_before(self, cursor: int, max_chars: int) -> str:
        cursor = max(0, min(int(cursor), len(self._text)))
        if max_chars <= 0:
            return ""
        return self._text[max(0, cursor - max_chars):cursor]

    def get_selection(self) -> Selection:
        return Selection(self._start, self._end, self._text[self._start:self._end])

    def delete_selection(self) -> None:
        self.delete_range(self._start, self._end)

    def delete_range(self, start: int, end: int) -> None:
        start, end = self._clamp(start, end)
        if start == end:
            return
        self._text = self._text[:start] + self._text[end:]
        self._start = self._end = start

    def set_cursor(self, offset: int) -> None:
        self.select(offset)

    def insert_text_at_cursor(self, text: str) -> None:
        cursor = self._end
        self._text = self._text[:cursor] + text + self._text[cursor:]
        self._start = self._end = cursor + len(text)

    def get_cursor_screen_position(self) -> ScreenPosition:
        before = self._text[:self._start]
        line_index = before.count("\n")
        column = len(before) - (before.rfind("\n") + 1)
        top = line_index * self._line_height
        return ScreenPosition(top=top, left=column * self._char_width, bottom=top + self._line_height)

    def get_serialized_content(self) -> str:
        return self._text

    def set_editable(self, editable: bool) -> None:
        self._editable = bool(editable)

    def _clamp(self, start: int, end: int) -> tuple[int, int]:
        length = len(self._text)
        start = max(0, min(int(start), length))
        end = max(0, min(int(end), length))
        if end < start:
            start, end = end, start
        return start, end


__all__ = ["PlainTextSurface"]
