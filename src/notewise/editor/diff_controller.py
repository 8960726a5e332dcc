"""Ghost-text review state machine for in-document AI actions.

``Inactive -> Active(streaming) -> Active(reviewing) -> Inactive``. An action
captures the text it replaces, streams generated text into a review panel
anchored at the cursor, and ends with the generated text committed
(accept) or the original text put back (discard, error, unmount). Every
exit path pushes the resulting serialized content to the host under a
:class:`~notewise.editor.sync_guard.SyncLease`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, ClassVar, Protocol, Union

from ..ai.client import StreamRequest, StreamSession, TextHandler
from ..ai.prompts import (
    DEFAULT_CONTEXT_CHARS,
    MAX_CONTEXT_CHARS,
    ActionKind,
    PromptContext,
    TemplateKind,
    build_prompt,
)
from .surface import DocumentSurface, ScreenPosition
from .sync_guard import SyncGuard

LOGGER = logging.getLogger(__name__)

GHOST_LINE_GAP = 4.0
DEFAULT_ERROR_DISPLAY_SECONDS = 3.0
EMPTY_CONTEXT_MESSAGE = "Write something first"
NO_SELECTION_MESSAGE = "Select some text first"


class DiffStateError(RuntimeError):
    """Raised when a transition would break the review invariants."""


class StreamStarter(Protocol):
    """The slice of :class:`~notewise.ai.client.StreamClient` the controllers use."""

    def start(
        self,
        request: StreamRequest,
        *,
        on_chunk: TextHandler | None = None,
        on_line: TextHandler | None = None,
        on_finish: TextHandler | None = None,
        on_error: TextHandler | None = None,
    ) -> StreamSession | None:
        ...

    def cancel(self) -> bool:
        ...


@dataclass(slots=True, frozen=True)
class InactiveDiff:
    is_active: ClassVar[bool] = False


@dataclass(slots=True, frozen=True)
class ActiveDiff:
    """A document action awaiting the user's decision.

    ``original_text`` is fixed at activation. ``generated_text`` only grows
    while ``is_streaming`` and is frozen afterwards. ``anchor`` is the
    document offset where either text is committed.
    """

    action: ActionKind
    original_text: str
    generated_text: str = ""
    is_streaming: bool = True
    instruction: str | None = None
    template: TemplateKind | None = None
    anchor: int = 0

    is_active: ClassVar[bool] = True

    def with_chunk(self, chunk: str) -> "ActiveDiff":
        if not self.is_streaming:
            raise DiffStateError("generated text is frozen once streaming ends")
        return replace(self, generated_text=self.generated_text + chunk)

    def finished(self) -> "ActiveDiff":
        return replace(self, is_streaming=False)


DiffState = Union[InactiveDiff, ActiveDiff]
INACTIVE = InactiveDiff()


@dataclass(slots=True, frozen=True)
class GhostPosition:
    """Anchor of the review panel, fixed for the lifetime of a diff."""

    top: float
    left: float

    @classmethod
    def at(cls, geometry: ScreenPosition) -> "GhostPosition":
        return cls(top=geometry.top, left=geometry.left)

    @classmethod
    def below(cls, geometry: ScreenPosition) -> "GhostPosition":
        return cls(top=geometry.line_bottom + GHOST_LINE_GAP, left=0.0)


@dataclass(slots=True, frozen=True)
class _Notice:
    message: str
    expires_at: float


@dataclass(slots=True, frozen=True)
class _ActivationPlan:
    user_text: str
    original_text: str
    position: GhostPosition
    replaces_selection: bool
    anchor: int


class DiffController:
    """Drives one document's ghost-text review.

    The controller owns its stream client exclusively; at most one diff is
    active per document.
    """

    def __init__(
        self,
        surface: DocumentSurface,
        stream_client: StreamStarter,
        *,
        on_content_change: Callable[[str], None],
        title_provider: Callable[[], str | None] | None = None,
        sync_guard: SyncGuard | None = None,
        on_state_change: Callable[[DiffState], None] | None = None,
        on_notice: Callable[[str], None] | None = None,
        context_chars: int = MAX_CONTEXT_CHARS,
        prompt_context_chars: int = DEFAULT_CONTEXT_CHARS,
        error_display_seconds: float = DEFAULT_ERROR_DISPLAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._surface = surface
        self._stream = stream_client
        self._on_content_change = on_content_change
        self._title_provider = title_provider
        self._sync_guard = sync_guard or SyncGuard(clock=clock)
        self._on_state_change = on_state_change
        self._on_notice = on_notice
        self._context_chars = max(0, int(context_chars))
        self._prompt_context_chars = prompt_context_chars
        self._error_display_seconds = error_display_seconds
        self._clock = clock
        self._state: DiffState = INACTIVE
        self._ghost_position: GhostPosition | None = None
        self._notice: _Notice | None = None

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> DiffState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    @property
    def is_streaming(self) -> bool:
        return isinstance(self._state, ActiveDiff) and self._state.is_streaming

    @property
    def ghost_position(self) -> GhostPosition | None:
        return self._ghost_position

    @property
    def sync_guard(self) -> SyncGuard:
        return self._sync_guard

    @property
    def error_message(self) -> str | None:
        """Transient error text; cleared automatically once it has been shown long enough."""

        notice = self._notice
        if notice is None:
            return None
        if self._clock() >= notice.expires_at:
            self._notice = None
            return None
        return notice.message

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def activate(
        self,
        action: ActionKind | str,
        *,
        instruction: str | None = None,
        template: TemplateKind | str | None = None,
    ) -> bool:
        """Start ``action`` at the cursor; returns ``False`` when rejected.

        Rejected activations never reach the network.
        """

        kind = ActionKind.parse(action)
        if self.is_active:
            LOGGER.debug("Ignoring %s activation; a diff is already active", kind.value)
            return False
        template_kind = TemplateKind.parse(template) if template is not None else None
        if kind is ActionKind.TEMPLATE and template_kind is None:
            LOGGER.debug("Ignoring template activation without a template kind")
            return False

        instruction_text = (instruction or "").strip() or None
        plan = self._plan_activation(kind, instruction_text)
        if plan is None:
            return False

        if plan.replaces_selection:
            self._surface.delete_selection()
            self._surface.set_cursor(plan.anchor)
        self._surface.set_editable(False)
        self._ghost_position = plan.position
        self._set_state(
            ActiveDiff(
                action=kind,
                original_text=plan.original_text,
                instruction=instruction_text,
                template=template_kind,
                anchor=plan.anchor,
            )
        )
        LOGGER.debug(
            "Diff activated action=%s original_chars=%d replaces_selection=%s anchor=%d",
            kind.value,
            len(plan.original_text),
            plan.replaces_selection,
            plan.anchor,
        )

        context = PromptContext(
            note_title=self._current_title(),
            surrounding_text=self._context_text(),
            instruction=instruction_text,
            template=template_kind,
        )
        prompt = build_prompt(kind, plan.user_text, context, max_context_chars=self._prompt_context_chars)
        self._stream.start(
            StreamRequest.from_prompt(kind, prompt),
            on_chunk=self._handle_chunk,
            on_finish=self._handle_finish,
            on_error=self._handle_error,
        )
        return True

    def accept(self) -> bool:
        """Commit the reviewed text; only possible once streaming has finished."""

        state = self._state
        if not isinstance(state, ActiveDiff) or state.is_streaming or not state.generated_text:
            return False
        self._commit(state.generated_text, state.anchor, reason="accept")
        return True

    def discard(self) -> bool:
        """Abandon the diff, cancelling generation and restoring the original text."""

        state = self._state
        if not isinstance(state, ActiveDiff):
            return False
        if state.is_streaming:
            self._stream.cancel()
        self._commit(state.original_text, state.anchor, reason="discard")
        return True

    def close(self) -> None:
        """Tear down when the editor unmounts; an active diff is discarded."""

        if self.is_active:
            self.discard()

    def show_error(self, message: str) -> None:
        self._notice = _Notice(message=message, expires_at=self._clock() + self._error_display_seconds)
        if self._on_notice is not None:
            try:
                self._on_notice(message)
            except Exception:
                LOGGER.debug("Notice listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Stream callbacks
    # ------------------------------------------------------------------
    def _handle_chunk(self, chunk: str) -> None:
        state = self._state
        if not isinstance(state, ActiveDiff) or not state.is_streaming:
            return
        self._set_state(state.with_chunk(chunk))

    def _handle_finish(self, full_text: str) -> None:
        state = self._state
        if not isinstance(state, ActiveDiff) or not state.is_streaming:
            return
        if full_text != state.generated_text:
            LOGGER.debug(
                "Finished text (%d chars) differs from accumulated chunks (%d chars)",
                len(full_text),
                len(state.generated_text),
            )
        self._set_state(state.finished())

    def _handle_error(self, message: str) -> None:
        state = self._state
        if not isinstance(state, ActiveDiff):
            return
        self.show_error(message)
        self._commit(state.original_text, state.anchor, reason="error")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _plan_activation(self, kind: ActionKind, instruction: str | None) -> _ActivationPlan | None:
        selection = self._surface.get_selection()
        geometry = self._surface.get_cursor_screen_position()
        context_text = self._context_text()
        below = GhostPosition.below(geometry)

        if kind is ActionKind.CONTINUE:
            if not context_text.strip():
                self.show_error(EMPTY_CONTEXT_MESSAGE)
                return None
            return _ActivationPlan(context_text, "", below, False, selection.cursor)
        if kind is ActionKind.TEMPLATE:
            return _ActivationPlan(context_text, "", below, False, selection.cursor)
        if selection.text.strip():
            return _ActivationPlan(
                selection.text, selection.text, GhostPosition.at(geometry), True, selection.start
            )
        if kind is ActionKind.CUSTOM and instruction:
            return _ActivationPlan(context_text, "", below, False, selection.cursor)
        self.show_error(NO_SELECTION_MESSAGE)
        return None

    def _context_text(self) -> str:
        selection = self._surface.get_selection()
        return self._surface.get_text_before(selection.cursor, self._context_chars)

    def _current_title(self) -> str | None:
        if self._title_provider is None:
            return None
        return self._title_provider()

    def _commit(self, text: str, anchor: int, *, reason: str) -> None:
        lease = self._sync_guard.acquire(reason)
        try:
            self._surface.set_editable(True)
            if text:
                self._surface.set_cursor(anchor)
                self._surface.insert_text_at_cursor(text)
            content = self._surface.get_serialized_content()
            lease.bind_content(content)
            self._on_content_change(content)
        finally:
            self._reset()
        LOGGER.debug("Diff closed (%s); committed %d characters", reason, len(text))

    def _reset(self) -> None:
        self._ghost_position = None
        self._set_state(INACTIVE)

    def _set_state(self, state: DiffState) -> None:
        self._state = state
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(state)
        except Exception:
            LOGGER.debug("Diff state listener failed", exc_info=True)


__all__ = [
    "ActiveDiff",
    "DiffController",
    "DiffState",
    "DiffStateError",
    "EMPTY_CONTEXT_MESSAGE",
    "GhostPosition",
    "INACTIVE",
    "InactiveDiff",
    "NO_SELECTION_MESSAGE",
    "StreamStarter",
]
