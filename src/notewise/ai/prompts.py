"""Prompt templates for document actions and note chat.

Every helper here is pure: the same action and context always produce the
same system/user pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_CONTEXT_CHARS = 200
MAX_CONTEXT_CHARS = 500
DEFAULT_CHAT_CONTEXT_CHARS = 2_000
UNTITLED_NOTE = "Untitled"


class ActionKind(str, Enum):
    """Document actions the assistant can perform."""

    REFINE = "refine"
    SUMMARIZE = "summarize"
    TRANSLATE = "translate"
    CONTINUE = "continue"
    CUSTOM = "custom"
    TEMPLATE = "template"

    @classmethod
    def parse(cls, value: "ActionKind | str") -> "ActionKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown action kind: {value!r}") from exc

    @property
    def replaces_selection(self) -> bool:
        """Whether the action rewrites selected text rather than inserting."""
        return self in _SELECTION_ACTIONS


class TemplateKind(str, Enum):
    """Fixed generation templates offered from the slash menu."""

    MEETING = "meeting"
    BRAINSTORM = "brainstorm"
    CODE = "code"

    @classmethod
    def parse(cls, value: "TemplateKind | str") -> "TemplateKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown template kind: {value!r}") from exc


_SELECTION_ACTIONS = frozenset({ActionKind.REFINE, ActionKind.SUMMARIZE, ActionKind.TRANSLATE})


@dataclass(slots=True, frozen=True)
class PromptContext:
    """Optional grounding supplied alongside an action."""

    note_title: str | None = None
    surrounding_text: str | None = None
    instruction: str | None = None
    template: TemplateKind | None = None


@dataclass(slots=True, frozen=True)
class Prompt:
    """System prompt and user message sent to the endpoint."""

    system: str
    user: str


_ACTION_PROMPTS: dict[ActionKind, str] = {
    ActionKind.REFINE: (
        "You are the Notewise writing assistant. Improve the clarity, tone and grammar "
        "of the following text. Return only the improved text, without explanations or prefixes."
    ),
    ActionKind.SUMMARIZE: (
        "You are the Notewise writing assistant. Summarize the following text concisely "
        "and professionally as a bulleted list. Use the same language as the input. "
        "Return only the summary."
    ),
    ActionKind.TRANSLATE: (
        "You are the Notewise translation assistant. If the text is Chinese, translate it "
        "into English; if it is English, translate it into Chinese. Return only the translation."
    ),
    ActionKind.CONTINUE: (
        "You are the Notewise creative writing assistant. Continue the following text "
        "naturally, keeping its style and tone. Return only the continuation, without "
        "prefixes such as \"Continuation:\"."
    ),
    ActionKind.CUSTOM: (
        "You are the Notewise assistant. Follow the user's instructions precisely and "
        "return only the result, without explanations."
    ),
}

_TEMPLATE_PROMPTS: dict[TemplateKind, str] = {
    TemplateKind.MEETING: """You are the Notewise meeting assistant. Produce a structured meeting notes template in Markdown based on the context:

## Meeting notes

**Date**: [date]
**Attendees**: [attendees]

### Agenda
1.

### Discussion
-

### Decisions
- [ ]

### Action items
- [ ]

Return only the template, without explanations.""",
    TemplateKind.BRAINSTORM: (
        "You are the Notewise ideas assistant. Based on the context below, produce a "
        "five-point outline that helps the user think the topic through. Use Markdown and "
        "give each point a short explanation. Return only the outline, without any prefix."
    ),
    TemplateKind.CODE: (
        "You are the Notewise programming assistant. Generate code implementing what the "
        "context describes, in a suitable language with concise comments. Return only the "
        "code block, without extra explanations."
    ),
}


def build_prompt(
    action: ActionKind | str,
    user_text: str = "",
    context: PromptContext | None = None,
    *,
    max_context_chars: int = DEFAULT_CONTEXT_CHARS,
) -> Prompt:
    """Return the system prompt and user message for ``action``.

    ``template`` actions need ``context.template`` and are grounded with the
    note title only. ``custom`` appends the caller's instruction. All other
    actions append the note title and the trailing window of surrounding
    text, cut to ``max_context_chars`` (never more than 500).
    """

    kind = ActionKind.parse(action)
    ctx = context or PromptContext()
    if kind is ActionKind.TEMPLATE:
        if ctx.template is None:
            raise ValueError("template actions require a template kind")
        system = _TEMPLATE_PROMPTS[TemplateKind.parse(ctx.template)]
        system += _title_section(ctx.note_title)
        return Prompt(system=system, user=user_text)

    system = _ACTION_PROMPTS[kind]
    system += _title_section(ctx.note_title)
    system += _surrounding_section(ctx.surrounding_text, max_context_chars)
    instruction = (ctx.instruction or "").strip()
    if kind is ActionKind.CUSTOM and instruction:
        system += f"\n\nUser instruction: {instruction}"
    return Prompt(system=system, user=user_text)


def build_chat_instruction(
    title: str | None,
    content: str | None,
    *,
    max_chars: int = DEFAULT_CHAT_CONTEXT_CHARS,
) -> str:
    """Grounding instruction used by the note chat panel."""

    body = content or ""
    excerpt = body[:max_chars]
    if len(body) > max_chars:
        excerpt += "...(content truncated)"
    return (
        "You are the Notewise AI assistant.\n\n"
        "Current note context:\n"
        f"- Title: {(title or '').strip() or UNTITLED_NOTE}\n"
        f"- Content: {excerpt}\n\n"
        "Help the user with their question. When it relates to the note, use the note "
        "context in your answer."
    )


def trailing_window(text: str | None, max_chars: int) -> str:
    """Return at most the last ``max_chars`` characters of ``text``."""

    if not text or max_chars <= 0:
        return ""
    return text[-max_chars:]


def _title_section(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        return ""
    return f"\n\nCurrent note title: \"{cleaned}\""


def _surrounding_section(text: str | None, max_chars: int) -> str:
    limit = min(max(int(max_chars), 0), MAX_CONTEXT_CHARS)
    window = trailing_window(text, limit)
    if not window.strip():
        return ""
    return f"\n\nSurrounding text:\n{window}"


__all__ = [
    "ActionKind",
    "DEFAULT_CHAT_CONTEXT_CHARS",
    "DEFAULT_CONTEXT_CHARS",
    "MAX_CONTEXT_CHARS",
    "Prompt",
    "PromptContext",
    "TemplateKind",
    "build_chat_instruction",
    "build_prompt",
    "trailing_window",
]
