"""Editor-side AI integration: surfaces, ghost-text review, and triggers."""

from .diff_controller import INACTIVE, ActiveDiff, DiffController, GhostPosition, InactiveDiff
from .surface import DocumentSurface, ScreenPosition, Selection
from .sync_guard import SyncGuard, SyncLease
from .text_surface import PlainTextSurface
from .triggers import DEFAULT_SLASH_COMMANDS, ContextMenu, SlashCommand, SlashCommandTracker

__all__ = [
    "ActiveDiff",
    "ContextMenu",
    "DEFAULT_SLASH_COMMANDS",
    "DiffController",
    "DocumentSurface",
    "GhostPosition",
    "INACTIVE",
    "InactiveDiff",
    "PlainTextSurface",
    "ScreenPosition",
    "Selection",
    "SlashCommand",
    "SlashCommandTracker",
    "SyncGuard",
    "SyncLease",
]
