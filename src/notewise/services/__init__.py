"""Service layer helpers (settings, message persistence)."""

from .message_store import MessageStore, SqliteMessageStore
from .settings import SecretVault, Settings, SettingsStore, redact_secret

__all__ = [
    "MessageStore",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "SqliteMessageStore",
    "redact_secret",
]
