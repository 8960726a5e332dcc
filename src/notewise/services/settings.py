"""Settings dataclass and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..ai.client import ClientSettings
from ..ai.prompts import DEFAULT_CHAT_CONTEXT_CHARS, DEFAULT_CONTEXT_CHARS, MAX_CONTEXT_CHARS
from ..editor.sync_guard import DEFAULT_HOLD_SECONDS

__all__ = [
    "ENV_PREFIX",
    "FernetSecretProvider",
    "SecretProvider",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "active_env_overrides",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
ENV_PREFIX = "NOTEWISE_"
_SETTINGS_DIR = Path.home() / ".notewise"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEWISE_API_KEY": "api_key",
    "NOTEWISE_BASE_URL": "base_url",
    "NOTEWISE_MODEL": "model",
    "NOTEWISE_DATABASE_PATH": "database_path",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEWISE_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEWISE_CONNECT_TIMEOUT": "connect_timeout",
    "NOTEWISE_SYNC_HOLD_SECONDS": "sync_hold_seconds",
    "NOTEWISE_ERROR_DISPLAY_SECONDS": "error_display_seconds",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEWISE_CONTEXT_CHARS": "context_chars",
    "NOTEWISE_PROMPT_CONTEXT_CHARS": "prompt_context_chars",
    "NOTEWISE_CHAT_CONTEXT_CHARS": "chat_context_chars",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_API_KEY_FIELD = "api_key_ciphertext"


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    base_url: str = "https://api.openai.com"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    connect_timeout: float = 10.0
    context_chars: int = MAX_CONTEXT_CHARS
    prompt_context_chars: int = DEFAULT_CONTEXT_CHARS
    chat_context_chars: int = DEFAULT_CHAT_CONTEXT_CHARS
    sync_hold_seconds: float = DEFAULT_HOLD_SECONDS
    error_display_seconds: float = 3.0
    database_path: str = str(_SETTINGS_DIR / "notewise.db")
    debug_logging: bool = False
    default_headers: dict[str, str] = field(default_factory=dict)

    def client_settings(self, *, debug_logging: bool = False) -> ClientSettings:
        """Read-only connection view handed to the streaming client."""

        return ClientSettings(
            base_url=self.base_url,
            api_key=self.api_key,
            model=self.model,
            connect_timeout=self.connect_timeout,
            default_headers=dict(self.default_headers),
            debug_logging=debug_logging or self.debug_logging,
        )


class SecretProvider(ABC):
    """Interface for encrypting and decrypting sensitive strings."""

    name: str = "unknown"

    @abstractmethod
    def encrypt(self, secret: str) -> str:
        """Return an encoded representation of ``secret`` suitable for storage."""

    @abstractmethod
    def decrypt(self, token: str) -> str:
        """Return the plaintext representation of ``token``."""


class FernetSecretProvider(SecretProvider):
    """Secret provider that uses a symmetric Fernet key stored on disk."""

    name = "fernet"

    def __init__(self, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return token.decode("ascii")

    def decrypt(self, token: str) -> str:
        raw = self._get_fernet().decrypt(token.encode("ascii"))
        return raw.decode("utf-8")

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SecretVault:
    """Encrypts and decrypts sensitive strings for settings persistence.

    Tokens carry a ``<provider>:`` prefix so stored secrets stay readable if
    another provider is added later.
    """

    def __init__(self, *, key_path: Path | None = None, provider: SecretProvider | None = None) -> None:
        self._provider = provider or FernetSecretProvider(key_path)

    @property
    def strategy(self) -> str:
        return self._provider.name

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        return f"{self._provider.name}:{self._provider.encrypt(secret)}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, payload = self._split_token(token)
        if prefix is not None and prefix != self._provider.name:
            raise ValueError(f"Unknown secret token prefix {prefix!r}")
        try:
            return self._provider.decrypt(payload)
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    @staticmethod
    def _split_token(token: str) -> tuple[str | None, str]:
        if ":" not in token:
            return None, token
        prefix, payload = token.split(":", 1)
        return (prefix or None), payload


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False

        if payload:
            plaintext_key, migrated = self._decrypt_api_key(
                payload.pop(_API_KEY_FIELD, None), payload.pop("api_key", None)
            )
            needs_migration = migrated
            try:
                settings = Settings(**_filter_fields(payload))
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if plaintext_key:
                settings = replace(settings, api_key=plaintext_key)
            LOGGER.debug("Settings loaded from %s", self._path)

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with an atomic file write."""

        body = json.dumps(self._serialize(settings), indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        api_key = data.pop("api_key", "") or ""
        if api_key:
            data[_API_KEY_FIELD] = self._vault.encrypt(api_key)
        data["version"] = _SETTINGS_VERSION
        data["secret_backend"] = self._vault.strategy
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(self, settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings

    def _decrypt_api_key(self, ciphertext: str | None, legacy_plaintext: str | None) -> tuple[str, bool]:
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt API key: %s", exc)
                return "", False
        if legacy_plaintext:
            LOGGER.info("Detected plaintext API key; migrating to encrypted storage.")
            return legacy_plaintext, True
        return "", False


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)} - {"api_key"}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"


def active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith(ENV_PREFIX))
