"""Tests for settings persistence, secret handling and overrides."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from notewise.services.settings import (
    SecretVault,
    Settings,
    SettingsStore,
    active_env_overrides,
    redact_secret,
)


@pytest.fixture
def store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")


def test_missing_file_yields_defaults(store: SettingsStore) -> None:
    settings = store.load()

    assert settings == Settings()
    assert not store.path.exists()


def test_api_key_is_encrypted_at_rest(store: SettingsStore) -> None:
    store.save(Settings(api_key="sk-live-123456", model="gpt-4o"))

    raw = store.path.read_text(encoding="utf-8")
    payload = json.loads(raw)
    assert "sk-live-123456" not in raw
    assert "api_key" not in payload
    assert payload["api_key_ciphertext"].startswith("fernet:")
    assert payload["version"] == 1

    loaded = store.load()
    assert loaded.api_key == "sk-live-123456"
    assert loaded.model == "gpt-4o"


def test_plaintext_key_is_migrated(store: SettingsStore) -> None:
    store.path.write_text(json.dumps({"api_key": "sk-plain", "version": 1}), encoding="utf-8")

    settings = store.load()

    assert settings.api_key == "sk-plain"
    assert "sk-plain" not in store.path.read_text(encoding="utf-8")


def test_unreadable_ciphertext_drops_key(store: SettingsStore, caplog: pytest.LogCaptureFixture) -> None:
    store.path.write_text(
        json.dumps({"api_key_ciphertext": "fernet:garbage", "model": "m", "version": 1}),
        encoding="utf-8",
    )

    settings = store.load()

    assert settings.api_key == ""
    assert settings.model == "m"
    assert "Unable to decrypt API key" in caplog.text


def test_invalid_json_falls_back_to_defaults(store: SettingsStore) -> None:
    store.path.write_text("{not json", encoding="utf-8")

    assert store.load() == Settings()


def test_unknown_fields_are_ignored(store: SettingsStore) -> None:
    store.path.write_text(json.dumps({"model": "x", "theme": "dark", "version": 1}), encoding="utf-8")

    assert store.load().model == "x"


def test_cli_overrides_apply_before_environment(store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOTEWISE_MODEL", "env-model")
    monkeypatch.setenv("NOTEWISE_CONTEXT_CHARS", "250")
    monkeypatch.setenv("NOTEWISE_DEBUG_LOGGING", "yes")

    settings = store.load(overrides={"model": "cli-model", "base_url": "http://localhost:8080", "unknown": 1})

    assert settings.model == "env-model"
    assert settings.base_url == "http://localhost:8080"
    assert settings.context_chars == 250
    assert settings.debug_logging is True
    assert "NOTEWISE_MODEL" in active_env_overrides()


def test_invalid_numeric_env_override_is_ignored(
    store: SettingsStore, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setenv("NOTEWISE_CONNECT_TIMEOUT", "soon")

    settings = store.load()

    assert settings.connect_timeout == Settings().connect_timeout
    assert "not a valid float" in caplog.text


def test_vault_rejects_foreign_prefix(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "vault.key")

    token = vault.encrypt("secret")
    assert vault.decrypt(token) == "secret"
    assert vault.encrypt("") == ""
    assert vault.decrypt(None) == ""
    with pytest.raises(ValueError):
        vault.decrypt("dpapi:abc")


def test_vault_key_is_reused_across_instances(tmp_path: Path) -> None:
    key_path = tmp_path / "shared.key"
    token = SecretVault(key_path=key_path).encrypt("persisted")

    assert SecretVault(key_path=key_path).decrypt(token) == "persisted"


def test_client_settings_view() -> None:
    settings = Settings(api_key="k", model="m", default_headers={"X-Test": "1"})

    client = settings.client_settings(debug_logging=True)

    assert client.api_key == "k"
    assert client.model == "m"
    assert client.debug_logging is True
    assert client.default_headers == {"X-Test": "1"}
    assert client.chat_completions_url.endswith("/v1/chat/completions")


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("sk-123456", "sk*****56"), ("  sk-1234  ", "sk***34")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected
