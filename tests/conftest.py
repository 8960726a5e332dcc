"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from tests.helpers import FakeStreamClient, ManualClock, RecordingMessageStore


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOTEWISE_LOG_DIR", str(tmp_path / "logs"))
    for name in (
        "NOTEWISE_API_KEY",
        "NOTEWISE_BASE_URL",
        "NOTEWISE_MODEL",
        "NOTEWISE_DEBUG",
        "NOTEWISE_DEBUG_LOGGING",
        "NOTEWISE_DATABASE_PATH",
        "NOTEWISE_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def stream_client() -> FakeStreamClient:
    return FakeStreamClient()


@pytest.fixture
def message_store() -> Iterator[RecordingMessageStore]:
    store = RecordingMessageStore()
    yield store
    store.close()
