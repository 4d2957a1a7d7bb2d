from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from agent_history.store import HistoryStore


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in list(os.environ):
        if key.startswith("AGENT_HISTORY_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("AGENT_HISTORY_CONFIG", str(tmp_path / "config" / "config.json"))
    monkeypatch.setenv("AGENT_HISTORY_DB", str(tmp_path / "history.db"))


@pytest.fixture
def store(tmp_path: Path) -> Iterator[HistoryStore]:
    history = HistoryStore(tmp_path / "history.db")
    try:
        yield history
    finally:
        history.close()
