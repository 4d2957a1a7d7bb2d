from __future__ import annotations

import json
from pathlib import Path

import pytest

from agent_history.config import (
    AgentHistoryConfig,
    ValidationError,
    get_config_path,
    load_config,
    read_config_file,
    validate_config_data,
    validate_config_text,
    write_config_file,
)


def test_defaults() -> None:
    cfg = AgentHistoryConfig()
    assert cfg.enabled and cfg.mcp_enabled and cfg.extraction_enabled
    assert cfg.max_size_mb == 100
    assert cfg.retention_days == 90
    assert cfg.dedup_window_s == 2.0
    assert cfg.extraction_threshold == 4000
    assert cfg.extraction_overlap_tokens == 500
    assert cfg.summarizer_provider is None
    assert cfg.max_size_bytes() == 100 * 1024 * 1024


def test_non_positive_size_means_unlimited() -> None:
    assert AgentHistoryConfig(max_size_mb=0).max_size_bytes() == 0
    assert AgentHistoryConfig(max_size_mb=-1).max_size_bytes() == 0


def test_config_path_honours_env(tmp_path: Path) -> None:
    assert get_config_path() == tmp_path / "config" / "config.json"
    assert get_config_path(tmp_path / "other.json") == tmp_path / "other.json"


def test_load_config_reads_file_then_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    write_config_file(
        {"retention_days": 30, "summarizer_provider": "ollama", "extraction_enabled": False}
    )
    monkeypatch.setenv("AGENT_HISTORY_RETENTION_DAYS", "7")
    monkeypatch.setenv("AGENT_HISTORY_MCP_ENABLED", "off")

    cfg = load_config()

    assert cfg.retention_days == 7
    assert cfg.summarizer_provider == "ollama"
    assert cfg.extraction_enabled is False
    assert cfg.mcp_enabled is False
    assert cfg.db_path == str(tmp_path / "history.db")


def test_bad_values_warn_and_keep_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    write_config_file({"max_size_mb": "lots", "enabled": [1]})
    monkeypatch.setenv("AGENT_HISTORY_EXTRACTION_THRESHOLD", "many")

    with pytest.warns(RuntimeWarning):
        cfg = load_config()

    assert cfg.max_size_mb == 100
    assert cfg.enabled is True
    assert cfg.extraction_threshold == 4000


def test_non_positive_intervals_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    write_config_file({"dedup_window_s": -1, "extraction_threshold": 0})
    monkeypatch.setenv("AGENT_HISTORY_SYNC_INTERVAL_S", "0")

    with pytest.warns(RuntimeWarning, match="must be positive"):
        cfg = load_config()

    assert cfg.sync_interval_s == 5.0
    assert cfg.dedup_window_s == 2.0
    assert cfg.extraction_threshold == 4000


def test_load_config_ignores_unreadable_json(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{oops")
    assert load_config(path).retention_days == 90


def test_read_config_file_rejects_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{oops")
    with pytest.raises(ValueError):
        read_config_file(path)
    path.write_text("[]")
    with pytest.raises(ValueError):
        read_config_file(path)
    assert read_config_file(tmp_path / "missing.json") == {}


def test_write_config_round_trips(tmp_path: Path) -> None:
    path = write_config_file({"enabled": False}, tmp_path / "nested" / "c.json")
    assert json.loads(path.read_text()) == {"enabled": False}
    assert read_config_file(path) == {"enabled": False}


def test_to_dict_masks_api_key() -> None:
    cfg = AgentHistoryConfig(summarizer_api_key="sk-secret")
    assert cfg.to_dict()["summarizer_api_key"] == "***"
    assert cfg.to_dict(redact_secrets=False)["summarizer_api_key"] == "sk-secret"
    assert AgentHistoryConfig().to_dict()["summarizer_api_key"] is None


def test_validate_accepts_good_config() -> None:
    data = {
        "max_size_mb": 50,
        "retention_days": 0,
        "extraction_threshold": 2000,
        "extraction_overlap_tokens": 200,
        "summarizer_provider": "Groq",
        "enabled": True,
    }
    assert validate_config_data(data) == []
    assert validate_config_text("") == []


def test_validate_collects_every_problem() -> None:
    errors = validate_config_data(
        {
            "colour": "blue",
            "enabled": "yes",
            "summarizer_model": 5,
            "max_size_mb": -1,
            "retention_days": -3,
            "dedup_window_s": 0,
            "extraction_threshold": 1.5,
            "summarizer_provider": "carrier-pigeon",
        }
    )
    fields = {(error.field, error.message.split(" (")[0]) for error in errors}
    assert ("colour", "unknown setting") in fields
    assert ("enabled", "must be a boolean") in fields
    assert ("summarizer_model", "must be a string") in fields
    assert ("max_size_mb", "must be non-negative") in fields
    assert ("retention_days", "must be non-negative") in fields
    assert ("dedup_window_s", "must be positive") in fields
    assert ("extraction_threshold", "must be an integer") in fields
    assert any(error.field == "summarizer_provider" for error in errors)
    assert len(errors) == 8


def test_validate_overlap_must_be_below_threshold() -> None:
    errors = validate_config_data({"extraction_threshold": 100, "extraction_overlap_tokens": 100})
    assert errors == [
        ValidationError("extraction_overlap_tokens", "must be smaller than extraction_threshold")
    ]


def test_validate_text_reports_json_problems() -> None:
    [error] = validate_config_text("{nope")
    assert error.field == "json"
    assert str(error).startswith("json: invalid JSON")
    assert validate_config_text("[]") == [ValidationError("json", "config must be an object")]
