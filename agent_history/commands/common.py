from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any

import typer
from rich import print

from agent_history.config import AgentHistoryConfig, load_config, read_config_file
from agent_history.db import DEFAULT_DB_PATH
from agent_history.store import HistoryStore


def store_from_path(db_path: str | None) -> HistoryStore:
    if db_path:
        return HistoryStore(db_path)
    return HistoryStore(load_config().db_path or DEFAULT_DB_PATH)


def read_config_or_exit(path: Path | None = None) -> dict[str, Any]:
    try:
        return read_config_file(path)
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def load_config_or_exit(path: Path | None = None) -> AgentHistoryConfig:
    read_config_or_exit(path)
    return load_config(path)


def format_bytes(size: int) -> str:
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{int(size)} B"


def format_timestamp(value: dt.datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")
