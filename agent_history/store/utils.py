from __future__ import annotations

import datetime as dt
import sqlite3

from .types import Session, ToolUse


def to_epoch(value: dt.datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    return int(value.timestamp())


def from_epoch(value: int | None) -> dt.datetime | None:
    if value is None:
        return None
    return dt.datetime.fromtimestamp(int(value), tz=dt.UTC)


def session_from_row(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        tool_name=row["tool_name"],
        tool_command=row["tool_command"] or "",
        project_dir=row["project_dir"] or "",
        start_time=from_epoch(row["start_time"]) or dt.datetime.fromtimestamp(0, tz=dt.UTC),
        end_time=from_epoch(row["end_time"]),
        output_bytes=int(row["output_bytes"] or 0),
    )


def tool_use_from_row(row: sqlite3.Row) -> ToolUse:
    return ToolUse(
        id=row["id"],
        session_id=row["session_id"],
        timestamp=from_epoch(row["timestamp"]) or dt.datetime.fromtimestamp(0, tz=dt.UTC),
        tool_name=row["tool_name"],
        input=row["input"] or "",
        output=row["output"] or "",
    )
