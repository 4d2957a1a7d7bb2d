from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field


@dataclass
class Session:
    id: str
    tool_name: str
    tool_command: str = ""
    project_dir: str = ""
    start_time: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.UTC))
    end_time: dt.datetime | None = None
    output_bytes: int = 0

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass
class ToolUse:
    id: str
    session_id: str
    timestamp: dt.datetime
    tool_name: str
    input: str = ""
    output: str = ""


@dataclass
class FileTouch:
    id: int
    tool_use_id: str
    file_path: str


@dataclass
class SearchResult:
    tool_use: ToolUse
    session_id: str
    snippet: str
    score: float
    kind: str = "tool_use"


@dataclass
class DBStats:
    file_size_bytes: int = 0
    file_size_mb: float = 0.0
    session_count: int = 0
    tool_use_count: int = 0
    output_count: int = 0
    oldest_session: dt.datetime | None = None
    newest_session: dt.datetime | None = None
