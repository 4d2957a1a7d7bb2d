from __future__ import annotations

from ._store import MAX_OUTPUT_LENGTH, TRUNCATION_MARKER, HistoryStore, new_id
from .types import DBStats, FileTouch, SearchResult, Session, ToolUse

__all__ = [
    "DBStats",
    "FileTouch",
    "HistoryStore",
    "MAX_OUTPUT_LENGTH",
    "SearchResult",
    "Session",
    "TRUNCATION_MARKER",
    "ToolUse",
    "new_id",
]
