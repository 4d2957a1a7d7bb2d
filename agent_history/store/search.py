from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from .types import SearchResult, ToolUse
from .utils import tool_use_from_row

if TYPE_CHECKING:
    from ._store import HistoryStore

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_FILE_HISTORY_LIMIT = 50

_FTS_KEYWORDS = {"or", "and", "not", "near"}
_WORD_RE = re.compile(r"\w")


def _expand_query(query: str) -> str:
    """Turn free text into an FTS5 query of quoted terms joined with OR.

    Quoting keeps FTS syntax characters literal; the tokenizer still splits
    each term, so `foo.py` matches the adjacent words `foo py`.
    """

    terms = []
    for token in query.split():
        if token.lower() in _FTS_KEYWORDS or not _WORD_RE.search(token):
            continue
        terms.append('"' + token.replace('"', '""') + '"')
    return " OR ".join(terms)


def search(
    store: HistoryStore,
    query: str,
    project_dir: str | None = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[SearchResult]:
    if limit <= 0:
        limit = DEFAULT_SEARCH_LIMIT
    expanded_query = _expand_query(query)
    if not expanded_query:
        return []
    params: list[Any] = [expanded_query]
    join_sessions = ""
    where_clauses = ["tool_uses_fts MATCH ?"]
    if project_dir:
        join_sessions = "JOIN sessions s ON t.session_id = s.id"
        where_clauses.append("s.project_dir = ?")
        params.append(project_dir)
    params.append(limit)
    sql = f"""
        SELECT t.id, t.session_id, t.timestamp, t.tool_name, t.input, t.output,
               snippet(tool_uses_fts, -1, '<b>', '</b>', '...', 32) AS snippet,
               bm25(tool_uses_fts) AS score
        FROM tool_uses_fts
        JOIN tool_uses t ON t.rowid = tool_uses_fts.rowid
        {join_sessions}
        WHERE {" AND ".join(where_clauses)}
        ORDER BY score ASC
        LIMIT ?
    """
    with store.lock:
        rows = store.conn.execute(sql, params).fetchall()
    return [
        SearchResult(
            tool_use=tool_use_from_row(row),
            session_id=row["session_id"],
            snippet=row["snippet"] or "",
            score=float(row["score"]),
        )
        for row in rows
    ]


def get_file_history(
    store: HistoryStore,
    file_paths: Sequence[str],
    limit: int = DEFAULT_FILE_HISTORY_LIMIT,
) -> list[ToolUse]:
    paths = [path for path in file_paths if path]
    if not paths:
        return []
    if limit <= 0:
        limit = DEFAULT_FILE_HISTORY_LIMIT
    placeholders = ", ".join("?" for _ in paths)
    sql = f"""
        SELECT DISTINCT t.id, t.session_id, t.timestamp, t.tool_name, t.input, t.output
        FROM tool_uses t
        JOIN file_touches f ON t.id = f.tool_use_id
        WHERE f.file_path IN ({placeholders})
        ORDER BY t.timestamp DESC
        LIMIT ?
    """
    with store.lock:
        rows = store.conn.execute(sql, [*paths, limit]).fetchall()
    return [tool_use_from_row(row) for row in rows]
