from __future__ import annotations

import datetime as dt
import threading
from collections.abc import Sequence
from pathlib import Path
from uuid import uuid4

from .. import db
from ..config import DEFAULT_RETENTION_DAYS
from . import maintenance as store_maintenance
from . import search as store_search
from .types import DBStats, FileTouch, SearchResult, Session, ToolUse
from .utils import session_from_row, to_epoch, tool_use_from_row

MAX_OUTPUT_LENGTH = 10000
SESSION_PREFIX_LENGTH = 8
TRUNCATION_MARKER = "\n... [truncated]"
DEFAULT_LIST_LIMIT = 20

_SESSION_COLUMNS = "id, tool_name, tool_command, project_dir, start_time, end_time, output_bytes"
_TOOL_USE_COLUMNS = "id, session_id, timestamp, tool_name, input, output"


def new_id() -> str:
    return str(uuid4())


def truncate_output(output: str) -> str:
    if len(output) > MAX_OUTPUT_LENGTH:
        return output[:MAX_OUTPUT_LENGTH] + TRUNCATION_MARKER
    return output


class HistoryStore:
    """Session, tool-use and transcript history in a single SQLite file.

    One connection is shared by every thread that touches the store, so
    all statements run under ``lock``.
    """

    def __init__(
        self,
        db_path: Path | str = db.DEFAULT_DB_PATH,
        *,
        check_same_thread: bool = False,
    ):
        self.db_path = Path(db_path).expanduser()
        self.lock = threading.RLock()
        self.conn = db.connect(self.db_path, check_same_thread=check_same_thread)
        db.initialize_schema(self.conn)

    def close(self) -> None:
        with self.lock:
            self.conn.close()

    def __enter__(self) -> HistoryStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Sessions

    def create_session(self, session: Session) -> Session:
        with self.lock:
            self.conn.execute(
                f"INSERT INTO sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    session.tool_name,
                    session.tool_command,
                    session.project_dir,
                    to_epoch(session.start_time),
                    to_epoch(session.end_time),
                    session.output_bytes,
                ),
            )
            self.conn.commit()
        return session

    def update_session(self, session: Session) -> None:
        with self.lock:
            self.conn.execute(
                "UPDATE sessions SET end_time = ?, output_bytes = ? WHERE id = ?",
                (to_epoch(session.end_time), session.output_bytes, session.id),
            )
            self.conn.commit()

    def get_session(self, session_id: str) -> Session | None:
        """Look up a session by full ID, falling back to a prefix of 8+ characters.

        The most recent session wins when several IDs share the prefix.
        """

        if not session_id:
            return None
        with self.lock:
            row = self.conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if row is None and len(session_id) >= SESSION_PREFIX_LENGTH:
                row = self.conn.execute(
                    f"""
                    SELECT {_SESSION_COLUMNS} FROM sessions
                    WHERE substr(id, 1, ?) = ?
                    ORDER BY start_time DESC
                    LIMIT 1
                    """,
                    (len(session_id), session_id),
                ).fetchone()
        if row is None:
            return None
        return session_from_row(row)

    def list_sessions(
        self, project_dir: str | None = None, limit: int = DEFAULT_LIST_LIMIT
    ) -> list[Session]:
        if limit <= 0:
            limit = DEFAULT_LIST_LIMIT
        with self.lock:
            if project_dir:
                rows = self.conn.execute(
                    f"""
                    SELECT {_SESSION_COLUMNS} FROM sessions
                    WHERE project_dir = ?
                    ORDER BY start_time DESC
                    LIMIT ?
                    """,
                    (project_dir, limit),
                ).fetchall()
            else:
                rows = self.conn.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM sessions ORDER BY start_time DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [session_from_row(row) for row in rows]

    def delete_session(self, session_id: str) -> Session | None:
        with self.lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            self.conn.execute("DELETE FROM sessions WHERE id = ?", (session.id,))
            self.conn.commit()
        return session

    def save_session_output(self, session_id: str, output: str) -> None:
        with self.lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO session_output (session_id, output) VALUES (?, ?)",
                (session_id, output),
            )
            self.conn.commit()

    def get_session_output(self, session_id: str) -> str:
        with self.lock:
            row = self.conn.execute(
                "SELECT output FROM session_output WHERE session_id = ?", (session_id,)
            ).fetchone()
        if row is None:
            return ""
        return row["output"]

    # Tool uses

    def create_tool_use(
        self,
        session_id: str,
        tool_name: str,
        input_text: str = "",
        output_text: str = "",
        *,
        tool_use_id: str | None = None,
        timestamp: dt.datetime | None = None,
    ) -> ToolUse:
        tool_use = ToolUse(
            id=tool_use_id or new_id(),
            session_id=session_id,
            timestamp=timestamp or dt.datetime.now(dt.UTC),
            tool_name=tool_name,
            input=input_text,
            output=truncate_output(output_text),
        )
        with self.lock:
            self.conn.execute(
                f"INSERT INTO tool_uses ({_TOOL_USE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    tool_use.id,
                    tool_use.session_id,
                    to_epoch(tool_use.timestamp),
                    tool_use.tool_name,
                    tool_use.input,
                    tool_use.output,
                ),
            )
            self.conn.commit()
        return tool_use

    def get_tool_uses_for_session(self, session_id: str) -> list[ToolUse]:
        with self.lock:
            rows = self.conn.execute(
                f"""
                SELECT {_TOOL_USE_COLUMNS} FROM tool_uses
                WHERE session_id = ?
                ORDER BY timestamp ASC, rowid ASC
                """,
                (session_id,),
            ).fetchall()
        return [tool_use_from_row(row) for row in rows]

    def create_file_touch(self, tool_use_id: str, file_path: str) -> FileTouch:
        with self.lock:
            cur = self.conn.execute(
                "INSERT INTO file_touches (tool_use_id, file_path) VALUES (?, ?)",
                (tool_use_id, file_path),
            )
            self.conn.commit()
        return FileTouch(id=int(cur.lastrowid or 0), tool_use_id=tool_use_id, file_path=file_path)

    # Queries

    def search(
        self,
        query: str,
        project_dir: str | None = None,
        limit: int = store_search.DEFAULT_SEARCH_LIMIT,
    ) -> list[SearchResult]:
        return store_search.search(self, query, project_dir=project_dir, limit=limit)

    def get_file_history(
        self,
        file_paths: Sequence[str],
        limit: int = store_search.DEFAULT_FILE_HISTORY_LIMIT,
    ) -> list[ToolUse]:
        return store_search.get_file_history(self, file_paths, limit=limit)

    # Maintenance

    def cleanup(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        return store_maintenance.cleanup(self, retention_days)

    def enforce_size_limit(self, max_bytes: int) -> int:
        return store_maintenance.enforce_size_limit(self, max_bytes)

    def vacuum(self) -> None:
        store_maintenance.vacuum(self)

    def rebuild_fts(self) -> None:
        store_maintenance.rebuild_fts(self)

    def get_db_size(self) -> int:
        return store_maintenance.get_db_size(self)

    def get_stats(self) -> DBStats:
        return store_maintenance.get_stats(self)
