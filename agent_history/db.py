from __future__ import annotations

import sqlite3
from pathlib import Path

from .config import AgentHistoryConfig

DEFAULT_DB_PATH = Path(AgentHistoryConfig.db_path)


def connect(db_path: Path | str, check_same_thread: bool = True) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            tool_name TEXT NOT NULL,
            tool_command TEXT NOT NULL DEFAULT '',
            project_dir TEXT NOT NULL DEFAULT '',
            start_time INTEGER NOT NULL,
            end_time INTEGER,
            output_bytes INTEGER NOT NULL DEFAULT 0
        );
        CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_dir);
        CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start_time);
        CREATE INDEX IF NOT EXISTS idx_sessions_tool ON sessions(tool_name);

        CREATE TABLE IF NOT EXISTS tool_uses (
            id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
            timestamp INTEGER NOT NULL,
            tool_name TEXT NOT NULL,
            input TEXT NOT NULL DEFAULT '',
            output TEXT NOT NULL DEFAULT ''
        );
        CREATE INDEX IF NOT EXISTS idx_tool_uses_session ON tool_uses(session_id);
        CREATE INDEX IF NOT EXISTS idx_tool_uses_timestamp ON tool_uses(timestamp);

        CREATE TABLE IF NOT EXISTS file_touches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            tool_use_id TEXT NOT NULL REFERENCES tool_uses(id) ON DELETE CASCADE,
            file_path TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_file_touches_path ON file_touches(file_path);
        CREATE INDEX IF NOT EXISTS idx_file_touches_tool_use ON file_touches(tool_use_id);

        CREATE TABLE IF NOT EXISTS session_output (
            session_id TEXT PRIMARY KEY REFERENCES sessions(id) ON DELETE CASCADE,
            output TEXT NOT NULL DEFAULT ''
        );

        CREATE VIRTUAL TABLE IF NOT EXISTS tool_uses_fts USING fts5(
            input, output,
            content='tool_uses',
            content_rowid='rowid'
        );

        CREATE TRIGGER IF NOT EXISTS tool_uses_ai AFTER INSERT ON tool_uses BEGIN
            INSERT INTO tool_uses_fts(rowid, input, output)
            VALUES (new.rowid, new.input, new.output);
        END;

        DROP TRIGGER IF EXISTS tool_uses_au;
        CREATE TRIGGER tool_uses_au AFTER UPDATE ON tool_uses BEGIN
            INSERT INTO tool_uses_fts(tool_uses_fts, rowid, input, output)
            VALUES('delete', old.rowid, old.input, old.output);
            INSERT INTO tool_uses_fts(rowid, input, output)
            VALUES (new.rowid, new.input, new.output);
        END;

        DROP TRIGGER IF EXISTS tool_uses_ad;
        CREATE TRIGGER tool_uses_ad AFTER DELETE ON tool_uses BEGIN
            INSERT INTO tool_uses_fts(tool_uses_fts, rowid, input, output)
            VALUES('delete', old.rowid, old.input, old.output);
        END;
        """
    )
    conn.commit()
