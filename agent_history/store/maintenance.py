from __future__ import annotations

import datetime as dt
import logging
import os
from typing import TYPE_CHECKING

from ..config import CLEANUP_TARGET, CLEANUP_THRESHOLD, DEFAULT_RETENTION_DAYS
from .types import DBStats
from .utils import from_epoch

if TYPE_CHECKING:
    from ._store import HistoryStore

logger = logging.getLogger(__name__)


def get_db_size(store: HistoryStore) -> int:
    return os.stat(store.db_path).st_size


def get_stats(store: HistoryStore) -> DBStats:
    size = get_db_size(store)
    with store.lock:
        session_count = store.conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
        tool_use_count = store.conn.execute("SELECT COUNT(*) FROM tool_uses").fetchone()[0]
        output_count = store.conn.execute("SELECT COUNT(*) FROM session_output").fetchone()[0]
        row = store.conn.execute(
            "SELECT MIN(start_time) AS oldest, MAX(start_time) AS newest FROM sessions"
        ).fetchone()
    return DBStats(
        file_size_bytes=size,
        file_size_mb=size / (1024 * 1024),
        session_count=int(session_count),
        tool_use_count=int(tool_use_count),
        output_count=int(output_count),
        oldest_session=from_epoch(row["oldest"]),
        newest_session=from_epoch(row["newest"]),
    )


def cleanup(store: HistoryStore, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
    """Delete sessions that started more than ``retention_days`` ago.

    Child rows go with them through the cascading foreign keys. A
    non-positive retention falls back to the default.
    """

    if retention_days <= 0:
        retention_days = DEFAULT_RETENTION_DAYS
    cutoff = dt.datetime.now(dt.UTC) - dt.timedelta(days=retention_days)
    with store.lock:
        cur = store.conn.execute(
            "DELETE FROM sessions WHERE start_time < ?", (int(cutoff.timestamp()),)
        )
        store.conn.commit()
    deleted = int(cur.rowcount or 0)
    if deleted:
        logger.info(
            "Removed expired sessions",
            extra={"deleted": deleted, "retention_days": retention_days},
        )
    return deleted


def enforce_size_limit(store: HistoryStore, max_bytes: int) -> int:
    """Evict the oldest sessions once the file grows past the cleanup threshold.

    Each deletion commits on its own and the file is re-measured after it.
    Freed pages stay in the file until ``vacuum`` runs.
    """

    if max_bytes <= 0:
        return 0
    current_size = get_db_size(store)
    if current_size <= int(max_bytes * CLEANUP_THRESHOLD):
        return 0
    target = int(max_bytes * CLEANUP_TARGET)
    deleted = 0
    while current_size > target:
        with store.lock:
            row = store.conn.execute(
                "SELECT id FROM sessions ORDER BY start_time ASC LIMIT 1"
            ).fetchone()
            if row is None:
                break
            store.conn.execute("DELETE FROM sessions WHERE id = ?", (row["id"],))
            store.conn.commit()
        deleted += 1
        current_size = get_db_size(store)
    logger.info(
        "Enforced history size limit",
        extra={"deleted": deleted, "size_bytes": current_size, "max_bytes": max_bytes},
    )
    return deleted


def vacuum(store: HistoryStore) -> None:
    with store.lock:
        store.conn.execute("VACUUM")


def rebuild_fts(store: HistoryStore) -> None:
    with store.lock:
        store.conn.execute("INSERT INTO tool_uses_fts(tool_uses_fts) VALUES('rebuild')")
        store.conn.commit()
