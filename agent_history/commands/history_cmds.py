from __future__ import annotations

import sys

import typer
from rich import print
from rich.markup import escape

from agent_history.config import AgentHistoryConfig
from agent_history.mcp_tools import format_duration, truncate

from .common import format_bytes, format_timestamp


def sessions_cmd(
    *, store_from_path, db_path: str | None, project: str | None, limit: int
) -> None:
    """List recent sessions, newest first."""

    store = store_from_path(db_path)
    try:
        sessions = store.list_sessions(project, limit)
    finally:
        store.close()
    if not sessions:
        print("No sessions found.")
        return
    for session in sessions:
        duration = "running"
        if session.end_time is not None:
            duration = format_duration(session.start_time, session.end_time)
        print(
            f"[bold]{session.id[:8]}[/bold] {format_timestamp(session.start_time)} "
            f"{escape(session.tool_name)} ({duration}, {format_bytes(session.output_bytes)})"
        )
        if session.project_dir:
            print(f"  {escape(session.project_dir)}")


def session_cmd(*, store_from_path, db_path: str | None, session_id: str) -> None:
    store = store_from_path(db_path)
    try:
        session = store.get_session(session_id)
        if session is None:
            print(f"[red]Session not found: {escape(session_id)}[/red]")
            raise typer.Exit(code=1)
        tool_uses = store.get_tool_uses_for_session(session.id)
    finally:
        store.close()

    print(f"[bold]Session {session.id}[/bold]")
    print(f"- Tool: {escape(session.tool_name)}")
    print(f"- Command: {escape(session.tool_command)}")
    print(f"- Project: {escape(session.project_dir)}")
    print(f"- Started: {format_timestamp(session.start_time)}")
    if session.end_time is not None:
        print(f"- Ended: {format_timestamp(session.end_time)}")
        print(f"- Duration: {format_duration(session.start_time, session.end_time)}")
    print(f"- Output: {format_bytes(session.output_bytes)}")
    if not tool_uses:
        print("\nNo tool uses recorded for this session.")
        return
    print(f"\n[bold]Tool uses ({len(tool_uses)})[/bold]")
    for tool_use in tool_uses:
        print(
            f"- {tool_use.timestamp.astimezone():%H:%M:%S} {escape(tool_use.tool_name)}: "
            f"{escape(truncate(tool_use.input, 120))}"
        )


def output_cmd(*, store_from_path, db_path: str | None, session_id: str) -> None:
    """Write the stored transcript to stdout, unformatted."""

    store = store_from_path(db_path)
    try:
        session = store.get_session(session_id)
        if session is None:
            print(f"[red]Session not found: {escape(session_id)}[/red]")
            raise typer.Exit(code=1)
        output = store.get_session_output(session.id)
    finally:
        store.close()
    sys.stdout.write(output)
    sys.stdout.flush()


def delete_cmd(*, store_from_path, db_path: str | None, session_id: str) -> None:
    store = store_from_path(db_path)
    try:
        deleted = store.delete_session(session_id)
    finally:
        store.close()
    if deleted is None:
        print(f"[red]Session not found: {escape(session_id)}[/red]")
        raise typer.Exit(code=1)
    print(f"Deleted session: {deleted.id}")


def search_cmd(
    *,
    store_from_path,
    db_path: str | None,
    query: str,
    project: str | None,
    limit: int,
) -> None:
    """Full-text search over recorded tool uses."""

    store = store_from_path(db_path)
    try:
        results = store.search(query, project_dir=project, limit=limit)
    finally:
        store.close()
    if not results:
        print(f"No results found for query: {escape(query)}")
        return
    for result in results:
        tool_use = result.tool_use
        label = escape(f"[{result.session_id[:8]}]")
        print(
            f"[bold]{label}[/bold] {format_timestamp(tool_use.timestamp)} "
            f"{escape(tool_use.tool_name)} score={result.score:.2f}"
        )
        print(f"  {escape(result.snippet or truncate(tool_use.input, 200))}")


def stats_cmd(*, store_from_path, db_path: str | None, config: AgentHistoryConfig) -> None:
    store = store_from_path(db_path)
    try:
        stats = store.get_stats()
        path = store.db_path
    finally:
        store.close()

    print("[bold]Database[/bold]")
    print(f"- Path: {path}")
    print(f"- Size: {stats.file_size_mb:.2f} MB ({stats.file_size_bytes} bytes)")
    print(f"- Sessions: {stats.session_count}")
    print(f"- Tool uses: {stats.tool_use_count}")
    print(f"- Output records: {stats.output_count}")
    if stats.oldest_session is not None:
        print(f"- Oldest session: {format_timestamp(stats.oldest_session)}")
    if stats.newest_session is not None:
        print(f"- Newest session: {format_timestamp(stats.newest_session)}")
    max_bytes = config.max_size_bytes()
    if max_bytes:
        used = stats.file_size_bytes / max_bytes * 100
        print(f"- Size limit: {config.max_size_mb:g} MB ({used:.1f}% used)")
    else:
        print("- Size limit: unlimited")


def compact_cmd(*, store_from_path, db_path: str | None) -> None:
    """Reclaim free pages with VACUUM."""

    store = store_from_path(db_path)
    try:
        before = store.get_db_size()
        store.vacuum()
        after = store.get_db_size()
    finally:
        store.close()
    print(f"Compacted database: {format_bytes(before)} -> {format_bytes(after)}")


def cleanup_cmd(*, store_from_path, db_path: str | None, retention_days: int) -> None:
    store = store_from_path(db_path)
    try:
        deleted = store.cleanup(retention_days)
    finally:
        store.close()
    print(f"Deleted {deleted} sessions older than {retention_days} days")


def limit_cmd(*, store_from_path, db_path: str | None, max_size_mb: float) -> None:
    """Evict the oldest sessions until the database fits the size limit."""

    if max_size_mb <= 0:
        print("Size limit is unlimited; nothing to do")
        return
    store = store_from_path(db_path)
    try:
        deleted = store.enforce_size_limit(int(max_size_mb * 1024 * 1024))
        if deleted:
            store.vacuum()
        size = store.get_db_size()
    finally:
        store.close()
    print(f"Deleted {deleted} sessions; database is now {format_bytes(size)}")


def rebuild_fts_cmd(*, store_from_path, db_path: str | None) -> None:
    store = store_from_path(db_path)
    try:
        store.rebuild_fts()
    finally:
        store.close()
    print("Rebuilt full-text index")
