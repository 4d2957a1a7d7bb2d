from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import typer
from rich import print

from . import __version__
from .commands import config_cmds, gem_cmds, history_cmds, record_cmds
from .commands.common import load_config_or_exit, store_from_path
from .config import DEFAULT_RETENTION_DAYS
from .gems import GemStore

app = typer.Typer(help="agent-history: record AI coding sessions and mine them for insights")
history_app = typer.Typer(help="Browse and maintain recorded session history")
gem_app = typer.Typer(help="Review insights (gems) extracted from sessions")
mcp_app = typer.Typer(help="Query server for external agents")
hook_app = typer.Typer(help="Agent hook entry points")
config_app = typer.Typer(help="Inspect the agent-history config")
app.add_typer(history_app, name="history")
app.add_typer(gem_app, name="gem")
app.add_typer(mcp_app, name="mcp")
app.add_typer(hook_app, name="hook")
app.add_typer(config_app, name="config")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.environ.get("AGENT_HISTORY_LOG_LEVEL", "WARNING")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
) -> None:
    _configure_logging(verbose)


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True}
)
def run(
    ctx: typer.Context,
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    quiet: bool = typer.Option(False, help="Do not report the recorded session"),
) -> None:
    """Run an AI tool (e.g. `agent-history run -- claude`) and record the session."""

    record_cmds.run_cmd(
        store_from_path=store_from_path,
        db_path=db_path,
        config=load_config_or_exit(),
        command=list(ctx.args),
        quiet=quiet,
    )


@mcp_app.command("serve")
def mcp_serve(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Serve history over line-delimited JSON-RPC on stdin/stdout."""

    record_cmds.mcp_serve_cmd(
        store_from_path=store_from_path, db_path=db_path, config=load_config_or_exit()
    )


@hook_app.command("post-tool-use")
def hook_post_tool_use(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Record a tool use from a hook payload on stdin."""

    record_cmds.hook_post_tool_use_cmd(
        store_from_path=store_from_path, db_path=db_path, raw=sys.stdin.read()
    )


@history_app.command("sessions")
def history_sessions(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    project: str = typer.Option(None, help="Only sessions for this project directory"),
    limit: int = typer.Option(20, help="Number of sessions to show"),
) -> None:
    """List recent sessions."""

    history_cmds.sessions_cmd(
        store_from_path=store_from_path, db_path=db_path, project=project, limit=limit
    )


@history_app.command("session")
def history_session(
    session_id: str = typer.Argument(..., help="Session id or 8-character prefix"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show a session and its tool uses."""

    history_cmds.session_cmd(
        store_from_path=store_from_path, db_path=db_path, session_id=session_id
    )


@history_app.command("output")
def history_output(
    session_id: str = typer.Argument(..., help="Session id or 8-character prefix"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Print the recorded transcript of a session."""

    history_cmds.output_cmd(
        store_from_path=store_from_path, db_path=db_path, session_id=session_id
    )


@history_app.command("delete")
def history_delete(
    session_id: str = typer.Argument(..., help="Session id or 8-character prefix"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Delete a session with its tool uses and transcript."""

    history_cmds.delete_cmd(
        store_from_path=store_from_path, db_path=db_path, session_id=session_id
    )


@history_app.command("search")
def history_search(
    query: str = typer.Argument(..., help="Search terms"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    project: str = typer.Option(None, help="Only tool uses for this project directory"),
    limit: int = typer.Option(10, help="Max results"),
) -> None:
    """Search recorded tool uses."""

    history_cmds.search_cmd(
        store_from_path=store_from_path,
        db_path=db_path,
        query=query,
        project=project,
        limit=limit,
    )


@history_app.command("stats")
def history_stats(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show database size and row counts."""

    history_cmds.stats_cmd(
        store_from_path=store_from_path, db_path=db_path, config=load_config_or_exit()
    )


@history_app.command("compact")
def history_compact(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Vacuum the database file."""

    history_cmds.compact_cmd(store_from_path=store_from_path, db_path=db_path)


@history_app.command("cleanup")
def history_cleanup(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    days: int = typer.Option(None, help="Retention in days (defaults to config)"),
) -> None:
    """Delete sessions older than the retention window."""

    retention = days if days is not None else load_config_or_exit().retention_days
    history_cmds.cleanup_cmd(
        store_from_path=store_from_path,
        db_path=db_path,
        retention_days=retention if retention > 0 else DEFAULT_RETENTION_DAYS,
    )


@history_app.command("limit")
def history_limit(
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    max_size_mb: float = typer.Option(None, help="Size limit in MB (defaults to config)"),
) -> None:
    """Evict the oldest sessions until the database fits its size limit."""

    limit = max_size_mb if max_size_mb is not None else load_config_or_exit().max_size_mb
    history_cmds.limit_cmd(store_from_path=store_from_path, db_path=db_path, max_size_mb=limit)


@history_app.command("rebuild-fts")
def history_rebuild_fts(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Rebuild the full-text search index from stored tool uses."""

    history_cmds.rebuild_fts_cmd(store_from_path=store_from_path, db_path=db_path)


def _gem_store(project_dir: str | None) -> GemStore:
    return GemStore.from_cwd(project_dir)


@gem_app.command("list")
def gem_list(project_dir: str = typer.Option(None, help="Project directory")) -> None:
    """List committed gems."""

    gem_cmds.list_cmd(gem_store=_gem_store(project_dir))


@gem_app.command("pending")
def gem_pending(project_dir: str = typer.Option(None, help="Project directory")) -> None:
    """List gems awaiting review."""

    gem_cmds.pending_cmd(gem_store=_gem_store(project_dir))


@gem_app.command("show")
def gem_show(
    gem_id: str = typer.Argument(..., help="Gem id or 8-character prefix"),
    project_dir: str = typer.Option(None, help="Project directory"),
) -> None:
    """Show gem details."""

    gem_cmds.show_cmd(gem_store=_gem_store(project_dir), gem_id=gem_id)


@gem_app.command("accept")
def gem_accept(
    gem_id: str = typer.Argument(..., help="Pending gem id or 8-character prefix"),
    project_dir: str = typer.Option(None, help="Project directory"),
) -> None:
    """Move a pending gem into the committed set."""

    gem_cmds.accept_cmd(gem_store=_gem_store(project_dir), gem_id=gem_id)


@gem_app.command("reject")
def gem_reject(
    gem_id: str = typer.Argument(..., help="Pending gem id or 8-character prefix"),
    project_dir: str = typer.Option(None, help="Project directory"),
) -> None:
    """Delete a pending gem."""

    gem_cmds.reject_cmd(gem_store=_gem_store(project_dir), gem_id=gem_id)


@gem_app.command("search")
def gem_search(
    query: str = typer.Argument(..., help="Text to look for"),
    project_dir: str = typer.Option(None, help="Project directory"),
) -> None:
    """Search committed gems."""

    gem_cmds.search_cmd(gem_store=_gem_store(project_dir), query=query)


@gem_app.command("add")
def gem_add(
    gem_type: str = typer.Option(
        "context", "--type", help="decision, discovery, gotcha, pattern, issue or context"
    ),
    title: str = typer.Option(..., prompt=True, help="Short title"),
    summary: str = typer.Option(..., prompt=True, help="One-line summary"),
    tags: list[str] = typer.Option(None, "--tag", help="Repeat for multiple tags"),
    files: list[str] = typer.Option(None, "--file", help="Repeat for multiple files"),
    notes: str = typer.Option(None, help="Free-form notes"),
    project_dir: str = typer.Option(None, help="Project directory"),
) -> None:
    """Add a gem by hand."""

    gem_cmds.add_cmd(
        gem_store=_gem_store(project_dir),
        gem_type=gem_type,
        title=title,
        summary=summary,
        tags=tags,
        files=files,
        notes=notes,
    )


@config_app.command("validate")
def config_validate(path: Path = typer.Option(None, help="Config file to check")) -> None:
    """Check the config file and list every problem."""

    config_cmds.validate_cmd(path=path)


@config_app.command("show")
def config_show(
    path: Path = typer.Option(None, help="Config file to read"),
    show_secrets: bool = typer.Option(False, help="Print API keys unmasked"),
) -> None:
    """Print the effective config (file plus environment overrides)."""

    config_cmds.show_cmd(path=path, show_secrets=show_secrets)


@config_app.command("check")
def config_check(path: Path = typer.Option(None, help="Config file to read")) -> None:
    """Check that the configured summarizer can be reached."""

    config_cmds.check_cmd(path=path)


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)
