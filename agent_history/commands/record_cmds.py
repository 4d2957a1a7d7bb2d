from __future__ import annotations

import json
import logging
import os
import shlex
import sys

import typer
from rich import print

from agent_history.capture import run_command_with_capture, tool_name_from_command
from agent_history.config import AgentHistoryConfig
from agent_history.git_info import find_project_root
from agent_history.hooks import record_post_tool_use
from agent_history.mcp_server import serve
from agent_history.recorder import Recorder

logger = logging.getLogger(__name__)


def _discard(_chunk: bytes) -> None:
    return None


def run_cmd(
    *,
    store_from_path,
    db_path: str | None,
    config: AgentHistoryConfig,
    command: list[str],
    quiet: bool,
) -> None:
    """Run an AI tool under a pseudo-terminal and record the session."""

    if not command:
        print("[red]Nothing to run: pass the tool command after 'run'[/red]")
        raise typer.Exit(code=2)
    cwd = os.getcwd()
    if not config.enabled:
        logger.info("history recording disabled, running without capture")
        raise typer.Exit(code=run_command_with_capture(command, _discard, cwd=cwd))

    project_dir = str(find_project_root(cwd))
    store = store_from_path(db_path)
    try:
        recorder = Recorder.from_config(
            store,
            config,
            tool_name_from_command(command),
            shlex.join(command),
            project_dir,
        )
        try:
            exit_code = run_command_with_capture(command, recorder.write, cwd=cwd)
        finally:
            session = recorder.stop()
    finally:
        store.close()
    if not quiet:
        typer.echo(
            f"agent-history: recorded session {session.id[:8]} ({session.output_bytes} bytes)",
            err=True,
        )
    raise typer.Exit(code=exit_code)


def hook_post_tool_use_cmd(*, store_from_path, db_path: str | None, raw: str) -> None:
    """Store one post-tool-use payload. Always exits 0 so the agent keeps going."""

    try:
        payload = json.loads(raw) if raw.strip() else None
    except json.JSONDecodeError as exc:
        logger.warning("hook payload is not valid JSON", exc_info=exc)
        return
    if payload is None:
        logger.warning("empty hook payload")
        return
    cwd = os.getcwd()
    if isinstance(payload, dict) and isinstance(payload.get("cwd"), str) and payload["cwd"]:
        cwd = payload["cwd"]
    try:
        store = store_from_path(db_path)
    except Exception as exc:
        logger.warning("history store unavailable for hook", exc_info=exc)
        return
    try:
        record_post_tool_use(store, payload, str(find_project_root(cwd)))
    except Exception as exc:
        logger.warning("failed to record tool use from hook", exc_info=exc)
    finally:
        store.close()


def mcp_serve_cmd(*, store_from_path, db_path: str | None, config: AgentHistoryConfig) -> None:
    """Serve history queries over stdio until the client disconnects."""

    if not config.mcp_enabled:
        typer.echo("agent-history: MCP server is disabled in config", err=True)
        raise typer.Exit(code=1)
    store = store_from_path(db_path)
    try:
        serve(store)
    finally:
        store.close()
    sys.stdout.flush()
