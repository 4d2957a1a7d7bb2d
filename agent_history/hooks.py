from __future__ import annotations

import json
import logging
from typing import Any

from .store import HistoryStore, ToolUse

logger = logging.getLogger(__name__)

FILE_PATH_KEYS = ("file_path", "filePath", "path", "notebook_path")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def extract_file_paths(tool_input: Any) -> list[str]:
    """Collect the file paths a tool call names, in order, without duplicates."""

    if not isinstance(tool_input, dict):
        return []
    paths: list[str] = []
    candidates: list[Any] = [tool_input.get(key) for key in FILE_PATH_KEYS]
    edits = tool_input.get("edits")
    if isinstance(edits, list):
        candidates.extend(edit.get("file_path") for edit in edits if isinstance(edit, dict))
    for candidate in candidates:
        if isinstance(candidate, str) and candidate and candidate not in paths:
            paths.append(candidate)
    return paths


def record_post_tool_use(store: HistoryStore, payload: Any, cwd: str) -> ToolUse | None:
    """Store a post-tool-use hook payload against the latest session for ``cwd``.

    Problems are logged and reported as ``None`` so the calling agent is
    never interrupted.
    """

    if not isinstance(payload, dict):
        logger.warning("hook payload is not an object")
        return None
    tool_name = payload.get("tool_name")
    if not isinstance(tool_name, str) or not tool_name:
        logger.warning("hook payload missing tool_name")
        return None
    sessions = store.list_sessions(cwd, 1)
    if not sessions:
        logger.info("no recorded session for hook", extra={"cwd": cwd})
        return None

    tool_input = payload.get("tool_input")
    result = payload.get("tool_result")
    if result is None:
        result = payload.get("tool_response")
    tool_use = store.create_tool_use(
        sessions[0].id,
        tool_name,
        _as_text(tool_input),
        _as_text(result),
    )
    for path in extract_file_paths(tool_input):
        store.create_file_touch(tool_use.id, path)
    logger.info(
        "Recorded tool use from hook",
        extra={"tool_name": tool_name, "session_id": sessions[0].id[:8]},
    )
    return tool_use
