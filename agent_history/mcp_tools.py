from __future__ import annotations

import datetime as dt
from typing import Any

from mcp.types import Tool

from .store import HistoryStore

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SESSION_LIMIT = 20
DEFAULT_FILE_HISTORY_LIMIT = 50


class ToolArgumentError(ValueError):
    pass


class UnknownToolError(ToolArgumentError):
    pass


TOOLS: list[Tool] = [
    Tool(
        name="search_history",
        description=(
            "Search past LLM sessions and tool uses for relevant context. Use this to find "
            "previous discussions, decisions, or work done on specific topics or files."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search term to find in tool inputs and outputs",
                },
                "project": {
                    "type": "string",
                    "description": "Optional: filter by project directory path",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of results (default: 10)",
                },
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="list_sessions",
        description=(
            "List recent LLM sessions. Shows when sessions occurred, which tool was used, "
            "and the project directory."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project": {
                    "type": "string",
                    "description": "Optional: filter by project directory path",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of sessions to return (default: 20)",
                },
            },
            "required": [],
        },
    ),
    Tool(
        name="get_session",
        description=(
            "Get detailed information about a specific session, including all tool uses "
            "within that session."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "session_id": {
                    "type": "string",
                    "description": "The session ID to retrieve",
                },
            },
            "required": ["session_id"],
        },
    ),
    Tool(
        name="get_file_history",
        description=(
            "Get history of tool uses that touched specific files. Useful for understanding "
            "what changes were made to files and when."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "files": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of file paths to search for",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of results (default: 50)",
                },
            },
            "required": ["files"],
        },
    ),
]


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def format_time(value: dt.datetime, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    return value.astimezone().strftime(fmt)


def format_duration(start: dt.datetime, end: dt.datetime) -> str:
    seconds = max(int(round((end - start).total_seconds())), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def _int_arg(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def _str_arg(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    return value if isinstance(value, str) else ""


class HistoryTools:
    """The query tools exposed over the protocol server, rendered as markdown text."""

    def __init__(self, store: HistoryStore):
        self.store = store
        self._handlers = {
            "search_history": self.search_history,
            "list_sessions": self.list_sessions,
            "get_session": self.get_session,
            "get_file_history": self.get_file_history,
        }

    def list_tools(self) -> list[Tool]:
        return list(TOOLS)

    def call(self, name: str, arguments: dict[str, Any] | None) -> str:
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(f"unknown tool: {name}")
        return handler(arguments or {})

    def search_history(self, args: dict[str, Any]) -> str:
        query = _str_arg(args, "query")
        if not query:
            raise ToolArgumentError("query is required")
        project = _str_arg(args, "project") or None
        limit = _int_arg(args, "limit", DEFAULT_SEARCH_LIMIT)
        results = self.store.search(query, project_dir=project, limit=limit)
        if not results:
            return f"No results found for query: {query}"
        lines = [f"Found {len(results)} results for '{query}':", ""]
        for index, result in enumerate(results, start=1):
            tool_use = result.tool_use
            lines.append(f"## Result {index}")
            lines.append(f"- **Tool**: {tool_use.tool_name}")
            lines.append(f"- **Time**: {format_time(tool_use.timestamp)}")
            lines.append(f"- **Session**: {result.session_id}")
            lines.append(f"- **Input**: {truncate(tool_use.input, 200)}")
            if result.snippet:
                lines.append(f"- **Snippet**: {result.snippet}")
            lines.append("")
        return "\n".join(lines) + "\n"

    def list_sessions(self, args: dict[str, Any]) -> str:
        project = _str_arg(args, "project") or None
        limit = _int_arg(args, "limit", DEFAULT_SESSION_LIMIT)
        sessions = self.store.list_sessions(project, limit)
        if not sessions:
            return "No sessions found."
        lines = [f"Found {len(sessions)} sessions:", ""]
        for index, session in enumerate(sessions, start=1):
            duration = ""
            if session.end_time is not None:
                duration = f" (duration: {format_duration(session.start_time, session.end_time)})"
            lines.append(f"## Session {index}: {session.id[:8]}")
            lines.append(f"- **Tool**: {session.tool_name}")
            lines.append(f"- **Started**: {format_time(session.start_time)}{duration}")
            lines.append(f"- **Project**: {session.project_dir}")
            lines.append(f"- **Output**: {session.output_bytes} bytes")
            lines.append("")
        return "\n".join(lines) + "\n"

    def get_session(self, args: dict[str, Any]) -> str:
        session_id = _str_arg(args, "session_id")
        if not session_id:
            raise ToolArgumentError("session_id is required")
        session = self.store.get_session(session_id)
        if session is None:
            raise ToolArgumentError(f"session not found: {session_id}")
        tool_uses = self.store.get_tool_uses_for_session(session.id)

        lines = [f"# Session {session.id}", ""]
        lines.append(f"- **Tool**: {session.tool_name}")
        lines.append(f"- **Command**: {session.tool_command}")
        lines.append(f"- **Project**: {session.project_dir}")
        lines.append(f"- **Started**: {format_time(session.start_time)}")
        if session.end_time is not None:
            lines.append(f"- **Ended**: {format_time(session.end_time)}")
            lines.append(
                f"- **Duration**: {format_duration(session.start_time, session.end_time)}"
            )
        lines.append(f"- **Output**: {session.output_bytes} bytes")
        lines.append("")
        if not tool_uses:
            lines.append("No tool uses recorded for this session.")
            return "\n".join(lines) + "\n"
        lines.append(f"## Tool Uses ({len(tool_uses)})")
        lines.append("")
        for index, tool_use in enumerate(tool_uses, start=1):
            lines.append(f"### {index}. {tool_use.tool_name}")
            lines.append(f"- **Time**: {format_time(tool_use.timestamp, '%H:%M:%S')}")
            lines.append(f"- **Input**: {truncate(tool_use.input, 500)}")
            if tool_use.output:
                lines.append("- **Output** (first 500 chars):")
                lines.append(f"```\n{truncate(tool_use.output, 500)}\n```")
            lines.append("")
        return "\n".join(lines) + "\n"

    def get_file_history(self, args: dict[str, Any]) -> str:
        if "files" not in args:
            raise ToolArgumentError("files is required")
        raw_files = args["files"]
        if not isinstance(raw_files, list):
            raise ToolArgumentError("files must be an array of strings")
        files = [item for item in raw_files if isinstance(item, str) and item]
        if not files:
            raise ToolArgumentError("files array is empty")
        limit = _int_arg(args, "limit", DEFAULT_FILE_HISTORY_LIMIT)
        tool_uses = self.store.get_file_history(files, limit)
        file_list = ", ".join(files)
        if not tool_uses:
            return f"No history found for files: {file_list}"
        lines = ["# File History", "", f"Files: {file_list}", ""]
        lines.append(f"Found {len(tool_uses)} tool uses:")
        lines.append("")
        for index, tool_use in enumerate(tool_uses, start=1):
            lines.append(f"## {index}. {tool_use.tool_name}")
            lines.append(f"- **Time**: {format_time(tool_use.timestamp)}")
            lines.append(f"- **Session**: {tool_use.session_id[:8]}")
            lines.append(f"- **Input**: {truncate(tool_use.input, 200)}")
            if tool_use.output:
                lines.append("- **Output** (first 300 chars):")
                lines.append(f"```\n{truncate(tool_use.output, 300)}\n```")
            lines.append("")
        return "\n".join(lines) + "\n"
