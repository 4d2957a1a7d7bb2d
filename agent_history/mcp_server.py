from __future__ import annotations

import json
import logging
import sys
from typing import IO, Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    TextContent,
)

from . import __version__
from .mcp_tools import HistoryTools, ToolArgumentError
from .store import HistoryStore

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "agent-history"
MAX_LINE_BYTES = 10 * 1024 * 1024

NOTIFICATION_METHODS = {"initialized", "notifications/initialized"}

logger = logging.getLogger(__name__)


class JSONRPCError(Exception):
    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class HistoryMCPServer:
    """Line-delimited JSON-RPC 2.0 server over a pair of streams.

    Requests are handled one at a time, in arrival order. Each request
    with an ``id`` gets exactly one response line.
    """

    def __init__(
        self,
        store: HistoryStore,
        input_stream: IO[bytes] | None = None,
        output_stream: IO[str] | None = None,
    ):
        self.store = store
        self.tools = HistoryTools(store)
        self.input = input_stream if input_stream is not None else sys.stdin.buffer
        self.output = output_stream if output_stream is not None else sys.stdout
        self.running = False

    def run(self) -> None:
        self.running = True
        logger.info("MCP server started, waiting for requests")
        while self.running:
            line = self.input.readline(MAX_LINE_BYTES + 1)
            if not line:
                break
            if len(line) > MAX_LINE_BYTES and not line.endswith(b"\n"):
                self._discard_rest_of_line()
                self._send(self._error(None, PARSE_ERROR, "Parse error", "request line too long"))
                continue
            response = self.handle_line(line)
            if response is not None:
                self._send(response)
        logger.info("MCP server stopped")

    def _discard_rest_of_line(self) -> None:
        while True:
            chunk = self.input.readline(MAX_LINE_BYTES)
            if not chunk or chunk.endswith(b"\n"):
                return

    def handle_line(self, line: bytes | str) -> dict[str, Any] | None:
        text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
        if not text.strip():
            return None
        try:
            request = json.loads(text)
        except json.JSONDecodeError as exc:
            return self._error(None, PARSE_ERROR, "Parse error", str(exc))
        return self.handle_request(request)

    def handle_request(self, request: Any) -> dict[str, Any] | None:
        if not isinstance(request, dict):
            return self._error(None, INVALID_REQUEST, "Invalid request", "expected an object")
        request_id = request.get("id")
        method = request.get("method")
        if not isinstance(method, str) or not method:
            return self._error(request_id, INVALID_REQUEST, "Invalid request", "missing method")
        logger.debug("MCP request", extra={"method": method})

        if method in NOTIFICATION_METHODS:
            logger.info("MCP client initialized")
            return None
        is_notification = "id" not in request
        try:
            result = self._dispatch(method, request.get("params"))
        except JSONRPCError as exc:
            if is_notification:
                return None
            return self._error(request_id, exc.code, exc.message, exc.data)
        if is_notification:
            return None
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def _dispatch(self, method: str, params: Any) -> Any:
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            }
        if method == "tools/list":
            return {
                "tools": [
                    tool.model_dump(by_alias=True, exclude_none=True)
                    for tool in self.tools.list_tools()
                ]
            }
        if method == "tools/call":
            return self._call_tool(params)
        if method == "shutdown":
            self.running = False
            return None
        raise JSONRPCError(METHOD_NOT_FOUND, "Method not found", method)

    def _call_tool(self, params: Any) -> dict[str, Any]:
        if not isinstance(params, dict):
            raise JSONRPCError(INVALID_PARAMS, "Invalid params", "params must be an object")
        name = params.get("name")
        arguments = params.get("arguments") or {}
        if not isinstance(name, str) or not isinstance(arguments, dict):
            raise JSONRPCError(
                INVALID_PARAMS, "Invalid params", "expected {name: string, arguments: object}"
            )
        try:
            text = self.tools.call(name, arguments)
        except ToolArgumentError as exc:
            raise JSONRPCError(INVALID_PARAMS, "Invalid params", str(exc)) from exc
        except Exception as exc:
            logger.exception("MCP tool call failed", extra={"tool": name}, exc_info=exc)
            raise JSONRPCError(INTERNAL_ERROR, "Tool error", str(exc)) from exc
        content = TextContent(type="text", text=text)
        return {"content": [content.model_dump(by_alias=True, exclude_none=True)]}

    @staticmethod
    def _error(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
        error: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return {"jsonrpc": "2.0", "id": request_id, "error": error}

    def _send(self, response: dict[str, Any]) -> None:
        self.output.write(json.dumps(response, ensure_ascii=False) + "\n")
        self.output.flush()


def serve(store: HistoryStore) -> None:
    HistoryMCPServer(store).run()
