"""
MCP tool server base class.

A tool server is a standalone process that:
1. Reads JSON-RPC messages from stdin, one per line
2. Answers the initialize handshake and tool requests
3. Writes JSON-RPC responses to stdout
4. Logs to stderr (the bridge surfaces it as diagnostics)

To create a tool server:

    from mcp_bridge.server import StdioToolServer, ToolHandler

    class MyTool(ToolHandler):
        name = "my_tool"
        description = "Does something useful"
        parameters = {
            "input": {"type": "string", "description": "The input"},
        }
        required = ["input"]

        def handle(self, params: dict) -> str:
            return f"processed: {params['input']}"

    if __name__ == "__main__":
        server = StdioToolServer("my-server")
        server.register(MyTool())
        server.run()
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, TextIO

from mcp_bridge import __version__
from mcp_bridge.client import PROTOCOL_VERSION

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class RpcError(Exception):
    """A JSON-RPC level failure with an error code."""

    def __init__(self, code: int, message: str):
        self.code = code
        super().__init__(message)


class ToolError(Exception):
    """Raised by a handler to report a tool-level failure (isError result)."""


class ToolHandler(ABC):
    """
    Base class for a tool implementation.

    Subclasses define what a tool does. The server handles transport.
    """

    # Subclasses must set these
    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}
    required: list[str] = []

    @abstractmethod
    def handle(self, params: dict[str, Any]) -> Any:
        """
        Execute the tool with the given parameters.

        Returns:
            A string (sent as text content) or any JSON value (sent as
            JSON-encoded text content).

        Raises:
            ToolError: the tool ran but failed; reported with isError.
        """
        ...

    def get_schema(self) -> dict:
        """Return the tool schema for discovery."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": self.parameters,
                "required": list(self.required),
            },
        }


class StdioToolServer:
    """
    MCP tool server that communicates via stdin/stdout.

    Protocol:
    - One JSON-RPC message per line
    - Supports methods:
        - "initialize"   → protocol version, capabilities, server info
        - "tools/list"   → {"tools": [schema, ...]}
        - "tools/call"   → {"content": [...], "isError": bool}
        - "ping"         → {}
    - Notifications (no id) are accepted and never answered
    """

    def __init__(self, name: str = "mcp-bridge-tools", version: str = __version__):
        self.name = name
        self.version = version
        self._handlers: dict[str, ToolHandler] = {}
        self._stdout: TextIO | None = None

    def register(self, handler: ToolHandler) -> None:
        """Register a tool handler."""
        if not handler.name:
            raise ValueError(f"ToolHandler {handler.__class__.__name__} has no name")
        self._handlers[handler.name] = handler
        logger.info(f"Registered tool: {handler.name}")

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """
        Main loop: read requests, dispatch, write responses.

        This blocks until stdin is closed (parent process terminates).
        """
        stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        logger.info(f"Tool server {self.name} starting with {len(self._handlers)} tools: "
                    f"{list(self._handlers.keys())}")

        for line in stdin:
            line = line.strip()
            if not line:
                continue
            self.handle_line(line)

        logger.info(f"Tool server {self.name} stdin closed, exiting")

    def handle_line(self, line: str) -> None:
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            self._write_error(None, PARSE_ERROR, f"Parse error: {e}")
            return
        if not isinstance(request, dict):
            self._write_error(None, PARSE_ERROR, "Parse error: expected a JSON object")
            return

        request_id = request.get("id")
        method = request.get("method", "")
        params = request.get("params") or {}

        if request_id is None:
            logger.debug(f"Notification received: {method}")
            return

        try:
            result = self._dispatch(method, params)
        except RpcError as e:
            self._write_error(request_id, e.code, str(e))
        except Exception as e:
            logger.exception(f"Internal error handling {method}")
            self._write_error(request_id, INTERNAL_ERROR, str(e))
        else:
            self._write_result(request_id, result)

    def _dispatch(self, method: str, params: dict) -> Any:
        """Route a method call to the appropriate handler."""

        if method == "initialize":
            logger.info(f"Client connected: {params.get('clientInfo')}")
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": self.version},
            }

        if method == "ping":
            return {}

        if method == "tools/list":
            return {"tools": [h.get_schema() for h in self._handlers.values()]}

        if method == "tools/call":
            tool_name = params.get("name", "")
            tool_params = params.get("arguments") or {}

            handler = self._handlers.get(tool_name)
            if not handler:
                raise RpcError(
                    INVALID_PARAMS,
                    f"Unknown tool: '{tool_name}'. "
                    f"Available: {list(self._handlers.keys())}"
                )
            return self._call(handler, tool_params)

        raise RpcError(METHOD_NOT_FOUND, f"Unknown method: '{method}'")

    def _call(self, handler: ToolHandler, params: dict) -> dict:
        try:
            output = handler.handle(params)
        except ToolError as e:
            return {"content": [{"type": "text", "text": str(e)}], "isError": True}
        text = output if isinstance(output, str) else json.dumps(output)
        return {"content": [{"type": "text", "text": text}], "isError": False}

    def _write(self, message: dict) -> None:
        stdout = self._stdout or sys.stdout
        stdout.write(json.dumps(message) + "\n")
        stdout.flush()

    def _write_result(self, request_id: Any, result: Any) -> None:
        """Write a JSON-RPC success response to stdout."""
        self._write({"jsonrpc": "2.0", "id": request_id, "result": result})

    def _write_error(self, request_id: Any, code: int, message: str) -> None:
        """Write a JSON-RPC error response to stdout."""
        self._write({
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {"code": code, "message": message},
        })


def configure_server_logging(level: int = logging.INFO) -> None:
    """Send server logs to stderr so stdout stays protocol-only."""
    logging.basicConfig(stream=sys.stderr, level=level, format="%(levelname)s: %(message)s")
