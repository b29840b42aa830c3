"""
Files MCP Tool Server.

Reads and writes files inside its working directory only. The bridge
launches it with ServerParameters.allowed_directory as the cwd, which
becomes the sandbox root.

Launch:
    python -m mcp_bridge.servers.files

Test manually:
    echo '{"jsonrpc":"2.0","method":"tools/call","params":{"name":"write_file","arguments":{"path":"a.txt","content":"hi"}},"id":1}' | python -m mcp_bridge.servers.files
"""

import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from mcp_bridge.server import StdioToolServer, ToolError, ToolHandler, configure_server_logging


def _resolve(root: Path, relative: str) -> Path:
    """Resolve `relative` under `root`, refusing paths that escape it."""
    if not relative:
        raise ToolError("No path provided")
    target = (root / relative).resolve()
    if target != root and root not in target.parents:
        raise ToolError(f"Access denied - path outside allowed directory: {relative}")
    return target


class _FileTool(ToolHandler):
    def __init__(self, root: Path):
        self.root = root


class WriteFileTool(_FileTool):
    name = "write_file"
    description = "Create a new file or overwrite an existing file with the given content."
    parameters = {
        "path": {"type": "string", "description": "File path relative to the workspace"},
        "content": {"type": "string", "description": "Text to write"},
    }
    required = ["path", "content"]

    def handle(self, params: dict) -> str:
        target = _resolve(self.root, params.get("path", ""))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(params.get("content", ""), encoding="utf-8")
        return f"Successfully wrote to {params['path']}"


class ReadFileTool(_FileTool):
    name = "read_file"
    description = "Read the complete contents of a file."
    parameters = {
        "path": {"type": "string", "description": "File path relative to the workspace"},
    }
    required = ["path"]

    def handle(self, params: dict) -> str:
        target = _resolve(self.root, params.get("path", ""))
        if not target.is_file():
            raise ToolError(f"File not found: {params['path']}")
        return target.read_text(encoding="utf-8")


class ListDirectoryTool(_FileTool):
    name = "list_directory"
    description = "List files and directories at a path, marked [FILE] or [DIR]."
    parameters = {
        "path": {"type": "string", "description": "Directory relative to the workspace", "default": "."},
    }

    def handle(self, params: dict) -> str:
        target = _resolve(self.root, params.get("path") or ".")
        if not target.is_dir():
            raise ToolError(f"Not a directory: {params.get('path')}")
        lines = [
            f"[{'DIR' if entry.is_dir() else 'FILE'}] {entry.name}"
            for entry in sorted(target.iterdir(), key=lambda p: p.name)
        ]
        return "\n".join(lines)


def build_server(root: Path | None = None) -> StdioToolServer:
    root = (root or Path.cwd()).resolve()
    server = StdioToolServer("files")
    server.register(WriteFileTool(root))
    server.register(ReadFileTool(root))
    server.register(ListDirectoryTool(root))
    return server


if __name__ == "__main__":
    configure_server_logging()
    build_server().run()
