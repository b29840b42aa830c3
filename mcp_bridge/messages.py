"""
JSON-RPC 2.0 message shapes and newline framing for MCP stdio.

One JSON object per line. Reads from a pipe arrive as arbitrary chunks,
so LineBuffer accumulates bytes and hands back complete lines only.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

JSONRPC_VERSION = "2.0"


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""
    method: str
    id: int
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            data["params"] = self.params
        data["id"] = self.id
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class JsonRpcNotification:
    """JSON-RPC 2.0 notification (no id, no reply)."""
    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            data["params"] = self.params
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class JsonRpcError:
    """The error object carried by a failed response."""
    message: str
    code: int | None = None
    data: Any = None

    @classmethod
    def from_dict(cls, raw: Any) -> "JsonRpcError":
        if isinstance(raw, dict):
            return cls(
                message=str(raw.get("message", "Unknown error")),
                code=raw.get("code"),
                data=raw.get("data"),
            )
        return cls(message=str(raw))


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response. Exactly one of result/error is meaningful."""
    id: int | str | None
    result: Any = None
    error: JsonRpcError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            error: dict[str, Any] = {"message": self.error.message}
            if self.error.code is not None:
                error["code"] = self.error.code
            if self.error.data is not None:
                error["data"] = self.error.data
            data["error"] = error
        else:
            data["result"] = self.result
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


Message = Union[JsonRpcRequest, JsonRpcNotification, JsonRpcResponse]


def parse_message(line: str | bytes) -> Message:
    """
    Decode one line into a tagged message.

    Raises:
        ValueError: if the line is not JSON, not an object, or fits no
            known message shape. json.JSONDecodeError is a ValueError.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    parsed = json.loads(line)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")

    method = parsed.get("method")
    has_id = "id" in parsed and parsed["id"] is not None

    if isinstance(method, str):
        params = parsed.get("params")
        if params is not None and not isinstance(params, dict):
            params = {"value": params}
        if has_id:
            return JsonRpcRequest(method=method, id=parsed["id"], params=params)
        return JsonRpcNotification(method=method, params=params)

    if "error" in parsed and parsed["error"] is not None:
        return JsonRpcResponse(id=parsed.get("id"), error=JsonRpcError.from_dict(parsed["error"]))
    if "result" in parsed:
        return JsonRpcResponse(id=parsed.get("id"), result=parsed["result"])

    raise ValueError("Message has neither method, result nor error")


class LineBuffer:
    """Accumulates raw bytes and yields complete newline-terminated lines."""

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Add a chunk; return every line it completed (blank lines dropped)."""
        self._buffer.extend(data)
        lines = []
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            line = bytes(self._buffer[:index]).rstrip(b"\r")
            del self._buffer[: index + 1]
            if line.strip():
                lines.append(line)
        return lines

    @property
    def pending(self) -> bytes:
        """Bytes of the incomplete trailing line, if any."""
        return bytes(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()
