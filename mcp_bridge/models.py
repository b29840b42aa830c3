"""
Data types shared by the directory, the orchestration loop and the
model client.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass
class ToolDescriptor:
    """A tool as declared by a backend's tools/list reply."""
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=_empty_schema)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolDescriptor":
        """
        Parse one tools/list entry.

        MCP servers use "inputSchema"; some older servers publish
        "parameters". Either is accepted.
        """
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError(f"Tool entry has no name: {data!r}")
        schema = data.get("inputSchema")
        if schema is None:
            schema = data.get("parameters")
        if not isinstance(schema, dict):
            schema = _empty_schema()
        return cls(
            name=name,
            description=data.get("description") or "",
            input_schema=copy.deepcopy(schema),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": copy.deepcopy(self.input_schema),
        }

    @property
    def properties(self) -> dict[str, Any]:
        return self.input_schema.get("properties") or {}

    @property
    def required(self) -> list[str]:
        return list(self.input_schema.get("required") or [])


@dataclass
class ToolCallRequest:
    """
    One tool invocation requested by the model.

    `arguments` is whatever the model sent: usually a JSON-encoded string,
    sometimes an already-decoded object. `id` must be echoed back with the
    result.
    """
    id: str
    name: str
    arguments: str | dict[str, Any] = ""

    def arguments_json(self) -> str:
        if isinstance(self.arguments, str):
            return self.arguments or "{}"
        return json.dumps(self.arguments)

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json()},
        }


@dataclass
class ToolCallResult:
    """Outcome of one ToolCallRequest: an opaque payload or an error string."""
    call_id: str
    name: str
    output: Any = None
    error: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def content(self) -> str:
        """Text placed in the tool-result turn."""
        if self.error is not None:
            return f"Error: {self.error}"
        return render_tool_output(self.output)


def render_tool_output(payload: Any) -> str:
    """
    Turn an uninterpreted tool result into text for the model.

    Strings pass through. MCP content bodies ({"content": [...]}) are joined
    line by line; everything else is JSON-encoded.
    """
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("content"), list):
        parts = []
        for item in payload["content"]:
            if not isinstance(item, dict):
                parts.append(json.dumps(item))
            elif item.get("type") == "text":
                parts.append(str(item.get("text", "")))
            elif item.get("type") == "image":
                parts.append(f"[Image: {item.get('url') or item.get('mimeType', 'image')}]")
            else:
                parts.append(json.dumps(item))
        text = "\n".join(parts)
        if payload.get("isError"):
            return f"Error: {text}"
        return text
    return json.dumps(payload)
