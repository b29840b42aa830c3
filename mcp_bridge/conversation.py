"""Ordered chat turns for one bridge session."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from mcp_bridge.models import ToolCallRequest, ToolCallResult


@dataclass
class Turn:
    role: str                                   # system | user | assistant | tool
    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    tool_call_id: str | None = None

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_openai() for call in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


class ConversationState:
    """
    Turns in the order they happened.

    Owned by one McpLlmBridge; the bridge serializes requests so two user
    turns never interleave here.
    """

    def __init__(self):
        self._turns: list[Turn] = []

    def append_user(self, content: str) -> Turn:
        return self._append(Turn(role="user", content=content))

    def append_assistant(self, content: str | None, tool_calls: list[ToolCallRequest] | None = None) -> Turn:
        return self._append(Turn(role="assistant", content=content, tool_calls=list(tool_calls or [])))

    def append_tool_result(self, result: ToolCallResult) -> Turn:
        return self._append(Turn(role="tool", content=result.content, tool_call_id=result.call_id))

    def _append(self, turn: Turn) -> Turn:
        self._turns.append(turn)
        return turn

    def reset(self) -> None:
        self._turns = []

    def truncate(self, length: int) -> None:
        """Drop every turn after the first `length`."""
        del self._turns[length:]

    def to_messages(self, system_prompt: str | None = None) -> list[dict[str, Any]]:
        """Chat-completions message list, system prompt first."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(turn.to_message() for turn in self._turns)
        return messages

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))
