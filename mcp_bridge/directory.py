"""
Tool Directory — one flat tool namespace over many MCP clients.

The directory remembers which client owns each tool name and translates
tool schemas into the function-calling format the model expects. Model-
facing names are sanitized (letters, digits, underscores, lower case); the
reverse mapping routes calls back to the original name and backend.

Contents are rebuilt wholesale on refresh() and swapped in as one object,
so readers never see a half-built namespace.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mcp_bridge.errors import BridgeError, DuplicateToolError, UnknownToolError
from mcp_bridge.models import ToolDescriptor

if TYPE_CHECKING:
    from mcp_bridge.client import McpClient

logger = logging.getLogger(__name__)

DUPLICATE_POLICIES = ("last_wins", "error")

_DISALLOWED = re.compile(r"[^A-Za-z0-9_]")


def sanitize_tool_name(name: str) -> str:
    """Map a backend tool name to the model-facing form."""
    return _DISALLOWED.sub("_", name).lower()


@dataclass(frozen=True)
class ToolEntry:
    descriptor: ToolDescriptor
    server_id: str
    client: "McpClient"
    exposed_name: str


@dataclass(frozen=True)
class _Snapshot:
    entries: dict[str, ToolEntry] = field(default_factory=dict)   # original name -> entry
    aliases: dict[str, str] = field(default_factory=dict)          # sanitized -> original


class ToolDirectory:
    """
    Aggregates tool listings from registered clients.

    Duplicate tool names across backends follow `duplicate_policy`:
    "last_wins" keeps the later-registered backend's tool and logs a
    warning; "error" raises DuplicateToolError from refresh().
    """

    def __init__(self, duplicate_policy: str = "last_wins"):
        if duplicate_policy not in DUPLICATE_POLICIES:
            raise ValueError(
                f"Unknown duplicate policy '{duplicate_policy}'. Available: {list(DUPLICATE_POLICIES)}"
            )
        self.duplicate_policy = duplicate_policy
        self._clients: dict[str, McpClient] = {}
        self._snapshot = _Snapshot()

    # ── Registration ───────────────────────────────────────

    def register(self, server_id: str, client: "McpClient") -> None:
        """Add a client. Registration order decides duplicate precedence."""
        self._clients.pop(server_id, None)
        self._clients[server_id] = client
        logger.debug(f"Registered client {server_id} in tool directory")

    def unregister(self, server_id: str) -> None:
        self._clients.pop(server_id, None)

    @property
    def server_ids(self) -> list[str]:
        return list(self._clients)

    # ── Refresh ────────────────────────────────────────────

    async def refresh(self) -> None:
        """
        Re-fetch every ready client's tools and replace the directory.

        A client whose tools/list fails is logged and contributes nothing;
        the others still refresh.
        """
        entries: dict[str, ToolEntry] = {}

        for server_id, client in list(self._clients.items()):
            if not client.is_ready:
                logger.warning(f"Skipping {server_id}: client is {client.state.value}")
                continue
            try:
                tools = await client.list_tools()
            except BridgeError as e:
                logger.error(f"Failed to list tools from {server_id}: {e}")
                continue

            logger.info(f"Received {len(tools)} tools from {server_id}")
            for tool in tools:
                previous = entries.get(tool.name)
                if previous is not None:
                    if self.duplicate_policy == "error":
                        raise DuplicateToolError(
                            f"Tool '{tool.name}' is declared by both "
                            f"{previous.server_id} and {server_id}"
                        )
                    logger.warning(
                        f"Tool '{tool.name}' from {server_id} replaces the one from {previous.server_id}"
                    )
                    del entries[tool.name]
                entries[tool.name] = ToolEntry(
                    descriptor=tool,
                    server_id=server_id,
                    client=client,
                    exposed_name=sanitize_tool_name(tool.name),
                )

        aliases: dict[str, str] = {}
        for original, entry in entries.items():
            claimed = aliases.get(entry.exposed_name)
            if claimed is not None:
                logger.warning(
                    f"Tools '{claimed}' and '{original}' both sanitize to "
                    f"'{entry.exposed_name}'; routing it to '{original}'"
                )
            aliases[entry.exposed_name] = original

        # Drop entries whose sanitized name was taken over, so the model
        # never sees two functions with the same name.
        entries = {name: e for name, e in entries.items() if aliases[e.exposed_name] == name}

        self._snapshot = _Snapshot(entries=entries, aliases=aliases)
        logger.info(f"Tool directory holds {len(entries)} tools")

    # ── Lookups ────────────────────────────────────────────

    def _entry(self, name: str) -> ToolEntry:
        snapshot = self._snapshot
        entry = snapshot.entries.get(name)
        if entry is None:
            original = snapshot.aliases.get(name)
            if original is not None:
                entry = snapshot.entries.get(original)
        if entry is None:
            raise UnknownToolError(name)
        return entry

    def resolve(self, name: str) -> "McpClient":
        """Return the client that owns `name` (original or sanitized)."""
        return self._entry(name).client

    def describe(self, name: str) -> ToolDescriptor:
        return self._entry(name).descriptor

    def owner_of(self, name: str) -> str:
        return self._entry(name).server_id

    def original_name(self, name: str) -> str:
        return self._entry(name).descriptor.name

    def entries(self) -> list[ToolEntry]:
        return list(self._snapshot.entries.values())

    def descriptors(self) -> list[ToolDescriptor]:
        return [e.descriptor for e in self._snapshot.entries.values()]

    def names(self) -> list[str]:
        return list(self._snapshot.entries)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        snapshot = self._snapshot
        return name in snapshot.entries or name in snapshot.aliases

    def __len__(self) -> int:
        return len(self._snapshot.entries)

    # ── Schema translation ─────────────────────────────────

    def to_openai_tools(self) -> list[dict[str, Any]]:
        """Function-calling definitions for every tool, in registration order."""
        return [
            to_openai_tool(entry.descriptor, entry.exposed_name)
            for entry in self._snapshot.entries.values()
        ]


def to_openai_tool(descriptor: ToolDescriptor, exposed_name: str | None = None) -> dict[str, Any]:
    """
    Convert a ToolDescriptor into an OpenAI-style function definition.

    The input schema is copied whole; only missing "type", "properties"
    and "required" keys are filled in.
    """
    parameters = copy.deepcopy(descriptor.input_schema)
    parameters.setdefault("type", "object")
    parameters.setdefault("properties", {})
    parameters.setdefault("required", [])
    return {
        "type": "function",
        "function": {
            "name": exposed_name or sanitize_tool_name(descriptor.name),
            "description": descriptor.description or f"Use the {descriptor.name} tool",
            "parameters": parameters,
        },
    }

