"""
Tool Server Manager — launches and manages MCP tool server processes.

Usage:
    manager = ToolServerManager()

    # Register a server
    manager.register_server("echo", ServerParameters(sys.executable, ("-m", "mcp_bridge.servers.echo")))

    # Start it (spawn + handshake)
    client = await manager.start("echo")

    # Call a tool directly
    result = await client.call_tool("echo", {"message": "hi"})

    # Stop everything
    await manager.stop_all()
"""

from __future__ import annotations

import logging
from typing import Iterator

from mcp_bridge.client import DEFAULT_CALL_TIMEOUT, DEFAULT_HANDSHAKE_TIMEOUT, McpClient
from mcp_bridge.errors import BridgeError
from mcp_bridge.transport import ServerParameters

logger = logging.getLogger(__name__)


class ToolServerManager:
    """
    Manages the lifecycle of MCP tool server processes.

    Responsibilities:
    - Keep launch parameters per server id
    - Spawn and handshake each server through its own McpClient
    - Graceful shutdown, touching only processes this manager started
    """

    def __init__(
        self,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
    ):
        self.call_timeout = call_timeout
        self.handshake_timeout = handshake_timeout
        self._params: dict[str, ServerParameters] = {}
        self._clients: dict[str, McpClient] = {}

    def register_server(self, server_id: str, params: ServerParameters) -> None:
        """Register a tool server (does not start it yet)."""
        self._params[server_id] = params
        logger.info(f"Registered MCP: {server_id} ({' '.join(params.command_line())})")

    def _make_client(self, server_id: str, params: ServerParameters) -> McpClient:
        return McpClient(
            params,
            name=server_id,
            call_timeout=self.call_timeout,
            handshake_timeout=self.handshake_timeout,
        )

    async def start(self, server_id: str) -> McpClient:
        """
        Start a tool server and complete its handshake.

        Raises:
            KeyError: for an unregistered server id.
            SpawnError, HandshakeError: the server could not be brought up.
        """
        params = self._params.get(server_id)
        if params is None:
            raise KeyError(f"Unknown server: {server_id}")

        existing = self._clients.get(server_id)
        if existing is not None and existing.is_ready:
            logger.warning(f"{server_id} already running, stopping first")
            await self.stop(server_id)

        logger.info(f"Connecting to MCP: {server_id}")
        client = self._make_client(server_id, params)
        await client.connect()
        self._clients[server_id] = client
        return client

    async def start_all(self) -> list[str]:
        """Start every registered server. Returns the ids that came up."""
        started = []
        for server_id in self._params:
            try:
                await self.start(server_id)
            except BridgeError as e:
                logger.error(f"Failed to start {server_id}: {e}")
                continue
            started.append(server_id)
        return started

    async def stop(self, server_id: str) -> None:
        """Stop a tool server."""
        client = self._clients.pop(server_id, None)
        if client is not None:
            await client.close()
            logger.info(f"Stopped {server_id}")

    async def stop_all(self) -> None:
        """Stop all running servers."""
        for server_id in list(self._clients):
            await self.stop(server_id)

    def get(self, server_id: str) -> McpClient | None:
        return self._clients.get(server_id)

    def clients(self) -> dict[str, McpClient]:
        """Started clients in start order."""
        return dict(self._clients)

    def list_servers(self) -> dict[str, bool]:
        """List all registered servers and their running status."""
        return {sid: self.is_running(sid) for sid in self._params}

    def is_running(self, server_id: str) -> bool:
        """Check if a specific server is ready for calls."""
        client = self._clients.get(server_id)
        return client is not None and client.is_ready

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._params

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def __len__(self) -> int:
        return len(self._params)
