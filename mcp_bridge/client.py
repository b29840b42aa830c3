"""
MCP client — JSON-RPC over one transport.

The client owns the handshake, the request-id counter and the table of
pending calls. Any number of requests may be in flight; replies are
matched by id in whatever order they arrive.

Usage:
    client = McpClient(ServerParameters("npx", ("-y", "@modelcontextprotocol/server-memory")))
    await client.connect()
    tools = await client.list_tools()
    result = await client.call_tool("create_entities", {"entities": []})
    await client.close()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from mcp_bridge import __version__
from mcp_bridge.errors import (
    BridgeError,
    CallTimeoutError,
    ConnectionClosedError,
    HandshakeError,
    NotReadyError,
    RemoteError,
)
from mcp_bridge.messages import (
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    LineBuffer,
    parse_message,
)
from mcp_bridge.models import ToolDescriptor
from mcp_bridge.transport import ServerParameters, StdioTransport, Transport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "mcp-llm-bridge", "version": __version__}
CLIENT_CAPABILITIES = {"tools": {"list": True, "call": True}}

DEFAULT_CALL_TIMEOUT = 30.0
DEFAULT_HANDSHAKE_TIMEOUT = 30.0


class ClientState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class PendingCall:
    """A request waiting for its reply."""
    request: JsonRpcRequest
    future: asyncio.Future


class McpClient:
    """
    Speaks MCP to one tool server.

    State machine: DISCONNECTED -> CONNECTING -> HANDSHAKING -> READY -> CLOSED.
    """

    def __init__(
        self,
        params: ServerParameters,
        *,
        name: str | None = None,
        transport: Transport | None = None,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
    ):
        """
        Args:
            params: Launch spec for the backend.
            name: Label for logs; defaults to the command name.
            transport: Override the transport (tests inject an in-memory one).
            call_timeout: Default seconds to wait for a tools/call reply.
            handshake_timeout: Seconds to wait for the initialize reply.
        """
        self.params = params
        self.name = name or params.command
        self.call_timeout = call_timeout
        self.handshake_timeout = handshake_timeout
        self._transport = transport if transport is not None else StdioTransport(params, name=self.name)
        self._state = ClientState.DISCONNECTED
        self._pending: dict[int, PendingCall] = {}
        self._last_id = 0
        self._buffer = LineBuffer()
        self.server_info: dict[str, Any] | None = None
        self.server_capabilities: dict[str, Any] | None = None
        self.protocol_version: str | None = None

    def __repr__(self) -> str:
        return f"McpClient(name={self.name!r}, state={self._state.value})"

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ClientState.READY

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def transport(self) -> Transport:
        return self._transport

    # ── Lifecycle ──────────────────────────────────────────

    async def connect(self) -> None:
        """
        Start the backend and perform the initialize handshake.

        Raises:
            SpawnError: if the process cannot be started.
            HandshakeError: if the initialize reply is missing, malformed,
                an error, or late.
        """
        if self._state is not ClientState.DISCONNECTED:
            raise NotReadyError(f"[{self.name}] cannot connect from state {self._state.value}")

        logger.debug(f"[{self.name}] connecting to MCP server...")
        self._state = ClientState.CONNECTING
        self._transport.attach(self._on_data, self._on_exit)
        try:
            await self._transport.start()
        except BridgeError:
            self._state = ClientState.CLOSED
            raise

        self._state = ClientState.HANDSHAKING
        try:
            await self._initialize()
        except HandshakeError:
            await self.close()
            raise

        self._state = ClientState.READY
        logger.info(
            f"[{self.name}] MCP session initialized "
            f"(protocol {self.protocol_version}, server {self.server_info})"
        )

    async def _initialize(self) -> None:
        params = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": CLIENT_CAPABILITIES,
            "clientInfo": CLIENT_INFO,
        }
        try:
            result = await self._request("initialize", params, self.handshake_timeout)
        except CallTimeoutError as e:
            raise HandshakeError(f"[{self.name}] no initialize reply within {e.timeout:g}s") from e
        except BridgeError as e:
            raise HandshakeError(f"[{self.name}] initialize failed: {e}") from e

        if not isinstance(result, dict) or not isinstance(result.get("protocolVersion"), str):
            raise HandshakeError(f"[{self.name}] invalid initialization response from server: {result!r}")

        self.protocol_version = result["protocolVersion"]
        self.server_capabilities = result.get("capabilities") or {}
        self.server_info = result.get("serverInfo")
        if self.protocol_version != PROTOCOL_VERSION:
            logger.info(
                f"[{self.name}] server negotiated protocol {self.protocol_version} "
                f"(client offered {PROTOCOL_VERSION})"
            )

        try:
            await self._notify("notifications/initialized")
        except BridgeError as e:
            raise HandshakeError(f"[{self.name}] could not confirm initialization: {e}") from e

    async def close(self) -> None:
        """Fail outstanding calls and stop the backend. Idempotent."""
        if self._state is ClientState.CLOSED and not self._transport.is_alive():
            return
        logger.debug(f"[{self.name}] closing MCP connection...")
        self._state = ClientState.CLOSED
        self._fail_pending(ConnectionClosedError(f"[{self.name}] client closed"))
        await self._transport.terminate()
        self._buffer.clear()

    async def __aenter__(self) -> "McpClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Operations ─────────────────────────────────────────

    async def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the backend's tool declarations."""
        self._require_ready("tools/list")
        result = await self._request("tools/list", None, self.call_timeout)

        if isinstance(result, dict):
            entries = result.get("tools") or []
        elif isinstance(result, list):
            entries = result
        else:
            entries = []

        tools = []
        for entry in entries:
            try:
                tools.append(ToolDescriptor.from_dict(entry))
            except (ValueError, AttributeError) as e:
                logger.warning(f"[{self.name}] skipping malformed tool entry: {e}")
        logger.debug(f"[{self.name}] received tools: {[t.name for t in tools]}")
        return tools

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        """
        Invoke a tool and return its result payload untouched.

        Raises:
            NotReadyError: before connect() succeeds or after close.
            RemoteError: the backend replied with an error object.
            CallTimeoutError: no reply within the timeout.
            ConnectionClosedError: the backend exited first.
        """
        self._require_ready("tools/call")
        logger.debug(f"[{self.name}] calling tool '{name}' with arguments: {arguments}")
        return await self._request(
            "tools/call",
            {"name": name, "arguments": arguments},
            self.call_timeout if timeout is None else timeout,
        )

    # ── Internals ──────────────────────────────────────────

    def _require_ready(self, method: str) -> None:
        if self._state is not ClientState.READY:
            raise NotReadyError(
                f"[{self.name}] cannot send {method}: client is {self._state.value}"
            )

    def _next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    async def _request(self, method: str, params: dict[str, Any] | None, timeout: float) -> Any:
        request = JsonRpcRequest(method=method, id=self._next_id(), params=params)
        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = PendingCall(request=request, future=future)
        try:
            await self._send(request.to_json())
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] {method} (id={request.id}) timed out after {timeout:g}s")
            raise CallTimeoutError(method, request.id, timeout) from None
        finally:
            self._pending.pop(request.id, None)

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self._send(JsonRpcNotification(method=method, params=params).to_json())

    async def _send(self, line: str) -> None:
        logger.debug(f"[{self.name}] sending MCP message: {line}")
        await self._transport.write((line + "\n").encode("utf-8"))

    def _on_data(self, data: bytes) -> None:
        for line in self._buffer.feed(data):
            self._handle_line(line)

    def _handle_line(self, line: bytes) -> None:
        try:
            message = parse_message(line)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"[{self.name}] failed to parse MCP message: {e} (line: {line[:200]!r})")
            return

        logger.debug(f"[{self.name}] received MCP message: {message}")
        if isinstance(message, JsonRpcResponse):
            self._resolve(message)
        elif isinstance(message, JsonRpcNotification):
            logger.debug(f"[{self.name}] notification from server: {message.method}")
        else:
            logger.info(f"[{self.name}] ignoring server request '{message.method}' (id={message.id})")

    def _resolve(self, response: JsonRpcResponse) -> None:
        pending = self._pending.pop(response.id, None) if isinstance(response.id, int) else None
        if pending is None:
            logger.warning(f"[{self.name}] discarding reply with no pending call (id={response.id!r})")
            return
        if pending.future.done():
            return
        if response.error is not None:
            pending.future.set_exception(
                RemoteError(response.error.message, response.error.code, response.error.data)
            )
        else:
            pending.future.set_result(response.result)

    def _on_exit(self, returncode: int | None) -> None:
        logger.info(f"[{self.name}] MCP process exited with code {returncode}")
        if self._state is not ClientState.CLOSED:
            self._state = ClientState.CLOSED
        self._fail_pending(
            ConnectionClosedError(f"[{self.name}] tool server exited with code {returncode}")
        )

    def _fail_pending(self, error: BridgeError) -> None:
        pending, self._pending = self._pending, {}
        for call in pending.values():
            if not call.future.done():
                call.future.set_exception(error)
