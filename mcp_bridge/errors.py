"""
Error taxonomy for the MCP bridge.

Transport and handshake failures (SpawnError, HandshakeError) are fatal
to starting a backend. Per-call failures (CallTimeoutError, RemoteError,
UnknownToolError, ConnectionClosedError, InvalidArgumentsError) are caught
by the orchestration loop and turned into tool-result turns.
"""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for every error raised by mcp_bridge."""


class SpawnError(BridgeError):
    """The tool server process could not be launched or died on startup."""


class WriteError(BridgeError):
    """Bytes could not be written to the tool server's stdin."""


class HandshakeError(BridgeError):
    """The initialize exchange failed, timed out, or returned a bad reply."""


class NotReadyError(BridgeError):
    """An operation needs a client in the Ready state."""


class CallTimeoutError(BridgeError, TimeoutError):
    """No reply arrived for a request within its deadline."""

    def __init__(self, method: str, request_id: int, timeout: float):
        self.method = method
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(
            f"MCP call '{method}' (id={request_id}) timed out after {timeout:g} seconds"
        )


class RemoteError(BridgeError):
    """The tool server answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class ConnectionClosedError(BridgeError):
    """The tool server went away before a reply arrived."""


class UnknownToolError(BridgeError, LookupError):
    """No registered backend owns the requested tool name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No MCP found for tool: {name}")


class InvalidArgumentsError(BridgeError, ValueError):
    """Tool arguments could not be decoded or failed validation."""


class DuplicateToolError(BridgeError):
    """Two backends declare the same tool name under the "error" policy."""


class MaxRoundsExceededError(BridgeError):
    """The model kept requesting tools past the round limit."""

    def __init__(self, max_rounds: int):
        self.max_rounds = max_rounds
        super().__init__(
            f"Model still requested tools after {max_rounds} rounds; giving up"
        )


class ModelError(BridgeError):
    """The completion endpoint failed or timed out."""


class ConfigError(BridgeError, ValueError):
    """Bridge configuration is malformed."""
