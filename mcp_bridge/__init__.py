"""
MCP LLM Bridge — lets a chat model call tools served by MCP processes.

Architecture:
    ┌──────────────┐   chat API    ┌──────────────┐
    │    Model     │ ───────────── │ McpLlmBridge │
    └──────────────┘  tool calls   └──────┬───────┘
                                          │ ToolDirectory (name → client)
                              ┌───────────┴───────────┐
                        ┌─────┴─────┐  stdio   ┌──────┴──────┐
                        │ McpClient │ ──────── │ Tool Server │
                        └───────────┘ JSON-RPC │ (subprocess)│
                                               └─────────────┘

Each tool server is a standalone process speaking newline-delimited
JSON-RPC 2.0 over stdin/stdout. McpClient handles the handshake and
correlates replies; ToolServerManager owns the processes; ToolDirectory
merges every server's tools into one namespace; McpLlmBridge runs the
model/tool loop.

StdioToolServer / ToolHandler are the framework for writing servers in
Python.
"""

__version__ = "1.0.0"

from mcp_bridge.errors import (
    BridgeError,
    CallTimeoutError,
    ConnectionClosedError,
    HandshakeError,
    InvalidArgumentsError,
    MaxRoundsExceededError,
    NotReadyError,
    RemoteError,
    SpawnError,
    UnknownToolError,
)
from mcp_bridge.transport import ServerParameters, StdioTransport
from mcp_bridge.client import ClientState, McpClient
from mcp_bridge.directory import ToolDirectory
from mcp_bridge.manager import ToolServerManager
from mcp_bridge.models import ToolCallRequest, ToolCallResult, ToolDescriptor
from mcp_bridge.server import StdioToolServer, ToolHandler


# bridge/config import openai and the adapter imports langchain_core;
# tool servers import this package without either.
def __getattr__(name):
    if name in ("McpLlmBridge", "BridgeConfig", "load_bridge_config"):
        from mcp_bridge import bridge, config
        return getattr(bridge, name, None) or getattr(config, name)
    if name in ("directory_tool_to_langchain", "directory_to_langchain_tools"):
        from mcp_bridge import langchain_tools
        return getattr(langchain_tools, name)
    raise AttributeError(f"module 'mcp_bridge' has no attribute {name!r}")


__all__ = [
    "BridgeError",
    "CallTimeoutError",
    "ConnectionClosedError",
    "HandshakeError",
    "InvalidArgumentsError",
    "MaxRoundsExceededError",
    "NotReadyError",
    "RemoteError",
    "SpawnError",
    "UnknownToolError",
    "ServerParameters",
    "StdioTransport",
    "ClientState",
    "McpClient",
    "ToolDirectory",
    "ToolServerManager",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolDescriptor",
    "StdioToolServer",
    "ToolHandler",
    "McpLlmBridge",
    "BridgeConfig",
    "load_bridge_config",
    "directory_tool_to_langchain",
    "directory_to_langchain_tools",
]
