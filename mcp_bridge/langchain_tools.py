"""
Bridge between the Tool Directory and LangChain.

Wraps every MCP tool the directory knows as a LangChain StructuredTool so
LangChain/LangGraph agents can use the same backends the bridge does.

Usage:
    from mcp_bridge.langchain_tools import directory_to_langchain_tools

    tools = directory_to_langchain_tools(bridge.directory)
    agent = create_react_agent(model, tools)
"""

from __future__ import annotations

from typing import Any

from langchain_core.tools import StructuredTool

from mcp_bridge.directory import ToolDirectory, to_openai_tool
from mcp_bridge.errors import BridgeError
from mcp_bridge.models import render_tool_output


def directory_tool_to_langchain(
    directory: ToolDirectory,
    tool_name: str,
    description_override: str | None = None,
    timeout: float | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that proxies to an MCP tool.

    The owning client is looked up on every invocation, so the tool keeps
    working across directory refreshes.

    Args:
        directory: Directory that knows the tool.
        tool_name: Original or sanitized tool name.
        description_override: Optional override for the tool description.
        timeout: Per-call timeout; the client default when omitted.

    Raises:
        UnknownToolError: if the directory does not know `tool_name`.
    """
    descriptor = directory.describe(tool_name)
    function = to_openai_tool(descriptor)["function"]
    original = descriptor.name

    async def _call_mcp(**kwargs: Any) -> str:
        """Proxy call to MCP tool server."""
        try:
            client = directory.resolve(original)
            result = await client.call_tool(original, kwargs, timeout=timeout)
        except BridgeError as e:
            return f"Error calling {original}: {e}"
        return render_tool_output(result)

    return StructuredTool.from_function(
        coroutine=_call_mcp,
        name=function["name"],
        description=description_override or function["description"],
        args_schema=function["parameters"],
    )


def directory_to_langchain_tools(
    directory: ToolDirectory,
    timeout: float | None = None,
) -> list[StructuredTool]:
    """Wrap every tool currently in the directory."""
    return [
        directory_tool_to_langchain(directory, name, timeout=timeout)
        for name in directory.names()
    ]
