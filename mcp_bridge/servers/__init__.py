"""Bundled MCP tool servers, each runnable with `python -m mcp_bridge.servers.<name>`."""
