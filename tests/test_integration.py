"""
Integration Tests
-----------------
Real tool server subprocesses over stdio: handshake, discovery, calls,
timeouts, crashes and the full bridge loop.
"""

import asyncio
import os
import signal

import pytest

from fakes import ScriptedModel, tool_call
from mcp_bridge.bridge import McpLlmBridge
from mcp_bridge.client import ClientState, McpClient
from mcp_bridge.config import BridgeConfig
from mcp_bridge.errors import CallTimeoutError, ConnectionClosedError, RemoteError, SpawnError
from mcp_bridge.llm import ModelResponse
from mcp_bridge.manager import ToolServerManager
from mcp_bridge.models import render_tool_output


class TestEchoServer:
    """McpClient against the echo server process."""

    async def test_handshake_list_and_call(self, echo_params):
        async with McpClient(echo_params, name="echo") as client:
            assert client.is_ready
            assert client.server_info["name"] == "echo"

            tools = await client.list_tools()
            assert {t.name for t in tools} == {"echo", "sleep", "fail"}

            result = await client.call_tool("echo", {"message": "hello"})
            assert result == {"content": [{"type": "text", "text": "hello"}], "isError": False}

        assert client.state is ClientState.CLOSED

    async def test_tool_error_rendered(self, echo_params):
        async with McpClient(echo_params, name="echo") as client:
            result = await client.call_tool("fail", {"reason": "broken on purpose"})

        assert render_tool_output(result) == "Error: broken on purpose"

    async def test_unknown_tool_is_remote_error(self, echo_params):
        async with McpClient(echo_params, name="echo") as client:
            with pytest.raises(RemoteError) as excinfo:
                await client.call_tool("delete_everything", {})

        assert excinfo.value.code == -32602

    async def test_sleep_times_out(self, echo_params):
        """A slow tool times out and the pending table is left empty."""
        async with McpClient(echo_params, name="echo") as client:
            with pytest.raises(CallTimeoutError):
                await client.call_tool("sleep", {"seconds": 5}, timeout=0.2)
            assert client.pending_count == 0

    async def test_concurrent_calls(self, echo_params):
        async with McpClient(echo_params, name="echo") as client:
            results = await asyncio.gather(*(
                client.call_tool("echo", {"message": f"m{i}"}) for i in range(5)
            ))

        assert [r["content"][0]["text"] for r in results] == [f"m{i}" for i in range(5)]

    async def test_crash_fails_pending_call(self, echo_params):
        """Killing the server mid-call surfaces ConnectionClosedError."""
        client = McpClient(echo_params, name="echo")
        await client.connect()
        try:
            task = asyncio.create_task(client.call_tool("sleep", {"seconds": 30}))
            while client.pending_count == 0:
                await asyncio.sleep(0.01)

            os.kill(client.transport.pid, signal.SIGKILL)

            with pytest.raises(ConnectionClosedError):
                await asyncio.wait_for(task, 10.0)
            assert client.state is ClientState.CLOSED
        finally:
            await client.close()

    async def test_missing_executable(self, missing_params):
        client = McpClient(missing_params)

        with pytest.raises(SpawnError):
            await client.connect()
        assert client.state is ClientState.CLOSED


class TestManager:
    """ToolServerManager with real processes."""

    async def test_start_all_skips_failures(self, echo_params, missing_params):
        manager = ToolServerManager(call_timeout=5, handshake_timeout=10)
        manager.register_server("echo", echo_params)
        manager.register_server("broken", missing_params)
        try:
            started = await manager.start_all()

            assert started == ["echo"]
            assert manager.list_servers() == {"echo": True, "broken": False}
            assert manager.get("echo").call_timeout == 5
        finally:
            await manager.stop_all()

        assert not manager.is_running("echo")

    async def test_restart(self, echo_params):
        manager = ToolServerManager()
        manager.register_server("echo", echo_params)
        try:
            first = await manager.start("echo")
            second = await manager.start("echo")

            assert first.state is ClientState.CLOSED
            assert second.is_ready
        finally:
            await manager.stop_all()

    async def test_unknown_server(self):
        with pytest.raises(KeyError):
            await ToolServerManager().start("nope")


class TestBridge:
    """End to end: scripted model, real tool servers."""

    async def test_write_file_through_bridge(self, echo_params, files_params, tmp_path):
        model = ScriptedModel([
            ModelResponse(tool_calls=[tool_call("call_1", "write_file", {"path": "test.txt", "content": "hello world"})]),
            ModelResponse(content="Created test.txt."),
        ])
        config = BridgeConfig(
            servers={"filesystem": files_params, "echo": echo_params},
            primary_server="filesystem",
            handshake_timeout=10,
        )

        async with McpLlmBridge(config, model_client=model) as bridge:
            assert set(bridge.directory.names()) == {
                "write_file", "read_file", "list_directory", "echo", "sleep", "fail",
            }
            answer = await bridge.process_message("create test.txt containing hello world")

        assert answer == "Created test.txt."
        assert (tmp_path / "test.txt").read_text() == "hello world"
        tool_turn = model.requests[1]["messages"][-1]
        assert tool_turn == {"role": "tool", "content": "Successfully wrote to test.txt", "tool_call_id": "call_1"}
        assert not bridge.manager.is_running("filesystem")

    async def test_optional_server_failure_skipped(self, echo_params, missing_params):
        config = BridgeConfig(
            servers={"echo": echo_params, "broken": missing_params},
            primary_server="echo",
        )
        bridge = McpLlmBridge(config, model_client=ScriptedModel([]))
        try:
            started = await bridge.initialize()
        finally:
            await bridge.close()

        assert started == ["echo"]

    async def test_primary_server_failure_is_fatal(self, echo_params, missing_params):
        config = BridgeConfig(
            servers={"echo": echo_params, "broken": missing_params},
            primary_server="broken",
        )
        bridge = McpLlmBridge(config, model_client=ScriptedModel([]))

        with pytest.raises(SpawnError):
            await bridge.initialize()

        assert not bridge.manager.is_running("echo")
