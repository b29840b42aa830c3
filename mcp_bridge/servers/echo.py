"""
Echo MCP Tool Server — minimal reference implementation.

Use this as a template for building new tool servers. Its tools are
handy for exercising the transport:
  - echo:  returns its input
  - sleep: waits before answering (timeouts)
  - fail:  reports a tool error

Launch:
    python -m mcp_bridge.servers.echo

Test:
    echo '{"jsonrpc":"2.0","method":"tools/list","id":1}' | python -m mcp_bridge.servers.echo
"""

import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from mcp_bridge.server import StdioToolServer, ToolError, ToolHandler, configure_server_logging


class EchoTool(ToolHandler):
    name = "echo"
    description = "Echoes back the input message. Useful for testing."
    parameters = {
        "message": {
            "type": "string",
            "description": "The message to echo back",
        },
    }
    required = ["message"]

    def handle(self, params: dict) -> str:
        return params.get("message", "")


class SleepTool(ToolHandler):
    name = "sleep"
    description = "Waits for the given number of seconds, then answers."
    parameters = {
        "seconds": {"type": "number", "description": "How long to wait"},
    }
    required = ["seconds"]

    def handle(self, params: dict) -> dict:
        seconds = float(params.get("seconds", 0))
        time.sleep(seconds)
        return {"slept": seconds}


class FailTool(ToolHandler):
    name = "fail"
    description = "Always fails with the given reason."
    parameters = {
        "reason": {"type": "string", "description": "Error text to report"},
    }

    def handle(self, params: dict) -> dict:
        raise ToolError(params.get("reason", "failed on purpose"))


def build_server() -> StdioToolServer:
    server = StdioToolServer("echo")
    server.register(EchoTool())
    server.register(SleepTool())
    server.register(FailTool())
    return server


if __name__ == "__main__":
    configure_server_logging()
    build_server().run()
