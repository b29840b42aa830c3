"""
Run Bridge — interactive chat with MCP tools.

This is the script that closes the loop. It:
1. Loads bridge_config.json (and .env)
2. Starts the configured MCP tool servers (stdio subprocesses)
3. Collects their tools into one directory
4. Reads prompts and answers them through the model/tool loop

Usage:
    # Use ./bridge_config.json
    python run_bridge.py

    # Explicit config, debug logging
    python run_bridge.py --config ~/bridge_config.json --verbose

Commands at the prompt:
    list-tools   Show all available tools and their parameters
    reset        Forget the conversation so far
    quit         Exit the program
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
import threading
from pathlib import Path

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).parent.resolve()
sys.path.insert(0, str(PROJECT_ROOT))

from mcp_bridge.bridge import McpLlmBridge
from mcp_bridge.config import BridgeConfig, load_bridge_config
from mcp_bridge.errors import BridgeError, ConfigError
from mcp_bridge.hints import KeywordToolHints

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(name)s - %(message)s",
                    datefmt="%H:%M:%S")
logger = logging.getLogger("run_bridge")

PROMPT = "\nEnter your prompt (or 'list-tools', 'reset' or 'quit'): "


def print_tools(bridge: McpLlmBridge) -> None:
    tools = bridge.list_tools()
    print(f"\nAvailable tools ({len(tools)}):\n")
    for tool in tools:
        owner = bridge.directory.owner_of(tool.name)
        print(f"  [{owner}] {tool.name}")
        if tool.description:
            print(f"      {tool.description}")
        required = set(tool.required)
        for pname, pinfo in tool.properties.items():
            ptype = pinfo.get("type", "any") if isinstance(pinfo, dict) else "any"
            marker = " (required)" if pname in required else ""
            print(f"      - {pname}: {ptype}{marker}")


async def ainput(prompt: str) -> str:
    """input() on a daemon thread, so Ctrl+C never waits on a blocked read."""
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def _deliver(value=None, error=None):
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)

    def _read():
        try:
            line = input(prompt)
        except EOFError as e:
            loop.call_soon_threadsafe(_deliver, None, e)
        else:
            loop.call_soon_threadsafe(_deliver, line)

    threading.Thread(target=_read, daemon=True).start()
    return await future


async def chat(bridge: McpLlmBridge) -> None:
    while True:
        try:
            user_input = (await ainput(PROMPT)).strip()
        except EOFError:
            return

        if not user_input:
            continue
        command = user_input.lower()
        if command == "quit":
            return
        if command == "list-tools":
            print_tools(bridge)
            continue
        if command == "reset":
            bridge.reset_conversation()
            print("Conversation cleared.")
            continue

        logger.info("Processing user input...")
        try:
            response = await bridge.process_message(user_input)
        except BridgeError as e:
            logger.error(f"Error processing message: {e}")
            continue
        print(f"\nResponse: {response}")


def build_config(args: argparse.Namespace) -> BridgeConfig:
    """Load the config file and apply command-line overrides."""
    config = load_bridge_config(args.config)
    if args.max_rounds is not None:
        config = dataclasses.replace(config, max_rounds=args.max_rounds)
    return config


async def run(args: argparse.Namespace) -> int:
    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Initializing bridge with MCPs: {', '.join(config.servers)}")
    bridge = McpLlmBridge(config, hints=KeywordToolHints())

    # Graceful shutdown on Ctrl+C: stop only the servers this bridge started
    main_task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, main_task.cancel)
    except NotImplementedError:
        pass

    try:
        await bridge.initialize()
        print_tools(bridge)
        await chat(bridge)
    except BridgeError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    except asyncio.CancelledError:
        print("\nShutting down MCP servers...")
    finally:
        await bridge.close()
        logger.info("MCP servers stopped.")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Chat with an LLM that can call MCP tools.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_bridge.py
  python run_bridge.py --config bridge_config.json --verbose
        """,
    )
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Path to bridge_config.json (default: ./bridge_config.json)")
    parser.add_argument("--max-rounds", type=int, default=None,
                        help="Override the tool round limit per message")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
