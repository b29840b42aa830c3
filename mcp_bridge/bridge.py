"""
Bridge between an LLM and MCP tool servers.

McpLlmBridge drives one user message to a final answer:

    user text -> model -> (final text | tool calls)
    tool calls -> ToolDirectory -> McpClient -> tool server
    tool results -> conversation -> model -> ...

Usage:
    config = load_bridge_config()
    async with McpLlmBridge(config) as bridge:
        answer = await bridge.process_message("create test.txt containing hello world")
"""

from __future__ import annotations

import asyncio
import logging
import time

from mcp_bridge.arguments import ArgumentPreparer, parse_arguments
from mcp_bridge.config import BridgeConfig
from mcp_bridge.conversation import ConversationState
from mcp_bridge.directory import ToolDirectory
from mcp_bridge.errors import BridgeError, MaxRoundsExceededError
from mcp_bridge.hints import KeywordToolHints
from mcp_bridge.llm import ModelClient, ModelResponse, OpenAIChatClient
from mcp_bridge.manager import ToolServerManager
from mcp_bridge.models import ToolCallRequest, ToolCallResult, ToolDescriptor

logger = logging.getLogger(__name__)


class McpLlmBridge:
    """
    Runs the tool-calling loop for one session.

    Per-call failures (unknown tool, bad arguments, timeout, remote error,
    dead backend) become tool-result turns and the loop continues. Only
    model failures and MaxRoundsExceededError reach the caller.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        model_client: ModelClient | None = None,
        manager: ToolServerManager | None = None,
        directory: ToolDirectory | None = None,
        hints: KeywordToolHints | None = None,
        preparer: ArgumentPreparer | None = None,
    ):
        self.config = config
        self.model_client = model_client if model_client is not None else OpenAIChatClient(config.llm)
        if manager is None:
            manager = ToolServerManager(
                call_timeout=config.call_timeout,
                handshake_timeout=config.handshake_timeout,
            )
        self.manager = manager
        if directory is None:
            directory = ToolDirectory(duplicate_policy=config.duplicate_tools)
        self.directory = directory
        self.hints = hints
        self.preparer = preparer if preparer is not None else ArgumentPreparer()
        self.conversation = ConversationState()
        self._lock = asyncio.Lock()

    @property
    def primary_server(self) -> str | None:
        """Default conversational backend, connected first."""
        return self.config.primary_server

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> list[str]:
        """
        Start every configured backend and load their tools.

        Returns:
            The server ids that started.

        Raises:
            SpawnError, HandshakeError: only for the primary server; other
                backends that fail are logged and skipped.
        """
        logger.info("Connecting to MCP servers...")
        order = list(self.config.servers)
        if self.primary_server is not None:
            order.remove(self.primary_server)
            order.insert(0, self.primary_server)

        for server_id in order:
            if server_id not in self.manager:
                self.manager.register_server(server_id, self.config.servers[server_id])

        started = []
        for server_id in order:
            try:
                client = await self.manager.start(server_id)
            except BridgeError as e:
                if server_id == self.primary_server:
                    logger.error(f"Primary MCP {server_id} failed to start: {e}")
                    await self.manager.stop_all()
                    raise
                logger.error(f"Skipping MCP {server_id}: {e}")
                continue
            self.directory.register(server_id, client)
            started.append(server_id)

        await self.refresh_tools()
        logger.info(f"Initialized with {len(self.directory)} total tools from {len(started)} servers")
        return started

    async def refresh_tools(self) -> None:
        """Re-list tools from every backend and rebuild hints."""
        await self.directory.refresh()
        if self.hints is not None:
            self.hints.rebuild(self.directory.descriptors())
        logger.debug(f"Available tools: {', '.join(self.directory.names())}")

    def list_tools(self) -> list[ToolDescriptor]:
        return self.directory.descriptors()

    def reset_conversation(self) -> None:
        self.conversation.reset()

    async def close(self) -> None:
        await self.manager.stop_all()

    async def __aenter__(self) -> "McpLlmBridge":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Orchestration ──────────────────────────────────────

    async def process_message(self, message: str) -> str:
        """
        Resolve one user message into the model's final answer.

        Raises:
            ModelError: the completion endpoint failed.
            MaxRoundsExceededError: the model never stopped calling tools.

        On any failure the conversation is rolled back to where it was
        before this message.
        """
        async with self._lock:
            checkpoint = len(self.conversation)
            try:
                return await self._run_rounds(message)
            except BaseException:
                self.conversation.truncate(checkpoint)
                raise

    async def _run_rounds(self, message: str) -> str:
        self.conversation.append_user(message)
        system_prompt = self._system_prompt_for(message)
        tools = self.directory.to_openai_tools()

        logger.info("Sending message to LLM...")
        response = await self._complete(system_prompt, tools)
        rounds = 0
        while response.is_tool_call:
            rounds += 1
            if rounds > self.config.max_rounds:
                logger.error(f"Giving up after {self.config.max_rounds} tool rounds")
                raise MaxRoundsExceededError(self.config.max_rounds)

            logger.info(f"Round {rounds}: processing {len(response.tool_calls)} tool calls")
            results = await self.run_tool_calls(response.tool_calls)
            for result in results:
                self.conversation.append_tool_result(result)

            logger.info("Tool calls completed, sending results back to LLM")
            response = await self._complete(system_prompt, tools)

        return response.content

    async def _complete(self, system_prompt: str | None, tools: list[dict]) -> ModelResponse:
        response = await self.model_client.complete(
            self.conversation.to_messages(system_prompt),
            tools or None,
        )
        self.conversation.append_assistant(response.content, response.tool_calls)
        logger.info(f"LLM response received, isToolCall: {response.is_tool_call}")
        return response

    def _system_prompt_for(self, message: str) -> str | None:
        base = self.config.system_prompt
        if self.hints is None:
            return base
        detected = self.hints.detect(message)
        if detected is None:
            return base
        logger.info(f"Detected tool: {detected}")
        instructions = self.hints.instructions(detected)
        if not instructions:
            return base
        return f"{base}\n\n{instructions}" if base else instructions

    async def run_tool_calls(self, calls: list[ToolCallRequest]) -> list[ToolCallResult]:
        """Run a batch of calls concurrently; results come back in call order."""
        return list(await asyncio.gather(*(self.execute_tool_call(call) for call in calls)))

    async def execute_tool_call(self, call: ToolCallRequest) -> ToolCallResult:
        """Route, prepare and run one call. Never raises BridgeError."""
        started = time.monotonic()
        try:
            client = self.directory.resolve(call.name)
            descriptor = self.directory.describe(call.name)
            arguments = self.preparer.prepare(descriptor, parse_arguments(call.arguments))
            logger.info(
                f"[MCP] Calling {self.directory.owner_of(call.name)}/{descriptor.name} "
                f"with arguments: {arguments}"
            )
            output = await client.call_tool(descriptor.name, arguments, timeout=self.config.call_timeout)
        except BridgeError as e:
            elapsed = time.monotonic() - started
            logger.error(f"[MCP] Tool {call.name} failed after {elapsed:.2f}s: {e}")
            return ToolCallResult(call_id=call.id, name=call.name, error=str(e), elapsed=elapsed)

        elapsed = time.monotonic() - started
        logger.info(f"[MCP] Tool {call.name} completed in {elapsed:.2f}s")
        logger.debug(f"[MCP] Tool result: {output!r}")
        return ToolCallResult(call_id=call.id, name=call.name, output=output, elapsed=elapsed)
