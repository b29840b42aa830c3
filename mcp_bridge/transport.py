"""
Transport layer for MCP tool communication.

Implements:
  - StdioTransport: a child process whose stdin/stdout carry the protocol
    and whose stderr is logged as diagnostics.

The transport only moves bytes. Framing and correlation live in
mcp_bridge.client.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from mcp_bridge.errors import SpawnError, WriteError

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes], None]
ExitCallback = Callable[["int | None"], None]


@dataclass(frozen=True)
class ServerParameters:
    """How to launch one tool server."""
    command: str
    args: tuple[str, ...] = ()
    allowed_directory: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerParameters":
        """Build from a bridge_config.json server entry."""
        return cls(
            command=data["command"],
            args=tuple(data.get("args") or ()),
            allowed_directory=data.get("allowedDirectory") or data.get("allowed_directory"),
            env=dict(data.get("env") or {}),
        )

    def command_line(self) -> list[str]:
        return [self.command, *self.args]

    def build_env(self) -> dict[str, str] | None:
        """Parent environment with overrides applied, or None to inherit."""
        if not self.env:
            return None
        merged = dict(os.environ)
        merged.update({k: str(v) for k, v in self.env.items()})
        return merged


class Transport(ABC):
    """
    Abstract byte transport for MCP communication.

    Consumers call attach() before start(). Inbound bytes are delivered to
    the data callback as they arrive (not pre-framed). The exit callback
    fires at most once per transport.
    """

    def __init__(self):
        self._on_data: DataCallback | None = None
        self._on_exit: ExitCallback | None = None
        self._exit_reported = False

    def attach(self, on_data: DataCallback, on_exit: ExitCallback) -> None:
        """Register the consumer of inbound bytes and exit notifications."""
        self._on_data = on_data
        self._on_exit = on_exit

    def _emit_data(self, data: bytes) -> None:
        if self._on_data is not None:
            self._on_data(data)

    def _emit_exit(self, returncode: int | None) -> None:
        if self._exit_reported:
            return
        self._exit_reported = True
        if self._on_exit is not None:
            self._on_exit(returncode)

    @abstractmethod
    async def start(self) -> None:
        """Start the transport (e.g., launch subprocess)."""
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Send raw bytes to the peer."""
        ...

    @abstractmethod
    async def terminate(self) -> None:
        """Stop the transport. Safe to call more than once."""
        ...

    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the transport is active."""
        ...


class StdioTransport(Transport):
    """
    Byte pipes to a tool server subprocess.

    This is MCP's native local transport. We write to the child's stdin,
    pump its stdout to the attached consumer in whatever chunks the pipe
    delivers, and log its stderr line by line.
    """

    def __init__(
        self,
        params: ServerParameters,
        name: str | None = None,
        startup_grace: float = 0.1,
        kill_timeout: float = 5.0,
        read_size: int = 65536,
    ):
        """
        Args:
            params: Launch spec for the tool server.
            name: Label used in log lines (defaults to the command).
            startup_grace: Seconds to watch for an immediate exit after spawn.
            kill_timeout: Seconds to wait after SIGTERM before SIGKILL.
            read_size: Max bytes per stdout read.
        """
        super().__init__()
        self.params = params
        self.name = name or os.path.basename(params.command)
        self.startup_grace = startup_grace
        self.kill_timeout = kill_timeout
        self.read_size = read_size
        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task] = []
        self._terminated = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def start(self) -> None:
        """Launch the tool server subprocess."""
        if self._process is not None:
            raise SpawnError(f"[{self.name}] transport already started")

        command = self.params.command_line()
        logger.info(f"[{self.name}] starting stdio transport: {' '.join(command)}")
        if self.params.allowed_directory:
            logger.debug(f"[{self.name}] working directory: {self.params.allowed_directory}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.params.allowed_directory,
                env=self.params.build_env(),
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise SpawnError(f"[{self.name}] cannot launch {self.params.command}: {e}") from e
        except OSError as e:
            raise SpawnError(f"[{self.name}] failed to spawn {self.params.command}: {e}") from e

        stderr_task = asyncio.create_task(self._pump_stderr())
        self._tasks.append(stderr_task)

        if self.startup_grace > 0:
            try:
                returncode = await asyncio.wait_for(
                    asyncio.shield(self._process.wait()), self.startup_grace
                )
            except asyncio.TimeoutError:
                pass
            else:
                await asyncio.gather(stderr_task, return_exceptions=True)
                self._terminated = True
                raise SpawnError(
                    f"[{self.name}] process exited immediately with code {returncode}"
                )

        self._tasks.append(asyncio.create_task(self._pump_stdout()))

    async def write(self, data: bytes) -> None:
        """Write bytes to the child's stdin and wait for the pipe to drain."""
        process = self._process
        if process is None or process.stdin is None:
            raise WriteError(f"[{self.name}] transport not running. Call start() first.")
        if self._terminated or process.returncode is not None or process.stdin.is_closing():
            raise WriteError(f"[{self.name}] tool server process has exited")
        try:
            process.stdin.write(data)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise WriteError(f"[{self.name}] stdin pipe closed: {e}") from e

    async def terminate(self) -> None:
        """Close stdin, SIGTERM, then SIGKILL if the child does not exit."""
        if self._terminated:
            return
        self._terminated = True

        process = self._process
        if process is None:
            return

        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()

        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), self.kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[{self.name}] did not exit after SIGTERM, killing")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        # Pipes can outlive the child when it leaves grandchildren behind.
        if self._tasks:
            _, still_running = await asyncio.wait(self._tasks, timeout=self.kill_timeout)
            for task in still_running:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._emit_exit(process.returncode)
        logger.info(f"[{self.name}] stdio transport stopped")

    def is_alive(self) -> bool:
        """Check if the subprocess is running."""
        return (
            self._process is not None
            and self._process.returncode is None
            and not self._terminated
        )

    async def _pump_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        while True:
            chunk = await stdout.read(self.read_size)
            if not chunk:
                break
            self._emit_data(chunk)
        returncode = await self._process.wait()
        if returncode != 0 and not self._terminated:
            logger.warning(f"[{self.name}] tool server exited with code {returncode}")
        else:
            logger.info(f"[{self.name}] tool server exited with code {returncode}")
        self._emit_exit(returncode)

    async def _pump_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        stderr = self._process.stderr
        while True:
            line = await stderr.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.info(f"[{self.name}] stderr: {text}")
