"""
Stdio Transport Tests
---------------------
Spawning, piping and stopping real child processes.
"""

import asyncio
import logging
import sys

import pytest

from mcp_bridge.errors import SpawnError, WriteError
from mcp_bridge.transport import ServerParameters, StdioTransport

CAT = "import sys\nfor line in sys.stdin:\n    sys.stdout.write(line)\n    sys.stdout.flush()\n"


def python(code: str, **kwargs) -> ServerParameters:
    return ServerParameters(command=sys.executable, args=("-c", code), **kwargs)


class Recorder:
    def __init__(self):
        self.data = bytearray()
        self.exits = []
        self.exited = asyncio.Event()

    def on_data(self, chunk: bytes) -> None:
        self.data.extend(chunk)

    def on_exit(self, returncode) -> None:
        self.exits.append(returncode)
        self.exited.set()

    async def wait_for_data(self, expected: bytes, timeout: float = 5.0) -> None:
        async def _poll():
            while expected not in self.data:
                await asyncio.sleep(0.01)
        await asyncio.wait_for(_poll(), timeout)


async def started(params: ServerParameters, **kwargs) -> tuple[StdioTransport, Recorder]:
    transport = StdioTransport(params, **kwargs)
    recorder = Recorder()
    transport.attach(recorder.on_data, recorder.on_exit)
    await transport.start()
    return transport, recorder


class TestSpawn:
    """Launch failures surface as SpawnError."""

    async def test_missing_executable(self, missing_params):
        transport = StdioTransport(missing_params)

        with pytest.raises(SpawnError, match="cannot launch"):
            await transport.start()
        assert not transport.is_alive()

    async def test_missing_working_directory(self, tmp_path):
        params = python(CAT, allowed_directory=str(tmp_path / "missing"))

        with pytest.raises(SpawnError):
            await StdioTransport(params).start()

    async def test_immediate_exit(self):
        """A child that dies during the startup grace period is a spawn failure."""
        transport = StdioTransport(python("raise SystemExit(3)"), startup_grace=5.0)

        with pytest.raises(SpawnError, match="exited immediately with code 3"):
            await transport.start()
        assert not transport.is_alive()


class TestPipes:
    """Bytes in, bytes out, stderr to the log."""

    async def test_round_trip(self):
        transport, recorder = await started(python(CAT))
        try:
            assert transport.is_alive()
            assert transport.pid is not None

            await transport.write(b'{"jsonrpc": "2.0", "id": 1, "result": "ok"}\n')
            await recorder.wait_for_data(b'"result": "ok"}\n')
        finally:
            await transport.terminate()

    async def test_env_overrides_reach_child(self):
        code = "import os, sys\nprint(os.environ['BRIDGE_TEST_VALUE'], flush=True)\nsys.stdin.read()\n"
        transport, recorder = await started(python(code, env={"BRIDGE_TEST_VALUE": "from-config"}))
        try:
            await recorder.wait_for_data(b"from-config")
        finally:
            await transport.terminate()

    async def test_working_directory(self, tmp_path):
        code = "import os, sys\nprint(os.getcwd(), flush=True)\nsys.stdin.read()\n"
        transport, recorder = await started(python(code, allowed_directory=str(tmp_path)))
        try:
            await recorder.wait_for_data(tmp_path.name.encode())
        finally:
            await transport.terminate()

    async def test_stderr_is_logged_not_delivered(self, caplog):
        code = "import sys\nsys.stderr.write('warming up\\n')\nsys.stderr.flush()\nsys.stdin.read()\n"
        caplog.set_level(logging.INFO, logger="mcp_bridge.transport")
        transport, recorder = await started(python(code), name="noisy")
        try:
            async def _logged():
                while "warming up" not in caplog.text:
                    await asyncio.sleep(0.01)
            await asyncio.wait_for(_logged(), 5.0)
        finally:
            await transport.terminate()

        assert "[noisy] stderr: warming up" in caplog.text
        assert bytes(recorder.data) == b""


class TestTermination:
    """terminate() and unexpected exits."""

    async def test_terminate_twice_reports_exit_once(self):
        transport, recorder = await started(python(CAT))

        await transport.terminate()
        await transport.terminate()

        assert len(recorder.exits) == 1
        assert not transport.is_alive()

    async def test_write_after_terminate(self):
        transport, _ = await started(python(CAT))
        await transport.terminate()

        with pytest.raises(WriteError):
            await transport.write(b"{}\n")

    async def test_write_before_start(self):
        with pytest.raises(WriteError, match="Call start"):
            await StdioTransport(python(CAT)).write(b"{}\n")

    async def test_child_exit_reported(self):
        """A child that finishes on its own reports its exit code."""
        code = "import sys\nsys.stdin.readline()\nraise SystemExit(4)\n"
        transport, recorder = await started(python(code))

        await transport.write(b"go\n")
        await asyncio.wait_for(recorder.exited.wait(), 5.0)

        assert recorder.exits == [4]
        assert not transport.is_alive()
        await transport.terminate()
        assert recorder.exits == [4]

    async def test_sigterm_ignored_falls_back_to_kill(self):
        code = (
            "import signal, sys, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('armed', flush=True)\n"
            "time.sleep(60)\n"
        )
        transport, recorder = await started(python(code), kill_timeout=0.5)
        await recorder.wait_for_data(b"armed")

        await asyncio.wait_for(transport.terminate(), 10.0)

        assert len(recorder.exits) == 1
        assert transport.returncode is not None
