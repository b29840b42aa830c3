"""
MCP Bridge Test Configuration
-----------------------------
Shared fixtures for all tests.

Unit tests talk to in-memory fakes (tests/fakes.py). Integration tests
spawn the bundled Python tool servers with the running interpreter.
"""

import sys
from pathlib import Path

import pytest

# Add project root and this directory to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).parent))

from mcp_bridge.transport import ServerParameters

SERVERS_DIR = PROJECT_ROOT / "mcp_bridge" / "servers"


@pytest.fixture
def echo_params() -> ServerParameters:
    """Launch spec for the echo/sleep/fail server."""
    return ServerParameters(command=sys.executable, args=(str(SERVERS_DIR / "echo.py"),))


@pytest.fixture
def files_params(tmp_path) -> ServerParameters:
    """Launch spec for the files server, sandboxed to a temp directory."""
    return ServerParameters(
        command=sys.executable,
        args=(str(SERVERS_DIR / "files.py"),),
        allowed_directory=str(tmp_path),
    )


@pytest.fixture
def missing_params(tmp_path) -> ServerParameters:
    """Launch spec for an executable that does not exist."""
    return ServerParameters(command=str(tmp_path / "no-such-server"))
