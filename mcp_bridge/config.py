"""
Bridge configuration.

Loaded from bridge_config.json in the working directory (or an explicit
path). ${VAR} placeholders are filled from the environment after .env is
loaded. Missing keys fall back to the defaults below.

    {
      "mcpServers": {
        "filesystem": {"command": "node", "args": ["..."], "allowedDirectory": "..."},
        "flux": {"command": "node", "args": ["..."], "env": {"REPLICATE_API_TOKEN": "${REPLICATE_API_TOKEN}"}}
      },
      "llm": {"model": "qwen2.5-coder:7b-instruct", "baseUrl": "http://localhost:11434/v1"},
      "systemPrompt": "...",
      "primaryServer": "filesystem",
      "callTimeout": 30,
      "maxRounds": 10
    }
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from mcp_bridge.directory import DUPLICATE_POLICIES
from mcp_bridge.errors import ConfigError
from mcp_bridge.llm import LLMConfig
from mcp_bridge.transport import ServerParameters

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "bridge_config.json"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant that can use tools to help answer questions."

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def _default_servers() -> dict[str, ServerParameters]:
    home = Path.home()
    workspace = str(home / "bridgeworkspace")
    return {
        "filesystem": ServerParameters(
            command="node",
            args=(
                str(home / "node_modules" / "@modelcontextprotocol" / "server-filesystem" / "dist" / "index.js"),
                workspace,
            ),
            allowed_directory=workspace,
        ),
    }


@dataclass
class BridgeConfig:
    """Everything the bridge needs to start."""
    servers: dict[str, ServerParameters] = field(default_factory=_default_servers)
    llm: LLMConfig = field(default_factory=LLMConfig)
    system_prompt: str | None = DEFAULT_SYSTEM_PROMPT
    primary_server: str | None = None
    call_timeout: float = 30.0
    handshake_timeout: float = 30.0
    max_rounds: int = 10
    duplicate_tools: str = "last_wins"

    def __post_init__(self):
        if self.max_rounds < 1:
            raise ConfigError(f"maxRounds must be at least 1, got {self.max_rounds}")
        if self.call_timeout <= 0 or self.handshake_timeout <= 0:
            raise ConfigError("Timeouts must be positive")
        if self.duplicate_tools not in DUPLICATE_POLICIES:
            raise ConfigError(
                f"Unknown duplicateTools policy '{self.duplicate_tools}'. "
                f"Available: {list(DUPLICATE_POLICIES)}"
            )
        if self.primary_server is not None and self.primary_server not in self.servers:
            raise ConfigError(f"primaryServer '{self.primary_server}' is not in mcpServers")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BridgeConfig":
        """Build from the bridge_config.json layout."""
        servers_raw = data.get("mcpServers")
        if servers_raw is None:
            servers = _default_servers()
        elif isinstance(servers_raw, dict):
            servers = {}
            for name, entry in servers_raw.items():
                if not isinstance(entry, dict) or "command" not in entry:
                    raise ConfigError(f"MCP server '{name}' needs a 'command'")
                servers[name] = ServerParameters.from_dict(entry)
        else:
            raise ConfigError("'mcpServers' must be an object")

        llm_raw = data.get("llm") or {}
        if not isinstance(llm_raw, dict):
            raise ConfigError("'llm' must be an object")

        try:
            llm = LLMConfig.from_dict(llm_raw)
            call_timeout = float(data.get("callTimeout", 30.0))
            handshake_timeout = float(data.get("handshakeTimeout", 30.0))
            max_rounds = int(data.get("maxRounds", 10))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid bridge configuration: {e}") from e

        return cls(
            servers=servers,
            llm=llm,
            system_prompt=data.get("systemPrompt", DEFAULT_SYSTEM_PROMPT),
            primary_server=data.get("primaryServer"),
            call_timeout=call_timeout,
            handshake_timeout=handshake_timeout,
            max_rounds=max_rounds,
            duplicate_tools=data.get("duplicateTools", "last_wins"),
        )


def interpolate_env(value: Any) -> Any:
    """Replace ${VAR} in every string of a JSON-like value."""
    if isinstance(value, str):
        def _lookup(match: re.Match) -> str:
            name = match.group(1)
            found = os.environ.get(name)
            if not found:
                logger.warning(f"Environment variable {name} not found")
                return match.group(0)
            return found
        return _PLACEHOLDER.sub(_lookup, value)
    if isinstance(value, list):
        return [interpolate_env(item) for item in value]
    if isinstance(value, dict):
        return {key: interpolate_env(item) for key, item in value.items()}
    return value


def _merge(defaults: dict[str, Any], loaded: dict[str, Any]) -> dict[str, Any]:
    merged = {**defaults, **loaded}
    for key in ("mcpServers", "llm"):
        if isinstance(defaults.get(key), dict) and isinstance(loaded.get(key), dict):
            merged[key] = {**defaults[key], **loaded[key]}
    return merged


def _default_dict() -> dict[str, Any]:
    return {
        "mcpServers": {
            name: {
                "command": params.command,
                "args": list(params.args),
                "allowedDirectory": params.allowed_directory,
            }
            for name, params in _default_servers().items()
        },
        "llm": {
            "model": LLMConfig.model,
            "baseUrl": LLMConfig.base_url,
            "apiKey": "ollama",
            "temperature": LLMConfig.temperature,
            "maxTokens": LLMConfig.max_tokens,
        },
        "systemPrompt": DEFAULT_SYSTEM_PROMPT,
    }


def load_bridge_config(path: str | os.PathLike | None = None, load_env: bool = True) -> BridgeConfig:
    """
    Load bridge_config.json, merged over the defaults.

    A missing or unreadable file logs a warning and yields the defaults.
    Structurally invalid settings raise ConfigError.
    """
    if load_env:
        load_dotenv()

    config_path = Path(path) if path is not None else Path.cwd() / CONFIG_FILENAME
    defaults = _default_dict()
    try:
        loaded = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not load {config_path}: {e}")
        logger.warning("Using default configuration")
        return BridgeConfig.from_dict(defaults)

    if not isinstance(loaded, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    logger.info(f"Loaded bridge configuration from {config_path}")

    merged = _merge(defaults, interpolate_env(loaded))

    for name, server in (merged.get("mcpServers") or {}).items():
        for key, value in ((server or {}).get("env") or {}).items():
            if isinstance(value, str) and "${" in value:
                logger.warning(f"MCP '{name}' is missing required environment variable: {key}")

    return BridgeConfig.from_dict(merged)
