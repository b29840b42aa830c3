"""
Configuration Tests
-------------------
bridge_config.json loading, env interpolation and validation.
"""

import json

import pytest

from mcp_bridge.config import BridgeConfig, interpolate_env, load_bridge_config
from mcp_bridge.errors import ConfigError
from mcp_bridge.transport import ServerParameters


def write_config(tmp_path, data):
    path = tmp_path / "bridge_config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestInterpolation:
    """${VAR} placeholders."""

    def test_nested_values(self, monkeypatch):
        monkeypatch.setenv("REPLICATE_API_TOKEN", "r8_secret")

        value = interpolate_env({"env": {"TOKEN": "${REPLICATE_API_TOKEN}"}, "args": ["--key=${REPLICATE_API_TOKEN}", 3]})

        assert value == {"env": {"TOKEN": "r8_secret"}, "args": ["--key=r8_secret", 3]}

    def test_missing_variable_kept(self, monkeypatch, caplog):
        monkeypatch.delenv("BRIDGE_UNSET_VAR", raising=False)

        assert interpolate_env("${BRIDGE_UNSET_VAR}") == "${BRIDGE_UNSET_VAR}"
        assert "BRIDGE_UNSET_VAR not found" in caplog.text


class TestLoad:
    """Reading the file."""

    def test_missing_file_gives_defaults(self, tmp_path, caplog):
        config = load_bridge_config(tmp_path / "absent.json", load_env=False)

        assert "filesystem" in config.servers
        assert config.llm.model == "qwen2.5-coder:7b-instruct"
        assert config.llm.api_key == "ollama"
        assert config.max_rounds == 10
        assert "Using default configuration" in caplog.text

    def test_invalid_json_gives_defaults(self, tmp_path):
        path = tmp_path / "bridge_config.json"
        path.write_text("{not json", encoding="utf-8")

        config = load_bridge_config(path, load_env=False)

        assert "filesystem" in config.servers

    def test_file_merged_over_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FLUX_TOKEN", "abc")
        path = write_config(tmp_path, {
            "mcpServers": {
                "flux": {"command": "node", "args": ["flux.js"], "env": {"REPLICATE_API_TOKEN": "${FLUX_TOKEN}"}},
            },
            "llm": {"model": "llama3.1", "temperature": 0.2},
            "primaryServer": "flux",
            "callTimeout": 12,
            "maxRounds": 4,
        })

        config = load_bridge_config(path, load_env=False)

        assert set(config.servers) == {"filesystem", "flux"}
        assert config.servers["flux"] == ServerParameters(
            command="node", args=("flux.js",), env={"REPLICATE_API_TOKEN": "abc"}
        )
        assert config.llm.model == "llama3.1"
        assert config.llm.temperature == 0.2
        assert config.llm.base_url == "http://localhost:11434/v1"
        assert config.primary_server == "flux"
        assert config.call_timeout == 12.0
        assert config.max_rounds == 4

    def test_unresolved_env_warned(self, tmp_path, monkeypatch, caplog):
        monkeypatch.delenv("BRIDGE_MISSING_TOKEN", raising=False)
        path = write_config(tmp_path, {
            "mcpServers": {"flux": {"command": "node", "env": {"TOKEN": "${BRIDGE_MISSING_TOKEN}"}}},
        })

        load_bridge_config(path, load_env=False)

        assert "MCP 'flux' is missing required environment variable: TOKEN" in caplog.text

    def test_non_object_rejected(self, tmp_path):
        path = write_config(tmp_path, ["not", "an", "object"])

        with pytest.raises(ConfigError):
            load_bridge_config(path, load_env=False)


class TestValidation:
    """Structural errors raise ConfigError."""

    def test_allowed_directory_key(self):
        config = BridgeConfig.from_dict({
            "mcpServers": {"fs": {"command": "node", "args": ["index.js", "/work"], "allowedDirectory": "/work"}},
        })

        assert config.servers["fs"].allowed_directory == "/work"

    def test_server_without_command(self):
        with pytest.raises(ConfigError, match="needs a 'command'"):
            BridgeConfig.from_dict({"mcpServers": {"fs": {"args": []}}})

    def test_unknown_primary_server(self):
        with pytest.raises(ConfigError, match="primaryServer"):
            BridgeConfig.from_dict({"mcpServers": {"fs": {"command": "node"}}, "primaryServer": "flux"})

    @pytest.mark.parametrize("settings", [
        {"maxRounds": 0},
        {"maxRounds": "many"},
        {"callTimeout": -1},
        {"duplicateTools": "first_wins"},
        {"llm": {"temperature": "warm"}},
    ])
    def test_bad_values(self, settings):
        with pytest.raises(ConfigError):
            BridgeConfig.from_dict({"mcpServers": {}, **settings})

    def test_defaults(self):
        config = BridgeConfig(servers={})

        assert config.call_timeout == 30.0
        assert config.handshake_timeout == 30.0
        assert config.duplicate_tools == "last_wins"
        assert config.primary_server is None
