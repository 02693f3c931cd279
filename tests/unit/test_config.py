"""Unit tests for service settings and engine configuration."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from flowchord.config import Settings
from flowchord.core.config import EngineConfig


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch) -> None:
        """Defaults apply when nothing is set."""
        monkeypatch.delenv("FLOWCHORD_MAX_STEPS", raising=False)
        settings = Settings()

        assert settings.app_name == "FlowChord"
        assert settings.max_steps == 1000
        assert settings.mcp_server_configs() == []

    def test_env_prefix(self, monkeypatch) -> None:
        """FLOWCHORD_* variables override defaults."""
        monkeypatch.setenv("FLOWCHORD_MAX_STEPS", "25")
        monkeypatch.setenv("FLOWCHORD_FAN_OUT", "concurrent")
        monkeypatch.setenv("FLOWCHORD_MOCK_AGENT_RESPONSE", "canned")

        settings = Settings()

        assert settings.max_steps == 25
        assert settings.fan_out == "concurrent"
        assert settings.mock_agent_response == "canned"

    def test_cors_origins_list(self) -> None:
        """Comma-separated origins are split and trimmed."""
        settings = Settings(cors_origins="http://a.test, http://b.test,")

        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_mcp_servers_inline(self) -> None:
        """An inline JSON list is parsed."""
        raw = json.dumps([{"server_id": "docs", "command": "docs-server"}])

        settings = Settings(mcp_servers=raw)

        assert settings.mcp_server_configs() == [{"server_id": "docs", "command": "docs-server"}]

    def test_mcp_servers_file(self, tmp_path) -> None:
        """A path is read as a JSON file."""
        path = tmp_path / "servers.json"
        path.write_text(json.dumps([{"server_id": "fs", "command": "fs-server"}]), encoding="utf-8")

        settings = Settings(mcp_servers=str(path))

        assert settings.mcp_server_configs()[0]["server_id"] == "fs"

    def test_mcp_servers_must_be_list(self, tmp_path) -> None:
        """A JSON object is rejected."""
        path = tmp_path / "servers.json"
        path.write_text('{"server_id": "fs"}', encoding="utf-8")

        with pytest.raises(ValueError, match="JSON list"):
            Settings(mcp_servers=str(path)).mcp_server_configs()

    def test_engine_config(self) -> None:
        """Engine limits are carried into EngineConfig."""
        settings = Settings(
            max_loop_iterations=7,
            max_steps=50,
            continue_on_failure=True,
            fan_out="concurrent",
            transform_timeout=1.5,
        )

        config = settings.engine_config()

        assert config.max_loop_iterations == 7
        assert config.max_steps == 50
        assert config.continue_on_failure is True
        assert config.fan_out == "concurrent"
        assert config.transform_timeout == 1.5

    def test_bad_fan_out(self) -> None:
        """Unknown fan-out modes fail when the engine config is built."""
        with pytest.raises(ValidationError):
            Settings(fan_out="parallel-ish").engine_config()


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self) -> None:
        """Default limits."""
        config = EngineConfig()

        assert config.default_max_iterations == 10
        assert config.max_loop_iterations == 100
        assert config.fan_out == "sequential"
        assert config.continue_on_failure is False

    def test_frozen(self) -> None:
        """Configs are immutable once built."""
        config = EngineConfig()

        with pytest.raises(ValidationError):
            config.max_steps = 5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_loop_iterations": 0},
            {"max_steps": 0},
            {"node_timeout": 0},
            {"max_tool_rounds": 100},
        ],
    )
    def test_bounds(self, kwargs) -> None:
        """Out-of-range limits are rejected."""
        with pytest.raises(ValidationError):
            EngineConfig(**kwargs)
