"""Service configuration using Pydantic Settings."""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings

from flowchord.core.config import EngineConfig


class Settings(BaseSettings):
    """Service settings loaded from FLOWCHORD_* environment variables."""

    # Application
    app_name: str = "FlowChord"
    app_version: str = "0.1.0"
    environment: str = "development"

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "json" for production

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 8000
    scheduler_enabled: bool = True

    # LLM Providers
    openai_api_key: str = ""
    openai_base_url: str = ""
    anthropic_api_key: str = ""
    default_model: str = "gpt-4o-mini"
    llm_timeout: float = 120.0
    mock_agent_response: str = ""

    # MCP servers: JSON list of server configs, inline or a path to a .json file
    mcp_servers: str = ""

    # Engine
    max_loop_iterations: int = 100
    max_steps: int = 1000
    node_timeout: float = 300.0
    continue_on_failure: bool = False
    fan_out: str = "sequential"
    http_timeout: float = 30.0
    transform_timeout: float = 3.0
    default_approval_timeout_minutes: int = 60
    max_concurrent_executions: int = 50
    retained_event_streams: int = 100  # finished runs kept for SSE replay

    # Storage
    checkpoint_dir: str = ""
    approval_sweep_interval_seconds: int = 60

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def mcp_server_configs(self) -> list[dict[str, Any]]:
        raw = self.mcp_servers.strip()
        if not raw:
            return []
        if not raw.startswith("["):
            raw = Path(raw).read_text(encoding="utf-8")
        servers = json.loads(raw)
        if not isinstance(servers, list):
            raise ValueError("FLOWCHORD_MCP_SERVERS must hold a JSON list")
        return servers

    def engine_config(self) -> EngineConfig:
        """Build the engine limits from these settings."""
        return EngineConfig(
            max_loop_iterations=self.max_loop_iterations,
            max_steps=self.max_steps,
            node_timeout=self.node_timeout,
            continue_on_failure=self.continue_on_failure,
            fan_out=self.fan_out,
            http_timeout=self.http_timeout,
            transform_timeout=self.transform_timeout,
            default_approval_timeout_minutes=self.default_approval_timeout_minutes,
        )

    model_config = {"env_prefix": "FLOWCHORD_", "case_sensitive": False}


@lru_cache
def get_settings() -> Settings:
    """Get cached service settings."""
    return Settings()
