"""Engine configuration models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class EngineConfig(BaseModel):
    """Limits and policies applied to every workflow run.

    Example:
        >>> config = EngineConfig(max_loop_iterations=50, fan_out="concurrent")
    """

    model_config = ConfigDict(frozen=True)

    default_max_iterations: int = Field(
        10, ge=1, description="maxIterations used when a while node declares none"
    )
    max_loop_iterations: int = Field(
        100, ge=1, le=10_000, description="Hard cap clamping any node's maxIterations"
    )
    max_steps: int = Field(
        1000, ge=1, description="Maximum node dispatches per run segment"
    )
    node_timeout: float = Field(300.0, gt=0, description="Per-node timeout in seconds")
    max_node_retries: int = Field(
        0, ge=0, le=10, description="Retries for handler errors flagged retryable"
    )
    retry_backoff: float = Field(1.0, gt=0, description="Base retry delay in seconds")
    continue_on_failure: bool = Field(
        False, description="Keep dispatching unrelated branches after a node fails"
    )
    fan_out: Literal["sequential", "concurrent"] = Field(
        "sequential", description="How multiple unconditional successors are run"
    )
    http_timeout: float = Field(30.0, gt=0, description="Default HTTP node timeout")
    transform_timeout: float = Field(3.0, gt=0, description="Transform script wall clock")
    transform_max_script_chars: int = Field(5000, ge=1)
    transform_max_output_bytes: int = Field(1_048_576, ge=1)
    extract_max_input_chars: int = Field(10_000, ge=1)
    max_tool_rounds: int = Field(
        5, ge=1, le=50, description="Agent tool-call rounds before giving up"
    )
    default_approval_timeout_minutes: int = Field(60, ge=1)
