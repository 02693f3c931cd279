"""API routers."""

from flowchord.api.routes import approvals, executions, health, workflows

__all__ = ["approvals", "executions", "health", "workflows"]
