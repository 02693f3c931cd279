"""HTTP API for FlowChord."""

from flowchord.api.app import create_app

__all__ = ["create_app"]
