"""Node handlers, one per node kind."""

from flowchord.nodes.agent import AgentNodeHandler
from flowchord.nodes.base import BaseNodeHandler, NodeContext, NodeServices
from flowchord.nodes.extract import ExtractNodeHandler
from flowchord.nodes.http import HTTPNodeHandler
from flowchord.nodes.logic import IfElseNodeHandler, UserApprovalNodeHandler, WhileNodeHandler
from flowchord.nodes.mcp import MCPNodeHandler
from flowchord.nodes.registry import HandlerRegistry
from flowchord.nodes.set_state import SetStateNodeHandler
from flowchord.nodes.start import StartNodeHandler
from flowchord.nodes.terminal import EndNodeHandler, NoteNodeHandler
from flowchord.nodes.transform import TransformNodeHandler

__all__ = [
    "AgentNodeHandler",
    "BaseNodeHandler",
    "EndNodeHandler",
    "ExtractNodeHandler",
    "HTTPNodeHandler",
    "HandlerRegistry",
    "IfElseNodeHandler",
    "MCPNodeHandler",
    "NodeContext",
    "NodeServices",
    "NoteNodeHandler",
    "SetStateNodeHandler",
    "StartNodeHandler",
    "TransformNodeHandler",
    "UserApprovalNodeHandler",
    "WhileNodeHandler",
]
