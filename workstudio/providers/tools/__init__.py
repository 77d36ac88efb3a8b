"""Tool definitions and executor for agent tool calling."""

from .definitions import PROPOSAL_ACK, TOOL_DEFINITIONS, ToolExecutor, ToolResult

__all__ = [
    "PROPOSAL_ACK",
    "TOOL_DEFINITIONS",
    "ToolExecutor",
    "ToolResult",
]
