"""Tool providers for tool nodes."""

from agentflow.runner.tool_registry import (
    Tool,
    ToolProvider,
    ToolRegistry,
    UnknownToolError,
    tool,
)

__all__ = [
    "Tool",
    "ToolProvider",
    "ToolRegistry",
    "UnknownToolError",
    "tool",
]
