"""Tool discovery and registration for workflow runs.

Tool nodes call ``ToolProvider.invoke(tool_id, args, cancellation)``. The
bundled ``ToolRegistry`` maps tool ids to Python callables, registered
directly or discovered from a ``tools.py`` file of ``@tool`` functions.
"""

import asyncio
import importlib.util
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agentflow.runtime.cancellation import CancellationToken

logger = logging.getLogger(__name__)

# Annotation -> JSON schema type; anything else is described as a string
JSON_TYPES: dict[Any, str] = {
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}

TOOL_MARKER = "_tool_metadata"


class UnknownToolError(LookupError):
    """Raised when a tool node names a tool nobody registered."""

    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(f"Unknown tool: {tool_id}")


@dataclass
class Tool:
    """Description of a tool a workflow can invoke."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


class ToolProvider(ABC):
    """Anything that can run a named tool for a tool node."""

    @abstractmethod
    async def invoke(
        self,
        tool_id: str,
        args: dict[str, Any],
        cancellation: CancellationToken,
    ) -> Any:
        """
        Run *tool_id* with *args*.

        Raises:
            UnknownToolError: no such tool
            OperationCancelledError: if cancelled mid-call
            Exception: whatever the tool raises
        """


@dataclass
class RegisteredTool:
    tool: Tool
    executor: Callable[[dict], Any]


def parameters_schema(func: Callable) -> dict[str, Any]:
    """JSON schema of *func*'s named parameters; those without defaults are required."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in inspect.signature(func).parameters.values():
        if param.name in ("self", "cls") or param.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        ):
            continue
        properties[param.name] = {"type": JSON_TYPES.get(param.annotation, "string")}
        if param.default is inspect.Parameter.empty:
            required.append(param.name)
    return {"type": "object", "properties": properties, "required": required}


class ToolRegistry(ToolProvider):
    """
    In-process tool provider.

    Executors take the argument dict and may be plain or coroutine functions.
    Plain ones run in a worker thread so a slow tool never stalls the event
    loop that other runs share.
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(self, name: str, tool: Tool, executor: Callable[[dict], Any]) -> None:
        if name in self._tools:
            logger.warning("Tool '%s' re-registered; replacing previous executor", name)
        self._tools[name] = RegisteredTool(tool=tool, executor=executor)

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """Register *func* as a tool called with keyword arguments.

        The tool name defaults to the function name and the description to
        its docstring.
        """
        tool_name = name or func.__name__
        definition = Tool(
            name=tool_name,
            description=description or inspect.getdoc(func) or f"Execute {tool_name}",
            parameters=parameters_schema(func),
        )

        if inspect.iscoroutinefunction(func):

            async def call_async(args: dict) -> Any:
                return await func(**args)

            self.register(tool_name, definition, call_async)
        else:
            self.register(tool_name, definition, lambda args: func(**args))

    def discover_from_module(self, module_path: Path) -> int:
        """Import *module_path* and register every ``@tool`` function in it.

        Returns the number of tools registered (0 for a missing file).
        """
        module_path = Path(module_path)
        if not module_path.is_file():
            return 0

        module_spec = importlib.util.spec_from_file_location(
            f"agentflow_tools_{module_path.stem}", module_path
        )
        if module_spec is None or module_spec.loader is None:
            return 0
        module = importlib.util.module_from_spec(module_spec)
        module_spec.loader.exec_module(module)

        found = 0
        for attr, obj in inspect.getmembers(module, callable):
            metadata = getattr(obj, TOOL_MARKER, None)
            if metadata is None:
                continue
            self.register_function(
                obj, name=metadata.get("name") or attr, description=metadata.get("description")
            )
            found += 1

        logger.info("Discovered %d tool(s) in %s", found, module_path)
        return found

    async def invoke(
        self,
        tool_id: str,
        args: dict[str, Any],
        cancellation: CancellationToken,
    ) -> Any:
        try:
            executor = self._tools[tool_id].executor
        except KeyError:
            raise UnknownToolError(tool_id) from None

        if inspect.iscoroutinefunction(executor):
            call = executor(args)
        else:
            call = asyncio.to_thread(executor, args)
        return await cancellation.run(call)

    def get_tools(self) -> dict[str, Tool]:
        return {name: registered.tool for name, registered in self._tools.items()}

    def get_registered_names(self) -> list[str]:
        return list(self._tools)

    def has_tool(self, name: str) -> bool:
        return name in self._tools


def tool(description: str | None = None, name: str | None = None) -> Callable:
    """
    Mark a function for ``ToolRegistry.discover_from_module``.

    Usage:
        @tool(description="Look up the weather for a city")
        def get_weather(city: str) -> dict:
            return {"city": city, "forecast": "sunny"}
    """

    def decorator(func: Callable) -> Callable:
        setattr(
            func,
            TOOL_MARKER,
            {"name": name or func.__name__, "description": description or func.__doc__},
        )
        return func

    return decorator
