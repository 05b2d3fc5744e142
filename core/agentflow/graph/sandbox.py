"""
Script sandbox for script nodes.

Scripts are Python source executed with a restricted builtins table and a
pre-pass over the AST that rejects imports and underscore attribute access.
Workflow variables are exposed as globals (and together as ``vars``);
``print`` and ``console.log`` write to a per-run buffer instead of stdout, so
concurrent scripts never mix their output.

The sandbox runs synchronously and is meant to be called from a worker
thread. A ``sys.settrace`` hook installed on that thread enforces the
wall-clock deadline and observes the run's cancellation token between lines.
The hook only fires in script frames, so a single long builtin call runs to
completion; ``range`` is length-capped to keep the cheapest such loop short,
and ScriptExecutor bounds the overall wait from the event loop side.
"""

import ast
import io
import json
import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

from agentflow.runtime.cancellation import CancellationToken, OperationCancelledError

SCRIPT_FILENAME = "<script>"

MAX_RANGE_LENGTH = 10_000_000


def bounded_range(*args: int) -> range:
    """``range`` that refuses sequences longer than MAX_RANGE_LENGTH."""
    values = range(*args)
    try:
        too_long = len(values) > MAX_RANGE_LENGTH
    except OverflowError:
        too_long = True
    if too_long:
        raise ValueError(f"range() longer than {MAX_RANGE_LENGTH:,} items is not allowed")
    return values


SAFE_BUILTINS: dict[str, Any] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "divmod": divmod,
    "enumerate": enumerate,
    "filter": filter,
    "float": float,
    "int": int,
    "isinstance": isinstance,
    "len": len,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "range": bounded_range,
    "reversed": reversed,
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
    "True": True,
    "False": False,
    "None": None,
    "Exception": Exception,
    "ValueError": ValueError,
    "TypeError": TypeError,
    "KeyError": KeyError,
}


class ScriptTimeoutError(Exception):
    """The script exceeded its wall-clock budget."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Script timed out after {timeout_seconds:g}s")


class ScriptSecurityError(Exception):
    """The script uses a construct the sandbox does not allow."""


@dataclass
class ScriptOutcome:
    """What a finished script produced."""

    console: str = ""
    result: Any = None
    has_result: bool = False
    updates: dict[str, Any] = field(default_factory=dict)


def _format_console_arg(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict | list | tuple | bool) or value is None:
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def check_script(code: str) -> ast.Module:
    """Parse *code* and reject imports and private attribute access."""
    tree = ast.parse(code, filename=SCRIPT_FILENAME, mode="exec")
    for node in ast.walk(tree):
        if isinstance(node, ast.Import | ast.ImportFrom):
            raise ScriptSecurityError("Imports are not allowed in scripts")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ScriptSecurityError(f"Access to '{node.attr}' is not allowed")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise ScriptSecurityError(f"Access to '{node.id}' is not allowed")
        if isinstance(node, ast.Global | ast.Nonlocal):
            raise ScriptSecurityError("global/nonlocal statements are not allowed")
    return tree


class ScriptSandbox:
    """Runs one script to completion under a deadline."""

    def __init__(self, timeout_seconds: float = 5.0):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.timeout_seconds = timeout_seconds

    def run(
        self,
        code: str,
        variables: Mapping[str, Any],
        cancellation: CancellationToken | None = None,
    ) -> ScriptOutcome:
        """
        Execute *code* with *variables* bound as globals.

        Raises:
            SyntaxError / ScriptSecurityError: before anything runs
            ScriptTimeoutError: deadline exceeded
            OperationCancelledError: the token was cancelled mid-script
            Exception: anything the script itself raises
        """
        tree = check_script(code)
        compiled = compile(tree, SCRIPT_FILENAME, "exec")

        buffer = io.StringIO()
        outcome = ScriptOutcome()

        def _print(*args: Any, sep: str = " ", end: str = "\n") -> None:
            buffer.write(sep.join(str(a) for a in args) + end)

        def _log(*args: Any) -> None:
            buffer.write(" ".join(_format_console_arg(a) for a in args) + "\n")

        def _set_variable(name: str, value: Any) -> None:
            if not isinstance(name, str) or not name:
                raise ValueError("Variable name must be a non-empty string")
            outcome.updates[name] = value

        scope: dict[str, Any] = {"__builtins__": dict(SAFE_BUILTINS)}
        scope.update(variables)
        # `result` is the script's return slot; the variable stays readable via vars
        scope.pop("result", None)
        scope["vars"] = dict(variables)
        scope["print"] = _print
        scope["console"] = SimpleNamespace(log=_log, info=_log, warn=_log, error=_log)
        scope["set_variable"] = _set_variable

        deadline = time.monotonic() + self.timeout_seconds

        def _tracer(frame, event, arg):
            if frame.f_code.co_filename != SCRIPT_FILENAME:
                return None
            if time.monotonic() > deadline:
                raise ScriptTimeoutError(self.timeout_seconds)
            if cancellation is not None and cancellation.is_cancelled:
                raise OperationCancelledError("Script cancelled")
            return _tracer

        previous = sys.gettrace()
        sys.settrace(_tracer)
        try:
            exec(compiled, scope)
        finally:
            sys.settrace(previous)

        outcome.console = buffer.getvalue()
        if "result" in scope:
            outcome.result = scope["result"]
            outcome.has_result = True
        return outcome
