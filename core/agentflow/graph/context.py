"""
Execution Context - the mutable state of one workflow run.

A context is created fresh for every run and never shared. It holds the
triggering input, the variable map nodes read and write, the append-only
history of NodeResults and the run's cancellation token.

No operation on the context raises: reads of unset variables return the
``ABSENT`` sentinel.
"""

import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from agentflow.graph.node import NodeResult
from agentflow.runtime.cancellation import CancellationToken


class _Absent:
    """Sentinel for a variable that has never been set. Falsy."""

    _instance = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


class TriggerContext(BaseModel):
    """What started a run: a chat message, a schedule tick, a manual run..."""

    type: str = "manual"
    message: str = ""
    chat_id: str | None = None
    participant_id: str | None = None
    message_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExecutionContext:
    """State threaded through one run."""

    def __init__(
        self,
        initial_input: str | TriggerContext | Mapping[str, Any] | None,
        agent_id: str,
        cancellation: CancellationToken | None = None,
        run_id: str | None = None,
    ):
        self.agent_id = agent_id
        self.run_id = run_id or uuid.uuid4().hex
        self.initial_input = initial_input
        self.cancellation = cancellation or CancellationToken()
        self._variables: dict[str, Any] = {}
        self._history: list[NodeResult] = []
        self._seed(initial_input)

    def _seed(self, initial_input: Any) -> None:
        if initial_input is None:
            return
        if isinstance(initial_input, TriggerContext):
            if initial_input.message:
                self._variables["input"] = initial_input.message
            self._variables["trigger"] = initial_input.model_dump()
        elif isinstance(initial_input, Mapping):
            self._variables.update(initial_input)
            self._variables.setdefault("input", dict(initial_input))
        else:
            self._variables["input"] = initial_input

    # Variables

    def get_variable(self, name: str) -> Any:
        return self._variables.get(name, ABSENT)

    def set_variable(self, name: str, value: Any) -> None:
        self._variables[name] = value

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    @property
    def variables(self) -> dict[str, Any]:
        """Shallow snapshot; mutating it does not affect the context."""
        return dict(self._variables)

    # History

    def append_result(self, result: NodeResult) -> None:
        self._history.append(result)

    @property
    def history(self) -> tuple[NodeResult, ...]:
        return tuple(self._history)

    @property
    def last_result(self) -> NodeResult | None:
        return self._history[-1] if self._history else None

    # Cancellation

    def is_cancelled(self) -> bool:
        return self.cancellation.is_cancelled


class ExpressionScope(dict):
    """Variable scope for condition expressions: unset names read as ABSENT."""

    def __missing__(self, key: str) -> Any:
        return ABSENT


def expression_scope(context: ExecutionContext) -> ExpressionScope:
    """Names visible to condition/terminal expressions."""
    scope = ExpressionScope(context.variables)
    scope.setdefault("absent", ABSENT)
    last = context.last_result
    scope.setdefault("last_output", last.output if last is not None else None)
    return scope
