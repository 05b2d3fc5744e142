"""
Node Protocol - The building blocks of an agent workflow.

Nodes are a closed set of variants keyed by ``kind``:

- prompt:    Render a prompt template and ask the inference provider
- tool:      Invoke a named tool with templated arguments
- script:    Run an embedded script; console output is the node output
- condition: Evaluate an expression and record the selected branch
- terminal:  Evaluate the final output and finish the run

Every execution produces a NodeResult. Results are immutable: they are
appended to the run history, forwarded to the caller's callback and written
to the runtime log exactly as produced.
"""

import time
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class NodeKind(StrEnum):
    """Discriminator for node variants."""

    PROMPT = "prompt"
    TOOL = "tool"
    SCRIPT = "script"
    CONDITION = "condition"
    TERMINAL = "terminal"


class LogType(StrEnum):
    """Classification shown by the live inspector for each node log entry."""

    TOOL_CALL = "tool-call"
    NODE_EXECUTION = "node-execution"
    JS_CONSOLE = "js-console"


class BaseNodeSpec(BaseModel):
    """Fields shared by every node variant."""

    id: str
    label: str = ""
    description: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def display_name(self) -> str:
        return self.label or self.id


class PromptNodeSpec(BaseNodeSpec):
    """
    Ask the language model.

    Example:
        PromptNodeSpec(
            id="summarize",
            label="Summarize",
            prompt="Summarize this for me: {{input}}",
            output_key="summary",
        )
    """

    kind: Literal["prompt"] = "prompt"
    model: str | None = Field(default=None, description="Model reference; provider default")
    prompt: str = Field(description="Prompt template with {{variable}} placeholders")
    system_prompt: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    output_key: str | None = Field(
        default=None, description="Variable that receives the model's text output"
    )


class ToolNodeSpec(BaseNodeSpec):
    """Invoke a tool. Argument values may contain {{variable}} placeholders."""

    kind: Literal["tool"] = "tool"
    tool: str = Field(description="Tool identifier known to the tool provider")
    arguments: dict[str, Any] = Field(default_factory=dict)
    output_key: str | None = None


class ScriptNodeSpec(BaseNodeSpec):
    """Run an embedded script in the sandbox."""

    kind: Literal["script"] = "script"
    code: str
    output_key: str | None = Field(
        default=None,
        description="Variable that receives the script's `result` (or its console output)",
    )
    timeout_seconds: float | None = Field(
        default=None, description="Overrides the runner's script timeout"
    )


class ConditionNodeSpec(BaseNodeSpec):
    """Evaluate an expression; outgoing branch edges select the successor."""

    kind: Literal["condition"] = "condition"
    expression: str


class TerminalNodeSpec(BaseNodeSpec):
    """
    Finish the workflow.

    The output is ``expression`` (safe-evaluated) if set, otherwise
    ``template`` (rendered), otherwise the previous node's output.
    """

    kind: Literal["terminal"] = "terminal"
    expression: str | None = None
    template: str | None = None


NodeSpec = Annotated[
    PromptNodeSpec | ToolNodeSpec | ScriptNodeSpec | ConditionNodeSpec | TerminalNodeSpec,
    Field(discriminator="kind"),
]


def log_type_for(kind: NodeKind) -> LogType:
    match kind:
        case NodeKind.TOOL:
            return LogType.TOOL_CALL
        case NodeKind.SCRIPT:
            return LogType.JS_CONSOLE
        case NodeKind.PROMPT | NodeKind.CONDITION | NodeKind.TERMINAL:
            return LogType.NODE_EXECUTION


def now_ms() -> int:
    """Wall-clock epoch milliseconds, the timestamp unit of log payloads."""
    return int(time.time() * 1000)


class NodeResult(BaseModel):
    """
    The immutable record of one node execution.

    ``to_payload()`` produces the exact dict shape the log inspector
    displays::

        {nodeId, type, title, nodeLabel?, input?, output?, error?,
         durationMs, timestamp}
    """

    node_id: str
    node_kind: NodeKind | None = None
    log_type: LogType = LogType.NODE_EXECUTION
    title: str
    node_label: str | None = None
    success: bool = True
    input: Any = None
    output: Any = None
    error: str | None = None
    branch: str | None = None
    started_at_ms: int = Field(default_factory=now_ms)
    duration_ms: int = 0

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_node(
        cls,
        node: BaseNodeSpec,
        *,
        started_at_ms: int,
        duration_ms: int,
        input: Any = None,
        output: Any = None,
        error: str | None = None,
        branch: str | None = None,
        title: str | None = None,
    ) -> "NodeResult":
        kind = NodeKind(node.kind)  # type: ignore[attr-defined]
        return cls(
            node_id=node.id,
            node_kind=kind,
            log_type=log_type_for(kind),
            title=title or node.display_name,
            node_label=node.label or None,
            success=error is None,
            input=input,
            output=None if error is not None else output,
            error=error,
            branch=branch,
            started_at_ms=started_at_ms,
            duration_ms=duration_ms,
        )

    def with_error(self, error: str) -> "NodeResult":
        """Copy of this result marked as failed with *error*."""
        return self.model_copy(update={"success": False, "error": error})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "nodeId": self.node_id,
            "type": self.log_type.value,
            "title": self.title,
        }
        if self.node_label is not None:
            payload["nodeLabel"] = self.node_label
        if self.input is not None:
            payload["input"] = self.input
        if self.output is not None:
            payload["output"] = self.output
        if self.error is not None:
            payload["error"] = self.error
        payload["durationMs"] = self.duration_ms
        payload["timestamp"] = self.started_at_ms
        return payload

    def to_summary(self) -> str:
        """One-line human-readable summary for logs."""
        if not self.success:
            return f"{self.title} failed: {self.error}"
        if self.branch is not None:
            return f"{self.title} selected branch '{self.branch}'"
        text = str(self.output) if self.output is not None else ""
        if len(text) > 200:
            text = text[:200] + "..."
        return f"{self.title} -> {text}" if text else self.title
