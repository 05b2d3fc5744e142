"""Pydantic models for the two-level runtime logging system.

Level 1 - SUMMARY:  Per workflow run status, node path and timing
Level 2 - NODES:    One entry per NodeResult, in execution order
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from agentflow.graph.node import NodeResult

# ---------------------------------------------------------------------------
# Level 2: Per-node entries
# ---------------------------------------------------------------------------


class NodeLogEntry(BaseModel):
    """One node execution as persisted in nodes.jsonl.

    Mirrors ``NodeResult.to_payload()`` plus run correlation fields, so the
    live inspector and the on-disk log show the same data.
    """

    run_id: str
    step_index: int = 0
    node_id: str
    type: str  # "tool-call"|"node-execution"|"js-console"
    title: str = ""
    node_label: str | None = None
    success: bool = True
    input: Any = None
    output: Any = None
    error: str | None = None
    branch: str | None = None
    duration_ms: int = 0
    timestamp: int = 0  # epoch milliseconds
    # Trace context (from observability; empty if not set):
    trace_id: str = ""

    @classmethod
    def from_result(
        cls, result: NodeResult, run_id: str, step_index: int = 0, trace_id: str = ""
    ) -> NodeLogEntry:
        return cls(
            run_id=run_id,
            step_index=step_index,
            node_id=result.node_id,
            type=result.log_type.value,
            title=result.title,
            node_label=result.node_label,
            success=result.success,
            input=result.input,
            output=result.output,
            error=result.error,
            branch=result.branch,
            duration_ms=result.duration_ms,
            timestamp=result.started_at_ms,
            trace_id=trace_id,
        )

    def to_payload(self) -> dict[str, Any]:
        """The inspector payload shape (optional keys omitted when unset)."""
        payload: dict[str, Any] = {"nodeId": self.node_id, "type": self.type, "title": self.title}
        if self.node_label is not None:
            payload["nodeLabel"] = self.node_label
        if self.input is not None:
            payload["input"] = self.input
        if self.output is not None:
            payload["output"] = self.output
        if self.error is not None:
            payload["error"] = self.error
        payload["durationMs"] = self.duration_ms
        payload["timestamp"] = self.timestamp
        return payload


# ---------------------------------------------------------------------------
# Level 1: Run summary — one per workflow run
# ---------------------------------------------------------------------------


class RunSummaryLog(BaseModel):
    """Run-level summary for a full workflow execution."""

    run_id: str
    agent_id: str = ""
    status: str = ""  # "completed"|"failed"|"cancelled"|"in_progress"
    total_nodes_executed: int = 0
    node_path: list[str] = Field(default_factory=list)
    failed_nodes: list[str] = Field(default_factory=list)
    error: str | None = None
    started_at: str = ""  # ISO timestamp
    duration_ms: int = 0
    # Trace context (from observability; empty if not set):
    trace_id: str = ""
