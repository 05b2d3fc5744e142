"""RuntimeLogger: captures runtime data during a workflow run.

Created by the WorkflowRunner for each run when a RuntimeLogStore is
configured. Each log_node() call writes immediately to disk (JSONL append);
only the summary is written at end_run().

Usage::

    store = RuntimeLogStore(Path("~/.agentflow/logs").expanduser())
    runner = WorkflowRunner(registry, inference=provider, log_store=store)
    # After execution, store has persisted all data for the run

Safety: every method catches its own exceptions and reports them through the
Python logger. Logging failure must never kill a run.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from agentflow.observability import get_trace_context
from agentflow.runtime.runtime_log_schemas import NodeLogEntry, RunSummaryLog
from agentflow.runtime.runtime_log_store import RuntimeLogStore

if TYPE_CHECKING:
    from agentflow.graph.node import NodeResult

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    """Sortable run id like '20250101T120000_abc12345'."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
    return f"{ts}_{uuid.uuid4().hex[:8]}"


class RuntimeLogger:
    """Captures node results and the run summary for one run.

    Thread-safe: uses a lock around file appends.
    """

    def __init__(self, store: RuntimeLogStore, agent_id: str = "") -> None:
        self._store = store
        self._agent_id = agent_id
        self._run_id = ""
        self._started_at = ""
        self._step_index = 0
        self._lock = threading.Lock()

    @property
    def run_id(self) -> str:
        return self._run_id

    def start_run(self, run_id: str = "") -> str:
        """Start a new run. Returns the run_id (generated when not given)."""
        self._run_id = run_id or new_run_id()
        self._started_at = datetime.now(UTC).isoformat()
        self._step_index = 0
        try:
            self._store.ensure_run_dir(self._run_id)
        except OSError:
            logger.exception(
                "Failed to create log directory for run_id=%s (non-fatal)", self._run_id
            )
        return self._run_id

    def log_node(self, result: NodeResult) -> None:
        """Append one node result to nodes.jsonl. Synchronous."""
        trace_id = get_trace_context().get("trace_id", "")
        try:
            with self._lock:
                entry = NodeLogEntry.from_result(
                    result, self._run_id, step_index=self._step_index, trace_id=trace_id
                )
                self._step_index += 1
                self._store.append_node_entry(self._run_id, entry)
        except Exception:
            logger.exception(
                "Failed to log node %s for run_id=%s (non-fatal)", result.node_id, self._run_id
            )

    async def end_run(
        self,
        status: str,
        duration_ms: int,
        node_path: list[str] | None = None,
        error: str | None = None,
    ) -> None:
        """Read node entries from disk, aggregate into the summary, write summary.json.

        Catches all exceptions internally -- logging failure must not
        propagate to the caller.
        """
        try:
            entries = self._store.read_node_entries_sync(self._run_id)
            summary = RunSummaryLog(
                run_id=self._run_id,
                agent_id=self._agent_id,
                status=status,
                total_nodes_executed=len(entries),
                node_path=node_path or [e.node_id for e in entries],
                failed_nodes=[e.node_id for e in entries if not e.success],
                error=error,
                started_at=self._started_at,
                duration_ms=duration_ms,
                trace_id=get_trace_context().get("trace_id", ""),
            )
            await self._store.save_summary(self._run_id, summary)
            logger.info(
                "Runtime logs saved: run_id=%s status=%s nodes=%d",
                self._run_id,
                status,
                len(entries),
            )
        except Exception:
            logger.exception(
                "Failed to save runtime logs for run_id=%s (non-fatal)",
                self._run_id,
            )
