"""
Run Registry - which agents are running right now.

Process-wide map of agent id -> RunHandle. At most one run per agent is
in flight; a second ``register`` for the same agent is rejected with
WorkflowAlreadyRunningError and leaves the first run untouched.

All operations are serialized by a ``threading.Lock`` so the registry can be
queried and cancelled from any thread (UI, signal handlers, other loops).
The lock is never held across an ``await``.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from agentflow.runtime.cancellation import CancellationController

logger = logging.getLogger(__name__)


class WorkflowAlreadyRunningError(RuntimeError):
    """A run for this agent is already in flight."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Workflow for agent '{agent_id}' is already running")


@dataclass(frozen=True)
class WorkflowState:
    """Point-in-time snapshot of a run, safe to hand to other threads."""

    agent_id: str
    run_id: str
    is_running: bool
    current_node_id: str | None = None
    executed_nodes: tuple[str, ...] = ()
    error: str | None = None
    started_at: str = ""


@dataclass
class RunHandle:
    """Registry entry for one in-flight run."""

    agent_id: str
    controller: CancellationController = field(default_factory=CancellationController)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    current_node_id: str | None = None
    executed_nodes: list[str] = field(default_factory=list)
    error: str | None = None

    def snapshot(self) -> WorkflowState:
        return WorkflowState(
            agent_id=self.agent_id,
            run_id=self.run_id,
            is_running=True,
            current_node_id=self.current_node_id,
            executed_nodes=tuple(self.executed_nodes),
            error=self.error,
            started_at=self.started_at,
        )


class RunRegistry:
    """Tracks in-flight runs. Construct one and inject it into runners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, RunHandle] = {}

    def register(self, agent_id: str, run_id: str | None = None) -> CancellationController:
        """
        Claim the run slot for *agent_id*.

        Returns:
            The controller that cancels the new run

        Raises:
            WorkflowAlreadyRunningError: if the agent already has a run
        """
        with self._lock:
            if agent_id in self._runs:
                raise WorkflowAlreadyRunningError(agent_id)
            handle = RunHandle(agent_id=agent_id)
            if run_id:
                handle.run_id = run_id
            self._runs[agent_id] = handle
        logger.debug("Registered run %s for agent %s", handle.run_id, agent_id)
        return handle.controller

    def unregister(
        self, agent_id: str, controller: CancellationController | None = None
    ) -> None:
        """Release the slot. With *controller*, only the run it belongs to is removed."""
        with self._lock:
            current = self._runs.get(agent_id)
            if current is None:
                return
            if controller is not None and current.controller is not controller:
                return
            del self._runs[agent_id]

    def is_running(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._runs

    def cancel(self, agent_id: str) -> bool:
        """Signal cancellation. True whenever a run for *agent_id* is in flight."""
        with self._lock:
            handle = self._runs.get(agent_id)
        if handle is None:
            return False
        if handle.controller.cancel():
            logger.info("Cancellation requested for agent %s (run %s)", agent_id, handle.run_id)
        return True

    def mark_node_started(self, agent_id: str, node_id: str) -> None:
        with self._lock:
            handle = self._runs.get(agent_id)
            if handle is not None:
                handle.current_node_id = node_id

    def mark_node_finished(self, agent_id: str, node_id: str, error: str | None = None) -> None:
        with self._lock:
            handle = self._runs.get(agent_id)
            if handle is not None:
                handle.executed_nodes.append(node_id)
                handle.current_node_id = None
                if error is not None:
                    handle.error = error

    def get_state(self, agent_id: str) -> WorkflowState | None:
        """Snapshot of the agent's in-flight run, or None when idle."""
        with self._lock:
            handle = self._runs.get(agent_id)
            return handle.snapshot() if handle is not None else None

    def active_agents(self) -> list[str]:
        with self._lock:
            return list(self._runs)

    def cancel_all(self) -> int:
        """Cancel every in-flight run. Returns how many were newly cancelled."""
        with self._lock:
            handles = list(self._runs.values())
        return sum(1 for handle in handles if handle.controller.cancel())
