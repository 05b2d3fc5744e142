"""Run bookkeeping: cancellation, the run registry and runtime logs."""

from agentflow.runtime.cancellation import (
    CancellationController,
    CancellationToken,
    OperationCancelledError,
)
from agentflow.runtime.run_registry import (
    RunHandle,
    RunRegistry,
    WorkflowAlreadyRunningError,
    WorkflowState,
)

__all__ = [
    "CancellationController",
    "CancellationToken",
    "OperationCancelledError",
    "RunHandle",
    "RunRegistry",
    "WorkflowAlreadyRunningError",
    "WorkflowState",
]
