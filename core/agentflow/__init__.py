"""
agentflow - run user-authored agent workflow graphs.

A workflow is an AgentGraph of prompt, tool, script, condition and terminal
nodes. The WorkflowRunner executes it as one cancellable run per agent and
reports every node through a callback and the runtime log.

Quick start::

    from agentflow import RunRegistry, WorkflowRunner, load_agent
    from agentflow.llm import LiteLLMProvider

    runner = WorkflowRunner(RunRegistry(), inference=LiteLLMProvider(model="openai/gpt-4o-mini"))
    text = await runner.execute_workflow(load_agent(Path("agent.json")), "hello")
"""

from agentflow.config import RuntimeConfig
from agentflow.graph import (
    AgentGraph,
    EdgeCondition,
    EdgeSpec,
    ExecutionContext,
    ExecutionResult,
    NodeResult,
    RunStatus,
    TriggerContext,
    WorkflowRunner,
)
from agentflow.runtime import (
    CancellationController,
    CancellationToken,
    OperationCancelledError,
    RunRegistry,
    WorkflowAlreadyRunningError,
    WorkflowState,
)
from agentflow.runtime.workflow_service import AgentWorkflowService
from agentflow.storage import AgentNotFoundError, FileAgentStore, load_agent

__version__ = "0.1.0"

__all__ = [
    "AgentGraph",
    "AgentNotFoundError",
    "AgentWorkflowService",
    "CancellationController",
    "CancellationToken",
    "EdgeCondition",
    "EdgeSpec",
    "ExecutionContext",
    "ExecutionResult",
    "FileAgentStore",
    "NodeResult",
    "OperationCancelledError",
    "RunRegistry",
    "RunStatus",
    "RuntimeConfig",
    "TriggerContext",
    "WorkflowAlreadyRunningError",
    "WorkflowRunner",
    "WorkflowState",
    "load_agent",
]
