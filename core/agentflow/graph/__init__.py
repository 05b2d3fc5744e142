"""Graph structures: Nodes, Edges, the Walker and the Workflow Runner."""

from agentflow.graph.context import ABSENT, ExecutionContext, TriggerContext
from agentflow.graph.edge import AgentGraph, EdgeCondition, EdgeSpec
from agentflow.graph.executor import ExecutionResult, RunStatus, WorkflowRunner
from agentflow.graph.node import (
    ConditionNodeSpec,
    LogType,
    NodeKind,
    NodeResult,
    NodeSpec,
    PromptNodeSpec,
    ScriptNodeSpec,
    TerminalNodeSpec,
    ToolNodeSpec,
)
from agentflow.graph.node_executors import NodeExecutor, NodeExecutors
from agentflow.graph.safe_eval import UnsafeExpressionError, safe_eval
from agentflow.graph.sandbox import ScriptSandbox, ScriptTimeoutError
from agentflow.graph.walker import GraphWalker, WalkAction, WalkDecision

__all__ = [
    # Node
    "NodeKind",
    "LogType",
    "NodeSpec",
    "PromptNodeSpec",
    "ToolNodeSpec",
    "ScriptNodeSpec",
    "ConditionNodeSpec",
    "TerminalNodeSpec",
    "NodeResult",
    # Edge
    "EdgeSpec",
    "EdgeCondition",
    "AgentGraph",
    # Context
    "ABSENT",
    "ExecutionContext",
    "TriggerContext",
    # Execution
    "NodeExecutor",
    "NodeExecutors",
    "GraphWalker",
    "WalkAction",
    "WalkDecision",
    "WorkflowRunner",
    "ExecutionResult",
    "RunStatus",
    # Sandboxing
    "safe_eval",
    "UnsafeExpressionError",
    "ScriptSandbox",
    "ScriptTimeoutError",
]
