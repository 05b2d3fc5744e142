"""
Workflow Runner - Runs agent workflows.

The runner:
1. Claims the agent's slot in the RunRegistry (one run per agent)
2. Builds a fresh ExecutionContext around the run's cancellation token
3. Executes nodes, letting the GraphWalker pick each successor
4. Forwards every NodeResult to the caller's callback and the runtime log
5. Releases the slot and returns the final output

Run states: STARTING -> RUNNING -> COMPLETED | FAILED | CANCELLED

Cancellation is checked before every node and after every node. A node
that was in flight when cancellation arrived is still recorded and reported
(its side effects already happened), then the run stops as CANCELLED.
"""

import inspect
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from agentflow.config import RuntimeConfig
from agentflow.graph.context import ExecutionContext, TriggerContext
from agentflow.graph.edge import AgentGraph
from agentflow.graph.node import NodeResult, now_ms
from agentflow.graph.node_executors import (
    ConditionExecutor,
    NodeExecutors,
    PromptExecutor,
    ScriptExecutor,
    TerminalExecutor,
    ToolExecutor,
)
from agentflow.graph.walker import GraphWalker, WalkAction, WalkDecision
from agentflow.llm.provider import InferenceProvider
from agentflow.observability import (
    bind_trace_context,
    reset_trace_context,
    set_trace_context,
)
from agentflow.runner.tool_registry import ToolProvider
from agentflow.runtime.run_registry import RunRegistry
from agentflow.runtime.runtime_log_store import RuntimeLogStore
from agentflow.runtime.runtime_logger import RuntimeLogger, new_run_id

NodeCallback = Callable[[str, NodeResult], Any]


class RunStatus(StrEnum):
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Result of running a workflow."""

    status: RunStatus
    run_id: str = ""
    output: Any = None
    error: str | None = None
    steps_executed: int = 0
    duration_ms: int = 0
    path: list[str] = field(default_factory=list)  # Node IDs traversed
    results: list[NodeResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def output_text(self) -> str | None:
        """The terminal output as text; None unless the run completed."""
        if not self.success:
            return None
        if self.output is None:
            return ""
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, default=str, ensure_ascii=False)


class WorkflowRunner:
    """
    Runs AgentGraphs, one coroutine per run.

    Example:
        registry = RunRegistry()
        runner = WorkflowRunner(registry, inference=LiteLLMProvider(model="openai/gpt-4o-mini"))
        text = await runner.execute_workflow(agent, "hello", on_node_executed=print_payload)
    """

    def __init__(
        self,
        registry: RunRegistry,
        inference: InferenceProvider | None = None,
        tools: ToolProvider | None = None,
        config: RuntimeConfig | None = None,
        log_store: RuntimeLogStore | None = None,
        walker: GraphWalker | None = None,
    ):
        """
        Initialize the runner.

        Args:
            registry: Shared RunRegistry enforcing one run per agent
            inference: Provider for prompt nodes
            tools: Provider for tool nodes
            config: Timeouts and step cap (defaults from ~/.agentflow)
            log_store: Optional RuntimeLogStore; each run gets a RuntimeLogger
            walker: Successor selection (default GraphWalker)
        """
        self.registry = registry
        self.inference = inference
        self.tools = tools
        self.config = config or RuntimeConfig()
        self.log_store = log_store
        self.walker = walker or GraphWalker()
        self.logger = logging.getLogger(__name__)
        self.executors = NodeExecutors(
            prompt=PromptExecutor(inference, self.config.inference_timeout_seconds),
            tool=ToolExecutor(tools),
            script=ScriptExecutor(self.config.script_timeout_seconds),
            condition=ConditionExecutor(),
            terminal=TerminalExecutor(),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute_workflow(
        self,
        agent: AgentGraph,
        initial_input: str | TriggerContext | Mapping[str, Any] | None = None,
        on_node_executed: NodeCallback | None = None,
    ) -> str | None:
        """
        Run *agent* and return its final output as text.

        Returns:
            The terminal node's output, or None if the run failed or was cancelled

        Raises:
            TypeError: invalid arguments
            WorkflowAlreadyRunningError: the agent already has a run in flight
        """
        result = await self.execute(agent, initial_input, on_node_executed)
        return result.output_text

    def cancel_workflow(self, agent_id: str) -> bool:
        """Request cancellation of the agent's run. False if none is running."""
        return self.registry.cancel(agent_id)

    def is_workflow_running(self, agent_id: str) -> bool:
        return self.registry.is_running(agent_id)

    async def execute(
        self,
        agent: AgentGraph,
        initial_input: str | TriggerContext | Mapping[str, Any] | None = None,
        on_node_executed: NodeCallback | None = None,
    ) -> ExecutionResult:
        """Run *agent* and return the full ExecutionResult."""
        if not isinstance(agent, AgentGraph):
            raise TypeError(f"agent must be an AgentGraph, got {type(agent).__name__}")
        if initial_input is not None and not isinstance(
            initial_input, str | TriggerContext | Mapping
        ):
            raise TypeError(
                "initial_input must be a str, TriggerContext or mapping, "
                f"got {type(initial_input).__name__}"
            )
        if on_node_executed is not None and not callable(on_node_executed):
            raise TypeError("on_node_executed must be callable")

        run_id = new_run_id()
        controller = self.registry.register(agent.id, run_id=run_id)
        # trace_id correlates every log line and runtime-log record of this run
        trace_token = bind_trace_context(run_id=run_id, agent_id=agent.id, trace_id=run_id)
        try:
            context = ExecutionContext(
                initial_input, agent.id, cancellation=controller.token, run_id=run_id
            )
            return await self._run(agent, context, on_node_executed)
        finally:
            self.registry.unregister(agent.id, controller)
            reset_trace_context(trace_token)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(
        self,
        agent: AgentGraph,
        context: ExecutionContext,
        on_node_executed: NodeCallback | None,
    ) -> ExecutionResult:
        status = RunStatus.STARTING
        start = time.perf_counter()
        path: list[str] = []

        runtime_logger = None
        if self.log_store is not None:
            runtime_logger = RuntimeLogger(store=self.log_store, agent_id=agent.id)
            runtime_logger.start_run(context.run_id)

        async def finish(
            final: RunStatus, output: Any = None, error: str | None = None
        ) -> ExecutionResult:
            duration_ms = int((time.perf_counter() - start) * 1000)
            if runtime_logger is not None:
                await runtime_logger.end_run(
                    status=final.value, duration_ms=duration_ms, node_path=path, error=error
                )
            self.logger.debug("Run %s: %s -> %s", context.run_id, status, final)
            return ExecutionResult(
                status=final,
                run_id=context.run_id,
                output=output,
                error=error,
                steps_executed=len(path),
                duration_ms=duration_ms,
                path=list(path),
                results=list(context.history),
            )

        async def record(result: NodeResult) -> None:
            context.append_result(result)
            path.append(result.node_id)
            self.registry.mark_node_finished(agent.id, result.node_id, result.error)
            if runtime_logger is not None:
                runtime_logger.log_node(result)
            await self._emit(on_node_executed, result)

        if context.is_cancelled():
            self.logger.info("⏹ Cancelled before start")
            return await finish(RunStatus.CANCELLED)

        errors = agent.validate()
        if errors:
            message = "Invalid graph: " + "; ".join(errors)
            self.logger.error(f"❌ {message}")
            await record(
                NodeResult(
                    node_id=agent.entry_node,
                    title="Workflow validation",
                    success=False,
                    error=message,
                    started_at_ms=now_ms(),
                )
            )
            return await finish(RunStatus.FAILED, error=message)

        status = RunStatus.RUNNING
        max_steps = self.config.effective_max_steps(agent.max_steps)
        self.logger.info(f"🚀 Starting workflow: {agent.name or agent.id}")
        self.logger.info(f"   Entry node: {agent.entry_node}")

        current_id = agent.entry_node
        steps = 0
        while True:
            if context.is_cancelled():
                self.logger.info("⏹ Cancelled at node boundary")
                return await finish(RunStatus.CANCELLED)

            node = agent.get_node(current_id)
            if node is None:
                # validate() checks edge targets, so only a bad entry reaches here
                message = f"Node '{current_id}' not found"
                return await finish(RunStatus.FAILED, error=message)

            steps += 1
            set_trace_context(node_id=node.id)
            self.registry.mark_node_started(agent.id, node.id)
            self.logger.info(f"▶ Step {steps}: {node.display_name} ({node.kind})")

            result = await self.executors.execute(node, context)

            if context.is_cancelled():
                self.logger.info(f"⏹ Cancelled during {node.id}")
                await record(result)
                return await finish(RunStatus.CANCELLED)

            decision = self.walker.next(node, result, agent)
            if decision.action == WalkAction.ADVANCE and steps >= max_steps:
                decision = WalkDecision.fail(f"Step limit ({max_steps}) reached at '{node.id}'")
            if decision.action == WalkAction.FAIL and result.success:
                result = result.with_error(decision.error or "Workflow failed")

            if result.success:
                self.logger.info(f"   ✓ {result.to_summary()} ({result.duration_ms}ms)")
            else:
                self.logger.error(f"   ✗ Failed: {result.error}")

            await record(result)

            match decision.action:
                case WalkAction.COMPLETE:
                    self.logger.info(f"✓ Reached terminal node: {node.display_name}")
                    return await finish(RunStatus.COMPLETED, output=result.output)
                case WalkAction.FAIL:
                    return await finish(RunStatus.FAILED, error=decision.error)
                case WalkAction.ADVANCE:
                    self.logger.info(f"   → {decision.next_node_id}")
                    current_id = decision.next_node_id

    async def _emit(self, callback: NodeCallback | None, result: NodeResult) -> None:
        """Invoke the caller's callback; its failures never affect the run."""
        if callback is None:
            return
        try:
            outcome = callback(result.node_id, result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            self.logger.exception(f"on_node_executed callback failed for node {result.node_id}")
