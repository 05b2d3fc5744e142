"""
Agent Workflow Service - Top-level entry point for running stored agents.

Wires an AgentStore, a RunRegistry and a WorkflowRunner together so callers
(a UI command layer, the CLI, a chat trigger) can run agents by id without
knowing how the runner is assembled.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from agentflow.config import RuntimeConfig
from agentflow.graph.context import TriggerContext
from agentflow.graph.executor import ExecutionResult, NodeCallback, WorkflowRunner
from agentflow.llm.litellm import LiteLLMProvider
from agentflow.llm.provider import InferenceProvider
from agentflow.runner.tool_registry import ToolProvider
from agentflow.runtime.run_registry import RunRegistry, WorkflowState
from agentflow.runtime.runtime_log_store import RuntimeLogStore
from agentflow.storage.agent_store import AgentStore

logger = logging.getLogger(__name__)


class AgentWorkflowService:
    """
    Runs agents from an AgentStore.

    Example:
        service = AgentWorkflowService.from_config(FileAgentStore(Path("agents")))
        text = await service.execute("news-digest", "summarize today")
        ...
        await service.shutdown()
    """

    def __init__(self, store: AgentStore, runner: WorkflowRunner):
        self.store = store
        self.runner = runner

    @classmethod
    def from_config(
        cls,
        store: AgentStore,
        config: RuntimeConfig | None = None,
        inference: InferenceProvider | None = None,
        tools: ToolProvider | None = None,
        registry: RunRegistry | None = None,
    ) -> "AgentWorkflowService":
        """Build the service, defaulting to LiteLLM and the configured log dir."""
        config = config or RuntimeConfig()
        if inference is None:
            inference = LiteLLMProvider(
                model=config.model,
                api_key=config.api_key,
                api_base=config.api_base,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        log_store = RuntimeLogStore(config.log_dir) if config.log_dir else None
        runner = WorkflowRunner(
            registry or RunRegistry(),
            inference=inference,
            tools=tools,
            config=config,
            log_store=log_store,
        )
        return cls(store, runner)

    @property
    def registry(self) -> RunRegistry:
        return self.runner.registry

    async def execute(
        self,
        agent_id: str,
        initial_input: str | TriggerContext | Mapping[str, Any] | None = None,
        on_node_executed: NodeCallback | None = None,
    ) -> str | None:
        """
        Run the stored agent *agent_id*.

        Raises:
            AgentNotFoundError: unknown agent
            WorkflowAlreadyRunningError: the agent is already running
        """
        agent = self.store.get_agent(agent_id)
        return await self.runner.execute_workflow(agent, initial_input, on_node_executed)

    async def execute_detailed(
        self,
        agent_id: str,
        initial_input: str | TriggerContext | Mapping[str, Any] | None = None,
        on_node_executed: NodeCallback | None = None,
    ) -> ExecutionResult:
        """Like execute(), but returns the full ExecutionResult."""
        agent = self.store.get_agent(agent_id)
        return await self.runner.execute(agent, initial_input, on_node_executed)

    def cancel(self, agent_id: str) -> bool:
        return self.runner.cancel_workflow(agent_id)

    def is_running(self, agent_id: str) -> bool:
        return self.runner.is_workflow_running(agent_id)

    def get_state(self, agent_id: str) -> WorkflowState | None:
        return self.registry.get_state(agent_id)

    def running_agents(self) -> list[str]:
        return self.registry.active_agents()

    async def shutdown(self, timeout: float = 5.0, poll_interval: float = 0.05) -> bool:
        """
        Cancel every in-flight run and wait for them to unwind.

        Returns:
            True if all runs finished within *timeout*
        """
        cancelled = self.registry.cancel_all()
        if cancelled:
            logger.info("Shutdown: cancelled %d run(s)", cancelled)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.registry.active_agents():
            if loop.time() >= deadline:
                logger.warning(
                    "Shutdown timed out with runs still active: %s",
                    self.registry.active_agents(),
                )
                return False
            await asyncio.sleep(poll_interval)
        return True
