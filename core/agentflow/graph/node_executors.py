"""
Node executors - one per node kind.

Every executor honours the same contract: ``await execute(node, context)``
returns a NodeResult and never raises. Provider failures, sandbox errors and
expression errors are captured on the result's ``error``; routing on that
error is the GraphWalker's job.

Cancellation is not special-cased here: a cancelled provider call surfaces as
a failed result, which the runner reports before stopping the run.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, assert_never

from agentflow.config import DEFAULT_INFERENCE_TIMEOUT_SECONDS, DEFAULT_SCRIPT_TIMEOUT_SECONDS
from agentflow.graph.context import ExecutionContext, expression_scope
from agentflow.graph.edge import branch_key
from agentflow.graph.node import (
    ConditionNodeSpec,
    NodeKind,
    NodeResult,
    NodeSpec,
    PromptNodeSpec,
    ScriptNodeSpec,
    TerminalNodeSpec,
    ToolNodeSpec,
    now_ms,
)
from agentflow.graph.safe_eval import safe_eval
from agentflow.graph.sandbox import ScriptOutcome, ScriptSandbox, ScriptTimeoutError
from agentflow.graph.templating import render_template, render_value
from agentflow.llm.provider import InferenceProvider
from agentflow.runner.tool_registry import ToolProvider

logger = logging.getLogger(__name__)

SCRIPT_TIMEOUT_GRACE_SECONDS = 0.5


def describe_error(exc: BaseException) -> str:
    """Human-readable error text for a NodeResult."""
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


class NodeExecutor(Protocol):
    """Interface all node executors implement."""

    async def execute(self, node: Any, context: ExecutionContext) -> NodeResult: ...


class _Timer:
    def __init__(self) -> None:
        self.started_at_ms = now_ms()
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)


class PromptExecutor:
    """Renders the prompt and asks the inference provider."""

    def __init__(
        self,
        inference: InferenceProvider | None,
        timeout_seconds: float = DEFAULT_INFERENCE_TIMEOUT_SECONDS,
    ):
        self.inference = inference
        self.timeout_seconds = timeout_seconds

    async def execute(self, node: PromptNodeSpec, context: ExecutionContext) -> NodeResult:
        timer = _Timer()
        variables = context.variables
        prompt = render_template(node.prompt, variables)
        system_prompt = (
            render_template(node.system_prompt, variables) if node.system_prompt else None
        )
        params: dict[str, Any] = {
            "model": node.model,
            "system_prompt": system_prompt,
            **node.parameters,
        }
        input_snapshot: dict[str, Any] = {"prompt": prompt}
        if node.model:
            input_snapshot["model"] = node.model
        if system_prompt:
            input_snapshot["systemPrompt"] = system_prompt

        if self.inference is None:
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=input_snapshot,
                error="No inference provider configured",
            )

        try:
            text = await context.cancellation.run(
                asyncio.wait_for(
                    self.inference.complete(prompt, params, context.cancellation),
                    timeout=self.timeout_seconds,
                )
            )
        except TimeoutError:
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=input_snapshot,
                error=f"Inference timed out after {self.timeout_seconds:g}s",
            )
        except Exception as e:
            logger.debug("Prompt node '%s' failed: %s", node.id, e)
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=input_snapshot,
                error=describe_error(e),
            )

        text = "" if text is None else str(text)
        if node.output_key:
            context.set_variable(node.output_key, text)
        return NodeResult.for_node(
            node,
            started_at_ms=timer.started_at_ms,
            duration_ms=timer.elapsed_ms,
            input=input_snapshot,
            output=text,
        )


class ToolExecutor:
    """Invokes a tool with templated arguments."""

    def __init__(self, tools: ToolProvider | None):
        self.tools = tools

    async def execute(self, node: ToolNodeSpec, context: ExecutionContext) -> NodeResult:
        timer = _Timer()
        title = node.label or f"Tool: {node.tool}"
        args = render_value(node.arguments, context.variables)

        if self.tools is None:
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=args,
                error="No tool provider configured",
                title=title,
            )

        try:
            output = await self.tools.invoke(node.tool, args, context.cancellation)
        except Exception as e:
            logger.debug("Tool '%s' failed in node '%s': %s", node.tool, node.id, e)
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=args,
                error=describe_error(e),
                title=title,
            )

        if node.output_key:
            context.set_variable(node.output_key, output)
        return NodeResult.for_node(
            node,
            started_at_ms=timer.started_at_ms,
            duration_ms=timer.elapsed_ms,
            input=args,
            output=output,
            title=title,
        )


class ScriptExecutor:
    """Runs the node's code in a ScriptSandbox on a worker thread.

    The sandbox stops itself at its deadline between script lines. The wait
    is also bounded here, at the deadline plus *grace_seconds*, for scripts
    stuck inside a single call; their thread is abandoned and its writes are
    never applied.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_SCRIPT_TIMEOUT_SECONDS,
        grace_seconds: float = SCRIPT_TIMEOUT_GRACE_SECONDS,
    ):
        self.timeout_seconds = timeout_seconds
        self.grace_seconds = grace_seconds

    async def execute(self, node: ScriptNodeSpec, context: ExecutionContext) -> NodeResult:
        timer = _Timer()
        sandbox = ScriptSandbox(node.timeout_seconds or self.timeout_seconds)
        try:
            outcome = await self._run_sandbox(sandbox, node, context)
        except Exception as e:
            logger.debug("Script node '%s' failed: %s", node.id, e)
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=node.code,
                error=describe_error(e),
            )

        # Variable writes are only applied once the whole script succeeded
        for name, value in outcome.updates.items():
            context.set_variable(name, value)
        if node.output_key:
            context.set_variable(
                node.output_key, outcome.result if outcome.has_result else outcome.console
            )

        output: Any = outcome.console
        if not outcome.console and outcome.has_result:
            output = outcome.result
        return NodeResult.for_node(
            node,
            started_at_ms=timer.started_at_ms,
            duration_ms=timer.elapsed_ms,
            input=node.code,
            output=output,
        )

    async def _run_sandbox(
        self, sandbox: ScriptSandbox, node: ScriptNodeSpec, context: ExecutionContext
    ) -> ScriptOutcome:
        call = asyncio.to_thread(sandbox.run, node.code, context.variables, context.cancellation)
        try:
            return await context.cancellation.run(
                asyncio.wait_for(call, timeout=sandbox.timeout_seconds + self.grace_seconds)
            )
        except TimeoutError:
            logger.warning(
                "Script node '%s' abandoned after %gs", node.id, sandbox.timeout_seconds
            )
            raise ScriptTimeoutError(sandbox.timeout_seconds) from None


class ConditionExecutor:
    """Evaluates the expression and records the normalized branch."""

    async def execute(self, node: ConditionNodeSpec, context: ExecutionContext) -> NodeResult:
        timer = _Timer()
        input_snapshot = {"expression": node.expression}
        try:
            value = safe_eval(node.expression, expression_scope(context))
        except Exception as e:
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=input_snapshot,
                error=describe_error(e),
            )

        branch = branch_key(value)
        return NodeResult.for_node(
            node,
            started_at_ms=timer.started_at_ms,
            duration_ms=timer.elapsed_ms,
            input=input_snapshot,
            output=branch,
            branch=branch,
        )


class TerminalExecutor:
    """Produces the workflow's final output."""

    async def execute(self, node: TerminalNodeSpec, context: ExecutionContext) -> NodeResult:
        timer = _Timer()
        try:
            if node.expression:
                output = safe_eval(node.expression, expression_scope(context))
            elif node.template is not None:
                output = render_template(node.template, context.variables)
            else:
                last = context.last_result
                output = last.output if last is not None else context.variables.get("input")
        except Exception as e:
            return NodeResult.for_node(
                node,
                started_at_ms=timer.started_at_ms,
                duration_ms=timer.elapsed_ms,
                input=node.expression,
                error=describe_error(e),
            )

        return NodeResult.for_node(
            node,
            started_at_ms=timer.started_at_ms,
            duration_ms=timer.elapsed_ms,
            input=node.expression or node.template,
            output=output,
        )


@dataclass
class NodeExecutors:
    """The executor set a runner dispatches to."""

    prompt: PromptExecutor = field(default_factory=lambda: PromptExecutor(None))
    tool: ToolExecutor = field(default_factory=lambda: ToolExecutor(None))
    script: ScriptExecutor = field(default_factory=ScriptExecutor)
    condition: ConditionExecutor = field(default_factory=ConditionExecutor)
    terminal: TerminalExecutor = field(default_factory=TerminalExecutor)

    def for_node(self, node: NodeSpec) -> NodeExecutor:
        match node.kind:
            case NodeKind.PROMPT:
                return self.prompt
            case NodeKind.TOOL:
                return self.tool
            case NodeKind.SCRIPT:
                return self.script
            case NodeKind.CONDITION:
                return self.condition
            case NodeKind.TERMINAL:
                return self.terminal
            case _:
                assert_never(node.kind)

    async def execute(self, node: NodeSpec, context: ExecutionContext) -> NodeResult:
        """Run *node* with its executor. Never raises."""
        try:
            return await self.for_node(node).execute(node, context)
        except Exception as e:
            # Executors capture their own failures; this guards the contract
            logger.exception("Executor for node '%s' raised", node.id)
            return NodeResult.for_node(
                node, started_at_ms=now_ms(), duration_ms=0, error=describe_error(e)
            )
