"""
Graph Walker - chooses what runs next.

Given the node that just ran, its NodeResult and the graph, the walker
returns a WalkDecision: advance to another node, complete the run, or fail
it. It is a pure function of its inputs; the runner owns the step cap, so
cycles are walked without detection.

Routing rules:
- terminal success             -> complete
- any failure                  -> first on_failure/always edge, else fail
- condition success            -> the branch edge matching result.branch, else fail
- other success                -> first on_success/always edge, else fail

"First" means highest priority; ties keep declaration order.
"""

from dataclasses import dataclass
from enum import StrEnum

from agentflow.graph.edge import AgentGraph, EdgeCondition
from agentflow.graph.node import NodeKind, NodeResult, NodeSpec


class WalkAction(StrEnum):
    ADVANCE = "advance"
    COMPLETE = "complete"
    FAIL = "fail"


@dataclass(frozen=True)
class WalkDecision:
    action: WalkAction
    next_node_id: str | None = None
    error: str | None = None

    @classmethod
    def advance(cls, node_id: str) -> "WalkDecision":
        return cls(WalkAction.ADVANCE, next_node_id=node_id)

    @classmethod
    def complete(cls) -> "WalkDecision":
        return cls(WalkAction.COMPLETE)

    @classmethod
    def fail(cls, error: str) -> "WalkDecision":
        return cls(WalkAction.FAIL, error=error)


class GraphWalker:
    """Branch semantics for AgentGraph edges."""

    def next(self, node: NodeSpec, result: NodeResult, graph: AgentGraph) -> WalkDecision:
        edges = graph.get_outgoing_edges(node.id)

        if not result.success:
            for edge in edges:
                if edge.condition in (EdgeCondition.ON_FAILURE, EdgeCondition.ALWAYS):
                    return WalkDecision.advance(edge.target)
            return WalkDecision.fail(result.error or f"Node '{node.id}' failed")

        if node.kind == NodeKind.TERMINAL:
            return WalkDecision.complete()

        if node.kind == NodeKind.CONDITION:
            for edge in edges:
                if edge.should_traverse(True, result.branch):
                    return WalkDecision.advance(edge.target)
            return WalkDecision.fail(
                f"Condition '{node.id}' selected branch '{result.branch}' "
                "but no outgoing edge matches it"
            )

        for edge in edges:
            if edge.condition in (EdgeCondition.ON_SUCCESS, EdgeCondition.ALWAYS):
                return WalkDecision.advance(edge.target)
        return WalkDecision.fail(f"Node '{node.id}' has no outgoing edge to continue to")
