"""
Edge Protocol - How nodes connect in an agent workflow.

Edges define:
1. Source and target nodes
2. The outcome of the source node that makes the edge traversable
3. A priority used when several edges could match

Edge Types:
- on_success: Traverse only if the source succeeds (default)
- on_failure: Traverse only if the source fails (error handler routing)
- always:     Traverse after the source regardless of outcome
- branch:     Traverse when a condition node selected ``branch``

Cycles are legal: a branch edge may route back upstream. The runner's
``max_steps`` cap is the termination backstop.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agentflow.graph.node import NodeKind, NodeSpec

DEFAULT_MAX_STEPS = 100


class EdgeCondition(StrEnum):
    """When an edge should be traversed."""

    ON_SUCCESS = "on_success"
    ON_FAILURE = "on_failure"
    ALWAYS = "always"
    BRANCH = "branch"


def branch_key(value: Any) -> str:
    """Normalize a condition result into the string compared against edge branches."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class EdgeSpec(BaseModel):
    """
    Specification for an edge between nodes.

    Examples:
        # Linear flow
        EdgeSpec(id="ask-to-search", source="ask", target="search")

        # Error handler
        EdgeSpec(
            id="search-failed",
            source="search",
            target="apologize",
            condition=EdgeCondition.ON_FAILURE,
        )

        # Branch of a condition node
        EdgeSpec(
            id="check-yes",
            source="check",
            target="publish",
            condition=EdgeCondition.BRANCH,
            branch="true",
        )
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    condition: EdgeCondition = EdgeCondition.ON_SUCCESS
    branch: str | None = Field(
        default=None, description="Branch value for BRANCH edges, e.g. 'true' or 'escalate'"
    )
    priority: int = Field(default=0, description="Higher priority edges are evaluated first")
    description: str = ""

    model_config = ConfigDict(frozen=True)

    def should_traverse(self, source_success: bool, selected_branch: str | None = None) -> bool:
        """Determine if this edge matches the source node's outcome."""
        if self.condition == EdgeCondition.ALWAYS:
            return True

        if self.condition == EdgeCondition.ON_SUCCESS:
            return source_success

        if self.condition == EdgeCondition.ON_FAILURE:
            return not source_success

        if self.condition == EdgeCondition.BRANCH:
            return source_success and selected_branch is not None and self.branch == selected_branch

        return False


class AgentGraph(BaseModel):
    """
    Complete, immutable definition of an agent workflow.

    Example:
        AgentGraph(
            id="news-digest",
            name="News Digest",
            entry_node="fetch",
            nodes=[...],
            edges=[...],
        )
    """

    id: str
    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    entry_node: str = Field(description="ID of the first node to execute")
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    max_steps: int = Field(
        default=DEFAULT_MAX_STEPS, gt=0, description="Maximum node executions per run"
    )

    model_config = ConfigDict(frozen=True)

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def terminal_nodes(self) -> list[str]:
        return [n.id for n in self.nodes if n.kind == NodeKind.TERMINAL]

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node, sorted by priority (stable for ties)."""
        edges = [e for e in self.edges if e.source == node_id]
        return sorted(edges, key=lambda e: -e.priority)

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def validate(self) -> list[str]:
        """Validate the graph structure. Returns a list of error messages."""
        errors = []

        seen_ids: set[str] = set()
        for node in self.nodes:
            if node.id in seen_ids:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen_ids.add(node.id)

        if not self.get_node(self.entry_node):
            errors.append(f"Entry node '{self.entry_node}' not found")
        elif self.get_incoming_edges(self.entry_node):
            errors.append(f"Entry node '{self.entry_node}' must not have incoming edges")

        for edge in self.edges:
            if not self.get_node(edge.source):
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if not self.get_node(edge.target):
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
            if edge.condition == EdgeCondition.BRANCH and edge.branch is None:
                errors.append(f"Branch edge '{edge.id}' has no branch value")

        for node in self.nodes:
            outgoing = self.get_outgoing_edges(node.id)
            if node.kind == NodeKind.TERMINAL:
                continue
            if node.kind == NodeKind.CONDITION:
                branches = [e for e in outgoing if e.condition == EdgeCondition.BRANCH]
                if len(branches) < 2:
                    errors.append(
                        f"Condition node '{node.id}' needs at least two branch edges, "
                        f"found {len(branches)}"
                    )
                for edge in outgoing:
                    if edge.condition in (EdgeCondition.ON_SUCCESS, EdgeCondition.ALWAYS):
                        errors.append(
                            f"Condition node '{node.id}' may only route through branch or "
                            f"on_failure edges (edge '{edge.id}')"
                        )
                continue
            if not any(
                e.condition in (EdgeCondition.ON_SUCCESS, EdgeCondition.ALWAYS) for e in outgoing
            ):
                errors.append(f"Node '{node.id}' has no successor for a successful outcome")

        if not self.terminal_nodes:
            errors.append("Graph has no terminal node")

        # Reachability from the entry node
        reachable: set[str] = set()
        to_visit = [self.entry_node]
        while to_visit:
            current = to_visit.pop()
            if current in reachable:
                continue
            reachable.add(current)
            for edge in self.get_outgoing_edges(current):
                to_visit.append(edge.target)

        for node in self.nodes:
            if node.id not in reachable:
                errors.append(f"Node '{node.id}' is unreachable from entry")

        if self.terminal_nodes and not reachable.intersection(self.terminal_nodes):
            errors.append("No terminal node is reachable from entry")

        return errors
