"""
Agent Store - Agent definitions on disk.

One JSON file per agent::

    {base_path}/
      news-digest.json
      support-triage.json

Files are parsed into AgentGraph with pydantic; the file name is a hint,
the ``id`` inside the file is authoritative.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from agentflow.graph.edge import AgentGraph

logger = logging.getLogger(__name__)


class AgentNotFoundError(KeyError):
    """No agent definition with this id."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(agent_id)

    def __str__(self) -> str:
        return f"Agent '{self.agent_id}' not found"


def load_agent(path: Path) -> AgentGraph:
    """
    Parse one agent definition file.

    Raises:
        OSError: unreadable file
        pydantic.ValidationError: not a valid agent definition
    """
    return AgentGraph.model_validate_json(Path(path).read_text(encoding="utf-8"))


class AgentStore(ABC):
    """Read access to agent definitions."""

    @abstractmethod
    def get_agent(self, agent_id: str) -> AgentGraph:
        """Return the agent, or raise AgentNotFoundError."""

    @abstractmethod
    def list_agents(self) -> list[AgentGraph]:
        """All loadable agents, sorted by id."""


class FileAgentStore(AgentStore):
    """AgentStore backed by a directory of JSON files."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)

    def _path_for(self, agent_id: str) -> Path:
        if not agent_id or "/" in agent_id or "\\" in agent_id or agent_id.startswith("."):
            raise ValueError(f"Invalid agent id: {agent_id!r}")
        return self.base_path / f"{agent_id}.json"

    def get_agent(self, agent_id: str) -> AgentGraph:
        path = self._path_for(agent_id)
        if path.exists():
            agent = load_agent(path)
            if agent.id == agent_id:
                return agent
        # File names are only a hint; fall back to scanning
        for agent in self.list_agents():
            if agent.id == agent_id:
                return agent
        raise AgentNotFoundError(agent_id)

    def list_agents(self) -> list[AgentGraph]:
        if not self.base_path.is_dir():
            return []
        agents: list[AgentGraph] = []
        for path in sorted(self.base_path.glob("*.json")):
            try:
                agents.append(load_agent(path))
            except (OSError, ValidationError) as e:
                logger.warning("Skipping invalid agent file %s: %s", path, e)
        agents.sort(key=lambda a: a.id)
        return agents

    def save_agent(self, agent: AgentGraph) -> Path:
        """Write *agent* to ``{base_path}/{agent.id}.json`` atomically."""
        path = self._path_for(agent.id)
        self.base_path.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(agent.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(path)
        return path
