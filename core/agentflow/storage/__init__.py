"""Agent definition storage."""

from agentflow.storage.agent_store import (
    AgentNotFoundError,
    AgentStore,
    FileAgentStore,
    load_agent,
)

__all__ = ["AgentNotFoundError", "AgentStore", "FileAgentStore", "load_agent"]
