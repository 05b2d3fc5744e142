"""Tests for FileAgentStore."""

from pathlib import Path

import pytest

from agentflow.graph.edge import AgentGraph, EdgeSpec
from agentflow.graph.node import PromptNodeSpec, TerminalNodeSpec
from agentflow.storage.agent_store import AgentNotFoundError, FileAgentStore, load_agent


def sample_agent(agent_id: str = "digest") -> AgentGraph:
    return AgentGraph(
        id=agent_id,
        name="Digest",
        entry_node="ask",
        nodes=[PromptNodeSpec(id="ask", prompt="{{input}}"), TerminalNodeSpec(id="done")],
        edges=[EdgeSpec(id="e", source="ask", target="done")],
    )


def test_save_and_load_round_trip(tmp_path: Path):
    store = FileAgentStore(tmp_path / "agents")
    path = store.save_agent(sample_agent())

    assert path == tmp_path / "agents" / "digest.json"
    assert store.get_agent("digest") == sample_agent()
    assert load_agent(path).nodes[0].prompt == "{{input}}"
    assert not list((tmp_path / "agents").glob("*.tmp"))


def test_get_agent_falls_back_to_scanning(tmp_path: Path):
    store = FileAgentStore(tmp_path)
    (tmp_path / "renamed.json").write_text(sample_agent("weekly").model_dump_json())

    assert store.get_agent("weekly").id == "weekly"


def test_missing_agent(tmp_path: Path):
    store = FileAgentStore(tmp_path)
    with pytest.raises(AgentNotFoundError) as exc_info:
        store.get_agent("ghost")
    assert str(exc_info.value) == "Agent 'ghost' not found"


def test_invalid_agent_id(tmp_path: Path):
    store = FileAgentStore(tmp_path)
    with pytest.raises(ValueError):
        store.get_agent("../etc/passwd")


def test_list_agents_skips_invalid_files(tmp_path: Path):
    store = FileAgentStore(tmp_path)
    store.save_agent(sample_agent("b-agent"))
    store.save_agent(sample_agent("a-agent"))
    (tmp_path / "broken.json").write_text("{not json")
    (tmp_path / "wrong-shape.json").write_text('{"id": "x"}')

    assert [a.id for a in store.list_agents()] == ["a-agent", "b-agent"]


def test_list_agents_of_missing_directory(tmp_path: Path):
    assert FileAgentStore(tmp_path / "nope").list_agents() == []
