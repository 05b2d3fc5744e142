"""Tests for RuntimeLogger and RuntimeLogStore.

Tests incremental JSONL writes of node entries, crash resilience, and the
run summary aggregated at end_run().
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentflow.graph.node import LogType, NodeKind, NodeResult
from agentflow.observability import clear_trace_context, set_trace_context
from agentflow.runtime.runtime_log_schemas import NodeLogEntry, RunSummaryLog
from agentflow.runtime.runtime_log_store import RuntimeLogStore
from agentflow.runtime.runtime_logger import RuntimeLogger, new_run_id


def node_result(node_id: str, *, error: str | None = None, output="ok") -> NodeResult:
    return NodeResult(
        node_id=node_id,
        node_kind=NodeKind.TOOL,
        log_type=LogType.TOOL_CALL,
        title=f"Tool: {node_id}",
        success=error is None,
        input={"q": "x"},
        output=None if error else output,
        error=error,
        started_at_ms=1_700_000_000_000,
        duration_ms=12,
    )


# ---------------------------------------------------------------------------
# RuntimeLogStore tests
# ---------------------------------------------------------------------------


class TestRuntimeLogStore:
    @pytest.mark.asyncio
    async def test_ensure_run_dir_creates_directory(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        store.ensure_run_dir("test_run_1")
        assert (tmp_path / "logs" / "runs" / "test_run_1").is_dir()

    @pytest.mark.asyncio
    async def test_append_and_load_node_entries(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        store.ensure_run_dir("test_run_2")

        store.append_node_entry(
            "test_run_2", NodeLogEntry.from_result(node_result("n1"), "test_run_2", 0)
        )
        store.append_node_entry(
            "test_run_2",
            NodeLogEntry.from_result(node_result("n2", error="boom"), "test_run_2", 1),
        )

        entries = await store.load_node_entries("test_run_2")
        assert [e.node_id for e in entries] == ["n1", "n2"]
        assert entries[0].type == "tool-call"
        assert entries[1].success is False
        assert entries[1].error == "boom"

    @pytest.mark.asyncio
    async def test_save_and_load_summary(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        summary = RunSummaryLog(
            run_id="test_run_3",
            agent_id="digest",
            status="completed",
            total_nodes_executed=3,
            node_path=["a", "b", "c"],
            started_at="2025-01-01T00:00:00",
            duration_ms=1500,
        )

        await store.save_summary("test_run_3", summary)

        loaded = await store.load_summary("test_run_3")
        assert loaded == summary

    @pytest.mark.asyncio
    async def test_load_missing_run_returns_none(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        assert await store.load_summary("nonexistent") is None
        assert await store.load_node_entries("nonexistent") == []

    @pytest.mark.asyncio
    async def test_list_runs_empty(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        assert await store.list_runs() == []

    @pytest.mark.asyncio
    async def test_list_runs_with_filter(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        for run_id, status, agent in [
            ("run_ok", "completed", "digest"),
            ("run_bad", "failed", "digest"),
            ("run_other", "completed", "triage"),
        ]:
            await store.save_summary(
                run_id, RunSummaryLog(run_id=run_id, agent_id=agent, status=status)
            )

        assert len(await store.list_runs()) == 3
        failed = await store.list_runs(status="failed")
        assert [r.run_id for r in failed] == ["run_bad"]
        triage = await store.list_runs(agent_id="triage")
        assert [r.run_id for r in triage] == ["run_other"]

    @pytest.mark.asyncio
    async def test_list_runs_sorted_by_timestamp_desc(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        for i in range(3):
            await store.save_summary(
                f"run_{i}",
                RunSummaryLog(
                    run_id=f"run_{i}", status="completed", started_at=f"2025-01-01T00:00:0{i}"
                ),
            )

        runs = await store.list_runs()
        assert [r.run_id for r in runs] == ["run_2", "run_1", "run_0"]

    @pytest.mark.asyncio
    async def test_list_runs_limit(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        for i in range(10):
            await store.save_summary(
                f"run_{i}",
                RunSummaryLog(
                    run_id=f"run_{i}", status="completed", started_at=f"2025-01-01T00:00:{i:02d}"
                ),
            )

        runs = await store.list_runs(limit=3)
        assert len(runs) == 3

    @pytest.mark.asyncio
    async def test_list_runs_includes_in_progress(self, tmp_path: Path):
        """Directories without summary.json appear as in_progress."""
        store = RuntimeLogStore(tmp_path / "logs")
        await store.save_summary(
            "run_done", RunSummaryLog(run_id="run_done", status="completed")
        )
        store.ensure_run_dir("20250101T120000_abc12345")

        runs = await store.list_runs()

        active = next(r for r in runs if r.run_id == "20250101T120000_abc12345")
        assert active.status == "in_progress"
        assert active.started_at.startswith("2025-01-01T12:00:00")

    @pytest.mark.asyncio
    async def test_corrupt_jsonl_line_skipped(self, tmp_path: Path):
        """A corrupt JSONL line should be skipped without breaking reads."""
        store = RuntimeLogStore(tmp_path / "logs")
        store.ensure_run_dir("test_run")

        jsonl_path = tmp_path / "logs" / "runs" / "test_run" / "nodes.jsonl"
        valid1 = json.dumps(NodeLogEntry.from_result(node_result("n1"), "test_run").model_dump())
        valid2 = json.dumps(NodeLogEntry.from_result(node_result("n2"), "test_run").model_dump())
        jsonl_path.write_text(f"{valid1}\n{{corrupt line\n{valid2}\n")

        entries = store.read_node_entries_sync("test_run")
        assert [e.node_id for e in entries] == ["n1", "n2"]


# ---------------------------------------------------------------------------
# Schema tests
# ---------------------------------------------------------------------------


def test_node_log_entry_payload_matches_result_payload():
    result = node_result("n1")
    entry = NodeLogEntry.from_result(result, "run-1")
    assert entry.to_payload() == result.to_payload()


def test_new_run_id_is_sortable_timestamp():
    run_id = new_run_id()
    stamp, suffix = run_id.split("_")
    assert len(stamp) == 15 and stamp[8] == "T"
    assert len(suffix) == 8


# ---------------------------------------------------------------------------
# RuntimeLogger tests
# ---------------------------------------------------------------------------


class TestRuntimeLogger:
    @pytest.mark.asyncio
    async def test_start_run_returns_run_id(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        rl = RuntimeLogger(store=store, agent_id="test-agent")
        run_id = rl.start_run()
        assert run_id
        assert len(run_id) > 10  # timestamp + uuid
        assert rl.run_id == run_id

    @pytest.mark.asyncio
    async def test_start_run_uses_given_id(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        rl = RuntimeLogger(store=store)
        assert rl.start_run("run-given") == "run-given"
        assert (tmp_path / "logs" / "runs" / "run-given").is_dir()

    @pytest.mark.asyncio
    async def test_log_node_writes_to_disk_immediately(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        rl = RuntimeLogger(store=store, agent_id="test-agent")
        run_id = rl.start_run()

        rl.log_node(node_result("n1"))

        jsonl_path = tmp_path / "logs" / "runs" / run_id / "nodes.jsonl"
        lines = jsonl_path.read_text().strip().split("\n")
        assert len(lines) == 1
        data = json.loads(lines[0])
        assert data["node_id"] == "n1"
        assert data["type"] == "tool-call"
        assert data["step_index"] == 0

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        rl = RuntimeLogger(store=store, agent_id="test-agent")
        run_id = rl.start_run()

        rl.log_node(node_result("fetch"))
        rl.log_node(node_result("parse", error="bad json"))
        rl.log_node(node_result("apologize"))
        await rl.end_run(status="completed", duration_ms=250)

        summary = await store.load_summary(run_id)
        assert summary.agent_id == "test-agent"
        assert summary.status == "completed"
        assert summary.total_nodes_executed == 3
        assert summary.node_path == ["fetch", "parse", "apologize"]
        assert summary.failed_nodes == ["parse"]
        assert summary.duration_ms == 250
        assert summary.started_at

        entries = await store.load_node_entries(run_id)
        assert [e.step_index for e in entries] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_end_run_records_error_and_explicit_path(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        rl = RuntimeLogger(store=store, agent_id="test-agent")
        run_id = rl.start_run()

        await rl.end_run(status="failed", duration_ms=5, node_path=["a"], error="boom")

        summary = await store.load_summary(run_id)
        assert summary.error == "boom"
        assert summary.node_path == ["a"]

    @pytest.mark.asyncio
    async def test_logging_failure_is_not_fatal(self, tmp_path: Path):
        blocker = tmp_path / "logs"
        blocker.write_text("not a directory")
        rl = RuntimeLogger(store=RuntimeLogStore(blocker), agent_id="test-agent")

        rl.start_run("run-x")
        rl.log_node(node_result("n1"))
        await rl.end_run(status="completed", duration_ms=1)

    @pytest.mark.asyncio
    async def test_trace_context_populated(self, tmp_path: Path):
        set_trace_context(trace_id="a1b2c3d4e5f6789012345678abcdef01")
        try:
            store = RuntimeLogStore(tmp_path / "logs")
            rl = RuntimeLogger(store=store, agent_id="test-agent")
            run_id = rl.start_run()
            rl.log_node(node_result("n1"))
            await rl.end_run(status="completed", duration_ms=1)

            entries = await store.load_node_entries(run_id)
            assert entries[0].trace_id == "a1b2c3d4e5f6789012345678abcdef01"
            summary = await store.load_summary(run_id)
            assert summary.trace_id == "a1b2c3d4e5f6789012345678abcdef01"
        finally:
            clear_trace_context()

    @pytest.mark.asyncio
    async def test_trace_context_empty_when_not_set(self, tmp_path: Path):
        store = RuntimeLogStore(tmp_path / "logs")
        rl = RuntimeLogger(store=store, agent_id="test-agent")
        run_id = rl.start_run()
        rl.log_node(node_result("n1"))

        entries = await store.load_node_entries(run_id)
        assert entries[0].trace_id == ""
