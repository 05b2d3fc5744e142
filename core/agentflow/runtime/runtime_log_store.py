"""On-disk store for per-run workflow logs.

Layout::

    {base_path}/runs/{run_id}/nodes.jsonl    one line per reported node
    {base_path}/runs/{run_id}/summary.json   written when the run ends

A run directory without ``summary.json`` belongs to a run that is still going
(or crashed); ``list_runs`` reports it as ``in_progress``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from agentflow.runtime.runtime_log_schemas import NodeLogEntry, RunSummaryLog

logger = logging.getLogger(__name__)

NODES_FILE = "nodes.jsonl"
SUMMARY_FILE = "summary.json"
RUN_ID_TIME_FORMAT = "%Y%m%dT%H%M%S"


class RuntimeLogStore:
    """Run logs under one base directory; runs never share a file."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def runs_dir(self) -> Path:
        return self._base_path / "runs"

    def run_dir(self, run_id: str) -> Path:
        return self.runs_dir / run_id

    # Synchronous writes, called by RuntimeLogger while it holds its lock.

    def ensure_run_dir(self, run_id: str) -> None:
        self.run_dir(run_id).mkdir(parents=True, exist_ok=True)

    def append_node_entry(self, run_id: str, entry: NodeLogEntry) -> None:
        record = json.dumps(entry.model_dump(), ensure_ascii=False, default=str)
        with (self.run_dir(run_id) / NODES_FILE).open("a", encoding="utf-8") as fh:
            fh.write(record + "\n")

    def read_node_entries_sync(self, run_id: str) -> list[NodeLogEntry]:
        """Entries in append order; unparseable lines are logged and skipped."""
        path = self.run_dir(run_id) / NODES_FILE
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Failed to read %s: %s", path, e)
            return []

        entries: list[NodeLogEntry] = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entries.append(NodeLogEntry.model_validate_json(line))
            except ValidationError as e:
                logger.warning("Skipping bad line %d in %s: %s", lineno, path, e.errors()[0]["msg"])
        return entries

    # Async API

    async def save_summary(self, run_id: str, summary: RunSummaryLog) -> None:
        await asyncio.to_thread(self._write_summary, run_id, summary)

    async def load_summary(self, run_id: str) -> RunSummaryLog | None:
        return await asyncio.to_thread(self._read_summary, run_id)

    async def load_node_entries(self, run_id: str) -> list[NodeLogEntry]:
        return await asyncio.to_thread(self.read_node_entries_sync, run_id)

    async def list_runs(
        self,
        status: str = "",
        agent_id: str = "",
        limit: int = 20,
    ) -> list[RunSummaryLog]:
        """Newest-first summaries, optionally filtered by status and agent.

        Runs still in progress get a placeholder summary whose start time is
        recovered from the run id.
        """
        summaries = await asyncio.to_thread(self._collect_summaries)
        selected = [
            s
            for s in summaries
            if (not status or s.status == status)
            and (not agent_id or not s.agent_id or s.agent_id == agent_id)
        ]
        selected.sort(key=lambda s: s.started_at, reverse=True)
        return selected[:limit]

    def _collect_summaries(self) -> list[RunSummaryLog]:
        if not self.runs_dir.is_dir():
            return []
        summaries = []
        for entry in self.runs_dir.iterdir():
            if not entry.is_dir():
                continue
            summary = self._read_summary(entry.name)
            if summary is None:
                summary = RunSummaryLog(
                    run_id=entry.name,
                    status="in_progress",
                    started_at=started_at_from_run_id(entry.name),
                )
            summaries.append(summary)
        return summaries

    def _write_summary(self, run_id: str, summary: RunSummaryLog) -> None:
        run_dir = self.run_dir(run_id)
        run_dir.mkdir(parents=True, exist_ok=True)
        target = run_dir / SUMMARY_FILE
        # rename over the target so readers never see a half-written file
        staging = target.with_suffix(".tmp")
        staging.write_text(summary.model_dump_json(indent=2), encoding="utf-8")
        staging.replace(target)

    def _read_summary(self, run_id: str) -> RunSummaryLog | None:
        path = self.run_dir(run_id) / SUMMARY_FILE
        try:
            return RunSummaryLog.model_validate_json(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable summary %s: %s", path, e)
            return None


def started_at_from_run_id(run_id: str) -> str:
    """ISO start time encoded in ids like ``20250101T120000_abc12345``, else ``""``."""
    stamp, _, _ = run_id.partition("_")
    try:
        started = datetime.strptime(stamp, RUN_ID_TIME_FORMAT)
    except ValueError:
        return ""
    return started.replace(tzinfo=UTC).isoformat()
