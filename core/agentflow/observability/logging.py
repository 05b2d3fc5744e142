"""
Logging with per-run trace context.

The runner binds ``run_id``, ``agent_id`` and ``trace_id`` in a ContextVar when
a run starts, resets them when it ends, and sets ``node_id`` before each node.
Every ``logger.*`` call made while the run's task is active is tagged with
those ids by the formatters below. Each run is its own asyncio task, so the
ids of concurrent runs stay apart.

Two output modes:
    json   one JSON object per line, for log shippers
    human  coloured level plus a ``[run:… | agent:… | node:…]`` prefix
"""

import json
import logging
import os
import re
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Attributes callers may pass via ``extra=`` that end up as JSON fields
RECORD_EXTRAS = ("event", "latency_ms", "tokens_used", "node_id", "model")

# Loggers that install their own handlers and must be routed through the root
THIRD_PARTY_LOGGERS = ("LiteLLM", "httpcore", "httpx", "openai")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


def _clean(value: Any) -> Any:
    return strip_ansi_codes(value) if isinstance(value, str) else value


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, trace ids, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **(trace_context.get() or {}),
        }
        payload.update(
            (name, _clean(getattr(record, name)))
            for name in RECORD_EXTRAS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            payload["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[36m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[35m",
    }
    RESET = "\x1b[0m"

    @staticmethod
    def context_prefix() -> str:
        context = trace_context.get() or {}
        parts = [
            f"{label}:{value}"
            for label, value in (
                # run ids share a timestamp prefix; the random suffix is what tells them apart
                ("run", context.get("run_id", "")[-8:]),
                ("agent", context.get("agent_id", "")),
                ("node", context.get("node_id", "")),
            )
            if value
        ]
        return f"[{' | '.join(parts)}] " if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = (
            f"{color}[{record.levelname:<8}]{self.RESET} "
            f"{self.context_prefix()}{record.getMessage()}"
        )
        event = getattr(record, "event", None)
        if event is not None:
            line += f" [{event}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single root handler. Call once at startup.

    Args:
        level: Root log level name.
        format: "json", "human", or "auto" (json when LOG_FORMAT=json or
            ENV=production, human otherwise).
    """
    if format == "auto":
        wants_json = (
            os.getenv("LOG_FORMAT", "").lower() == "json"
            or os.getenv("ENV", "development").lower() == "production"
        )
        format = "json" if wants_json else "human"

    handler = logging.StreamHandler()
    if format == "json":
        handler.setFormatter(StructuredFormatter())
        _quiet_third_party_output()
    else:
        handler.setFormatter(HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def _quiet_third_party_output() -> None:
    """No colours or banners from libraries while emitting JSON."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"

    import litellm

    litellm.suppress_debug_info = True

    for name in THIRD_PARTY_LOGGERS:
        third_party = logging.getLogger(name)
        third_party.handlers.clear()
        third_party.propagate = True


def set_trace_context(**fields: Any) -> None:
    """Merge ``fields`` into the current task's trace context."""
    trace_context.set({**(trace_context.get() or {}), **fields})


def bind_trace_context(**fields: Any) -> Token:
    """Like set_trace_context, but returns a token for reset_trace_context."""
    return trace_context.set({**(trace_context.get() or {}), **fields})


def reset_trace_context(token: Token) -> None:
    """Restore the trace context that was current before bind_trace_context."""
    trace_context.reset(token)


def get_trace_context() -> dict:
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)
