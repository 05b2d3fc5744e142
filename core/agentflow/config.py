"""Shared agentflow configuration utilities.

Centralises reading of ~/.agentflow/configuration.json so that the runner,
the CLI and the service facade share one implementation.

Example file::

    {
      "llm": {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "api_key_env_var": "OPENAI_API_KEY",
        "max_tokens": 2048
      },
      "runtime": {
        "max_steps": 200,
        "script_timeout_seconds": 2.5,
        "log_dir": "~/.agentflow/logs"
      }
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MAX_TOKENS = 1024
DEFAULT_SCRIPT_TIMEOUT_SECONDS = 5.0
DEFAULT_INFERENCE_TIMEOUT_SECONDS = 60.0

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

AGENTFLOW_CONFIG_FILE = Path.home() / ".agentflow" / "configuration.json"


def get_agentflow_config() -> dict[str, Any]:
    """Load agentflow configuration from ~/.agentflow/configuration.json."""
    if not AGENTFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(AGENTFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def _runtime_section() -> dict[str, Any]:
    return get_agentflow_config().get("runtime", {})


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the user's preferred model string (e.g. 'openai/gpt-4o-mini')."""
    llm = get_agentflow_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return "openai/gpt-4o-mini"


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return get_agentflow_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable specified in configuration."""
    llm = get_agentflow_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_api_base() -> str | None:
    return get_agentflow_config().get("llm", {}).get("api_base")


def get_log_dir() -> Path | None:
    """Runtime log directory, or None when run logs should not be persisted."""
    log_dir = _runtime_section().get("log_dir")
    return Path(log_dir).expanduser() if log_dir else None


# ---------------------------------------------------------------------------
# RuntimeConfig – shared by runner, service and CLI
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Workflow runtime configuration loaded from ~/.agentflow/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = field(default_factory=get_api_base)
    max_steps: int | None = field(
        default_factory=lambda: _runtime_section().get("max_steps")
    )
    script_timeout_seconds: float = field(
        default_factory=lambda: _runtime_section().get(
            "script_timeout_seconds", DEFAULT_SCRIPT_TIMEOUT_SECONDS
        )
    )
    inference_timeout_seconds: float = field(
        default_factory=lambda: _runtime_section().get(
            "inference_timeout_seconds", DEFAULT_INFERENCE_TIMEOUT_SECONDS
        )
    )
    log_dir: Path | None = field(default_factory=get_log_dir)

    def effective_max_steps(self, graph_max_steps: int) -> int:
        """Step cap for a run: the configured override, else the graph's own."""
        return self.max_steps or graph_max_steps
