"""Shared fixtures for agentflow tests."""

import pytest

from agentflow.config import RuntimeConfig
from agentflow.observability import clear_trace_context


def make_config(**overrides) -> RuntimeConfig:
    """A RuntimeConfig that ignores ~/.agentflow so tests are hermetic."""
    values = {
        "model": "mock/test-model",
        "temperature": 0.0,
        "max_tokens": 64,
        "api_key": None,
        "api_base": None,
        "max_steps": None,
        "script_timeout_seconds": 2.0,
        "inference_timeout_seconds": 5.0,
        "log_dir": None,
    }
    values.update(overrides)
    return RuntimeConfig(**values)


@pytest.fixture
def runtime_config() -> RuntimeConfig:
    return make_config()


@pytest.fixture(autouse=True)
def _reset_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()
