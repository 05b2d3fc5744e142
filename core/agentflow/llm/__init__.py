"""Inference provider abstraction."""

from agentflow.llm.litellm import LiteLLMProvider
from agentflow.llm.mock import MockInferenceProvider
from agentflow.llm.provider import InferenceProvider, LLMResponse

__all__ = [
    "InferenceProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "MockInferenceProvider",
]
