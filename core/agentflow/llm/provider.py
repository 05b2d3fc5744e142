"""Inference provider abstraction for pluggable LLM backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from agentflow.runtime.cancellation import CancellationToken


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None


class InferenceProvider(ABC):
    """
    Abstract inference provider - plug in any LLM backend.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Honouring the cancellation token for in-flight requests
    """

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        params: dict[str, Any],
        cancellation: CancellationToken,
    ) -> str:
        """
        Generate a completion for a rendered prompt.

        Args:
            prompt: The fully rendered user prompt
            params: ``model``, ``system_prompt`` and sampling parameters
                (``temperature``, ``max_tokens``, ...). Unset values are None.
            cancellation: The run's token; implementations should abort
                promptly once it is cancelled

        Returns:
            The model's text output

        Raises:
            OperationCancelledError: if cancelled mid-call
        """
        pass
