"""Mock inference provider for tests and dry runs."""

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

from agentflow.llm.provider import InferenceProvider
from agentflow.runtime.cancellation import CancellationToken


class MockInferenceProvider(InferenceProvider):
    """
    Returns scripted replies without calling any model.

    - ``responses``: replies returned in order; once exhausted the last one
      repeats. With no responses the prompt is echoed back.
    - ``responder``: callable ``(prompt, params) -> str`` taking precedence
      over ``responses``.
    - ``delay``: seconds to sleep before replying (cancellation-aware).

    Every call is recorded in ``calls`` as ``(prompt, params)``.
    """

    def __init__(
        self,
        responses: Iterable[str] | None = None,
        responder: Callable[[str, dict[str, Any]], str] | None = None,
        delay: float = 0.0,
    ):
        self.responses = list(responses or [])
        self.responder = responder
        self.delay = delay
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._index = 0

    async def complete(
        self,
        prompt: str,
        params: dict[str, Any],
        cancellation: CancellationToken,
    ) -> str:
        self.calls.append((prompt, dict(params)))
        if self.delay:
            await cancellation.run(asyncio.sleep(self.delay))
        cancellation.raise_if_cancelled()

        if self.responder is not None:
            return self.responder(prompt, params)
        if not self.responses:
            return prompt
        reply = self.responses[min(self._index, len(self.responses) - 1)]
        self._index += 1
        return reply

    @property
    def call_count(self) -> int:
        return len(self.calls)
