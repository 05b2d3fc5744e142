"""LiteLLM-backed inference provider.

LiteLLM gives one ``acompletion`` call for OpenAI, Anthropic, Gemini, Bedrock
and local servers, so model references look like ``openai/gpt-4o-mini`` or
``anthropic/claude-haiku-4-5-20251001``.
"""

import logging
from typing import Any

import litellm

from agentflow.llm.provider import InferenceProvider, LLMResponse
from agentflow.runtime.cancellation import CancellationToken

logger = logging.getLogger(__name__)

# Params consumed here rather than forwarded to litellm
_RESERVED_PARAMS = frozenset({"model", "system_prompt"})


class LiteLLMProvider(InferenceProvider):
    """
    Inference through LiteLLM.

    Example:
        provider = LiteLLMProvider(model="openai/gpt-4o-mini", temperature=0.2)
        text = await provider.complete("Say hi", {}, token)
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **extra_kwargs: Any,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.extra_kwargs = extra_kwargs

    def _build_request(self, prompt: str, params: dict[str, Any]) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        system_prompt = params.get("system_prompt")
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {
            "model": params.get("model") or self.model,
            "messages": messages,
            **self.extra_kwargs,
        }
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        for key, value in params.items():
            if key in _RESERVED_PARAMS or value is None:
                continue
            kwargs[key] = value
        return kwargs

    async def generate(
        self,
        prompt: str,
        params: dict[str, Any],
        cancellation: CancellationToken,
    ) -> LLMResponse:
        """Like complete(), but returns token usage alongside the text."""
        kwargs = self._build_request(prompt, params)
        response = await cancellation.run(litellm.acompletion(**kwargs))

        choice = response.choices[0]
        content = choice.message.content or ""
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=content,
            model=getattr(response, "model", None) or kwargs["model"],
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=getattr(choice, "finish_reason", "") or "",
            raw_response=response,
        )

    async def complete(
        self,
        prompt: str,
        params: dict[str, Any],
        cancellation: CancellationToken,
    ) -> str:
        result = await self.generate(prompt, params, cancellation)
        logger.debug(
            "LLM call complete",
            extra={
                "model": result.model,
                "tokens_used": result.input_tokens + result.output_tokens,
            },
        )
        return result.content
