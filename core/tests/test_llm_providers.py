"""Tests for the LiteLLM and mock inference providers."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from agentflow.llm.litellm import LiteLLMProvider
from agentflow.llm.mock import MockInferenceProvider
from agentflow.runtime.cancellation import CancellationController, OperationCancelledError


def fake_response(content="Hi!", model="openai/gpt-4o-mini"):
    return SimpleNamespace(
        model=model,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=11, completion_tokens=3),
    )


class TestLiteLLMProvider:
    def test_build_request(self):
        provider = LiteLLMProvider(
            model="openai/gpt-4o-mini",
            api_key="sk-test",
            temperature=0.3,
            max_tokens=256,
            timeout=30,
        )

        kwargs = provider._build_request(
            "Hello",
            {"model": None, "system_prompt": "Be brief", "top_p": 0.9, "stop": None},
        )

        assert kwargs == {
            "model": "openai/gpt-4o-mini",
            "messages": [
                {"role": "system", "content": "Be brief"},
                {"role": "user", "content": "Hello"},
            ],
            "timeout": 30,
            "temperature": 0.3,
            "max_tokens": 256,
            "api_key": "sk-test",
            "top_p": 0.9,
        }

    def test_node_model_and_parameters_override_defaults(self):
        provider = LiteLLMProvider(model="openai/gpt-4o-mini", temperature=0.7)
        kwargs = provider._build_request(
            "Hello", {"model": "anthropic/claude-haiku-4-5-20251001", "temperature": 0.0}
        )
        assert kwargs["model"] == "anthropic/claude-haiku-4-5-20251001"
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_generate_maps_response(self):
        provider = LiteLLMProvider(model="openai/gpt-4o-mini")
        with patch(
            "agentflow.llm.litellm.litellm.acompletion",
            new=AsyncMock(return_value=fake_response()),
        ) as acompletion:
            response = await provider.generate("Hello", {}, CancellationController().token)

        acompletion.assert_awaited_once()
        assert response.content == "Hi!"
        assert response.input_tokens == 11
        assert response.output_tokens == 3
        assert response.stop_reason == "stop"

    @pytest.mark.asyncio
    async def test_complete_returns_text_and_handles_empty_content(self):
        provider = LiteLLMProvider(model="openai/gpt-4o-mini")
        with patch(
            "agentflow.llm.litellm.litellm.acompletion",
            new=AsyncMock(return_value=fake_response(content=None)),
        ):
            assert await provider.complete("Hello", {}, CancellationController().token) == ""

    @pytest.mark.asyncio
    async def test_cancellation_aborts_request(self):
        provider = LiteLLMProvider(model="openai/gpt-4o-mini")
        controller = CancellationController()

        async def hang(**kwargs):
            await asyncio.sleep(10)

        with patch("agentflow.llm.litellm.litellm.acompletion", new=hang):
            task = asyncio.create_task(provider.complete("Hello", {}, controller.token))
            await asyncio.sleep(0.01)
            controller.cancel()
            with pytest.raises(OperationCancelledError):
                await asyncio.wait_for(task, timeout=1.0)


class TestMockInferenceProvider:
    @pytest.mark.asyncio
    async def test_echoes_prompt_by_default(self):
        mock = MockInferenceProvider()
        assert await mock.complete("ping", {}, CancellationController().token) == "ping"

    @pytest.mark.asyncio
    async def test_responses_repeat_last(self):
        mock = MockInferenceProvider(responses=["a", "b"])
        token = CancellationController().token
        replies = [await mock.complete("x", {}, token) for _ in range(3)]
        assert replies == ["a", "b", "b"]
        assert mock.call_count == 3

    @pytest.mark.asyncio
    async def test_responder_takes_precedence(self):
        mock = MockInferenceProvider(
            responses=["ignored"], responder=lambda prompt, params: prompt[::-1]
        )
        assert await mock.complete("abc", {}, CancellationController().token) == "cba"

    @pytest.mark.asyncio
    async def test_delay_is_cancellable(self):
        mock = MockInferenceProvider(delay=10.0)
        controller = CancellationController()
        task = asyncio.create_task(mock.complete("x", {}, controller.token))
        await asyncio.sleep(0.01)
        controller.cancel()
        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(task, timeout=1.0)
