"""Tests for pillar_journey.core.llm — provider routing, timeout and errors."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pillar_journey.core import llm
from pillar_journey.core.llm import LLMError, complete, reset_provider


@pytest.fixture(autouse=True)
def _fresh_provider():
    reset_provider()
    yield
    reset_provider()


def _settings(provider="fake", model="", timeout=1.0):
    fake = MagicMock()
    fake.LLM_PROVIDER = provider
    fake.LLM_MODEL = model
    fake.LLM_API_KEY = "key"
    fake.PLAN_GENERATION_TIMEOUT_SECONDS = timeout
    return fake


class TestComplete:
    @pytest.mark.asyncio
    async def test_routes_to_configured_provider(self):
        fn = AsyncMock(return_value="[]")
        with patch.dict(llm._PROVIDERS, {"fake": (fn, "fake-default")}), \
             patch("pillar_journey.config.settings", _settings()):
            result = await complete("system", "hello", max_tokens=100)
        assert result == "[]"
        fn.assert_awaited_once_with("key", "fake-default", "system", "hello", 100)

    @pytest.mark.asyncio
    async def test_model_override(self):
        fn = AsyncMock(return_value="ok")
        with patch.dict(llm._PROVIDERS, {"fake": (fn, "fake-default")}), \
             patch("pillar_journey.config.settings", _settings(model="fake-large")):
            await complete("s", "u")
        assert fn.await_args.args[1] == "fake-large"

    @pytest.mark.asyncio
    async def test_timeout_raises_llm_error(self):
        async def slow(*args):
            await asyncio.sleep(1)
            return "late"

        with patch.dict(llm._PROVIDERS, {"fake": (slow, "m")}), \
             patch("pillar_journey.config.settings", _settings(timeout=0.01)):
            with pytest.raises(LLMError, match="timed out"):
                await complete("s", "u")

    @pytest.mark.asyncio
    async def test_provider_failure_raises_llm_error(self):
        fn = AsyncMock(side_effect=ConnectionError("refused"))
        with patch.dict(llm._PROVIDERS, {"fake": (fn, "m")}), \
             patch("pillar_journey.config.settings", _settings()):
            with pytest.raises(LLMError, match="refused"):
                await complete("s", "u")

    @pytest.mark.asyncio
    async def test_unknown_provider(self):
        with patch("pillar_journey.config.settings", _settings(provider="nope")):
            with pytest.raises(LLMError, match="Unknown LLM_PROVIDER"):
                await complete("s", "u")

    @pytest.mark.asyncio
    async def test_unknown_provider_is_a_generation_failure(self):
        from pillar_journey.adapters.llm_plan_generator import LLMPlanGenerator
        from pillar_journey.core.calibration import DURATION_LEVELS, INTENSITY_LEVELS
        from pillar_journey.core.pillars import PillarKey
        from pillar_journey.ports.plan_port import PlanGenerationError

        with patch("pillar_journey.config.settings", _settings(provider="nope")):
            with pytest.raises(PlanGenerationError):
                await LLMPlanGenerator().generate_plan(
                    PillarKey.SELF_CARE, {"scores_by_dimension": {"sleep": 3.0}},
                    INTENSITY_LEVELS["moderate"], DURATION_LEVELS["journey"],
                )
