"""Plan generator factory — creates the right generator based on config."""

from __future__ import annotations

from pillar_journey.config import settings
from pillar_journey.ports.plan_port import PlanGenerationPort


def create_plan_generator(provider: str | None = None) -> PlanGenerationPort:
    """Return the plan generator matching PLAN_PROVIDER (or *provider*)."""
    provider = (provider or settings.PLAN_PROVIDER).lower()

    if provider == "template":
        from pillar_journey.adapters.template_plan_generator import TemplatePlanGenerator

        return TemplatePlanGenerator()

    if provider == "llm":
        from pillar_journey.adapters.llm_plan_generator import LLMPlanGenerator

        return LLMPlanGenerator()

    raise ValueError(f"Unknown PLAN_PROVIDER: {provider!r}")
