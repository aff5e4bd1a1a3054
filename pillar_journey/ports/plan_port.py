"""Plan generation port — abstract interface for the (AI-backed) plan service.

The service returns activity drafts; turning them into dated, persisted
activities is the scheduler's job.
"""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, field_validator

from pillar_journey.core.calibration import DurationLevel, IntensityLevel
from pillar_journey.core.pillars import PillarKey
from pillar_journey.data.models import ActivityCategory


class PlanGenerationError(Exception):
    """Raised when plan generation fails, times out or returns malformed data."""


class ActivityDraft(BaseModel):
    """Undated activity proposed by the plan service.

    JSON example:
    {
        "title": "Evening wind-down",
        "description": "Put screens away 30 minutes before bed.",
        "category": "habit"
    }
    """
    title: str
    description: str = ""
    category: ActivityCategory

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class PlanGenerationPort(Protocol):
    """Abstract plan generator used by the onboarding flow."""

    async def generate_plan(
        self,
        pillar_key: PillarKey,
        assessment_context: dict,
        intensity: IntensityLevel,
        duration: DurationLevel,
    ) -> list[ActivityDraft]: ...
