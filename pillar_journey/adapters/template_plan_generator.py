"""Template plan generator — offline implementation of PlanGenerationPort.

Needs no API key. Builds action and experiment drafts from the pillar's
focus areas, weakest assessed dimension first; reflection and habit
activities come from the scheduler's built-in templates.
"""

from __future__ import annotations

import logging

from pillar_journey.core.calibration import DurationLevel, IntensityLevel
from pillar_journey.core.pillars import PILLAR_CATALOG, PillarKey
from pillar_journey.data.models import ActivityCategory
from pillar_journey.ports.plan_port import ActivityDraft

logger = logging.getLogger(__name__)


def _focus_order(pillar_key: PillarKey, assessment_context: dict) -> list[str]:
    scores = assessment_context.get("scores_by_dimension") or {}
    weakest = sorted(
        (k for k, v in scores.items() if isinstance(v, (int, float))),
        key=lambda k: (scores[k], k),
    )
    areas = [k.replace("_", " ") for k in weakest[:3]]
    for area in PILLAR_CATALOG[pillar_key].focus_areas:
        if area not in areas:
            areas.append(area)
    return areas


class TemplatePlanGenerator:
    """Deterministic, offline plan generator."""

    async def generate_plan(
        self,
        pillar_key: PillarKey,
        assessment_context: dict,
        intensity: IntensityLevel,
        duration: DurationLevel,
    ) -> list[ActivityDraft]:
        name = PILLAR_CATALOG[pillar_key].name
        drafts: list[ActivityDraft] = []
        for area in _focus_order(pillar_key, assessment_context):
            drafts.append(ActivityDraft(
                title=f"{name}: work on {area}",
                description=f"Spend {intensity.minutes_per_day} focused minutes improving {area}.",
                category=ActivityCategory.ACTION,
            ))
            drafts.append(ActivityDraft(
                title=f"Experiment: a new angle on {area}",
                description=f"Try one unfamiliar way of handling {area} and note what changes.",
                category=ActivityCategory.EXPERIMENT,
            ))
        logger.debug("Template drafts for %s: %d", pillar_key.value, len(drafts))
        return drafts
