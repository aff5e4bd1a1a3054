"""LLM plan generator — implements PlanGenerationPort via the configured LLM.

Asks the model for a JSON array of activity drafts and validates it against
the ActivityDraft contract. Anything malformed is a PlanGenerationError; the
onboarding flow turns that into a retryable failure.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from pillar_journey.core.calibration import DurationLevel, IntensityLevel
from pillar_journey.core.llm import LLMError, complete
from pillar_journey.core.pillars import PILLAR_CATALOG, PillarKey
from pillar_journey.ports.plan_port import ActivityDraft, PlanGenerationError

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """\
You are a personal development coach designing a plan for the "{pillar}" pillar
({description}).

The person will spend about {minutes} minutes a day, {per_week} activities a week,
for {weeks} weeks.

Their latest assessment (dimension -> score 0-10, lower means more room to grow):
{scores}

Propose {count} distinct activities spread over four categories:
- "reflection": journaling and self-review
- "action": concrete steps that change something this week
- "habit": tiny daily routines
- "experiment": trying a new approach and observing the result

**Return ONLY a JSON array**, no prose:
[{{"title": "string", "description": "string", "category": "reflection|action|habit|experiment"}}]
"""


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from the LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def parse_drafts(raw_text: str) -> list[ActivityDraft]:
    """Parse the model output into drafts.

    Individual invalid items are skipped; an unparseable or empty response
    raises PlanGenerationError.
    """
    cleaned = _clean_llm_response(raw_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("Plan response is not valid JSON: %s", cleaned[:200])
        raise PlanGenerationError("Plan service returned malformed data") from exc

    # Defensive wrapping: {"activities": [...]} or a single object
    if isinstance(data, dict):
        data = data.get("activities", [data])
    if not isinstance(data, list):
        raise PlanGenerationError(f"Expected a list of activities, got {type(data).__name__}")

    drafts: list[ActivityDraft] = []
    for item in data:
        if not isinstance(item, dict):
            logger.warning("Skipping non-dict plan item: %s", item)
            continue
        try:
            drafts.append(ActivityDraft.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping invalid plan item %s: %s", item, exc.errors()[0]["msg"])

    if not drafts:
        raise PlanGenerationError("Plan service returned no usable activities")
    return drafts


class LLMPlanGenerator:
    """LLM-backed implementation of PlanGenerationPort."""

    async def generate_plan(
        self,
        pillar_key: PillarKey,
        assessment_context: dict,
        intensity: IntensityLevel,
        duration: DurationLevel,
    ) -> list[ActivityDraft]:
        info = PILLAR_CATALOG[pillar_key]
        scores = assessment_context.get("scores_by_dimension") or {}
        total = intensity.activities_per_week * duration.weeks
        system = _SYSTEM_PROMPT.format(
            pillar=info.name,
            description=info.description,
            minutes=intensity.minutes_per_day,
            per_week=intensity.activities_per_week,
            weeks=duration.weeks,
            scores=json.dumps(scores, ensure_ascii=False) if scores else "(not available)",
            count=min(total, 12),
        )

        try:
            raw = await complete(
                system=system,
                user_message=f"Create my {info.name} plan.",
                max_tokens=2048,
            )
        except LLMError as exc:
            logger.warning("Plan generation for %s failed: %s", pillar_key.value, exc)
            raise PlanGenerationError(str(exc)) from exc

        drafts = parse_drafts(raw)
        logger.info("LLM proposed %d activity drafts for %s", len(drafts), pillar_key.value)
        return drafts
