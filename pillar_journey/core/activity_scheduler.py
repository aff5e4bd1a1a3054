"""
Pillar Journey — Activity Scheduler.

Turns a calibration choice into a concrete, dated list of activities:
    1. total = activities_per_week * weeks
    2. split across reflection / action / habit / experiment (20/40/25/15)
    3. fill each category from its template pool (AI drafts when available)
    4. spread the activities over the weeks, evenly spaced inside each week

``generate`` is pure. ``persist_activities`` is the only function that
touches the outside world.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING

from pillar_journey.core.calibration import DurationLevel, IntensityLevel
from pillar_journey.core.pillars import PILLAR_CATALOG, PillarKey
from pillar_journey.data.models import Activity, ActivityCategory
from pillar_journey.ports.task_store_port import TaskStoreError

if TYPE_CHECKING:
    from pillar_journey.ports.plan_port import ActivityDraft
    from pillar_journey.ports.task_store_port import TaskStorePort

logger = logging.getLogger(__name__)

# Percent of the plan per category, in plan order.
CATEGORY_RATIOS: dict[ActivityCategory, int] = {
    ActivityCategory.REFLECTION: 20,
    ActivityCategory.ACTION: 40,
    ActivityCategory.HABIT: 25,
    ActivityCategory.EXPERIMENT: 15,
}

_REFLECTION_CAP_MINUTES = 15
_HABIT_CAP_MINUTES = 10
_SAME_DAY_GAP_MINUTES = 60


@dataclass(frozen=True)
class _Template:
    title: str
    description: str


_TEMPLATES: dict[ActivityCategory, tuple[_Template, ...]] = {
    ActivityCategory.REFLECTION: (
        _Template(
            "Reflection: where you stand",
            "Spend ten minutes on where you are today in {pillar}. "
            "Write down three strengths and three areas to develop.",
        ),
        _Template(
            "Daily progress check",
            "Review the day: what went well in {pillar}, what could have gone differently?",
        ),
        _Template(
            "Reflection: {focus}",
            "Note one moment this week when {focus} mattered and what you learned from it.",
        ),
    ),
    ActivityCategory.ACTION: (
        _Template(
            "Concrete action: first step",
            "Do one specific thing that moves {pillar} forward. Start small, but start today.",
        ),
        _Template(
            "Challenge: stretch your comfort zone",
            "Do something within {pillar} that feels slightly challenging but doable.",
        ),
        _Template(
            "Focused session: {focus}",
            "Block time and work deliberately on {focus}.",
        ),
    ),
    ActivityCategory.HABIT: (
        _Template(
            "Micro-habit: daily routine",
            "Establish a small but consistent daily habit in {pillar}. Two or three minutes is enough.",
        ),
        _Template(
            "Habit stacking",
            "Attach a {pillar} habit to something you already do every day.",
        ),
    ),
    ActivityCategory.EXPERIMENT: (
        _Template(
            "Experiment: try something new",
            "Try a completely new approach within {pillar}. Be curious about the result, not the outcome.",
        ),
        _Template(
            "Experiment: change one variable",
            "Change one thing about how you handle {focus} and observe what happens for a few days.",
        ),
    ),
}


@dataclass
class PersistOutcome:
    """Result of writing a batch to the task/calendar store."""

    success: bool
    reason: str = ""


# ---------------------------------------------------------------------------
# Partitioning
# ---------------------------------------------------------------------------


def partition(total: int) -> dict[ActivityCategory, int]:
    """Split *total* activities across categories.

    Each category gets the ceiling of its share. Any overshoot is trimmed
    from the categories the ceiling inflated the most, so every count stays
    within one activity of its exact share and the counts sum to *total*.
    """
    if total < 0:
        raise ValueError(f"total must be non-negative, got {total}")

    counts: dict[ActivityCategory, int] = {}
    # Integer arithmetic: excess is (ceil - exact) * 100.
    excess: dict[ActivityCategory, int] = {}
    for category, pct in CATEGORY_RATIOS.items():
        count = -(-total * pct // 100)
        counts[category] = count
        excess[category] = count * 100 - total * pct

    overshoot = sum(counts.values()) - total
    if overshoot > 0:
        order = list(CATEGORY_RATIOS)
        # Largest excess first; on ties trim later categories first.
        trim_order = sorted(order, key=lambda c: (-excess[c], -order.index(c)))
        for category in trim_order[:overshoot]:
            counts[category] -= 1
    return counts


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def estimated_minutes(category: ActivityCategory, minutes_per_day: int) -> int:
    if category is ActivityCategory.REFLECTION:
        return min(minutes_per_day, _REFLECTION_CAP_MINUTES)
    if category is ActivityCategory.HABIT:
        return max(1, min(minutes_per_day // 2, _HABIT_CAP_MINUTES))
    return minutes_per_day


def _focus_from_context(pillar_key: PillarKey, assessment_context: dict) -> str:
    """Weakest assessed dimension, falling back to the pillar's first focus area."""
    scores = assessment_context.get("scores_by_dimension") or {}
    numeric = {k: v for k, v in scores.items() if isinstance(v, (int, float))}
    if numeric:
        weakest = min(numeric, key=lambda k: (numeric[k], k))
        return weakest.replace("_", " ")
    focus_areas = PILLAR_CATALOG[pillar_key].focus_areas
    return focus_areas[0] if focus_areas else PILLAR_CATALOG[pillar_key].name.lower()


def _interleave(
    per_category: dict[ActivityCategory, list[tuple[str, str]]],
) -> list[tuple[ActivityCategory, str, str]]:
    """Spread each category evenly through the plan instead of in blocks."""
    keyed = []
    order = list(CATEGORY_RATIOS)
    for category, items in per_category.items():
        count = len(items)
        for j, (title, description) in enumerate(items):
            keyed.append(((j + 0.5) / count, order.index(category), category, title, description))
    keyed.sort(key=lambda item: (item[0], item[1]))
    return [(category, title, description) for _, _, category, title, description in keyed]


def _day_offsets(total: int, activities_per_week: int) -> list[timedelta]:
    """Offset from the plan start for activity *i*.

    Spacing is ``7 // activities_per_week`` days. With more than seven
    activities a week that spacing is zero; activities are then spread over
    the week and same-day ones are pushed apart by a fixed gap in minutes.
    """
    spacing = 7 // activities_per_week
    seen_per_day: dict[int, int] = defaultdict(int)
    offsets = []
    for i in range(total):
        week, slot = divmod(i, activities_per_week)
        if spacing:
            day = week * 7 + slot * spacing
        else:
            day = week * 7 + (slot * 7) // activities_per_week
        nth_today = seen_per_day[day]
        seen_per_day[day] += 1
        offsets.append(timedelta(days=day, minutes=nth_today * _SAME_DAY_GAP_MINUTES))
    return offsets


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def generate(
    pillar_key: PillarKey,
    assessment_context: dict,
    intensity: IntensityLevel,
    duration: DurationLevel,
    *,
    plan_id: str,
    start: date | datetime | None = None,
    day_start: str = "09:00",
    drafts: list[ActivityDraft] | None = None,
) -> list[Activity]:
    """Produce exactly ``activities_per_week * weeks`` dated activities.

    Args:
        pillar_key: Pillar the plan is for.
        assessment_context: Latest assessment data, e.g.
            {"scores_by_dimension": {...}, "pillar_score": 4.2}.
        intensity: Chosen intensity level.
        duration: Chosen duration level.
        plan_id: Generation attempt id; activity ids derive from it so a
            retried batch gets the same ids.
        start: First day of the plan (defaults to today). A datetime is used
            as-is; a date is combined with *day_start*.
        day_start: "HH:MM" time of day for activities.
        drafts: Optional AI drafts. A category with drafts uses them as its
            pool instead of the built-in templates.

    Returns:
        Activities sorted by scheduled_date ascending.
    """
    if intensity.activities_per_week <= 0 or duration.weeks <= 0:
        raise ValueError(
            f"Invalid calibration: {intensity.activities_per_week}/week for {duration.weeks} weeks"
        )

    total = intensity.activities_per_week * duration.weeks
    counts = partition(total)

    if start is None:
        start = date.today()
    if isinstance(start, datetime):
        start_at = start
    else:
        hour, minute = map(int, day_start.split(":"))
        start_at = datetime.combine(start, time(hour, minute))

    pillar = PILLAR_CATALOG[pillar_key].name
    focus = _focus_from_context(pillar_key, assessment_context)

    draft_pools: dict[ActivityCategory, list[tuple[str, str]]] = defaultdict(list)
    for draft in drafts or []:
        draft_pools[draft.category].append((draft.title, draft.description))

    per_category: dict[ActivityCategory, list[tuple[str, str]]] = {}
    for category, count in counts.items():
        if count == 0:
            continue
        pool = draft_pools.get(category) or [
            (t.title.format(pillar=pillar, focus=focus), t.description.format(pillar=pillar, focus=focus))
            for t in _TEMPLATES[category]
        ]
        per_category[category] = [pool[j % len(pool)] for j in range(count)]

    ordered = _interleave(per_category)
    offsets = _day_offsets(total, intensity.activities_per_week)

    activities = [
        Activity(
            id="",
            pillar_key=pillar_key,
            title=title,
            description=description,
            category=category,
            estimated_minutes=estimated_minutes(category, intensity.minutes_per_day),
            scheduled_date=start_at + offset,
            plan_id=plan_id,
        )
        for (category, title, description), offset in zip(ordered, offsets)
    ]
    activities.sort(key=lambda a: a.scheduled_date)
    for index, activity in enumerate(activities):
        activity.id = f"{plan_id}-{index:03d}"

    logger.info(
        "Scheduled %d activities for %s over %d weeks (plan %s)",
        len(activities), pillar_key.value, duration.weeks, plan_id,
    )
    return activities


async def persist_activities(
    store: TaskStorePort, user_id: str, activities: list[Activity],
) -> PersistOutcome:
    """Write the batch as calendar entries and tasks; both must succeed.

    Store failures are returned as a failed outcome, not raised. The writes
    are keyed by activity id, so retrying the same batch does not duplicate.
    """
    results = await asyncio.gather(
        store.insert_calendar_entries(user_id, activities),
        store.insert_tasks(user_id, activities),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, BaseException)]
    for error in errors:
        if not isinstance(error, TaskStoreError):
            raise error

    if errors:
        reason = "; ".join(str(e) for e in errors)
        logger.warning("Persisting %d activities failed: %s", len(activities), reason)
        return PersistOutcome(success=False, reason=reason)

    logger.info("Persisted %d activities for user %s", len(activities), user_id)
    return PersistOutcome(success=True)
