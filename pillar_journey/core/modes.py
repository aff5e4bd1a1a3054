"""
Pillar Journey — Mode / Concurrency Policy.

A mode bounds how many journeys a user may have active at once.
Lowering the mode never ends existing journeys; it only blocks new starts
and resumes until the active count drops on its own.
"""

from __future__ import annotations

from dataclasses import dataclass

from pillar_journey.data.models import JourneyMode


@dataclass(frozen=True)
class ModeDetails:
    max_concurrent: int
    support_level: str
    check_ins: str
    ai_assistance: str
    estimated_weeks: int        # used when a journey starts without a plan


MODE_DETAILS: dict[JourneyMode, ModeDetails] = {
    JourneyMode.GUIDED: ModeDetails(1, "high", "weekly", "comprehensive", 8),
    JourneyMode.FLEXIBLE: ModeDetails(2, "medium", "bi_weekly", "targeted", 6),
    JourneyMode.INTENSIVE: ModeDetails(3, "low", "monthly", "minimal", 4),
}

# Progress thresholds (percent) that emit a milestone event. Guided journeys
# get an extra early check-in.
MILESTONES: dict[JourneyMode, tuple[int, ...]] = {
    JourneyMode.GUIDED: (10, 25, 50, 75),
    JourneyMode.FLEXIBLE: (25, 50, 75),
    JourneyMode.INTENSIVE: (25, 50, 75),
}


def parse_mode(value: JourneyMode | str) -> JourneyMode:
    """Parse a mode; raises ValueError for anything that is not a mode."""
    if isinstance(value, JourneyMode):
        return value
    return JourneyMode(value.strip().lower())


def max_concurrent(mode: JourneyMode | str) -> int:
    return MODE_DETAILS[parse_mode(mode)].max_concurrent


def estimated_weeks(mode: JourneyMode | str) -> int:
    return MODE_DETAILS[parse_mode(mode)].estimated_weeks


def can_start_new_journey(mode: JourneyMode | str, active_journey_count: int) -> bool:
    return active_journey_count < max_concurrent(mode)


def limit_message(mode: JourneyMode | str, active_journey_count: int) -> str:
    limit = max_concurrent(mode)
    return (
        f"You already have {active_journey_count} active journey(s) and "
        f"{parse_mode(mode).value} mode allows {limit}. "
        "Pause, complete or abandon one before starting another."
    )


def crossed_milestones(mode: JourneyMode | str, before: int, after: int) -> list[int]:
    """Milestone thresholds passed when progress moves from *before* to *after*."""
    return [t for t in MILESTONES[parse_mode(mode)] if before < t <= after]
