"""
Pillar Journey — Data Models.

Journeys persist across sessions: a user may pursue several pillars over
weeks, pausing and resuming them. Timeline events are append-only; the
journey row is the mutable current-state snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pillar_journey.core.pillars import PillarKey


class JourneyMode(str, Enum):
    GUIDED = "guided"
    FLEXIBLE = "flexible"
    INTENSIVE = "intensive"


class JourneyStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset({JourneyStatus.COMPLETED, JourneyStatus.ABANDONED})


class ActivityCategory(str, Enum):
    REFLECTION = "reflection"
    ACTION = "action"
    HABIT = "habit"
    EXPERIMENT = "experiment"


class TimelineEventType(str, Enum):
    STARTED = "started"
    PAUSED = "paused"
    RESUMED = "resumed"
    COMPLETED = "completed"
    MILESTONE = "milestone"
    TASK_COMPLETED = "task_completed"


@dataclass(frozen=True)
class AssessmentResult:
    """One submitted assessment. Never mutated; a retake inserts a new row."""

    id: int
    user_id: str
    pillar_key: PillarKey
    scores_by_dimension: dict[str, float]
    completed_at: datetime

    @property
    def pillar_score(self) -> float:
        """Mean of the dimension scores (0-10), 0.0 when there are none."""
        if not self.scores_by_dimension:
            return 0.0
        values = list(self.scores_by_dimension.values())
        return round(sum(values) / len(values), 2)


@dataclass
class Activity:
    """A single dated unit of work inside a plan.

    Created in a batch at plan-generation time; only ``is_completed``
    changes afterwards.
    """

    id: str
    pillar_key: PillarKey
    title: str
    description: str
    category: ActivityCategory
    estimated_minutes: int
    scheduled_date: datetime
    is_completed: bool = False
    plan_id: str = ""               # generation attempt that produced it
    journey_id: str | None = None   # set once the journey exists


@dataclass
class Journey:
    """A user's pursuit of one pillar, from activation to completion/abandonment."""

    id: str
    user_id: str
    pillar_key: PillarKey
    mode: JourneyMode
    status: JourneyStatus
    progress: int                   # 0-100
    started_at: datetime
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    plan_id: str | None = None
    updated_at: datetime | None = None
    estimated_completion: datetime | None = None
    initial_assessment_score: float | None = None   # pillar score (0-10) at start

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class TimelineEvent:
    """Append-only record of a journey state transition or significant activity."""

    id: str
    journey_id: str
    user_id: str
    pillar_key: PillarKey
    event_type: TimelineEventType
    occurred_at: datetime
    event_title: str
    event_data: dict = field(default_factory=dict)
