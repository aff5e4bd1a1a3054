"""
Pillar Journey — Timeline Aggregator.

Read-side projections over journeys and their timeline events: events
grouped by calendar day, the display ordering for journey lists, and a
small set of engagement figures. Nothing here writes anywhere.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from pillar_journey.data.models import Journey, JourneyStatus, TimelineEvent


@dataclass(frozen=True)
class EngagementMetrics:
    total_journeys: int
    active: int
    paused: int
    completed: int
    abandoned: int
    completion_rate: float          # percent of all journeys that completed
    average_active_progress: float  # mean progress of active journeys


def group_by_day(events: Iterable[TimelineEvent]) -> list[tuple[date, list[TimelineEvent]]]:
    """Group events by calendar day.

    Days are returned most recent first, and events within a day most
    recent first. Events with equal timestamps keep their reversed append
    order, so the later-appended one comes first.
    """
    indexed = list(enumerate(events))
    indexed.sort(key=lambda item: (item[1].occurred_at, item[0]), reverse=True)

    groups: list[tuple[date, list[TimelineEvent]]] = []
    for _, event in indexed:
        day = event.occurred_at.date()
        if groups and groups[-1][0] == day:
            groups[-1][1].append(event)
        else:
            groups.append((day, [event]))
    return groups


def sort_for_display(journeys: Iterable[Journey]) -> list[Journey]:
    """Most advanced first; ties go to the journey started earliest."""
    return sorted(journeys, key=lambda j: (-j.progress, j.started_at))


def engagement_metrics(journeys: Iterable[Journey]) -> EngagementMetrics:
    journeys = list(journeys)
    by_status = {status: 0 for status in JourneyStatus}
    for journey in journeys:
        by_status[journey.status] += 1

    total = len(journeys)
    active_progress = [j.progress for j in journeys if j.status is JourneyStatus.ACTIVE]
    completion_rate = round(by_status[JourneyStatus.COMPLETED] / total * 100, 1) if total else 0.0
    average = round(sum(active_progress) / len(active_progress), 1) if active_progress else 0.0

    return EngagementMetrics(
        total_journeys=total,
        active=by_status[JourneyStatus.ACTIVE],
        paused=by_status[JourneyStatus.PAUSED],
        completed=by_status[JourneyStatus.COMPLETED],
        abandoned=by_status[JourneyStatus.ABANDONED],
        completion_rate=completion_rate,
        average_active_progress=average,
    )
