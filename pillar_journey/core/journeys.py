"""
Pillar Journey — Journey Lifecycle Manager.

Per-journey state machine:

    active <-> paused
    active | paused -> completed      (terminal, emits "completed")
    active | paused -> abandoned      (terminal, silent)

Every state change that matters to the user appends a TimelineEvent.
Starting and resuming read the user's active count and write the new
status inside a per-user asyncio.Lock, so two concurrent starts cannot both
pass the mode limit. Pause, complete and abandon take the same lock, which
keeps the events of one journey in causal order.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from pillar_journey.core.modes import (
    can_start_new_journey,
    crossed_milestones,
    estimated_weeks,
    limit_message,
    parse_mode,
)
from pillar_journey.core.pillars import PillarKey, parse_pillar_key, pillar_name
from pillar_journey.core.timeline import group_by_day, sort_for_display
from pillar_journey.data.models import (
    Activity,
    Journey,
    JourneyMode,
    JourneyStatus,
    TimelineEvent,
    TimelineEventType,
)
from pillar_journey.ports.task_store_port import TaskStoreError

if TYPE_CHECKING:
    from datetime import date

    from pillar_journey.ports.journey_store_port import JourneyStorePort
    from pillar_journey.ports.task_store_port import TaskStorePort

logger = logging.getLogger(__name__)


class JourneyNotFoundError(Exception):
    """Raised when an operation names a journey that does not exist."""


@dataclass
class JourneyOutcome:
    """Typed result of a lifecycle operation.

    ``success`` is False for rejected transitions; ``changed`` is False for
    successful no-ops (completing an already completed journey).
    """

    success: bool
    journey: Journey | None = None
    changed: bool = False
    reason: str = ""
    events: list[TimelineEvent] = field(default_factory=list)


class JourneyService:
    """Creates journeys and drives their lifecycle against a JourneyStorePort."""

    def __init__(
        self,
        store: JourneyStorePort,
        task_store: TaskStorePort | None = None,
        *,
        default_mode: JourneyMode | str | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        if default_mode is None:
            from pillar_journey.config import settings
            default_mode = settings.DEFAULT_JOURNEY_MODE

        self._store = store
        self._task_store = task_store
        self._default_mode = parse_mode(default_mode)
        self._now = now
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_event_at: dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    def get_mode(self, user_id: str) -> JourneyMode:
        return self._store.get_mode(user_id) or self._default_mode

    def set_mode(self, user_id: str, mode: JourneyMode | str) -> JourneyMode:
        """Change the user's mode. Existing journeys are never ended by this."""
        new_mode = parse_mode(mode)
        self._store.set_mode(user_id, new_mode)
        active = self.active_count(user_id)
        if not can_start_new_journey(new_mode, active):
            logger.info(
                "User %s switched to %s with %d active journeys; new starts blocked",
                user_id, new_mode.value, active,
            )
        return new_mode

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_journey(self, journey_id: str) -> Journey:
        journey = self._store.get_journey(journey_id)
        if journey is None:
            raise JourneyNotFoundError(f"Journey {journey_id} not found")
        return journey

    def journeys(self, user_id: str, pillar_key: PillarKey | None = None) -> list[Journey]:
        return self._store.list_journeys(user_id, pillar_key=pillar_key)

    def active_journeys(self, user_id: str) -> list[Journey]:
        return sort_for_display(self._store.list_journeys(user_id, status=JourneyStatus.ACTIVE))

    def paused_journeys(self, user_id: str) -> list[Journey]:
        return sort_for_display(self._store.list_journeys(user_id, status=JourneyStatus.PAUSED))

    def completed_journeys(self, user_id: str) -> list[Journey]:
        return sort_for_display(self._store.list_journeys(user_id, status=JourneyStatus.COMPLETED))

    def completed_pillars(self, user_id: str) -> set[PillarKey]:
        return {j.pillar_key for j in self._store.list_journeys(user_id, status=JourneyStatus.COMPLETED)}

    def active_count(self, user_id: str) -> int:
        return len(self._store.list_journeys(user_id, status=JourneyStatus.ACTIVE))

    def can_start(self, user_id: str) -> bool:
        return can_start_new_journey(self.get_mode(user_id), self.active_count(user_id))

    def events(self, journey_id: str) -> list[TimelineEvent]:
        return self._store.list_events(journey_id=journey_id)

    def timeline(self, user_id: str) -> list[tuple[date, list[TimelineEvent]]]:
        return group_by_day(self._store.list_events(user_id=user_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stamp(self, journey_id: str) -> datetime:
        """Current time, never earlier than the journey's previous event."""
        now = self._now()
        last = self._last_event_at.get(journey_id)
        if last is None:
            previous = self._store.list_events(journey_id=journey_id)
            last = previous[-1].occurred_at if previous else None
        if last is not None and now < last:
            now = last
        self._last_event_at[journey_id] = now
        return now

    def _emit(
        self,
        journey: Journey,
        event_type: TimelineEventType,
        title: str,
        occurred_at: datetime | None = None,
        **data,
    ) -> TimelineEvent:
        event = TimelineEvent(
            id=uuid.uuid4().hex,
            journey_id=journey.id,
            user_id=journey.user_id,
            pillar_key=journey.pillar_key,
            event_type=event_type,
            occurred_at=occurred_at or self._stamp(journey.id),
            event_title=title,
            event_data=data,
        )
        self._store.append_event(event)
        return event

    def _milestones(self, journey: Journey, before: int) -> list[TimelineEvent]:
        name = pillar_name(journey.pillar_key)
        return [
            self._emit(
                journey, TimelineEventType.MILESTONE,
                f"{threshold}% of {name} reached", threshold=threshold,
            )
            for threshold in crossed_milestones(journey.mode, before, journey.progress)
        ]

    def _reject(self, journey: Journey, reason: str) -> JourneyOutcome:
        logger.info("Journey %s: %s", journey.id, reason)
        return JourneyOutcome(success=False, journey=journey, reason=reason)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_journey(
        self,
        user_id: str,
        pillar_key: PillarKey | str,
        plan_id: str | None = None,
        *,
        weeks: int | None = None,
        initial_assessment_score: float | None = None,
    ) -> JourneyOutcome:
        """Create an active journey if the user's mode allows one more.

        The estimated completion is *weeks* after the start, or the mode's
        typical length when no plan duration is given.
        """
        key = parse_pillar_key(pillar_key)
        if key is None:
            logger.info("Start rejected for user %s: unknown pillar %r", user_id, pillar_key)
            return JourneyOutcome(success=False, reason=f"Unknown pillar: {pillar_key}")

        async with self._locks[user_id]:
            open_journeys = [
                j for j in self._store.list_journeys(user_id, pillar_key=key) if not j.is_terminal
            ]
            if open_journeys:
                reason = f"You already have an open {pillar_name(key)} journey."
                logger.info("Start rejected for user %s: %s", user_id, reason)
                return JourneyOutcome(success=False, journey=open_journeys[0], reason=reason)

            mode = self.get_mode(user_id)
            active = self.active_count(user_id)
            if not can_start_new_journey(mode, active):
                logger.info("Start rejected for user %s: limit reached (%d, %s)", user_id, active, mode.value)
                return JourneyOutcome(success=False, reason=limit_message(mode, active))

            started_at = self._now()
            journey = Journey(
                id=uuid.uuid4().hex,
                user_id=user_id,
                pillar_key=key,
                mode=mode,
                status=JourneyStatus.ACTIVE,
                progress=0,
                started_at=started_at,
                plan_id=plan_id,
                updated_at=started_at,
                estimated_completion=started_at + timedelta(weeks=weeks or estimated_weeks(mode)),
                initial_assessment_score=initial_assessment_score,
            )
            self._store.add_journey(journey)
            self._last_event_at[journey.id] = started_at
            event = self._emit(
                journey, TimelineEventType.STARTED,
                f"Started {pillar_name(key)}", occurred_at=started_at, mode=mode.value,
            )

        logger.info("Journey %s started for user %s (%s, %s)", journey.id, user_id, key.value, mode.value)
        return JourneyOutcome(success=True, journey=journey, changed=True, events=[event])

    async def pause(self, journey_id: str) -> JourneyOutcome:
        journey = self.get_journey(journey_id)
        async with self._locks[journey.user_id]:
            journey = self.get_journey(journey_id)
            if journey.status is not JourneyStatus.ACTIVE:
                return self._reject(journey, f"Cannot pause a {journey.status.value} journey")

            at = self._stamp(journey.id)
            journey.status = JourneyStatus.PAUSED
            journey.paused_at = at
            journey.updated_at = at
            self._store.update_journey(journey)
            event = self._emit(
                journey, TimelineEventType.PAUSED,
                f"Paused {pillar_name(journey.pillar_key)}", occurred_at=at,
                progress=journey.progress,
            )

        logger.info("Journey %s paused", journey.id)
        return JourneyOutcome(success=True, journey=journey, changed=True, events=[event])

    async def resume(self, journey_id: str) -> JourneyOutcome:
        """Resume a paused journey; subject to the mode limit like a new start."""
        journey = self.get_journey(journey_id)
        async with self._locks[journey.user_id]:
            journey = self.get_journey(journey_id)
            if journey.status is not JourneyStatus.PAUSED:
                return self._reject(journey, f"Cannot resume a {journey.status.value} journey")

            mode = self.get_mode(journey.user_id)
            active = self.active_count(journey.user_id)
            if not can_start_new_journey(mode, active):
                return self._reject(journey, limit_message(mode, active))

            at = self._stamp(journey.id)
            paused_for = at - journey.paused_at if journey.paused_at else None
            journey.status = JourneyStatus.ACTIVE
            journey.paused_at = None
            journey.updated_at = at
            self._store.update_journey(journey)
            event = self._emit(
                journey, TimelineEventType.RESUMED,
                f"Resumed {pillar_name(journey.pillar_key)}", occurred_at=at,
                paused_days=paused_for.days if paused_for else 0,
            )

        logger.info("Journey %s resumed", journey.id)
        return JourneyOutcome(success=True, journey=journey, changed=True, events=[event])

    async def complete(self, journey_id: str) -> JourneyOutcome:
        """Complete a journey. Completing it again is a successful no-op."""
        journey = self.get_journey(journey_id)
        async with self._locks[journey.user_id]:
            journey = self.get_journey(journey_id)
            if journey.status is JourneyStatus.COMPLETED:
                return JourneyOutcome(success=True, journey=journey, changed=False)
            if journey.status is JourneyStatus.ABANDONED:
                return self._reject(journey, "Cannot complete an abandoned journey")

            at = self._stamp(journey.id)
            journey.status = JourneyStatus.COMPLETED
            journey.completed_at = at
            journey.paused_at = None
            journey.progress = 100
            journey.updated_at = at
            self._store.update_journey(journey)
            event = self._emit(
                journey, TimelineEventType.COMPLETED,
                f"Completed {pillar_name(journey.pillar_key)}", occurred_at=at,
                days=(at - journey.started_at).days,
            )
            self._last_event_at.pop(journey.id, None)

        logger.info("Journey %s completed", journey.id)
        return JourneyOutcome(success=True, journey=journey, changed=True, events=[event])

    async def abandon(self, journey_id: str) -> JourneyOutcome:
        """Abandon an active or paused journey. No timeline event is written."""
        journey = self.get_journey(journey_id)
        async with self._locks[journey.user_id]:
            journey = self.get_journey(journey_id)
            if journey.is_terminal:
                return self._reject(journey, f"Cannot abandon a {journey.status.value} journey")

            journey.status = JourneyStatus.ABANDONED
            journey.paused_at = None
            journey.updated_at = self._now()
            self._store.update_journey(journey)
            self._last_event_at.pop(journey.id, None)

        logger.info("Journey %s abandoned", journey.id)
        return JourneyOutcome(success=True, journey=journey, changed=True)

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def update_progress(self, journey_id: str, progress: int) -> JourneyOutcome:
        """Set progress (clamped to 0-100) and emit any milestones crossed."""
        journey = self.get_journey(journey_id)
        async with self._locks[journey.user_id]:
            journey = self.get_journey(journey_id)
            if journey.is_terminal:
                return self._reject(journey, f"Cannot update a {journey.status.value} journey")

            before = journey.progress
            journey.progress = max(0, min(100, int(progress)))
            if journey.progress == before:
                return JourneyOutcome(success=True, journey=journey, changed=False)

            journey.updated_at = self._now()
            self._store.update_journey(journey)
            events = self._milestones(journey, before)

        return JourneyOutcome(success=True, journey=journey, changed=True, events=events)

    async def _journey_for(self, activity: Activity) -> Journey | None:
        """The journey an activity counts towards.

        Activities whose plan was never linked are matched by plan id, and
        the link is written back so later lookups take the direct path.
        """
        if activity.journey_id is not None:
            return self.get_journey(activity.journey_id)
        if not activity.plan_id:
            return None

        journey = self._store.find_by_plan(activity.plan_id)
        if journey is None:
            return None
        try:
            await self._task_store.attach_journey(activity.plan_id, journey.id)
        except TaskStoreError as exc:
            logger.warning("Could not link plan %s to journey %s: %s", activity.plan_id, journey.id, exc)
        else:
            logger.info("Plan %s linked to journey %s", activity.plan_id, journey.id)
        return journey

    async def complete_activity(self, activity_id: str) -> JourneyOutcome:
        """Mark one plan activity done and recompute the journey's progress.

        Progress is the share of the plan's activities completed. Store
        failures come back as a failed outcome. The activity is re-read
        under the user's lock, so concurrent completions log it once.
        """
        if self._task_store is None:
            raise RuntimeError("JourneyService was created without a task store")

        try:
            activity = await self._task_store.get_activity(activity_id)
        except TaskStoreError as exc:
            logger.warning("Could not load activity %s: %s", activity_id, exc)
            return JourneyOutcome(success=False, reason=str(exc))
        if activity is None:
            return JourneyOutcome(success=False, reason=f"Activity {activity_id} not found")

        journey = await self._journey_for(activity)
        if journey is None:
            return JourneyOutcome(success=False, reason=f"Activity {activity_id} is not part of a journey")

        async with self._locks[journey.user_id]:
            journey = self.get_journey(journey.id)
            if journey.is_terminal:
                return self._reject(journey, f"Cannot log activities on a {journey.status.value} journey")

            try:
                activity = await self._task_store.get_activity(activity_id)
                if activity is None:
                    return JourneyOutcome(success=False, journey=journey, reason=f"Activity {activity_id} not found")
                if activity.is_completed:
                    return JourneyOutcome(success=True, journey=journey, changed=False)
                await self._task_store.mark_completed(activity_id)
                plan = await self._task_store.list_activities(activity.plan_id)
            except TaskStoreError as exc:
                logger.warning("Could not complete activity %s: %s", activity_id, exc)
                return JourneyOutcome(success=False, journey=journey, reason=str(exc))

            done = sum(1 for a in plan if a.is_completed)
            before = journey.progress
            journey.progress = round(done * 100 / len(plan)) if plan else 0
            journey.updated_at = self._now()
            self._store.update_journey(journey)

            events = [
                self._emit(
                    journey, TimelineEventType.TASK_COMPLETED, activity.title,
                    activity_id=activity.id, category=activity.category.value,
                    completed=done, total=len(plan),
                )
            ]
            events.extend(self._milestones(journey, before))

        logger.info("Activity %s completed; journey %s at %d%%", activity_id, journey.id, journey.progress)
        return JourneyOutcome(success=True, journey=journey, changed=True, events=events)
