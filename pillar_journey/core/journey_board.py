"""
Pillar Journey — Journey Board.

A user's local snapshot of their journeys for list views. Mutations are an
explicit two-phase commit:

    1. apply a pending status locally (the list reflects it immediately)
    2. await the JourneyService
    3. reconcile with the journey the service returned, or restore the
       previous snapshot when the call failed

Derived views are memoized on a version counter that bumps whenever the
snapshot changes, so reading them repeatedly costs nothing.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Awaitable, Callable

from pillar_journey.core.journeys import JourneyNotFoundError, JourneyOutcome
from pillar_journey.core.timeline import EngagementMetrics, engagement_metrics, sort_for_display
from pillar_journey.data.models import Journey, JourneyStatus

if TYPE_CHECKING:
    from pillar_journey.core.journeys import JourneyService

logger = logging.getLogger(__name__)

_Operation = Callable[[str], Awaitable[JourneyOutcome]]


class JourneyBoard:
    def __init__(self, service: JourneyService, user_id: str) -> None:
        self._service = service
        self.user_id = user_id
        self._journeys: dict[str, Journey] = {}
        self._pending: dict[str, JourneyStatus] = {}
        self._version = 0
        self._cache: dict[str, tuple[int, object]] = {}

    @property
    def version(self) -> int:
        return self._version

    @property
    def pending(self) -> dict[str, JourneyStatus]:
        """Journey id -> status awaiting confirmation."""
        return dict(self._pending)

    def refresh(self) -> None:
        """Reload the snapshot from the service."""
        self._journeys = {j.id: j for j in self._service.journeys(self.user_id)}
        self._touch()

    def get(self, journey_id: str) -> Journey:
        try:
            return self._journeys[journey_id]
        except KeyError:
            raise JourneyNotFoundError(f"Journey {journey_id} is not on the board") from None

    def _touch(self) -> None:
        self._version += 1

    def _put(self, journey: Journey) -> None:
        self._journeys[journey.id] = journey
        self._touch()

    # ------------------------------------------------------------------
    # Memoized views
    # ------------------------------------------------------------------

    def _memo(self, name: str, compute: Callable[[], object]):
        cached = self._cache.get(name)
        if cached is not None and cached[0] == self._version:
            return cached[1]
        value = compute()
        self._cache[name] = (self._version, value)
        return value

    def _by_status(self, status: JourneyStatus) -> tuple[Journey, ...]:
        return tuple(sort_for_display(j for j in self._journeys.values() if j.status is status))

    def active(self) -> tuple[Journey, ...]:
        return self._memo("active", lambda: self._by_status(JourneyStatus.ACTIVE))

    def paused(self) -> tuple[Journey, ...]:
        return self._memo("paused", lambda: self._by_status(JourneyStatus.PAUSED))

    def completed(self) -> tuple[Journey, ...]:
        return self._memo("completed", lambda: self._by_status(JourneyStatus.COMPLETED))

    def metrics(self) -> EngagementMetrics:
        return self._memo("metrics", lambda: engagement_metrics(self._journeys.values()))

    # ------------------------------------------------------------------
    # Two-phase mutations
    # ------------------------------------------------------------------

    async def _commit(
        self, journey_id: str, pending_status: JourneyStatus, operation: _Operation,
    ) -> JourneyOutcome:
        original = self.get(journey_id)
        if journey_id in self._pending:
            return JourneyOutcome(
                success=False, journey=original,
                reason="Another change to this journey is still in progress",
            )

        self._pending[journey_id] = pending_status
        self._put(replace(original, status=pending_status))
        try:
            outcome = await operation(journey_id)
        except Exception:
            self._put(original)
            logger.warning("Journey %s: %s failed, local change rolled back", journey_id, pending_status.value)
            raise
        finally:
            self._pending.pop(journey_id, None)

        if outcome.journey is not None:
            self._put(outcome.journey)
        else:
            self._put(original)
        if not outcome.success:
            logger.info("Journey %s: %s rejected (%s)", journey_id, pending_status.value, outcome.reason)
        return outcome

    async def pause(self, journey_id: str) -> JourneyOutcome:
        return await self._commit(journey_id, JourneyStatus.PAUSED, self._service.pause)

    async def resume(self, journey_id: str) -> JourneyOutcome:
        return await self._commit(journey_id, JourneyStatus.ACTIVE, self._service.resume)

    async def complete(self, journey_id: str) -> JourneyOutcome:
        return await self._commit(journey_id, JourneyStatus.COMPLETED, self._service.complete)

    async def abandon(self, journey_id: str) -> JourneyOutcome:
        return await self._commit(journey_id, JourneyStatus.ABANDONED, self._service.abandon)
