"""Journey store port — abstract interface for journeys and their timeline."""

from __future__ import annotations

from typing import Protocol

from pillar_journey.core.pillars import PillarKey
from pillar_journey.data.models import Journey, JourneyMode, JourneyStatus, TimelineEvent


class JourneyStorePort(Protocol):
    """Abstract journey store used by the lifecycle manager."""

    def add_journey(self, journey: Journey) -> Journey: ...

    def get_journey(self, journey_id: str) -> Journey | None: ...

    def find_by_plan(self, plan_id: str) -> Journey | None: ...

    def update_journey(self, journey: Journey) -> None: ...

    def list_journeys(
        self,
        user_id: str,
        pillar_key: PillarKey | None = None,
        status: JourneyStatus | None = None,
    ) -> list[Journey]: ...

    def append_event(self, event: TimelineEvent) -> None: ...

    def list_events(
        self, user_id: str | None = None, journey_id: str | None = None,
    ) -> list[TimelineEvent]: ...

    def get_mode(self, user_id: str) -> JourneyMode | None: ...

    def set_mode(self, user_id: str, mode: JourneyMode) -> None: ...
