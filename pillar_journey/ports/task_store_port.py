"""Task/calendar port — abstract interface for where plan activities live.

Every activity is written twice: once as a calendar entry and once as a
task. Both writes must succeed for a plan to count as persisted.
"""

from __future__ import annotations

from typing import Protocol

from pillar_journey.data.models import Activity


class TaskStoreError(Exception):
    """Raised when any task/calendar store operation fails."""


class TaskStorePort(Protocol):
    """Abstract task/calendar store used by the scheduler and journeys."""

    async def insert_calendar_entries(self, user_id: str, activities: list[Activity]) -> None: ...

    async def insert_tasks(self, user_id: str, activities: list[Activity]) -> None: ...

    async def list_activities(self, plan_id: str) -> list[Activity]: ...

    async def get_activity(self, activity_id: str) -> Activity | None: ...

    async def mark_completed(self, activity_id: str) -> Activity: ...

    async def attach_journey(self, plan_id: str, journey_id: str) -> None: ...

    async def discard_plan(self, plan_id: str) -> None: ...
