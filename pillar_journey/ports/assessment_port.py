"""Assessment port — abstract interface for the assessment store.

Core modules only read completed results and their numeric scores; raw
answer content never crosses this boundary.
"""

from __future__ import annotations

from typing import Protocol

from pillar_journey.core.pillars import PillarKey
from pillar_journey.data.models import AssessmentResult


class AssessmentPort(Protocol):
    """Abstract assessment store used by the onboarding flow."""

    def submit_assessment(
        self, user_id: str, pillar_key: PillarKey, scores_by_dimension: dict[str, float],
    ) -> AssessmentResult: ...

    def get_latest(self, user_id: str, pillar_key: PillarKey) -> AssessmentResult | None: ...

    def latest_scores(self, user_id: str) -> dict[PillarKey, float]: ...
