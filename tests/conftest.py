"""Shared test fixtures and configuration.

Sets up environment variables before any pillar_journey import so the
settings singleton never reads a developer's .env, and provides
temp-file SQLite stores plus small in-memory fakes.
"""

import os

# Patch env vars BEFORE any pillar_journey imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("PLAN_PROVIDER", "template")
os.environ.setdefault("DEFAULT_JOURNEY_MODE", "guided")
os.environ.setdefault("DEFAULT_RECOMMENDED_PILLAR", "self_care")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")

from datetime import date, datetime, timedelta

import pytest


class FakeClock:
    """Deterministic clock; each call advances by one minute."""

    def __init__(self, start=datetime(2026, 3, 2, 9, 0)):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def assessment_db(tmp_path):
    """Return an AssessmentDB instance backed by a temp file."""
    from pillar_journey.data.db import AssessmentDB
    return AssessmentDB(db_path=str(tmp_path / "test_journeys.db"))


@pytest.fixture
def journey_db(tmp_path):
    """Return a JourneyDB instance backed by a temp file."""
    from pillar_journey.data.db import JourneyDB
    return JourneyDB(db_path=str(tmp_path / "test_journeys.db"))


@pytest.fixture
def task_db(tmp_path):
    """Return a TaskDB instance backed by a temp file."""
    from pillar_journey.data.db import TaskDB
    return TaskDB(db_path=str(tmp_path / "test_journeys.db"))


@pytest.fixture
def journey_service(journey_db, task_db, clock):
    from pillar_journey.core.journeys import JourneyService
    return JourneyService(journey_db, task_db, default_mode="guided", now=clock)


@pytest.fixture
def template_generator():
    from pillar_journey.adapters.template_plan_generator import TemplatePlanGenerator
    return TemplatePlanGenerator()


@pytest.fixture
def make_flow(assessment_db, journey_service, task_db, template_generator):
    """Factory for an OnboardingFlow wired to the temp stores."""
    from pillar_journey.core.onboarding import OnboardingFlow

    def _make(user_id="u1", plan_generator=None, task_store=None, plan_ids=None):
        ids = iter(plan_ids or [f"plan{i}" for i in range(1, 100)])
        return OnboardingFlow(
            user_id,
            assessment_db,
            journey_service,
            plan_generator or template_generator,
            task_store or task_db,
            default_pillar="self_care",
            day_start="09:00",
            today=lambda: date(2026, 3, 2),
            new_plan_id=lambda: next(ids),
        )

    return _make
