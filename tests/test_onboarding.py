"""Tests for pillar_journey.core.onboarding — the onboarding flow state machine."""

from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from pillar_journey.core.gatekeeper import PillarStatus
from pillar_journey.core.onboarding import (
    AllCompleteState,
    AssessmentState,
    CalibrationState,
    GatewayState,
    IntroState,
    PlanCompleteState,
    PlanGenerationState,
    ResponseKind,
)
from pillar_journey.core.pillars import PILLAR_ORDER, PillarKey
from pillar_journey.data.models import ActivityCategory, JourneyStatus, TimelineEventType
from pillar_journey.ports.plan_port import ActivityDraft, PlanGenerationError
from pillar_journey.ports.task_store_port import TaskStoreError

SCORES = {"sleep": 3, "stress_management": 5, "exercise": 6}
DRAFTS = [
    ActivityDraft(title="Evening wind-down", description="Screens off at 22:00", category=ActivityCategory.HABIT),
    ActivityDraft(title="Walk at lunch", description="", category=ActivityCategory.ACTION),
]


def _to_calibration(flow, pillar=PillarKey.SELF_CARE):
    assert flow.select_pillar(pillar).ok
    assert flow.start_assessment().ok
    assert flow.submit_assessment(SCORES).ok
    assert isinstance(flow.state, CalibrationState)


def _to_generation(flow, intensity="moderate", duration="journey"):
    _to_calibration(flow)
    assert flow.choose_intensity(intensity).ok
    assert flow.choose_duration(duration).ok
    response = flow.confirm_calibration()
    assert response.kind is ResponseKind.TRANSITIONED
    assert isinstance(flow.state, PlanGenerationState)


class TestFullPath:
    @pytest.mark.asyncio
    async def test_new_user_moderate_four_weeks(self, make_flow, journey_service, task_db):
        flow = make_flow()
        assert isinstance(flow.state, GatewayState)
        assert flow.pillar_statuses()[PillarKey.SELF_CARE] is PillarStatus.REQUIRED

        _to_generation(flow)
        response = await flow.generate_plan()

        assert response.kind is ResponseKind.TRANSITIONED
        state = flow.state
        assert isinstance(state, PlanCompleteState)
        assert len(state.activities) == 20
        weeks = {(a.scheduled_date.date() - date(2026, 3, 2)).days // 7 for a in state.activities}
        assert weeks == {0, 1, 2, 3}

        journey = state.journey
        assert journey.status is JourneyStatus.ACTIVE
        assert journey.plan_id == "plan1"
        stored = await task_db.list_activities("plan1")
        assert len(stored) == 20
        assert all(a.journey_id == journey.id for a in stored)

        response = flow.start_another_pillar()
        assert isinstance(flow.state, GatewayState)

    @pytest.mark.asyncio
    async def test_skip_intro(self, make_flow):
        flow = make_flow()
        flow.select_pillar("self_care", skip_intro=True)
        assert isinstance(flow.state, AssessmentState)


class TestGateway:
    def test_locked_pillar_rejected(self, make_flow):
        flow = make_flow()
        response = flow.select_pillar(PillarKey.BRAND)
        assert response.kind is ResponseKind.REJECTED
        assert "Self Care" in response.message
        assert isinstance(flow.state, GatewayState)

    def test_unknown_pillar_rejected(self, make_flow):
        flow = make_flow()
        assert flow.select_pillar("astrology").kind is ResponseKind.REJECTED

    def test_recommendation_drives_required_pillar(self, make_flow, assessment_db):
        assessment_db.submit_assessment("u1", PillarKey.TALENT, {"a": 2})
        assessment_db.submit_assessment("u1", PillarKey.SELF_CARE, {"a": 7})
        flow = make_flow()
        assert flow.recommended_pillar() is PillarKey.TALENT
        assert flow.pillar_statuses()[PillarKey.TALENT] is PillarStatus.REQUIRED
        assert flow.select_pillar(PillarKey.SELF_CARE).kind is ResponseKind.REJECTED

    @pytest.mark.asyncio
    async def test_completed_pillar_needs_retry_flag(self, make_flow, journey_service):
        journey = (await journey_service.start_journey("u1", PillarKey.SELF_CARE)).journey
        await journey_service.complete(journey.id)
        flow = make_flow()

        assert flow.pillar_statuses()[PillarKey.SKILLS] is PillarStatus.AVAILABLE
        assert flow.select_pillar(PillarKey.SELF_CARE).kind is ResponseKind.REJECTED
        assert flow.select_pillar(PillarKey.SELF_CARE, allow_retry=True).ok
        assert isinstance(flow.state, IntroState)

    @pytest.mark.asyncio
    async def test_open_journey_blocks_selection(self, make_flow, journey_service):
        await journey_service.start_journey("u1", PillarKey.SELF_CARE)
        flow = make_flow()
        assert flow.select_pillar(PillarKey.SELF_CARE).kind is ResponseKind.REJECTED

    def test_select_outside_gateway(self, make_flow):
        flow = make_flow()
        flow.select_pillar(PillarKey.SELF_CARE)
        assert flow.select_pillar(PillarKey.SELF_CARE).kind is ResponseKind.REJECTED


class TestDeepLinks:
    def test_resume_lands_in_assessment(self, make_flow):
        flow = make_flow()
        assert flow.open_deep_link("self-care", "resume").ok
        assert isinstance(flow.state, AssessmentState)

    def test_preview_lands_in_intro(self, make_flow):
        flow = make_flow()
        flow.open_deep_link("self_care", "preview")
        assert isinstance(flow.state, IntroState)

    def test_gatekeeper_still_applies(self, make_flow):
        flow = make_flow()
        assert flow.open_deep_link("economy", "resume").kind is ResponseKind.REJECTED
        assert isinstance(flow.state, GatewayState)

    def test_unknown_target(self, make_flow):
        flow = make_flow()
        assert flow.open_deep_link("self_care", "edit").kind is ResponseKind.REJECTED

    def test_link_from_another_state_restarts_at_gateway(self, make_flow):
        flow = make_flow()
        flow.select_pillar("self_care")
        assert flow.open_deep_link("self_care", "resume").ok
        assert isinstance(flow.state, AssessmentState)


class TestAssessment:
    @pytest.mark.parametrize("scores", [
        {},
        {"sleep": None},
        {"sleep": "high"},
        {"sleep": True},
        {"sleep": 11},
        {"sleep": -1},
    ])
    def test_partial_or_invalid_answers_rejected(self, make_flow, assessment_db, scores):
        flow = make_flow()
        flow.select_pillar("self_care", skip_intro=True)
        response = flow.submit_assessment(scores)
        assert response.kind is ResponseKind.REJECTED
        assert isinstance(flow.state, AssessmentState)
        assert assessment_db.get_latest("u1", PillarKey.SELF_CARE) is None

    def test_submit_persists_result(self, make_flow, assessment_db):
        flow = make_flow()
        flow.select_pillar("self_care", skip_intro=True)
        flow.submit_assessment(SCORES)
        latest = assessment_db.get_latest("u1", PillarKey.SELF_CARE)
        assert latest.scores_by_dimension == {k: float(v) for k, v in SCORES.items()}
        assert flow.state.assessment.id == latest.id

    def test_abort_returns_to_gateway(self, make_flow, journey_service):
        flow = make_flow()
        flow.select_pillar("self_care", skip_intro=True)
        assert flow.abort_assessment().ok
        assert isinstance(flow.state, GatewayState)
        assert journey_service.journeys("u1") == []

    def test_start_assessment_requires_intro(self, make_flow):
        flow = make_flow()
        assert flow.start_assessment().kind is ResponseKind.REJECTED


class TestCalibration:
    def test_wizard_steps_are_internal(self, make_flow):
        flow = make_flow()
        _to_calibration(flow)
        response = flow.choose_intensity("light")
        assert response.kind is ResponseKind.UPDATED
        assert isinstance(flow.state, CalibrationState)

    def test_confirm_needs_both_choices(self, make_flow):
        flow = make_flow()
        _to_calibration(flow)
        assert "intensity" in flow.confirm_calibration().message
        flow.choose_intensity("light")
        assert "duration" in flow.confirm_calibration().message
        assert isinstance(flow.state, CalibrationState)

    def test_back_then_change(self, make_flow):
        flow = make_flow()
        _to_calibration(flow)
        flow.choose_intensity("light")
        flow.calibration_back()
        assert flow.choose_intensity("intensive").ok
        flow.choose_duration("sprint")
        flow.confirm_calibration()
        assert flow.state.choice.total_activities == 14

    def test_invalid_choice_rejected(self, make_flow):
        flow = make_flow()
        _to_calibration(flow)
        assert flow.choose_intensity("extreme").kind is ResponseKind.REJECTED

    @pytest.mark.asyncio
    async def test_limit_reached_holds_at_calibration(self, make_flow, journey_service):
        flow = make_flow()
        _to_calibration(flow)
        flow.choose_intensity("light")
        flow.choose_duration("sprint")
        await journey_service.start_journey("u1", PillarKey.SKILLS)   # another session

        response = flow.confirm_calibration()
        assert response.kind is ResponseKind.REJECTED
        assert "guided" in response.message
        assert isinstance(flow.state, CalibrationState)


class TestPlanGeneration:
    @pytest.mark.asyncio
    async def test_generation_failure_is_retryable(self, make_flow, journey_service):
        generator = AsyncMock()
        generator.generate_plan = AsyncMock(side_effect=[PlanGenerationError("timeout"), DRAFTS])
        flow = make_flow(plan_generator=generator)
        _to_generation(flow)

        response = await flow.generate_plan()
        assert response.kind is ResponseKind.GENERATION_FAILED
        assert response.retryable
        assert isinstance(flow.state, PlanGenerationState)
        assert flow.state.last_error == "timeout"
        assert journey_service.journeys("u1") == []

        response = await flow.generate_plan()
        assert response.kind is ResponseKind.TRANSITIONED
        titles = {a.title for a in flow.state.activities}
        assert {"Evening wind-down", "Walk at lunch"} <= titles

    @pytest.mark.asyncio
    async def test_persistence_failure_retry_reuses_drafts(self, make_flow, task_db, journey_service):
        generator = AsyncMock()
        generator.generate_plan = AsyncMock(return_value=DRAFTS)
        flow = make_flow(plan_generator=generator)
        _to_generation(flow)

        with patch.object(task_db, "insert_tasks", AsyncMock(side_effect=TaskStoreError("down"))):
            response = await flow.generate_plan()
        assert response.kind is ResponseKind.GENERATION_FAILED
        assert flow.state.drafts == tuple(DRAFTS)
        assert journey_service.journeys("u1") == []

        response = await flow.generate_plan()
        assert response.ok
        assert generator.generate_plan.await_count == 1
        assert len(await task_db.list_activities("plan1")) == 20

    @pytest.mark.asyncio
    async def test_assessment_context_passed_to_generator(self, make_flow):
        generator = AsyncMock()
        generator.generate_plan = AsyncMock(return_value=DRAFTS)
        flow = make_flow(plan_generator=generator)
        _to_generation(flow, "light", "sprint")
        await flow.generate_plan()

        pillar, context, intensity, duration = generator.generate_plan.await_args.args
        assert pillar is PillarKey.SELF_CARE
        assert context["scores_by_dimension"] == {k: float(v) for k, v in SCORES.items()}
        assert intensity.key == "light"
        assert duration.weeks == 2

    @pytest.mark.asyncio
    async def test_journey_start_rejected_discards_plan(self, make_flow, journey_service, task_db):
        flow = make_flow()
        _to_generation(flow)
        await journey_service.start_journey("u1", PillarKey.SKILLS)   # another session

        response = await flow.generate_plan()
        assert response.kind is ResponseKind.REJECTED
        assert isinstance(flow.state, CalibrationState)
        assert await task_db.list_activities("plan1") == []
        assert journey_service.journeys("u1", pillar_key=PillarKey.SELF_CARE) == []

    @pytest.mark.asyncio
    async def test_abandon_after_failure_discards_plan(self, make_flow, task_db):
        flow = make_flow()
        _to_generation(flow)
        with patch.object(task_db, "insert_calendar_entries", AsyncMock(side_effect=TaskStoreError("down"))):
            await flow.generate_plan()
        assert len(await task_db.list_activities("plan1")) == 20   # tasks written, calendar not

        response = await flow.abandon()
        assert response.ok
        assert isinstance(flow.state, GatewayState)
        assert await task_db.list_activities("plan1") == []

    @pytest.mark.asyncio
    async def test_failed_link_still_tracks_progress(self, make_flow, journey_service, task_db):
        flow = make_flow()
        _to_generation(flow)
        with patch.object(task_db, "attach_journey", AsyncMock(side_effect=TaskStoreError("down"))):
            response = await flow.generate_plan()
        assert response.ok
        journey = flow.state.journey

        outcome = await journey_service.complete_activity("plan1-000")
        assert outcome.success and outcome.changed
        assert outcome.journey.id == journey.id
        assert outcome.journey.progress == 5
        assert TimelineEventType.TASK_COMPLETED in [e.event_type for e in journey_service.events(journey.id)]
        assert all(a.journey_id == journey.id for a in await task_db.list_activities("plan1"))

    @pytest.mark.asyncio
    async def test_journey_carries_plan_estimate_and_score(self, make_flow, journey_service):
        flow = make_flow()
        _to_generation(flow, "light", "sprint")
        await flow.generate_plan()

        journey = journey_service.get_journey(flow.state.journey.id)
        assert journey.estimated_completion == journey.started_at + timedelta(weeks=2)
        assert journey.initial_assessment_score == pytest.approx(4.67)

    @pytest.mark.asyncio
    async def test_generate_in_wrong_state(self, make_flow):
        flow = make_flow()
        response = await flow.generate_plan()
        assert response.kind is ResponseKind.REJECTED


class TestAllComplete:
    @pytest.mark.asyncio
    async def test_all_pillars_complete_bypasses_gateway(self, make_flow, journey_service):
        for key in PILLAR_ORDER:
            journey = (await journey_service.start_journey("u1", key)).journey
            await journey_service.complete(journey.id)

        flow = make_flow()
        assert isinstance(flow.state, AllCompleteState)
        assert flow.enter_gateway().kind is ResponseKind.ALL_COMPLETE
        assert flow.select_pillar(PillarKey.SELF_CARE).kind is ResponseKind.REJECTED

    @pytest.mark.asyncio
    async def test_last_plan_then_all_complete(self, make_flow, journey_service):
        for key in PILLAR_ORDER[1:]:
            journey = (await journey_service.start_journey("u1", key)).journey
            await journey_service.complete(journey.id)

        flow = make_flow()
        _to_generation(flow)
        await flow.generate_plan()
        await journey_service.complete(flow.state.journey.id)

        response = flow.start_another_pillar()
        assert response.kind is ResponseKind.ALL_COMPLETE
        assert isinstance(flow.state, AllCompleteState)
