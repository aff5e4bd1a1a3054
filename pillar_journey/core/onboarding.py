"""
Pillar Journey — Onboarding Flow State Machine.

One user's path through a pillar:

    gateway -> intro -> assessment -> calibration -> plan_generation -> plan_complete
       ^                                                                    |
       +--------------------------------------------------------------------+

Once all six pillars are completed the flow parks in AllCompleteState
instead of returning to the gateway.

Every state is a frozen dataclass carrying only the fields that are valid
at that stage. Every operation returns a FlowResponse; validation problems
are rejections, never exceptions. Plan generation is the one slow step:
it awaits the plan generator, persists the batch and only then creates the
journey, so a failure never leaves a half-created journey behind.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Callable, Union

from pillar_journey.core import activity_scheduler
from pillar_journey.core.calibration import CalibrationChoice, CalibrationStep, CalibrationWizard
from pillar_journey.core.gatekeeper import (
    PillarStatus,
    all_completed,
    pillar_status,
    pillar_statuses,
)
from pillar_journey.core.modes import limit_message
from pillar_journey.core.pillars import PILLAR_ORDER, PillarKey, parse_pillar_key, pillar_name, position
from pillar_journey.core.recommendation import recommend
from pillar_journey.data.models import Activity, AssessmentResult, Journey
from pillar_journey.ports.plan_port import ActivityDraft, PlanGenerationError
from pillar_journey.ports.task_store_port import TaskStoreError

if TYPE_CHECKING:
    from pillar_journey.core.journeys import JourneyService
    from pillar_journey.ports.assessment_port import AssessmentPort
    from pillar_journey.ports.plan_port import PlanGenerationPort
    from pillar_journey.ports.task_store_port import TaskStorePort

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 10.0


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GatewayState:
    pass


@dataclass(frozen=True)
class IntroState:
    pillar_key: PillarKey


@dataclass(frozen=True)
class AssessmentState:
    pillar_key: PillarKey


@dataclass(frozen=True)
class CalibrationState:
    pillar_key: PillarKey
    assessment: AssessmentResult
    wizard: CalibrationWizard = field(default_factory=CalibrationWizard, compare=False)


@dataclass(frozen=True)
class PlanGenerationState:
    pillar_key: PillarKey
    assessment: AssessmentResult
    choice: CalibrationChoice
    plan_id: str                                  # generation attempt id
    start: date
    drafts: tuple[ActivityDraft, ...] | None = None   # cached once generated
    last_error: str = ""


@dataclass(frozen=True)
class PlanCompleteState:
    pillar_key: PillarKey
    journey: Journey
    activities: tuple[Activity, ...]


@dataclass(frozen=True)
class AllCompleteState:
    pass


FlowState = Union[
    GatewayState,
    IntroState,
    AssessmentState,
    CalibrationState,
    PlanGenerationState,
    PlanCompleteState,
    AllCompleteState,
]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    TRANSITIONED = "transitioned"
    UPDATED = "updated"                 # wizard step inside calibration
    REJECTED = "rejected"
    GENERATION_FAILED = "generation_failed"
    ALL_COMPLETE = "all_complete"


@dataclass
class FlowResponse:
    kind: ResponseKind
    message: str
    state: FlowState
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.kind not in (ResponseKind.REJECTED, ResponseKind.GENERATION_FAILED)


# ---------------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------------


class OnboardingFlow:
    """Drives one user's onboarding through the per-pillar states."""

    def __init__(
        self,
        user_id: str,
        assessments: AssessmentPort,
        journeys: JourneyService,
        plan_generator: PlanGenerationPort,
        task_store: TaskStorePort,
        *,
        default_pillar: PillarKey | str | None = None,
        day_start: str | None = None,
        today: Callable[[], date] = date.today,
        new_plan_id: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        if default_pillar is None or day_start is None:
            from pillar_journey.config import settings
            default_pillar = default_pillar or settings.DEFAULT_RECOMMENDED_PILLAR
            day_start = day_start or settings.PLAN_DAY_START

        self.user_id = user_id
        self._assessments = assessments
        self._journeys = journeys
        self._plan_generator = plan_generator
        self._task_store = task_store
        self._default_pillar = parse_pillar_key(default_pillar) or PILLAR_ORDER[0]
        self._day_start = day_start
        self._today = today
        self._new_plan_id = new_plan_id
        self._generating = False
        self.state: FlowState = GatewayState()
        self.enter_gateway()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, state: FlowState, message: str) -> FlowResponse:
        logger.info("User %s: %s -> %s", self.user_id, type(self.state).__name__, type(state).__name__)
        self.state = state
        return FlowResponse(ResponseKind.TRANSITIONED, message, state)

    def _reject(self, message: str) -> FlowResponse:
        logger.info("User %s: rejected in %s: %s", self.user_id, type(self.state).__name__, message)
        return FlowResponse(ResponseKind.REJECTED, message, self.state)

    def _wrong_state(self, action: str) -> FlowResponse:
        return self._reject(f"Cannot {action} right now.")

    def _completed(self) -> set[PillarKey]:
        return self._journeys.completed_pillars(self.user_id)

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    def enter_gateway(self) -> FlowResponse:
        """Return to the pillar overview, or to the finish line if every pillar is done."""
        if all_completed(self._completed()):
            logger.info("User %s: all pillars completed", self.user_id)
            self.state = AllCompleteState()
            return FlowResponse(
                ResponseKind.ALL_COMPLETE,
                "Every pillar is complete. Congratulations on the whole journey!",
                self.state,
            )
        return self._transition(GatewayState(), "Choose a pillar to work on.")

    def recommended_pillar(self) -> PillarKey:
        """Primary recommendation over the latest scores, else the configured default."""
        result = recommend(self._assessments.latest_scores(self.user_id))
        if result.primary is not None:
            return result.primary.pillar_key
        return self._default_pillar

    def pillar_statuses(self) -> dict[PillarKey, PillarStatus]:
        return pillar_statuses(self._completed(), self.recommended_pillar())

    def select_pillar(
        self, pillar: PillarKey | str, skip_intro: bool = False, allow_retry: bool = False,
    ) -> FlowResponse:
        if not isinstance(self.state, GatewayState):
            return self._wrong_state("choose a pillar")

        key = parse_pillar_key(pillar)
        if key is None:
            return self._reject(f"Unknown pillar: {pillar}")

        recommended = self.recommended_pillar()
        status = pillar_status(key, self._completed(), recommended)
        if status is PillarStatus.LOCKED:
            if not self._completed():
                return self._reject(f"{pillar_name(key)} is locked. Start with {pillar_name(recommended)}.")
            previous = PILLAR_ORDER[position(key) - 1]
            return self._reject(f"{pillar_name(key)} is locked. Complete {pillar_name(previous)} first.")
        if status is PillarStatus.COMPLETED and not allow_retry:
            return self._reject(f"{pillar_name(key)} is already completed.")

        if any(not j.is_terminal for j in self._journeys.journeys(self.user_id, pillar_key=key)):
            return self._reject(f"You already have an open {pillar_name(key)} journey.")

        if skip_intro:
            return self._transition(AssessmentState(key), f"Let's assess {pillar_name(key)}.")
        return self._transition(IntroState(key), f"About {pillar_name(key)}.")

    def open_deep_link(self, pillar: PillarKey | str, target: str) -> FlowResponse:
        """Enter a pillar from a link: "resume" lands in assessment, "preview" in intro."""
        if target not in ("resume", "preview"):
            return self._reject(f"Unknown link target: {target}")
        if isinstance(self.state, PlanGenerationState):
            return self._wrong_state("open a link while a plan is being created")
        if not isinstance(self.state, GatewayState):
            self.enter_gateway()
            if isinstance(self.state, AllCompleteState):
                return self._reject("Every pillar is already complete.")
        return self.select_pillar(pillar, skip_intro=target == "resume")

    # ------------------------------------------------------------------
    # Intro / assessment
    # ------------------------------------------------------------------

    def start_assessment(self) -> FlowResponse:
        if not isinstance(self.state, IntroState):
            return self._wrong_state("start the assessment")
        key = self.state.pillar_key
        return self._transition(AssessmentState(key), f"Let's assess {pillar_name(key)}.")

    def submit_assessment(self, scores_by_dimension: dict[str, float]) -> FlowResponse:
        """Persist a complete assessment and move on to calibration.

        Every answer must be a number between 0 and 10; anything else is a
        partial assessment and is rejected without saving.
        """
        if not isinstance(self.state, AssessmentState):
            return self._wrong_state("submit an assessment")
        if not scores_by_dimension:
            return self._reject("Please answer the questions before submitting.")

        for dimension, score in scores_by_dimension.items():
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                return self._reject(f"Missing answer for {dimension}.")
            if not MIN_SCORE <= score <= MAX_SCORE:
                return self._reject(f"Answer for {dimension} must be between 0 and 10.")

        key = self.state.pillar_key
        result = self._assessments.submit_assessment(self.user_id, key, dict(scores_by_dimension))
        return self._transition(
            CalibrationState(key, result),
            f"{pillar_name(key)} assessed ({result.pillar_score:.1f}/10). Now choose your pace.",
        )

    def abort_assessment(self) -> FlowResponse:
        """Leave intro, assessment or calibration without creating anything."""
        if not isinstance(self.state, (IntroState, AssessmentState, CalibrationState)):
            return self._wrong_state("go back")
        return self.enter_gateway()

    async def abandon(self) -> FlowResponse:
        """Leave the current pillar. A plan that failed midway is discarded."""
        if isinstance(self.state, PlanGenerationState):
            if self._generating:
                return self._wrong_state("leave while the plan is being created")
            try:
                await self._task_store.discard_plan(self.state.plan_id)
            except TaskStoreError as exc:
                logger.warning("Could not discard plan %s: %s", self.state.plan_id, exc)
            return self.enter_gateway()
        return self.abort_assessment()

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def _wizard_step(self, ok: bool, message: str) -> FlowResponse:
        if not ok:
            return self._reject(message)
        return FlowResponse(ResponseKind.UPDATED, message, self.state)

    def choose_intensity(self, key: str) -> FlowResponse:
        if not isinstance(self.state, CalibrationState):
            return self._wrong_state("choose an intensity")
        ok = self.state.wizard.choose_intensity(key)
        return self._wizard_step(ok, "Now choose a duration." if ok else f"Cannot choose intensity {key!r} now.")

    def choose_duration(self, key: str) -> FlowResponse:
        if not isinstance(self.state, CalibrationState):
            return self._wrong_state("choose a duration")
        ok = self.state.wizard.choose_duration(key)
        return self._wizard_step(ok, "Review and confirm your plan." if ok else f"Cannot choose duration {key!r} now.")

    def calibration_back(self) -> FlowResponse:
        if not isinstance(self.state, CalibrationState):
            return self._wrong_state("go back")
        self.state.wizard.back()
        return self._wizard_step(True, f"Back to {self.state.wizard.step.value}.")

    def confirm_calibration(self) -> FlowResponse:
        """Lock in the calibration if the user's mode allows one more journey."""
        if not isinstance(self.state, CalibrationState):
            return self._wrong_state("confirm calibration")
        wizard = self.state.wizard
        choice = wizard.confirm()
        if choice is None:
            missing = "an intensity" if wizard.step is CalibrationStep.INTENSITY else "a duration"
            return self._reject(f"Choose {missing} first.")

        if not self._journeys.can_start(self.user_id):
            mode = self._journeys.get_mode(self.user_id)
            return self._reject(limit_message(mode, self._journeys.active_count(self.user_id)))

        state = PlanGenerationState(
            pillar_key=self.state.pillar_key,
            assessment=self.state.assessment,
            choice=choice,
            plan_id=self._new_plan_id(),
            start=self._today(),
        )
        return self._transition(
            state,
            f"Creating your {choice.total_activities}-activity plan. This can take a little while.",
        )

    # ------------------------------------------------------------------
    # Plan generation
    # ------------------------------------------------------------------

    def _generation_failed(self, state: PlanGenerationState, reason: str) -> FlowResponse:
        self.state = replace(state, last_error=reason)
        return FlowResponse(
            ResponseKind.GENERATION_FAILED,
            "We could not create your plan. Please try again.",
            self.state,
            retryable=True,
        )

    async def generate_plan(self) -> FlowResponse:
        """Generate, schedule and persist the plan, then start the journey.

        Safe to call again after a failure: drafts already received are
        reused and the batch keeps the same plan id, so nothing is
        generated or stored twice.
        """
        state = self.state
        if not isinstance(state, PlanGenerationState):
            return self._wrong_state("create a plan")
        if self._generating:
            return self._reject("Your plan is already being created.")

        self._generating = True
        try:
            return await self._generate(state)
        finally:
            self._generating = False

    async def _generate(self, state: PlanGenerationState) -> FlowResponse:
        choice = state.choice
        drafts = state.drafts
        if drafts is None:
            context = {
                "scores_by_dimension": dict(state.assessment.scores_by_dimension),
                "pillar_score": state.assessment.pillar_score,
            }
            try:
                generated = await self._plan_generator.generate_plan(
                    state.pillar_key, context, choice.intensity, choice.duration,
                )
            except PlanGenerationError as exc:
                logger.warning("Plan generation failed for user %s: %s", self.user_id, exc)
                return self._generation_failed(state, str(exc))
            drafts = tuple(generated)
            state = replace(state, drafts=drafts)
            self.state = state

        activities = activity_scheduler.generate(
            state.pillar_key,
            {"scores_by_dimension": dict(state.assessment.scores_by_dimension)},
            choice.intensity,
            choice.duration,
            plan_id=state.plan_id,
            start=state.start,
            day_start=self._day_start,
            drafts=list(drafts),
        )

        persisted = await activity_scheduler.persist_activities(self._task_store, self.user_id, activities)
        if not persisted.success:
            return self._generation_failed(state, persisted.reason)

        outcome = await self._journeys.start_journey(
            self.user_id, state.pillar_key, plan_id=state.plan_id,
            weeks=choice.duration.weeks,
            initial_assessment_score=state.assessment.pillar_score,
        )
        if not outcome.success:
            try:
                await self._task_store.discard_plan(state.plan_id)
            except TaskStoreError as exc:
                logger.warning("Could not discard plan %s: %s", state.plan_id, exc)
            self.state = CalibrationState(state.pillar_key, state.assessment)
            logger.info("User %s: plan %s discarded, journey not started", self.user_id, state.plan_id)
            return FlowResponse(ResponseKind.REJECTED, outcome.reason, self.state)

        journey = outcome.journey
        try:
            await self._task_store.attach_journey(state.plan_id, journey.id)
        except TaskStoreError as exc:
            # complete_activity matches unlinked activities by plan id
            logger.warning("Could not link plan %s to journey %s: %s", state.plan_id, journey.id, exc)
        for activity in activities:
            activity.journey_id = journey.id

        return self._transition(
            PlanCompleteState(state.pillar_key, journey, tuple(activities)),
            f"Your {pillar_name(state.pillar_key)} plan is ready: {len(activities)} activities "
            f"over {choice.duration.weeks} weeks.",
        )

    def start_another_pillar(self) -> FlowResponse:
        if not isinstance(self.state, PlanCompleteState):
            return self._wrong_state("start another pillar")
        return self.enter_gateway()
