"""
Pillar Journey — Entry Point.

Single entry point: `python main.py [user_id]` walks one user through the
recommended pillar (assessment, calibration, plan) against the local
SQLite stores and prints the resulting plan.
"""

import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from pillar_journey.adapters.plan_generator_factory import create_plan_generator
from pillar_journey.core.journeys import JourneyService
from pillar_journey.core.onboarding import OnboardingFlow, PlanCompleteState
from pillar_journey.data.db import AssessmentDB, JourneyDB, TaskDB

logger = logging.getLogger("main")

_DEMO_SCORES = {
    "sleep": 4.0,
    "stress_management": 3.0,
    "exercise": 6.0,
    "nutrition": 5.0,
}


async def run_demo(user_id: str) -> int:
    task_store = TaskDB()
    journeys = JourneyService(JourneyDB(), task_store)
    flow = OnboardingFlow(user_id, AssessmentDB(), journeys, create_plan_generator(), task_store)

    pillar = flow.recommended_pillar()
    steps = [
        lambda: flow.select_pillar(pillar, skip_intro=True),
        lambda: flow.submit_assessment(_DEMO_SCORES),
        lambda: flow.choose_intensity("moderate"),
        lambda: flow.choose_duration("journey"),
        flow.confirm_calibration,
    ]
    for step in steps:
        response = step()
        print(response.message)
        if not response.ok:
            return 1

    response = await flow.generate_plan()
    print(response.message)
    if not isinstance(flow.state, PlanCompleteState):
        return 1

    for activity in flow.state.activities:
        print(
            f"  {activity.scheduled_date:%a %d %b %H:%M}  [{activity.category.value:<10}] "
            f"{activity.title} ({activity.estimated_minutes} min)"
        )
    return 0


def main() -> None:
    user_id = sys.argv[1] if len(sys.argv) > 1 else "demo"
    sys.exit(asyncio.run(run_demo(user_id)))


if __name__ == "__main__":
    main()
