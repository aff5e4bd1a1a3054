"""
Pillar Journey — Effort Calibration.

Intensity (minutes per day, activities per week) and duration (weeks)
presets, plus the three-step wizard (intensity -> duration -> confirm)
the onboarding flow runs before plan generation. Only the confirmed
CalibrationChoice leaves the wizard.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntensityLevel:
    key: str              # light | moderate | intensive
    label: str
    minutes_per_day: int
    activities_per_week: int


@dataclass(frozen=True)
class DurationLevel:
    key: str              # sprint | journey | marathon
    label: str
    weeks: int


INTENSITY_LEVELS: dict[str, IntensityLevel] = {
    "light": IntensityLevel("light", "Light pace", minutes_per_day=10, activities_per_week=3),
    "moderate": IntensityLevel("moderate", "Balanced pace", minutes_per_day=25, activities_per_week=5),
    "intensive": IntensityLevel("intensive", "Full power", minutes_per_day=45, activities_per_week=7),
}

DURATION_LEVELS: dict[str, DurationLevel] = {
    "sprint": DurationLevel("sprint", "Quick sprint", weeks=2),
    "journey": DurationLevel("journey", "Steady journey", weeks=4),
    "marathon": DurationLevel("marathon", "Deep transformation", weeks=8),
}


@dataclass(frozen=True)
class CalibrationChoice:
    """Confirmed intensity × duration. Immutable once confirmed."""

    intensity: IntensityLevel
    duration: DurationLevel

    @property
    def total_activities(self) -> int:
        return self.intensity.activities_per_week * self.duration.weeks

    @property
    def total_minutes(self) -> int:
        return self.intensity.minutes_per_day * 7 * self.duration.weeks


class CalibrationStep(Enum):
    INTENSITY = "intensity"
    DURATION = "duration"
    CONFIRM = "confirm"


class CalibrationWizard:
    """Three-step selection; ``confirm()`` is the only way to get a choice out."""

    def __init__(self) -> None:
        self.step = CalibrationStep.INTENSITY
        self.intensity: IntensityLevel | None = None
        self.duration: DurationLevel | None = None

    def choose_intensity(self, key: str) -> bool:
        level = INTENSITY_LEVELS.get(key)
        if level is None or self.step is not CalibrationStep.INTENSITY:
            logger.info("Intensity %r rejected at step %s", key, self.step.value)
            return False
        self.intensity = level
        self.step = CalibrationStep.DURATION
        return True

    def choose_duration(self, key: str) -> bool:
        level = DURATION_LEVELS.get(key)
        if level is None or self.step is not CalibrationStep.DURATION:
            logger.info("Duration %r rejected at step %s", key, self.step.value)
            return False
        self.duration = level
        self.step = CalibrationStep.CONFIRM
        return True

    def back(self) -> None:
        if self.step is CalibrationStep.CONFIRM:
            self.step = CalibrationStep.DURATION
            self.duration = None
        elif self.step is CalibrationStep.DURATION:
            self.step = CalibrationStep.INTENSITY
            self.intensity = None

    def confirm(self) -> CalibrationChoice | None:
        if self.step is not CalibrationStep.CONFIRM or self.intensity is None or self.duration is None:
            return None
        return CalibrationChoice(intensity=self.intensity, duration=self.duration)
