"""
Pillar Journey — Pillar Catalog.

Static reference data: the six development pillars, their canonical order
(which drives sequencing) and descriptive metadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PillarKey(str, Enum):
    SELF_CARE = "self_care"
    SKILLS = "skills"
    TALENT = "talent"
    BRAND = "brand"
    ECONOMY = "economy"
    OPEN_TRACK = "open_track"


# Canonical order: a pillar unlocks once its predecessor is completed.
PILLAR_ORDER: tuple[PillarKey, ...] = tuple(PillarKey)


@dataclass(frozen=True)
class PillarInfo:
    key: PillarKey
    name: str
    description: str
    focus_areas: tuple[str, ...] = ()


PILLAR_CATALOG: dict[PillarKey, PillarInfo] = {
    PillarKey.SELF_CARE: PillarInfo(
        key=PillarKey.SELF_CARE,
        name="Self Care",
        description="Physical and mental health, rest and recovery",
        focus_areas=("sleep", "stress management", "exercise", "nutrition", "work-life balance"),
    ),
    PillarKey.SKILLS: PillarInfo(
        key=PillarKey.SKILLS,
        name="Skills",
        description="Abilities and competencies for career development",
        focus_areas=("deliberate practice", "feedback", "technical skills", "leadership"),
    ),
    PillarKey.TALENT: PillarInfo(
        key=PillarKey.TALENT,
        name="Talent",
        description="Natural gifts and how you express them",
        focus_areas=("creative expression", "strengths", "creative process"),
    ),
    PillarKey.BRAND: PillarInfo(
        key=PillarKey.BRAND,
        name="Brand",
        description="How you are seen and the reputation you build",
        focus_areas=("online presence", "networking", "content", "visibility"),
    ),
    PillarKey.ECONOMY: PillarInfo(
        key=PillarKey.ECONOMY,
        name="Economy",
        description="Financial stability and income streams",
        focus_areas=("budgeting", "revenue streams", "financial planning"),
    ),
    PillarKey.OPEN_TRACK: PillarInfo(
        key=PillarKey.OPEN_TRACK,
        name="Open Track",
        description="A self-defined area you want to grow in",
        focus_areas=("personal goal", "exploration"),
    ),
}


def parse_pillar_key(value: PillarKey | str | None) -> PillarKey | None:
    """Return the PillarKey for *value*, or None if it is not a known pillar.

    Accepts enum members, canonical keys ("self_care") and the hyphenated
    spelling ("self-care").
    """
    if isinstance(value, PillarKey):
        return value
    if not isinstance(value, str):
        return None
    try:
        return PillarKey(value.strip().lower().replace("-", "_"))
    except ValueError:
        return None


def pillar_name(key: PillarKey) -> str:
    return PILLAR_CATALOG[key].name


def position(key: PillarKey) -> int:
    """Zero-based position of a pillar in the canonical order."""
    return PILLAR_ORDER.index(key)
