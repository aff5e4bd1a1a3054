"""
Pillar Journey — Recommendation Engine.

Turns assessment scores per pillar into a primary/secondary recommendation.
The lowest non-zero score has the most room to grow and therefore the
highest priority. A score of zero means "not assessed" and is ignored.

Results are memoized on the (normalized) score set, so repeated lookups for
the same assessments do not recompute anything.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache

from pillar_journey.core.pillars import PILLAR_ORDER, PillarKey, parse_pillar_key, pillar_name

logger = logging.getLogger(__name__)

MAX_SCORE = 10.0


@dataclass(frozen=True)
class PillarRecommendation:
    pillar_key: PillarKey
    motivation: str
    expected_outcome: str
    relevance_score: float     # 0-10, higher = more relevant


@dataclass(frozen=True)
class RecommendationSet:
    primary: PillarRecommendation | None
    secondary: PillarRecommendation | None
    readiness_score: float
    success_indicators: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Text templates
# ---------------------------------------------------------------------------

_MOTIVATION = {
    "low": "Your {name} score of {score:.1f} shows the most room to grow. "
           "Small, steady steps here will lift everything else.",
    "mid": "{name} is holding up ({score:.1f}), but there is clear potential. "
           "Focused effort now turns it into a real strength.",
    "high": "{name} is already strong ({score:.1f}). "
            "A short round of refinement keeps it that way.",
}

_EXPECTED_OUTCOME = {
    "low": "Within a few weeks you should notice {focus} becoming easier to manage.",
    "mid": "Expect steady, visible progress in {focus}.",
    "high": "Expect sharper habits and more consistency in {focus}.",
}

_SUCCESS_INDICATORS: dict[PillarKey, tuple[str, ...]] = {
    PillarKey.SELF_CARE: (
        "Sleeping more regularly",
        "Lower day-to-day stress",
        "Exercise scheduled at least twice a week",
    ),
    PillarKey.SKILLS: (
        "Practising a chosen skill every week",
        "Asking for feedback after key tasks",
        "One finished learning milestone",
    ),
    PillarKey.TALENT: (
        "Regular time reserved for creative work",
        "A piece of work shared with someone else",
        "Clearer picture of your core strengths",
    ),
    PillarKey.BRAND: (
        "A consistent profile across channels",
        "One new professional contact per week",
        "Published content you are proud of",
    ),
    PillarKey.ECONOMY: (
        "A monthly budget you actually follow",
        "A savings buffer that grows every month",
        "A mapped plan for an additional income stream",
    ),
    PillarKey.OPEN_TRACK: (
        "A clearly formulated personal goal",
        "Weekly progress notes",
        "A first experiment completed",
    ),
}

_FOCUS = {
    PillarKey.SELF_CARE: "rest, energy and stress",
    PillarKey.SKILLS: "your core competencies",
    PillarKey.TALENT: "your creative expression",
    PillarKey.BRAND: "how others see your work",
    PillarKey.ECONOMY: "your financial footing",
    PillarKey.OPEN_TRACK: "your chosen goal",
}


def score_band(score: float) -> str:
    if score < 4:
        return "low"
    if score < 7:
        return "mid"
    return "high"


def relevance_score(score: float) -> float:
    """Inverse distance to the maximum score, on a 0-10 scale."""
    value = (MAX_SCORE - score) / MAX_SCORE * 10
    return round(min(10.0, max(0.0, value)), 1)


def _build(key: PillarKey, score: float) -> PillarRecommendation:
    band = score_band(score)
    name = pillar_name(key)
    return PillarRecommendation(
        pillar_key=key,
        motivation=_MOTIVATION[band].format(name=name, score=score),
        expected_outcome=_EXPECTED_OUTCOME[band].format(focus=_FOCUS[key]),
        relevance_score=relevance_score(score),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def recommend(scores_by_pillar: Mapping[PillarKey | str, float]) -> RecommendationSet:
    """Compute the recommendation set for a user's pillar scores.

    Unknown pillar keys and zero scores are ignored. ``secondary`` is None
    when fewer than two pillars have been scored; ``primary`` is None when
    none has.
    """
    normalized: dict[PillarKey, float] = {}
    for raw_key, score in scores_by_pillar.items():
        key = parse_pillar_key(raw_key)
        if key is None:
            logger.debug("Ignoring score for unknown pillar %r", raw_key)
            continue
        normalized[key] = float(score)
    frozen = tuple((key, normalized[key]) for key in PILLAR_ORDER if key in normalized)
    return _recommend_cached(frozen)


@lru_cache(maxsize=256)
def _recommend_cached(scores: tuple[tuple[PillarKey, float], ...]) -> RecommendationSet:
    scored = [(key, score) for key, score in scores if score > 0]
    # Stable sort keeps canonical order for ties.
    scored.sort(key=lambda item: item[1])

    if not scored:
        return RecommendationSet(primary=None, secondary=None, readiness_score=0.0)

    primary = _build(*scored[0])
    secondary = _build(*scored[1]) if len(scored) > 1 else None
    readiness = round(sum(score for _, score in scored) / len(scored), 1)

    logger.debug(
        "Recommendation: primary=%s secondary=%s readiness=%.1f",
        primary.pillar_key.value,
        secondary.pillar_key.value if secondary else None,
        readiness,
    )
    return RecommendationSet(
        primary=primary,
        secondary=secondary,
        readiness_score=readiness,
        success_indicators=_SUCCESS_INDICATORS[primary.pillar_key],
    )


def priority_order(scores_by_pillar: Mapping[PillarKey | str, float]) -> list[PillarKey]:
    """All scored pillars, highest priority (lowest score) first."""
    items = []
    for raw_key, score in scores_by_pillar.items():
        key = parse_pillar_key(raw_key)
        if key is not None and score > 0:
            items.append((score, PILLAR_ORDER.index(key), key))
    return [key for _, _, key in sorted(items)]
