"""
Pillar Journey — Sequencing Gatekeeper.

Decides which pillars a user may select given their completion history.
Pillars unlock in canonical order; a brand-new user must start with the
recommended pillar.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

from pillar_journey.core.pillars import PILLAR_ORDER, PillarKey, parse_pillar_key

logger = logging.getLogger(__name__)


class PillarStatus(str, Enum):
    COMPLETED = "completed"
    AVAILABLE = "available"
    REQUIRED = "required"
    LOCKED = "locked"


SELECTABLE = frozenset({PillarStatus.AVAILABLE, PillarStatus.REQUIRED})


def _normalize(completed: Iterable[PillarKey | str]) -> frozenset[PillarKey]:
    keys = (parse_pillar_key(k) for k in completed)
    return frozenset(k for k in keys if k is not None)


def pillar_status(
    pillar_key: PillarKey | str,
    completed_pillars: Iterable[PillarKey | str],
    recommended_pillar: PillarKey | str | None,
) -> PillarStatus:
    """Return the selection status of one pillar.

    Unknown keys are reported as locked rather than raising.
    """
    key = parse_pillar_key(pillar_key)
    if key is None:
        logger.debug("Unknown pillar key %r treated as locked", pillar_key)
        return PillarStatus.LOCKED

    completed = _normalize(completed_pillars)
    if key in completed:
        return PillarStatus.COMPLETED

    if not completed:
        if key is parse_pillar_key(recommended_pillar):
            return PillarStatus.REQUIRED
        return PillarStatus.LOCKED

    index = PILLAR_ORDER.index(key)
    if index == 0:
        return PillarStatus.AVAILABLE
    if PILLAR_ORDER[index - 1] in completed:
        return PillarStatus.AVAILABLE
    return PillarStatus.LOCKED


def pillar_statuses(
    completed_pillars: Iterable[PillarKey | str],
    recommended_pillar: PillarKey | str | None,
) -> dict[PillarKey, PillarStatus]:
    """Status of every catalog pillar, in canonical order."""
    completed = _normalize(completed_pillars)
    return {
        key: pillar_status(key, completed, recommended_pillar)
        for key in PILLAR_ORDER
    }


def is_selectable(status: PillarStatus) -> bool:
    return status in SELECTABLE


def next_unlocked_pillar(
    completed_pillars: Iterable[PillarKey | str],
    recommended_pillar: PillarKey | str | None,
) -> PillarKey | None:
    """First selectable pillar in canonical order, or None when none is left."""
    for key, status in pillar_statuses(completed_pillars, recommended_pillar).items():
        if status in SELECTABLE:
            return key
    return None


def all_completed(completed_pillars: Iterable[PillarKey | str]) -> bool:
    return _normalize(completed_pillars) >= frozenset(PILLAR_ORDER)
