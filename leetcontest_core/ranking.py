"""Contest ranking engine.

Comparator: higher score first; equal scores are broken by fewer penalty
minutes; any remaining tie falls back to user id so the order is total and
deterministic. Ranks are the 1-based positions in that order, so after a pass
they always form the contiguous sequence 1..N.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .models import Participation
from .store import ContestStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankAssignment:
    user_id: str
    rank: int
    score: int
    total_penalty: int
    previous_rank: int | None

    @property
    def changed(self) -> bool:
        return self.previous_rank != self.rank


def _rank_sort_key(participation: Participation) -> tuple[int, int, str]:
    return (-int(participation.score), int(participation.total_penalty), participation.user_id)


def order_participations(participations: Sequence[Participation]) -> list[Participation]:
    return sorted(participations, key=_rank_sort_key)


def compute_ranks(participations: Sequence[Participation]) -> list[RankAssignment]:
    """Rank assignments in rank order (pure)."""
    return [
        RankAssignment(
            user_id=p.user_id,
            rank=position,
            score=int(p.score),
            total_penalty=int(p.total_penalty),
            previous_rank=p.rank,
        )
        for position, p in enumerate(order_participations(participations), start=1)
    ]


def recompute_ranks(store: ContestStore, contest_id: str) -> int:
    """
    Recompute and persist ranks for every participation of a contest.

    The read and the writes happen under one contest lock, so concurrent
    syncs cannot interleave a partial ordering. Only rows whose rank differs
    are written; returns how many were written.
    """
    with store.locked(contest_id):
        assignments = compute_ranks(store.list_participations(contest_id))
        changed = {a.user_id: a.rank for a in assignments if a.changed}
        written = store.set_ranks(contest_id, changed) if changed else 0
    logger.info(
        f"Ranks recomputed for contest {contest_id}: "
        f"{len(assignments)} participants, {written} updated"
    )
    return written
