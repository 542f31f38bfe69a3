"""Leaderboard rows and participation payloads for the API layer."""
from __future__ import annotations

import math
from typing import List, Sequence

from .models import Contest, Participation, ProblemProgress
from .ranking import order_participations
from .types import LeaderboardRow, ParticipationPayload, ProblemProgressPayload


def progress_payload(progress: ProblemProgress) -> ProblemProgressPayload:
    return {
        "slug": progress.slug,
        "status": progress.status,
        "fail_count": int(progress.fail_count or 0),
        "solved_at": progress.solved_at.isoformat() if progress.solved_at else None,
        "penalty": int(progress.penalty or 0),
    }


def participation_payload(participation: Participation) -> ParticipationPayload:
    return {
        "score": participation.score,
        "total_penalty": participation.total_penalty,
        "rank": participation.rank,
        "last_sync": participation.last_sync.isoformat() if participation.last_sync else None,
        "problem_progress": [progress_payload(p) for p in participation.problem_progress],
    }


def total_time_seconds(contest: Contest, participation: Participation) -> int:
    """(last accepted solve - contest start) + penalty minutes as seconds.

    0 when nothing is solved. Display only; ranking uses score and penalty.
    """
    solved = [p.solved_at for p in participation.problem_progress if p.is_accepted and p.solved_at]
    if not solved:
        return 0
    elapsed = (max(solved) - contest.start_time).total_seconds()
    return math.floor(elapsed + participation.total_penalty * 60)


def build_leaderboard(
    contest: Contest, participations: Sequence[Participation]
) -> List[LeaderboardRow]:
    rows: List[LeaderboardRow] = []
    for position, p in enumerate(order_participations(participations), start=1):
        rows.append(
            {
                "rank": position,
                "username": p.username or "Unknown",
                "leetcode_username": p.external_account or "Unknown",
                "score": p.score,
                "penalty": round(float(p.total_penalty), 2),
                "total_time": total_time_seconds(contest, p),
                "solved": p.solved_count,
                "attempts": p.attempt_count,
                "problem_progress": [progress_payload(pp) for pp in p.problem_progress],
            }
        )
    return rows
