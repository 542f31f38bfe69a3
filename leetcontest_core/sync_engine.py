"""Reconcile a participant's judge submissions against a contest (pure, no I/O).

The engine re-derives every unsolved problem from the full recent-submission
feed on each call. That keeps it idempotent: feeding the same submissions twice
yields no change the second time.

Per contest problem that is not yet ACCEPTED:
1. keep submissions for that slug whose timestamp lies in
   [start_time, end_time] (inclusive); practice solves outside the window
   are invisible
2. sort oldest first (upstream order is not trusted)
3. count non-accepted submissions until the first accepted one
4. accepted found -> ACCEPTED, solved_at, fail_count, penalty, points added
5. only failures -> FAIL with fail_count, no score/penalty change
6. nothing -> untouched

ACCEPTED is terminal: such problems are skipped before any filtering, so a
later sync can never re-score, downgrade or re-time them.
"""
from __future__ import annotations

import logging
import math
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from .catalog import problem_points
from .models import (
    Contest,
    Participation,
    ProblemProgress,
    SubmissionRecord,
    epoch_seconds,
    from_epoch,
)

logger = logging.getLogger(__name__)


@dataclass
class ProblemDecision:
    """What one pass decided for one problem (for logs and responses)."""

    slug: str
    action: str  # "accepted" | "failed" | "unchanged" | "skipped"
    fail_count: int = 0
    penalty: int = 0
    points: int = 0


@dataclass
class SyncOutcome:
    """Result of reconciling one participation."""

    participation: Participation
    changed: bool
    score_changed: bool
    newly_accepted: List[str] = field(default_factory=list)
    decisions: List[ProblemDecision] = field(default_factory=list)


@dataclass(frozen=True)
class _Scan:
    fail_count: int
    accepted_at: int | None


def submissions_in_window(
    submissions: Iterable[SubmissionRecord], slug: str, start_ts: int, end_ts: int
) -> List[SubmissionRecord]:
    """Submissions for ``slug`` inside the inclusive window, oldest first."""
    matching = [
        s for s in submissions if s.slug == slug and start_ts <= s.timestamp <= end_ts
    ]
    # sorted() is stable, so equal timestamps keep feed order
    return sorted(matching, key=lambda s: s.timestamp)


def _scan(ordered: Sequence[SubmissionRecord]) -> _Scan:
    fails = 0
    for submission in ordered:
        if submission.accepted:
            return _Scan(fail_count=fails, accepted_at=submission.timestamp)
        fails += 1
    return _Scan(fail_count=fails, accepted_at=None)


def _apply_problem(
    progress: ProblemProgress,
    ordered: Sequence[SubmissionRecord],
    points: int,
    penalty_per_fail: int,
    participation: Participation,
) -> ProblemDecision:
    scan = _scan(ordered)

    if scan.accepted_at is not None:
        penalty = scan.fail_count * penalty_per_fail
        progress.status = "ACCEPTED"
        progress.solved_at = from_epoch(scan.accepted_at)
        progress.fail_count = scan.fail_count
        progress.penalty = penalty
        participation.score += points
        participation.total_penalty += penalty
        return ProblemDecision(
            slug=progress.slug,
            action="accepted",
            fail_count=scan.fail_count,
            penalty=penalty,
            points=points,
        )

    if scan.fail_count > 0:
        # fail_count never decreases: older failures may have left the bounded feed.
        if progress.status == "FAIL" and scan.fail_count <= progress.fail_count:
            return ProblemDecision(
                slug=progress.slug, action="unchanged", fail_count=progress.fail_count
            )
        progress.status = "FAIL"
        progress.fail_count = max(scan.fail_count, progress.fail_count)
        return ProblemDecision(slug=progress.slug, action="failed", fail_count=scan.fail_count)

    return ProblemDecision(slug=progress.slug, action="unchanged", fail_count=progress.fail_count)


def apply_submissions(
    contest: Contest,
    participation: Participation,
    submissions: Sequence[SubmissionRecord],
    points_by_slug: Dict[str, int],
) -> SyncOutcome:
    """Reconcile ``participation`` against ``submissions`` for ``contest``.

    Works on a deep copy; the input participation is left untouched.

    Args:
        contest: owning contest (problem order, window, penalty rule)
        participation: current stored participation
        submissions: freshly fetched judge feed, any order
        points_by_slug: resolved point value per problem slug

    Returns:
        SyncOutcome with the updated copy, a ``changed`` flag for any field
        change and ``score_changed`` when score/penalty moved.
    """
    updated = deepcopy(participation)
    # First whole second not before the start; the end bound is floored.
    start_ts = math.ceil(contest.start_time.timestamp())
    end_ts = epoch_seconds(contest.end_time)
    penalty_per_fail = contest.scoring.penalty_per_fail_minutes

    # Gate for score increments: state before this pass, not the copy being edited.
    accepted_before = {p.slug for p in participation.problem_progress if p.is_accepted}

    decisions: List[ProblemDecision] = []
    newly_accepted: List[str] = []
    changed = False

    for problem in contest.problems:
        slug = problem.slug
        progress = updated.progress_for(slug)
        if progress is None:
            logger.warning(
                f"Participation {updated.user_id} has no progress row for {slug}; skipping"
            )
            decisions.append(ProblemDecision(slug=slug, action="skipped"))
            continue
        if slug in accepted_before or progress.is_accepted:
            decisions.append(
                ProblemDecision(slug=slug, action="skipped", fail_count=progress.fail_count)
            )
            continue

        ordered = submissions_in_window(submissions, slug, start_ts, end_ts)
        decision = _apply_problem(
            progress,
            ordered,
            points_by_slug.get(slug, problem_points(contest, problem, None)),
            penalty_per_fail,
            updated,
        )
        logger.debug(
            f"{updated.user_id}/{slug}: {len(ordered)} in-window submissions -> "
            f"{decision.action} (fails={decision.fail_count})"
        )
        decisions.append(decision)
        if decision.action == "accepted":
            newly_accepted.append(slug)
            changed = True
        elif decision.action == "failed":
            changed = True

    return SyncOutcome(
        participation=updated,
        changed=changed,
        score_changed=bool(newly_accepted),
        newly_accepted=newly_accepted,
        decisions=decisions,
    )
