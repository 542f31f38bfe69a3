"""Contest, participation and submission records.

Contest and Participation are plain mutable dataclasses so the store can hand
out deep copies and accept whole-record writes. SubmissionRecord is frozen: it
is an external fact fetched per sync and never persisted.

Times are timezone-aware UTC datetimes, except SubmissionRecord.timestamp which
keeps the judge's unix epoch seconds.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal

Difficulty = Literal["Easy", "Medium", "Hard"]
ProblemStatus = Literal["PENDING", "FAIL", "ACCEPTED"]
Verdict = Literal["accepted", "not_accepted"]

DIFFICULTIES: tuple[Difficulty, ...] = ("Easy", "Medium", "Hard")
DEFAULT_DIFFICULTY: Difficulty = "Medium"
ACCEPTED_LABEL = "Accepted"


def _default_points() -> Dict[str, int]:
    return {"Easy": 3, "Medium": 4, "Hard": 6}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def epoch_seconds(value: datetime) -> int:
    return int(as_utc(value).timestamp())


def from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


@dataclass
class ScoringConfig:
    points_by_difficulty: Dict[str, int] = field(default_factory=_default_points)
    penalty_per_fail_minutes: int = 5

    def points_for(self, difficulty: str | None) -> int:
        """Point value of a difficulty tier; unknown tiers score as Medium."""
        if difficulty in self.points_by_difficulty:
            return int(self.points_by_difficulty[difficulty])
        return int(self.points_by_difficulty.get(DEFAULT_DIFFICULTY, 4))


@dataclass(frozen=True)
class Problem:
    slug: str
    difficulty: Difficulty | None = None
    # Explicit override; when None the contest scoring table decides.
    points: int | None = None


@dataclass
class Contest:
    id: str
    unique_code: str
    name: str
    problems: List[Problem]
    start_time: datetime
    end_time: datetime
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    creator_id: str | None = None
    is_public: bool = False
    participants: List[str] = field(default_factory=list)
    last_bulk_sync: datetime | None = None
    bulk_sync_in_progress: bool = False
    # When the current claim was taken; a claim older than the stale bound is abandoned.
    bulk_sync_started_at: datetime | None = None
    finalized: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.start_time = as_utc(self.start_time)
        self.end_time = as_utc(self.end_time)
        if not self.problems:
            raise ValueError("contest requires at least one problem")
        if self.end_time <= self.start_time:
            raise ValueError("contest end_time must be after start_time")

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def problem_slugs(self) -> List[str]:
        return [p.slug for p in self.problems]


@dataclass
class ProblemProgress:
    slug: str
    status: ProblemStatus = "PENDING"
    fail_count: int = 0
    solved_at: datetime | None = None
    penalty: int = 0

    @property
    def is_accepted(self) -> bool:
        return self.status == "ACCEPTED"


@dataclass
class Participation:
    contest_id: str
    user_id: str
    username: str
    external_account: str | None = None
    score: int = 0
    total_penalty: int = 0
    rank: int | None = None
    last_sync: datetime | None = None
    problem_progress: List[ProblemProgress] = field(default_factory=list)

    def progress_for(self, slug: str) -> ProblemProgress | None:
        for progress in self.problem_progress:
            if progress.slug == slug:
                return progress
        return None

    @property
    def solved_count(self) -> int:
        return sum(1 for p in self.problem_progress if p.is_accepted)

    @property
    def attempt_count(self) -> int:
        return sum(p.fail_count or 0 for p in self.problem_progress)


@dataclass(frozen=True)
class SubmissionRecord:
    slug: str
    verdict: Verdict
    timestamp: int

    @property
    def accepted(self) -> bool:
        return self.verdict == "accepted"

    @classmethod
    def from_label(cls, slug: str, label: str, timestamp: int) -> "SubmissionRecord":
        # Upstream label match is exact and case-sensitive.
        verdict: Verdict = "accepted" if label == ACCEPTED_LABEL else "not_accepted"
        return cls(slug=slug, verdict=verdict, timestamp=int(timestamp))


def new_participation(
    contest: Contest,
    user_id: str,
    username: str,
    external_account: str | None = None,
) -> Participation:
    """Enrollment-time participation: one PENDING progress row per problem."""
    return Participation(
        contest_id=contest.id,
        user_id=user_id,
        username=username,
        external_account=external_account,
        problem_progress=[ProblemProgress(slug=p.slug) for p in contest.problems],
    )
