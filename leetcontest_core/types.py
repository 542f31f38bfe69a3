"""Type definitions for payloads returned to the API layer."""
from __future__ import annotations

from typing import List, Optional, TypedDict


class ProblemProgressPayload(TypedDict):
    """One problem row as exposed to clients."""
    slug: str
    status: str  # 'PENDING' | 'FAIL' | 'ACCEPTED'
    fail_count: int
    solved_at: Optional[str]  # ISO-8601 UTC
    penalty: int  # minutes


class ParticipationPayload(TypedDict):
    score: int
    total_penalty: int  # minutes
    rank: Optional[int]
    last_sync: Optional[str]
    problem_progress: List[ProblemProgressPayload]


class SyncResponse(TypedDict):
    """Single participant sync result."""
    message: str  # 'Score updated successfully!' | 'No new submissions found'
    changed: bool
    newly_accepted: List[str]
    participation: ParticipationPayload


class SyncAllResponse(TypedDict):
    """Bulk sync result; clients stop polling once finalized is true."""
    message: str
    synced: int
    errors: int
    total: int
    changed: int
    skipped: int
    isGracePeriod: bool
    contestEnded: bool
    finalized: bool


class LeaderboardRow(TypedDict):
    rank: int
    username: str
    leetcode_username: str
    score: int
    penalty: float  # minutes, rounded to 2 decimals
    # Seconds from contest start to the last accepted solve, plus penalty
    # minutes converted to seconds. Display only, never used for ranking.
    total_time: int
    solved: int
    attempts: int  # failed attempts across all problems
    problem_progress: List[ProblemProgressPayload]


class ContestSummary(TypedDict, total=False):
    """Contest detail view."""
    id: str
    name: str
    unique_code: str
    start_time: str
    end_time: str
    duration: int  # minutes
    status: str  # 'upcoming' | 'live' | 'ended'
    phase: str  # 'upcoming' | 'live' | 'grace' | 'ended' | 'finalized'
    problemCount: int
    participantCount: int
    finalized: bool
    isPublic: bool
    # Seconds until sync-all is accepted again (0 = available now)
    syncAllCooldown: int
