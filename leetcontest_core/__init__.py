from .config import DEFAULT_SETTINGS, SyncSettings
from .errors import (
    AccountNotFoundError,
    ContestFinalizedError,
    ContestSyncError,
    InvalidContestError,
    NotFoundError,
    SubmissionFetchError,
    SyncRejectedError,
    ValidationError,
)
from .models import (
    Contest,
    Participation,
    Problem,
    ProblemProgress,
    ScoringConfig,
    SubmissionRecord,
    new_participation,
)
from .types import (
    ContestSummary,
    LeaderboardRow,
    ParticipationPayload,
    SyncAllResponse,
    SyncResponse,
)
from .validation import ContestCreate, EnrollmentRequest, InputSanitizer
from .cache import TTLCache
from .catalog import JudgeCatalog, StaticCatalog, resolve_points
from .judge_client import LeetCodeClient
from .store import ContestStore, InMemoryContestStore, resolve_contest
from .sync_engine import SyncOutcome, apply_submissions
from .ranking import RankAssignment, compute_ranks, recompute_ranks
from .contest import (
    BulkSyncGate,
    contest_phase,
    contest_summary,
    create_contest,
    enroll,
    evaluate_bulk_sync_gate,
    finalize_contest,
    validate_participant_sync,
)
from .leaderboard import build_leaderboard
from .orchestrator import SyncAllResult, SyncOrchestrator, SyncResult

__all__ = [
    "DEFAULT_SETTINGS",
    "SyncSettings",
    "AccountNotFoundError",
    "ContestFinalizedError",
    "ContestSyncError",
    "InvalidContestError",
    "NotFoundError",
    "SubmissionFetchError",
    "SyncRejectedError",
    "ValidationError",
    "Contest",
    "Participation",
    "Problem",
    "ProblemProgress",
    "ScoringConfig",
    "SubmissionRecord",
    "new_participation",
    "ContestSummary",
    "LeaderboardRow",
    "ParticipationPayload",
    "SyncAllResponse",
    "SyncResponse",
    "ContestCreate",
    "EnrollmentRequest",
    "InputSanitizer",
    "TTLCache",
    "JudgeCatalog",
    "StaticCatalog",
    "resolve_points",
    "LeetCodeClient",
    "ContestStore",
    "InMemoryContestStore",
    "resolve_contest",
    "SyncOutcome",
    "apply_submissions",
    "RankAssignment",
    "compute_ranks",
    "recompute_ranks",
    "BulkSyncGate",
    "contest_phase",
    "contest_summary",
    "create_contest",
    "enroll",
    "evaluate_bulk_sync_gate",
    "finalize_contest",
    "validate_participant_sync",
    "build_leaderboard",
    "SyncAllResult",
    "SyncOrchestrator",
    "SyncResult",
]
