"""Contest lifecycle: phases, sync gates, finalization, creation and enrollment.

Phases are derived from wall-clock time on every call; there is no scheduler.

- upcoming:  now < start_time
- live:      start_time <= now <= end_time
- grace:     end_time < now <= end_time + grace period (1 hour)
- ended:     past the grace period but nobody has finalized yet
- finalized: terminal; set by the first bulk sync that observes "ended",
             or explicitly through finalize_contest()

Gate checks are pure and return a ValidationError (or None), mirroring how
the parent API wants to map them onto responses. Nothing here talks to the
judge: every rejection happens before an external call.
"""
from __future__ import annotations

import logging
import math
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Literal

from .config import DEFAULT_SETTINGS, SyncSettings
from .errors import InvalidContestError, NotFoundError, ValidationError
from .models import Contest, Participation, Problem, ScoringConfig, new_participation, utcnow
from .ranking import recompute_ranks
from .store import ContestStore
from .types import ContestSummary
from .validation import ContestCreate, EnrollmentRequest, InputSanitizer

logger = logging.getLogger(__name__)

ContestPhase = Literal["upcoming", "live", "grace", "ended", "finalized"]

CODE_ALPHABET = "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
CODE_LENGTH = 8
CODE_ATTEMPTS = 10


def _grace(settings: SyncSettings) -> timedelta:
    return timedelta(seconds=settings.grace_period_seconds)


def contest_phase(
    contest: Contest, now: datetime, settings: SyncSettings = DEFAULT_SETTINGS
) -> ContestPhase:
    if contest.finalized:
        return "finalized"
    if now < contest.start_time:
        return "upcoming"
    if now <= contest.end_time:
        return "live"
    if now <= contest.end_time + _grace(settings):
        return "grace"
    return "ended"


def contest_status(contest: Contest, now: datetime) -> str:
    """Coarse status shown in contest listings."""
    if now > contest.end_time:
        return "ended"
    if now >= contest.start_time:
        return "live"
    return "upcoming"


def _remaining_seconds(last: datetime | None, now: datetime, cooldown: int) -> int:
    if last is None:
        return 0
    remaining = cooldown - (now - last).total_seconds()
    return max(0, math.ceil(remaining))


def validate_participant_sync(
    contest: Contest,
    participation: Participation,
    now: datetime,
    settings: SyncSettings = DEFAULT_SETTINGS,
) -> ValidationError | None:
    """Check that a single-participant sync may proceed.

    Allowed only while live or in grace, at most once per cooldown window,
    and only for participants with a linked judge account.
    """
    phase = contest_phase(contest, now, settings)
    if phase == "finalized":
        return ValidationError(
            kind="contest_finalized",
            message="Contest has been finalized. Rankings are locked.",
            status_code=400,
            retryable=False,
        )
    if phase == "upcoming":
        return ValidationError(
            kind="contest_not_started",
            message="Contest has not started yet",
            status_code=400,
            retryable=False,
            details={"starts_in": max(0, math.ceil((contest.start_time - now).total_seconds()))},
        )
    if phase == "ended":
        return ValidationError(
            kind="contest_ended",
            message="Contest has ended and the grace period is over",
            status_code=400,
            retryable=False,
        )

    wait = _remaining_seconds(participation.last_sync, now, settings.participant_cooldown_seconds)
    if wait > 0:
        return ValidationError(
            kind="too_soon",
            message=f"Please wait {wait} seconds before syncing again",
            status_code=429,
            retry_after=wait,
        )

    if not participation.external_account:
        return ValidationError(
            kind="account_not_linked",
            message="Link a LeetCode username before syncing",
            status_code=400,
            retryable=False,
        )
    return None


@dataclass
class BulkSyncGate:
    """Outcome of the sync-all precondition check."""

    phase: ContestPhase
    is_grace_period: bool
    error: ValidationError | None = None
    # True when the caller must persist finalized=True before rejecting.
    finalize: bool = False

    @property
    def allowed(self) -> bool:
        return self.error is None


def bulk_cooldown_seconds(phase: str, settings: SyncSettings = DEFAULT_SETTINGS) -> int:
    if phase == "grace":
        return settings.grace_bulk_cooldown_seconds
    return settings.bulk_cooldown_seconds


def bulk_claim_active(
    contest: Contest, now: datetime, settings: SyncSettings = DEFAULT_SETTINGS
) -> bool:
    """True while another sync-all holds a claim that has not gone stale.

    A claim without a start time, or older than ``bulk_claim_stale_seconds``,
    belongs to a worker that died mid-batch and may be taken over.
    """
    if not contest.bulk_sync_in_progress:
        return False
    started = contest.bulk_sync_started_at
    if started is None:
        logger.warning(f"Contest {contest.id} has a sync-all claim without a start time; taking over")
        return False
    age = (now - started).total_seconds()
    if age >= settings.bulk_claim_stale_seconds:
        logger.warning(
            f"Contest {contest.id} sync-all claim is {int(age)}s old; treating it as abandoned"
        )
        return False
    return True


def evaluate_bulk_sync_gate(
    contest: Contest, now: datetime, settings: SyncSettings = DEFAULT_SETTINGS
) -> BulkSyncGate:
    """Decide whether a sync-all may run now.

    Order matters: finalized, then grace expiry (which finalizes), then an
    already running batch, then the global cooldown.
    """
    phase = contest_phase(contest, now, settings)
    is_grace = phase == "grace"

    if phase == "finalized":
        return BulkSyncGate(
            phase=phase,
            is_grace_period=False,
            error=ValidationError(
                kind="contest_finalized",
                message="Contest has been finalized. Rankings are locked.",
                status_code=400,
                retryable=False,
                details={"finalized": True},
            ),
        )

    if phase == "ended":
        return BulkSyncGate(
            phase=phase,
            is_grace_period=False,
            finalize=True,
            error=ValidationError(
                kind="grace_period_over",
                message="Grace period has ended. Rankings are now locked.",
                status_code=400,
                retryable=False,
                details={"finalized": True},
            ),
        )

    if bulk_claim_active(contest, now, settings):
        return BulkSyncGate(
            phase=phase,
            is_grace_period=is_grace,
            error=ValidationError(
                kind="bulk_sync_in_progress",
                message="A sync-all for this contest is already running",
                status_code=409,
                retryable=True,
                details={"isGracePeriod": is_grace},
            ),
        )

    wait = _remaining_seconds(contest.last_bulk_sync, now, bulk_cooldown_seconds(phase, settings))
    if wait > 0:
        return BulkSyncGate(
            phase=phase,
            is_grace_period=is_grace,
            error=ValidationError(
                kind="cooldown",
                message=f"Please wait {wait} seconds before syncing all again",
                status_code=429,
                retry_after=wait,
                details={"cooldown": wait, "isGracePeriod": is_grace},
            ),
        )

    return BulkSyncGate(phase=phase, is_grace_period=is_grace)


def bulk_sync_cooldown_remaining(
    contest: Contest, now: datetime, settings: SyncSettings = DEFAULT_SETTINGS
) -> int:
    """Seconds until sync-all is accepted again (0 when available)."""
    phase = contest_phase(contest, now, settings)
    if phase in ("finalized", "ended"):
        return 0
    return _remaining_seconds(contest.last_bulk_sync, now, bulk_cooldown_seconds(phase, settings))


def finalize_contest(store: ContestStore, contest_id: str) -> Contest:
    """Lock a contest for good. Ranks are settled first; idempotent."""
    with store.locked(contest_id):
        contest = store.get_contest(contest_id)
        if contest.finalized:
            return contest
        recompute_ranks(store, contest_id)

        def _mark(c: Contest) -> Contest:
            c.finalized = True
            c.bulk_sync_in_progress = False
            c.bulk_sync_started_at = None
            return c

        contest = store.update_contest(contest_id, _mark)
    logger.info(f"Contest {contest_id} finalized")
    return contest


def contest_summary(
    contest: Contest, now: datetime, settings: SyncSettings = DEFAULT_SETTINGS
) -> ContestSummary:
    return {
        "id": contest.id,
        "name": contest.name,
        "unique_code": contest.unique_code,
        "start_time": contest.start_time.isoformat(),
        "end_time": contest.end_time.isoformat(),
        "duration": contest.duration_minutes,
        "status": contest_status(contest, now),
        "phase": contest_phase(contest, now, settings),
        "problemCount": len(contest.problems),
        "participantCount": len(contest.participants),
        "finalized": contest.finalized,
        "isPublic": contest.is_public,
        "syncAllCooldown": bulk_sync_cooldown_remaining(contest, now, settings),
    }


# ==================== CREATION & ENROLLMENT ====================


def generate_contest_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _code_in_use(store: ContestStore, code: str, now: datetime) -> bool:
    # Codes only need to be unique among contests that have not ended.
    return any(c.end_time > now for c in store.find_contest_by_code(code))


def create_contest(
    store: ContestStore,
    request: ContestCreate | Dict[str, Any],
    creator_id: str,
    now: datetime | None = None,
) -> Contest:
    """
    Validate and store a new contest.

    Raises:
        InvalidContestError: invalid input, start in the past, or no free code
    """
    now = now or utcnow()
    if not isinstance(request, ContestCreate):
        try:
            request = ContestCreate.model_validate(request)
        except ValueError as exc:
            raise InvalidContestError(f"Invalid contest: {exc}") from exc

    if request.start_time < now:
        raise InvalidContestError("Contest start time cannot be in the past")

    code = None
    for attempt in range(1, CODE_ATTEMPTS + 1):
        candidate = generate_contest_code()
        if not _code_in_use(store, candidate, now):
            code = candidate
            logger.debug(f"Generated contest code {code} (attempts: {attempt})")
            break
    if code is None:
        raise InvalidContestError(
            "Failed to generate unique contest code. Please try again.", status_code=500
        )

    scoring = ScoringConfig(penalty_per_fail_minutes=request.penalty_per_fail_minutes)
    if request.points_by_difficulty:
        scoring.points_by_difficulty.update(request.points_by_difficulty)

    contest = Contest(
        id=uuid.uuid4().hex,
        unique_code=code,
        name=request.name,
        creator_id=creator_id,
        problems=[
            Problem(slug=p.slug, difficulty=p.difficulty, points=p.points)
            for p in request.problems
        ],
        start_time=request.start_time,
        end_time=request.start_time + timedelta(minutes=request.duration_minutes),
        scoring=scoring,
        is_public=request.is_public,
        created_at=now,
    )
    return store.add_contest(contest)


def _find_enrollable(store: ContestStore, contest_ref: str, now: datetime) -> Contest:
    try:
        ref = InputSanitizer.sanitize_contest_ref(contest_ref)
    except ValueError as exc:
        raise NotFoundError(
            "Contest not found. Please check the code and try again.",
            kind="contest_not_found",
        ) from exc

    if InputSanitizer.is_surrogate_key(ref):
        try:
            contest = store.get_contest(ref)
        except NotFoundError:
            contest = None
        if contest is not None:
            if not contest.is_public:
                raise InvalidContestError(
                    "This contest is private. Please use the contest code to join.",
                    kind="contest_private",
                    status_code=403,
                )
            if contest.end_time <= now:
                raise InvalidContestError("This contest has already ended", kind="contest_ended")
            return contest

    matches = store.find_contest_by_code(ref, case_insensitive=True)
    active = [c for c in matches if c.end_time > now]
    if active:
        return active[0]
    if matches:
        raise InvalidContestError("This contest has already ended", kind="contest_ended")
    raise NotFoundError(
        "Contest not found. Please check the code and try again.", kind="contest_not_found"
    )


def enroll(
    store: ContestStore,
    request: EnrollmentRequest | Dict[str, Any],
    now: datetime | None = None,
) -> Participation:
    """
    Enroll a user: contest participant list grows and a participation with
    one PENDING row per problem is created, atomically.
    """
    now = now or utcnow()
    if not isinstance(request, EnrollmentRequest):
        try:
            request = EnrollmentRequest.model_validate(request)
        except ValueError as exc:
            raise InvalidContestError(f"Invalid enrollment: {exc}") from exc

    contest = _find_enrollable(store, request.contest_ref, now)
    with store.locked(contest.id):
        contest = store.get_contest(contest.id)
        if request.user_id in contest.participants:
            raise InvalidContestError(
                "You are already enrolled in this contest", kind="already_enrolled"
            )
        participation = new_participation(
            contest, request.user_id, request.username, request.external_account
        )
        store.add_participation(participation)

        def _add(c: Contest) -> None:
            c.participants.append(request.user_id)

        store.update_contest(contest.id, _add)
    logger.info(f"User {request.user_id} enrolled in contest {contest.id}")
    return participation
