"""Sync entry points: one participant, the whole contest, and leaderboard reads.

Flow for every sync:
- resolve the contest (surrogate key or share code)
- run the lifecycle gate; rejections happen before the judge is contacted
- fetch the judge feed outside any store lock
- re-run the sync engine inside the store's atomic participation update, so
  a concurrent writer's committed state is never clobbered by a stale copy
- recompute ranks for the whole contest

Bulk sync claims the contest (``bulk_sync_in_progress``) in the same atomic
step that checks finalization and cooldown, so two overlapping sync-all calls
cannot both pass the gate.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Protocol, Sequence

from .catalog import ProblemCatalog, resolve_points
from .config import DEFAULT_SETTINGS, SyncSettings
from .contest import (
    BulkSyncGate,
    contest_phase,
    contest_summary,
    evaluate_bulk_sync_gate,
    finalize_contest,
    validate_participant_sync,
)
from .errors import ContestFinalizedError, NotFoundError, SyncRejectedError
from .leaderboard import build_leaderboard, participation_payload
from .models import Contest, Participation, SubmissionRecord, utcnow
from .ranking import recompute_ranks
from .store import ContestStore, resolve_contest
from .sync_engine import SyncOutcome, apply_submissions
from .types import ContestSummary, LeaderboardRow, SyncAllResponse, SyncResponse

logger = logging.getLogger(__name__)

MSG_SCORE_UPDATED = "Score updated successfully!"
MSG_NO_NEW = "No new submissions found"


class SubmissionSource(Protocol):
    def fetch_recent_submissions(
        self, account: str, limit: int | None = None
    ) -> List[SubmissionRecord]:
        ...


@dataclass
class SyncResult:
    participation: Participation
    changed: bool
    score_changed: bool
    newly_accepted: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return MSG_SCORE_UPDATED if self.score_changed else MSG_NO_NEW

    def to_payload(self) -> SyncResponse:
        return {
            "message": self.message,
            "changed": self.changed,
            "newly_accepted": list(self.newly_accepted),
            "participation": participation_payload(self.participation),
        }


@dataclass
class SyncAllResult:
    synced: int
    errors: int
    total: int
    changed: int = 0
    skipped: int = 0
    is_grace_period: bool = False
    contest_ended: bool = False
    finalized: bool = False

    def to_payload(self) -> SyncAllResponse:
        return {
            "message": f"Synced {self.synced} participants successfully",
            "synced": self.synced,
            "errors": self.errors,
            "total": self.total,
            "changed": self.changed,
            "skipped": self.skipped,
            "isGracePeriod": self.is_grace_period,
            "contestEnded": self.contest_ended,
            "finalized": self.finalized,
        }


class SyncOrchestrator:
    def __init__(
        self,
        store: ContestStore,
        client: SubmissionSource,
        catalog: ProblemCatalog | None = None,
        settings: SyncSettings = DEFAULT_SETTINGS,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.catalog = catalog
        self.settings = settings
        self._clock = clock
        self._sleep = sleep
        self._rng = rng if rng is not None else random.Random()

    # ==================== SINGLE PARTICIPANT ====================

    def sync_participant(self, contest_ref: str, user_id: str) -> SyncResult:
        """
        Sync one participant's judge submissions into their participation.

        Raises:
            NotFoundError: unknown contest or user not enrolled
            SyncRejectedError: wrong phase, finalized, cooldown, no linked account
            SubmissionFetchError / AccountNotFoundError: judge failures
        """
        now = self._clock()
        contest = resolve_contest(self.store, contest_ref)
        participation = self.store.get_participation(contest.id, user_id)

        error = validate_participant_sync(contest, participation, now, self.settings)
        if error is not None:
            logger.info(f"Sync rejected for {user_id} in {contest.id}: {error.kind}")
            raise SyncRejectedError(error)

        submissions = self.client.fetch_recent_submissions(
            participation.external_account, self.settings.fetch_limit
        )
        outcome = self._commit(contest, user_id, submissions, resolve_points(contest, self.catalog), now)
        if outcome.score_changed:
            try:
                recompute_ranks(self.store, contest.id)
            except ContestFinalizedError:
                # Finalization already settled ranks, including this write.
                logger.info(f"Contest {contest.id} was finalized during sync of {user_id}")

        stored = self.store.get_participation(contest.id, user_id)
        logger.info(
            f"Synced {user_id} in {contest.id}: score={stored.score} "
            f"penalty={stored.total_penalty} newly_accepted={outcome.newly_accepted}"
        )
        return SyncResult(
            participation=stored,
            changed=outcome.changed,
            score_changed=outcome.score_changed,
            newly_accepted=outcome.newly_accepted,
        )

    def _commit(
        self,
        contest: Contest,
        user_id: str,
        submissions: Sequence[SubmissionRecord],
        points_by_slug: dict[str, int],
        now: datetime,
    ) -> SyncOutcome:
        def _mutate(current: Participation) -> SyncOutcome:
            outcome = apply_submissions(contest, current, submissions, points_by_slug)
            updated = outcome.participation
            current.score = updated.score
            current.total_penalty = updated.total_penalty
            current.problem_progress = updated.problem_progress
            current.last_sync = now
            return outcome

        return self.store.update_participation(contest.id, user_id, _mutate)

    # ==================== WHOLE CONTEST ====================

    def _claim_bulk_sync(self, contest_id: str, now: datetime) -> BulkSyncGate:
        with self.store.locked(contest_id):
            gate = evaluate_bulk_sync_gate(self.store.get_contest(contest_id), now, self.settings)
            if gate.finalize:
                finalize_contest(self.store, contest_id)
            elif gate.allowed:

                def _claim(contest: Contest) -> None:
                    contest.bulk_sync_in_progress = True
                    contest.bulk_sync_started_at = now

                self.store.update_contest(contest_id, _claim)
        return gate

    def _release_bulk_sync(self, contest_id: str, stamp: bool) -> None:
        finished_at = self._clock()

        def _release(contest: Contest) -> None:
            contest.bulk_sync_in_progress = False
            contest.bulk_sync_started_at = None
            if stamp:
                contest.last_bulk_sync = finished_at

        self.store.update_contest(contest_id, _release)

    def sync_all(self, contest_ref: str) -> SyncAllResult:
        """
        Sync every participant of a contest.

        Per-participant failures are logged and counted, never fatal. Ranks
        are recomputed after the batch whether or not anything changed.

        Raises:
            NotFoundError: unknown contest or no participants
            SyncRejectedError: finalized, grace over (contest gets finalized),
                batch already running, or cooldown
        """
        now = self._clock()
        contest = resolve_contest(self.store, contest_ref)

        gate = self._claim_bulk_sync(contest.id, now)
        if gate.finalize:
            logger.info(f"Contest {contest.id} auto-finalized: grace period over")
        if gate.error is not None:
            logger.info(f"Sync-all rejected for {contest.id}: {gate.error.kind}")
            raise SyncRejectedError(gate.error)

        started = False
        try:
            participations = self.store.list_participations(contest.id)
            if not participations:
                raise NotFoundError("No participants found", kind="no_participants")
            started = True
            result = self._run_batch(contest, participations, now)
        finally:
            # A batch that aborts midway still counts against the cooldown.
            self._release_bulk_sync(contest.id, stamp=started)

        try:
            recompute_ranks(self.store, contest.id)
        except ContestFinalizedError:
            logger.info(f"Contest {contest.id} was finalized during sync-all; ranks left as is")

        after = self._clock()
        latest = self.store.get_contest(contest.id)
        phase = contest_phase(latest, after, self.settings)
        result.is_grace_period = phase == "grace"
        result.contest_ended = after > latest.end_time
        result.finalized = latest.finalized
        logger.info(
            f"Sync-all for {contest.id}: synced={result.synced} errors={result.errors} "
            f"skipped={result.skipped} total={result.total}"
        )
        return result

    def _run_batch(
        self, contest: Contest, participations: Sequence[Participation], now: datetime
    ) -> SyncAllResult:
        result = SyncAllResult(synced=0, errors=0, total=len(participations))
        points_by_slug = resolve_points(contest, self.catalog)
        fetched = 0

        for participation in participations:
            account = participation.external_account
            if not account:
                logger.info(f"Skipping {participation.user_id}: no LeetCode username")
                result.skipped += 1
                continue

            # Pace the judge: random pause before every fetch but the first.
            if fetched > 0:
                self._sleep(
                    self._rng.uniform(
                        self.settings.bulk_delay_min_seconds,
                        self.settings.bulk_delay_max_seconds,
                    )
                )
            fetched += 1

            try:
                submissions = self.client.fetch_recent_submissions(
                    account, self.settings.fetch_limit
                )
                outcome = self._commit(
                    contest, participation.user_id, submissions, points_by_slug, now
                )
            except ContestFinalizedError:
                logger.info(
                    f"Contest {contest.id} was finalized during sync-all; "
                    f"stopping before {participation.user_id}"
                )
                break
            except Exception as exc:
                logger.warning(
                    f"Error syncing {account} ({participation.user_id}) "
                    f"in {contest.id}: {type(exc).__name__}: {exc}"
                )
                result.errors += 1
                continue

            result.synced += 1
            if outcome.changed:
                result.changed += 1
        return result

    # ==================== READS & ADMIN ====================

    def leaderboard(self, contest_ref: str) -> List[LeaderboardRow]:
        contest = resolve_contest(self.store, contest_ref)
        with self.store.locked(contest.id):
            participations = self.store.list_participations(contest.id)
        return build_leaderboard(contest, participations)

    def summary(self, contest_ref: str) -> ContestSummary:
        contest = resolve_contest(self.store, contest_ref)
        return contest_summary(contest, self._clock(), self.settings)

    def finalize(self, contest_ref: str) -> Contest:
        contest = resolve_contest(self.store, contest_ref)
        return finalize_contest(self.store, contest.id)
