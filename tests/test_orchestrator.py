from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from leetcontest_core import (
    AccountNotFoundError,
    Contest,
    InMemoryContestStore,
    NotFoundError,
    Problem,
    SubmissionFetchError,
    SubmissionRecord,
    SyncOrchestrator,
    SyncRejectedError,
    finalize_contest,
    new_participation,
)
from leetcontest_core.models import epoch_seconds

T0 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
END = T0 + timedelta(minutes=90)
T0_TS = epoch_seconds(T0)
CONTEST_ID = "c" * 32


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


class _Judge:
    """Submission source keyed by account; exceptions are raised on fetch."""

    def __init__(self, feeds=None):
        self.feeds = dict(feeds or {})
        self.calls = []

    def fetch_recent_submissions(self, account, limit=None):
        self.calls.append(account)
        feed = self.feeds.get(account, [])
        if callable(feed):
            feed = feed()
        if isinstance(feed, Exception):
            raise feed
        return list(feed)


def _sub(slug, offset, accepted=False):
    return SubmissionRecord.from_label(slug, "Accepted" if accepted else "Wrong Answer", T0_TS + offset)


def _setup(users, feeds=None, now=T0 + timedelta(minutes=30), store_cls=InMemoryContestStore):
    store = store_cls()
    contest = store.add_contest(
        Contest(
            id=CONTEST_ID,
            unique_code="SYNC0001",
            name="Sync",
            problems=[
                Problem(slug="two-sum", difficulty="Easy"),
                Problem(slug="lru-cache", difficulty="Medium"),
            ],
            start_time=T0,
            end_time=END,
        )
    )
    for user_id, account in users:
        store.add_participation(new_participation(contest, user_id, user_id.title(), account))
        store.update_contest(contest.id, lambda c, u=user_id: c.participants.append(u))
    clock = _Clock(now)
    judge = _Judge(feeds)
    slept = []
    orchestrator = SyncOrchestrator(
        store,
        judge,
        clock=clock,
        sleep=slept.append,
        rng=random.Random(3),
    )
    return orchestrator, store, judge, clock, slept


# ==================== SINGLE PARTICIPANT ====================


def test_sync_participant_scores_and_ranks():
    orchestrator, store, judge, clock, _ = _setup(
        [("u1", "ana_lc"), ("u2", "bob_lc")],
        feeds={"bob_lc": [_sub("two-sum", 60), _sub("two-sum", 120, accepted=True)]},
    )

    result = orchestrator.sync_participant(CONTEST_ID, "u2")

    assert result.message == "Score updated successfully!"
    assert result.newly_accepted == ["two-sum"]
    assert result.participation.score == 3
    assert result.participation.total_penalty == 5
    assert result.participation.last_sync == clock.now
    assert judge.calls == ["bob_lc"]
    ranks = {p.user_id: p.rank for p in store.list_participations(CONTEST_ID)}
    assert ranks == {"u2": 1, "u1": 2}

    payload = result.to_payload()
    assert payload["changed"] is True
    assert payload["participation"]["problem_progress"][0]["status"] == "ACCEPTED"


def test_sync_participant_by_share_code():
    orchestrator, _, judge, _, _ = _setup([("u1", "ana_lc")])
    result = orchestrator.sync_participant("SYNC0001", "u1")
    assert result.message == "No new submissions found"
    assert judge.calls == ["ana_lc"]


def test_sync_participant_cooldown_then_idempotent_resync():
    feed = [_sub("two-sum", 60, accepted=True)]
    orchestrator, store, judge, clock, _ = _setup([("u1", "ana_lc")], feeds={"ana_lc": feed})
    orchestrator.sync_participant(CONTEST_ID, "u1")

    clock.advance(seconds=10)
    with pytest.raises(SyncRejectedError) as excinfo:
        orchestrator.sync_participant(CONTEST_ID, "u1")
    assert excinfo.value.kind == "too_soon"
    assert excinfo.value.retry_after == 20
    assert excinfo.value.retryable is True
    assert judge.calls == ["ana_lc"]

    clock.advance(seconds=25)
    again = orchestrator.sync_participant(CONTEST_ID, "u1")
    assert again.message == "No new submissions found"
    assert again.changed is False
    assert store.get_participation(CONTEST_ID, "u1").score == 3


def test_sync_participant_rejected_before_start_without_fetch():
    orchestrator, _, judge, _, _ = _setup([("u1", "ana_lc")], now=T0 - timedelta(minutes=5))
    with pytest.raises(SyncRejectedError) as excinfo:
        orchestrator.sync_participant(CONTEST_ID, "u1")
    assert excinfo.value.kind == "contest_not_started"
    assert judge.calls == []


def test_sync_participant_not_enrolled():
    orchestrator, _, _, _, _ = _setup([("u1", "ana_lc")])
    with pytest.raises(NotFoundError) as excinfo:
        orchestrator.sync_participant(CONTEST_ID, "stranger")
    assert excinfo.value.kind == "not_enrolled"


def test_failed_fetch_leaves_participation_untouched():
    orchestrator, store, _, _, _ = _setup(
        [("u1", "ana_lc")],
        feeds={"ana_lc": SubmissionFetchError("upstream unavailable")},
    )
    with pytest.raises(SubmissionFetchError):
        orchestrator.sync_participant(CONTEST_ID, "u1")
    stored = store.get_participation(CONTEST_ID, "u1")
    assert stored.last_sync is None
    assert stored.score == 0


# ==================== WHOLE CONTEST ====================


def test_sync_all_counts_results_and_paces_requests():
    orchestrator, store, judge, clock, slept = _setup(
        [("u1", "ana_lc"), ("u2", "bob_lc"), ("u3", None), ("u4", "cy_lc")],
        feeds={
            "ana_lc": [_sub("lru-cache", 300, accepted=True)],
            "bob_lc": AccountNotFoundError("private profile"),
            "cy_lc": [_sub("two-sum", 100)],
        },
    )

    result = orchestrator.sync_all(CONTEST_ID)

    assert (result.synced, result.errors, result.skipped, result.total) == (2, 1, 1, 4)
    assert result.changed == 2
    assert judge.calls == ["ana_lc", "bob_lc", "cy_lc"]
    assert len(slept) == 2
    assert all(2.0 <= s <= 3.0 for s in slept)

    contest = store.get_contest(CONTEST_ID)
    assert contest.last_bulk_sync == clock.now
    assert contest.bulk_sync_in_progress is False
    ranks = {p.user_id: p.rank for p in store.list_participations(CONTEST_ID)}
    assert ranks["u1"] == 1
    assert sorted(ranks.values()) == [1, 2, 3, 4]

    payload = result.to_payload()
    assert payload["message"] == "Synced 2 participants successfully"
    assert payload["isGracePeriod"] is False
    assert payload["contestEnded"] is False
    assert payload["finalized"] is False


def test_sync_all_rejected_during_cooldown_without_fetching():
    orchestrator, store, judge, clock, _ = _setup([("u1", "ana_lc")])
    orchestrator.sync_all(CONTEST_ID)
    judge.calls.clear()

    clock.advance(minutes=5)
    with pytest.raises(SyncRejectedError) as excinfo:
        orchestrator.sync_all(CONTEST_ID)

    assert excinfo.value.kind == "cooldown"
    assert excinfo.value.retry_after == 300
    assert excinfo.value.to_payload()["isGracePeriod"] is False
    assert judge.calls == []


def test_sync_all_in_grace_reports_grace_period():
    orchestrator, _, _, _, _ = _setup([("u1", "ana_lc")], now=END + timedelta(minutes=10))
    result = orchestrator.sync_all(CONTEST_ID)
    assert result.is_grace_period is True
    assert result.contest_ended is True
    assert result.finalized is False


def test_sync_all_after_grace_finalizes_and_locks():
    orchestrator, store, judge, clock, _ = _setup(
        [("u1", "ana_lc")],
        feeds={"ana_lc": [_sub("two-sum", 60, accepted=True)]},
        now=END + timedelta(minutes=70),
    )

    with pytest.raises(SyncRejectedError) as excinfo:
        orchestrator.sync_all(CONTEST_ID)

    assert excinfo.value.kind == "grace_period_over"
    assert excinfo.value.to_payload()["finalized"] is True
    assert store.get_contest(CONTEST_ID).finalized is True
    assert store.get_participation(CONTEST_ID, "u1").rank == 1
    assert judge.calls == []

    with pytest.raises(SyncRejectedError) as excinfo:
        orchestrator.sync_participant(CONTEST_ID, "u1")
    assert excinfo.value.kind == "contest_finalized"

    clock.advance(days=1)
    with pytest.raises(SyncRejectedError) as excinfo:
        orchestrator.sync_all(CONTEST_ID)
    assert excinfo.value.kind == "contest_finalized"
    assert store.get_participation(CONTEST_ID, "u1").score == 0


def _leave_claim(store, started_at, last_bulk_sync=None):
    def _mark(contest):
        contest.bulk_sync_in_progress = True
        contest.bulk_sync_started_at = started_at
        contest.last_bulk_sync = last_bulk_sync

    store.update_contest(CONTEST_ID, _mark)


def test_sync_all_refuses_overlapping_batch():
    orchestrator, store, judge, clock, _ = _setup([("u1", "ana_lc")])
    _leave_claim(store, started_at=clock.now - timedelta(minutes=1))

    with pytest.raises(SyncRejectedError) as excinfo:
        orchestrator.sync_all(CONTEST_ID)

    assert excinfo.value.kind == "bulk_sync_in_progress"
    assert excinfo.value.status_code == 409
    assert judge.calls == []


def test_sync_all_takes_over_abandoned_claim():
    orchestrator, store, judge, clock, _ = _setup(
        [("u1", "ana_lc")],
        feeds={"ana_lc": [_sub("two-sum", 60, accepted=True)]},
        now=T0 + timedelta(minutes=50),
    )
    stale = clock.now - timedelta(minutes=40)
    _leave_claim(store, started_at=stale, last_bulk_sync=stale)

    result = orchestrator.sync_all(CONTEST_ID)

    assert result.synced == 1
    assert judge.calls == ["ana_lc"]
    contest = store.get_contest(CONTEST_ID)
    assert contest.bulk_sync_in_progress is False
    assert contest.bulk_sync_started_at is None
    assert contest.last_bulk_sync == clock.now


def test_sync_all_stops_when_contest_is_finalized_midway():
    orchestrator, store, judge, _, slept = _setup(
        [("u1", "ana_lc"), ("u2", "bob_lc"), ("u3", "cy_lc")],
        feeds={
            "ana_lc": [_sub("two-sum", 60, accepted=True)],
            "cy_lc": [_sub("lru-cache", 90, accepted=True)],
        },
    )

    def _finalize_then_feed():
        finalize_contest(store, CONTEST_ID)
        return [_sub("two-sum", 120, accepted=True)]

    judge.feeds["bob_lc"] = _finalize_then_feed

    result = orchestrator.sync_all(CONTEST_ID)

    assert judge.calls == ["ana_lc", "bob_lc"]
    assert len(slept) == 1
    assert (result.synced, result.errors) == (1, 0)
    assert result.finalized is True
    assert store.get_participation(CONTEST_ID, "u2").score == 0
    contest = store.get_contest(CONTEST_ID)
    assert contest.finalized is True
    assert contest.bulk_sync_in_progress is False


class _FinalizeAfterWriteStore(InMemoryContestStore):
    """Locks the contest right after the first participation write lands."""

    def update_participation(self, contest_id, user_id, mutate):
        result = super().update_participation(contest_id, user_id, mutate)
        self.update_contest(contest_id, lambda c: setattr(c, "finalized", True))
        return result


def test_sync_participant_survives_finalization_after_write():
    orchestrator, store, _, _, _ = _setup(
        [("u1", "ana_lc"), ("u2", "bob_lc")],
        feeds={"bob_lc": [_sub("two-sum", 60, accepted=True)]},
        store_cls=_FinalizeAfterWriteStore,
    )

    result = orchestrator.sync_participant(CONTEST_ID, "u2")

    assert result.message == "Score updated successfully!"
    assert result.participation.score == 3
    assert store.get_participation(CONTEST_ID, "u2").score == 3
    assert store.get_contest(CONTEST_ID).finalized is True


def test_sync_all_without_participants_releases_claim():
    orchestrator, store, _, _, _ = _setup([])
    with pytest.raises(NotFoundError) as excinfo:
        orchestrator.sync_all(CONTEST_ID)
    assert excinfo.value.kind == "no_participants"
    contest = store.get_contest(CONTEST_ID)
    assert contest.bulk_sync_in_progress is False
    assert contest.last_bulk_sync is None


# ==================== READS & ADMIN ====================


def test_leaderboard_orders_rows_and_reports_time():
    orchestrator, _, _, _, _ = _setup(
        [("u1", "ana_lc"), ("u2", "bob_lc"), ("u3", None)],
        feeds={
            "ana_lc": [_sub("two-sum", 540), _sub("two-sum", 600, accepted=True)],
            "bob_lc": [_sub("lru-cache", 1200, accepted=True)],
        },
    )
    orchestrator.sync_all(CONTEST_ID)

    rows = orchestrator.leaderboard(CONTEST_ID)

    assert [(r["rank"], r["username"]) for r in rows] == [(1, "U2"), (2, "U1"), (3, "U3")]
    assert rows[0]["total_time"] == 1200
    assert rows[1]["total_time"] == 600 + 5 * 60
    assert rows[1]["penalty"] == 5.0
    assert rows[1]["attempts"] == 1
    assert rows[1]["solved"] == 1
    assert rows[2]["leetcode_username"] == "Unknown"
    assert rows[2]["total_time"] == 0


def test_manual_finalize_blocks_further_syncs():
    orchestrator, store, judge, _, _ = _setup([("u1", "ana_lc")])
    orchestrator.finalize("SYNC0001")

    with pytest.raises(SyncRejectedError):
        orchestrator.sync_participant(CONTEST_ID, "u1")
    with pytest.raises(SyncRejectedError):
        orchestrator.sync_all(CONTEST_ID)
    assert judge.calls == []
    assert orchestrator.summary(CONTEST_ID)["phase"] == "finalized"
    assert store.get_participation(CONTEST_ID, "u1").rank == 1
