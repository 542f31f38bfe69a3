from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from leetcontest_core import (
    Contest,
    ContestFinalizedError,
    InMemoryContestStore,
    Participation,
    Problem,
    compute_ranks,
    new_participation,
    recompute_ranks,
)

T0 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def _p(user_id, score, penalty, rank=None):
    return Participation(
        contest_id="c1",
        user_id=user_id,
        username=user_id.upper(),
        score=score,
        total_penalty=penalty,
        rank=rank,
    )


def _seeded_store(rows):
    store = InMemoryContestStore()
    contest = Contest(
        id="a" * 32,
        unique_code="RANK0001",
        name="Ranked",
        problems=[Problem(slug="two-sum")],
        start_time=T0,
        end_time=T0 + timedelta(minutes=90),
    )
    store.add_contest(contest)
    for user_id, score, penalty in rows:
        participation = new_participation(contest, user_id, user_id.upper())
        participation.score = score
        participation.total_penalty = penalty
        store.add_participation(participation)
        store.update_contest(contest.id, lambda c, u=user_id: c.participants.append(u))
    return store, contest


def test_higher_score_ranks_first():
    ranks = compute_ranks([_p("a", 3, 0), _p("b", 10, 50), _p("c", 7, 0)])
    assert [(r.user_id, r.rank) for r in ranks] == [("b", 1), ("c", 2), ("a", 3)]


def test_equal_score_breaks_on_lower_penalty():
    ranks = compute_ranks([_p("a", 7, 15), _p("b", 7, 5), _p("c", 7, 10)])
    assert [r.user_id for r in ranks] == ["b", "c", "a"]


def test_full_tie_is_deterministic_by_user_id():
    first = compute_ranks([_p("zed", 4, 5), _p("amy", 4, 5), _p("kim", 4, 5)])
    second = compute_ranks([_p("kim", 4, 5), _p("zed", 4, 5), _p("amy", 4, 5)])
    assert [r.user_id for r in first] == ["amy", "kim", "zed"]
    assert [r.user_id for r in first] == [r.user_id for r in second]
    assert [r.rank for r in first] == [1, 2, 3]


def test_ranks_are_contiguous_from_one():
    rows = [_p(f"u{i}", i % 3, i % 2, rank=99) for i in range(7)]
    ranks = compute_ranks(rows)
    assert sorted(r.rank for r in ranks) == list(range(1, 8))


def test_rank_assignment_reports_change():
    ranks = compute_ranks([_p("a", 5, 0, rank=2), _p("b", 1, 0, rank=2)])
    by_user = {r.user_id: r for r in ranks}
    assert by_user["a"].changed is True
    assert by_user["b"].changed is False


def test_recompute_ranks_persists_only_changes():
    store, contest = _seeded_store([("a", 3, 0), ("b", 6, 5), ("c", 6, 0)])

    written = recompute_ranks(store, contest.id)
    assert written == 3
    ranks = {p.user_id: p.rank for p in store.list_participations(contest.id)}
    assert ranks == {"c": 1, "b": 2, "a": 3}

    assert recompute_ranks(store, contest.id) == 0


def test_recompute_ranks_refused_after_finalization():
    store, contest = _seeded_store([("a", 3, 0), ("b", 6, 5)])
    store.update_contest(contest.id, lambda c: setattr(c, "finalized", True))
    with pytest.raises(ContestFinalizedError):
        recompute_ranks(store, contest.id)
