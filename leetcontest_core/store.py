"""Contest and participation storage.

``ContestStore`` is the seam a persistence backend implements. The bundled
``InMemoryContestStore`` gives document-style semantics: reads hand out deep
copies, writes replace whole records, and every mutation of one contest (its
own fields, any of its participations, rank passes) runs under that contest's
re-entrant lock.

Store-level invariants:
- one participation per (contest_id, user_id);
- no participation write once the owning contest is finalized.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from copy import deepcopy
from typing import Callable, Dict, Iterator, List, Protocol, TypeVar

from .errors import ContestFinalizedError, NotFoundError
from .models import Contest, Participation
from .validation import InputSanitizer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContestStore(Protocol):
    def add_contest(self, contest: Contest) -> Contest:
        ...

    def get_contest(self, contest_id: str) -> Contest:
        ...

    def find_contest_by_code(self, code: str, *, case_insensitive: bool = False) -> List[Contest]:
        ...

    def update_contest(self, contest_id: str, mutate: Callable[[Contest], T]) -> T:
        ...

    def add_participation(self, participation: Participation) -> Participation:
        ...

    def get_participation(self, contest_id: str, user_id: str) -> Participation:
        ...

    def list_participations(self, contest_id: str) -> List[Participation]:
        ...

    def update_participation(
        self, contest_id: str, user_id: str, mutate: Callable[[Participation], T]
    ) -> T:
        ...

    def set_ranks(self, contest_id: str, ranks: Dict[str, int]) -> int:
        ...

    def locked(self, contest_id: str):
        ...


class InMemoryContestStore:
    def __init__(self) -> None:
        self._contests: Dict[str, Contest] = {}
        # contest_id -> user_id -> participation; each inner dict is guarded by its contest lock
        self._participations: Dict[str, Dict[str, Participation]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, contest_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(contest_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[contest_id] = lock
            return lock

    @contextmanager
    def locked(self, contest_id: str) -> Iterator[None]:
        """Hold the contest lock; used for snapshot-then-write passes."""
        with self._lock_for(contest_id):
            yield

    def _require_contest(self, contest_id: str) -> Contest:
        contest = self._contests.get(contest_id)
        if contest is None:
            raise NotFoundError("Contest not found", kind="contest_not_found")
        return contest

    # ==================== CONTESTS ====================

    def add_contest(self, contest: Contest) -> Contest:
        with self._lock_for(contest.id):
            with self._registry_lock:
                if contest.id in self._contests:
                    raise ValueError(f"contest {contest.id} already exists")
                self._contests[contest.id] = deepcopy(contest)
                self._participations[contest.id] = {}
        logger.info(f"Stored contest {contest.id} ({contest.unique_code})")
        return deepcopy(contest)

    def get_contest(self, contest_id: str) -> Contest:
        with self._lock_for(contest_id):
            return deepcopy(self._require_contest(contest_id))

    def find_contest_by_code(self, code: str, *, case_insensitive: bool = False) -> List[Contest]:
        """All contests sharing a code, newest first (codes are reused after a contest ends)."""
        wanted = code.lower() if case_insensitive else code
        with self._registry_lock:
            contests = list(self._contests.values())
        matches = [
            c
            for c in contests
            if (c.unique_code.lower() if case_insensitive else c.unique_code) == wanted
        ]
        matches.sort(key=lambda c: c.created_at, reverse=True)
        return [deepcopy(c) for c in matches]

    def list_contests(self) -> List[Contest]:
        with self._registry_lock:
            return [deepcopy(c) for c in self._contests.values()]

    def update_contest(self, contest_id: str, mutate: Callable[[Contest], T]) -> T:
        """Atomic read-modify-write of one contest.

        ``mutate`` receives a working copy; the copy is committed only if it
        returns without raising, which makes this usable as compare-and-set.
        """
        with self._lock_for(contest_id):
            working = deepcopy(self._require_contest(contest_id))
            result = mutate(working)
            self._contests[contest_id] = working
            return result

    # ==================== PARTICIPATIONS ====================

    def add_participation(self, participation: Participation) -> Participation:
        with self._lock_for(participation.contest_id):
            contest = self._require_contest(participation.contest_id)
            if contest.finalized:
                raise ContestFinalizedError("Contest has been finalized")
            rows = self._participations[participation.contest_id]
            if participation.user_id in rows:
                raise ValueError(
                    f"user {participation.user_id} already participates in {participation.contest_id}"
                )
            rows[participation.user_id] = deepcopy(participation)
        return deepcopy(participation)

    def get_participation(self, contest_id: str, user_id: str) -> Participation:
        with self._lock_for(contest_id):
            self._require_contest(contest_id)
            participation = self._participations[contest_id].get(user_id)
            if participation is None:
                raise NotFoundError(
                    "You are not enrolled in this contest", kind="not_enrolled"
                )
            return deepcopy(participation)

    def list_participations(self, contest_id: str) -> List[Participation]:
        """Participations in the contest's enrollment order."""
        with self._lock_for(contest_id):
            contest = self._require_contest(contest_id)
            order = {user_id: i for i, user_id in enumerate(contest.participants)}
            rows = list(self._participations[contest_id].values())
            rows.sort(key=lambda p: (order.get(p.user_id, len(order)), p.user_id))
            return [deepcopy(p) for p in rows]

    def update_participation(
        self, contest_id: str, user_id: str, mutate: Callable[[Participation], T]
    ) -> T:
        with self._lock_for(contest_id):
            contest = self._require_contest(contest_id)
            if contest.finalized:
                raise ContestFinalizedError(
                    "Contest has been finalized. Rankings are locked."
                )
            current = self._participations[contest_id].get(user_id)
            if current is None:
                raise NotFoundError(
                    "You are not enrolled in this contest", kind="not_enrolled"
                )
            working = deepcopy(current)
            result = mutate(working)
            if (working.contest_id, working.user_id) != (contest_id, user_id):
                raise ValueError("participation identity cannot change")
            self._participations[contest_id][user_id] = working
            return result

    def set_ranks(self, contest_id: str, ranks: Dict[str, int]) -> int:
        """Write ranks keyed by user id; only differing rows are touched."""
        written = 0
        with self._lock_for(contest_id):
            contest = self._require_contest(contest_id)
            if contest.finalized:
                raise ContestFinalizedError(
                    "Contest has been finalized. Rankings are locked."
                )
            for user_id, rank in ranks.items():
                participation = self._participations[contest_id].get(user_id)
                if participation is None or participation.rank == rank:
                    continue
                participation.rank = rank
                written += 1
        return written


def resolve_contest(store: ContestStore, contest_ref: str) -> Contest:
    """Find a contest by surrogate key first, then by its share code."""
    try:
        ref = InputSanitizer.sanitize_contest_ref(contest_ref)
    except ValueError as exc:
        raise NotFoundError("Contest not found", kind="contest_not_found") from exc
    if InputSanitizer.is_surrogate_key(ref):
        try:
            return store.get_contest(ref)
        except NotFoundError:
            pass
    matches = store.find_contest_by_code(ref)
    if not matches:
        raise NotFoundError("Contest not found", kind="contest_not_found")
    return matches[0]
