"""Problem difficulty lookup and point resolution."""
from __future__ import annotations

import logging
from typing import Dict, Mapping, Protocol

from .cache import TTLCache
from .models import DEFAULT_DIFFICULTY, DIFFICULTIES, Contest, Problem

logger = logging.getLogger(__name__)


class ProblemCatalog(Protocol):
    def difficulty_for(self, slug: str) -> str | None:
        ...


class DifficultySource(Protocol):
    def fetch_problem_difficulty(self, slug: str) -> str | None:
        ...


class StaticCatalog:
    """Catalog backed by a fixed slug -> difficulty mapping."""

    def __init__(self, difficulties: Mapping[str, str] | None = None) -> None:
        self._difficulties = dict(difficulties or {})

    def difficulty_for(self, slug: str) -> str | None:
        return self._difficulties.get(slug)


class JudgeCatalog:
    """Catalog that asks the judge and caches answers with a TTL."""

    def __init__(self, source: DifficultySource, cache: TTLCache[str] | None = None) -> None:
        self._source = source
        self._cache: TTLCache[str] = cache if cache is not None else TTLCache()

    def difficulty_for(self, slug: str) -> str | None:
        try:
            return self._cache.get_or_fetch(
                ("difficulty", slug),
                lambda: self._source.fetch_problem_difficulty(slug),
            )
        except Exception as exc:
            # Unresolved difficulty scores as Medium; never block a sync on it.
            logger.warning(f"Difficulty lookup failed for {slug}: {exc}")
            return None


def _normalize_difficulty(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    candidate = value.strip().capitalize()
    return candidate if candidate in DIFFICULTIES else None


def problem_points(contest: Contest, problem: Problem, catalog: ProblemCatalog | None) -> int:
    if problem.points is not None:
        return int(problem.points)
    difficulty = _normalize_difficulty(problem.difficulty)
    if difficulty is None and catalog is not None:
        difficulty = _normalize_difficulty(catalog.difficulty_for(problem.slug))
    if difficulty is None:
        difficulty = DEFAULT_DIFFICULTY
    return contest.scoring.points_for(difficulty)


def resolve_points(contest: Contest, catalog: ProblemCatalog | None = None) -> Dict[str, int]:
    """Map every contest problem slug to the points it awards when accepted."""
    return {p.slug: problem_points(contest, p, catalog) for p in contest.problems}
