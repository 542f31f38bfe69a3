"""LeetCode GraphQL client for the recent-submission feed.

Retry policy lives entirely here: transient upstream conditions (timeouts,
connection drops, 429/502/503/504) are retried with jittered exponential
backoff; everything else fails on the first attempt. Callers only ever see
``SubmissionFetchError`` or ``AccountNotFoundError``, never partial data.
"""
from __future__ import annotations

import logging
import random
from typing import Any, Dict, List

import backoff
import requests

from .config import DEFAULT_SETTINGS, SyncSettings
from .errors import AccountNotFoundError, SubmissionFetchError
from .models import SubmissionRecord
from .validation import InputSanitizer

logger = logging.getLogger(__name__)

RECENT_SUBMISSION_QUERY = """
  query getRecentSubmissions($username: String!, $limit: Int) {
    recentSubmissionList(username: $username, limit: $limit) {
      title
      titleSlug
      timestamp
      statusDisplay
      lang
    }
  }
"""

PROBLEM_DATA_QUERY = """
  query questionData($titleSlug: String!) {
    question(titleSlug: $titleSlug) {
      questionId
      title
      difficulty
    }
  }
"""

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Referer": "https://leetcode.com/",
}

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})


class TransientUpstreamError(Exception):
    """Upstream condition worth retrying (timeout, rate limit, unavailable)."""


class LeetCodeClient:
    def __init__(
        self,
        settings: SyncSettings = DEFAULT_SETTINGS,
        session: requests.Session | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.session = session if session is not None else requests.Session()
        self._rng = rng if rng is not None else random.Random()
        self._post_with_retry = backoff.on_exception(
            backoff.expo,
            TransientUpstreamError,
            max_tries=settings.retry_attempts,
            jitter=self._jitter,
            on_backoff=self._log_backoff,
            logger=None,
            factor=settings.retry_base_seconds,
        )(self._post_once)

    def _jitter(self, value: float) -> float:
        spread = self.settings.retry_jitter
        return value * self._rng.uniform(1 - spread, 1 + spread)

    def _log_backoff(self, details: Dict[str, Any]) -> None:
        logger.warning(
            f"Judge request retry {details['tries']}/{self.settings.retry_attempts} "
            f"after {details['wait']:.2f}s: {details.get('exception')}"
        )

    def _post_once(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                self.settings.judge_url,
                json={"query": query, "variables": variables},
                headers=DEFAULT_HEADERS,
                timeout=self.settings.request_timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientUpstreamError(f"{type(exc).__name__}: {exc}") from exc

        status = response.status_code
        if status in TRANSIENT_STATUS_CODES:
            raise TransientUpstreamError(f"HTTP {status}")
        if status >= 400:
            raise SubmissionFetchError(
                f"Judge responded with HTTP {status}", retryable=False
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise SubmissionFetchError(
                "Judge response is not valid JSON", retryable=False
            ) from exc
        if not isinstance(body, dict):
            raise SubmissionFetchError("Judge response is not an object", retryable=False)
        return body

    def fetch_recent_submissions(
        self, account: str, limit: int | None = None
    ) -> List[SubmissionRecord]:
        """
        Fetch the most recent submissions of one judge account.

        Raises:
            AccountNotFoundError: account unknown or private (not retried)
            SubmissionFetchError: retries exhausted or malformed response
        """
        limit = limit or self.settings.fetch_limit
        try:
            body = self._post_with_retry(
                RECENT_SUBMISSION_QUERY, {"username": account, "limit": limit}
            )
        except TransientUpstreamError as exc:
            raise SubmissionFetchError(
                f"Failed to fetch submissions for {account} after "
                f"{self.settings.retry_attempts} attempts: {exc}",
                retryable=True,
            ) from exc

        if body.get("errors"):
            raise AccountNotFoundError(
                f"Judge rejected account {account}; ensure the profile exists and is public",
                details={"upstream_errors": body["errors"]},
            )
        data = body.get("data")
        if not isinstance(data, dict):
            raise SubmissionFetchError("Judge response has no data", retryable=False)
        raw_entries = data.get("recentSubmissionList") or []
        try:
            entries = InputSanitizer.parse_feed(raw_entries)
        except ValueError as exc:
            raise SubmissionFetchError(str(exc), retryable=False) from exc

        records = [
            SubmissionRecord.from_label(e.titleSlug, e.statusDisplay, e.timestamp)
            for e in entries
        ]
        logger.debug(f"Fetched {len(records)} submissions for {account}")
        return records

    def fetch_problem_difficulty(self, slug: str) -> str | None:
        """Single-shot difficulty lookup; returns None when the judge has no answer."""
        try:
            body = self._post_once(PROBLEM_DATA_QUERY, {"titleSlug": slug})
        except TransientUpstreamError as exc:
            raise SubmissionFetchError(
                f"Difficulty lookup for {slug} failed: {exc}", retryable=True
            ) from exc
        data = body.get("data") or {}
        question = data.get("question") if isinstance(data, dict) else None
        if not isinstance(question, dict):
            return None
        difficulty = question.get("difficulty")
        return difficulty if isinstance(difficulty, str) else None
