"""
Input validation schemas using Pydantic v2
Validates judge feed entries, contest creation and enrollment inputs
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
CONTEST_CODE_RE = re.compile(r"^[A-Za-z0-9_-]{4,32}$")
SURROGATE_KEY_RE = re.compile(r"^[0-9a-f]{32}$")
ACCOUNT_RE = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")

# ==================== JUDGE FEED ====================


class SubmissionEntry(BaseModel):
    """One row of the judge's recent-submission list"""

    titleSlug: str = Field(..., min_length=1, max_length=200)
    statusDisplay: str = Field(..., min_length=1, max_length=100)
    # Upstream sends epoch seconds as a string
    timestamp: int = Field(..., ge=0, description="Unix epoch seconds")
    title: Optional[str] = None
    lang: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v):
        """Accept numeric strings as sent by the upstream"""
        if isinstance(v, bool):
            raise ValueError("timestamp must be numeric")
        if isinstance(v, str):
            stripped = v.strip()
            if not stripped.isdigit():
                raise ValueError(f"timestamp must be numeric, got {v!r}")
            return int(stripped)
        return v


# ==================== CONTEST CREATION ====================


class ProblemInput(BaseModel):
    slug: str = Field(..., min_length=1, max_length=200, description="Judge problem slug")
    difficulty: Optional[str] = Field(None, description="'Easy', 'Medium' or 'Hard'")
    points: Optional[int] = Field(None, ge=0, le=100)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        v = v.strip().lower()
        if not SLUG_RE.match(v):
            raise ValueError(f"slug must be kebab-case, got {v!r}")
        return v

    @field_validator("difficulty")
    @classmethod
    def validate_difficulty(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().capitalize()
        if v not in {"Easy", "Medium", "Hard"}:
            raise ValueError("difficulty must be one of Easy, Medium, Hard")
        return v


class ContestCreate(BaseModel):
    """Validated contest creation request"""

    name: str = Field(..., min_length=1, max_length=200)
    start_time: datetime
    duration_minutes: int = Field(
        ..., ge=20, le=180, description="Contest duration (20-180 minutes)"
    )
    problems: List[ProblemInput] = Field(..., min_length=1, max_length=50)
    is_public: bool = False
    points_by_difficulty: Optional[dict[str, int]] = None
    penalty_per_fail_minutes: int = Field(5, ge=0, le=120)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = InputSanitizer.sanitize_string(v, 200)
        if len(v) == 0:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: datetime) -> datetime:
        """Naive datetimes are taken as UTC"""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("points_by_difficulty")
    @classmethod
    def validate_points_table(cls, v: Optional[dict[str, int]]) -> Optional[dict[str, int]]:
        if v is None:
            return v
        normalized: dict[str, int] = {}
        for key, points in v.items():
            tier = str(key).strip().capitalize()
            if tier not in {"Easy", "Medium", "Hard"}:
                raise ValueError(f"unknown difficulty tier {key!r}")
            if points < 0:
                raise ValueError("points must be non-negative")
            normalized[tier] = points
        return normalized

    @model_validator(mode="after")
    def validate_unique_problems(self) -> Self:
        slugs = [p.slug for p in self.problems]
        if len(set(slugs)) != len(slugs):
            raise ValueError("problems must not repeat a slug")
        return self


class EnrollmentRequest(BaseModel):
    contest_ref: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=64)
    username: str = Field(..., min_length=1, max_length=100)
    external_account: Optional[str] = Field(None, max_length=64)

    @field_validator("external_account")
    @classmethod
    def validate_account(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if not ACCOUNT_RE.match(v):
            raise ValueError("external_account contains invalid characters")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = InputSanitizer.sanitize_display_name(v)
        if not v:
            raise ValueError("username cannot be empty")
        return v


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        value = value.strip()
        value = value[:max_length]
        # Remove null bytes
        value = value.replace("\0", "")
        return value

    @staticmethod
    def sanitize_display_name(name: str) -> str:
        """Strip markup and control characters, keep unicode letters"""
        name = InputSanitizer.sanitize_string(name, 100)
        dangerous_chars = r'[<>{}[\]\\|;()&$`"\*\x00-\x1f\x7f]'
        name = re.sub(dangerous_chars, "", name)
        return name.strip()

    @staticmethod
    def sanitize_contest_ref(ref: str) -> str:
        """Validate a contest identifier (surrogate key or share code)"""
        ref = InputSanitizer.sanitize_string(ref, 64)
        if not (SURROGATE_KEY_RE.match(ref) or CONTEST_CODE_RE.match(ref)):
            logger.warning(f"Rejected contest reference: {ref!r}")
            raise ValueError(f"Invalid contest identifier: {ref!r}")
        return ref

    @staticmethod
    def is_surrogate_key(ref: str) -> bool:
        return bool(SURROGATE_KEY_RE.match(ref or ""))

    @staticmethod
    def parse_feed(entries: list) -> List[SubmissionEntry]:
        """
        Validate a raw judge feed

        Raises:
            ValueError: If any entry is malformed
        """
        if not isinstance(entries, list):
            raise ValueError("submission feed must be a list")
        try:
            return [SubmissionEntry.model_validate(e) for e in entries]
        except Exception as e:
            logger.warning(f"Submission feed validation failed: {e}")
            raise ValueError(f"Invalid submission feed: {str(e)}")


# ==================== EXPORT ====================

__all__ = [
    "ContestCreate",
    "EnrollmentRequest",
    "InputSanitizer",
    "ProblemInput",
    "SubmissionEntry",
]
