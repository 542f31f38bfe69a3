"""
Runtime settings for contest synchronization.
Defaults mirror the production cooldowns; every value can be overridden
from the environment with the LEETCONTEST_ prefix.
"""

import logging
import os
from typing import Mapping, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "LEETCONTEST_"

LEETCODE_GRAPHQL_URL = "https://leetcode.com/graphql"


class SyncSettings(BaseModel):
    """Cooldowns, pacing and retry policy for the sync path"""

    # Single participant sync
    participant_cooldown_seconds: int = Field(
        30, ge=0, le=3600, description="Minimum gap between syncs of one participant"
    )

    # Bulk sync
    bulk_cooldown_seconds: int = Field(
        600, ge=0, le=86400, description="Global sync-all cooldown while live"
    )
    grace_bulk_cooldown_seconds: int = Field(
        120, ge=0, le=86400, description="Global sync-all cooldown during grace"
    )
    grace_period_seconds: int = Field(
        3600, ge=0, le=7 * 86400, description="Window after end_time before locking"
    )
    bulk_delay_min_seconds: float = Field(
        2.0, ge=0, le=60, description="Lower bound of the pause between participants"
    )
    bulk_delay_max_seconds: float = Field(
        3.0, ge=0, le=60, description="Upper bound of the pause between participants"
    )
    bulk_claim_stale_seconds: int = Field(
        1800,
        gt=0,
        le=86400,
        description="Age after which a running sync-all claim is treated as abandoned",
    )

    # Judge client
    judge_url: str = Field(LEETCODE_GRAPHQL_URL, min_length=1, max_length=500)
    fetch_limit: int = Field(50, gt=0, le=500, description="Recent submissions per fetch")
    request_timeout_seconds: float = Field(15.0, gt=0, le=300)
    retry_attempts: int = Field(5, ge=1, le=20, description="Total attempts per fetch")
    retry_base_seconds: float = Field(2.0, ge=0, le=60, description="First backoff wait")
    retry_jitter: float = Field(0.25, ge=0, lt=1, description="Relative jitter (+/-)")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> Self:
        if self.bulk_delay_max_seconds < self.bulk_delay_min_seconds:
            raise ValueError("bulk_delay_max_seconds must be >= bulk_delay_min_seconds")
        return self

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = ENV_PREFIX,
    ) -> "SyncSettings":
        """
        Build settings from environment variables.

        Each field maps to PREFIX + FIELD_NAME upper-cased, e.g.
        LEETCONTEST_BULK_COOLDOWN_SECONDS=300. Unknown variables are ignored.
        """
        env = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            key = f"{prefix}{name.upper()}"
            if key in env:
                overrides[name] = env[key]
        if overrides:
            logger.debug(f"SyncSettings overrides from environment: {sorted(overrides)}")
        return cls(**overrides)


DEFAULT_SETTINGS = SyncSettings()

__all__ = [
    "DEFAULT_SETTINGS",
    "ENV_PREFIX",
    "LEETCODE_GRAPHQL_URL",
    "SyncSettings",
]
