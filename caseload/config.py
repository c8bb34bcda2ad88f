"""Caseload rule configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """Resolved thresholds for the reminder and schedule rules."""

    goal_review_days: int = 30
    goal_review_high_days: int = 60
    evaluation_alert_days: int = 14
    evaluation_high_days: int = 7
    report_alert_days: int = 7
    annual_review_alert_days: int = 30
    annual_review_high_days: int = 14
    weekly_lookback_days: int = 28
    monthly_lookback_days: int = 30
    new_record_grace_days: int = 7
    default_session_minutes: int = 30

    @property
    def weeks_per_lookback(self) -> int:
        return max(1, self.weekly_lookback_days // 7)


_ENV_FIELDS = {
    "goal_review_days": "CASELOAD_GOAL_REVIEW_DAYS",
    "goal_review_high_days": "CASELOAD_GOAL_REVIEW_HIGH_DAYS",
    "evaluation_alert_days": "CASELOAD_EVALUATION_ALERT_DAYS",
    "evaluation_high_days": "CASELOAD_EVALUATION_HIGH_DAYS",
    "report_alert_days": "CASELOAD_REPORT_ALERT_DAYS",
    "annual_review_alert_days": "CASELOAD_ANNUAL_REVIEW_ALERT_DAYS",
    "annual_review_high_days": "CASELOAD_ANNUAL_REVIEW_HIGH_DAYS",
    "weekly_lookback_days": "CASELOAD_WEEKLY_LOOKBACK_DAYS",
    "monthly_lookback_days": "CASELOAD_MONTHLY_LOOKBACK_DAYS",
    "new_record_grace_days": "CASELOAD_NEW_RECORD_GRACE_DAYS",
    "default_session_minutes": "CASELOAD_DEFAULT_SESSION_MINUTES",
}


def _get_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the active rule settings derived from the environment."""

    overrides = {}
    for field_name, env_name in _ENV_FIELDS.items():
        value = _get_int_env(env_name)
        if value is not None:
            overrides[field_name] = value
    return Settings(**overrides)


__all__ = ["Settings", "get_settings"]
