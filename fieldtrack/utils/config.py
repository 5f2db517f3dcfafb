"""Tracking configuration read from environment variables."""

import os
from datetime import timedelta, tzinfo
from zoneinfo import ZoneInfo


MIN_SAMPLE_INTERVAL_SECONDS = 5
MAX_SAMPLE_INTERVAL_SECONDS = 10


class TrackingConfig:
    """Centralized tracking configuration."""

    SAMPLE_INTERVAL_SECONDS = int(os.environ.get("SAMPLE_INTERVAL_SECONDS", "10"))
    TIMER_WARNING_THRESHOLD_SECONDS = int(os.environ.get("TIMER_WARNING_THRESHOLD_SECONDS", "300"))
    TIMEZONE = os.environ.get("FIELDTRACK_TIMEZONE", "UTC")
    STORE_BACKEND = os.environ.get("FIELDTRACK_STORE", "supabase").lower()

    @classmethod
    def sample_interval(cls) -> float:
        """Sampling period, clamped to the 5-10 s tracking window."""
        return float(min(max(cls.SAMPLE_INTERVAL_SECONDS, MIN_SAMPLE_INTERVAL_SECONDS), MAX_SAMPLE_INTERVAL_SECONDS))

    @classmethod
    def timer_warning_threshold(cls) -> timedelta:
        return timedelta(seconds=cls.TIMER_WARNING_THRESHOLD_SECONDS)

    @classmethod
    def tz(cls) -> tzinfo:
        """Time zone that defines a worker's calendar day."""
        return ZoneInfo(cls.TIMEZONE)
