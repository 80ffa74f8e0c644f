"""Shared validation utilities"""

import re
from datetime import date, datetime
from typing import Optional

from dateutil import tz

from ..config import APP_TIMEZONE

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def normalize_time(value: Optional[str]) -> Optional[str]:
    """
    Validate an "H:mm" / "HH:mm" time and return it zero-padded.

    Zero-padding makes string comparison chronological ("09:30" < "10:00").

    Raises:
        ValueError: If the time is not a valid 24h clock time
    """
    if value is None:
        return value
    value = value.strip()
    if not TIME_PATTERN.match(value):
        raise ValueError("Invalid time format (HH:mm)")
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{int(minutes):02d}"


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def local_today(now: Optional[datetime] = None) -> date:
    """Today's date on the clinic wall clock (APP_TIMEZONE), whatever the host timezone"""
    now = now or datetime.now(tz.UTC)
    return now.astimezone(tz.gettz(APP_TIMEZONE)).date()
