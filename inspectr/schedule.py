"""
Alert window scheduling for inspectr.

The schedule is either ``"HHMM"`` (every day) or ``"DAY|HHMM"`` (weekly,
e.g. ``"TUESDAY|1430"``).  The alert window is the fixed interval starting
at that time; inside it every known upgrade is reported again.
"""

import zoneinfo
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

DAYS_OF_WEEK = [
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
]

DEFAULT_HOUR = 10
DEFAULT_MINUTE = 0
WINDOW_SECONDS = 300

# Just past the window so the next poll cannot fire twice inside it
WITHIN_WINDOW_SLEEP = 360
OUTSIDE_WINDOW_SLEEP = 60


@dataclass(frozen=True)
class AlertSchedule:
    day_of_week: Optional[str] = None
    hour: int = DEFAULT_HOUR
    minute: int = DEFAULT_MINUTE

    @classmethod
    def parse(cls, schedule: str) -> "AlertSchedule":
        """Parse a schedule string, falling back to 10:00 for a bad time."""
        parts = (schedule or "").split("|")
        day = parts[0].upper()
        if day in DAYS_OF_WEEK:
            time_str = parts[1] if len(parts) == 2 else ""
        else:
            day = None
            time_str = parts[0]

        hour, minute = DEFAULT_HOUR, DEFAULT_MINUTE
        if len(time_str) == 4 and time_str.isdigit():
            h, m = int(time_str[:2]), int(time_str[2:])
            if h < 24 and m < 60:
                hour, minute = h, m
            else:
                logger.warning("schedule_time_out_of_range", schedule=schedule)
        elif time_str:
            logger.warning("schedule_time_malformed", schedule=schedule)
        return cls(day_of_week=day, hour=hour, minute=minute)


def load_timezone(name: str) -> tzinfo:
    """Return the IANA zone ``name``; UTC when empty or unknown."""
    if not name:
        return timezone.utc
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning("Invalid timezone, defaulting to UTC", tz=name)
        return timezone.utc


def is_within_window(
    schedule: AlertSchedule,
    now: datetime,
    window_seconds: int = WINDOW_SECONDS,
) -> bool:
    """True iff ``now`` is in ``[start, start + window)`` on a scheduled day.

    ``now`` should already be expressed in the schedule's time zone.
    """
    if schedule.day_of_week and DAYS_OF_WEEK[now.weekday()] != schedule.day_of_week:
        return False
    start = now.replace(hour=schedule.hour, minute=schedule.minute, second=0, microsecond=0)
    return start <= now < start + timedelta(seconds=window_seconds)


def next_sleep_seconds(within_window: bool) -> int:
    return WITHIN_WINDOW_SLEEP if within_window else OUTSIDE_WINDOW_SLEEP
