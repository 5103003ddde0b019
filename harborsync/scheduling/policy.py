"""Next-run computation for schedule policies.

Pure functions: no clock, no I/O. All datetimes are naive local time,
matching how users express "every weekday at 02:00".
"""

from datetime import datetime, timedelta
from typing import Optional

from harborsync.models.schedule import (
    DisabledPolicy,
    IntervalPolicy,
    SchedulePolicy,
    Weekday,
    WeeklyPolicy,
)

# Offsets 0..7: today's slot may already be gone, and with a single
# selected day the next one is exactly a week out
_WEEKLY_LOOKAHEAD_DAYS = 8


def next_run_at(
    policy: SchedulePolicy,
    now: datetime,
    last_run_at: Optional[datetime] = None,
) -> Optional[datetime]:
    """Return when the next scheduled run is due, or None if never.

    The result may lie in the past for interval policies whose last run
    is older than the interval; callers treat that as "run now".

    Examples:
        >>> next_run_at(IntervalPolicy(hours=6), datetime(2026, 1, 6, 10, 0))
        datetime.datetime(2026, 1, 6, 16, 0)
    """
    if isinstance(policy, DisabledPolicy):
        return None

    if isinstance(policy, IntervalPolicy):
        base = last_run_at if last_run_at is not None else now
        return base + timedelta(hours=policy.hours)

    if isinstance(policy, WeeklyPolicy):
        return next_weekly_occurrence(policy, now)

    raise TypeError(f"Unsupported schedule policy: {type(policy).__name__}")


def next_weekly_occurrence(policy: WeeklyPolicy, now: datetime) -> Optional[datetime]:
    """First selected weekday whose ``hour:minute:00`` is strictly after ``now``"""
    if not policy.days:
        return None

    for offset in range(_WEEKLY_LOOKAHEAD_DAYS):
        day = (now + timedelta(days=offset)).date()
        if Weekday.from_date(day) not in policy.days:
            continue
        candidate = datetime(
            day.year,
            day.month,
            day.day,
            policy.hour,
            policy.minute,
            0,
            tzinfo=now.tzinfo,
        )
        if candidate > now:
            return candidate

    return None


def is_due(next_run: Optional[datetime], now: datetime) -> bool:
    return next_run is not None and next_run <= now
