"""Deadline helpers for plans and studied items."""
from datetime import UTC, datetime

from questvault.models.plan_models import TimelineStatus

WARNING_HOURS = 24


def _aware(moment: datetime) -> datetime:
    return moment.replace(tzinfo=UTC) if moment.tzinfo is None else moment


def _whole_hours(delta_seconds: float) -> int:
    # Truncate toward zero, like counting full elapsed hours
    return int(delta_seconds / 3600)


def deadline_status(deadline: datetime, now: datetime) -> TimelineStatus:
    """Describe how much time is left before ``deadline``.

    A deadline within 24 hours is a warning; one that has passed is corroded.
    """
    remaining = (_aware(deadline) - _aware(now)).total_seconds()
    hours = _whole_hours(remaining)
    days = int(remaining / 86400)

    is_corroded = hours <= 0
    is_warning = 0 < hours <= WARNING_HOURS

    if is_corroded:
        time_left = "CORRODED"
    elif days > 0:
        time_left = f"{days}d {hours % 24}h"
    else:
        minutes = int(remaining // 60) % 60
        time_left = f"{hours}h {minutes}m"

    return TimelineStatus(
        time_left=time_left,
        hours_remaining=hours,
        is_warning=is_warning,
        is_corroded=is_corroded,
    )


def is_item_corroded(last_studied_at: datetime, now: datetime, limit_hours: int = WARNING_HOURS) -> bool:
    """True when an item has gone ``limit_hours`` or more without review."""
    elapsed = (_aware(now) - _aware(last_studied_at)).total_seconds()
    return _whole_hours(elapsed) >= limit_hours
