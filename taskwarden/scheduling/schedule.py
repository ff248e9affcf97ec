"""Next-run calculation for recurring schedules.

``calculate_next_run`` is pure: the same schedule and the same ``now`` always
yield the same instant. Calendar boundaries (midnight, Monday, first of the
month) are taken in the schedule's timezone; results are UTC.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from croniter import croniter  # type: ignore[import-untyped]

from taskwarden.scheduling.models import Frequency, Schedule

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_INTERVAL = timedelta(hours=1)


def validate_cron_expression(expression: str) -> bool:
    """Return True if *expression* is a valid 5-field cron expression."""
    if not isinstance(expression, str) or not expression.strip():
        return False
    try:
        return bool(croniter.is_valid(expression.strip()))
    except (ValueError, TypeError):
        return False


def _local_midnight(day: date, tz) -> datetime:  # type: ignore[no-untyped-def]
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def _first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def calculate_next_run(
    schedule: Schedule,
    now: datetime,
    *,
    fallback_interval: timedelta = DEFAULT_FALLBACK_INTERVAL,
) -> datetime:
    """Return the next boundary strictly after *now* for *schedule*.

    Args:
        schedule: Frequency, optional cron expression and timezone.
        now: Reference instant; naive values are treated as UTC.
        fallback_interval: Used when a custom cron expression cannot be parsed.

    Returns:
        Timezone-aware UTC datetime.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    tz = schedule.tzinfo
    local = now.astimezone(tz)
    frequency = schedule.frequency

    if frequency == Frequency.HOURLY:
        return (now + timedelta(hours=1)).astimezone(timezone.utc)
    if frequency == Frequency.DAILY:
        return _local_midnight(local.date() + timedelta(days=1), tz)
    if frequency == Frequency.WEEKLY:
        return _local_midnight(local.date() + timedelta(days=7), tz)
    if frequency == Frequency.MONTHLY:
        return _local_midnight(_first_of_next_month(local.date()), tz)

    expression = schedule.cron_expression or ""
    if validate_cron_expression(expression):
        try:
            next_local = croniter(expression, local).get_next(datetime)
            return next_local.astimezone(timezone.utc)
        except (ValueError, KeyError) as exc:
            logger.warning("Failed to evaluate cron expression '%s': %s", expression, exc)
    else:
        logger.warning(
            "Unsupported cron expression '%s'; falling back to %s",
            expression,
            fallback_interval,
        )
    return (now + fallback_interval).astimezone(timezone.utc)
