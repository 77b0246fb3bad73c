"""Next-fire computation for calendar events.

Everything here is pure: the same event and ``now`` always give the same
answer, and an answer is always strictly later than ``now``.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger
from dateutil.relativedelta import relativedelta

from hearth.log import get_logger
from hearth.services.calendar_models import CalendarEvent, RecurrenceRule

logger = get_logger(__name__)

_WEEKDAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]
_WEEKDAY_NUMBER = re.compile(r"(?<![/\d])\d+")


def _zone(name: Optional[str], default: str = "UTC") -> tzinfo:
    try:
        return ZoneInfo(name or default)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("recurrence_unknown_timezone", timezone=name)
        return timezone.utc


def _crontab_weekdays(field: str) -> str:
    """Translate crontab weekday numbers (0 and 7 are Sunday) to names."""

    def _name(match: re.Match) -> str:
        value = int(match.group(0))
        return _WEEKDAY_NAMES[value] if value <= 7 else match.group(0)

    return _WEEKDAY_NUMBER.sub(_name, field)


def parse_cron(expression: str, tz: Optional[str] = None) -> CronTrigger:
    """Build a CronTrigger from 5 fields, or 6 with a leading seconds field."""
    parts = expression.split()
    if len(parts) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = parts
    elif len(parts) == 6:
        second, minute, hour, day, month, day_of_week = parts
    else:
        raise ValueError(f"Invalid cron expression (expected 5 or 6 fields): {expression!r}")
    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_crontab_weekdays(day_of_week),
        timezone=_zone(tz),
    )


def _period(rule: RecurrenceRule, steps: int) -> relativedelta:
    n = rule.interval * steps
    match rule.type:
        case "daily":
            return relativedelta(days=n)
        case "weekly":
            return relativedelta(weeks=n)
        case "monthly":
            return relativedelta(months=n)
        case "yearly":
            return relativedelta(years=n)
    raise ValueError(f"Not a periodic recurrence: {rule.type}")


def _estimate_steps(rule: RecurrenceRule, start: datetime, now: datetime) -> int:
    """A step count at or before the first occurrence after *now*."""
    if now <= start:
        return 0
    match rule.type:
        case "daily":
            span = timedelta(days=rule.interval)
            return max(0, (now - start) // span - 1)
        case "weekly":
            span = timedelta(weeks=rule.interval)
            return max(0, (now - start) // span - 1)
        case "monthly":
            months = (now.year - start.year) * 12 + (now.month - start.month)
            return max(0, months // rule.interval - 1)
        case _:
            return max(0, (now.year - start.year) // rule.interval - 1)


def _next_periodic(event: CalendarEvent, now: datetime) -> Optional[datetime]:
    rule = event.recurrence
    zone = _zone(rule.timezone)
    # Step in the rule's zone so a 09:00 event stays at 09:00 across DST.
    start = event.start_time.astimezone(zone)
    local_now = now.astimezone(zone)

    steps = _estimate_steps(rule, start, local_now)
    candidate = start + _period(rule, steps)
    while candidate <= local_now:
        steps += 1
        candidate = start + _period(rule, steps)

    if rule.count is not None and steps + 1 > rule.count:
        return None
    result = candidate.astimezone(timezone.utc)
    if rule.end_date is not None and result > rule.end_date:
        return None
    return result


def _next_cron(rule: RecurrenceRule, now: datetime) -> Optional[datetime]:
    if not rule.cron_expression:
        return None
    try:
        trigger = parse_cron(rule.cron_expression, rule.timezone)
    except ValueError as e:
        logger.warning("recurrence_invalid_cron", expression=rule.cron_expression, error=str(e))
        return None
    # CronTrigger returns times >= now; ask from just after now to keep it strict.
    fire = trigger.get_next_fire_time(None, now + timedelta(microseconds=1))
    if fire is None:
        return None
    result = fire.astimezone(timezone.utc)
    if rule.end_date is not None and result > rule.end_date:
        return None
    return result


def next_occurrence(event: CalendarEvent, now: Optional[datetime] = None) -> Optional[datetime]:
    """The first fire time of *event* strictly after *now*, or None if it is done."""
    now = now or datetime.now(timezone.utc)
    match event.recurrence.type:
        case "none":
            return event.start_time if event.start_time > now else None
        case "cron":
            return _next_cron(event.recurrence, now)
        case _:
            return _next_periodic(event, now)
