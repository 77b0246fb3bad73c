"""One-time import of legacy ``jobs.json`` cron jobs as calendar events."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from hearth.log import get_logger
from hearth.services.calendar_models import (
    AgentTurnAction,
    CalendarEvent,
    RecurrenceRule,
    SystemEventAction,
)
from hearth.storage.event_repo import EventRepository
from hearth.storage.models import utcnow

logger = get_logger(__name__)

MIGRATED_SUFFIX = ".migrated"
DEFAULT_EVERY_MS = 60_000


def _from_ms(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)


# Cron steps that divide their unit evenly, so the period stays constant.
_CRON_STEPS = (
    [(step, f"*/{step} * * * * *") for step in (1, 2, 3, 4, 5, 6, 10, 12, 15, 20, 30)]
    + [(step * 60, f"0 */{step} * * * *") for step in (1, 2, 3, 4, 5, 6, 10, 12, 15, 20, 30)]
    + [(step * 3600, f"0 0 */{step} * * *") for step in (1, 2, 3, 4, 6, 8, 12)]
)


def every_to_recurrence(every_ms: int, tz: Optional[str] = None) -> RecurrenceRule:
    """Express a fixed interval as a cron step (seconds field first) or a daily rule.

    Intervals no rule can hold exactly map to the nearest one that can,
    preferring the shorter period on a tie.
    """
    seconds = max(1, int(every_ms) // 1000)
    days = max(1, round(seconds / 86400))
    candidates = [*_CRON_STEPS, (days * 86400, None)]
    period, expression = min(candidates, key=lambda candidate: abs(candidate[0] - seconds))
    if period != seconds:
        logger.warning("legacy_job_lossy_interval", every_seconds=seconds, migrated_seconds=period)
    if expression is None:
        return RecurrenceRule(type="daily", interval=days, timezone=tz)
    return RecurrenceRule(type="cron", cron_expression=expression, timezone=tz)


def legacy_job_to_event(job: dict[str, Any], now: Optional[datetime] = None) -> CalendarEvent:
    now = now or utcnow()
    schedule = job.get("schedule") or {}
    payload = job.get("payload") or {}
    kind = schedule.get("kind")
    next_run = _from_ms(job.get("nextRunAt"))

    if kind == "at":
        start = _from_ms(schedule.get("atMs")) or now
        recurrence = RecurrenceRule(type="none")
        next_run = next_run or start
    elif kind == "every":
        start = now
        every_ms = schedule.get("everyMs") or DEFAULT_EVERY_MS
        recurrence = every_to_recurrence(every_ms, schedule.get("tz"))
    elif kind == "cron":
        start = now
        recurrence = RecurrenceRule(
            type="cron",
            cron_expression=schedule.get("expr") or "0 * * * *",
            timezone=schedule.get("tz"),
        )
    else:
        raise ValueError(f"Unknown legacy schedule kind: {kind!r}")

    if payload.get("kind") == "agentTurn":
        action: AgentTurnAction | SystemEventAction = AgentTurnAction(
            message=payload.get("message") or payload.get("text") or "",
            session_target=job.get("sessionTarget") or "isolated",
        )
    else:
        action = SystemEventAction(text=payload.get("text") or payload.get("message") or "")

    return CalendarEvent(
        id=str(job["id"]),
        title=job.get("name") or "Untitled Event",
        start_time=start,
        recurrence=recurrence,
        action=action,
        enabled=job.get("enabled", True),
        created_at=now,
        last_triggered_at=_from_ms(job.get("lastRunAt")),
        next_occurrence_at=next_run,
    )


async def migrate_legacy_jobs(
    path: Path | str,
    repo: EventRepository,
    now: Optional[datetime] = None,
) -> int:
    """Import *path* into an empty event store and rename it to ``*.migrated``.

    Returns the number of imported events. Does nothing when the file is
    missing or events already exist.
    """
    path = Path(path)
    if not path.exists():
        return 0
    if await repo.count() > 0:
        logger.info("legacy_jobs_skipped", path=str(path), reason="events_exist")
        return 0

    raw = json.loads(path.read_text(encoding="utf-8"))
    jobs = raw.get("jobs", []) if isinstance(raw, dict) else raw

    events = []
    for job in jobs:
        try:
            events.append(legacy_job_to_event(job, now))
        except (KeyError, ValueError, ValidationError) as e:
            logger.warning("legacy_job_invalid", job_id=job.get("id"), error=str(e))

    await repo.save_many(events)
    path.rename(path.with_name(path.name + MIGRATED_SUFFIX))
    logger.info("legacy_jobs_migrated", path=str(path), count=len(events), skipped=len(jobs) - len(events))
    return len(events)
