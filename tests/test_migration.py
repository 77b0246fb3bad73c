"""Tests for hearth.services.migration: legacy jobs.json import."""

import json
from datetime import datetime, timezone

import pytest

from hearth.services.calendar_models import AgentTurnAction, CalendarEvent, SystemEventAction
from hearth.services.migration import every_to_recurrence, legacy_job_to_event, migrate_legacy_jobs

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


@pytest.mark.parametrize(
    "every_ms,rule_type,expression,interval",
    [
        (30_000, "cron", "*/30 * * * * *", 1),
        (300_000, "cron", "0 */5 * * * *", 1),
        (7_200_000, "cron", "0 0 */2 * * *", 1),
        (172_800_000, "daily", None, 2),
        (500, "cron", "*/1 * * * * *", 1),
        (7_000, "cron", "*/6 * * * * *", 1),
        (90_000, "cron", "0 */1 * * * *", 1),
        (2_700_000, "cron", "0 */30 * * * *", 1),
        (5_400_000, "cron", "0 0 */1 * * *", 1),
        (18_000_000, "cron", "0 0 */4 * * *", 1),
        (72_000_000, "daily", None, 1),
        (86_400_000, "daily", None, 1),
    ],
)
def test_every_to_recurrence(every_ms, rule_type, expression, interval):
    rule = every_to_recurrence(every_ms, "Europe/Berlin")
    assert rule.type == rule_type
    assert rule.cron_expression == expression
    assert rule.interval == interval
    assert rule.timezone == "Europe/Berlin"


def test_at_job_becomes_one_shot():
    job = {
        "id": "j1",
        "name": "Dentist",
        "schedule": {"kind": "at", "atMs": NOW_MS + 3_600_000},
        "payload": {"kind": "systemEvent", "text": "dentist at 2"},
    }
    event = legacy_job_to_event(job, NOW)
    assert event.id == "j1"
    assert event.title == "Dentist"
    assert event.recurrence.type == "none"
    assert event.start_time == datetime(2030, 1, 1, 13, tzinfo=timezone.utc)
    assert event.next_occurrence_at == event.start_time
    assert isinstance(event.action, SystemEventAction)
    assert event.action.text == "dentist at 2"


def test_every_job_with_agent_turn():
    job = {
        "id": "j2",
        "schedule": {"kind": "every", "everyMs": 900_000},
        "payload": {"kind": "agentTurn", "message": "check the build"},
        "sessionTarget": "main",
        "enabled": False,
        "lastRunAt": NOW_MS - 60_000,
    }
    event = legacy_job_to_event(job, NOW)
    assert event.title == "Untitled Event"
    assert event.recurrence.cron_expression == "0 */15 * * * *"
    assert isinstance(event.action, AgentTurnAction)
    assert event.action.message == "check the build"
    assert event.action.session_target == "main"
    assert event.enabled is False
    assert event.last_triggered_at == datetime(2030, 1, 1, 11, 59, tzinfo=timezone.utc)


def test_cron_job_keeps_expression_and_timezone():
    job = {
        "id": "j3",
        "schedule": {"kind": "cron", "expr": "0 8 * * 1-5", "tz": "Asia/Tokyo"},
        "payload": {"kind": "agentTurn", "text": "morning brief"},
    }
    event = legacy_job_to_event(job, NOW)
    assert event.recurrence.type == "cron"
    assert event.recurrence.cron_expression == "0 8 * * 1-5"
    assert event.recurrence.timezone == "Asia/Tokyo"
    assert event.action.session_target == "isolated"


def test_unknown_kind_rejected():
    with pytest.raises(ValueError, match="Unknown legacy schedule kind"):
        legacy_job_to_event({"id": "x", "schedule": {"kind": "sometimes"}}, NOW)


async def test_migrate_imports_and_renames(event_repo, tmp_path):
    path = tmp_path / "jobs.json"
    path.write_text(json.dumps({
        "version": 1,
        "jobs": [
            {"id": "a", "schedule": {"kind": "at", "atMs": NOW_MS}, "payload": {"text": "one"}},
            {"id": "b", "schedule": {"kind": "every", "everyMs": 60_000}, "payload": {"text": "two"}},
            {"id": "c", "schedule": {"kind": "bogus"}},
            {"schedule": {"kind": "at"}},
        ],
    }))

    count = await migrate_legacy_jobs(path, event_repo, now=NOW)

    assert count == 2
    assert not path.exists()
    assert (tmp_path / "jobs.json.migrated").exists()
    assert sorted(e.id for e in await event_repo.all()) == ["a", "b"]


async def test_migrate_accepts_bare_list(event_repo, tmp_path):
    path = tmp_path / "jobs.json"
    path.write_text(json.dumps([
        {"id": "only", "schedule": {"kind": "cron", "expr": "0 9 * * *"}, "payload": {"text": "hi"}},
    ]))
    assert await migrate_legacy_jobs(path, event_repo, now=NOW) == 1


async def test_migrate_skips_when_events_exist(event_repo, tmp_path):
    await event_repo.save(
        CalendarEvent(id="existing", start_time=NOW, action={"type": "systemEvent", "text": "x"})
    )
    path = tmp_path / "jobs.json"
    path.write_text(json.dumps({"jobs": [{"id": "a", "schedule": {"kind": "at"}, "payload": {}}]}))

    assert await migrate_legacy_jobs(path, event_repo, now=NOW) == 0
    assert path.exists()
    assert [e.id for e in await event_repo.all()] == ["existing"]


async def test_migrate_missing_file(event_repo, tmp_path):
    assert await migrate_legacy_jobs(tmp_path / "absent.json", event_repo) == 0
