"""Calendar service: stores events, arms APScheduler jobs, fires actions."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from hearth.ai.orchestrator import RunParams
from hearth.config import SchedulerConfig, SecurityConfig
from hearth.core.types import ConversationType
from hearth.exceptions import EventNotFoundError, SchedulerActionError
from hearth.log import bound_context, get_logger
from hearth.security.policy import resolve_security_context
from hearth.services.base import Service
from hearth.services.calendar_models import AgentTurnAction, CalendarEvent, SystemEventAction
from hearth.services.migration import migrate_legacy_jobs
from hearth.services.recurrence import next_occurrence
from hearth.storage.event_repo import EventRepository
from hearth.storage.models import utcnow

if TYPE_CHECKING:
    from hearth.ai.orchestrator import TurnOrchestrator
    from hearth.core.session import SessionManager

logger = get_logger(__name__)

RunnerLookup = Callable[[str], Optional["TurnOrchestrator"]]
SystemNotifier = Callable[[CalendarEvent, str], Awaitable[None]]

# Field names and their camelCase aliases, for patch documents.
_FIELD_NAMES = {
    (info.alias or name): name for name, info in CalendarEvent.model_fields.items()
} | {name: name for name in CalendarEvent.model_fields}
_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


class CalendarService(Service):
    """Owns every calendar event and the timer that fires it.

    Each enabled event with a future occurrence has exactly one DateTrigger
    job whose id is the event id. After a fire the next occurrence is
    recomputed and a new job is armed. Every mutation is persisted before
    the call returns.
    """

    def __init__(
        self,
        config: SchedulerConfig,
        repo: EventRepository,
        session_manager: SessionManager,
        security: SecurityConfig,
        default_agent_id: str = "main",
        runner_lookup: Optional[RunnerLookup] = None,
        notifier: Optional[SystemNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._config = config
        self._repo = repo
        self._sessions = session_manager
        self._security = security
        self._default_agent_id = default_agent_id
        self._runner_lookup = runner_lookup
        self._notifier = notifier
        self._clock = clock
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)
        self._events: dict[str, CalendarEvent] = {}
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()

    @property
    def service_name(self) -> str:
        return "calendar"

    def set_runner_lookup(self, runner_lookup: RunnerLookup) -> None:
        self._runner_lookup = runner_lookup

    def set_notifier(self, notifier: Optional[SystemNotifier]) -> None:
        self._notifier = notifier

    async def start(self) -> None:
        if self._config.legacy_jobs_path:
            await migrate_legacy_jobs(Path(self._config.legacy_jobs_path), self._repo, now=self._clock())
        await self.load()
        self._scheduler.start()
        logger.info("calendar_started", timezone=self._config.timezone, events=len(self._events))

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        logger.info("calendar_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    async def load(self) -> int:
        """Read stored events and arm the enabled ones. Missed fires are not replayed."""
        events = await self._repo.all()
        now = self._clock()
        async with self._lock:
            self._events = {event.id: event for event in events}
            for event in events:
                self._arm(event, now)
            await self._repo.save_many(events)
        logger.info("calendar_events_loaded", count=len(events), armed=len(self._scheduler.get_jobs()))
        return len(events)

    # -- surface -----------------------------------------------------------

    async def create(self, event_data: dict[str, Any] | CalendarEvent) -> str:
        if isinstance(event_data, dict):
            if not _has(event_data, "startTime", "start_time") or not event_data.get("action"):
                raise ValueError("event object must include startTime and action")
            event = CalendarEvent.model_validate(event_data)
        else:
            event = event_data

        now = self._clock()
        async with self._lock:
            if event.id in self._events:
                raise ValueError(f"Event {event.id} already exists")
            event = event.model_copy(update={"created_at": now, "last_triggered_at": None})
            self._events[event.id] = event
            self._arm(event, now)
            await self._repo.save(event)
        logger.info(
            "calendar_event_created",
            event_id=event.id,
            recurrence=event.recurrence.type,
            next_occurrence=_iso(event.next_occurrence_at),
        )
        return event.id

    def get(self, event_id: str) -> CalendarEvent:
        event = self._events.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def update(self, event_id: str, patch: dict[str, Any]) -> CalendarEvent:
        """Shallow-merge *patch* (snake_case or camelCase keys) and reschedule."""
        async with self._lock:
            current = self.get(event_id)
            changes = {}
            for key, value in patch.items():
                field = _FIELD_NAMES.get(key)
                if field is None:
                    raise ValueError(f"Unknown event field: {key}")
                if field not in _IMMUTABLE_FIELDS:
                    changes[field] = value
            data = current.model_dump()
            data.update(changes)
            data["next_occurrence_at"] = None
            event = CalendarEvent.model_validate(data)
            self._events[event_id] = event
            self._arm(event, self._clock())
            await self._repo.save(event)
        logger.info("calendar_event_updated", event_id=event_id, fields=sorted(changes))
        return event

    async def set_enabled(self, event_id: str, enabled: bool) -> CalendarEvent:
        return await self.update(event_id, {"enabled": enabled})

    async def delete(self, event_id: str) -> None:
        async with self._lock:
            self.get(event_id)
            self._disarm(event_id)
            del self._events[event_id]
            await self._repo.delete(event_id)
        logger.info("calendar_event_deleted", event_id=event_id)

    def list(
        self,
        upcoming: bool = True,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[CalendarEvent]:
        """Events sorted by next occurrence; *start*/*end* bound that occurrence."""
        now = self._clock()
        events = list(self._events.values())
        if upcoming:
            events = [e for e in events if e.next_occurrence_at and e.next_occurrence_at > now]
        if start is not None:
            events = [e for e in events if e.next_occurrence_at and e.next_occurrence_at >= start]
        if end is not None:
            events = [e for e in events if e.next_occurrence_at and e.next_occurrence_at <= end]
        events.sort(key=lambda e: (e.next_occurrence_at is None, e.next_occurrence_at or now))
        return events

    async def trigger(self, event_id: str) -> CalendarEvent:
        """Fire the event now, whether or not it is enabled or due."""
        self.get(event_id)
        await self._fire(event_id, forced=True)
        return self.get(event_id)

    def trigger_in_background(self, event_id: str) -> asyncio.Task:
        """Fire the event on its own task; the caller does not wait for the action."""
        self.get(event_id)
        task = asyncio.create_task(self._fire(event_id, forced=True), name=f"calendar-trigger-{event_id}")
        self._background.add(task)
        task.add_done_callback(self._background_done)
        logger.info("calendar_trigger_scheduled", event_id=event_id)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("calendar_trigger_failed", task=task.get_name(), error=str(error), exc_info=error)

    def status(self) -> dict[str, Any]:
        now = self._clock()
        events = list(self._events.values())
        return {
            "running": self._scheduler.running,
            "eventsCount": len(events),
            "activeEvents": sum(1 for e in events if e.enabled),
            "upcomingEvents": sum(
                1 for e in events if e.enabled and e.next_occurrence_at and e.next_occurrence_at > now
            ),
            "scheduledJobs": len(self._scheduler.get_jobs()),
        }

    # -- scheduling --------------------------------------------------------

    def _arm(self, event: CalendarEvent, now: datetime) -> None:
        self._disarm(event.id)
        if not event.enabled:
            event.next_occurrence_at = None
            return
        event.next_occurrence_at = next_occurrence(event, now)
        if event.next_occurrence_at is None:
            return
        self._scheduler.add_job(
            self._fire,
            DateTrigger(run_date=event.next_occurrence_at),
            id=event.id,
            name=event.title,
            args=[event.id],
            replace_existing=True,
            misfire_grace_time=60,
        )

    def _disarm(self, event_id: str) -> None:
        try:
            self._scheduler.remove_job(event_id)
        except JobLookupError:
            pass

    async def _fire(self, event_id: str, forced: bool = False) -> None:
        event = self._events.get(event_id)
        if event is None:
            logger.warning("calendar_fire_unknown_event", event_id=event_id)
            return
        if not event.enabled and not forced:
            logger.info("calendar_fire_skipped_disabled", event_id=event_id)
            return

        with bound_context(event_id=event_id):
            logger.info("calendar_event_firing", title=event.title, forced=forced)
            fired_at = self._clock()
            await self._run_action(event)

            # The action may have updated or deleted the event; re-arm what is stored now.
            async with self._lock:
                current = self._events.get(event_id)
                if current is None:
                    logger.info("calendar_event_removed_during_fire")
                    return
                current.last_triggered_at = fired_at
                self._arm(current, self._clock())
                await self._repo.save(current)
            logger.info("calendar_event_fired", next_occurrence=_iso(current.next_occurrence_at))

    async def _run_action(self, event: CalendarEvent) -> None:
        action = event.action
        try:
            if isinstance(action, SystemEventAction):
                await self._system_event(event, action)
            elif isinstance(action, AgentTurnAction):
                await self._agent_turn(event, action)
        except SchedulerActionError as e:
            logger.error("calendar_action_failed", error=str(e), cause=repr(e.__cause__))

    async def _system_event(self, event: CalendarEvent, action: SystemEventAction) -> None:
        logger.info("calendar_system_event", text=action.text)
        if self._notifier is None:
            return
        try:
            await self._notifier(event, action.text)
        except Exception as e:
            raise SchedulerActionError(f"Notifier failed for event {event.id}: {e}") from e

    async def _agent_turn(self, event: CalendarEvent, action: AgentTurnAction) -> None:
        agent_id = action.agent_id or self._default_agent_id
        runner = self._runner_lookup(agent_id) if self._runner_lookup else None
        if runner is None:
            raise SchedulerActionError(f"No agent runtime available for agent {agent_id}")

        try:
            if action.session_target == "isolated":
                conversation = await self._sessions.create_isolated(agent_id, f"cron-{event.id}")
            else:
                conversation = await self._sessions.get_or_create(agent_id, ConversationType.MAIN)
            security = resolve_security_context(self._security, conversation.id, conversation.type, agent_id)
            params = RunParams(
                conversation_id=conversation.id,
                message=action.full_message(),
                security_context=security,
            )
            logger.info(
                "calendar_agent_turn_started",
                agent_id=agent_id,
                conversation_id=conversation.id,
                session_target=action.session_target,
                source=action.session_id_source,
            )
            result = await asyncio.wait_for(runner.run(params), timeout=self._config.agent_turn_timeout)
        except asyncio.TimeoutError as e:
            raise SchedulerActionError(
                f"Agent turn for event {event.id} timed out after {self._config.agent_turn_timeout}s"
            ) from e
        except Exception as e:
            raise SchedulerActionError(f"Agent turn for event {event.id} failed: {e}") from e

        logger.info(
            "calendar_agent_turn_completed",
            run_id=result.run_id,
            rounds=result.rounds,
            outcome=result.outcome.value,
            response_chars=len(result.response or ""),
        )


def _has(data: dict[str, Any], *keys: str) -> bool:
    return any(data.get(key) not in (None, "") for key in keys)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
