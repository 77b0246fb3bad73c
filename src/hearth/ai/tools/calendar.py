"""Calendar tool: the model's interface to CalendarService."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from hearth.ai.tools.base import Tool, ToolExecutionContext, ToolResult
from hearth.core.types import ToolName
from hearth.exceptions import EventNotFoundError
from hearth.security.policy import SecurityContext
from hearth.services.calendar_models import AgentTurnAction
from hearth.services.scheduler import CalendarService

ACTION_ALIASES = {"add": "create", "remove": "delete", "run": "trigger"}
ACTIONS = ("status", "list", "create", "get", "update", "delete", "trigger", "enable", "disable")
_NEEDS_ID = frozenset({"get", "update", "delete", "trigger", "enable", "disable"})


def _parse_time(value: Any) -> Optional[datetime]:
    """Millisecond epoch or ISO-8601 string; naive values are UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class CalendarTool(Tool):
    def __init__(self, calendar: CalendarService):
        self._calendar = calendar

    @property
    def name(self) -> str:
        return ToolName.CALENDAR.value

    @property
    def description(self) -> str:
        return (
            "Manage calendar events and scheduled tasks: reminders (systemEvent) or "
            "agent turns that run a prompt later (agentTurn). Recurrence may be none, "
            "daily, weekly, monthly, yearly or cron. "
            f"Actions: {', '.join(ACTIONS)}. Legacy names add/remove/run are accepted."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {"type": "string", "description": "One of: " + ", ".join(ACTIONS)},
                "eventId": {"type": "string", "description": "Event id (get/update/delete/trigger/enable/disable)"},
                "jobId": {"type": "string", "description": "Legacy alias of eventId"},
                "event": {
                    "type": "object",
                    "description": (
                        "Event for create: {title, startTime (ISO or ms), endTime?, "
                        "recurrence: {type, interval?, endDate?, count?, cronExpression?, timezone?}, "
                        "action: {type: 'systemEvent', text} | "
                        "{type: 'agentTurn', actionMessage, contextMessage?, sessionTarget: 'main'|'isolated'}, "
                        "enabled?}"
                    ),
                },
                "job": {"type": "object", "description": "Legacy alias of event"},
                "patch": {"type": "object", "description": "Fields to change (update)"},
                "upcoming": {"type": "boolean", "description": "Only future events (list, default true)"},
                "from": {"type": ["string", "number"], "description": "Earliest next occurrence (list)"},
                "to": {"type": ["string", "number"], "description": "Latest next occurrence (list)"},
            },
            "required": ["action"],
        }

    async def execute(
        self,
        params: dict[str, Any],
        security: SecurityContext,
        context: ToolExecutionContext,
    ) -> ToolResult:
        action = params.get("action")
        if not isinstance(action, str):
            return ToolResult.fail("action must be a string")
        action = ACTION_ALIASES.get(action, action)
        event_id = params.get("eventId") or params.get("jobId")
        if action in _NEEDS_ID and not event_id:
            return ToolResult.fail(f"eventId is required for {action} action")

        try:
            return await self._dispatch(action, event_id, params, context)
        except (EventNotFoundError, ValueError) as e:
            return ToolResult.fail(str(e))

    async def _dispatch(
        self,
        action: str,
        event_id: Optional[str],
        params: dict[str, Any],
        context: ToolExecutionContext,
    ) -> ToolResult:
        calendar = self._calendar
        match action:
            case "status":
                return ToolResult.ok(calendar.status())
            case "list":
                events = calendar.list(
                    upcoming=params.get("upcoming", True) is not False,
                    start=_parse_time(params.get("from")),
                    end=_parse_time(params.get("to")),
                )
                return ToolResult.ok({"events": [e.to_document() for e in events]})
            case "create":
                data = params.get("event") or params.get("job")
                if not isinstance(data, dict):
                    return ToolResult.fail("event object must include startTime and action")
                new_id = await calendar.create(self._with_source(data, context))
                return ToolResult.ok({"eventId": new_id, "event": calendar.get(new_id).to_document()})
            case "get":
                return ToolResult.ok({"event": calendar.get(event_id).to_document()})
            case "update":
                patch = params.get("patch")
                if not isinstance(patch, dict) or not patch:
                    return ToolResult.fail("patch is required for update action")
                event = await calendar.update(event_id, patch)
                return ToolResult.ok({"event": event.to_document()})
            case "enable" | "disable":
                event = await calendar.set_enabled(event_id, action == "enable")
                return ToolResult.ok({"event": event.to_document()})
            case "delete":
                await calendar.delete(event_id)
                return ToolResult.ok(f"Event {event_id} deleted")
            case "trigger":
                # An agent turn may target the calling conversation, whose turn lock is held here.
                if isinstance(calendar.get(event_id).action, AgentTurnAction):
                    calendar.trigger_in_background(event_id)
                    return ToolResult.ok(
                        {"triggered": True, "background": True, "event": calendar.get(event_id).to_document()}
                    )
                event = await calendar.trigger(event_id)
                return ToolResult.ok({"triggered": True, "event": event.to_document()})
            case _:
                return ToolResult.fail(f"unknown action '{action}'. Valid actions: {', '.join(ACTIONS)}")

    @staticmethod
    def _with_source(data: dict[str, Any], context: ToolExecutionContext) -> dict[str, Any]:
        """Tag agent turns with the conversation and agent that created them."""
        action = data.get("action")
        if not isinstance(action, dict) or action.get("type") != "agentTurn":
            return data
        action = dict(action)
        if not (action.get("sessionIdSource") or action.get("session_id_source")):
            action["sessionIdSource"] = context.conversation_id
        if not (action.get("agentId") or action.get("agent_id")):
            action["agentId"] = context.agent_id
        return {**data, "action": action}
