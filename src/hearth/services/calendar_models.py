"""Calendar event, recurrence rule and action models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_time(value):
    # Millisecond epoch timestamps are accepted alongside ISO strings.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


RecurrenceType = Literal["none", "daily", "weekly", "monthly", "yearly", "cron"]


class RecurrenceRule(BaseModel):
    type: RecurrenceType = "none"
    interval: int = Field(default=1, ge=1)
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    count: Optional[int] = Field(default=None, ge=1)
    cron_expression: Optional[str] = Field(default=None, alias="cronExpression")
    timezone: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("end_date", mode="before")
    @classmethod
    def _parse_end(cls, v):
        return _coerce_time(v)

    @field_validator("end_date")
    @classmethod
    def _utc_end(cls, v):
        return _as_utc(v)

    @property
    def is_recurring(self) -> bool:
        return self.type != "none"


class SystemEventAction(BaseModel):
    type: Literal["systemEvent"] = "systemEvent"
    text: str


class AgentTurnAction(BaseModel):
    type: Literal["agentTurn"] = "agentTurn"
    message: str = Field(alias="actionMessage")
    context_message: Optional[str] = Field(default=None, alias="contextMessage")
    session_target: Literal["main", "isolated"] = Field(default="isolated", alias="sessionTarget")
    agent_id: Optional[str] = Field(default=None, alias="agentId")
    session_id_source: Optional[str] = Field(default=None, alias="sessionIdSource")

    model_config = {"populate_by_name": True}

    def full_message(self) -> str:
        if self.context_message:
            return f"{self.context_message}\n\n{self.message}"
        return self.message


EventAction = Annotated[Union[SystemEventAction, AgentTurnAction], Field(discriminator="type")]


class CalendarEvent(BaseModel):
    id: str = Field(default_factory=lambda: f"event-{uuid.uuid4().hex[:12]}")
    title: str = "Untitled Event"
    start_time: datetime = Field(alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    recurrence: RecurrenceRule = Field(default_factory=RecurrenceRule)
    action: EventAction
    enabled: bool = True
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    last_triggered_at: Optional[datetime] = Field(default=None, alias="lastTriggeredAt")
    next_occurrence_at: Optional[datetime] = Field(default=None, alias="nextOccurrenceAt")

    model_config = {"populate_by_name": True}

    @field_validator(
        "start_time", "end_time", "created_at", "last_triggered_at", "next_occurrence_at",
        mode="before",
    )
    @classmethod
    def _parse_times(cls, v):
        return _coerce_time(v)

    @field_validator(
        "start_time", "end_time", "created_at", "last_triggered_at", "next_occurrence_at"
    )
    @classmethod
    def _utc_times(cls, v):
        return _as_utc(v)

    def to_document(self) -> dict:
        """Camel-cased JSON-safe document, the stored and tool-facing shape."""
        return self.model_dump(mode="json", by_alias=True)
