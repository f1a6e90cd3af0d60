from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Status = Literal["PENDING", "DONE"]


class EventCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(default="", max_length=5000)
    start_at: str = Field(validation_alias=AliasChoices("start_at", "startAt"))
    end_at: str = Field(validation_alias=AliasChoices("end_at", "endAt"))
    status: Optional[Status] = None
    alert: str = Field(default="none", max_length=32)
    is_recurring: bool = Field(default=False, validation_alias=AliasChoices("is_recurring", "isRecurring"))
    frequency: Optional[str] = Field(
        default=None,
        max_length=16,
        validation_alias=AliasChoices("frequency", "recurrence_type", "recurrenceType"),
    )
    interval: int = Field(
        default=1,
        validation_alias=AliasChoices("interval", "recurrence_interval", "recurrenceInterval"),
    )
    recurrence_end_date: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("recurrence_end_date", "recurrenceEndDate"),
    )


class EventUpdateIn(BaseModel):
    # Only the fields a client actually sends are applied (exclude_unset).
    model_config = ConfigDict(populate_by_name=True)
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, max_length=5000)
    start_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("start_at", "startAt"))
    end_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("end_at", "endAt"))
    status: Optional[Status] = None
    alert: Optional[str] = Field(default=None, max_length=32)
    frequency: Optional[str] = Field(
        default=None,
        max_length=16,
        validation_alias=AliasChoices("frequency", "recurrence_type", "recurrenceType"),
    )
    interval: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("interval", "recurrence_interval", "recurrenceInterval"),
    )
    recurrence_end_date: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("recurrence_end_date", "recurrenceEndDate"),
    )
    occurrence_date: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("occurrence_date", "occurrenceDate"),
    )
    scope: Literal["this", "all"] = Field(default="this", validation_alias=AliasChoices("scope", "editType", "edit_type"))

    def changed_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"scope"})


class CompleteIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    scope: Literal["this", "all"] = Field(default="this", validation_alias=AliasChoices("scope", "completeType"))


class EventHandleOut(BaseModel):
    kind: Literal["standalone", "virtual"]
    event_id: Optional[str] = None
    series_id: Optional[str] = None
    occurrence_date: Optional[str] = None


class EventOut(BaseModel):
    id: str
    handle: EventHandleOut
    title: str
    content: str = ""
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    status: Status = "PENDING"
    completed_at: Optional[str] = None
    alert: str = "none"
    series_id: Optional[str] = None
    occurrence_date: Optional[str] = None
    is_exception: bool = False
    is_generated: bool = False
    is_recurring: bool = False
    creator_id: Optional[str] = None
    department_id: Optional[str] = None
    office_id: Optional[str] = None
    division_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # Filled for single-occurrence lookups only.
    frequency: Optional[str] = None
    interval: Optional[int] = None
    recurrence_end_date: Optional[str] = None
    first_occurrence_date: Optional[str] = None


class SeriesOut(BaseModel):
    series_id: str
    title: str
    content: str = ""
    frequency: str
    interval: int
    first_occurrence_date: str
    start_time: str
    end_time: str
    duration_days: int = 0
    recurrence_end_date: Optional[str] = None
    alert: str = "none"
    status: Status = "PENDING"
    completed_at: Optional[str] = None
    creator_id: Optional[str] = None
    department_id: Optional[str] = None
    office_id: Optional[str] = None
    division_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MutationOut(BaseModel):
    action: str
    scope: str
    event: Optional[EventOut] = None
    series: Optional[SeriesOut] = None
    occurrence_date: Optional[str] = None
    affected_events: int = 0


class ReminderRunOut(BaseModel):
    created: int


class NotificationOut(BaseModel):
    notification_id: str
    ts: int
    type: str
    title: str
    message: str
    related_event_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    read_at: int = 0


class NotificationPageOut(BaseModel):
    notifications: List[NotificationOut]
    next_cursor: Optional[str] = None


class MarkReadReq(BaseModel):
    notification_ids: List[str] = Field(default_factory=list, max_length=200)
