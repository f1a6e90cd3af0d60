from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Request

from schedule_api.auth.deps import require_owner
from schedule_api.core.errors import InvalidTimeRange
from schedule_api.core.handles import Handle, OccurrenceHandle, parse_handle
from schedule_api.core.time import parse_calendar_date, parse_window_bound
from schedule_api.metrics import record_mutation
from schedule_api.models import (
    CompleteIn,
    EventCreateIn,
    EventOut,
    EventUpdateIn,
    MutationOut,
    ReminderRunOut,
)
from schedule_api.services import schedule as schedule_service
from schedule_api.services.notifications import audit_event, notify
from schedule_api.services.org import get_org_attribution
from schedule_api.services.reminders import check_upcoming_events
from schedule_api.services.schedule import MutationResult
from schedule_api.services.schedule_query import event_view, get_event, list_events, series_view
from schedule_api.services.schedule_store import ScheduleStore, get_store

router = APIRouter(prefix="/ui/schedule", tags=["schedule"])

_NOTIFICATION_TYPES = {
    "create": "EVENT_CREATED",
    "update": "EVENT_UPDATED",
    "delete": "EVENT_DELETED",
    "complete": "EVENT_COMPLETED",
    "uncomplete": "EVENT_UPDATED",
}

_NOTIFICATION_VERBS = {
    "create": "created",
    "update": "updated",
    "delete": "deleted",
    "complete": "completed",
    "uncomplete": "reopened",
}


def _occurrence_handle(series_id: str, occurrence_date: str) -> OccurrenceHandle:
    return OccurrenceHandle(series_id=series_id, occurrence_date=parse_calendar_date(occurrence_date))


def _related_id(result: MutationResult) -> Optional[str]:
    if result.event:
        return result.event.get("event_id")
    if result.series:
        return result.series.get("series_id")
    return None


def _mutation_out(result: MutationResult) -> MutationOut:
    return MutationOut(
        action=result.action,
        scope=result.scope,
        event=EventOut(**event_view(result.event)) if result.event else None,
        series=series_view(result.series) if result.series else None,
        occurrence_date=result.occurrence_date,
        affected_events=len(result.affected_events),
    )


def _committed(req: Request, user_sub: str, result: MutationResult) -> MutationOut:
    """Bookkeeping after a mutation has been written."""
    record_mutation(result.action, result.scope)
    related_id = _related_id(result)
    audit_event(
        f"schedule_{result.action}",
        user_sub,
        req,
        outcome="success",
        scope=result.scope,
        related_id=related_id,
        occurrence_date=result.occurrence_date,
    )
    what = "Series" if result.scope in ("all", "series") else "Event"
    notify(
        user_sub,
        _NOTIFICATION_TYPES[result.action],
        f"{what} {_NOTIFICATION_VERBS[result.action]}: {result.title}",
        f"\"{result.title}\" was {_NOTIFICATION_VERBS[result.action]}"
        + (f" for {result.occurrence_date}." if result.occurrence_date else "."),
        related_event_id=related_id,
        data={"scope": result.scope, "occurrence_date": result.occurrence_date},
    )
    return _mutation_out(result)


# -- events ------------------------------------------------------------------

@router.get("/events", response_model=List[EventOut])
async def list_schedule(
    start: str,
    end: str,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    window_start = parse_window_bound(start, end=False)
    window_end = parse_window_bound(end, end=True)
    if window_end < window_start:
        raise InvalidTimeRange("end must not be before start")
    return list_events(store, ctx["user_sub"], window_start, window_end)


@router.post("/events", response_model=MutationOut)
async def create_schedule_event(
    req: Request,
    body: EventCreateIn,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    user_sub = ctx["user_sub"]
    result = schedule_service.create_event(store, user_sub, body.model_dump(), org=get_org_attribution(user_sub))
    return _committed(req, user_sub, result)


def _update(req: Request, store: ScheduleStore, user_sub: str, handle: Handle, body: EventUpdateIn) -> MutationOut:
    result = schedule_service.update_event(store, user_sub, handle, body.changed_fields(), scope=body.scope)
    return _committed(req, user_sub, result)


def _delete(req: Request, store: ScheduleStore, user_sub: str, handle: Handle, scope: str) -> MutationOut:
    result = schedule_service.delete_event(store, user_sub, handle, scope=scope)
    return _committed(req, user_sub, result)


def _complete(req: Request, store: ScheduleStore, user_sub: str, handle: Handle, body: Optional[CompleteIn]) -> MutationOut:
    scope = body.scope if body else "this"
    result = schedule_service.complete_event(store, user_sub, handle, scope=scope)
    return _committed(req, user_sub, result)


def _uncomplete(req: Request, store: ScheduleStore, user_sub: str, handle: Handle) -> MutationOut:
    result = schedule_service.uncomplete_event(store, user_sub, handle)
    return _committed(req, user_sub, result)


@router.get("/events/{ref}", response_model=EventOut)
async def get_schedule_event(
    ref: str,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return get_event(store, ctx["user_sub"], parse_handle(ref))


@router.patch("/events/{ref}", response_model=MutationOut)
async def update_schedule_event(
    req: Request,
    ref: str,
    body: EventUpdateIn,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _update(req, store, ctx["user_sub"], parse_handle(ref), body)


@router.delete("/events/{ref}", response_model=MutationOut)
async def delete_schedule_event(
    req: Request,
    ref: str,
    scope: str = "single",
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _delete(req, store, ctx["user_sub"], parse_handle(ref), scope)


@router.post("/events/{ref}/complete", response_model=MutationOut)
async def complete_schedule_event(
    req: Request,
    ref: str,
    body: Optional[CompleteIn] = None,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _complete(req, store, ctx["user_sub"], parse_handle(ref), body)


@router.post("/events/{ref}/uncomplete", response_model=MutationOut)
async def uncomplete_schedule_event(
    req: Request,
    ref: str,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _uncomplete(req, store, ctx["user_sub"], parse_handle(ref))


# -- occurrences addressed by series and date ---------------------------------

@router.get("/series/{series_id}/occurrences/{occurrence_date}", response_model=EventOut)
async def get_occurrence(
    series_id: str,
    occurrence_date: str,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return get_event(store, ctx["user_sub"], _occurrence_handle(series_id, occurrence_date))


@router.patch("/series/{series_id}/occurrences/{occurrence_date}", response_model=MutationOut)
async def update_occurrence(
    req: Request,
    series_id: str,
    occurrence_date: str,
    body: EventUpdateIn,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _update(req, store, ctx["user_sub"], _occurrence_handle(series_id, occurrence_date), body)


@router.delete("/series/{series_id}/occurrences/{occurrence_date}", response_model=MutationOut)
async def delete_occurrence(
    req: Request,
    series_id: str,
    occurrence_date: str,
    scope: str = "single",
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _delete(req, store, ctx["user_sub"], _occurrence_handle(series_id, occurrence_date), scope)


@router.post("/series/{series_id}/occurrences/{occurrence_date}/complete", response_model=MutationOut)
async def complete_occurrence(
    req: Request,
    series_id: str,
    occurrence_date: str,
    body: Optional[CompleteIn] = None,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _complete(req, store, ctx["user_sub"], _occurrence_handle(series_id, occurrence_date), body)


@router.post("/series/{series_id}/occurrences/{occurrence_date}/uncomplete", response_model=MutationOut)
async def uncomplete_occurrence(
    req: Request,
    series_id: str,
    occurrence_date: str,
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return _uncomplete(req, store, ctx["user_sub"], _occurrence_handle(series_id, occurrence_date))


# -- reminders -----------------------------------------------------------------

@router.post("/reminders/check", response_model=ReminderRunOut)
async def run_reminder_check(
    ctx: Dict[str, str] = Depends(require_owner),
    store: ScheduleStore = Depends(get_store),
):
    return ReminderRunOut(created=check_upcoming_events(store, ctx["user_sub"]))
