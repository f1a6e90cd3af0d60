from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from schedule_api.core.errors import NotFound
from schedule_api.core.handles import EventHandle, Handle, OccurrenceHandle
from schedule_api.core.time import format_local, parse_calendar_date
from schedule_api.metrics import record_expansion
from schedule_api.services.exclusions import load_exclusions
from schedule_api.services.recurrence import expand_series, occurrence_view
from schedule_api.services.schedule_store import EVENT_PREFIX, SERIES_PREFIX, ScheduleStore, event_sk, series_sk

logger = logging.getLogger(__name__)

_INT_FIELDS = ("interval", "duration_days")


def _coerce(item: Dict[str, Any]) -> Dict[str, Any]:
    # DynamoDB hands numbers back as Decimal.
    out = dict(item)
    for name in _INT_FIELDS:
        if out.get(name) is not None:
            out[name] = int(out[name])
    return out


def load_series(store: ScheduleStore, owner_sub: str, series_id: str) -> Dict[str, Any]:
    item = store.get(owner_sub, series_sk(series_id))
    if not item:
        raise NotFound("Event series not found")
    return _coerce(item)


def load_event(store: ScheduleStore, owner_sub: str, event_id: str) -> Dict[str, Any]:
    item = store.get(owner_sub, event_sk(event_id))
    if not item:
        raise NotFound("Event not found")
    return _coerce(item)


def list_series(store: ScheduleStore, owner_sub: str) -> List[Dict[str, Any]]:
    return [_coerce(item) for item in store.query_prefix(owner_sub, SERIES_PREFIX)]


def _stored_events(store: ScheduleStore, owner_sub: str) -> List[Dict[str, Any]]:
    return [_coerce(item) for item in store.query_prefix(owner_sub, EVENT_PREFIX)]


def _event_day(event: Dict[str, Any]) -> date:
    return parse_calendar_date(event.get("occurrence_date") or event["start_at"])


def detached_events(
    store: ScheduleStore,
    owner_sub: str,
    series_id: str,
    day: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Stored events tied to ``series_id``, optionally only those for ``day``."""
    return [
        event
        for event in _stored_events(store, owner_sub)
        if event.get("series_id") == series_id and (day is None or _event_day(event) == day)
    ]


def event_view(item: Dict[str, Any]) -> Dict[str, Any]:
    handle = EventHandle(event_id=item["event_id"])
    return {
        "id": item["event_id"],
        "handle": handle.as_dict(),
        "title": item.get("title", ""),
        "content": item.get("content", ""),
        "start_at": item.get("start_at"),
        "end_at": item.get("end_at"),
        "status": item.get("status") or "PENDING",
        "completed_at": item.get("completed_at"),
        "alert": item.get("alert", "none"),
        "series_id": item.get("series_id"),
        "occurrence_date": item.get("occurrence_date"),
        "is_exception": bool(item.get("is_exception", False)),
        "is_generated": False,
        "is_recurring": bool(item.get("series_id")),
        "creator_id": item.get("creator_id"),
        "department_id": item.get("department_id"),
        "office_id": item.get("office_id"),
        "division_id": item.get("division_id"),
        "created_at": item.get("created_at"),
        "updated_at": item.get("updated_at"),
    }


def series_view(series: Dict[str, Any]) -> Dict[str, Any]:
    keys = (
        "series_id", "title", "content", "frequency", "interval", "first_occurrence_date",
        "start_time", "end_time", "duration_days", "recurrence_end_date", "alert", "status",
        "completed_at", "creator_id", "department_id", "office_id", "division_id",
        "created_at", "updated_at",
    )
    return {key: series.get(key) for key in keys}


def list_events(
    store: ScheduleStore,
    owner_sub: str,
    window_start: datetime,
    window_end: datetime,
    horizon_days: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Every event of ``owner_sub`` in the window, sorted by start.

    Standalone rows, detached occurrences and virtual occurrences expanded
    from each series come out in the same shape.
    """
    lo, hi = format_local(window_start), format_local(window_end)
    stored = [
        event_view(event)
        for event in _stored_events(store, owner_sub)
        if (not event.get("series_id") or event.get("is_exception"))
        and lo <= (event.get("start_at") or "") <= hi
    ]

    first_day, last_day = window_start.date(), window_end.date()
    series_list = [
        series
        for series in list_series(store, owner_sub)
        if (not series.get("recurrence_end_date") or parse_calendar_date(series["recurrence_end_date"]) >= first_day)
        and parse_calendar_date(series["first_occurrence_date"]) <= last_day
    ]

    virtual: List[Dict[str, Any]] = []
    if series_list:
        exclusions = load_exclusions(store, owner_sub, [series["series_id"] for series in series_list])
        for series in series_list:
            virtual.extend(
                expand_series(
                    series,
                    first_day,
                    last_day,
                    exclusions.for_series(series["series_id"]),
                    horizon_days=horizon_days,
                )
            )

    record_expansion(len(virtual))
    events = stored + virtual
    events.sort(key=lambda event: event["start_at"] or "")
    logger.debug(
        "listed %d events (%d stored, %d virtual) for %s", len(events), len(stored), len(virtual), owner_sub,
    )
    return events


def get_event(store: ScheduleStore, owner_sub: str, handle: Handle) -> Dict[str, Any]:
    if not isinstance(handle, OccurrenceHandle):
        return event_view(load_event(store, owner_sub, handle.event_id))

    series = load_series(store, owner_sub, handle.series_id)
    view = occurrence_view(series, handle.occurrence_date)
    overrides = detached_events(store, owner_sub, handle.series_id, handle.occurrence_date)
    if overrides:
        view["status"] = overrides[0].get("status") or "PENDING"
        view["completed_at"] = overrides[0].get("completed_at")
    view.update(
        frequency=series.get("frequency"),
        interval=series.get("interval"),
        recurrence_end_date=series.get("recurrence_end_date"),
        first_occurrence_date=series.get("first_occurrence_date"),
    )
    return view
