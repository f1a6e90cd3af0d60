"""Create / update / delete / complete / uncomplete for events and series.

A target is either a stored event (``EventHandle``) or one occurrence of a
series (``OccurrenceHandle``). Acting on a single occurrence detaches it:
a concrete event row plus an exception record for that date, written in
one transaction. Acting on the whole series rewrites the series row.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from schedule_api.core.errors import InvalidTimeRange
from schedule_api.core.handles import Handle, OccurrenceHandle
from schedule_api.core.time import (
    format_local,
    format_wall_time,
    local_now,
    parse_calendar_date,
    parse_local_datetime,
    parse_wall_time,
)
from schedule_api.services.exclusions import add_exception, exception_item, exception_key
from schedule_api.services.org import ORG_FIELDS
from schedule_api.services.recurrence import occurrence_bounds, validate_rule
from schedule_api.services.schedule_query import detached_events, load_event, load_series
from schedule_api.services.schedule_store import (
    MAX_TRANSACTION_ITEMS,
    ScheduleStore,
    event_sk,
    exception_sk,
    series_sk,
)

logger = logging.getLogger(__name__)

PENDING = "PENDING"
DONE = "DONE"
STATUSES = (PENDING, DONE)

UPDATE_SCOPES = ("this", "all")
DELETE_SCOPES = ("single", "series")


@dataclass(frozen=True)
class SeriesPatch:
    """Fields to change on a series; ``None`` means "leave as is"."""

    title: Optional[str] = None
    content: Optional[str] = None
    alert: Optional[str] = None
    frequency: Optional[str] = None
    interval: Optional[int] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    duration_days: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    clear_recurrence_end_date: bool = False

    @classmethod
    def from_fields(cls, fields: Dict[str, Any]) -> "SeriesPatch":
        start = parse_local_datetime(fields["start_at"]) if fields.get("start_at") else None
        end = parse_local_datetime(fields["end_at"]) if fields.get("end_at") else None
        end_date = fields.get("recurrence_end_date")
        return cls(
            title=fields.get("title"),
            content=fields.get("content"),
            alert=fields.get("alert"),
            frequency=fields.get("frequency"),
            interval=fields.get("interval"),
            start_time=start.time() if start else None,
            end_time=end.time() if end else None,
            duration_days=(end.date() - start.date()).days if start and end else None,
            recurrence_end_date=parse_calendar_date(end_date) if end_date else None,
            clear_recurrence_end_date="recurrence_end_date" in fields and end_date is None,
        )

    def apply(self, series: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        updated = dict(series)
        for name in ("title", "content", "alert"):
            value = getattr(self, name)
            if value is not None:
                updated[name] = value
        if self.frequency is not None or self.interval is not None:
            frequency, interval = validate_rule(
                self.frequency if self.frequency is not None else series["frequency"],
                self.interval if self.interval is not None else series.get("interval", 1),
            )
            updated["frequency"] = frequency
            updated["interval"] = interval
        if self.start_time is not None:
            updated["start_time"] = format_wall_time(self.start_time)
        if self.end_time is not None:
            updated["end_time"] = format_wall_time(self.end_time)
        if self.duration_days is not None:
            updated["duration_days"] = self.duration_days
        if self.clear_recurrence_end_date:
            updated["recurrence_end_date"] = None
        elif self.recurrence_end_date is not None:
            updated["recurrence_end_date"] = self.recurrence_end_date.isoformat()

        if int(updated.get("duration_days") or 0) < 0:
            raise InvalidTimeRange()
        if int(updated.get("duration_days") or 0) == 0 and (
            parse_wall_time(updated["start_time"]) >= parse_wall_time(updated["end_time"])
        ):
            raise InvalidTimeRange()
        updated["updated_at"] = format_local(now)
        return updated


@dataclass
class MutationResult:
    action: str
    scope: str
    event: Optional[Dict[str, Any]] = None
    series: Optional[Dict[str, Any]] = None
    occurrence_date: Optional[str] = None
    affected_events: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def title(self) -> str:
        source = self.event or self.series or {}
        return str(source.get("title", ""))


def _check_range(start: datetime, end: datetime) -> None:
    if end <= start:
        raise InvalidTimeRange()


def _check_scope(scope: str, allowed) -> str:
    if scope not in allowed:
        raise HTTPException(status_code=400, detail=f"Unknown scope: {scope}")
    return scope


def _normalize_status(value: Optional[str]) -> str:
    status = (value or PENDING).upper()
    if status not in STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {value}")
    return status


def _with_status(item: Dict[str, Any], status: str, now: datetime) -> Dict[str, Any]:
    updated = dict(item)
    if status == DONE:
        if item.get("status") != DONE or not item.get("completed_at"):
            updated["completed_at"] = format_local(now)
    else:
        updated["completed_at"] = None
    updated["status"] = status
    updated["updated_at"] = format_local(now)
    return updated


def _org(source: Dict[str, Any]) -> Dict[str, Any]:
    return {name: source.get(name) for name in ORG_FIELDS}


def _new_event_item(
    owner_sub: str,
    *,
    title: str,
    content: str,
    start: datetime,
    end: datetime,
    status: str,
    alert: str,
    org: Dict[str, Any],
    now: datetime,
    series_id: Optional[str] = None,
    occurrence_date: Optional[date] = None,
) -> Dict[str, Any]:
    event_id = uuid.uuid4().hex
    item = {
        "owner_sub": owner_sub,
        "sk": event_sk(event_id),
        "type": "event",
        "event_id": event_id,
        "title": title,
        "content": content,
        "start_at": format_local(start),
        "end_at": format_local(end),
        "status": PENDING,
        "completed_at": None,
        "alert": alert,
        "series_id": series_id,
        "occurrence_date": occurrence_date.isoformat() if occurrence_date else None,
        "is_exception": series_id is not None,
        "creator_id": owner_sub,
        "created_at": format_local(now),
        "updated_at": format_local(now),
        **_org(org),
    }
    return _with_status(item, status, now)


def _detached_item(
    owner_sub: str,
    series: Dict[str, Any],
    day: date,
    fields: Dict[str, Any],
    now: datetime,
) -> Dict[str, Any]:
    default_start, default_end = occurrence_bounds(series, day)
    start = parse_local_datetime(fields["start_at"]) if fields.get("start_at") else default_start
    end = parse_local_datetime(fields["end_at"]) if fields.get("end_at") else default_end
    _check_range(start, end)
    return _new_event_item(
        owner_sub,
        title=fields["title"] if fields.get("title") is not None else series.get("title", ""),
        content=fields["content"] if fields.get("content") is not None else series.get("content", ""),
        start=start,
        end=end,
        status=_normalize_status(fields.get("status") or series.get("status")),
        alert=fields.get("alert") or series.get("alert", "none"),
        org=series,
        now=now,
        series_id=series["series_id"],
        occurrence_date=day,
    )


def _edited_event(event: Dict[str, Any], fields: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    updated = dict(event)
    for name in ("title", "content", "alert"):
        if fields.get(name) is not None:
            updated[name] = fields[name]
    start = parse_local_datetime(fields["start_at"]) if fields.get("start_at") else parse_local_datetime(event["start_at"])
    end = parse_local_datetime(fields["end_at"]) if fields.get("end_at") else parse_local_datetime(event["end_at"])
    _check_range(start, end)
    updated["start_at"] = format_local(start)
    updated["end_at"] = format_local(end)
    status = _normalize_status(fields.get("status") or event.get("status"))
    return _with_status(updated, status, now)


def _occurrence_date_of(event: Dict[str, Any]) -> date:
    return parse_calendar_date(event.get("occurrence_date") or event["start_at"])


# -- create ------------------------------------------------------------------

def create_event(
    store: ScheduleStore,
    owner_sub: str,
    payload: Dict[str, Any],
    org: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    now = now or local_now()
    org = org or {}
    start = parse_local_datetime(payload["start_at"])
    end = parse_local_datetime(payload["end_at"])
    _check_range(start, end)

    if not payload.get("is_recurring"):
        item = _new_event_item(
            owner_sub,
            title=payload.get("title", ""),
            content=payload.get("content") or "",
            start=start,
            end=end,
            status=_normalize_status(payload.get("status")),
            alert=payload.get("alert") or "none",
            org=org,
            now=now,
        )
        store.put(item)
        return MutationResult(action="create", scope="single", event=item)

    frequency, interval = validate_rule(payload.get("frequency"), payload.get("interval", 1))
    end_date = payload.get("recurrence_end_date")
    series_id = uuid.uuid4().hex
    series = {
        "owner_sub": owner_sub,
        "sk": series_sk(series_id),
        "type": "series",
        "series_id": series_id,
        "title": payload.get("title", ""),
        "content": payload.get("content") or "",
        "frequency": frequency,
        "interval": interval,
        "first_occurrence_date": start.date().isoformat(),
        "start_time": format_wall_time(start.time()),
        "end_time": format_wall_time(end.time()),
        "duration_days": (end.date() - start.date()).days,
        "recurrence_end_date": parse_calendar_date(end_date).isoformat() if end_date else None,
        "alert": payload.get("alert") or "none",
        "status": PENDING,
        "completed_at": None,
        "creator_id": owner_sub,
        "created_at": format_local(now),
        "updated_at": format_local(now),
        **_org(org),
    }
    store.put(series)
    logger.info("created series %s (%s every %d) for %s", series_id, frequency, interval, owner_sub)
    return MutationResult(action="create", scope="series", series=series)


# -- update ------------------------------------------------------------------

def _update_series(
    store: ScheduleStore,
    owner_sub: str,
    series_id: str,
    fields: Dict[str, Any],
    now: datetime,
) -> MutationResult:
    series = load_series(store, owner_sub, series_id)
    updated = SeriesPatch.from_fields(fields).apply(series, now)
    store.put(updated)
    return MutationResult(action="update", scope="all", series=updated)


def _detach(
    store: ScheduleStore,
    owner_sub: str,
    detached: Dict[str, Any],
) -> None:
    store.transact(
        puts=[detached, exception_item(owner_sub, detached["series_id"], detached["occurrence_date"])],
    )


def update_event(
    store: ScheduleStore,
    owner_sub: str,
    handle: Handle,
    fields: Dict[str, Any],
    scope: str = "this",
    now: Optional[datetime] = None,
) -> MutationResult:
    now = now or local_now()
    scope = _check_scope(scope or "this", UPDATE_SCOPES)
    if fields.get("start_at") and fields.get("end_at"):
        _check_range(parse_local_datetime(fields["start_at"]), parse_local_datetime(fields["end_at"]))

    if isinstance(handle, OccurrenceHandle):
        if scope == "all":
            return _update_series(store, owner_sub, handle.series_id, fields, now)
        series = load_series(store, owner_sub, handle.series_id)
        existing = detached_events(store, owner_sub, handle.series_id, handle.occurrence_date)
        if existing:
            detached = _edited_event(existing[0], fields, now)
        else:
            detached = _detached_item(owner_sub, series, handle.occurrence_date, fields, now)
        _detach(store, owner_sub, detached)
        return MutationResult(
            action="update", scope="this", event=detached, series=series,
            occurrence_date=detached["occurrence_date"],
        )

    event = load_event(store, owner_sub, handle.event_id)
    series_id = event.get("series_id")
    if series_id and scope == "all":
        return _update_series(store, owner_sub, series_id, fields, now)

    updated = _edited_event(event, fields, now)
    if series_id:
        # Already detached (or joined without a record): keep it detached.
        day = parse_calendar_date(fields.get("occurrence_date") or _occurrence_date_of(event))
        updated["is_exception"] = True
        updated["occurrence_date"] = day.isoformat()
        _detach(store, owner_sub, updated)
        return MutationResult(action="update", scope="this", event=updated, occurrence_date=day.isoformat())

    store.put(updated)
    return MutationResult(action="update", scope="single", event=updated)


# -- delete ------------------------------------------------------------------

def _delete_series(store: ScheduleStore, owner_sub: str, series: Dict[str, Any]) -> MutationResult:
    series_id = series["series_id"]
    exceptions = store.query_prefix(owner_sub, exception_sk(series_id, ""))
    store.delete(owner_sub, series["sk"])
    # exceptions are unreachable once the series row is gone
    keys = [{"owner_sub": owner_sub, "sk": item["sk"]} for item in exceptions]
    for offset in range(0, len(keys), MAX_TRANSACTION_ITEMS):
        store.transact(deletes=keys[offset:offset + MAX_TRANSACTION_ITEMS])
    logger.info("deleted series %s with %d exceptions for %s", series_id, len(exceptions), owner_sub)
    return MutationResult(action="delete", scope="series", series=series)


def delete_event(
    store: ScheduleStore,
    owner_sub: str,
    handle: Handle,
    scope: str = "single",
) -> MutationResult:
    scope = _check_scope(scope or "single", DELETE_SCOPES)

    if isinstance(handle, OccurrenceHandle):
        series = load_series(store, owner_sub, handle.series_id)
        if scope == "series":
            return _delete_series(store, owner_sub, series)
        add_exception(store, owner_sub, handle.series_id, handle.occurrence_date)
        return MutationResult(
            action="delete", scope="single", series=series,
            occurrence_date=handle.occurrence_date.isoformat(),
        )

    event = load_event(store, owner_sub, handle.event_id)
    series_id = event.get("series_id")
    if series_id and scope == "series":
        return _delete_series(store, owner_sub, load_series(store, owner_sub, series_id))

    if series_id:
        day = _occurrence_date_of(event)
        store.transact(
            puts=[exception_item(owner_sub, series_id, day)],
            deletes=[{"owner_sub": owner_sub, "sk": event["sk"]}],
        )
        return MutationResult(action="delete", scope="single", event=event, occurrence_date=day.isoformat())

    store.delete(owner_sub, event["sk"])
    return MutationResult(action="delete", scope="single", event=event)


# -- complete / uncomplete -----------------------------------------------------

def _set_series_status(
    store: ScheduleStore,
    owner_sub: str,
    series: Dict[str, Any],
    status: str,
    now: datetime,
) -> MutationResult:
    flip_from = PENDING if status == DONE else DONE
    updated_series = _with_status(series, status, now)
    events = [
        _with_status(event, status, now)
        for event in detached_events(store, owner_sub, series["series_id"])
        if (event.get("status") or PENDING) == flip_from
    ]
    puts = [updated_series, *events]
    for offset in range(0, len(puts), MAX_TRANSACTION_ITEMS):
        store.transact(puts=puts[offset:offset + MAX_TRANSACTION_ITEMS])
    logger.info(
        "series %s set to %s with %d detached events for %s",
        series["series_id"], status, len(events), owner_sub,
    )
    action = "complete" if status == DONE else "uncomplete"
    return MutationResult(action=action, scope="all", series=updated_series, affected_events=events)


def complete_event(
    store: ScheduleStore,
    owner_sub: str,
    handle: Handle,
    scope: str = "this",
    now: Optional[datetime] = None,
) -> MutationResult:
    now = now or local_now()
    scope = _check_scope(scope or "this", UPDATE_SCOPES)

    if isinstance(handle, OccurrenceHandle):
        series = load_series(store, owner_sub, handle.series_id)
        if scope == "all":
            return _set_series_status(store, owner_sub, series, DONE, now)
        existing = detached_events(store, owner_sub, handle.series_id, handle.occurrence_date)
        if existing:
            detached = _with_status(existing[0], DONE, now)
        else:
            detached = _detached_item(owner_sub, series, handle.occurrence_date, {"status": DONE}, now)
        _detach(store, owner_sub, detached)
        return MutationResult(
            action="complete", scope="this", event=detached, series=series,
            occurrence_date=detached["occurrence_date"],
        )

    event = load_event(store, owner_sub, handle.event_id)
    if event.get("series_id") and scope == "all":
        series = load_series(store, owner_sub, event["series_id"])
        return _set_series_status(store, owner_sub, series, DONE, now)
    completed = _with_status(event, DONE, now)
    store.put(completed)
    return MutationResult(action="complete", scope="single", event=completed)


def uncomplete_event(
    store: ScheduleStore,
    owner_sub: str,
    handle: Handle,
    now: Optional[datetime] = None,
) -> MutationResult:
    now = now or local_now()

    if isinstance(handle, OccurrenceHandle):
        series = load_series(store, owner_sub, handle.series_id)
        if series.get("status") == DONE:
            return _set_series_status(store, owner_sub, series, PENDING, now)
        completed = [
            event
            for event in detached_events(store, owner_sub, handle.series_id, handle.occurrence_date)
            if event.get("status") == DONE
        ]
        if completed:
            store.transact(
                deletes=[{"owner_sub": owner_sub, "sk": event["sk"]} for event in completed]
                + [exception_key(owner_sub, handle.series_id, handle.occurrence_date)],
            )
        return MutationResult(
            action="uncomplete", scope="this", series=series,
            occurrence_date=handle.occurrence_date.isoformat(), affected_events=completed,
        )

    event = load_event(store, owner_sub, handle.event_id)
    if (event.get("status") or PENDING) == PENDING:
        return MutationResult(action="uncomplete", scope="single", event=event)
    reverted = _with_status(event, PENDING, now)
    store.put(reverted)
    return MutationResult(action="uncomplete", scope="single", event=reverted)
