"""Naive local date/time helpers.

Every timestamp handled by the schedule is a local calendar date plus a
wall-clock time with no zone attached. Nothing in here converts between
zones: an offset supplied by a client is dropped, not applied.
"""
from __future__ import annotations

import time
from datetime import date, datetime, time as wall_time, timedelta
from typing import Optional, Union

from fastapi import HTTPException

_EPOCH = date(1970, 1, 1)
_MS_PER_DAY = 86_400_000

DateLike = Union[date, datetime, str]


def now_ts() -> int:
    return int(time.time())


def local_now() -> datetime:
    return datetime.now().replace(microsecond=0)


def parse_local_datetime(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = (value or "").strip()
        if raw.endswith("Z"):
            raw = raw[:-1]
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid datetime: {value}") from exc
    return parsed.replace(tzinfo=None, microsecond=0)


def parse_calendar_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = (value or "").strip()
    try:
        if len(raw) > 10:
            return parse_local_datetime(raw).date()
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}") from exc


def parse_wall_time(value: Union[str, wall_time]) -> wall_time:
    if isinstance(value, wall_time):
        return value.replace(tzinfo=None, microsecond=0)
    try:
        return wall_time.fromisoformat(value).replace(tzinfo=None, microsecond=0)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid time: {value}") from exc


def parse_window_bound(value: str, *, end: bool) -> datetime:
    """Window bounds may be bare dates; a bare end date covers the whole day."""
    raw = (value or "").strip()
    if len(raw) == 10:
        day = parse_calendar_date(raw)
        return datetime.combine(day, wall_time(23, 59, 59) if end else wall_time(0, 0, 0))
    return parse_local_datetime(raw)


def format_local(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat(timespec="seconds")


def format_wall_time(value: wall_time) -> str:
    return value.strftime("%H:%M:%S")


def epoch_millis(day: date) -> int:
    """Millis of local midnight, counted as if the local calendar were UTC."""
    return (day - _EPOCH).days * _MS_PER_DAY


def date_from_epoch_millis(millis: int) -> date:
    return _EPOCH + timedelta(days=millis // _MS_PER_DAY)
