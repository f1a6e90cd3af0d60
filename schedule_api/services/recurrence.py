from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Collection, Dict, List, Optional, Tuple

from schedule_api.core.errors import InvalidRecurrenceRule
from schedule_api.core.handles import OccurrenceHandle
from schedule_api.core.settings import S
from schedule_api.core.time import format_local, parse_calendar_date, parse_wall_time

logger = logging.getLogger(__name__)

FREQUENCIES = ("daily", "weekly", "monthly", "yearly")

FREQUENCY_ALIASES = {
    "day": "daily",
    "week": "weekly",
    "month": "monthly",
    "year": "yearly",
}


def normalize_frequency(value: Any) -> str:
    freq = str(value or "").strip().lower()
    freq = FREQUENCY_ALIASES.get(freq, freq)
    if freq not in FREQUENCIES:
        raise InvalidRecurrenceRule(f"Unknown recurrence frequency: {value}")
    return freq


def validate_rule(frequency: Any, interval: Any) -> Tuple[str, int]:
    freq = normalize_frequency(frequency)
    try:
        step = int(interval)
    except (TypeError, ValueError) as exc:
        raise InvalidRecurrenceRule(f"Invalid recurrence interval: {interval}") from exc
    if step < 1:
        raise InvalidRecurrenceRule("Recurrence interval must be at least 1")
    return freq, step


def _shift_months(day: date, months: int) -> date:
    # Overflow policy: the day-of-month carries into the following month
    # when the target month is shorter (Jan 31 + 1 month -> Mar 3).
    total = day.month - 1 + months
    first = date(day.year + total // 12, total % 12 + 1, 1)
    return first + timedelta(days=day.day - 1)


def next_occurrence(day: date, frequency: str, interval: int) -> Optional[date]:
    """The occurrence after ``day``, or ``None`` once the step passes ``date.max``."""
    if frequency not in FREQUENCIES:
        raise InvalidRecurrenceRule(f"Unknown recurrence frequency: {frequency}")
    try:
        if frequency == "daily":
            return day + timedelta(days=interval)
        if frequency == "weekly":
            return day + timedelta(days=7 * interval)
        if frequency == "monthly":
            return _shift_months(day, interval)
        return _shift_months(day, 12 * interval)
    except (OverflowError, ValueError):
        return None


def occurrence_bounds(series: Dict[str, Any], day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, parse_wall_time(series["start_time"]))
    end_day = day + timedelta(days=int(series.get("duration_days") or 0))
    end = datetime.combine(end_day, parse_wall_time(series["end_time"]))
    return start, end


def occurrence_view(series: Dict[str, Any], day: date) -> Dict[str, Any]:
    """The event-shaped view of one occurrence of a series."""
    start, end = occurrence_bounds(series, day)
    handle = OccurrenceHandle(series_id=series["series_id"], occurrence_date=day)
    return {
        "id": handle.composite_id,
        "handle": handle.as_dict(),
        "title": series.get("title", ""),
        "content": series.get("content", ""),
        "start_at": format_local(start),
        "end_at": format_local(end),
        "status": series.get("status") or "PENDING",
        "completed_at": series.get("completed_at"),
        "alert": series.get("alert", "none"),
        "series_id": series["series_id"],
        "occurrence_date": day.isoformat(),
        "is_exception": False,
        "is_generated": True,
        "is_recurring": True,
        "creator_id": series.get("creator_id"),
        "department_id": series.get("department_id"),
        "office_id": series.get("office_id"),
        "division_id": series.get("division_id"),
        "created_at": series.get("created_at"),
        "updated_at": series.get("updated_at"),
    }


def expand_series(
    series: Dict[str, Any],
    window_start: date,
    window_end: date,
    excluded_dates: Collection[date] = (),
    horizon_days: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Virtual occurrences of ``series`` on dates inside [window_start, window_end].

    Open-ended series stop ``horizon_days`` past the window end. Excluded
    dates suppress output but never the iteration itself.
    """
    frequency = series["frequency"]
    interval = int(series.get("interval") or 1)
    if horizon_days is None:
        horizon_days = S.recurrence_horizon_days

    if series.get("recurrence_end_date"):
        end_bound = parse_calendar_date(series["recurrence_end_date"])
    else:
        try:
            end_bound = window_end + timedelta(days=horizon_days)
        except OverflowError:
            end_bound = date.max

    cursor = parse_calendar_date(series["first_occurrence_date"])
    while cursor is not None and cursor < window_start:
        cursor = next_occurrence(cursor, frequency, interval)

    occurrences: List[Dict[str, Any]] = []
    while cursor is not None and cursor <= window_end and cursor <= end_bound:
        if cursor not in excluded_dates:
            try:
                occurrences.append(occurrence_view(series, cursor))
            except OverflowError:
                # ends past date.max
                break
        cursor = next_occurrence(cursor, frequency, interval)

    logger.debug(
        "expanded series %s over %s..%s: %d occurrences",
        series.get("series_id"), window_start, window_end, len(occurrences),
    )
    return occurrences
