from __future__ import annotations

from datetime import date
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from schedule_api.core.time import DateLike, parse_calendar_date
from schedule_api.services.schedule_store import EXCEPTION_PREFIX, ScheduleStore, exception_sk


class ExclusionSet:
    """Suppressed occurrence dates, keyed by series and calendar date.

    Values are reduced to their date component before comparison, so
    ``2024-03-01``, ``2024-03-01T09:30:00`` and ``date(2024, 3, 1)`` all
    name the same occurrence.
    """

    def __init__(self) -> None:
        self._dates: Dict[str, Set[date]] = {}

    def add(self, series_id: str, value: DateLike) -> None:
        self._dates.setdefault(series_id, set()).add(parse_calendar_date(value))

    def remove(self, series_id: str, value: DateLike) -> None:
        dates = self._dates.get(series_id)
        if not dates:
            return
        dates.discard(parse_calendar_date(value))
        if not dates:
            self._dates.pop(series_id, None)

    def is_excluded(self, series_id: str, value: DateLike) -> bool:
        return parse_calendar_date(value) in self._dates.get(series_id, ())

    def for_series(self, series_id: str) -> FrozenSet[date]:
        return frozenset(self._dates.get(series_id, ()))

    def __len__(self) -> int:
        return sum(len(dates) for dates in self._dates.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExclusionSet):
            return NotImplemented
        return self._dates == other._dates


def is_excluded(series_id: str, value: DateLike, exclusions: ExclusionSet) -> bool:
    return exclusions.is_excluded(series_id, value)


def exception_item(owner_sub: str, series_id: str, value: DateLike) -> Dict[str, Any]:
    day = parse_calendar_date(value).isoformat()
    return {
        "owner_sub": owner_sub,
        "sk": exception_sk(series_id, day),
        "type": "exception",
        "series_id": series_id,
        "exception_date": day,
    }


def exception_key(owner_sub: str, series_id: str, value: DateLike) -> Dict[str, str]:
    return {"owner_sub": owner_sub, "sk": exception_sk(series_id, parse_calendar_date(value).isoformat())}


def add_exception(store: ScheduleStore, owner_sub: str, series_id: str, value: DateLike) -> None:
    # (series, date) is the item key, so a repeated insert overwrites itself.
    store.put(exception_item(owner_sub, series_id, value))


def remove_exception(store: ScheduleStore, owner_sub: str, series_id: str, value: DateLike) -> None:
    store.delete(**exception_key(owner_sub, series_id, value))


def load_exclusions(
    store: ScheduleStore,
    owner_sub: str,
    series_ids: Optional[Iterable[str]] = None,
) -> ExclusionSet:
    wanted = set(series_ids) if series_ids is not None else None
    exclusions = ExclusionSet()
    if wanted is not None and len(wanted) == 1:
        prefix = f"{EXCEPTION_PREFIX}{next(iter(wanted))}#"
    else:
        prefix = EXCEPTION_PREFIX
    for item in store.query_prefix(owner_sub, prefix):
        series_id = item.get("series_id")
        if wanted is not None and series_id not in wanted:
            continue
        exclusions.add(series_id, item["exception_date"])
    return exclusions
