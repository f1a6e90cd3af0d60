from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Union

from fastapi import HTTPException

from schedule_api.core.time import date_from_epoch_millis, epoch_millis

COMPOSITE_PREFIX = "series-"


@dataclass(frozen=True)
class EventHandle:
    """A concretely stored event (plain or detached)."""

    event_id: str
    kind: str = "standalone"

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "event_id": self.event_id}


@dataclass(frozen=True)
class OccurrenceHandle:
    """The occurrence of a series falling on one calendar date."""

    series_id: str
    occurrence_date: date
    kind: str = "virtual"

    @property
    def composite_id(self) -> str:
        return f"{COMPOSITE_PREFIX}{self.series_id}-{epoch_millis(self.occurrence_date)}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "series_id": self.series_id,
            "occurrence_date": self.occurrence_date.isoformat(),
        }


Handle = Union[EventHandle, OccurrenceHandle]


def parse_handle(ref: str) -> Handle:
    ref = (ref or "").strip()
    if not ref:
        raise HTTPException(status_code=400, detail="Missing event reference")
    if not ref.startswith(COMPOSITE_PREFIX):
        return EventHandle(event_id=ref)

    # Split from the right: the millis never contain "-", series ids might.
    series_id, sep, millis = ref[len(COMPOSITE_PREFIX):].rpartition("-")
    if not sep or not series_id:
        raise HTTPException(status_code=400, detail=f"Invalid occurrence reference: {ref}")
    try:
        occurrence_date = date_from_epoch_millis(int(millis))
    except (ValueError, OverflowError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid occurrence reference: {ref}") from exc
    return OccurrenceHandle(series_id=series_id, occurrence_date=occurrence_date)
