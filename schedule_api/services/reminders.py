from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from schedule_api.core.settings import S
from schedule_api.core.time import local_now, now_ts, parse_local_datetime
from schedule_api.services.notifications import notify, recent_notification_exists
from schedule_api.services.schedule_query import list_events
from schedule_api.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

REMINDER_TYPE = "EVENT_REMINDER"


def check_upcoming_events(
    store: ScheduleStore,
    owner_sub: str,
    now: Optional[datetime] = None,
    hours_ahead: Optional[int] = None,
) -> int:
    """Create reminders for pending events starting within ``hours_ahead``.

    Virtual occurrences count too. An event already reminded about inside
    the dedupe window is skipped. Returns how many reminders were created.
    """
    now = now or local_now()
    hours = S.reminder_hours_ahead if hours_ahead is None else int(hours_ahead)
    until = now + timedelta(hours=hours)
    since_ts = now_ts() - int(S.reminder_dedupe_hours) * 3600

    created = 0
    for event in list_events(store, owner_sub, now, until):
        if event.get("status") == "DONE":
            continue
        if not now < parse_local_datetime(event["start_at"]) <= until:
            continue
        if recent_notification_exists(owner_sub, REMINDER_TYPE, event["id"], since_ts):
            continue
        delivered = notify(
            owner_sub,
            REMINDER_TYPE,
            f"Upcoming: {event['title']}",
            f"{event['title']} starts at {event['start_at']}.",
            related_event_id=event["id"],
            data={"start_at": event["start_at"], "series_id": event.get("series_id")},
        )
        if delivered:
            created += 1

    logger.info("reminder scan for %s created %d reminders", owner_sub, created)
    return created
