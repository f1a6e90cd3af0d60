import asyncio
from contextlib import ExitStack
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from schedule_api.core.errors import InvalidTimeRange, NotFound
from schedule_api.models import CompleteIn, EventCreateIn, EventUpdateIn
from schedule_api.routers import schedule as schedule_router


def run_async(coro):
    return asyncio.run(coro)


def build_request():
    return SimpleNamespace(headers={"user-agent": "agent"}, client=None, state=SimpleNamespace())


def build_ctx(user_sub="user"):
    return {"user_sub": user_sub}


@pytest.fixture
def side_effects():
    with ExitStack() as stack:
        notify = stack.enter_context(patch.object(schedule_router, "notify", return_value=True))
        stack.enter_context(patch.object(schedule_router, "audit_event"))
        stack.enter_context(patch.object(
            schedule_router, "get_org_attribution",
            return_value={"department_id": "d1", "office_id": None, "division_id": None},
        ))
        yield notify


def create_series(store):
    body = EventCreateIn(
        title="Standup",
        startAt="2024-01-01T09:00:00",
        endAt="2024-01-01T09:30:00",
        isRecurring=True,
        recurrenceType="week",
    )
    out = run_async(schedule_router.create_schedule_event(build_request(), body, ctx=build_ctx(), store=store))
    return out.series.series_id


def test_create_and_list(store, side_effects):
    series_id = create_series(store)
    events = run_async(schedule_router.list_schedule("2024-01-01", "2024-01-14", ctx=build_ctx(), store=store))
    assert [e["occurrence_date"] for e in events] == ["2024-01-01", "2024-01-08"]
    assert events[0]["series_id"] == series_id
    assert events[0]["department_id"] == "d1"
    assert side_effects.call_args.args[1] == "EVENT_CREATED"


def test_list_rejects_inverted_window(store, side_effects):
    with pytest.raises(InvalidTimeRange):
        run_async(schedule_router.list_schedule("2024-02-01", "2024-01-01", ctx=build_ctx(), store=store))


def test_composite_ref_update_this(store, side_effects):
    series_id = create_series(store)
    events = run_async(schedule_router.list_schedule("2024-01-08", "2024-01-08", ctx=build_ctx(), store=store))
    ref = events[0]["id"]

    out = run_async(schedule_router.update_schedule_event(
        build_request(), ref, EventUpdateIn(title="Moved", editType="this"), ctx=build_ctx(), store=store,
    ))
    assert out.scope == "this"
    assert out.event.title == "Moved"
    assert out.event.is_exception is True
    assert out.occurrence_date == "2024-01-08"
    assert out.series.series_id == series_id
    assert side_effects.call_args.args[1] == "EVENT_UPDATED"

    fetched = run_async(schedule_router.get_schedule_event(out.event.id, ctx=build_ctx(), store=store))
    assert fetched["title"] == "Moved"


def test_occurrence_routes(store, side_effects):
    series_id = create_series(store)
    view = run_async(schedule_router.get_occurrence(series_id, "2024-01-15", ctx=build_ctx(), store=store))
    assert view["is_generated"] is True
    assert view["frequency"] == "weekly"

    out = run_async(schedule_router.complete_occurrence(
        build_request(), series_id, "2024-01-15", CompleteIn(scope="this"), ctx=build_ctx(), store=store,
    ))
    assert out.event.status == "DONE"
    assert side_effects.call_args.args[1] == "EVENT_COMPLETED"

    out = run_async(schedule_router.uncomplete_occurrence(
        build_request(), series_id, "2024-01-15", ctx=build_ctx(), store=store,
    ))
    assert out.affected_events == 1

    out = run_async(schedule_router.delete_occurrence(
        build_request(), series_id, "2024-01-15", scope="series", ctx=build_ctx(), store=store,
    ))
    assert out.scope == "series"
    assert run_async(schedule_router.list_schedule("2024-01-01", "2024-01-31", ctx=build_ctx(), store=store)) == []


def test_complete_defaults_to_this(store, side_effects):
    series_id = create_series(store)
    ref = f"series-{series_id}-1704067200000"
    out = run_async(schedule_router.complete_schedule_event(build_request(), ref, None, ctx=build_ctx(), store=store))
    assert out.scope == "this"
    assert out.series.status == "PENDING"


def test_delete_rejects_unknown_scope(store, side_effects):
    series_id = create_series(store)
    with pytest.raises(HTTPException) as exc:
        run_async(schedule_router.delete_occurrence(
            build_request(), series_id, "2024-01-08", scope="everything", ctx=build_ctx(), store=store,
        ))
    assert exc.value.status_code == 400


def test_other_owner_not_found(store, side_effects):
    series_id = create_series(store)
    with pytest.raises(NotFound):
        run_async(schedule_router.get_occurrence(series_id, "2024-01-08", ctx=build_ctx("intruder"), store=store))
    with pytest.raises(NotFound):
        run_async(schedule_router.delete_schedule_event(
            build_request(), f"series-{series_id}-1704067200000", scope="single", ctx=build_ctx("intruder"), store=store,
        ))


def test_failed_notification_still_succeeds(store):
    with patch.object(schedule_router, "get_org_attribution", return_value={}), patch.object(
        schedule_router, "audit_event"
    ), patch("schedule_api.services.notifications.write_notification", side_effect=RuntimeError("down")):
        out = run_async(schedule_router.create_schedule_event(
            build_request(),
            EventCreateIn(title="Review", start_at="2024-01-02T10:00:00", end_at="2024-01-02T11:00:00"),
            ctx=build_ctx(),
            store=store,
        ))
    assert out.action == "create"
    assert out.event.title == "Review"
    assert len(store.of_type("user", "event")) == 1


def test_reminder_route(store):
    with patch.object(schedule_router, "check_upcoming_events", return_value=3) as check:
        out = run_async(schedule_router.run_reminder_check(ctx=build_ctx(), store=store))
    assert out.created == 3
    check.assert_called_once_with(store, "user")
