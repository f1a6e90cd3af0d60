import asyncio
import unittest
from unittest.mock import patch

from fastapi import HTTPException

from schedule_api.core.cursor import encode_cursor
from schedule_api.models import MarkReadReq
from schedule_api.routers import notifications as notifications_router


def run_async(coro):
    return asyncio.run(coro)


def build_ctx():
    return {"user_sub": "user"}


ITEMS = [
    {"user_sub": "user", "notification_id": "2#b", "ts": 2, "type": "EVENT_UPDATED", "title": "b", "message": "b", "is_read": True},
    {"user_sub": "user", "notification_id": "1#a", "ts": 1, "type": "EVENT_CREATED", "title": "a", "message": "a",
     "related_event_id": "e1", "data": {"scope": "single"}},
]


class TestNotificationRoutes(unittest.TestCase):
    def test_list_pages_with_cursor(self):
        last = {"user_sub": "user", "notification_id": "1#a"}
        with patch.object(
            notifications_router, "list_notifications", return_value={"Items": ITEMS, "LastEvaluatedKey": last}
        ) as list_notifications:
            page = run_async(notifications_router.list_user_notifications(limit=2, cursor=None, unread_only=0, ctx=build_ctx()))
        self.assertEqual([n.notification_id for n in page.notifications], ["2#b", "1#a"])
        self.assertEqual(page.notifications[1].data, {"scope": "single"})
        self.assertEqual(page.next_cursor, encode_cursor(last))
        list_notifications.assert_called_once_with("user", limit=2, exclusive_start_key=None)

        with patch.object(notifications_router, "list_notifications", return_value={"Items": ITEMS}) as list_notifications:
            page = run_async(notifications_router.list_user_notifications(
                limit=2, cursor=encode_cursor(last), unread_only=1, ctx=build_ctx(),
            ))
        self.assertEqual([n.notification_id for n in page.notifications], ["1#a"])
        self.assertIsNone(page.next_cursor)
        self.assertEqual(list_notifications.call_args.kwargs["exclusive_start_key"], last)

    def test_list_rejects_foreign_cursor(self):
        cursor = encode_cursor({"user_sub": "someone-else", "notification_id": "1#a"})
        with patch.object(notifications_router, "list_notifications") as list_notifications:
            with self.assertRaises(HTTPException):
                run_async(notifications_router.list_user_notifications(limit=10, cursor=cursor, unread_only=0, ctx=build_ctx()))
        list_notifications.assert_not_called()

    def test_unread_count_and_mark_read(self):
        with patch.object(notifications_router, "unread_count", return_value=4):
            self.assertEqual(run_async(notifications_router.get_unread_count(ctx=build_ctx())), {"unread": 4})
        with patch.object(notifications_router, "mark_read", return_value=2) as mark_read:
            resp = run_async(notifications_router.mark_notifications_read(
                MarkReadReq(notification_ids=["1#a", "2#b"]), ctx=build_ctx(),
            ))
        self.assertEqual(resp, {"ok": True, "updated": 2})
        mark_read.assert_called_once_with("user", ["1#a", "2#b"])
