from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends

from schedule_api.auth.deps import require_owner
from schedule_api.core.cursor import decode_cursor, encode_cursor
from schedule_api.models import MarkReadReq, NotificationOut, NotificationPageOut
from schedule_api.services.notifications import list_notifications, mark_read, unread_count

router = APIRouter(prefix="/ui/notifications", tags=["notifications"])


def _notification_out(item: Dict) -> NotificationOut:
    return NotificationOut(
        notification_id=item["notification_id"],
        ts=int(item.get("ts", 0)),
        type=item.get("type", ""),
        title=item.get("title", ""),
        message=item.get("message", ""),
        related_event_id=item.get("related_event_id"),
        data=item.get("data") or {},
        is_read=bool(item.get("is_read", False)),
        read_at=int(item.get("read_at", 0) or 0),
    )


@router.get("", response_model=NotificationPageOut)
async def list_user_notifications(
    limit: int = 50,
    cursor: Optional[str] = None,
    unread_only: int = 0,
    ctx: Dict[str, str] = Depends(require_owner),
):
    user_sub = ctx["user_sub"]
    resp = list_notifications(
        user_sub,
        limit=limit,
        exclusive_start_key=decode_cursor(cursor, owner_field="user_sub", owner=user_sub),
    )
    out = [
        _notification_out(item)
        for item in resp.get("Items", [])
        if not (unread_only and item.get("is_read", False))
    ]
    return NotificationPageOut(notifications=out, next_cursor=encode_cursor(resp.get("LastEvaluatedKey")))


@router.get("/unread_count")
async def get_unread_count(ctx: Dict[str, str] = Depends(require_owner)):
    return {"unread": unread_count(ctx["user_sub"])}


@router.post("/mark_read")
async def mark_notifications_read(body: MarkReadReq, ctx: Dict[str, str] = Depends(require_owner)):
    return {"ok": True, "updated": mark_read(ctx["user_sub"], body.notification_ids)}
