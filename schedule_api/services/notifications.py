from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from schedule_api.core.aws import ses_client
from schedule_api.core.normalize import client_ip_from_request
from schedule_api.core.settings import S
from schedule_api.core.tables import T
from schedule_api.core.time import now_ts
from schedule_api.metrics import record_notification_failure

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("schedule_api.audit")

NOTIFICATION_TYPES: List[str] = [
    "EVENT_CREATED", "EVENT_UPDATED", "EVENT_DELETED", "EVENT_COMPLETED", "EVENT_REMINDER",
]


def notification_id_for(ts: int) -> str:
    # Sort key: zero-padded epoch first so a key range is a time range.
    return f"{ts:010d}#{uuid.uuid4().hex}"


def write_notification(
    user_sub: str,
    *,
    type: str,
    title: str,
    message: str,
    related_event_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    if not S.notifications_enabled:
        return None
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"unknown notification type: {type}")
    ts = now_ts()
    safe_data: Dict[str, Any] = {}
    for k, v in (data or {}).items():
        if v is None:
            continue
        if isinstance(v, (int, bool)):
            safe_data[k] = v
        else:
            safe_data[k] = str(v)[:512]

    item = {
        "user_sub": user_sub,
        "notification_id": notification_id_for(ts),
        "ts": ts,
        "type": type,
        "title": title[:120],
        "message": message[:1000],
        "related_event_id": related_event_id,
        "data": safe_data,
        "is_read": False,
        "read_at": 0,
        S.ddb_ttl_attr: ts + int(S.notifications_ttl_days) * 86400,
    }
    T.notifications.put_item(Item=item)
    return item


def _recipient_emails(user_sub: str) -> List[str]:
    profile = T.profile.get_item(Key={"user_sub": user_sub}).get("Item") or {}
    email = (profile.get("email") or "").strip()
    return [email] if email else []


def send_notification_email(to_emails: List[str], subject: str, body_text: str) -> bool:
    if not S.notifications_email_enabled or not S.notifications_from_email:
        return False
    if not to_emails:
        return False
    ses_client().send_email(
        Source=S.notifications_from_email,
        Destination={"ToAddresses": to_emails},
        Message={"Subject": {"Data": subject[:120]}, "Body": {"Text": {"Data": body_text[:8000]}}},
    )
    return True


def notify(
    user_sub: str,
    type: str,
    title: str,
    message: str,
    related_event_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> bool:
    """Best-effort delivery: the change being announced is already committed.

    Returns True only when something was written or sent and no channel
    failed. Failures are logged and counted, never raised.
    """
    delivered = failed = False
    try:
        item = write_notification(
            user_sub, type=type, title=title, message=message,
            related_event_id=related_event_id, data=data,
        )
        delivered = item is not None
    except Exception:
        logger.exception("in-app notification failed user=%s type=%s event=%s", user_sub, type, related_event_id)
        record_notification_failure("in_app")
        failed = True

    if S.notifications_email_enabled:
        try:
            if send_notification_email(_recipient_emails(user_sub), f"[Schedule] {title}", message):
                delivered = True
        except Exception:
            logger.exception("notification email failed user=%s type=%s", user_sub, type)
            record_notification_failure("email")
            failed = True
    return delivered and not failed


def list_notifications(
    user_sub: str,
    *,
    limit: int = 50,
    exclusive_start_key: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "KeyConditionExpression": Key("user_sub").eq(user_sub),
        "ScanIndexForward": False,
        "Limit": max(1, min(int(limit), 200)),
    }
    if exclusive_start_key:
        kwargs["ExclusiveStartKey"] = exclusive_start_key
    return T.notifications.query(**kwargs)


def unread_count(user_sub: str) -> int:
    kwargs: Dict[str, Any] = {
        "KeyConditionExpression": Key("user_sub").eq(user_sub),
        "FilterExpression": Attr("is_read").eq(False),
        "Select": "COUNT",
    }
    count = 0
    while True:
        resp = T.notifications.query(**kwargs)
        count += int(resp.get("Count", 0))
        last = resp.get("LastEvaluatedKey")
        if not last:
            return count
        kwargs["ExclusiveStartKey"] = last


def mark_read(user_sub: str, notification_ids: List[str]) -> int:
    ts = now_ts()
    updated = 0
    for nid in notification_ids[:200]:
        try:
            T.notifications.update_item(
                Key={"user_sub": user_sub, "notification_id": nid},
                UpdateExpression="SET is_read = :t, read_at = :ts",
                ConditionExpression=Attr("notification_id").exists(),
                ExpressionAttributeValues={":t": True, ":ts": ts},
            )
        except ClientError as exc:
            if exc.response["Error"].get("Code") == "ConditionalCheckFailedException":
                continue
            raise
        updated += 1
    return updated


def recent_notification_exists(user_sub: str, type: str, related_event_id: str, since_ts: int) -> bool:
    kwargs: Dict[str, Any] = {
        "KeyConditionExpression": Key("user_sub").eq(user_sub) & Key("notification_id").gte(f"{since_ts:010d}"),
        "FilterExpression": Attr("type").eq(type) & Attr("related_event_id").eq(related_event_id),
    }
    while True:
        resp = T.notifications.query(**kwargs)
        if resp.get("Items"):
            return True
        last = resp.get("LastEvaluatedKey")
        if not last:
            return False
        kwargs["ExclusiveStartKey"] = last


def audit_event(event: str, user_sub: str, request=None, **fields: Any) -> None:
    if not S.audit_log_enabled:
        return
    payload: Dict[str, Any] = {"event": event, "user_sub": user_sub, "ts": now_ts(), **fields}
    if request is not None:
        payload["ip"] = client_ip_from_request(request)
        payload["user_agent"] = (request.headers.get("user-agent", "")[:256])
    audit_logger.info(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))
