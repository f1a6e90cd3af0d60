from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from schedule_api.core.errors import TransactionFailure
from schedule_api.core.tables import T

logger = logging.getLogger(__name__)

SERIES_PREFIX = "series#"
EVENT_PREFIX = "event#"
EXCEPTION_PREFIX = "exception#"

# DynamoDB caps a single TransactWriteItems call at 100 operations.
MAX_TRANSACTION_ITEMS = 100

_serializer = TypeSerializer()


def series_sk(series_id: str) -> str:
    return f"{SERIES_PREFIX}{series_id}"


def event_sk(event_id: str) -> str:
    return f"{EVENT_PREFIX}{event_id}"


def exception_sk(series_id: str, day_iso: str) -> str:
    return f"{EXCEPTION_PREFIX}{series_id}#{day_iso}"


def _serialize(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in item.items()}


class ScheduleStore:
    """Owner-partitioned access to the schedule table.

    Every key carries the owner, so a lookup with the wrong owner behaves
    exactly like a lookup of a record that does not exist.
    """

    def __init__(self, table: Any) -> None:
        self.table = table

    def get(self, owner_sub: str, sk: str) -> Optional[Dict[str, Any]]:
        return self.table.get_item(Key={"owner_sub": owner_sub, "sk": sk}).get("Item")

    def query_prefix(self, owner_sub: str, prefix: str) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "KeyConditionExpression": Key("owner_sub").eq(owner_sub) & Key("sk").begins_with(prefix),
        }
        items: List[Dict[str, Any]] = []
        while True:
            resp = self.table.query(**kwargs)
            items.extend(resp.get("Items", []))
            last = resp.get("LastEvaluatedKey")
            if not last:
                return items
            kwargs["ExclusiveStartKey"] = last

    def put(self, item: Dict[str, Any]) -> None:
        try:
            self.table.put_item(Item=item)
        except (ClientError, BotoCoreError) as exc:
            logger.error("schedule put failed sk=%s: %s", item.get("sk"), exc)
            raise TransactionFailure() from exc

    def delete(self, owner_sub: str, sk: str) -> None:
        try:
            self.table.delete_item(Key={"owner_sub": owner_sub, "sk": sk})
        except (ClientError, BotoCoreError) as exc:
            logger.error("schedule delete failed sk=%s: %s", sk, exc)
            raise TransactionFailure() from exc

    def transact(
        self,
        puts: Iterable[Dict[str, Any]] = (),
        deletes: Iterable[Dict[str, str]] = (),
    ) -> None:
        """Apply puts and deletes (keys of owner_sub/sk) all-or-nothing."""
        table_name = self.table.name
        ops: List[Dict[str, Any]] = [{"Put": {"TableName": table_name, "Item": _serialize(item)}} for item in puts]
        ops.extend({"Delete": {"TableName": table_name, "Key": _serialize(key)}} for key in deletes)
        if not ops:
            return
        if len(ops) > MAX_TRANSACTION_ITEMS:
            logger.error("schedule transaction too large: %d operations", len(ops))
            raise TransactionFailure("Too many records to update in one operation")
        try:
            self.table.meta.client.transact_write_items(TransactItems=ops)
        except (ClientError, BotoCoreError) as exc:
            logger.error("schedule transaction failed (%d operations): %s", len(ops), exc)
            raise TransactionFailure() from exc


def get_store() -> ScheduleStore:
    return ScheduleStore(T.schedule)
