from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schedule_api.core.errors import TransactionFailure  # noqa: E402
from schedule_api.services.schedule_store import MAX_TRANSACTION_ITEMS  # noqa: E402


class MemoryScheduleStore:
    """In-memory stand-in for ScheduleStore with the same call surface.

    Set ``fail_writes`` to make every write raise TransactionFailure without
    touching the stored items.
    """

    def __init__(self) -> None:
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.fail_writes = False
        self.transactions: List[Tuple[List[Dict[str, Any]], List[Dict[str, str]]]] = []

    def _check(self) -> None:
        if self.fail_writes:
            raise TransactionFailure()

    def get(self, owner_sub: str, sk: str) -> Optional[Dict[str, Any]]:
        item = self.items.get((owner_sub, sk))
        return copy.deepcopy(item) if item is not None else None

    def query_prefix(self, owner_sub: str, prefix: str) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(item)
            for (owner, sk), item in sorted(self.items.items())
            if owner == owner_sub and sk.startswith(prefix)
        ]

    def put(self, item: Dict[str, Any]) -> None:
        self._check()
        self.items[(item["owner_sub"], item["sk"])] = copy.deepcopy(item)

    def delete(self, owner_sub: str, sk: str) -> None:
        self._check()
        self.items.pop((owner_sub, sk), None)

    def transact(self, puts: Iterable[Dict[str, Any]] = (), deletes: Iterable[Dict[str, str]] = ()) -> None:
        puts, deletes = list(puts), list(deletes)
        if not puts and not deletes:
            return
        self._check()
        if len(puts) + len(deletes) > MAX_TRANSACTION_ITEMS:
            raise TransactionFailure("Too many records to update in one operation")
        self.transactions.append((copy.deepcopy(puts), copy.deepcopy(deletes)))
        for item in puts:
            self.items[(item["owner_sub"], item["sk"])] = copy.deepcopy(item)
        for key in deletes:
            self.items.pop((key["owner_sub"], key["sk"]), None)

    def of_type(self, owner_sub: str, type_: str) -> List[Dict[str, Any]]:
        return [item for (owner, _), item in sorted(self.items.items()) if owner == owner_sub and item.get("type") == type_]


@pytest.fixture
def store() -> MemoryScheduleStore:
    return MemoryScheduleStore()
