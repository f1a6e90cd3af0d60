from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    schedule: Any
    notifications: Any
    profile: Any

T = Tables(
    schedule=ddb.Table(S.schedule_table_name),
    notifications=ddb.Table(S.notifications_table_name),
    profile=ddb.Table(S.profile_table_name),
)
