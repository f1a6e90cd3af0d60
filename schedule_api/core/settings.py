from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False")


@dataclass(frozen=True)
class Settings:
    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")

    # Cognito (optional wiring; auth is pluggable)
    cognito_user_pool_id: str = os.environ.get("COGNITO_USER_POOL_ID", "")
    cognito_region: str = os.environ.get("COGNITO_REGION", "")
    cognito_app_client_id: str = os.environ.get("COGNITO_APP_CLIENT_ID", "")
    cognito_expected_token_use: str = os.environ.get("COGNITO_EXPECTED_TOKEN_USE", "access")

    # DynamoDB tables
    schedule_table_name: str = os.environ.get("SCHEDULE_TABLE_NAME", "schedule")
    notifications_table_name: str = os.environ.get("NOTIFICATIONS_TABLE_NAME", "notifications")
    profile_table_name: str = os.environ.get("PROFILE_TABLE_NAME", "profiles")

    # TTL
    ddb_ttl_attr: str = os.environ.get("DDB_TTL_ATTR", "ttl_epoch")

    # Recurrence: how far past the query window an open-ended series is expanded
    recurrence_horizon_days: int = int(os.environ.get("RECURRENCE_HORIZON_DAYS", "90"))

    # Notifications
    notifications_enabled: bool = _flag("NOTIFICATIONS_ENABLED", "1")
    notifications_ttl_days: int = int(os.environ.get("NOTIFICATIONS_TTL_DAYS", "90"))
    notifications_email_enabled: bool = _flag("NOTIFICATIONS_EMAIL_ENABLED", "0")
    notifications_from_email: str = os.environ.get("NOTIFICATIONS_FROM_EMAIL", "")

    # Reminders
    reminder_hours_ahead: int = int(os.environ.get("REMINDER_HOURS_AHEAD", "24"))
    reminder_dedupe_hours: int = int(os.environ.get("REMINDER_DEDUPE_HOURS", "48"))

    audit_log_enabled: bool = _flag("AUDIT_LOG_ENABLED", "1")
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()


S = Settings()
