from __future__ import annotations

import logging
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError

from schedule_api.core.tables import T

logger = logging.getLogger(__name__)

ORG_FIELDS = ("department_id", "office_id", "division_id")


def get_org_attribution(user_sub: str) -> Dict[str, Any]:
    """Department / office / division of a user, copied onto what they create.

    The values are opaque here; a user without a profile gets all ``None``.
    """
    try:
        item = T.profile.get_item(Key={"user_sub": user_sub}).get("Item") or {}
    except (ClientError, BotoCoreError) as exc:
        logger.warning("profile lookup failed for %s: %s", user_sub, exc)
        item = {}
    return {name: item.get(name) for name in ORG_FIELDS}
