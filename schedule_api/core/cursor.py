from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional

from fastapi import HTTPException


def encode_cursor(last_evaluated_key: Optional[Dict[str, Any]]) -> Optional[str]:
    if not last_evaluated_key:
        return None
    raw = json.dumps(last_evaluated_key, separators=(",", ":"), default=str).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def decode_cursor(cursor: Optional[str], *, owner_field: str, owner: str) -> Optional[Dict[str, Any]]:
    """Decode a page cursor, refusing one minted for a different owner."""
    if not cursor:
        return None
    s = cursor.strip()
    pad = "=" * ((4 - (len(s) % 4)) % 4)
    try:
        obj = json.loads(base64.urlsafe_b64decode((s + pad).encode("utf-8")).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise HTTPException(400, "Invalid cursor") from exc
    if not isinstance(obj, dict) or obj.get(owner_field) != owner:
        raise HTTPException(400, "Invalid cursor")
    return obj
