from __future__ import annotations

import base64
import json
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
import requests
from fastapi import Depends, HTTPException, Request

from schedule_api.core.settings import S


def _cognito_enabled() -> bool:
    return bool(S.cognito_user_pool_id and S.cognito_app_client_id)


def _cognito_issuer() -> str:
    region = S.cognito_region or S.aws_region
    return f"https://cognito-idp.{region}.amazonaws.com/{S.cognito_user_pool_id}"


@lru_cache(maxsize=4)
def _cognito_jwks(issuer: str) -> Dict[str, Any]:
    resp = requests.get(f"{issuer}/.well-known/jwks.json", timeout=10)
    resp.raise_for_status()
    return resp.json()


def _resolve_cognito_key(kid: str) -> Dict[str, Any]:
    issuer = _cognito_issuer()
    for attempt in range(2):
        for key in _cognito_jwks(issuer).get("keys", []):
            if key.get("kid") == kid:
                return key
        if attempt == 0:
            # the pool may have rotated its signing keys since the last fetch
            _cognito_jwks.cache_clear()
    raise HTTPException(401, "Unknown Cognito key id")


def _decode_cognito_token(token: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token header") from exc

    key = _resolve_cognito_key(header.get("kid", ""))
    public_key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(key))
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            audience=S.cognito_app_client_id,
            issuer=_cognito_issuer(),
        )
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(401, "Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token") from exc

    expected_use = S.cognito_expected_token_use
    if expected_use and payload.get("token_use") != expected_use:
        raise HTTPException(401, "Unexpected token use")
    return payload


def _decode_jwt_sub(token: str) -> Optional[str]:
    if token.count(".") != 2:
        return None
    payload = token.split(".", 2)[1]
    if not payload:
        return None
    try:
        data = json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    sub = data.get("sub") if isinstance(data, dict) else None
    return sub if isinstance(sub, str) and sub.strip() else None


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(401, "Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, "Invalid Authorization header")
    return token.strip()


async def get_authenticated_user_sub(request: Request) -> str:
    """
    Cognito JWT validation when a user pool is configured.

    Dev fallback: X-User-Sub header, or Authorization: Bearer <user_id | unverified jwt>
    """
    if _cognito_enabled():
        payload = _decode_cognito_token(extract_bearer_token(request.headers.get("authorization")))
        user_sub = payload.get("sub") or payload.get("cognito:username") or payload.get("username")
        if not user_sub:
            raise HTTPException(401, "Token missing subject")
        return str(user_sub)

    fallback_user = request.headers.get("x-user-sub")
    if fallback_user:
        return fallback_user

    token = extract_bearer_token(request.headers.get("authorization"))
    return _decode_jwt_sub(token) or token


async def require_owner(request: Request, user_sub: str = Depends(get_authenticated_user_sub)) -> Dict[str, str]:
    """The caller; everything they read or change is scoped to this owner."""
    request.state.user_sub = user_sub
    return {"user_sub": user_sub}
