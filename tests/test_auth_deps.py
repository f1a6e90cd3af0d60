from __future__ import annotations

import asyncio
import base64
import json
from dataclasses import replace
from types import SimpleNamespace
from typing import Any, Dict
from unittest.mock import patch

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from schedule_api.auth import deps
from schedule_api.core.settings import S


def build_request(headers: Dict[str, str] | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "scheme": "http",
        "server": ("testserver", 80),
    }

    async def receive() -> Dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def run_async(coro):
    return asyncio.run(coro)


def without_cognito():
    return patch.object(deps, "S", replace(S, cognito_user_pool_id="", cognito_app_client_id=""))


def with_cognito():
    return patch.object(
        deps, "S", replace(S, cognito_user_pool_id="pool", cognito_app_client_id="client", cognito_region="us-east-1"),
    )


def b64(obj: Dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj).encode()).decode().rstrip("=")


def test_requires_some_identity() -> None:
    with without_cognito():
        with pytest.raises(HTTPException) as exc:
            run_async(deps.get_authenticated_user_sub(build_request()))
    assert exc.value.status_code == 401


def test_rejects_invalid_scheme() -> None:
    with without_cognito():
        with pytest.raises(HTTPException) as exc:
            run_async(deps.get_authenticated_user_sub(build_request({"authorization": "Token abc"})))
    assert exc.value.status_code == 401


def test_fallback_accepts_x_user_sub() -> None:
    with without_cognito():
        assert run_async(deps.get_authenticated_user_sub(build_request({"x-user-sub": "user-123"}))) == "user-123"


def test_fallback_prefers_jwt_sub() -> None:
    token = f"{b64({'alg': 'none'})}.{b64({'sub': 'jwt-user'})}."
    with without_cognito():
        assert run_async(deps.get_authenticated_user_sub(build_request({"authorization": f"Bearer {token}"}))) == "jwt-user"
        assert run_async(deps.get_authenticated_user_sub(build_request({"authorization": "Bearer user-1"}))) == "user-1"


def test_cognito_requires_bearer_token() -> None:
    with with_cognito():
        with pytest.raises(HTTPException) as exc:
            run_async(deps.get_authenticated_user_sub(build_request({"x-user-sub": "spoofed"})))
    assert exc.value.status_code == 401


def test_cognito_payload_subject(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_decode(token: str) -> Dict[str, Any]:
        assert token == "token123"
        return {"sub": "user-abc"}

    monkeypatch.setattr(deps, "_decode_cognito_token", fake_decode)
    with with_cognito():
        assert run_async(deps.get_authenticated_user_sub(build_request({"authorization": "Bearer token123"}))) == "user-abc"


def test_cognito_requires_subject(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(deps, "_decode_cognito_token", lambda token: {})
    with with_cognito():
        with pytest.raises(HTTPException) as exc:
            run_async(deps.get_authenticated_user_sub(build_request({"authorization": "Bearer token123"})))
    assert exc.value.status_code == 401


def test_require_owner_records_subject() -> None:
    req = SimpleNamespace(state=SimpleNamespace())
    ctx = run_async(deps.require_owner(req, user_sub="user-9"))
    assert ctx == {"user_sub": "user-9"}
    assert req.state.user_sub == "user-9"


def test_resolve_cognito_key_refetches_after_rotation(monkeypatch: pytest.MonkeyPatch) -> None:
    responses = [
        {"keys": [{"kid": "old"}]},
        {"keys": [{"kid": "old"}, {"kid": "new"}]},
    ]
    fetched = []

    def fake_get(url: str, timeout: int) -> SimpleNamespace:
        fetched.append(url)
        body = responses[min(len(fetched), len(responses)) - 1]
        return SimpleNamespace(raise_for_status=lambda: None, json=lambda: body)

    monkeypatch.setattr(deps.requests, "get", fake_get)
    deps._cognito_jwks.cache_clear()
    with with_cognito():
        assert deps._resolve_cognito_key("old") == {"kid": "old"}
        assert deps._resolve_cognito_key("new") == {"kid": "new"}
        assert deps._resolve_cognito_key("new") == {"kid": "new"}
    deps._cognito_jwks.cache_clear()
    assert len(fetched) == 2
    assert fetched[0] == "https://cognito-idp.us-east-1.amazonaws.com/pool/.well-known/jwks.json"


def test_resolve_cognito_key_unknown_kid(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        deps.requests,
        "get",
        lambda url, timeout: SimpleNamespace(raise_for_status=lambda: None, json=lambda: {"keys": [{"kid": "a"}]}),
    )
    deps._cognito_jwks.cache_clear()
    with with_cognito():
        with pytest.raises(HTTPException) as exc:
            deps._resolve_cognito_key("missing")
    deps._cognito_jwks.cache_clear()
    assert exc.value.status_code == 401


def test_decode_jwt_sub_rejects_malformed_tokens() -> None:
    assert deps._decode_jwt_sub("plain-user") is None
    assert deps._decode_jwt_sub("a..c") is None
    assert deps._decode_jwt_sub(f"{b64({'alg': 'none'})}.{b64({'sub': '  '})}.") is None
    assert deps._decode_jwt_sub(f"{b64({'alg': 'none'})}.{b64({'sub': 'u-1'})}.") == "u-1"
