# tests/test_api_client.py
"""REST client: status mapping, retries, pagination and redaction."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import aiohttp
import pytest

from custom_components.pushbullet_bridge import api as api_module
from custom_components.pushbullet_bridge.api import (
    PushbulletAuthError,
    PushbulletClient,
    PushbulletError,
    PushbulletHTTPError,
    PushbulletRateLimitError,
    _redact,
    target_params,
)
from custom_components.pushbullet_bridge.reconcile import (
    ReconciliationDriver,
    SessionContext,
)
from tests.helpers import ENDPOINT_IDEN, FakeSink


class _FakeResponse:
    def __init__(self, status: int, body: Any = None, headers: dict | None = None) -> None:
        self.status = status
        self._body = body if isinstance(body, str) or body is None else json.dumps(body)
        self.headers = headers or {}

    async def text(self) -> str:
        return self._body or ""

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *_exc) -> None:
        return None


class _FakeSession:
    """Replays scripted responses (or exceptions) for each request."""

    def __init__(self, script: list[Any]) -> None:
        self._script = list(script)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def _no_retry_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(api_module, "_compute_delay", lambda *_args: 0.0)


def test_access_token_header_and_json_body() -> None:
    session = _FakeSession([_FakeResponse(200, {"iden": "u1"})])
    client = PushbulletClient(session, "o.secret")

    user = asyncio.run(client.async_get_user())

    assert user == {"iden": "u1"}
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://api.pushbullet.com/v2/users/me"
    assert call["headers"]["Access-Token"] == "o.secret"


def test_unauthorized_raises_auth_error_without_retry() -> None:
    session = _FakeSession([_FakeResponse(401, {"error": {"message": "bad token"}})])
    client = PushbulletClient(session, "o.secret")

    with pytest.raises(PushbulletAuthError) as excinfo:
        asyncio.run(client.async_get_user())

    assert excinfo.value.status == 401
    assert len(session.calls) == 1


def test_server_errors_are_retried() -> None:
    session = _FakeSession([_FakeResponse(503), _FakeResponse(200, {"devices": []})])
    client = PushbulletClient(session, "o.secret")

    assert asyncio.run(client.async_list_devices()) == []
    assert len(session.calls) == 2


def test_rate_limit_after_retries_raises_rate_limit_error() -> None:
    session = _FakeSession([_FakeResponse(429) for _ in range(3)])
    client = PushbulletClient(session, "o.secret", max_retries=2)

    with pytest.raises(PushbulletRateLimitError):
        asyncio.run(client.async_get_user())
    assert len(session.calls) == 3


def test_client_errors_are_not_retried() -> None:
    session = _FakeSession([_FakeResponse(400, {"error": {"message": "invalid"}})])
    client = PushbulletClient(session, "o.secret")

    with pytest.raises(PushbulletHTTPError):
        asyncio.run(client.async_delete_push("p1"))
    assert session.calls[0]["method"] == "DELETE"


def test_connection_errors_become_pushbullet_error() -> None:
    session = _FakeSession([aiohttp.ClientConnectionError("down")] * 2)
    client = PushbulletClient(session, "o.secret", max_retries=1)

    with pytest.raises(PushbulletError):
        asyncio.run(client.async_get_user())


def test_undecodable_body_becomes_pushbullet_error() -> None:
    class _BinaryResponse(_FakeResponse):
        async def text(self) -> str:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

    client = PushbulletClient(_FakeSession([_BinaryResponse(200)]), "o.secret")

    with pytest.raises(PushbulletError, match="Undecodable"):
        asyncio.run(client.async_get_user())


def test_device_list_without_array_is_an_error() -> None:
    client = PushbulletClient(_FakeSession([_FakeResponse(200, {})]), "o.secret")

    with pytest.raises(PushbulletError):
        asyncio.run(client.async_list_devices())


def test_history_follows_cursor() -> None:
    session = _FakeSession(
        [
            _FakeResponse(200, {"pushes": [{"iden": "a"}], "cursor": "next"}),
            _FakeResponse(200, {"pushes": [{"iden": "b"}]}),
        ]
    )
    client = PushbulletClient(session, "o.secret")

    pushes = asyncio.run(client.async_history(modified_after=5.0))

    assert [p["iden"] for p in pushes] == ["a", "b"]
    assert session.calls[0]["params"] == {"modified_after": 5.0}
    assert session.calls[1]["params"] == {"modified_after": 5.0, "cursor": "next"}


def test_history_with_limit_requests_single_page() -> None:
    session = _FakeSession([_FakeResponse(200, {"pushes": [{"iden": "a"}], "cursor": "more"})])
    client = PushbulletClient(session, "o.secret")

    pushes = asyncio.run(client.async_history(limit=1))

    assert len(pushes) == 1
    assert len(session.calls) == 1


def test_history_pagination_is_capped() -> None:
    session = _FakeSession(
        [_FakeResponse(200, {"pushes": [], "cursor": "again"}) for _ in range(2)]
    )
    client = PushbulletClient(session, "o.secret")

    asyncio.run(client.async_history(max_pages=2))

    assert len(session.calls) == 2


def test_history_without_page_cap_follows_every_cursor() -> None:
    session = _FakeSession(
        [
            _FakeResponse(200, {"pushes": [{"iden": f"p{n}"}], "cursor": f"c{n}"})
            for n in range(11)
        ]
        + [_FakeResponse(200, {"pushes": [{"iden": "p11"}]})]
    )
    client = PushbulletClient(session, "o.secret")

    pushes = asyncio.run(client.async_history(modified_after=0.0, max_pages=None))

    assert len(pushes) == 12
    assert len(session.calls) == 12


def test_reconcile_processes_history_beyond_default_page_cap() -> None:
    modified = [float(m) for m in range(1200, 0, -100)]
    script = [
        _FakeResponse(
            200,
            {
                "pushes": [
                    {"iden": f"p{int(m)}", "type": "note", "body": "b", "modified": m}
                ],
                **({"cursor": f"after-{int(m)}"} if m > 100.0 else {}),
            },
        )
        for m in modified
    ]
    sink = FakeSink()
    driver = ReconciliationDriver(
        PushbulletClient(_FakeSession(script), "o.secret"),
        sink,
        SessionContext(endpoint_iden=ENDPOINT_IDEN),
    )

    processed = asyncio.run(driver.async_reconcile())

    assert processed == 12
    assert len(sink.written) == 12
    assert driver.cursor == 1200.0


def test_note_push_targets_email_or_device() -> None:
    session = _FakeSession([_FakeResponse(200, {"iden": "p"}), _FakeResponse(200, {"iden": "q"})])
    client = PushbulletClient(session, "o.secret")

    asyncio.run(client.async_push_note("me@example.com", "T", "B"))
    asyncio.run(client.async_push_note("dev1", None, "B"))

    assert session.calls[0]["json"] == {
        "type": "note",
        "email": "me@example.com",
        "title": "T",
        "body": "B",
    }
    assert session.calls[1]["json"] == {"type": "note", "device_iden": "dev1", "body": "B"}


def test_target_params_and_redaction() -> None:
    assert target_params("") == {}
    assert target_params(" a@b.c ") == {"email": "a@b.c"}
    assert target_params("dev") == {"device_iden": "dev"}

    redacted = _redact("token o.abcdefghijklmnopqrstuvwxyz for alice@example.com")
    assert "o.abcdefghijklmnop" not in redacted
    assert "alice@" not in redacted
