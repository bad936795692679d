# tests/test_config_flow.py
"""Config, reauth and options flow behavior with the API validation stubbed."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from custom_components.pushbullet_bridge import config_flow
from custom_components.pushbullet_bridge.api import PushbulletAuthError, PushbulletError
from custom_components.pushbullet_bridge.const import (
    CONF_API_KEY,
    DOMAIN,
    OPT_DISABLE_DELETE,
    OPT_RECEIVERS,
)


def _echo(*_args: Any, **kwargs: Any) -> dict[str, Any]:
    return kwargs


def _flow() -> config_flow.ConfigFlow:
    flow = config_flow.ConfigFlow()
    flow.hass = SimpleNamespace()
    flow.async_set_unique_id = AsyncMock()
    flow._abort_if_unique_id_configured = MagicMock()
    flow._abort_if_unique_id_mismatch = MagicMock()
    flow.async_create_entry = MagicMock(side_effect=_echo)
    flow.async_show_form = MagicMock(side_effect=_echo)
    flow.async_update_reload_and_abort = MagicMock(side_effect=_echo)
    return flow


def test_flow_handler_is_registered() -> None:
    from homeassistant import config_entries  # noqa: PLC0415

    assert config_entries.HANDLERS.get(DOMAIN) is config_flow.ConfigFlow


def test_user_step_creates_entry(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        config_flow,
        "async_validate_api_key",
        AsyncMock(return_value={"iden": "u1", "name": "Jane"}),
    )
    flow = _flow()

    result = asyncio.run(flow.async_step_user({CONF_API_KEY: " o.token "}))

    flow.async_set_unique_id.assert_awaited_once_with("u1")
    flow._abort_if_unique_id_configured.assert_called_once()
    assert result["title"] == "Pushbullet (Jane)"
    assert result["data"] == {CONF_API_KEY: "o.token"}
    assert result["options"] == {OPT_RECEIVERS: "", OPT_DISABLE_DELETE: False}


@pytest.mark.parametrize(
    ("raised", "error"),
    [
        (config_flow.InvalidAuth(), "invalid_auth"),
        (config_flow.CannotConnect(), "cannot_connect"),
        (RuntimeError("boom"), "unknown"),
    ],
)
def test_user_step_maps_errors(
    monkeypatch: pytest.MonkeyPatch, raised: Exception, error: str
) -> None:
    monkeypatch.setattr(
        config_flow, "async_validate_api_key", AsyncMock(side_effect=raised)
    )
    flow = _flow()

    result = asyncio.run(flow.async_step_user({CONF_API_KEY: "o.token"}))

    assert result["step_id"] == "user"
    assert result["errors"] == {"base": error}
    flow.async_create_entry.assert_not_called()


def test_validate_api_key_maps_client_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Client:
        def __init__(self, _session, api_key: str) -> None:
            self.api_key = api_key

        async def async_get_user(self):
            if self.api_key == "bad":
                raise PushbulletAuthError(401)
            if self.api_key == "down":
                raise PushbulletError("offline")
            return {"iden": "u1"}

    monkeypatch.setattr(config_flow, "PushbulletClient", _Client)
    monkeypatch.setattr(config_flow, "async_get_clientsession", lambda _hass: None)

    assert asyncio.run(config_flow.async_validate_api_key(None, "good")) == {"iden": "u1"}
    with pytest.raises(config_flow.InvalidAuth):
        asyncio.run(config_flow.async_validate_api_key(None, "bad"))
    with pytest.raises(config_flow.CannotConnect):
        asyncio.run(config_flow.async_validate_api_key(None, "down"))


def test_reauth_updates_token_for_same_account(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        config_flow, "async_validate_api_key", AsyncMock(return_value={"iden": "u1"})
    )
    flow = _flow()
    entry = SimpleNamespace(title="Pushbullet")
    flow._get_reauth_entry = MagicMock(return_value=entry)

    result = asyncio.run(flow.async_step_reauth_confirm({CONF_API_KEY: "o.new"}))

    flow._abort_if_unique_id_mismatch.assert_called_once_with(reason="wrong_account")
    assert result == {"data_updates": {CONF_API_KEY: "o.new"}}
    flow.async_update_reload_and_abort.assert_called_once_with(
        entry, data_updates={CONF_API_KEY: "o.new"}
    )


def test_options_flow_normalizes_receivers() -> None:
    handler = config_flow.OptionsFlowHandler()
    handler.async_create_entry = MagicMock(side_effect=_echo)

    result = asyncio.run(
        handler.async_step_init(
            {OPT_RECEIVERS: " a@b.c , dev1,, a@b.c ", OPT_DISABLE_DELETE: True}
        )
    )

    assert result["data"] == {OPT_RECEIVERS: "a@b.c,dev1", OPT_DISABLE_DELETE: True}
