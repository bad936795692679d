# custom_components/pushbullet_bridge/diagnostics.py
"""Diagnostics for the Pushbullet Bridge integration.

Exposes counters, stream state and the history cursor. Tokens, receivers,
endpoint identifiers and push contents are never included.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar, cast

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.loader import async_get_integration

from .const import CONF_API_KEY, DOMAIN, OPT_DISABLE_DELETE, OPT_RECEIVERS
from .ha_typing import callback

REDACTED = "**REDACTED**"

# Keys to redact anywhere they appear in the diagnostics payload.
TO_REDACT: list[str] = [
    CONF_API_KEY,
    OPT_RECEIVERS,
    "access_token",
    "token",
    "email",
    "iden",
    "endpoint_iden",
]


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return anonymized diagnostics for a config entry."""

    integration_meta: dict[str, Any] = {}
    try:
        integ = await async_get_integration(hass, DOMAIN)
        integration_meta = {"name": integ.name, "version": str(integ.version)}
    except Exception:  # noqa: BLE001
        integration_meta = {}

    payload: dict[str, Any] = {
        "integration": integration_meta,
        "entry": {
            "title_present": bool(entry.title),
            "data": dict(entry.data),
            "options": {
                OPT_RECEIVERS: entry.options.get(OPT_RECEIVERS),
                OPT_DISABLE_DELETE: entry.options.get(OPT_DISABLE_DELETE),
            },
        },
    }

    runtime = getattr(entry, "runtime_data", None)
    if runtime is not None:
        ctx = runtime.ctx
        session = runtime.session
        since_connect = (
            round(time.monotonic() - session.last_connected_monotonic, 1)
            if session.last_connected_monotonic
            else None
        )
        payload["runtime"] = {
            "receiver_count": len(runtime.receivers),
            "endpoint_iden": ctx.endpoint_iden,
            "cursor": ctx.cursor,
            "reconcile_count": ctx.reconcile_count,
            "published_count": ctx.published_count,
            "ignored_count": ctx.ignored_count,
            "deleted_count": ctx.deleted_count,
            "last_error": ctx.last_error,
            "stream": {
                "state": session.state.value,
                "connect_count": session.connect_count,
                "seconds_since_connect": since_connect,
                "last_error": session.last_error,
            },
            "last_push_type": (
                runtime.store.last.push_type if runtime.store.last else None
            ),
        }

    return async_redact_data(payload, TO_REDACT)


_T = TypeVar("_T")


@callback
def async_redact_data(data: _T, to_redact: Iterable[Any]) -> _T:
    """Redact sensitive keys from mappings or lists without importing HA's HTTP stack."""

    if not isinstance(data, (Mapping, list)):
        return data

    if isinstance(data, list):
        return cast(_T, [async_redact_data(item, to_redact) for item in data])

    redacted = dict(data)
    for key, value in list(redacted.items()):
        if value is None:
            continue
        if isinstance(value, str) and not value:
            continue
        if key in to_redact:
            redacted[key] = REDACTED
        elif isinstance(value, (Mapping, list)):
            redacted[key] = async_redact_data(value, to_redact)

    return cast(_T, redacted)
