# custom_components/pushbullet_bridge/__init__.py
"""Pushbullet Bridge integration for Home Assistant.

Lifecycle overview:
    * ``async_setup`` registers the integration-wide services once, so
      automations referencing them validate even without a loaded entry.
    * ``async_setup_entry`` resolves (or creates) this installation's endpoint
      on the account, wires the reconciliation driver to the state store and
      starts the supervised realtime stream.
    * ``async_unload_entry`` unloads the platforms and closes the stream.

Per-entry objects live on ``entry.runtime_data`` (`RuntimeData`). Integration
wide bookkeeping lives in ``hass.data[DOMAIN]`` (`_domain_data`).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, TypedDict, cast

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STOP, Platform
from homeassistant.core import Event, HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.dispatcher import async_dispatcher_send

from .api import PushbulletAuthError, PushbulletClient
from .const import (
    CONF_API_KEY,
    DEFAULT_DISABLE_DELETE,
    DEFAULT_RECEIVERS,
    DOMAIN,
    OPT_DISABLE_DELETE,
    OPT_RECEIVERS,
    OPTION_KEYS,
    signal_stream_state,
)
from .exceptions import IdentityResolutionFailure
from .identity import async_resolve_endpoint
from .outbound import split_receivers
from .reconcile import ReconciliationDriver, SessionContext
from .services import async_register_services
from .state import PushStateStore
from .stream import (
    ConnectedCallback,
    FrameCallback,
    PushbulletStreamClient,
    StreamSession,
    StreamState,
)

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.SENSOR, Platform.BINARY_SENSOR]


@dataclass(slots=True)
class RuntimeData:
    """Container for per-entry runtime structures shared across platforms."""

    client: PushbulletClient
    ctx: SessionContext
    driver: ReconciliationDriver
    session: StreamSession
    store: PushStateStore
    receivers: list[str]


class PushbulletBridgeDomainData(TypedDict, total=False):
    """Typed container describing objects stored under ``hass.data[DOMAIN]``."""

    services_lock: asyncio.Lock
    services_registered: bool


def _domain_data(hass: HomeAssistant) -> PushbulletBridgeDomainData:
    """Return the typed domain data bucket, creating it on first access."""

    return cast(PushbulletBridgeDomainData, hass.data.setdefault(DOMAIN, {}))


# ------------------------------ Data/Options ---------------------------------


def _opt(entry: ConfigEntry, key: str, default: Any) -> Any:
    """Read a configuration value, preferring options over data."""
    if key in entry.options:
        return entry.options.get(key, default)
    return entry.data.get(key, default)


def _effective_config(entry: ConfigEntry) -> dict[str, Any]:
    """Assemble a dict of non-secret runtime settings (options-first)."""
    return {k: _opt(entry, k, None) for k in OPTION_KEYS}


# ------------------------------ Setup ----------------------------------------


async def async_setup(hass: HomeAssistant, config: dict[str, Any]) -> bool:
    """Set up the integration namespace and register global services."""

    bucket = _domain_data(hass)
    services_lock = bucket.setdefault("services_lock", asyncio.Lock())
    async with services_lock:
        if not bucket.get("services_registered"):
            await async_register_services(hass, {"domain": DOMAIN})
            bucket["services_registered"] = True
            _LOGGER.debug("Registered %s services at integration level", DOMAIN)
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Resolve the endpoint identity and start the realtime session."""

    http_session = async_get_clientsession(hass)
    client = PushbulletClient(http_session, entry.data[CONF_API_KEY])

    try:
        endpoint_iden = await async_resolve_endpoint(client)
    except PushbulletAuthError as err:
        raise ConfigEntryAuthFailed(
            "Pushbullet rejected the access token"
        ) from err
    except IdentityResolutionFailure as err:
        raise ConfigEntryNotReady(str(err)) from err

    _LOGGER.debug(
        "[entry=%s] Endpoint resolved; options=%s",
        entry.entry_id,
        {k: v for k, v in _effective_config(entry).items() if k != OPT_RECEIVERS},
    )

    store = PushStateStore(hass, entry.entry_id)
    ctx = SessionContext(endpoint_iden=endpoint_iden)
    driver = ReconciliationDriver(
        client,
        store,
        ctx,
        disable_delete=bool(_opt(entry, OPT_DISABLE_DELETE, DEFAULT_DISABLE_DELETE)),
    )

    def _worker_factory(
        on_frame: FrameCallback, on_connected: ConnectedCallback
    ) -> PushbulletStreamClient:
        return PushbulletStreamClient(
            http_session, client.api_key, on_frame, on_connected
        )

    def _on_state_change(state: StreamState) -> None:
        async_dispatcher_send(hass, signal_stream_state(entry.entry_id))

    session = StreamSession(
        driver,
        _worker_factory,
        name=f"{DOMAIN}[{entry.entry_id}]",
        on_state_change=_on_state_change,
    )

    entry.runtime_data = RuntimeData(
        client=client,
        ctx=ctx,
        driver=driver,
        session=session,
        store=store,
        receivers=split_receivers(_opt(entry, OPT_RECEIVERS, DEFAULT_RECEIVERS)),
    )

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    await session.async_connect()

    async def _async_close_on_stop(_event: Event) -> None:
        await session.async_close()

    entry.async_on_unload(
        hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _async_close_on_stop)
    )
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))
    _LOGGER.info("[entry=%s] Pushbullet Bridge set up", entry.entry_id)
    return True


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the entry so changed options take effect."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload platforms and close the realtime session."""

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    runtime: RuntimeData | None = getattr(entry, "runtime_data", None)
    if runtime is not None:
        await runtime.session.async_close()
    _LOGGER.debug("[entry=%s] Unloaded (ok=%s)", entry.entry_id, unload_ok)
    return unload_ok
