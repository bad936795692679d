# custom_components/pushbullet_bridge/identity.py
"""Resolve the Pushbullet device that represents this Home Assistant instance."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .api import PushbulletAuthError, PushbulletError
from .const import DEFAULT_DEVICE_NICKNAME
from .exceptions import IdentityResolutionFailure

_LOGGER = logging.getLogger(__name__)


class DeviceApi(Protocol):
    """Subset of the API client used for identity resolution."""

    async def async_list_devices(self) -> list[dict[str, Any]]: ...

    async def async_create_device(self, nickname: str) -> dict[str, Any]: ...


def find_endpoint(devices: list[dict[str, Any]], nickname: str) -> str | None:
    """Return the iden of the first active device named ``nickname``."""

    for device in devices:
        if device.get("active") is False:
            continue
        if device.get("nickname") != nickname:
            continue
        iden = device.get("iden")
        if isinstance(iden, str) and iden:
            return iden
    return None


async def async_resolve_endpoint(
    client: DeviceApi, nickname: str = DEFAULT_DEVICE_NICKNAME
) -> str:
    """Return the endpoint iden, creating the device when it does not exist yet.

    Raises:
        PushbulletAuthError: the API key was rejected (re-raised unchanged so
            the caller can start a reauth flow).
        IdentityResolutionFailure: any other network or response failure.
    """

    try:
        devices = await client.async_list_devices()
    except PushbulletAuthError:
        raise
    except PushbulletError as err:
        raise IdentityResolutionFailure(f"Unable to list devices: {err}") from err

    iden = find_endpoint(devices, nickname)
    if iden is not None:
        _LOGGER.debug("Adopted existing endpoint '%s'", nickname)
        return iden

    _LOGGER.info("No endpoint named '%s' found; creating it", nickname)
    try:
        created = await client.async_create_device(nickname)
    except PushbulletAuthError:
        raise
    except PushbulletError as err:
        raise IdentityResolutionFailure(f"Unable to create device: {err}") from err

    iden = created.get("iden") if isinstance(created, dict) else None
    if not isinstance(iden, str) or not iden:
        raise IdentityResolutionFailure("Device creation response lacks an 'iden'")
    return iden
