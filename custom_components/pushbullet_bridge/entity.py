# custom_components/pushbullet_bridge/entity.py
"""Common entity helpers for the Pushbullet Bridge integration.

All entities of a config entry hang off one *service device* (see
`const.service_device_identifier`) and use ``"<entry_id>:<key>"`` unique IDs.
Entities are pure consumers: they read `RuntimeData` and refresh on dispatcher
signals, never performing network I/O themselves.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homeassistant.config_entries import ConfigEntry
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.device_registry import DeviceEntryType
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import DeviceInfo, Entity, EntityDescription

from .const import (
    INTEGRATION_VERSION,
    SERVICE_DEVICE_MANUFACTURER,
    SERVICE_DEVICE_MODEL,
    SERVICE_DEVICE_NAME,
    service_device_identifier,
)
from .ha_typing import callback

if TYPE_CHECKING:
    from . import RuntimeData

_LOGGER = logging.getLogger(__name__)


def resolve_runtime(entry: ConfigEntry) -> RuntimeData:
    """Return the runtime container stored on ``entry.runtime_data``.

    Raises ``HomeAssistantError`` if the entry has not finished setting up.
    """

    runtime = getattr(entry, "runtime_data", None)
    if runtime is None:
        raise HomeAssistantError("pushbullet_bridge runtime not ready")
    return runtime


class PushbulletBridgeEntity(Entity):
    """Base entity bound to one config entry and one dispatcher signal."""

    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(
        self,
        entry: ConfigEntry,
        runtime: RuntimeData,
        description: EntityDescription,
        signal: str,
    ) -> None:
        self.entity_description = description
        self._entry = entry
        self._runtime = runtime
        self._signal = signal
        self._attr_unique_id = self.join_parts(entry.entry_id, description.key)
        self._attr_translation_key = description.translation_key or description.key

    @staticmethod
    def join_parts(*parts: str) -> str:
        """Join unique-id parts with the canonical separator."""
        return ":".join(part for part in parts if part)

    @property
    def device_info(self) -> DeviceInfo:
        """Return the service device shared by all entities of the entry."""
        return DeviceInfo(
            identifiers={service_device_identifier(self._entry.entry_id)},
            name=self._entry.title or SERVICE_DEVICE_NAME,
            manufacturer=SERVICE_DEVICE_MANUFACTURER,
            model=SERVICE_DEVICE_MODEL,
            sw_version=INTEGRATION_VERSION,
            entry_type=DeviceEntryType.SERVICE,
        )

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        self.async_on_remove(
            async_dispatcher_connect(self.hass, self._signal, self._handle_update)
        )

    @callback
    def _handle_update(self) -> None:
        self.async_write_ha_state()
