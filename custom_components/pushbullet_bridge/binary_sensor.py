# custom_components/pushbullet_bridge/binary_sensor.py
"""Binary sensor entities for the Pushbullet Bridge integration.

Provided sensors:
- `push_for_all`: `on` when the last push was addressed to every device of
  the account rather than to this installation's endpoint.
- `stream_connected` (diagnostic): `on` while the realtime stream is up.
"""

from __future__ import annotations

import logging

from homeassistant.components.binary_sensor import (
    BinarySensorDeviceClass,
    BinarySensorEntityDescription,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import STATE_OFF, STATE_ON
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import EntityCategory
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import (
    STATE_PUSH_FOR_ALL,
    STATE_STREAM_CONNECTED,
    signal_push_updated,
    signal_stream_state,
)
from .entity import PushbulletBridgeEntity, resolve_runtime
from .ha_typing import BinarySensorEntity, RestoreEntity

_LOGGER = logging.getLogger(__name__)

FOR_ALL_DESC = BinarySensorEntityDescription(
    key=STATE_PUSH_FOR_ALL,
    translation_key=STATE_PUSH_FOR_ALL,
    icon="mdi:account-multiple",
)

STREAM_CONNECTED_DESC = BinarySensorEntityDescription(
    key=STATE_STREAM_CONNECTED,
    translation_key=STATE_STREAM_CONNECTED,
    device_class=BinarySensorDeviceClass.CONNECTIVITY,
    entity_category=EntityCategory.DIAGNOSTIC,
)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up binary sensors for one config entry."""
    runtime = resolve_runtime(entry)
    async_add_entities(
        [
            PushForAllBinarySensor(
                entry, runtime, FOR_ALL_DESC, signal_push_updated(entry.entry_id)
            ),
            StreamConnectedBinarySensor(
                entry,
                runtime,
                STREAM_CONNECTED_DESC,
                signal_stream_state(entry.entry_id),
            ),
        ]
    )


class PushForAllBinarySensor(PushbulletBridgeEntity, BinarySensorEntity, RestoreEntity):
    """Whether the last push was a broadcast to all devices.

    Until the first push of this run arrives, the state restored from before
    the restart is reported.
    """

    _restored: bool | None = None

    @property
    def is_on(self) -> bool | None:
        if self._runtime.store.last is None:
            return self._restored
        return self._runtime.store.value(STATE_PUSH_FOR_ALL)

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        if self._runtime.store.last is not None:
            return
        try:
            last_state = await self.async_get_last_state()
        except (RuntimeError, AttributeError) as err:
            _LOGGER.debug("Failed to get last state for %s: %s", self.entity_id, err)
            return
        if last_state is None:
            return
        if last_state.state == STATE_ON:
            self._restored = True
        elif last_state.state == STATE_OFF:
            self._restored = False


class StreamConnectedBinarySensor(PushbulletBridgeEntity, BinarySensorEntity):
    """Connectivity of the realtime stream."""

    @property
    def is_on(self) -> bool:
        return self._runtime.session.is_connected
