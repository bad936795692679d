# custom_components/pushbullet_bridge/sensor.py
"""Sensor entities mirroring the most recent push.

Four text sensors expose the scalar fields of the last published
`CanonicalNotification` under the per-entry service device:

- `push_type`: declared push type (``note``, ``link``, ...).
- `push_title`: title, file name or fixed topic.
- `push_message`: secondary text (link/file body).
- `push_payload`: main content (body, url, address, list items as JSON).

Home Assistant caps states at 255 characters. Longer values are truncated in
the state and exposed in full through the ``full_value`` attribute.
Values are restored across restarts until the first push arrives.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from homeassistant.components.sensor import SensorEntityDescription
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import (
    MAX_STATE_LENGTH,
    STATE_PUSH_MESSAGE,
    STATE_PUSH_PAYLOAD,
    STATE_PUSH_TITLE,
    STATE_PUSH_TYPE,
    signal_push_updated,
)
from .entity import PushbulletBridgeEntity, resolve_runtime
from .ha_typing import RestoreSensor

if TYPE_CHECKING:
    from . import RuntimeData

_LOGGER = logging.getLogger(__name__)

ATTR_FULL_VALUE = "full_value"

PUSH_SENSOR_DESCRIPTIONS: tuple[SensorEntityDescription, ...] = (
    SensorEntityDescription(
        key=STATE_PUSH_TYPE,
        translation_key=STATE_PUSH_TYPE,
        icon="mdi:shape-outline",
    ),
    SensorEntityDescription(
        key=STATE_PUSH_TITLE,
        translation_key=STATE_PUSH_TITLE,
        icon="mdi:format-title",
    ),
    SensorEntityDescription(
        key=STATE_PUSH_MESSAGE,
        translation_key=STATE_PUSH_MESSAGE,
        icon="mdi:message-text-outline",
    ),
    SensorEntityDescription(
        key=STATE_PUSH_PAYLOAD,
        translation_key=STATE_PUSH_PAYLOAD,
        icon="mdi:bell-ring-outline",
    ),
)


def truncate_state(value: str | None) -> str | None:
    """Clamp a value to the maximum state length Home Assistant accepts."""
    if value is None or len(value) <= MAX_STATE_LENGTH:
        return value
    return value[: MAX_STATE_LENGTH - 1] + "…"


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the push sensors for one config entry."""
    runtime = resolve_runtime(entry)
    async_add_entities(
        PushbulletPushSensor(entry, runtime, description)
        for description in PUSH_SENSOR_DESCRIPTIONS
    )


class PushbulletPushSensor(PushbulletBridgeEntity, RestoreSensor):
    """Text sensor backed by one field of the push state store."""

    def __init__(
        self,
        entry: ConfigEntry,
        runtime: RuntimeData,
        description: SensorEntityDescription,
    ) -> None:
        super().__init__(
            entry, runtime, description, signal_push_updated(entry.entry_id)
        )
        self._restored: str | None = None

    def _current(self) -> str | None:
        store = self._runtime.store
        if store.last is None:
            return self._restored
        value = store.value(self.entity_description.key)
        return None if value is None else str(value)

    @property
    def native_value(self) -> str | None:
        return truncate_state(self._current())

    @property
    def extra_state_attributes(self) -> dict[str, Any] | None:
        value = self._current()
        if value is None or len(value) <= MAX_STATE_LENGTH:
            return None
        return {ATTR_FULL_VALUE: value}

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        if self._runtime.store.last is not None:
            return
        try:
            data = await self.async_get_last_sensor_data()
        except (RuntimeError, AttributeError) as err:
            _LOGGER.debug("Failed to restore state for %s: %s", self.entity_id, err)
            return
        value = getattr(data, "native_value", None) if data else None
        if value in (None, "unknown", "unavailable"):
            return
        # A truncated state is restored as-is; the full value is not persisted.
        self._restored = str(value)
