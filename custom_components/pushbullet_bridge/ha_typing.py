# custom_components/pushbullet_bridge/ha_typing.py
"""Typed shims for Home Assistant base classes lacking typing metadata."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar, cast

from homeassistant.core import callback as ha_callback

_CallbackT = TypeVar("_CallbackT", bound=Callable[..., Any])


def callback(func: _CallbackT) -> _CallbackT:
    """Return a typed wrapper around Home Assistant's ``callback`` decorator."""

    return cast(_CallbackT, ha_callback(func))


if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    class _EntityBase:
        """Common entity protocol for Home Assistant platform entities."""

        hass: HomeAssistant
        entity_id: str | None

        async def async_added_to_hass(self) -> None: ...

        async def async_will_remove_from_hass(self) -> None: ...

        def async_write_ha_state(self) -> None: ...

    class BinarySensorEntity(_EntityBase):
        """Structural type for binary_sensor platform entities."""

    class SensorEntity(_EntityBase):
        """Structural type for sensor platform entities."""

    class RestoreSensor(SensorEntity):
        """Structural type for restore-capable sensors."""

        async def async_get_last_sensor_data(self) -> Any: ...

    class RestoreEntity(_EntityBase):
        """Structural type for entities restoring their last state."""

        async def async_get_last_state(self) -> Any: ...

else:
    from homeassistant.components.binary_sensor import BinarySensorEntity  # noqa: F401
    from homeassistant.components.sensor import (  # noqa: F401
        RestoreSensor,
        SensorEntity,
    )
    from homeassistant.helpers.restore_state import RestoreEntity  # noqa: F401
