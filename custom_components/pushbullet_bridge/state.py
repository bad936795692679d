# custom_components/pushbullet_bridge/state.py
"""Home Assistant state sink for normalized pushes.

`PushStateStore` keeps the most recent published notification per config entry
and fans it out to the push entities through the dispatcher. Each published
push is also fired on the event bus (`pushbullet_bridge_push_received`) so
automations can react to pushes that carry identical values.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.helpers.dispatcher import async_dispatcher_send

from .const import (
    EVENT_PUSH_RECEIVED,
    STATE_PUSH_FOR_ALL,
    STATE_PUSH_MESSAGE,
    STATE_PUSH_PAYLOAD,
    STATE_PUSH_TITLE,
    STATE_PUSH_TYPE,
    signal_push_updated,
)
from .normalizer import CanonicalNotification

_LOGGER = logging.getLogger(__name__)


class PushStateStore:
    """Entry-scoped key-value sink backing the push entities."""

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        self._hass = hass
        self._entry_id = entry_id
        self.last: CanonicalNotification | None = None

    @property
    def values(self) -> dict[str, Any]:
        """Return the current sink values keyed by state name."""

        last = self.last
        if last is None:
            return {
                STATE_PUSH_TYPE: None,
                STATE_PUSH_TITLE: None,
                STATE_PUSH_MESSAGE: None,
                STATE_PUSH_PAYLOAD: None,
                STATE_PUSH_FOR_ALL: None,
            }
        return {
            STATE_PUSH_TYPE: last.push_type,
            STATE_PUSH_TITLE: last.topic,
            STATE_PUSH_MESSAGE: last.message,
            STATE_PUSH_PAYLOAD: last.payload,
            STATE_PUSH_FOR_ALL: last.for_all,
        }

    def value(self, key: str) -> Any:
        return self.values.get(key)

    async def async_write(self, notification: CanonicalNotification) -> None:
        """Store the notification and notify listeners."""

        self.last = notification
        async_dispatcher_send(self._hass, signal_push_updated(self._entry_id))
        self._hass.bus.async_fire(
            EVENT_PUSH_RECEIVED,
            {"entry_id": self._entry_id, **asdict(notification)},
        )
        _LOGGER.debug(
            "[entry=%s] push state updated (type=%s)",
            self._entry_id,
            notification.push_type,
        )
