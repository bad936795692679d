# custom_components/pushbullet_bridge/exceptions.py
"""Custom exception types with translated fallbacks for Pushbullet Bridge."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.exceptions import HomeAssistantError as HassHomeAssistantError

from .const import DOMAIN

if TYPE_CHECKING:

    class HomeAssistantError(Exception):
        """Type checker placeholder matching the Home Assistant error base."""

        ...

else:
    HomeAssistantError = HassHomeAssistantError


class PushbulletBridgeError(HomeAssistantError):
    """Base class for failures raised by the bridge core."""

    default_translation_key: str | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.translation_domain = DOMAIN
        self.translation_key = self.default_translation_key


class IdentityResolutionFailure(PushbulletBridgeError):
    """Raised when the local endpoint identity cannot be resolved or created.

    Fatal to session start: inbound pushes cannot be filtered without it.
    """

    default_translation_key = "identity_resolution_failed"


class HistorySeedFailure(PushbulletBridgeError):
    """Raised when the initial history fetch after connect fails."""

    default_translation_key = "history_seed_failed"


class ReconciliationQueryFailure(PushbulletBridgeError):
    """Raised when a history query during reconciliation fails."""

    default_translation_key = "reconciliation_query_failed"


class RecordDeletionFailure(PushbulletBridgeError):
    """Raised when a consumed push could not be deleted remotely."""

    default_translation_key = "record_deletion_failed"

    def __init__(self, iden: str, message: str) -> None:
        super().__init__(message)
        self.iden = iden


class OutboundSendFailure(PushbulletBridgeError):
    """Raised when an outbound push to one receiver fails."""

    default_translation_key = "outbound_send_failed"

    def __init__(self, receiver: str, message: str) -> None:
        super().__init__(message)
        self.receiver = receiver


class TransportError(PushbulletBridgeError):
    """Raised when the event stream transport fails."""

    default_translation_key = "transport_error"
