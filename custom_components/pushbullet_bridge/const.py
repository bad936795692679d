# custom_components/pushbullet_bridge/const.py
"""Constants for the Pushbullet Bridge integration.

All constants defined here are intended to be import-safe across the integration.
Keep comments and docstrings in English; user-facing strings belong in translations.
"""

from __future__ import annotations

# --------------------------------------------------------------------------------------
# Core identifiers
# --------------------------------------------------------------------------------------
DOMAIN: str = "pushbullet_bridge"
# Keep the integration version aligned across the project (match manifest.json)
INTEGRATION_VERSION: str = "0.3.0"

# --------------------------------------------------------------------------------------
# Service device metadata
# --------------------------------------------------------------------------------------
SERVICE_DEVICE_NAME: str = "Pushbullet"
SERVICE_DEVICE_MODEL: str = "Pushbullet Bridge"
SERVICE_DEVICE_MANUFACTURER: str = "Pushbullet"
SERVICE_DEVICE_IDENTIFIER_PREFIX: str = "account_"


def service_device_identifier(entry_id: str) -> tuple[str, str]:
    """Return the (domain, identifier) tuple for the per-entry service device."""
    return (DOMAIN, f"{SERVICE_DEVICE_IDENTIFIER_PREFIX}{entry_id}")


# --------------------------------------------------------------------------------------
# Configuration keys (data vs. options separation)
# --------------------------------------------------------------------------------------
# Data (credentials): stored in config_entry.data
CONF_API_KEY: str = "api_key"

# Options (user-changeable): stored in config_entry.options
OPT_RECEIVERS: str = "receivers"
OPT_DISABLE_DELETE: str = "disable_delete"

OPTION_KEYS: tuple[str, ...] = (OPT_RECEIVERS, OPT_DISABLE_DELETE)

DEFAULT_RECEIVERS: str = ""
DEFAULT_DISABLE_DELETE: bool = False

# --------------------------------------------------------------------------------------
# Remote service
# --------------------------------------------------------------------------------------
API_BASE_URL: str = "https://api.pushbullet.com/v2"
STREAM_URL_TEMPLATE: str = "wss://stream.pushbullet.com/websocket/{api_key}"

# Reserved nickname of the endpoint this installation registers on the account.
DEFAULT_DEVICE_NICKNAME: str = "Home Assistant"
DEVICE_MODEL: str = "Home Assistant"
DEVICE_MANUFACTURER: str = "Home Assistant"
DEVICE_ICON: str = "system"

# Outbound defaults
DEFAULT_PUSH_TITLE: str = "[Home Assistant]"
PUSH_TYPE_NOTE: str = "note"
PUSH_TYPE_LINK: str = "link"
PUSH_TYPE_FILE: str = "file"
OUTBOUND_PUSH_TYPES: tuple[str, ...] = (PUSH_TYPE_NOTE, PUSH_TYPE_LINK, PUSH_TYPE_FILE)

# --------------------------------------------------------------------------------------
# HTTP tunables
# --------------------------------------------------------------------------------------
API_MAX_RETRIES: int = 3
API_INITIAL_BACKOFF_S: float = 1.0
API_BACKOFF_FACTOR: float = 2.0
API_MAX_RETRY_AFTER_S: float = 60.0
API_TIMEOUT_S: float = 30.0
# Default upper bound of history pages followed by one history query.
HISTORY_MAX_PAGES: int = 10

# --------------------------------------------------------------------------------------
# Stream tunables
# --------------------------------------------------------------------------------------
# Pushbullet sends a "nop" every 30 seconds; three missed keepalives end the worker.
STREAM_IDLE_TIMEOUT_S: float = 90.0
STREAM_CONNECT_TIMEOUT_S: float = 20.0
STREAM_INITIAL_BACKOFF_S: float = 1.0
STREAM_MAX_BACKOFF_S: float = 300.0
STREAM_CLOSE_TIMEOUT_S: float = 5.0

# --------------------------------------------------------------------------------------
# Stream frame vocabulary
# --------------------------------------------------------------------------------------
FRAME_TICKLE: str = "tickle"
FRAME_PUSH: str = "push"
FRAME_NOP: str = "nop"
TICKLE_SUBTYPE_PUSH: str = "push"

# --------------------------------------------------------------------------------------
# State sink keys (entity description keys)
# --------------------------------------------------------------------------------------
STATE_PUSH_TYPE: str = "push_type"
STATE_PUSH_TITLE: str = "push_title"
STATE_PUSH_MESSAGE: str = "push_message"
STATE_PUSH_PAYLOAD: str = "push_payload"
STATE_PUSH_FOR_ALL: str = "push_for_all"
STATE_STREAM_CONNECTED: str = "stream_connected"

# Home Assistant rejects states longer than this.
MAX_STATE_LENGTH: int = 255

# --------------------------------------------------------------------------------------
# Dispatcher signals and bus events
# --------------------------------------------------------------------------------------
EVENT_PUSH_RECEIVED: str = f"{DOMAIN}_push_received"


def signal_push_updated(entry_id: str) -> str:
    """Return the dispatcher signal used to notify push state entities."""
    return f"{DOMAIN}_push_{entry_id}"


def signal_stream_state(entry_id: str) -> str:
    """Return the dispatcher signal used for stream connectivity changes."""
    return f"{DOMAIN}_stream_{entry_id}"


# --------------------------------------------------------------------------------------
# Services
# --------------------------------------------------------------------------------------
SERVICE_SEND: str = "send"
SERVICE_RECONCILE: str = "reconcile"

ATTR_MESSAGE: str = "message"
ATTR_TITLE: str = "title"
ATTR_TYPE: str = "type"
ATTR_URL: str = "url"
ATTR_FILE: str = "file"
ATTR_RECEIVER: str = "receiver"
ATTR_ENTRY_ID: str = "entry_id"
