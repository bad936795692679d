# custom_components/pushbullet_bridge/services.py
"""Integration-wide services for Pushbullet Bridge.

Services are registered from ``async_setup`` so they exist even when no entry
is loaded; metadata lives in ``services.yaml``. Handlers resolve the target
config entry at call time and raise translated errors for bad input.

- ``pushbullet_bridge.send``: deliver a note, link or file to each configured
  receiver (or to all of the account's devices when none is configured).
- ``pushbullet_bridge.reconcile``: run a history reconciliation pass now.
"""

from __future__ import annotations

import logging
import mimetypes
import os
from collections.abc import Iterable, Mapping
from typing import Any

from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError

from .const import (
    ATTR_ENTRY_ID,
    ATTR_FILE,
    ATTR_MESSAGE,
    ATTR_RECEIVER,
    ATTR_TITLE,
    ATTR_TYPE,
    ATTR_URL,
    DEFAULT_PUSH_TITLE,
    DOMAIN,
    OUTBOUND_PUSH_TYPES,
    PUSH_TYPE_FILE,
    PUSH_TYPE_LINK,
    PUSH_TYPE_NOTE,
    SERVICE_RECONCILE,
    SERVICE_SEND,
)
from .outbound import OutboundMessage, async_send_push, split_receivers

_LOGGER = logging.getLogger(__name__)


def _service_validation_error(
    message: str,
    *,
    translation_key: str,
    translation_placeholders: Mapping[str, Any] | None = None,
) -> ServiceValidationError:
    """Create a translated ServiceValidationError."""

    placeholders = (
        None if translation_placeholders is None else dict(translation_placeholders)
    )
    return ServiceValidationError(
        message,
        translation_domain=DOMAIN,
        translation_key=translation_key,
        translation_placeholders=placeholders,
    )


def _read_file(path: str) -> bytes:
    with open(path, "rb") as handle:
        return handle.read()


async def async_register_services(hass: HomeAssistant, ctx: dict[str, Any]) -> None:
    """Register integration-wide services, using services.yaml for metadata.

    ``ctx`` is passed by __init__.py to avoid import cycles. Expected keys:
    - "domain": str
    """

    # ---- Small local helpers ---------------------------------------------------

    def _loaded_entries() -> list[Any]:
        return [
            entry
            for entry in hass.config_entries.async_entries(DOMAIN)
            if getattr(entry, "runtime_data", None) is not None
        ]

    def _resolve_entries(call: ServiceCall, *, single: bool) -> list[Any]:
        """Return the entries a call targets or raise a translated error."""

        entry_id = call.data.get(ATTR_ENTRY_ID)
        if entry_id:
            entry = hass.config_entries.async_get_entry(str(entry_id))
            if entry is None or entry.domain != DOMAIN:
                raise _service_validation_error(
                    f"Config entry '{entry_id}' was not found.",
                    translation_key="entry_not_found",
                    translation_placeholders={"entry_id": str(entry_id)},
                )
            if getattr(entry, "runtime_data", None) is None:
                raise _service_validation_error(
                    f"Config entry '{entry_id}' is not loaded.",
                    translation_key="entry_not_loaded",
                    translation_placeholders={"entry_id": str(entry_id)},
                )
            return [entry]

        entries = _loaded_entries()
        if not entries:
            raise _service_validation_error(
                "No Pushbullet Bridge account is loaded.",
                translation_key="no_active_entry",
            )
        return entries[:1] if single else entries

    def _receivers_for(call: ServiceCall, runtime: Any) -> list[str]:
        raw = call.data.get(ATTR_RECEIVER)
        if raw is None or raw == "":
            return list(runtime.receivers)
        if isinstance(raw, str):
            return split_receivers(raw)
        if isinstance(raw, Iterable):
            return split_receivers(str(item) for item in raw)
        return split_receivers(str(raw))

    async def _build_message(call: ServiceCall) -> OutboundMessage:
        push_type = str(call.data.get(ATTR_TYPE) or PUSH_TYPE_NOTE).lower()
        if push_type not in OUTBOUND_PUSH_TYPES:
            raise _service_validation_error(
                f"Unsupported push type '{push_type}'.",
                translation_key="invalid_push_type",
                translation_placeholders={"type": push_type},
            )

        message = call.data.get(ATTR_MESSAGE)
        payload: dict[str, Any] = {
            "type": push_type,
            "title": call.data.get(ATTR_TITLE, DEFAULT_PUSH_TITLE),
            "message": message,
        }

        if push_type == PUSH_TYPE_LINK:
            url = call.data.get(ATTR_URL)
            if not isinstance(url, str) or not url:
                raise _service_validation_error(
                    "A link push requires a url.",
                    translation_key="missing_url",
                )
            payload["url"] = url
        elif push_type == PUSH_TYPE_FILE:
            path = call.data.get(ATTR_FILE)
            if not isinstance(path, str) or not path:
                raise _service_validation_error(
                    "A file push requires a file path.",
                    translation_key="missing_file",
                )
            if not hass.config.is_allowed_path(path):
                raise _service_validation_error(
                    f"Path '{path}' is not in allowlist_external_dirs.",
                    translation_key="file_not_allowed",
                    translation_placeholders={"file": path},
                )
            try:
                content = await hass.async_add_executor_job(_read_file, path)
            except OSError as err:
                raise _service_validation_error(
                    f"Unable to read '{path}': {err}",
                    translation_key="file_unreadable",
                    translation_placeholders={"file": path, "error": str(err)},
                ) from err
            file_type, _encoding = mimetypes.guess_type(path)
            payload["file_name"] = os.path.basename(path)
            payload["file_type"] = file_type or "application/octet-stream"
            payload["file_content"] = content
        elif message is None:
            raise _service_validation_error(
                "A note push requires a message.",
                translation_key="missing_message",
            )

        return OutboundMessage.from_payload(payload)

    # ---- Handlers --------------------------------------------------------------

    async def async_send_service(call: ServiceCall) -> None:
        """Handle the send service call (metadata in services.yaml)."""

        (entry,) = _resolve_entries(call, single=True)
        runtime = entry.runtime_data
        msg = await _build_message(call)
        receivers = _receivers_for(call, runtime)

        outcome = await async_send_push(runtime.client, receivers, msg)
        failures = {r: f for r, f in outcome.items() if f is not None}
        if failures and len(failures) == len(outcome):
            first = next(iter(failures.values()))
            raise HomeAssistantError(
                f"Push could not be delivered: {first}",
                translation_domain=DOMAIN,
                translation_key="send_failed",
                translation_placeholders={"error": str(first)},
            ) from first
        _LOGGER.debug(
            "[entry=%s] push sent (%d/%d delivered)",
            entry.entry_id,
            len(outcome) - len(failures),
            len(outcome),
        )

    async def async_reconcile_service(call: ServiceCall) -> None:
        """Run a reconciliation pass for the targeted entries."""

        for entry in _resolve_entries(call, single=False):
            if not entry.runtime_data.session.is_connected:
                _LOGGER.warning(
                    "[entry=%s] Event stream is not connected; skipping reconciliation",
                    entry.entry_id,
                )
                continue
            processed = await entry.runtime_data.driver.async_reconcile()
            _LOGGER.info(
                "[entry=%s] Manual reconciliation processed %d pushes",
                entry.entry_id,
                processed,
            )

    # ---- Registrations (global; visible even without entries) -----------------
    # NOTE: No voluptuous schemas here; services.yaml is the single source of truth.
    domain = ctx.get("domain", DOMAIN)
    hass.services.async_register(domain, SERVICE_SEND, async_send_service)
    hass.services.async_register(domain, SERVICE_RECONCILE, async_reconcile_service)
