# custom_components/pushbullet_bridge/outbound.py
"""Outbound push fan-out over a receiver list.

Each receiver is sent to independently; a failure for one receiver is logged
and reported in the result but never prevents delivery to the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .api import PushbulletClient, PushbulletError
from .const import (
    DEFAULT_PUSH_TITLE,
    OUTBOUND_PUSH_TYPES,
    PUSH_TYPE_FILE,
    PUSH_TYPE_LINK,
    PUSH_TYPE_NOTE,
)
from .exceptions import OutboundSendFailure

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """A push to be delivered to every receiver."""

    push_type: str = PUSH_TYPE_NOTE
    title: str | None = DEFAULT_PUSH_TITLE
    message: str | None = None
    url: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_content: bytes | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> OutboundMessage:
        """Build a message from a service payload or a bare string.

        A non-mapping payload becomes the body of a note with the default
        title; unknown types fall back to a note.
        """

        if not isinstance(payload, Mapping):
            return cls(message=None if payload is None else str(payload))

        push_type = str(payload.get("type") or PUSH_TYPE_NOTE).lower()
        if push_type not in OUTBOUND_PUSH_TYPES:
            push_type = PUSH_TYPE_NOTE
        title = payload.get("title", DEFAULT_PUSH_TITLE)
        message = payload.get("message")
        return cls(
            push_type=push_type,
            title=None if title is None else str(title),
            message=None if message is None else str(message),
            url=payload.get("url"),
            file_name=payload.get("file_name"),
            file_type=payload.get("file_type"),
            file_content=payload.get("file_content"),
        )


def split_receivers(value: str | Iterable[str] | None) -> list[str]:
    """Split a comma-separated receiver string (or iterable) into receivers."""

    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else list(value)
    receivers: list[str] = []
    for part in parts:
        normalized = str(part).strip()
        if normalized and normalized not in receivers:
            receivers.append(normalized)
    return receivers


async def _async_send_one(
    client: PushbulletClient, receiver: str, msg: OutboundMessage
) -> None:
    try:
        if msg.push_type == PUSH_TYPE_LINK and msg.url:
            await client.async_push_link(receiver, msg.title, msg.url, msg.message)
        elif msg.push_type == PUSH_TYPE_FILE and msg.file_content is not None:
            await client.async_push_file(
                receiver,
                msg.file_name or "file",
                msg.file_type or "application/octet-stream",
                msg.file_content,
                body=msg.message if msg.message is not None else msg.title,
            )
        else:
            await client.async_push_note(receiver, msg.title, msg.message)
    except PushbulletError as err:
        raise OutboundSendFailure(receiver, f"Pushbullet error: {err}") from err


async def async_send_push(
    client: PushbulletClient,
    receivers: Iterable[str],
    msg: OutboundMessage,
) -> dict[str, OutboundSendFailure | None]:
    """Send ``msg`` to every receiver concurrently.

    Returns a mapping receiver -> failure (None on success). An empty
    receiver list sends once to all of the account's devices.
    """

    targets = list(receivers) or [""]
    _LOGGER.debug("Sending %s push to %d receiver(s)", msg.push_type, len(targets))

    results = await asyncio.gather(
        *(_async_send_one(client, receiver, msg) for receiver in targets),
        return_exceptions=True,
    )

    outcome: dict[str, OutboundSendFailure | None] = {}
    for index, (receiver, result) in enumerate(zip(targets, results, strict=True)):
        if isinstance(result, OutboundSendFailure):
            _LOGGER.warning("Push to receiver #%d failed: %s", index + 1, result)
            outcome[receiver] = result
        elif isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            _LOGGER.error("Unexpected error pushing to receiver: %s", result)
            outcome[receiver] = OutboundSendFailure(receiver, str(result))
        else:
            outcome[receiver] = None
    return outcome
