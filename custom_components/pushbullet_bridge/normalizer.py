# custom_components/pushbullet_bridge/normalizer.py
"""Map raw Pushbullet push records to canonical notifications.

The normalizer is pure: it performs no I/O and never raises for unexpected
record shapes. Dispatch is table driven (`PUSH_HANDLERS`); a declared type
missing from the table yields `Disposition.IGNORED`.

Precedence:
    1. ``dismissed is True``                  -> SUPPRESSED_DISMISSAL
    2. ``active is False`` and no ``type``    -> SUPPRESSED_DELETE
    3. lookup on ``type``                     -> PUBLISH / IGNORED
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

TOPIC_DISMISSED = "Push dismissed"
TOPIC_DELETED = "Push deleted"
TOPIC_CLIPBOARD = "Clipboard content"

PUSH_TYPE_DISMISSAL = "dismissal"
PUSH_TYPE_DELETE = "delete"

TARGET_FIELD = "target_device_iden"


class Disposition(Enum):
    """What a normalized record should trigger downstream."""

    PUBLISH = "publish"
    SUPPRESSED_DISMISSAL = "suppressed_dismissal"
    SUPPRESSED_DELETE = "suppressed_delete"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class CanonicalNotification:
    """Scalar view of a push as written to the state sink."""

    push_type: str | None
    topic: str | None = None
    message: str | None = None
    payload: str | None = None
    for_all: bool = True


@dataclass(frozen=True, slots=True)
class PushHandler:
    """Field mapping for one declared push type.

    ``topic_literal`` wins over ``topic_field`` when set. ``payload_field``
    may name ``iden`` for types whose payload is the record identifier.
    """

    topic_field: str | None = None
    topic_literal: str | None = None
    payload_field: str | None = None
    message_field: str | None = None


PUSH_HANDLERS: dict[str, PushHandler] = {
    "clip": PushHandler(topic_literal=TOPIC_CLIPBOARD, payload_field="body"),
    "note": PushHandler(topic_field="title", payload_field="body"),
    "link": PushHandler(topic_field="title", payload_field="url", message_field="body"),
    "address": PushHandler(topic_field="name", payload_field="address"),
    "list": PushHandler(topic_field="title", payload_field="items"),
    "file": PushHandler(
        topic_field="file_name", payload_field="file_url", message_field="body"
    ),
    # Android notification mirroring
    "mirror": PushHandler(topic_field="title", payload_field="body"),
    "dismissal": PushHandler(topic_literal=TOPIC_DISMISSED, payload_field="iden"),
}


def as_state_value(value: Any) -> str | None:
    """Serialize a record field into a scalar string state (or None)."""

    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (Mapping, list, tuple)):
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def target_endpoint(record: Mapping[str, Any]) -> str | None:
    """Return the record's target device iden, or None when broadcast."""

    target = record.get(TARGET_FIELD)
    if target is None or target == "":
        return None
    return str(target)


def is_for_all(record: Mapping[str, Any]) -> bool:
    """True when the record was not addressed to a specific endpoint."""
    return target_endpoint(record) is None


def normalize(
    record: Mapping[str, Any],
) -> tuple[CanonicalNotification, Disposition]:
    """Normalize one raw push record."""

    for_all = is_for_all(record)
    iden = as_state_value(record.get("iden"))

    if record.get("dismissed") is True:
        return (
            CanonicalNotification(
                push_type=PUSH_TYPE_DISMISSAL,
                topic=TOPIC_DISMISSED,
                payload=iden,
                for_all=for_all,
            ),
            Disposition.SUPPRESSED_DISMISSAL,
        )

    push_type = record.get("type")
    if record.get("active") is False and push_type is None:
        return (
            CanonicalNotification(
                push_type=PUSH_TYPE_DELETE,
                topic=TOPIC_DELETED,
                payload=iden,
                for_all=for_all,
            ),
            Disposition.SUPPRESSED_DELETE,
        )

    handler = PUSH_HANDLERS.get(push_type) if isinstance(push_type, str) else None
    if handler is None:
        return (
            CanonicalNotification(push_type=as_state_value(push_type), for_all=for_all),
            Disposition.IGNORED,
        )

    if handler.topic_literal is not None:
        topic: str | None = handler.topic_literal
    elif handler.topic_field is not None:
        topic = as_state_value(record.get(handler.topic_field))
    else:
        topic = None

    return (
        CanonicalNotification(
            push_type=push_type,
            topic=topic,
            message=(
                as_state_value(record.get(handler.message_field))
                if handler.message_field
                else None
            ),
            payload=(
                as_state_value(record.get(handler.payload_field))
                if handler.payload_field
                else None
            ),
            for_all=for_all,
        ),
        Disposition.PUBLISH,
    )
