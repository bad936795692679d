"""Shared fakes for the Pushbullet Bridge tests."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from custom_components.pushbullet_bridge.api import PushbulletError
from custom_components.pushbullet_bridge.normalizer import CanonicalNotification

ENDPOINT_IDEN = "ujEndpointHA"


class FakeApi:
    """In-memory stand-in for `PushbulletClient` used by the core tests."""

    def __init__(
        self,
        history: Iterable[dict[str, Any]] = (),
        *,
        devices: Iterable[dict[str, Any]] = (),
    ) -> None:
        self.history: list[dict[str, Any]] = list(history)
        self.devices: list[dict[str, Any]] = list(devices)
        self.history_calls: list[dict[str, Any]] = []
        self.deleted: list[str] = []
        self.created: list[str] = []
        self.pushes: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_history = False
        self.fail_delete = False
        self.fail_receivers: set[str] = set()

    async def async_history(
        self,
        *,
        modified_after: float | None = None,
        limit: int | None = None,
        max_pages: int | None = 10,
    ) -> list[dict[str, Any]]:
        self.history_calls.append({"modified_after": modified_after, "limit": limit})
        if self.fail_history:
            raise PushbulletError("history unavailable")
        records = self.history
        if modified_after is not None:
            records = [r for r in records if r.get("modified", 0) > modified_after]
        return list(records[:limit] if limit is not None else records)

    async def async_delete_push(self, iden: str) -> None:
        if self.fail_delete:
            raise PushbulletError("delete refused")
        self.deleted.append(iden)

    async def async_list_devices(self) -> list[dict[str, Any]]:
        return list(self.devices)

    async def async_create_device(self, nickname: str) -> dict[str, Any]:
        self.created.append(nickname)
        device = {"iden": f"new-{len(self.created)}", "nickname": nickname, "active": True}
        self.devices.append(device)
        return device

    async def _record(self, kind: str, receiver: str, **fields: Any) -> dict[str, Any]:
        if receiver in self.fail_receivers:
            raise PushbulletError(f"receiver {receiver} refused")
        self.pushes.append((kind, receiver, fields))
        return {"iden": f"push-{len(self.pushes)}"}

    async def async_push_note(self, receiver, title, body):
        return await self._record("note", receiver, title=title, body=body)

    async def async_push_link(self, receiver, title, url, body=None):
        return await self._record("link", receiver, title=title, url=url, body=body)

    async def async_push_file(self, receiver, file_name, file_type, content, body=None):
        return await self._record(
            "file",
            receiver,
            file_name=file_name,
            file_type=file_type,
            content=content,
            body=body,
        )


class FakeSink:
    """Collects published notifications in order."""

    def __init__(self) -> None:
        self.written: list[CanonicalNotification] = []

    async def async_write(self, notification: CanonicalNotification) -> None:
        self.written.append(notification)

