# custom_components/pushbullet_bridge/reconcile.py
"""Tickle -> history reconciliation and per-record push handling.

The driver owns the history cursor of a `SessionContext`: it is the only code
path that writes `ctx.cursor`, and every pass runs under `ctx.lock`, so two
passes never interleave against the same cursor.

Ordering contract:
    Records are processed in the order the service returns them (newest
    first). The cursor is advanced only after the whole batch was handled, so
    an interruption mid-batch leads to re-delivery on the next tickle rather
    than loss.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from .api import PushbulletError
from .exceptions import (
    HistorySeedFailure,
    ReconciliationQueryFailure,
    RecordDeletionFailure,
)
from .normalizer import CanonicalNotification, Disposition, normalize, target_endpoint

_LOGGER = logging.getLogger(__name__)


class HistoryApi(Protocol):
    """Subset of the API client used by the driver."""

    async def async_history(
        self,
        *,
        modified_after: float | None = None,
        limit: int | None = None,
        max_pages: int | None = ...,
    ) -> list[dict[str, Any]]: ...

    async def async_delete_push(self, iden: str) -> None: ...


class PushStateSink(Protocol):
    """Key-value sink receiving published notifications."""

    async def async_write(self, notification: CanonicalNotification) -> None: ...


@dataclass(slots=True)
class SessionContext:
    """Mutable per-session state shared by the stream session and the driver."""

    endpoint_iden: str
    cursor: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Telemetry (diagnostics only)
    reconcile_count: int = 0
    published_count: int = 0
    ignored_count: int = 0
    deleted_count: int = 0
    last_error: str | None = None


def _modified(record: Mapping[str, Any]) -> float | None:
    value = record.get("modified")
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


class ReconciliationDriver:
    """Replay push history into the sink and keep the cursor current."""

    def __init__(
        self,
        client: HistoryApi,
        sink: PushStateSink,
        ctx: SessionContext,
        *,
        disable_delete: bool = False,
    ) -> None:
        self._client = client
        self._sink = sink
        self.ctx = ctx
        self.disable_delete = disable_delete

    @property
    def cursor(self) -> float:
        """Return the current history cursor."""
        return self.ctx.cursor

    # ------------------------------------------------------------------
    # Cursor seeding (runs on every connect)
    # ------------------------------------------------------------------

    async def async_seed_cursor(self) -> float:
        """Seed the cursor from the newest push; fall back to 0 on failure."""

        async with self.ctx.lock:
            try:
                newest = await self._fetch_newest()
            except HistorySeedFailure as err:
                _LOGGER.info("Unable to get history; replaying from start: %s", err)
                self.ctx.last_error = str(err)
                self.ctx.cursor = 0.0
                return self.ctx.cursor

            self.ctx.cursor = newest if newest is not None else 0.0
            _LOGGER.debug("History cursor seeded at %s", self.ctx.cursor)
            return self.ctx.cursor

    async def _fetch_newest(self) -> float | None:
        try:
            pushes = await self._client.async_history(limit=1)
        except PushbulletError as err:
            raise HistorySeedFailure(f"History seed query failed: {err}") from err
        if not pushes:
            return None
        return _modified(pushes[0])

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def async_reconcile(self) -> int:
        """Fetch pushes modified after the cursor and process them in order.

        Returns the number of records processed; 0 when the query failed.
        """

        async with self.ctx.lock:
            try:
                records = await self._query_since_cursor()
            except ReconciliationQueryFailure as err:
                _LOGGER.warning("%s; retrying on next tickle", err)
                self.ctx.last_error = str(err)
                return 0

            self.ctx.reconcile_count += 1
            newest = self.ctx.cursor
            for record in records:
                await self._handle_record_locked(record)
                modified = _modified(record)
                if modified is not None and modified > newest:
                    newest = modified

            if records:
                self.ctx.cursor = newest
            _LOGGER.debug(
                "Reconciled %d pushes; cursor=%s", len(records), self.ctx.cursor
            )
            return len(records)

    async def _query_since_cursor(self) -> list[dict[str, Any]]:
        try:
            # Every page is needed: the cursor jumps to the newest record of the
            # batch, so anything left unfetched would never be queried again.
            return await self._client.async_history(
                modified_after=self.ctx.cursor, max_pages=None
            )
        except PushbulletError as err:
            raise ReconciliationQueryFailure(f"History query failed: {err}") from err

    # ------------------------------------------------------------------
    # Per-record handling (shared with inline stream pushes)
    # ------------------------------------------------------------------

    async def async_handle_record(self, record: Mapping[str, Any]) -> Disposition:
        """Handle one inline push without touching the cursor."""

        async with self.ctx.lock:
            return await self._handle_record_locked(record)

    async def _handle_record_locked(self, record: Mapping[str, Any]) -> Disposition:
        target = target_endpoint(record)
        if target is not None and target != self.ctx.endpoint_iden:
            _LOGGER.debug("Skipping push addressed to another endpoint")
            self.ctx.ignored_count += 1
            return Disposition.IGNORED

        notification, disposition = normalize(record)
        _LOGGER.debug(
            "Push type=%s disposition=%s", notification.push_type, disposition.value
        )

        if disposition is not Disposition.PUBLISH:
            if disposition is Disposition.IGNORED:
                self.ctx.ignored_count += 1
            return disposition

        await self._sink.async_write(notification)
        self.ctx.published_count += 1

        iden = record.get("iden")
        if (
            target is not None
            and not self.disable_delete
            and isinstance(iden, str)
            and iden
        ):
            try:
                await self._delete(iden)
            except RecordDeletionFailure as err:
                _LOGGER.warning("%s", err)
        return disposition

    async def _delete(self, iden: str) -> None:
        try:
            await self._client.async_delete_push(iden)
        except PushbulletError as err:
            raise RecordDeletionFailure(
                iden, f"Unable to delete consumed push: {err}"
            ) from err
        self.ctx.deleted_count += 1
