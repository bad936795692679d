# tests/test_stream_session.py
"""Stream session: frame routing, reconnect re-seeding and safe close."""

from __future__ import annotations

import asyncio

from custom_components.pushbullet_bridge.reconcile import (
    ReconciliationDriver,
    SessionContext,
)
from custom_components.pushbullet_bridge.stream import StreamSession, StreamState
from tests.helpers import ENDPOINT_IDEN, FakeApi, FakeSink


class _ScriptedWorker:
    """Worker that connects, replays frames and then ends its run."""

    def __init__(self, on_frame, on_connected, frames, *, hold: bool = False) -> None:
        self._on_frame = on_frame
        self._on_connected = on_connected
        self._frames = frames
        self._hold = hold
        self._stopped = asyncio.Event()
        self.last_error: str | None = None

    async def run(self) -> None:
        await self._on_connected()
        for frame in self._frames:
            await self._on_frame(frame)
        if self._hold:
            await self._stopped.wait()
        self.last_error = "closed by server"

    async def stop(self) -> None:
        self._stopped.set()


def _session(api: FakeApi, sink: FakeSink, scripts: list[list[dict]], **kwargs):
    driver = ReconciliationDriver(api, sink, SessionContext(endpoint_iden=ENDPOINT_IDEN))
    workers: list[_ScriptedWorker] = []
    states: list[StreamState] = []

    def _factory(on_frame, on_connected):
        frames = scripts[len(workers)] if len(workers) < len(scripts) else []
        worker = _ScriptedWorker(
            on_frame, on_connected, frames, hold=len(workers) >= len(scripts) - 1
        )
        workers.append(worker)
        return worker

    session = StreamSession(
        driver,
        _factory,
        on_state_change=states.append,
        initial_backoff=0.001,
        max_backoff=0.002,
        **kwargs,
    )
    return session, driver, workers, states


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


def test_tickle_triggers_reconciliation_and_nop_is_ignored() -> None:
    api = FakeApi([{"iden": "a", "type": "note", "body": "x", "modified": 10.0}])
    sink = FakeSink()

    async def _run() -> None:
        session, driver, _workers, states = _session(
            api,
            sink,
            [[{"type": "nop"}, {"type": "tickle", "subtype": "device"}, {"type": "tickle", "subtype": "push"}]],
        )
        await session.async_connect()
        await _wait_for(lambda: driver.ctx.reconcile_count == 1)
        assert session.is_connected
        await session.async_close()
        assert session.state is StreamState.DISCONNECTED
        assert StreamState.CONNECTED in states

    asyncio.run(_run())

    # One seed query plus one reconciliation; the device tickle is ignored.
    assert [call["limit"] for call in api.history_calls] == [1, None]
    assert sink.written == []


def test_push_frame_is_handled_inline() -> None:
    sink = FakeSink()

    async def _run() -> None:
        session, driver, _workers, _states = _session(
            FakeApi(),
            sink,
            [[{"type": "push", "push": {"type": "mirror", "title": "SMS", "body": "hi"}}]],
        )
        await session.async_connect()
        await _wait_for(lambda: bool(sink.written))
        await session.async_close()
        assert driver.cursor == 0.0

    asyncio.run(_run())

    assert sink.written[0].topic == "SMS"


def test_reconnect_reseeds_cursor() -> None:
    api = FakeApi([{"iden": "a", "type": "note", "modified": 42.0}])

    async def _run() -> None:
        session, driver, workers, _states = _session(api, FakeSink(), [[], []])
        await session.async_connect()
        await _wait_for(lambda: session.connect_count >= 2)
        await session.async_close()
        assert len(workers) >= 2
        assert driver.cursor == 42.0

    asyncio.run(_run())

    assert [call["limit"] for call in api.history_calls][:2] == [1, 1]


def test_close_before_connect_is_safe() -> None:
    async def _run() -> None:
        session, _driver, workers, _states = _session(FakeApi(), FakeSink(), [])
        await session.async_close()
        await session.async_close()
        assert workers == []
        assert session.state is StreamState.DISCONNECTED

    asyncio.run(_run())


def test_connect_is_idempotent() -> None:
    async def _run() -> None:
        session, _driver, workers, _states = _session(FakeApi(), FakeSink(), [[]])
        await session.async_connect()
        await session.async_connect()
        await _wait_for(lambda: session.is_connected)
        await session.async_close()
        assert len(workers) == 1

    asyncio.run(_run())


class _StuckConnectWorker:
    """Worker whose connect never completes and ignores `stop()`."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.last_error: str | None = None

    async def run(self) -> None:
        self.entered.set()
        await asyncio.Event().wait()

    async def stop(self) -> None:
        return None


def test_close_interrupts_pending_connect_and_stops_reconnecting() -> None:
    workers: list[_StuckConnectWorker] = []

    def _factory(_on_frame, _on_connected):
        worker = _StuckConnectWorker()
        workers.append(worker)
        return worker

    async def _run() -> None:
        driver = ReconciliationDriver(
            FakeApi(), FakeSink(), SessionContext(endpoint_iden=ENDPOINT_IDEN)
        )
        session = StreamSession(
            driver, _factory, initial_backoff=0.001, max_backoff=0.002
        )
        await session.async_connect()
        supervisor = session._supervisor
        await asyncio.wait_for(workers[0].entered.wait(), 1.0)
        assert session.state is StreamState.CONNECTING

        await session.async_close()
        await asyncio.sleep(0.05)

        assert supervisor is not None and supervisor.done()
        assert session.state is StreamState.DISCONNECTED
        assert session.connect_count == 0
        assert len(workers) == 1

    asyncio.run(_run())


def test_inline_push_for_another_endpoint_is_skipped() -> None:
    api = FakeApi()
    sink = FakeSink()
    push = {
        "iden": "p1",
        "type": "note",
        "body": "x",
        "target_device_iden": "ujSomeoneElse",
    }

    async def _run() -> None:
        session, driver, _workers, _states = _session(
            api, sink, [[{"type": "push", "push": push}]]
        )
        await session.async_connect()
        await _wait_for(lambda: driver.ctx.ignored_count == 1)
        await session.async_close()

    asyncio.run(_run())

    assert sink.written == []
    assert api.deleted == []


def test_inline_push_for_this_endpoint_is_written_and_deleted() -> None:
    api = FakeApi()
    sink = FakeSink()
    push = {
        "iden": "p2",
        "type": "note",
        "title": "Door",
        "body": "open",
        "target_device_iden": ENDPOINT_IDEN,
    }

    async def _run() -> None:
        session, _driver, _workers, _states = _session(
            api, sink, [[{"type": "push", "push": push}]]
        )
        await session.async_connect()
        await _wait_for(lambda: bool(api.deleted))
        await session.async_close()

    asyncio.run(_run())

    assert len(sink.written) == 1
    assert sink.written[0].for_all is False
    assert api.deleted == ["p2"]
