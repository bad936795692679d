# custom_components/pushbullet_bridge/stream.py
"""Pushbullet event stream: websocket worker and supervised session.

Two layers, mirroring a worker/supervisor split:

* `PushbulletStreamClient`: one websocket connection. Connects, reports the
  connection, reads frames and awaits the frame callback for each one before
  reading the next. It **does not self-reset**: on idle timeout, close frames or
  read errors it ends its run and lets the supervisor restart it.
* `StreamSession`: the state machine (`DISCONNECTED -> CONNECTING ->
  CONNECTED`) plus the supervisor loop with jittered exponential backoff. Every
  (re)connect re-seeds the history cursor before frames are dispatched.

Frame routing:
    tickle/push -> ReconciliationDriver.async_reconcile()
    push        -> ReconciliationDriver.async_handle_record(frame["push"])
    nop / other -> ignored
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import Enum
from typing import Any, Protocol

import aiohttp

from .const import (
    FRAME_NOP,
    FRAME_PUSH,
    FRAME_TICKLE,
    STREAM_CLOSE_TIMEOUT_S,
    STREAM_CONNECT_TIMEOUT_S,
    STREAM_IDLE_TIMEOUT_S,
    STREAM_INITIAL_BACKOFF_S,
    STREAM_MAX_BACKOFF_S,
    STREAM_URL_TEMPLATE,
    TICKLE_SUBTYPE_PUSH,
)
from .exceptions import TransportError
from .reconcile import ReconciliationDriver

_LOGGER = logging.getLogger(__name__)

FrameCallback = Callable[[dict[str, Any]], Awaitable[None]]
ConnectedCallback = Callable[[], Awaitable[None]]

# Consecutive callback failures tolerated before the worker ends itself.
_ABORT_ON_SEQUENTIAL_ERROR_COUNT = 3


class StreamWorkerRunState(Enum):
    CREATED = 1
    STARTING = 2
    STARTED = 3
    STOPPING = 4
    STOPPED = 5


class StreamState(Enum):
    """Externally visible session state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class StreamWorker(Protocol):
    """Minimal worker contract used by the supervisor."""

    last_error: str | None

    async def run(self) -> None: ...

    async def stop(self) -> None: ...


class PushbulletStreamClient:
    """Single websocket connection to the Pushbullet event stream."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: str,
        on_frame: FrameCallback,
        on_connected: ConnectedCallback,
        *,
        idle_timeout: float = STREAM_IDLE_TIMEOUT_S,
        connect_timeout: float = STREAM_CONNECT_TIMEOUT_S,
    ) -> None:
        self._session = session
        self._url = STREAM_URL_TEMPLATE.format(api_key=api_key)
        self._on_frame = on_frame
        self._on_connected = on_connected
        self._idle_timeout = idle_timeout
        self._connect_timeout = connect_timeout

        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self.do_listen = False
        self.run_state = StreamWorkerRunState.CREATED
        self.last_error: str | None = None
        self.last_frame_time: float = 0.0
        self._sequential_errors = 0

    async def _connect(self) -> None:
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self._url, autoping=True),
                timeout=self._connect_timeout,
            )
        except (TimeoutError, aiohttp.ClientError, OSError) as err:
            raise TransportError(f"Could not connect to event stream: {err}") from err

    async def _close_ws(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None or ws.closed:
            return
        try:
            await asyncio.wait_for(ws.close(), timeout=STREAM_CLOSE_TIMEOUT_S)
        except (TimeoutError, aiohttp.ClientError, OSError) as err:
            _LOGGER.debug("Error while closing event stream: %s", err)

    async def _dispatch(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            _LOGGER.debug("Dropping non-JSON stream frame")
            return
        if not isinstance(frame, dict):
            _LOGGER.debug("Dropping non-object stream frame")
            return

        try:
            await self._on_frame(frame)
            self._sequential_errors = 0
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            _LOGGER.exception("Unexpected exception handling stream frame")
            self._sequential_errors += 1
            if self._sequential_errors >= _ABORT_ON_SEQUENTIAL_ERROR_COUNT:
                _LOGGER.debug(
                    "Stopping stream worker after %d sequential errors",
                    self._sequential_errors,
                )
                self.do_listen = False

    async def run(self) -> None:
        """Connect and read frames until the connection ends or stop() is called."""

        self.do_listen = True
        self.run_state = StreamWorkerRunState.STARTING
        try:
            await self._connect()
            self.run_state = StreamWorkerRunState.STARTED
            self.last_frame_time = time.monotonic()
            _LOGGER.debug("Connected to Pushbullet event stream")
            await self._on_connected()

            while self.do_listen and self._ws is not None:
                try:
                    msg = await asyncio.wait_for(
                        self._ws.receive(), timeout=self._idle_timeout
                    )
                except TimeoutError:
                    _LOGGER.info(
                        "No stream frame received in %.1fs; ending worker for restart",
                        self._idle_timeout,
                    )
                    self.last_error = "idle timeout"
                    break

                if msg.type is aiohttp.WSMsgType.TEXT:
                    self.last_frame_time = time.monotonic()
                    await self._dispatch(msg.data)
                elif msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                ):
                    _LOGGER.info("Event stream closed by server; ending worker")
                    self.last_error = "closed by server"
                    break
                elif msg.type is aiohttp.WSMsgType.ERROR:
                    self.last_error = str(self._ws.exception() if self._ws else msg.data)
                    _LOGGER.warning("Event stream error: %s", self.last_error)
                    break
        except TransportError as err:
            self.last_error = str(err)
            _LOGGER.warning("%s", err)
        except asyncio.CancelledError:
            _LOGGER.debug("Stream worker cancelled")
            raise
        except (aiohttp.ClientError, OSError) as err:
            self.last_error = str(err)
            _LOGGER.info("Event stream read ended (%s); ending worker for restart", err)
        except Exception as err:  # noqa: BLE001
            self.last_error = str(err)
            _LOGGER.error("Unknown error in stream worker: %s", err, exc_info=True)
        finally:
            self.run_state = StreamWorkerRunState.STOPPING
            self.do_listen = False
            await self._close_ws()
            self.run_state = StreamWorkerRunState.STOPPED

    async def stop(self) -> None:
        """Stop reading and close the websocket."""

        self.do_listen = False
        await self._close_ws()


WorkerFactory = Callable[[FrameCallback, ConnectedCallback], StreamWorker]


class StreamSession:
    """Supervised event stream session feeding the reconciliation driver.

    Contract:
        * `async_connect()` is idempotent and returns immediately; connection
          happens in a background supervisor task.
        * `async_close()` is safe in any state, interrupts an in-flight
          connection attempt and never raises.
    """

    def __init__(
        self,
        driver: ReconciliationDriver,
        worker_factory: WorkerFactory,
        *,
        name: str = "pushbullet_bridge",
        on_state_change: Callable[[StreamState], None] | None = None,
        initial_backoff: float = STREAM_INITIAL_BACKOFF_S,
        max_backoff: float = STREAM_MAX_BACKOFF_S,
    ) -> None:
        self._driver = driver
        self._worker_factory = worker_factory
        self._name = name
        self._on_state_change = on_state_change
        self._initial_backoff = initial_backoff
        self._max_backoff = max_backoff

        self.state = StreamState.DISCONNECTED
        self._worker: StreamWorker | None = None
        self._supervisor: asyncio.Task[None] | None = None
        self._stop_evt = asyncio.Event()

        # Telemetry
        self.connect_count: int = 0
        self.last_connected_monotonic: float = 0.0
        self.last_error: str | None = None

    @property
    def driver(self) -> ReconciliationDriver:
        """Return the driver receiving this session's frames."""
        return self._driver

    @property
    def is_connected(self) -> bool:
        return self.state is StreamState.CONNECTED

    def _set_state(self, state: StreamState) -> None:
        if state is self.state:
            return
        _LOGGER.debug("[%s] stream %s -> %s", self._name, self.state.value, state.value)
        self.state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception as err:  # noqa: BLE001 - listener must not break the loop
                _LOGGER.debug("[%s] state listener raised: %s", self._name, err)

    # ------------------------------------------------------------------
    # Frame handling
    # ------------------------------------------------------------------

    async def _async_on_connected(self) -> None:
        self.connect_count += 1
        self.last_connected_monotonic = time.monotonic()
        self._set_state(StreamState.CONNECTED)
        await self._driver.async_seed_cursor()

    async def async_handle_frame(self, frame: dict[str, Any]) -> None:
        """Route one decoded stream frame."""

        frame_type = frame.get("type")
        if frame_type == FRAME_NOP:
            return
        _LOGGER.debug("[%s] frame received: %s", self._name, frame_type)

        if frame_type == FRAME_TICKLE:
            if frame.get("subtype") == TICKLE_SUBTYPE_PUSH:
                await self._driver.async_reconcile()
            return

        if frame_type == FRAME_PUSH:
            push = frame.get("push")
            if isinstance(push, dict):
                await self._driver.async_handle_record(push)
            else:
                _LOGGER.debug("[%s] push frame without payload", self._name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_connect(self) -> None:
        """Start the supervisor (no-op when already running)."""

        if self._supervisor is not None and not self._supervisor.done():
            return
        self._stop_evt.clear()
        self._set_state(StreamState.CONNECTING)
        self._supervisor = asyncio.create_task(
            self._supervise(), name=f"{self._name}.stream_supervisor"
        )

    async def _supervise(self) -> None:
        backoff = self._initial_backoff
        try:
            while not self._stop_evt.is_set():
                self._set_state(StreamState.CONNECTING)
                connects_before = self.connect_count
                worker = self._worker_factory(
                    self.async_handle_frame, self._async_on_connected
                )
                self._worker = worker
                try:
                    await worker.run()
                finally:
                    self._worker = None
                self.last_error = worker.last_error

                if self._stop_evt.is_set():
                    break
                if self.connect_count > connects_before:
                    backoff = self._initial_backoff

                self._set_state(StreamState.CONNECTING)
                delay = backoff + random.uniform(0.1, 0.3) * backoff
                _LOGGER.info(
                    "[%s] Reconnecting event stream in %.1fs", self._name, delay
                )
                with suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_evt.wait(), timeout=delay)
                backoff = min(backoff * 2, self._max_backoff)
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] stream supervisor cancelled", self._name)
            raise
        except Exception as err:  # noqa: BLE001
            self.last_error = str(err)
            _LOGGER.error("[%s] stream supervisor crashed: %s", self._name, err)
        finally:
            self._set_state(StreamState.DISCONNECTED)
            _LOGGER.info("[%s] stream supervisor stopped", self._name)

    async def async_close(self, timeout: float = STREAM_CLOSE_TIMEOUT_S) -> None:
        """Stop the session; never raises."""

        self._stop_evt.set()
        worker = self._worker
        task = self._supervisor
        self._supervisor = None
        try:
            if worker is not None:
                await worker.stop()
        except Exception as err:  # noqa: BLE001
            _LOGGER.debug("[%s] worker stop raised: %s", self._name, err)

        if task is not None and not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=timeout)
            except (asyncio.CancelledError, TimeoutError):
                pass
            except Exception as err:  # noqa: BLE001
                _LOGGER.debug("[%s] supervisor ended with: %s", self._name, err)
        self._set_state(StreamState.DISCONNECTED)
