"""
OKX websocket order book client.

Connection lifecycle is an explicit state machine: ``transition`` decides the
next state and the side effects, ``FeedConnection`` only carries them out.
The socket is obtained from an injected ``FeedTransport`` so the lifecycle
can be driven without a network.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, FrozenSet, Optional, Protocol, Union

import websockets

from app.domain.models import OrderBookSnapshot
from app.infrastructure.market_data.okx_codec import (
    PING_PAYLOAD,
    FeedMessageError,
    Subscription,
    decode_message,
    encode,
)

logger = logging.getLogger(__name__)

PING_INTERVAL_SECONDS = 15.0
RECONNECT_DELAY_SECONDS = 3.0
MAX_RECONNECT_ATTEMPTS = 10

FAILURE_MESSAGE = "Connection failed after multiple attempts. Please restart the simulator."

SnapshotHandler = Callable[[OrderBookSnapshot], None]
StatusHandler = Callable[["FeedStatus"], None]


class FeedState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSING = "closing"
    FAILED = "failed"


class FeedEvent(str, Enum):
    START = "start"
    OPENED = "opened"
    DISCONNECTED = "disconnected"
    RECONNECT_DUE = "reconnect_due"
    SHUTDOWN = "shutdown"
    CLOSED = "closed"


class FeedAction(str, Enum):
    OPEN_TRANSPORT = "open_transport"
    SUBSCRIBE = "subscribe"
    ARM_KEEPALIVE = "arm_keepalive"
    CANCEL_TIMERS = "cancel_timers"
    SCHEDULE_RECONNECT = "schedule_reconnect"
    CLOSE_TRANSPORT = "close_transport"
    REPORT_FAILURE = "report_failure"


@dataclass(frozen=True)
class Transition:
    state: FeedState
    attempts: int
    actions: FrozenSet[FeedAction] = frozenset()


_LIVE_STATES = frozenset({FeedState.CONNECTING, FeedState.OPEN, FeedState.RECONNECTING})


def transition(state: FeedState, event: FeedEvent, attempts: int, max_attempts: int) -> Transition:
    """Next state, reconnect attempt count and actions for one event.

    Pairs not listed below leave the state untouched and do nothing.
    """
    if event is FeedEvent.SHUTDOWN:
        if state in _LIVE_STATES:
            return Transition(
                FeedState.CLOSING,
                attempts,
                frozenset({FeedAction.CANCEL_TIMERS, FeedAction.CLOSE_TRANSPORT}),
            )
        if state is FeedState.FAILED:
            return Transition(FeedState.IDLE, attempts, frozenset({FeedAction.CANCEL_TIMERS}))
        return Transition(state, attempts)

    if state is FeedState.IDLE and event is FeedEvent.START:
        return Transition(FeedState.CONNECTING, attempts, frozenset({FeedAction.OPEN_TRANSPORT}))

    if state is FeedState.CONNECTING and event is FeedEvent.OPENED:
        return Transition(FeedState.OPEN, 0, frozenset({FeedAction.SUBSCRIBE, FeedAction.ARM_KEEPALIVE}))

    if state in (FeedState.CONNECTING, FeedState.OPEN) and event is FeedEvent.DISCONNECTED:
        if attempts < max_attempts:
            return Transition(
                FeedState.RECONNECTING,
                attempts + 1,
                frozenset({FeedAction.CANCEL_TIMERS, FeedAction.SCHEDULE_RECONNECT}),
            )
        return Transition(
            FeedState.FAILED,
            attempts,
            frozenset({FeedAction.CANCEL_TIMERS, FeedAction.REPORT_FAILURE}),
        )

    if state is FeedState.RECONNECTING and event is FeedEvent.RECONNECT_DUE:
        return Transition(FeedState.CONNECTING, attempts, frozenset({FeedAction.OPEN_TRANSPORT}))

    if state is FeedState.CLOSING and event is FeedEvent.CLOSED:
        return Transition(FeedState.IDLE, attempts)

    return Transition(state, attempts)


@dataclass(frozen=True)
class FeedStatus:
    state: FeedState
    connected: bool
    reconnect_attempts: int
    error: Optional[str] = None


class FeedSocket(Protocol):
    async def send(self, message: str) -> None:
        ...

    async def close(self) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[Union[str, bytes]]:
        ...


class FeedTransport(Protocol):
    async def open(self, url: str) -> FeedSocket:
        ...


class WebsocketsTransport:
    """Opens real websocket connections."""

    def __init__(self, open_timeout: float = 10.0) -> None:
        self._open_timeout = open_timeout

    async def open(self, url: str) -> FeedSocket:
        # keep-alive is done at the application level with {"op": "ping"}
        return await websockets.connect(url, ping_interval=None, open_timeout=self._open_timeout)


async def _close_quietly(socket: FeedSocket) -> None:
    try:
        await socket.close()
    except Exception as exc:
        logger.debug("Ignoring error while closing feed socket: %s", exc)


class FeedConnection:
    def __init__(
        self,
        exchange: str = "OKX",
        on_snapshot: Optional[SnapshotHandler] = None,
        on_status: Optional[StatusHandler] = None,
        transport: Optional[FeedTransport] = None,
        ping_interval: float = PING_INTERVAL_SECONDS,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ) -> None:
        self._exchange = exchange
        self._on_snapshot = on_snapshot
        self._on_status = on_status
        self._transport = transport or WebsocketsTransport()
        self._ping_interval = ping_interval
        self._reconnect_delay = reconnect_delay
        self._max_attempts = max_reconnect_attempts

        self._state = FeedState.IDLE
        self._attempts = 0
        self._error: Optional[str] = None
        self._endpoint: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self._socket: Optional[FeedSocket] = None
        self._session_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is FeedState.OPEN

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def status(self) -> FeedStatus:
        return FeedStatus(
            state=self._state,
            connected=self.connected,
            reconnect_attempts=self._attempts,
            error=self._error,
        )

    async def __aenter__(self) -> "FeedConnection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def connect(self, endpoint: str, subscription: Subscription) -> None:
        """Start the connection lifecycle on the running event loop."""
        if self._closed:
            logger.warning("Feed connection to %s already shut down; ignoring connect", endpoint)
            return
        if self._state is not FeedState.IDLE:
            logger.debug("Feed connection already %s; ignoring connect", self._state.value)
            return
        self._endpoint = endpoint
        self._subscription = subscription
        self._dispatch(FeedEvent.START)

    async def disconnect(self) -> None:
        """Release the socket and every timer. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        step = self._dispatch(FeedEvent.SHUTDOWN)
        if step is not None and FeedAction.CLOSE_TRANSPORT in step.actions and self._socket is not None:
            socket, self._socket = self._socket, None
            await _close_quietly(socket)

        current = asyncio.current_task()
        pending = [
            task
            for task in (self._session_task, self._keepalive_task, self._reconnect_task)
            if task is not None and task is not current
        ]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._session_task = self._keepalive_task = self._reconnect_task = None
        self._dispatch(FeedEvent.CLOSED)

    def _dispatch(self, event: FeedEvent) -> Optional[Transition]:
        if self._closed and event not in (FeedEvent.SHUTDOWN, FeedEvent.CLOSED):
            logger.debug("Ignoring feed event %s after shutdown", event.value)
            return None

        previous = self._state
        step = transition(previous, event, self._attempts, self._max_attempts)
        self._state = step.state
        self._attempts = step.attempts
        if step.state is FeedState.OPEN:
            self._error = None

        for action in step.actions:
            self._perform(action)

        if step.state is not previous:
            logger.info(
                "Feed %s -> %s on %s (attempts=%s)",
                previous.value,
                step.state.value,
                event.value,
                self._attempts,
            )
            self._emit_status()
        return step

    def _perform(self, action: FeedAction) -> None:
        if action is FeedAction.CANCEL_TIMERS:
            self._cancel(self._keepalive_task)
            self._cancel(self._reconnect_task)
        elif action is FeedAction.CLOSE_TRANSPORT:
            # socket close itself is awaited by disconnect()
            self._cancel(self._session_task)
        elif action is FeedAction.OPEN_TRANSPORT:
            self._session_task = asyncio.create_task(self._run_session())
        elif action is FeedAction.ARM_KEEPALIVE:
            if self._socket is not None:
                self._keepalive_task = asyncio.create_task(self._keepalive(self._socket))
        elif action is FeedAction.SCHEDULE_RECONNECT:
            self._reconnect_task = asyncio.create_task(self._reconnect_later())
        elif action is FeedAction.REPORT_FAILURE:
            self._error = FAILURE_MESSAGE
            logger.error("Feed %s gave up after %s reconnect attempts", self._endpoint, self._attempts)
        # SUBSCRIBE needs the socket send to be awaited, see _run_session

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run_session(self) -> None:
        try:
            socket = await self._transport.open(self._endpoint)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Feed connect to %s failed: %s", self._endpoint, exc)
            self._dispatch(FeedEvent.DISCONNECTED)
            return

        if self._closed:
            await _close_quietly(socket)
            return

        self._socket = socket
        step = self._dispatch(FeedEvent.OPENED)
        try:
            if step is not None and FeedAction.SUBSCRIBE in step.actions:
                await socket.send(encode(self._subscription.to_payload()))
                logger.info(
                    "Subscribed to %s %s",
                    self._subscription.channel,
                    self._subscription.instrument,
                )
            async for raw in socket:
                if self._closed:
                    return
                self._handle_message(raw)
            logger.info("Feed %s closed by server", self._endpoint)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Feed stream error: %s", exc)
            await _close_quietly(socket)
        finally:
            if self._socket is socket:
                self._socket = None

        self._dispatch(FeedEvent.DISCONNECTED)

    async def _keepalive(self, socket: FeedSocket) -> None:
        message = encode(PING_PAYLOAD)
        while True:
            await asyncio.sleep(self._ping_interval)
            try:
                await socket.send(message)
            except Exception as exc:
                logger.warning("Keep-alive send failed, dropping connection: %s", exc)
                await _close_quietly(socket)
                return

    async def _reconnect_later(self) -> None:
        logger.info(
            "Reconnecting to %s in %ss (attempt %s/%s)",
            self._endpoint,
            self._reconnect_delay,
            self._attempts,
            self._max_attempts,
        )
        await asyncio.sleep(self._reconnect_delay)
        self._dispatch(FeedEvent.RECONNECT_DUE)

    def _handle_message(self, raw: Union[str, bytes]) -> None:
        try:
            message = decode_message(raw, self._exchange, self._subscription.instrument)
        except FeedMessageError as exc:
            logger.warning("Discarding malformed feed message: %s", exc)
            return

        if message.kind == "pong":
            return
        if message.kind == "event":
            if message.event == "error":
                logger.warning("Feed reported error: %s", message.detail)
            else:
                logger.debug("Feed event %s: %s", message.event, message.detail)
            return
        if message.kind != "book" or self._on_snapshot is None:
            return
        try:
            self._on_snapshot(message.snapshot)
        except Exception:
            logger.exception("Snapshot handler failed")

    def _emit_status(self) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(self.status)
        except Exception:
            logger.exception("Status handler failed")
