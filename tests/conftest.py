import asyncio
import json
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI

from app.api.routes import health, simulation
from app.config import Settings
from app.domain.models import OrderBookSnapshot
from app.realtime.runtime import SimulationRuntime

_CLOSE = object()


class FakeSocket:
    """In-memory stand-in for a websocket connection"""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    def push(self, message) -> None:
        """Queue an inbound frame (str/bytes) or an exception to raise"""
        self._inbox.put_nowait(message)

    def push_book(self, asks, bids) -> None:
        self.push(json.dumps({
            "arg": {"channel": "books5", "instId": "BTC-USDT"},
            "data": [{"asks": asks, "bids": bids, "ts": "1700000000000"}],
        }))

    def server_close(self) -> None:
        self._inbox.put_nowait(_CLOSE)

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeTransport:
    """Hands out scripted sockets or connection errors, in order"""

    def __init__(self, outcomes=()):
        self._outcomes = list(outcomes)
        self.opened = []

    def add(self, outcome) -> None:
        self._outcomes.append(outcome)

    async def open(self, url: str):
        self.opened.append(url)
        if not self._outcomes:
            raise ConnectionRefusedError("no scripted outcome left")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def fake_socket():
    return FakeSocket


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def make_snapshot():
    def _make(asks=((101.0, 1.0), (102.0, 5.0)), bids=((100.0, 2.0),), symbol="BTC-USDT"):
        return OrderBookSnapshot(
            timestamp=datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc),
            exchange="OKX",
            symbol=symbol,
            asks=asks,
            bids=bids,
        )
    return _make


@pytest.fixture
def offline_settings():
    return Settings(FEED_ENABLED=False, SIM_QUANTITY_USD=150.0, SIM_FEE_TIER="VIP0")


@pytest.fixture
def app(offline_settings) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(simulation.router, prefix="/api/v1/simulation", tags=["Simulation"])
    app.state.simulation_runtime = SimulationRuntime(offline_settings)
    return app
