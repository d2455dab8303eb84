import asyncio

import pytest

from app.infrastructure.market_data.okx_codec import Subscription
from app.infrastructure.market_data.okx_streaming import (
    FAILURE_MESSAGE,
    FeedConnection,
    FeedState,
)

URL = "wss://feed.test/ws"
SUBSCRIPTION = Subscription(channel="books5", instrument="BTC-USDT")


def _connection(transport, snapshots=None, statuses=None, **kwargs):
    kwargs.setdefault("reconnect_delay", 0)
    return FeedConnection(
        exchange="OKX",
        on_snapshot=snapshots.append if snapshots is not None else None,
        on_status=statuses.append if statuses is not None else None,
        transport=transport,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_open_subscribes_and_delivers_snapshots(fake_socket, fake_transport, wait_until):
    socket = fake_socket()
    transport = fake_transport([socket])
    snapshots, statuses = [], []
    conn = _connection(transport, snapshots, statuses)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.connected)
    await wait_until(lambda: socket.sent)
    socket.push_book(asks=[["101", "1"]], bids=[["100", "2"]])
    await wait_until(lambda: snapshots)

    assert transport.opened == [URL]
    assert socket.sent[0] == {"op": "subscribe", "args": [{"channel": "books5", "instId": "BTC-USDT"}]}
    assert snapshots[0].asks == ((101.0, 1.0),)
    assert snapshots[0].symbol == "BTC-USDT"
    assert [s.state for s in statuses] == [FeedState.CONNECTING, FeedState.OPEN]
    assert statuses[-1].connected is True

    await conn.disconnect()


@pytest.mark.asyncio
async def test_keepalive_pings_on_interval(fake_socket, fake_transport, wait_until):
    socket = fake_socket()
    conn = _connection(fake_transport([socket]), ping_interval=0.01)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: socket.sent.count({"op": "ping"}) >= 2)

    await conn.disconnect()


@pytest.mark.asyncio
async def test_control_and_malformed_frames_are_discarded(fake_socket, fake_transport, wait_until):
    socket = fake_socket()
    snapshots = []
    conn = _connection(fake_transport([socket]), snapshots)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.connected)
    socket.push("pong")
    socket.push('{"event": "pong"}')
    socket.push('{"event": "error", "code": "60012", "msg": "Invalid request"}')
    socket.push("{broken")
    socket.push('{"data": [{"asks": [["x", "1"]]}]}')
    socket.push_book(asks=[["101", "1"]], bids=[["100", "2"]])
    await wait_until(lambda: snapshots)

    assert len(snapshots) == 1
    assert conn.state is FeedState.OPEN
    assert conn.reconnect_attempts == 0

    await conn.disconnect()


@pytest.mark.asyncio
async def test_snapshot_handler_errors_do_not_break_stream(fake_socket, fake_transport, wait_until):
    socket = fake_socket()
    seen = []

    def flaky(snapshot):
        seen.append(snapshot)
        if len(seen) == 1:
            raise RuntimeError("boom")

    conn = FeedConnection(on_snapshot=flaky, transport=fake_transport([socket]))
    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.connected)
    socket.push_book(asks=[["101", "1"]], bids=[["100", "2"]])
    socket.push_book(asks=[["102", "1"]], bids=[["100", "2"]])
    await wait_until(lambda: len(seen) == 2)

    assert conn.state is FeedState.OPEN
    await conn.disconnect()


@pytest.mark.asyncio
async def test_reconnect_counter_resets_on_open(fake_socket, fake_transport, wait_until):
    socket = fake_socket()
    transport = fake_transport([OSError("refused"), OSError("refused"), socket])
    statuses = []
    conn = _connection(transport, statuses=statuses)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.connected)

    assert len(transport.opened) == 3
    assert [(s.state, s.reconnect_attempts) for s in statuses] == [
        (FeedState.CONNECTING, 0),
        (FeedState.RECONNECTING, 1),
        (FeedState.CONNECTING, 1),
        (FeedState.RECONNECTING, 2),
        (FeedState.CONNECTING, 2),
        (FeedState.OPEN, 0),
    ]
    assert all(s.error is None for s in statuses)

    await conn.disconnect()


@pytest.mark.asyncio
async def test_server_close_triggers_reconnect(fake_socket, fake_transport, wait_until):
    first, second = fake_socket(), fake_socket()
    transport = fake_transport([first, second])
    conn = _connection(transport)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.connected)
    first.server_close()
    await wait_until(lambda: len(transport.opened) == 2 and conn.connected)

    assert conn.reconnect_attempts == 0
    assert second.sent[0]["op"] == "subscribe"

    await conn.disconnect()


@pytest.mark.asyncio
async def test_stream_error_triggers_reconnect(fake_socket, fake_transport, wait_until):
    first, second = fake_socket(), fake_socket()
    transport = fake_transport([first, second])
    conn = _connection(transport)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.connected)
    first.push(ConnectionResetError("reset by peer"))
    await wait_until(lambda: len(transport.opened) == 2 and conn.connected)

    assert first.closed is True
    await conn.disconnect()


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(fake_transport, wait_until):
    transport = fake_transport([OSError("refused")] * 10)
    statuses = []
    conn = _connection(transport, statuses=statuses, max_reconnect_attempts=3)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.state is FeedState.FAILED)
    await asyncio.sleep(0.02)

    assert len(transport.opened) == 4
    assert conn.state is FeedState.FAILED
    assert conn.status.error == FAILURE_MESSAGE
    assert statuses[-1].error == FAILURE_MESSAGE
    assert statuses[-1].connected is False

    await conn.disconnect()
    assert conn.state is FeedState.IDLE


@pytest.mark.asyncio
async def test_teardown_cancels_pending_reconnect(fake_socket, fake_transport, wait_until):
    transport = fake_transport([OSError("refused"), fake_socket()])
    conn = _connection(transport, reconnect_delay=0.05)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.state is FeedState.RECONNECTING)
    await conn.disconnect()
    await asyncio.sleep(0.1)

    assert len(transport.opened) == 1
    assert conn.state is FeedState.IDLE


@pytest.mark.asyncio
async def test_disconnect_is_idempotent_and_ignores_late_frames(fake_socket, fake_transport, wait_until):
    socket = fake_socket()
    snapshots, statuses = [], []
    conn = _connection(fake_transport([socket]), snapshots, statuses)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: conn.connected)
    await conn.disconnect()
    await conn.disconnect()
    socket.push_book(asks=[["101", "1"]], bids=[["100", "2"]])
    await asyncio.sleep(0.01)

    assert socket.closed is True
    assert snapshots == []
    assert conn.state is FeedState.IDLE
    assert [s.state for s in statuses][-2:] == [FeedState.CLOSING, FeedState.IDLE]

    conn.connect(URL, SUBSCRIPTION)
    assert conn.state is FeedState.IDLE


@pytest.mark.asyncio
async def test_context_manager_releases_connection(fake_socket, fake_transport, wait_until):
    socket = fake_socket()

    async with _connection(fake_transport([socket]), ping_interval=0.01) as conn:
        conn.connect(URL, SUBSCRIPTION)
        await wait_until(lambda: conn.connected)

    assert socket.closed is True
    assert conn.state is FeedState.IDLE
    assert not conn.connected


@pytest.mark.asyncio
async def test_failed_keepalive_forces_reconnect(fake_socket, fake_transport, wait_until):
    class PingRefusingSocket(fake_socket):
        async def send(self, message):
            if "ping" in message:
                raise ConnectionError("half-open socket")
            await super().send(message)

    stale, fresh = PingRefusingSocket(), fake_socket()
    transport = fake_transport([stale, fresh])
    conn = _connection(transport, ping_interval=0.01)

    conn.connect(URL, SUBSCRIPTION)
    await wait_until(lambda: len(transport.opened) == 2 and conn.connected)

    assert stale.closed is True
    assert conn.reconnect_attempts == 0

    await conn.disconnect()
