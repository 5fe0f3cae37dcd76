"""
backend/tests/test_odds_notifier.py

Purpose:
    Live odds notifier state machine: connect/disconnect transitions,
    cache invalidation per odds_update, malformed frame handling, single
    retry timer per disconnect and teardown.
"""

from __future__ import annotations

import asyncio

import pytest

from oddsline.client.backoff import ReconnectBackoff
from oddsline.client.odds_notifier import (
    STATUS_LIVE,
    STATUS_NOT_CONNECTED,
    LiveOddsNotifier,
    NotifierStatus,
    build_socket_url,
)
from oddsline.client.query_cache import FIXTURES_KEY, LIVE_FIXTURES_KEY, QueryCache

ODDS_UPDATE = '{"type": "odds_update", "timestamp": "2024-01-01T00:00:00Z"}'


class _FakeSocket:
    def __init__(self):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, item):
        self._inbox.put_nowait(item)

    async def recv(self):
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


class _Connector:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.urls: list[str] = []

    async def __call__(self, url):
        self.urls.append(url)
        outcome = self.outcomes.pop(0) if self.outcomes else OSError("refused")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _fixed(delay: float) -> ReconnectBackoff:
    return ReconnectBackoff(base_delay=delay, max_delay=delay, factor=1, jitter=0)


async def _drain(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _notifier(connector, *, delay=100.0, cache=None, seen=None):
    holder: dict = {}

    def _record(state):
        if seen is not None:
            seen.append(holder["n"].status)

    notifier = LiveOddsNotifier(
        "ws://testserver/ws",
        cache or QueryCache(),
        connector=connector,
        backoff=_fixed(delay),
        on_state_change=_record,
    )
    holder["n"] = notifier
    return notifier


def test_build_socket_url_follows_page_scheme():
    assert build_socket_url("https://bets.example.com/dashboard?x=1") == "wss://bets.example.com/ws"
    assert build_socket_url("http://localhost:5000/") == "ws://localhost:5000/ws"


@pytest.mark.asyncio
async def test_successful_open_goes_connecting_then_connected():
    seen: list = []
    socket = _FakeSocket()
    notifier = _notifier(_Connector(socket), seen=seen)

    assert notifier.status == NotifierStatus.disconnected
    await notifier.start()

    assert seen == [NotifierStatus.connecting, NotifierStatus.connected]
    assert notifier.state.connected is True
    assert notifier.status_label == STATUS_LIVE
    await notifier.stop()


@pytest.mark.asyncio
async def test_odds_update_invalidates_fixture_listings_once_per_message():
    cache = QueryCache()
    cache.set(FIXTURES_KEY, [{"id": "f1"}])
    cache.set(LIVE_FIXTURES_KEY, [])
    seen: list = []
    socket = _FakeSocket()
    notifier = _notifier(_Connector(socket), cache=cache, seen=seen)
    await notifier.start()
    seen.clear()

    socket.push(ODDS_UPDATE)
    await _drain()

    assert cache.invalidation_count == 1
    assert cache.is_stale(FIXTURES_KEY) and cache.is_stale(LIVE_FIXTURES_KEY)
    assert notifier.last_update is not None
    assert seen == []

    socket.push(ODDS_UPDATE)
    socket.push(ODDS_UPDATE)
    await _drain()
    assert cache.invalidation_count == 3
    assert notifier.odds_updates == 3
    assert notifier.status == NotifierStatus.connected
    await notifier.stop()


@pytest.mark.asyncio
async def test_unknown_message_types_are_ignored():
    cache = QueryCache()
    socket = _FakeSocket()
    notifier = _notifier(_Connector(socket), cache=cache)
    await notifier.start()

    socket.push('{"type": "chat_message", "chatId": "c1"}')
    socket.push('{"no_type": true}')
    await _drain()

    assert cache.invalidation_count == 0
    assert notifier.malformed_messages == 0
    await notifier.stop()


@pytest.mark.asyncio
async def test_malformed_frames_are_discarded_without_state_change():
    cache = QueryCache()
    socket = _FakeSocket()
    notifier = _notifier(_Connector(socket), cache=cache)
    await notifier.start()

    socket.push("{not json")
    socket.push("[1, 2, 3]")
    socket.push(b"\xff\xfe")
    await _drain()

    assert notifier.malformed_messages == 3
    assert notifier.status == NotifierStatus.connected
    assert not notifier.retry_pending

    socket.push(ODDS_UPDATE)
    await _drain()
    assert cache.invalidation_count == 1
    await notifier.stop()


def test_handle_message_return_values():
    notifier = LiveOddsNotifier("ws://x/ws", QueryCache(), connector=_Connector())
    assert notifier.handle_message(ODDS_UPDATE) is True
    assert notifier.handle_message('{"type": "ping"}') is False
    assert notifier.handle_message("garbage") is False


@pytest.mark.asyncio
async def test_disconnect_schedules_exactly_one_retry():
    socket = _FakeSocket()
    notifier = _notifier(_Connector(socket), delay=100.0)
    await notifier.start()

    socket.push(RuntimeError("connection reset"))
    await _drain()

    assert notifier.status == NotifierStatus.disconnected
    assert notifier.status_label == STATUS_NOT_CONNECTED
    assert notifier.disconnects == 1
    assert notifier.retry_pending
    assert notifier.scheduled_retries == 1
    assert socket.closed
    assert notifier.stats()["retry_pending"] is True

    # Follow-up close/error events for the same drop add no timers.
    notifier.handle_close()
    notifier.handle_error(RuntimeError("again"))
    assert notifier.scheduled_retries == 1
    assert notifier.disconnects == 1

    await notifier.stop()
    assert not notifier.retry_pending


@pytest.mark.asyncio
async def test_connect_failure_retries_and_recovers():
    socket = _FakeSocket()
    connector = _Connector(OSError("connection refused"), socket)
    notifier = _notifier(connector, delay=0.01)

    await notifier.start()
    assert notifier.status == NotifierStatus.disconnected
    assert notifier.connect_failures == 1
    assert notifier.retry_pending

    await asyncio.sleep(0.05)
    await _drain()

    assert notifier.status == NotifierStatus.connected
    assert len(connector.urls) == 2
    assert not notifier.retry_pending
    await notifier.stop()


@pytest.mark.asyncio
async def test_reconnects_after_mid_session_drop():
    first, second = _FakeSocket(), _FakeSocket()
    cache = QueryCache()
    notifier = _notifier(_Connector(first, second), delay=0.01, cache=cache)
    await notifier.start()

    first.push(RuntimeError("server went away"))
    await asyncio.sleep(0.05)
    await _drain()

    assert notifier.status == NotifierStatus.connected
    second.push(ODDS_UPDATE)
    await _drain()
    assert cache.invalidation_count == 1
    await notifier.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending_retry_and_closes_socket():
    connector = _Connector(OSError("refused"))
    notifier = _notifier(connector, delay=0.01)
    await notifier.start()
    assert notifier.retry_pending

    await notifier.stop()
    await asyncio.sleep(0.05)

    assert len(connector.urls) == 1
    assert notifier.status == NotifierStatus.disconnected

    socket = _FakeSocket()
    live = _notifier(_Connector(socket))
    await live.start()
    await live.stop()
    assert socket.closed
    assert not live.retry_pending
    assert live.scheduled_retries == 0
