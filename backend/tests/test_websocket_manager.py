"""
backend/tests/test_websocket_manager.py

Purpose:
    Unit tests for websocket manager connection lifecycle, filter matching,
    connection limits and heartbeat cleanup.
"""

from __future__ import annotations

import asyncio

import pytest

from oddsline.services.websocket_manager import ConnectionLimitError, ConnectionNotFoundError, WebSocketManager


class _FakeWebSocket:
    def __init__(self, *, fail_send: bool = False):
        self.accepted = False
        self.fail_send = fail_send
        self.messages: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail_send:
            raise RuntimeError("send failed")
        self.messages.append(payload)


@pytest.mark.asyncio
async def test_unfiltered_clients_receive_every_odds_update():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    guest, member = _FakeWebSocket(), _FakeWebSocket()
    await manager.connect(guest)
    await manager.connect(member, user_id="u1")

    sent = await manager.broadcast(
        event_type="odds_update",
        data={"fixture_ids": ["f1"]},
        selectors={"fixture_ids": ["f1"]},
    )

    assert sent == 2
    assert guest.accepted and member.accepted
    message = guest.messages[-1]
    assert message["type"] == "odds_update"
    assert message["data"] == {"fixture_ids": ["f1"]}
    assert "timestamp" in message


@pytest.mark.asyncio
async def test_fixture_subscription_filters_broadcasts():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    ws = _FakeWebSocket()
    conn_id = await manager.connect(ws, user_id="u1")
    filters = await manager.update_filters(conn_id, "subscribe", {"fixture_ids": ["f1", " ", "f2"]})
    assert filters["fixture_ids"] == ["f1", "f2"]

    assert await manager.broadcast(event_type="odds_update", data={}, selectors={"fixture_ids": ["f9"]}) == 0
    assert await manager.broadcast(event_type="odds_update", data={}, selectors={"fixture_ids": ["f2"]}) == 1
    # Global refresh without selectors still reaches filtered clients.
    assert await manager.broadcast(event_type="odds_update", data={}) == 1

    filters = await manager.update_filters(conn_id, "unsubscribe", {"fixture_ids": ["f2"]})
    assert filters["fixture_ids"] == ["f1"]
    assert await manager.broadcast(event_type="odds_update", data={}, selectors={"fixture_ids": ["f2"]}) == 0


@pytest.mark.asyncio
async def test_event_type_filter_and_replace():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    ws = _FakeWebSocket()
    conn_id = await manager.connect(ws)
    await manager.update_filters(conn_id, "subscribe", {"event_types": ["odds_update"]})

    assert await manager.broadcast(event_type="fixture_status", data={}) == 0
    assert await manager.broadcast(event_type="odds_update", data={}) == 1

    filters = await manager.update_filters(conn_id, "replace_subscriptions", {"sports": ["football"]})
    assert filters == {"fixture_ids": [], "sports": ["football"], "event_types": []}


@pytest.mark.asyncio
async def test_update_filters_rejects_unknown_command_and_connection():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    conn_id = await manager.connect(_FakeWebSocket())

    with pytest.raises(ValueError):
        await manager.update_filters(conn_id, "mute", {})
    with pytest.raises(ConnectionNotFoundError):
        await manager.update_filters("missing", "subscribe", {})


@pytest.mark.asyncio
async def test_connection_limit_is_enforced_before_accept():
    manager = WebSocketManager(max_connections=1, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket())
    assert manager.is_full

    rejected = _FakeWebSocket()
    with pytest.raises(ConnectionLimitError):
        await manager.connect(rejected)
    assert rejected.accepted is False
    assert manager.active_connections == 1


@pytest.mark.asyncio
async def test_failed_send_drops_connection():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket())
    await manager.connect(_FakeWebSocket(fail_send=True))

    sent = await manager.broadcast(event_type="odds_update", data={})

    assert sent == 1
    stats = manager.stats()
    assert stats["active_connections"] == 1
    assert stats["send_failures"] == 1
    assert stats["dropped_connections"] == 1
    assert stats["last_errors"][0]["event_type"] == "odds_update"


@pytest.mark.asyncio
async def test_heartbeat_removes_dead_connections():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=1)
    ws_ok = _FakeWebSocket()
    ws_fail = _FakeWebSocket(fail_send=True)
    await manager.connect(ws_ok, user_id="u-ok")
    await manager.connect(ws_fail, user_id="u-fail")
    await manager.start()
    await asyncio.sleep(1.3)
    await manager.stop()

    assert manager.stats()["dropped_connections"] >= 1
    assert any(m["type"] == "ping" for m in ws_ok.messages)
