"""
backend/oddsline/services/websocket_manager.py

Purpose:
    Process-local registry for clients of the ``/ws`` push channel. Holds
    each connection's subscription filters, pings clients on a heartbeat and
    fans out events such as ``odds_update`` to the connections whose filters
    match. Connections that fail a send are dropped.

Dependencies:
    - fastapi.WebSocket
    - oddsline.config
    - oddsline.utils
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from fastapi import WebSocket

from oddsline.config import settings
from oddsline.utils import utcnow

logger = logging.getLogger("oddsline.websocket_manager")

# Dimensions an event can be addressed by; "event_types" only narrows by type.
SELECTOR_KEYS = ("fixture_ids", "sports")
FILTER_KEYS = (*SELECTOR_KEYS, "event_types")
SUBSCRIPTION_COMMANDS = ("subscribe", "unsubscribe", "replace_subscriptions")

_ERROR_HISTORY = 200

Filters = dict[str, set[str]]


class ConnectionLimitError(RuntimeError):
    pass


class ConnectionNotFoundError(RuntimeError):
    pass


def _clean_tokens(values: Any) -> set[str]:
    if not isinstance(values, list):
        return set()
    return {token for token in (str(v or "").strip() for v in values) if token}


def parse_filters(payload: Any) -> Filters:
    """Filter sets from a client payload; unknown keys and non-list values are ignored."""
    source = payload if isinstance(payload, dict) else {}
    return {key: _clean_tokens(source.get(key)) for key in FILTER_KEYS}


def filters_as_json(filters: Filters) -> dict[str, list[str]]:
    return {key: sorted(filters.get(key, ())) for key in FILTER_KEYS}


def wants_event(filters: Filters, event_type: str, selectors: Filters) -> bool:
    """Does a connection with ``filters`` receive this event?

    No filters means everything. An event that names no fixture or sport is a
    global refresh and reaches every connection that accepts its type.
    """
    types = filters.get("event_types")
    if types and event_type not in types:
        return False

    subscribed = [key for key in SELECTOR_KEYS if filters.get(key)]
    if not subscribed or not any(selectors.get(key) for key in SELECTOR_KEYS):
        return True
    return any(filters[key] & selectors.get(key, set()) for key in subscribed)


@dataclass
class ManagedConnection:
    connection_id: str
    websocket: WebSocket
    user_id: Optional[str] = None
    filters: Filters = field(default_factory=lambda: parse_filters({}))
    connected_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)


class WebSocketManager:
    def __init__(self, *, max_connections: int, heartbeat_seconds: int) -> None:
        self._max_connections = max(1, int(max_connections))
        self._heartbeat_seconds = max(1, int(heartbeat_seconds))
        self._connections: dict[str, ManagedConnection] = {}
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None

        self.broadcast_total = 0
        self.send_failures = 0
        self.dropped_connections = 0
        self._errors: deque[dict[str, Any]] = deque(maxlen=_ERROR_HISTORY)

    @property
    def running(self) -> bool:
        return self._heartbeat_task is not None

    @property
    def is_full(self) -> bool:
        return len(self._connections) >= self._max_connections

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    # ---------- Lifecycle ----------

    async def start(self) -> None:
        async with self._lock:
            if self._heartbeat_task is None:
                self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="ws_heartbeat")
                logger.info("WebSocket manager started (heartbeat %ds)", self._heartbeat_seconds)

    async def stop(self) -> None:
        async with self._lock:
            task, self._heartbeat_task = self._heartbeat_task, None
            self._connections.clear()
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("WebSocket manager stopped")

    # ---------- Connections ----------

    async def connect(
        self,
        websocket: WebSocket,
        *,
        user_id: Optional[str] = None,
        initial_filters: dict[str, Any] | None = None,
    ) -> str:
        """Accept and register a socket. Raises ConnectionLimitError before accepting when full."""
        async with self._lock:
            if self.is_full:
                raise ConnectionLimitError("max_connections_exceeded")
            await websocket.accept()
            conn = ManagedConnection(
                connection_id=str(uuid.uuid4()),
                websocket=websocket,
                user_id=str(user_id) if user_id else None,
                filters=parse_filters(initial_filters),
            )
            self._connections[conn.connection_id] = conn
            total = len(self._connections)
        logger.info("WS client connected user=%s (%d total)", conn.user_id or "guest", total)
        return conn.connection_id

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            removed = self._connections.pop(connection_id, None)
            total = len(self._connections)
        if removed is not None:
            logger.info("WS client disconnected (%d remaining)", total)

    async def touch(self, connection_id: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.last_seen_at = utcnow()

    async def update_filters(self, connection_id: str, command_type: str, payload: dict[str, Any]) -> dict[str, list[str]]:
        """Apply a subscription command and return the connection's resulting filters."""
        if command_type not in SUBSCRIPTION_COMMANDS:
            raise ValueError("unsupported_command")
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                raise ConnectionNotFoundError("connection_not_found")

            incoming = parse_filters(payload)
            if command_type == "replace_subscriptions":
                conn.filters = incoming
            else:
                for key in FILTER_KEYS:
                    if command_type == "subscribe":
                        conn.filters[key] |= incoming[key]
                    else:
                        conn.filters[key] -= incoming[key]
            conn.last_seen_at = utcnow()
            return filters_as_json(conn.filters)

    # ---------- Delivery ----------

    async def broadcast(
        self,
        *,
        event_type: str,
        data: dict[str, Any],
        selectors: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> int:
        """Send one event to every matching connection. Returns the delivery count."""
        event_type = str(event_type)
        wanted = {key: _clean_tokens((selectors or {}).get(key)) for key in SELECTOR_KEYS}
        message = {
            "type": event_type,
            "timestamp": utcnow().isoformat(),
            "data": data,
            "meta": meta or {},
        }

        targets = [c for c in self._snapshot() if wants_event(c.filters, event_type, wanted)]
        failed = [c.connection_id for c in targets if not await self._send(c, message)]
        await self._drop(failed)

        self.broadcast_total += 1
        return len(targets) - len(failed)

    async def _send(self, conn: ManagedConnection, message: dict[str, Any]) -> bool:
        try:
            await conn.websocket.send_json(message)
        except Exception as exc:
            self.send_failures += 1
            self._errors.append(
                {
                    "ts": utcnow().isoformat(),
                    "connection_id": conn.connection_id,
                    "event_type": message.get("type"),
                    "error": str(exc),
                }
            )
            return False
        return True

    async def _drop(self, connection_ids: Iterable[str]) -> None:
        for connection_id in connection_ids:
            await self.disconnect(connection_id)
            self.dropped_connections += 1

    def _snapshot(self) -> list[ManagedConnection]:
        return list(self._connections.values())

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            ping = {"type": "ping", "data": {"ts": utcnow().isoformat()}}
            dead = [c.connection_id for c in self._snapshot() if not await self._send(c, ping)]
            if dead:
                logger.info("Heartbeat dropped %d stale WS connections", len(dead))
            await self._drop(dead)

    def stats(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "active_connections": len(self._connections),
            "max_connections": self._max_connections,
            "heartbeat_seconds": self._heartbeat_seconds,
            "broadcast_total": self.broadcast_total,
            "send_failures": self.send_failures,
            "dropped_connections": self.dropped_connections,
            "last_errors": list(self._errors),
        }


websocket_manager = WebSocketManager(
    max_connections=settings.WS_MAX_CONNECTIONS,
    heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
)
