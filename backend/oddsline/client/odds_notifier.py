"""
backend/oddsline/client/odds_notifier.py

Purpose:
    Live odds notifier. Keeps one WebSocket open to the server's push
    endpoint and invalidates cached fixture listings whenever an
    ``odds_update`` arrives, so views refetch fresh odds.

    States: disconnected -> connecting -> connected. Any connect failure,
    close or error drops back to disconnected and schedules exactly one
    reconnect timer (capped exponential backoff with jitter). ``stop()``
    cancels the timer and closes the socket; nothing reconnects after that.

Dependencies:
    - websockets
    - oddsline.client.query_cache
    - oddsline.client.backoff
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse, urlunparse

import websockets
from websockets.exceptions import ConnectionClosed

from oddsline.client.backoff import ReconnectBackoff
from oddsline.client.query_cache import FIXTURES_KEY, QueryCache, QueryKey, key_path
from oddsline.config import settings
from oddsline.utils import utcnow

logger = logging.getLogger("oddsline.client.odds_notifier")

ODDS_UPDATE = "odds_update"
STATUS_LIVE = "Live"
STATUS_NOT_CONNECTED = "Not Connected"

Connector = Callable[[str], Awaitable[Any]]
StateListener = Callable[["ConnectionState"], None]


class NotifierStatus(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"


@dataclass(frozen=True)
class ConnectionState:
    connected: bool
    last_update: datetime | None


def build_socket_url(page_url: str, path: str | None = None) -> str:
    """Socket URL on the page's host; ``wss`` when the page is served over https."""
    parsed = urlparse(page_url)
    scheme = "wss" if parsed.scheme == "https" else "ws"
    return urlunparse((scheme, parsed.netloc, path or settings.WS_PATH, "", "", ""))


async def _websockets_connector(url: str) -> Any:
    return await websockets.connect(url)


def default_backoff() -> ReconnectBackoff:
    return ReconnectBackoff(
        base_delay=settings.NOTIFIER_RECONNECT_BASE_SECONDS,
        max_delay=settings.NOTIFIER_RECONNECT_MAX_SECONDS,
        factor=settings.NOTIFIER_RECONNECT_FACTOR,
        jitter=settings.NOTIFIER_RECONNECT_JITTER,
    )


class LiveOddsNotifier:
    def __init__(
        self,
        url: str,
        cache: QueryCache,
        *,
        connector: Connector | None = None,
        backoff: ReconnectBackoff | None = None,
        invalidate_prefix: QueryKey = FIXTURES_KEY,
        on_state_change: StateListener | None = None,
    ) -> None:
        self.url = url
        self.cache = cache
        self._connector = connector or _websockets_connector
        self._backoff = backoff or default_backoff()
        self._invalidate_prefix = tuple(invalidate_prefix)
        self._on_state_change = on_state_change

        self._status = NotifierStatus.disconnected
        self._last_update: datetime | None = None
        self._socket: Any = None
        self._reader_task: asyncio.Task | None = None
        self._connect_task: asyncio.Task | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._stopped = False

        self.odds_updates = 0
        self.malformed_messages = 0
        self.connect_failures = 0
        self.disconnects = 0
        self.scheduled_retries = 0
        self.last_disconnect_at: datetime | None = None

    # ---------- Read-only state ----------

    @property
    def status(self) -> NotifierStatus:
        return self._status

    @property
    def connected(self) -> bool:
        return self._status == NotifierStatus.connected

    @property
    def last_update(self) -> datetime | None:
        return self._last_update

    @property
    def state(self) -> ConnectionState:
        return ConnectionState(connected=self.connected, last_update=self._last_update)

    @property
    def status_label(self) -> str:
        return STATUS_LIVE if self.connected else STATUS_NOT_CONNECTED

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    def stats(self) -> dict[str, Any]:
        return {
            "status": self._status.value,
            "last_update": self._last_update.isoformat() if self._last_update else None,
            "odds_updates": self.odds_updates,
            "malformed_messages": self.malformed_messages,
            "connect_failures": self.connect_failures,
            "disconnects": self.disconnects,
            "scheduled_retries": self.scheduled_retries,
            "retry_pending": self.retry_pending,
        }

    # ---------- Lifecycle ----------

    async def __aenter__(self) -> "LiveOddsNotifier":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def start(self) -> None:
        self._stopped = False
        await self.connect()

    async def stop(self) -> None:
        """Tear down: cancel the pending retry, stop reading, close the socket."""
        self._stopped = True
        self._cancel_retry()

        current = asyncio.current_task()
        for task in (self._connect_task, self._reader_task):
            if task is None or task.done() or task is current:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._connect_task = None
        self._reader_task = None

        socket, self._socket = self._socket, None
        if socket is not None:
            await self._close_quietly(socket)
        self._set_status(NotifierStatus.disconnected)
        logger.info("Odds notifier stopped")

    async def connect(self) -> None:
        """Single connect attempt. Failures schedule a retry instead of raising."""
        if self._stopped or self._status != NotifierStatus.disconnected:
            return

        self._set_status(NotifierStatus.connecting)
        try:
            socket = await self._connector(self.url)
        except asyncio.CancelledError:
            self._set_status(NotifierStatus.disconnected)
            raise
        except Exception as exc:
            self.connect_failures += 1
            logger.warning("Odds notifier connect to %s failed: %s", self.url, exc)
            self._set_status(NotifierStatus.disconnected)
            self._schedule_reconnect()
            return

        if self._stopped:
            await self._close_quietly(socket)
            self._set_status(NotifierStatus.disconnected)
            return

        self._socket = socket
        self.handle_open()
        self._reader_task = asyncio.create_task(self._read_loop(socket), name="odds_notifier_reader")

    # ---------- Socket events ----------

    def handle_open(self) -> None:
        self._backoff.reset()
        self._set_status(NotifierStatus.connected)
        logger.info("Odds notifier connected to %s", self.url)

    def handle_message(self, raw: str | bytes) -> bool:
        """Process one inbound frame. Returns True when it triggered an invalidation."""
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            self.malformed_messages += 1
            logger.warning("Discarding malformed odds push: %s", exc)
            return False
        if not isinstance(payload, dict):
            self.malformed_messages += 1
            logger.warning("Discarding odds push with non-object payload: %s", type(payload).__name__)
            return False

        if payload.get("type") != ODDS_UPDATE:
            return False

        self.cache.invalidate(self._invalidate_prefix)
        self._last_update = utcnow()
        self.odds_updates += 1
        logger.debug("odds_update received, invalidated %s", key_path(self._invalidate_prefix))
        return True

    def handle_close(self) -> None:
        logger.info("Odds notifier disconnected from %s", self.url)
        self._on_disconnect()

    def handle_error(self, exc: BaseException | None = None) -> None:
        logger.warning("Odds notifier socket error on %s: %s", self.url, exc)
        self._on_disconnect()

    # ---------- Internals ----------

    async def _read_loop(self, socket: Any) -> None:
        try:
            while True:
                raw = await socket.recv()
                self.handle_message(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed:
            self.handle_close()
        except Exception as exc:
            self.handle_error(exc)
        await self._close_quietly(socket)

    def _on_disconnect(self) -> None:
        if self._stopped:
            return
        if self._status != NotifierStatus.disconnected:
            self.disconnects += 1
            self.last_disconnect_at = utcnow()
        self._socket = None
        self._set_status(NotifierStatus.disconnected)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._stopped or self._retry_handle is not None:
            return
        delay = self._backoff.next_delay()
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self._fire_retry)
        self.scheduled_retries += 1
        logger.info("Odds notifier reconnect in %.1fs (attempt %d)", delay, self._backoff.attempt)

    def _fire_retry(self) -> None:
        self._retry_handle = None
        if self._stopped:
            return
        self._connect_task = asyncio.ensure_future(self.connect())

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _set_status(self, status: NotifierStatus) -> None:
        if status == self._status:
            return
        self._status = status
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(self.state)
        except Exception:
            logger.exception("Odds notifier state listener failed")

    @staticmethod
    async def _close_quietly(socket: Any) -> None:
        try:
            await socket.close()
        except Exception:
            logger.debug("Ignoring error while closing odds socket", exc_info=True)
