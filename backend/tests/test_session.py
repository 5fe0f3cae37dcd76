from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from oddsline.client import BettingSession
from oddsline.client.api import OddslineApi
from oddsline.client.http_client import ResilientClient
from oddsline.models.betting_slip import BetSelection


class _Backend:
    """Tiny in-memory stand-in for the REST endpoints."""

    def __init__(self):
        self.balance = 50.0
        self.hits: dict[str, int] = {}
        self.bets: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = f"{request.method} {request.url.path}"
        self.hits[key] = self.hits.get(key, 0) + 1
        if key == "GET /api/fixtures":
            return httpx.Response(200, json=[{"id": "f1", "home_odds": 2.0}])
        if key == "GET /api/user":
            return httpx.Response(200, json={"id": "u1", "username": "punter", "balance": self.balance})
        if key == "GET /api/bets/user":
            return httpx.Response(200, json=self.bets)
        if key == "POST /api/bets":
            bet = {"id": f"b{len(self.bets) + 1}", "status": "pending"}
            self.bets.append(bet)
            self.balance -= 10
            return httpx.Response(201, json=bet)
        return httpx.Response(404, json={"detail": "Not found"})


class _NoSocket:
    async def __call__(self, url):
        raise OSError("no socket in tests")


def _session(backend: _Backend) -> BettingSession:
    http = ResilientClient("http://testserver", transport=httpx.MockTransport(backend), max_retries=0, base_delay=0)
    return BettingSession.create("http://testserver", api=OddslineApi(http), connector=_NoSocket())


def test_session_derives_socket_url_from_base_url():
    session = _session(_Backend())
    assert session.notifier.url == "ws://testserver/ws"


@pytest.mark.asyncio
async def test_cached_reads_hit_backend_once():
    backend = _Backend()
    session = _session(backend)

    first = await session.fixtures()
    second = await session.fixtures()

    assert first == second == [{"id": "f1", "home_odds": 2.0}]
    assert backend.hits["GET /api/fixtures"] == 1
    await session.close()


@pytest.mark.asyncio
async def test_odds_push_triggers_refetch():
    backend = _Backend()
    session = _session(backend)
    await session.fixtures()

    session.notifier.handle_message('{"type": "odds_update"}')
    await session.fixtures()

    assert backend.hits["GET /api/fixtures"] == 2
    await session.close()


@pytest.mark.asyncio
async def test_place_bets_refreshes_balance_and_history():
    backend = _Backend()
    session = _session(backend)
    session.slip.add(
        BetSelection(fixture_id="f1", match="A vs B", market="home", odds=Decimal("2.0"), league="L", stake=Decimal("10"))
    )

    assert (await session.current_user())["balance"] == 50.0
    assert await session.bet_history() == []

    result = await session.place_bets()

    assert result.ok
    assert session.slip.is_empty
    assert (await session.current_user())["balance"] == 40.0
    assert len(await session.bet_history()) == 1
    assert backend.hits["GET /api/user"] == 2
    await session.close()
