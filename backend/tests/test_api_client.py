"""
backend/tests/test_api_client.py

Purpose:
    REST client layer: retry policy of ResilientClient (idempotent reads
    only) and OddslineApi error mapping.
"""

from __future__ import annotations

import json

import httpx
import pytest

from oddsline.client.api import ApiError, OddslineApi
from oddsline.client.http_client import CircuitOpenError, ResilientClient
from oddsline.models.betting_slip import BetSubmission, Market


def _client(handler, **kwargs) -> ResilientClient:
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("base_delay", 0)
    return ResilientClient("http://testserver", transport=httpx.MockTransport(handler), **kwargs)


def _submission() -> BetSubmission:
    return BetSubmission(
        fixture_id="f1",
        market=Market.home,
        odds="1.85",
        stake="10.00",
        potential_win="18.50",
    )


@pytest.mark.asyncio
async def test_get_retries_on_server_error_then_succeeds():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=[{"id": "f1"}])

    http = _client(handler)
    resp = await http.get("/api/fixtures")

    assert resp.status_code == 200
    assert calls == ["/api/fixtures"] * 3
    await http.aclose()


@pytest.mark.asyncio
async def test_post_is_never_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(503, json={"detail": "busy"})

    http = _client(handler, max_retries=5)
    resp = await http.post("/api/bets", json={})

    assert resp.status_code == 503
    assert calls == ["POST"]
    await http.aclose()


@pytest.mark.asyncio
async def test_network_errors_exhaust_retries_and_raise():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("refused", request=request)

    http = _client(handler, max_retries=1)
    with pytest.raises(httpx.ConnectError):
        await http.get("/api/user")
    assert len(calls) == 2
    await http.aclose()


@pytest.mark.asyncio
async def test_open_circuit_refuses_requests():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    http = _client(handler)
    for _ in range(http.circuit.failure_threshold):
        http.circuit.record_failure()

    with pytest.raises(CircuitOpenError):
        await http.get("/api/fixtures")
    await http.aclose()


@pytest.mark.asyncio
async def test_current_user_is_none_for_guests():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"detail": "Not authenticated."})

    api = OddslineApi(_client(handler))
    assert await api.get_current_user() is None
    await api.aclose()


@pytest.mark.asyncio
async def test_place_bet_posts_wire_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "b1", "status": "pending"})

    api = OddslineApi(_client(handler))
    bet = await api.place_bet(_submission())

    assert bet == {"id": "b1", "status": "pending"}
    assert seen["method"] == "POST"
    assert seen["path"] == "/api/bets"
    assert seen["body"] == {
        "fixtureId": "f1",
        "market": "home",
        "odds": "1.85",
        "stake": "10.00",
        "potentialWin": "18.50",
    }
    await api.aclose()


@pytest.mark.asyncio
async def test_rejected_bet_raises_api_error_with_code():
    detail = {"message": "Odds have changed.", "code": "ODDS_CHANGED", "current_odds": 2.4}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"detail": detail})

    api = OddslineApi(_client(handler))
    with pytest.raises(ApiError) as exc_info:
        await api.place_bet(_submission())

    err = exc_info.value
    assert err.status_code == 409
    assert err.code == "ODDS_CHANGED"
    assert err.message == "Odds have changed."
    await api.aclose()


def test_api_error_with_plain_detail():
    err = ApiError(400, "Insufficient balance.")
    assert err.message == "Insufficient balance."
    assert err.code is None
