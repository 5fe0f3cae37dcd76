"""
backend/tests/test_bet_settler.py

Purpose:
    Settlement worker: market outcomes for a final score, payouts for won
    and void bets, and idempotence across runs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from bson import ObjectId

from oddsline.models.bet import BetStatus
from oddsline.workers import bet_settler
from oddsline.workers.bet_settler import bet_outcome, settle_bets


def _matches(doc: dict, query: dict) -> bool:
    return all(doc.get(key) == value for key, value in query.items())


class _FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    async def to_list(self, length: int):
        return [dict(d) for d in self._docs[:length]]


class _FakeCollection:
    def __init__(self, docs=None):
        self.docs = [dict(d) for d in (docs or [])]

    def find(self, query):
        return _FakeCursor([d for d in self.docs if _matches(d, query)])

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    async def find_one_and_update(self, query, update, return_document=False):
        for doc in self.docs:
            if _matches(doc, query):
                for key, delta in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + delta
                doc.update(update.get("$set", {}))
                return dict(doc)
        return None

    async def update_one(self, query, update):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update["$set"])
                return SimpleNamespace(modified_count=1)
        return SimpleNamespace(modified_count=0)

    async def insert_one(self, doc):
        doc["_id"] = ObjectId()
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])


@pytest.mark.parametrize(
    "market, home, away, line, expected",
    [
        ("home", 2, 1, None, BetStatus.won),
        ("home", 1, 1, None, BetStatus.lost),
        ("draw", 0, 0, None, BetStatus.won),
        ("away", 0, 3, None, BetStatus.won),
        ("over", 2, 1, None, BetStatus.won),
        ("under", 1, 1, None, BetStatus.won),
        ("under", 2, 1, Decimal("3"), BetStatus.void),
        ("over", 2, 1, Decimal("3.5"), BetStatus.lost),
        ("handicap", 2, 1, None, BetStatus.lost),
    ],
)
def test_bet_outcome(market, home, away, line, expected):
    assert bet_outcome(market, home, away, line) == expected


def _bet(user_id: str, fixture_id: str, market: str, stake: float, odds: float) -> dict:
    return {
        "_id": ObjectId(),
        "user_id": user_id,
        "fixture_id": fixture_id,
        "market": market,
        "odds": odds,
        "stake": stake,
        "potential_win": round(stake * odds, 2),
        "status": "pending",
        "placed_at": datetime.now(timezone.utc),
        "match": "Roma vs Lazio",
    }


@pytest.fixture
def book(monkeypatch):
    user = {"_id": ObjectId(), "email": "p@example.com", "balance": 0.0}
    finished = {"_id": ObjectId(), "status": "finished", "home_score": 2, "away_score": 1, "total_line": 3}
    upcoming = {"_id": ObjectId(), "status": "scheduled"}
    no_score = {"_id": ObjectId(), "status": "finished", "home_score": None, "away_score": None}
    uid = str(user["_id"])
    bets = [
        _bet(uid, str(finished["_id"]), "home", 10.0, 2.0),
        _bet(uid, str(finished["_id"]), "away", 10.0, 3.5),
        _bet(uid, str(finished["_id"]), "over", 4.0, 1.9),
        _bet(uid, str(upcoming["_id"]), "home", 5.0, 1.5),
        _bet(uid, str(no_score["_id"]), "draw", 5.0, 3.0),
    ]
    db = SimpleNamespace(
        users=_FakeCollection([user]),
        fixtures=_FakeCollection([finished, upcoming, no_score]),
        bets=_FakeCollection(bets),
        wallet_transactions=_FakeCollection(),
    )
    monkeypatch.setattr(bet_settler._db, "db", db, raising=False)
    return db


@pytest.mark.asyncio
async def test_settles_only_finished_fixtures_with_scores(book):
    settled = await settle_bets()

    assert settled == 3
    statuses = [b["status"] for b in book.bets.docs]
    assert statuses == ["won", "lost", "void", "pending", "pending"]
    assert all(b.get("final_score") == "2-1" for b in book.bets.docs[:3])
    assert book.bets.docs[0]["settled_at"] is not None

    # Win pays potential_win; push refunds the stake.
    assert book.users.docs[0]["balance"] == pytest.approx(24.0)
    assert [tx["type"] for tx in book.wallet_transactions.docs] == ["BET_WON", "BET_VOID"]


@pytest.mark.asyncio
async def test_second_run_pays_nothing_twice(book):
    await settle_bets()
    balance = book.users.docs[0]["balance"]

    assert await settle_bets() == 0
    assert book.users.docs[0]["balance"] == balance
    assert len(book.wallet_transactions.docs) == 2


@pytest.mark.asyncio
async def test_bet_settled_elsewhere_is_not_credited(book, monkeypatch):
    real_update = book.bets.update_one

    async def _lost_race(query, update):
        # Another run already moved the bet out of pending.
        for doc in book.bets.docs:
            if doc["_id"] == query["_id"]:
                doc["status"] = "won"
        return await real_update(query, update)

    monkeypatch.setattr(book.bets, "update_one", _lost_race)

    assert await settle_bets() == 0
    assert book.users.docs[0]["balance"] == 0.0


@pytest.mark.asyncio
async def test_nothing_pending_is_a_noop(monkeypatch):
    db = SimpleNamespace(bets=_FakeCollection(), fixtures=_FakeCollection(), users=_FakeCollection())
    monkeypatch.setattr(bet_settler._db, "db", db, raising=False)

    assert await settle_bets() == 0
