"""
backend/oddsline/services/bet_service.py

Purpose:
    Single-bet placement and bet history. Placement re-reads the fixture,
    locks the current server-side odds (with a drift guard against the odds
    the user saw), deducts the stake atomically and stores the bet.

Dependencies:
    - oddsline.database
    - oddsline.services.fixture_service
"""

import logging
from decimal import Decimal

from bson import ObjectId
from fastapi import HTTPException, status

import oddsline.database as _db
from oddsline.config import settings
from oddsline.models.bet import OPEN_FIXTURE_STATUSES, BetStatus, PlaceBetRequest
from oddsline.services.fixture_service import current_odds, get_fixture, match_label
from oddsline.utils import format_money, format_odds, round_money, utcnow

logger = logging.getLogger("oddsline.bet_service")


def _check_drift(displayed: Decimal, locked: Decimal, fixture_id: str) -> None:
    drift = abs(displayed - locked) / locked
    if drift > Decimal(str(settings.ODDS_DRIFT_MAX_RATIO)):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Odds have changed.",
                "code": "ODDS_CHANGED",
                "fixture_id": fixture_id,
                "current_odds": format_odds(locked),
            },
        )


async def _deduct_balance(user_id: ObjectId, stake: Decimal) -> dict:
    """Atomically take the stake from the user's balance; guards against overdraft."""
    user = await _db.db.users.find_one_and_update(
        {"_id": user_id, "balance": {"$gte": float(stake)}},
        {
            "$inc": {"balance": -float(stake), "total_bets_placed": 1},
            "$set": {"updated_at": utcnow()},
        },
        return_document=True,
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Insufficient balance.",
        )
    return user


async def _refund_balance(user_id: ObjectId, stake: Decimal) -> None:
    await _db.db.users.update_one(
        {"_id": user_id},
        {"$inc": {"balance": float(stake), "total_bets_placed": -1}},
    )


async def place_bet(user: dict, body: PlaceBetRequest) -> dict:
    fixture = await get_fixture(body.fixture_id)
    if not fixture:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fixture not found.",
        )
    if fixture.get("status") not in OPEN_FIXTURE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Fixture is not open for betting.",
        )

    market = body.market.value
    locked_odds = current_odds(fixture, market)
    if locked_odds is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"No odds available for market '{market}'.",
        )
    _check_drift(body.odds, locked_odds, body.fixture_id)

    stake = round_money(body.stake)
    if stake <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Stake must be greater than zero.",
        )
    potential_win = round_money(locked_odds * stake)

    user_oid = user["_id"]
    await _deduct_balance(user_oid, stake)

    now = utcnow()
    bet_doc = {
        "user_id": str(user_oid),
        "fixture_id": body.fixture_id,
        "market": market,
        "odds": float(locked_odds),
        "stake": float(stake),
        "potential_win": float(potential_win),
        "status": BetStatus.pending.value,
        "placed_at": now,
        "match": match_label(fixture),
        "league": fixture.get("league", ""),
    }
    try:
        result = await _db.db.bets.insert_one(bet_doc)
    except Exception:
        logger.exception("Bet insert failed, refunding stake: user=%s fixture=%s", user_oid, body.fixture_id)
        await _refund_balance(user_oid, stake)
        raise
    bet_doc["_id"] = result.inserted_id

    logger.info(
        "Bet placed: user=%s fixture=%s market=%s odds=%s stake=%s potential_win=%s",
        user_oid, body.fixture_id, market, locked_odds, stake, potential_win,
    )
    return bet_doc


async def get_user_bets(user_id: str, limit: int = 100) -> list[dict]:
    cursor = _db.db.bets.find({"user_id": user_id}).sort("placed_at", -1)
    return await cursor.to_list(length=limit)


def bet_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "user_id": doc["user_id"],
        "fixture_id": doc["fixture_id"],
        "market": doc["market"],
        "odds": format_odds(doc.get("odds")),
        "stake": format_money(doc.get("stake")),
        "potential_win": format_money(doc.get("potential_win")),
        "status": doc.get("status", BetStatus.pending.value),
        "placed_at": doc["placed_at"],
        "match": doc.get("match") or None,
        "settled_at": doc.get("settled_at"),
    }
