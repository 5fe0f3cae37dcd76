"""
backend/oddsline/services/fixture_service.py

Purpose:
    Fixture reads for listings and bet validation, plus admin odds edits
    and result entry.
    Odds are stored as floats on the fixture document (``home_odds`` ...
    ``under_odds``); ``odds_updated_at`` is stamped on every edit and drives
    the periodic ``odds_update`` broadcast.

Dependencies:
    - oddsline.database
    - oddsline.models.bet
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException, status

import oddsline.database as _db
from oddsline.models.bet import OPEN_FIXTURE_STATUSES, FixtureOddsUpdate, FixtureResultUpdate, FixtureStatus
from oddsline.models.betting_slip import Market
from oddsline.utils import format_odds, to_decimal, utcnow

logger = logging.getLogger("oddsline.fixture_service")

MARKET_ODDS_FIELD = {market.value: f"{market.value}_odds" for market in Market}
_ODDS_FIELDS = (*MARKET_ODDS_FIELD.values(), "total_line")


def match_label(fixture: dict) -> str:
    home = fixture.get("home_team") or ""
    away = fixture.get("away_team") or ""
    if not home or not away:
        return ""
    return f"{home} vs {away}"


def current_odds(fixture: dict, market: str) -> Optional[Decimal]:
    """Current decimal odds for a market, None when the market is not offered."""
    field = MARKET_ODDS_FIELD.get(str(market))
    if not field:
        return None
    odds = to_decimal(fixture.get(field))
    if odds is None or odds <= 0:
        return None
    return odds


def fixture_to_response(doc: dict) -> dict:
    out = {
        "id": str(doc["_id"]),
        "sport": doc.get("sport", ""),
        "league": doc.get("league", ""),
        "home_team": doc.get("home_team", ""),
        "away_team": doc.get("away_team", ""),
        "start_time": doc.get("start_time"),
        "status": doc.get("status", "scheduled"),
        "is_live": bool(doc.get("is_live", False)),
        "home_score": doc.get("home_score"),
        "away_score": doc.get("away_score"),
        "current_minute": doc.get("current_minute"),
    }
    for field in _ODDS_FIELDS:
        value = doc.get(field)
        out[field] = format_odds(value) if value is not None else None
    return out


async def list_open_fixtures(limit: int = 200) -> list[dict]:
    cursor = _db.db.fixtures.find({"status": {"$in": list(OPEN_FIXTURE_STATUSES)}}).sort("start_time", 1)
    return await cursor.to_list(length=limit)


async def list_live_fixtures(limit: int = 200) -> list[dict]:
    cursor = _db.db.fixtures.find({"is_live": True}).sort("start_time", 1)
    return await cursor.to_list(length=limit)


async def get_fixture(fixture_id: str) -> Optional[dict]:
    return await _db.db.fixtures.find_one({"_id": ObjectId(fixture_id)})


async def update_fixture_odds(fixture_id: str, update: FixtureOddsUpdate) -> dict:
    """Apply an admin odds edit and stamp ``odds_updated_at``."""
    changes = {
        field: float(value)
        for field, value in update.model_dump(exclude_none=True).items()
    }
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No odds supplied.",
        )

    now = utcnow()
    fixture = await _db.db.fixtures.find_one_and_update(
        {"_id": ObjectId(fixture_id)},
        {"$set": {**changes, "odds_updated_at": now}},
        return_document=True,
    )
    if not fixture:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fixture not found.",
        )

    logger.info("Odds updated: fixture=%s fields=%s", fixture_id, ",".join(sorted(changes)))
    return fixture


async def record_fixture_result(fixture_id: str, update: FixtureResultUpdate) -> dict:
    """Store the score and status. Only finished fixtures are picked up by settlement."""
    fixture = await _db.db.fixtures.find_one_and_update(
        {"_id": ObjectId(fixture_id)},
        {"$set": {
            "home_score": update.home_score,
            "away_score": update.away_score,
            "status": update.status.value,
            "is_live": update.status == FixtureStatus.live,
            "updated_at": utcnow(),
        }},
        return_document=True,
    )
    if not fixture:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fixture not found.",
        )

    logger.info(
        "Result recorded: fixture=%s %d-%d status=%s",
        fixture_id, update.home_score, update.away_score, update.status.value,
    )
    return fixture


async def fixture_ids_with_odds_changed_since(since: datetime, limit: int = 500) -> list[str]:
    cursor = _db.db.fixtures.find(
        {"odds_updated_at": {"$gt": since}},
        {"_id": 1},
    )
    docs = await cursor.to_list(length=limit)
    return [str(doc["_id"]) for doc in docs]
