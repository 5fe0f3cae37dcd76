"""Settle pending bets on finished fixtures."""

import logging
from decimal import Decimal
from typing import Optional

from bson import ObjectId

import oddsline.database as _db
from oddsline.models.bet import BetStatus, FixtureStatus
from oddsline.models.wallet import TransactionType
from oddsline.services import wallet_service
from oddsline.utils import to_decimal, utcnow

logger = logging.getLogger("oddsline.bet_settler")

DEFAULT_TOTAL_LINE = Decimal("2.5")


def bet_outcome(market: str, home_score: int, away_score: int, total_line: Optional[Decimal] = None) -> BetStatus:
    """Result of one market for a final score.

    A total exactly on the line (whole-number lines only) is a push and
    settles as void.
    """
    line = total_line if total_line is not None else DEFAULT_TOTAL_LINE
    total = Decimal(home_score + away_score)

    if market == "home":
        won = home_score > away_score
    elif market == "draw":
        won = home_score == away_score
    elif market == "away":
        won = away_score > home_score
    elif market in ("over", "under"):
        if total == line:
            return BetStatus.void
        won = total > line if market == "over" else total < line
    else:
        won = False
    return BetStatus.won if won else BetStatus.lost


def _is_settleable(fixture: Optional[dict]) -> bool:
    return (
        fixture is not None
        and fixture.get("status") == FixtureStatus.finished.value
        and fixture.get("home_score") is not None
        and fixture.get("away_score") is not None
    )


async def settle_bets() -> int:
    """Resolve pending bets whose fixture has a final score. Returns the number settled.

    Each bet is claimed with a status-guarded update before any payout, so a
    bet is credited at most once even if two runs overlap.
    """
    pending_bets = await _db.db.bets.find(
        {"status": BetStatus.pending.value}
    ).to_list(length=5000)
    if not pending_bets:
        return 0

    now = utcnow()
    fixtures: dict[str, Optional[dict]] = {}
    settled = won_count = void_count = 0

    for bet in pending_bets:
        fixture_id = bet["fixture_id"]
        if fixture_id not in fixtures:
            fixtures[fixture_id] = await _db.db.fixtures.find_one({"_id": ObjectId(fixture_id)})
        fixture = fixtures[fixture_id]
        if not _is_settleable(fixture):
            continue

        home, away = int(fixture["home_score"]), int(fixture["away_score"])
        outcome = bet_outcome(bet["market"], home, away, to_decimal(fixture.get("total_line")))

        claimed = await _db.db.bets.update_one(
            {"_id": bet["_id"], "status": BetStatus.pending.value},
            {"$set": {
                "status": outcome.value,
                "settled_at": now,
                "final_score": f"{home}-{away}",
            }},
        )
        if not claimed.modified_count:
            continue
        settled += 1

        label = bet.get("match") or fixture_id
        if outcome == BetStatus.won:
            await wallet_service.credit_balance(
                bet["user_id"],
                to_decimal(bet["potential_win"]),
                TransactionType.BET_WON,
                reference_type="bet",
                reference_id=str(bet["_id"]),
                description=f"Win: {label} -> {bet['market']}",
            )
            won_count += 1
        elif outcome == BetStatus.void:
            await wallet_service.credit_balance(
                bet["user_id"],
                to_decimal(bet["stake"]),
                TransactionType.BET_VOID,
                reference_type="bet",
                reference_id=str(bet["_id"]),
                description=f"Push: {label} -> {bet['market']}",
            )
            void_count += 1

    if settled:
        logger.info("Settled %d bets (%d won, %d void)", settled, won_count, void_count)
    return settled
