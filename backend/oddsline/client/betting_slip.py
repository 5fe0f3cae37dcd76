"""
backend/oddsline/client/betting_slip.py

Purpose:
    In-memory betting slip for one user session. Holds pending selections
    keyed by (fixture_id, market) and their stakes until the slip is submitted.
    Nothing here touches the network; submission lives in
    ``oddsline.client.submission``.

Dependencies:
    - oddsline.models.betting_slip
    - oddsline.utils
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterator, Optional

from oddsline.models.betting_slip import BetSelection, BetSubmission, Market, SelectionKey
from oddsline.utils import round_money, to_decimal

logger = logging.getLogger("oddsline.client.betting_slip")

_ZERO = Decimal("0")


def _market_value(market: Market | str) -> str:
    return market.value if isinstance(market, Market) else str(market)


def _coerce_stake(amount: Any) -> Optional[Decimal]:
    """Parse a stake typed by the user. Unparseable input means "unset"."""
    parsed = to_decimal(amount)
    if parsed is None:
        return None
    if parsed < 0:
        raise ValueError("Stake must not be negative.")
    return parsed


def stake_of(selection: BetSelection) -> Decimal:
    return selection.stake if selection.stake is not None else _ZERO


def potential_win(selection: BetSelection) -> Decimal:
    """Payout if the selection wins, rounded to cents."""
    return round_money(selection.odds * stake_of(selection))


class BettingSlip:
    """Ordered set of selections with at most one entry per (fixture, market).

    A session owns exactly one slip and passes it explicitly to whatever
    needs it; there is no module-level instance.
    """

    def __init__(self) -> None:
        # dict keeps insertion order; a replaced selection moves to the end.
        self._selections: dict[SelectionKey, BetSelection] = {}

    def __len__(self) -> int:
        return len(self._selections)

    def __iter__(self) -> Iterator[BetSelection]:
        return iter(list(self._selections.values()))

    def __contains__(self, key: object) -> bool:
        if isinstance(key, BetSelection):
            return key.key in self._selections
        if isinstance(key, tuple) and len(key) == 2:
            return (str(key[0]), _market_value(key[1])) in self._selections
        return False

    @property
    def is_empty(self) -> bool:
        return not self._selections

    def selections(self) -> list[BetSelection]:
        return list(self._selections.values())

    def get(self, fixture_id: str, market: Market | str) -> BetSelection | None:
        return self._selections.get((str(fixture_id), _market_value(market)))

    # ---------- Mutations ----------

    def add(self, selection: BetSelection) -> None:
        """Insert a selection; an existing entry for the same fixture and market is replaced."""
        key = selection.key
        replaced = self._selections.pop(key, None)
        self._selections[key] = selection
        if replaced is not None:
            logger.debug(
                "Replaced selection fixture=%s market=%s odds %s -> %s",
                key[0], key[1], replaced.odds, selection.odds,
            )

    def remove(self, fixture_id: str, market: Market | str) -> bool:
        """Remove one selection. Missing entries are a no-op; returns whether anything was removed."""
        return self._selections.pop((str(fixture_id), _market_value(market)), None) is not None

    def set_stake(self, fixture_id: str, amount: Any, market: Market | str | None = None) -> int:
        """Set the stake on a fixture's selections.

        Without ``market`` every selection on ``fixture_id`` gets the stake.
        With ``market`` only that (fixture, market) entry is updated. Returns
        the number of selections changed.
        """
        stake = _coerce_stake(amount)
        fixture_id = str(fixture_id)
        market_value = _market_value(market) if market is not None else None

        updated = 0
        for key, selection in self._selections.items():
            if key[0] != fixture_id:
                continue
            if market_value is not None and key[1] != market_value:
                continue
            self._selections[key] = selection.model_copy(update={"stake": stake})
            updated += 1
        return updated

    def clear(self) -> None:
        self._selections.clear()

    # ---------- Derived reads ----------

    def total_stake(self) -> Decimal:
        return sum((stake_of(s) for s in self._selections.values()), _ZERO)

    def total_potential_payout(self) -> Decimal:
        return sum((s.odds * stake_of(s) for s in self._selections.values()), _ZERO)

    def staked_selections(self) -> list[BetSelection]:
        return [s for s in self._selections.values() if stake_of(s) > 0]

    def submission_payloads(self) -> list[BetSubmission]:
        """One ``POST /api/bets`` body per selection with a non-zero stake."""
        return [
            BetSubmission(
                fixture_id=s.fixture_id,
                market=s.market,
                odds=str(s.odds),
                stake=str(stake_of(s)),
                potential_win=str(potential_win(s)),
            )
            for s in self.staked_selections()
        ]
