from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Market(str, Enum):
    home = "home"      # Home win
    draw = "draw"
    away = "away"      # Away win
    over = "over"      # Over the fixture's total_line
    under = "under"


SelectionKey = Tuple[str, str]


class BetSelection(BaseModel):
    """One pick on the client-side betting slip.

    Identity is the (fixture_id, market) pair. ``stake`` stays ``None`` until
    the user types an amount; unset stakes count as zero in every total.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    fixture_id: str = Field(alias="fixtureId", min_length=1)
    match: str = ""                               # "Home vs Away", display only
    market: Market
    odds: Decimal = Field(gt=0)                   # Decimal odds the user clicked
    league: str = ""
    stake: Optional[Decimal] = Field(default=None, ge=0)

    @property
    def key(self) -> SelectionKey:
        return (self.fixture_id, self.market.value)


class BetSubmission(BaseModel):
    """Wire body for ``POST /api/bets``; decimals travel as strings."""
    model_config = ConfigDict(populate_by_name=True)

    fixture_id: str = Field(alias="fixtureId")
    market: Market
    odds: str
    stake: str
    potential_win: str = Field(alias="potentialWin")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
