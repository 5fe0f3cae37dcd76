from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from oddsline.models.betting_slip import Market


class BetStatus(str, Enum):
    pending = "pending"    # Placed, awaiting result
    won = "won"
    lost = "lost"
    void = "void"


class FixtureStatus(str, Enum):
    scheduled = "scheduled"
    live = "live"
    finished = "finished"
    postponed = "postponed"


OPEN_FIXTURE_STATUSES = (FixtureStatus.scheduled.value, FixtureStatus.live.value)


# ---------- Request models ----------

class PlaceBetRequest(BaseModel):
    """Request body for placing a single bet."""
    model_config = ConfigDict(populate_by_name=True)

    fixture_id: str = Field(alias="fixtureId", min_length=1)
    market: Market
    odds: Decimal = Field(gt=0)                   # Odds the user saw
    stake: Decimal = Field(gt=0)
    potential_win: Optional[Decimal] = Field(default=None, alias="potentialWin")  # Recomputed server-side


class FixtureOddsUpdate(BaseModel):
    """Admin odds edit; omitted fields are left untouched."""
    home_odds: Optional[Decimal] = Field(default=None, gt=0)
    draw_odds: Optional[Decimal] = Field(default=None, gt=0)
    away_odds: Optional[Decimal] = Field(default=None, gt=0)
    over_odds: Optional[Decimal] = Field(default=None, gt=0)
    under_odds: Optional[Decimal] = Field(default=None, gt=0)
    total_line: Optional[Decimal] = Field(default=None, ge=0)


class FixtureResultUpdate(BaseModel):
    """Admin score entry. A finished fixture with both scores is settled by the worker."""
    home_score: int = Field(ge=0)
    away_score: int = Field(ge=0)
    status: FixtureStatus = FixtureStatus.finished


# ---------- Response models ----------

class BetResponse(BaseModel):
    id: str
    user_id: str
    fixture_id: str
    market: str
    odds: str
    stake: str
    potential_win: str
    status: str
    placed_at: datetime
    match: Optional[str] = None
    settled_at: Optional[datetime] = None


class FixtureResponse(BaseModel):
    id: str
    sport: str
    league: str
    home_team: str
    away_team: str
    start_time: Optional[datetime] = None
    status: str
    is_live: bool = False
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    current_minute: Optional[int] = None
    home_odds: Optional[str] = None
    draw_odds: Optional[str] = None
    away_odds: Optional[str] = None
    over_odds: Optional[str] = None
    under_odds: Optional[str] = None
    total_line: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: str = ""
    balance: str
    is_admin: bool = False
