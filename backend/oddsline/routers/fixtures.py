"""Fixture listings consumed by the odds views."""

from fastapi import APIRouter, Query

from oddsline.models.bet import FixtureResponse
from oddsline.services.fixture_service import (
    fixture_to_response,
    list_live_fixtures,
    list_open_fixtures,
)

router = APIRouter(prefix="/api/fixtures", tags=["fixtures"])


@router.get("", response_model=list[FixtureResponse])
async def get_fixtures(limit: int = Query(200, ge=1, le=500)):
    """Upcoming and in-play fixtures, soonest first."""
    fixtures = await list_open_fixtures(limit=limit)
    return [fixture_to_response(f) for f in fixtures]


@router.get("/live", response_model=list[FixtureResponse])
async def get_live_fixtures(limit: int = Query(200, ge=1, le=500)):
    fixtures = await list_live_fixtures(limit=limit)
    return [fixture_to_response(f) for f in fixtures]
