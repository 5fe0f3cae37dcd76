"""Bets API: single-bet placement and the caller's bet history."""

from fastapi import APIRouter, Depends, Query, status

from oddsline.models.bet import BetResponse, PlaceBetRequest
from oddsline.services.auth_service import get_current_user
from oddsline.services.bet_service import bet_to_response, get_user_bets, place_bet

router = APIRouter(prefix="/api/bets", tags=["bets"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BetResponse)
async def create_bet(
    body: PlaceBetRequest,
    user=Depends(get_current_user),
):
    """Place one bet; the stake is deducted from the user's balance."""
    bet = await place_bet(user, body)
    return bet_to_response(bet)


@router.get("/user", response_model=list[BetResponse])
async def my_bets(
    user=Depends(get_current_user),
    limit: int = Query(100, ge=1, le=500),
):
    bets = await get_user_bets(str(user["_id"]), limit=limit)
    return [bet_to_response(b) for b in bets]
