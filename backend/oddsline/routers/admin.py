"""Admin endpoints: odds and results maintenance, deposit and withdrawal review."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from oddsline.models.bet import FixtureOddsUpdate, FixtureResponse, FixtureResultUpdate
from oddsline.models.wallet import (
    DepositDecision,
    DepositResponse,
    DepositStatus,
    WithdrawalDecision,
    WithdrawalResponse,
    WithdrawalStatus,
)
from oddsline.services import wallet_service
from oddsline.services.auth_service import get_admin_user
from oddsline.services.fixture_service import fixture_to_response, record_fixture_result, update_fixture_odds
from oddsline.services.odds_events import broadcast_odds_update

logger = logging.getLogger("oddsline.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])


# ---------- Fixtures ----------

@router.patch("/fixtures/{fixture_id}/odds", response_model=FixtureResponse)
async def patch_fixture_odds(
    fixture_id: str,
    body: FixtureOddsUpdate,
    admin=Depends(get_admin_user),
):
    """Edit a fixture's odds and push ``odds_update`` right away."""
    fixture = await update_fixture_odds(fixture_id, body)
    logger.info("Admin %s edited odds for fixture %s", admin["_id"], fixture_id)
    await broadcast_odds_update([fixture_id], reason="admin_edit")
    return fixture_to_response(fixture)


@router.patch("/fixtures/{fixture_id}/result", response_model=FixtureResponse)
async def patch_fixture_result(
    fixture_id: str,
    body: FixtureResultUpdate,
    admin=Depends(get_admin_user),
):
    """Enter a score. Bets on finished fixtures are settled by the next settlement run."""
    fixture = await record_fixture_result(fixture_id, body)
    logger.info("Admin %s recorded result for fixture %s", admin["_id"], fixture_id)
    return fixture_to_response(fixture)


# ---------- Deposits ----------

@router.get("/deposits", response_model=list[DepositResponse])
async def list_deposits(
    status: Optional[DepositStatus] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    admin=Depends(get_admin_user),
):
    deposits = await wallet_service.list_deposits(status.value if status else None, limit=limit)
    return [wallet_service.deposit_to_response(d) for d in deposits]


@router.patch("/deposits/{deposit_id}", response_model=DepositResponse)
async def decide_deposit(
    deposit_id: str,
    body: DepositDecision,
    admin=Depends(get_admin_user),
):
    """Confirm (credits the balance) or fail a pending deposit."""
    deposit = await wallet_service.decide_deposit(deposit_id, body, admin)
    return wallet_service.deposit_to_response(deposit)


# ---------- Withdrawals ----------

@router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def list_withdrawals(
    status: Optional[WithdrawalStatus] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    admin=Depends(get_admin_user),
):
    withdrawals = await wallet_service.list_withdrawals(status.value if status else None, limit=limit)
    return [wallet_service.withdrawal_to_response(w) for w in withdrawals]


@router.patch("/withdrawals/{withdrawal_id}", response_model=WithdrawalResponse)
async def decide_withdrawal(
    withdrawal_id: str,
    body: WithdrawalDecision,
    admin=Depends(get_admin_user),
):
    """Process (debits the balance) or reject a pending withdrawal."""
    withdrawal = await wallet_service.decide_withdrawal(withdrawal_id, body, admin)
    return wallet_service.withdrawal_to_response(withdrawal)
