"""Wallet endpoints: deposit and withdrawal requests and the caller's ledger."""

from fastapi import APIRouter, Depends, Query, status

from oddsline.models.wallet import (
    DepositCreate,
    DepositResponse,
    WithdrawalCreate,
    WithdrawalResponse,
)
from oddsline.services import wallet_service
from oddsline.services.auth_service import get_current_user
from oddsline.utils import format_money

router = APIRouter(prefix="/api", tags=["wallet"])


# ---------- Deposits ----------

@router.post("/deposits", status_code=status.HTTP_201_CREATED, response_model=DepositResponse)
async def request_deposit(body: DepositCreate, user=Depends(get_current_user)):
    """Record a deposit; the balance is credited once an admin confirms it."""
    deposit = await wallet_service.create_deposit(user, body)
    return wallet_service.deposit_to_response(deposit)


@router.get("/deposits/user", response_model=list[DepositResponse])
async def my_deposits(
    user=Depends(get_current_user),
    limit: int = Query(100, ge=1, le=500),
):
    deposits = await wallet_service.list_user_deposits(str(user["_id"]), limit=limit)
    return [wallet_service.deposit_to_response(d) for d in deposits]


# ---------- Withdrawals ----------

@router.post("/withdrawals", status_code=status.HTTP_201_CREATED, response_model=WithdrawalResponse)
async def request_withdrawal(body: WithdrawalCreate, user=Depends(get_current_user)):
    withdrawal = await wallet_service.create_withdrawal(user, body)
    return wallet_service.withdrawal_to_response(withdrawal)


@router.get("/withdrawals/user", response_model=list[WithdrawalResponse])
async def my_withdrawals(
    user=Depends(get_current_user),
    limit: int = Query(100, ge=1, le=500),
):
    withdrawals = await wallet_service.list_user_withdrawals(str(user["_id"]), limit=limit)
    return [wallet_service.withdrawal_to_response(w) for w in withdrawals]


# ---------- Ledger ----------

@router.get("/wallet/transactions")
async def my_transactions(
    user=Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
):
    """Balance movements from deposits, withdrawals and settled bets."""
    txs = await wallet_service.get_user_transactions(str(user["_id"]), limit=limit)
    return [
        {
            "id": str(tx["_id"]),
            "type": tx["type"],
            "amount": format_money(tx.get("amount")),
            "balance_after": format_money(tx.get("balance_after")),
            "description": tx.get("description", ""),
            "reference_type": tx.get("reference_type"),
            "reference_id": tx.get("reference_id"),
            "created_at": tx["created_at"],
        }
        for tx in txs
    ]
