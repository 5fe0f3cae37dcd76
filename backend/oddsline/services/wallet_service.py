"""
backend/oddsline/services/wallet_service.py

Purpose:
    Deposits, withdrawals and balance credits. Requests start ``pending``;
    an admin decides each one exactly once. Confirming a deposit credits the
    balance; processing a withdrawal debits it with an overdraft guard.
    Every balance movement made here writes a ``wallet_transactions`` entry.

Dependencies:
    - oddsline.database
    - oddsline.models.wallet
"""

import logging
from decimal import Decimal
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException, status

import oddsline.database as _db
from oddsline.models.wallet import (
    DepositCreate,
    DepositDecision,
    DepositStatus,
    TransactionType,
    WithdrawalCreate,
    WithdrawalDecision,
    WithdrawalStatus,
)
from oddsline.utils import format_money, round_money, to_decimal, utcnow

logger = logging.getLogger("oddsline.wallet_service")


# ---------- Balance ----------

async def credit_balance(
    user_id: str, amount: Decimal, tx_type: TransactionType,
    reference_type: str, reference_id: str, description: str,
) -> dict:
    """Add ``amount`` to the user's balance. Returns the updated user, or {} if gone."""
    user = await _db.db.users.find_one_and_update(
        {"_id": ObjectId(user_id)},
        {
            "$inc": {"balance": float(amount)},
            "$set": {"updated_at": utcnow()},
        },
        return_document=True,
    )
    if not user:
        logger.error("User not found for credit: %s (%s %s)", user_id, reference_type, reference_id)
        return {}

    await _log_transaction(
        user_id=user_id,
        tx_type=tx_type,
        amount=float(amount),
        balance_after=user["balance"],
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
    )
    return user


async def _debit_balance(
    user_id: str, amount: Decimal, reference_type: str, reference_id: str, description: str,
) -> dict:
    """Atomically take ``amount``; the ``$gte`` guard prevents overdraft."""
    user = await _db.db.users.find_one_and_update(
        {"_id": ObjectId(user_id), "balance": {"$gte": float(amount)}},
        {
            "$inc": {"balance": -float(amount)},
            "$set": {"updated_at": utcnow()},
        },
        return_document=True,
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Insufficient balance.",
        )

    await _log_transaction(
        user_id=user_id,
        tx_type=TransactionType.WITHDRAWAL,
        amount=-float(amount),
        balance_after=user["balance"],
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
    )
    return user


# ---------- Requests ----------

async def create_deposit(user: dict, body: DepositCreate) -> dict:
    amount = round_money(body.amount)
    doc = {
        "user_id": str(user["_id"]),
        "method": body.method,
        "amount": float(amount),
        "tx_id": body.tx_id,
        "wallet_address": body.wallet_address,
        "status": DepositStatus.pending.value,
        "admin_note": None,
        "created_at": utcnow(),
        "processed_at": None,
    }
    result = await _db.db.deposits.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Deposit requested: user=%s method=%s amount=%s", user["_id"], body.method, amount)
    return doc


async def create_withdrawal(user: dict, body: WithdrawalCreate) -> dict:
    """Record a withdrawal request. The balance is only debited when processed."""
    amount = round_money(body.amount)
    balance = to_decimal(user.get("balance")) or Decimal("0")
    if balance < amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Insufficient balance.",
        )

    doc = {
        "user_id": str(user["_id"]),
        "method": body.method,
        "amount": float(amount),
        "address": body.address,
        "status": WithdrawalStatus.pending.value,
        "admin_note": None,
        "created_at": utcnow(),
        "processed_at": None,
    }
    result = await _db.db.withdrawals.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Withdrawal requested: user=%s method=%s amount=%s", user["_id"], body.method, amount)
    return doc


async def list_user_deposits(user_id: str, limit: int = 100) -> list[dict]:
    cursor = _db.db.deposits.find({"user_id": user_id}).sort("created_at", -1)
    return await cursor.to_list(length=limit)


async def list_user_withdrawals(user_id: str, limit: int = 100) -> list[dict]:
    cursor = _db.db.withdrawals.find({"user_id": user_id}).sort("created_at", -1)
    return await cursor.to_list(length=limit)


async def list_deposits(status_filter: Optional[str] = None, limit: int = 200) -> list[dict]:
    query = {"status": status_filter} if status_filter else {}
    cursor = _db.db.deposits.find(query).sort("created_at", -1)
    return await cursor.to_list(length=limit)


async def list_withdrawals(status_filter: Optional[str] = None, limit: int = 200) -> list[dict]:
    query = {"status": status_filter} if status_filter else {}
    cursor = _db.db.withdrawals.find(query).sort("created_at", -1)
    return await cursor.to_list(length=limit)


# ---------- Admin decisions ----------

async def _claim_pending(collection, request_id: str, new_status: str, admin: dict, note: Optional[str]) -> dict:
    """Move a pending request to ``new_status``; only the first decision wins."""
    oid = ObjectId(request_id)
    changes = {
        "status": new_status,
        "processed_at": utcnow(),
        "processed_by": str(admin["_id"]),
    }
    if note is not None:
        changes["admin_note"] = note

    doc = await collection.find_one_and_update(
        {"_id": oid, "status": "pending"},
        {"$set": changes},
        return_document=True,
    )
    if doc:
        return doc

    existing = await collection.find_one({"_id": oid})
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found.")
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Request already {existing.get('status')}.",
    )


async def decide_deposit(deposit_id: str, body: DepositDecision, admin: dict) -> dict:
    if body.status == DepositStatus.pending:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Status must be confirmed or failed.",
        )

    deposit = await _claim_pending(_db.db.deposits, deposit_id, body.status.value, admin, body.admin_note)
    if body.status == DepositStatus.confirmed:
        amount = to_decimal(deposit["amount"])
        await credit_balance(
            deposit["user_id"],
            amount,
            TransactionType.DEPOSIT,
            reference_type="deposit",
            reference_id=deposit_id,
            description=f"Deposit via {deposit.get('method', '')}",
        )
    logger.info("Admin %s set deposit %s to %s", admin["_id"], deposit_id, body.status.value)
    return deposit


async def decide_withdrawal(withdrawal_id: str, body: WithdrawalDecision, admin: dict) -> dict:
    if body.status == WithdrawalStatus.pending:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Status must be processed or rejected.",
        )

    withdrawal = await _claim_pending(_db.db.withdrawals, withdrawal_id, body.status.value, admin, body.admin_note)
    if body.status == WithdrawalStatus.processed:
        try:
            await _debit_balance(
                withdrawal["user_id"],
                to_decimal(withdrawal["amount"]),
                reference_type="withdrawal",
                reference_id=withdrawal_id,
                description=f"Withdrawal via {withdrawal.get('method', '')}",
            )
        except HTTPException:
            # Balance dropped since the request; leave it for another decision.
            await _db.db.withdrawals.update_one(
                {"_id": withdrawal["_id"], "status": WithdrawalStatus.processed.value},
                {"$set": {"status": WithdrawalStatus.pending.value, "processed_at": None, "processed_by": None}},
            )
            logger.warning("Withdrawal %s not processed: insufficient balance", withdrawal_id)
            raise
    logger.info("Admin %s set withdrawal %s to %s", admin["_id"], withdrawal_id, body.status.value)
    return withdrawal


# ---------- Ledger ----------

async def get_user_transactions(user_id: str, limit: int = 50) -> list[dict]:
    cursor = _db.db.wallet_transactions.find({"user_id": user_id}).sort("created_at", -1)
    return await cursor.to_list(length=limit)


async def _log_transaction(
    user_id: str, tx_type: TransactionType, amount: float, balance_after: float,
    description: str, reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> None:
    """Insert an immutable wallet transaction record."""
    await _db.db.wallet_transactions.insert_one({
        "user_id": user_id,
        "type": tx_type.value,
        "amount": amount,
        "balance_after": balance_after,
        "reference_type": reference_type,
        "reference_id": reference_id,
        "description": description,
        "created_at": utcnow(),
    })


def deposit_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "user_id": doc["user_id"],
        "method": doc.get("method", ""),
        "amount": format_money(doc.get("amount")),
        "tx_id": doc.get("tx_id"),
        "wallet_address": doc.get("wallet_address"),
        "status": doc.get("status", DepositStatus.pending.value),
        "admin_note": doc.get("admin_note"),
        "created_at": doc["created_at"],
        "processed_at": doc.get("processed_at"),
    }


def withdrawal_to_response(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "user_id": doc["user_id"],
        "method": doc.get("method", ""),
        "amount": format_money(doc.get("amount")),
        "address": doc.get("address", ""),
        "status": doc.get("status", WithdrawalStatus.pending.value),
        "admin_note": doc.get("admin_note"),
        "created_at": doc["created_at"],
        "processed_at": doc.get("processed_at"),
    }
