"""Wallet models: deposit and withdrawal requests, admin decisions, ledger entries."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------- Deposits / withdrawals ----------

class DepositStatus(str, Enum):
    pending = "pending"        # Awaiting admin review
    confirmed = "confirmed"    # Funds credited
    failed = "failed"


class WithdrawalStatus(str, Enum):
    pending = "pending"
    processed = "processed"    # Funds debited and paid out
    rejected = "rejected"


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    BET_WON = "BET_WON"
    BET_VOID = "BET_VOID"


class DepositCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    method: str = Field(min_length=1, max_length=40)
    amount: Decimal = Field(gt=0)
    tx_id: Optional[str] = Field(default=None, alias="txId", max_length=200)
    wallet_address: Optional[str] = Field(default=None, alias="walletAddress", max_length=200)


class WithdrawalCreate(BaseModel):
    method: str = Field(min_length=1, max_length=40)
    amount: Decimal = Field(gt=0)
    address: str = Field(min_length=1, max_length=200)


class DepositDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: DepositStatus
    admin_note: Optional[str] = Field(default=None, alias="adminNote", max_length=500)


class WithdrawalDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: WithdrawalStatus
    admin_note: Optional[str] = Field(default=None, alias="adminNote", max_length=500)


# ---------- Responses ----------

class DepositResponse(BaseModel):
    id: str
    user_id: str
    method: str
    amount: str
    tx_id: Optional[str] = None
    wallet_address: Optional[str] = None
    status: str
    admin_note: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None


class WithdrawalResponse(BaseModel):
    id: str
    user_id: str
    method: str
    amount: str
    address: str
    status: str
    admin_note: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
