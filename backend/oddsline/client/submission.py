"""
backend/oddsline/client/submission.py

Purpose:
    Flush a betting slip to the backend. Validates the slip against the
    signed-in user before any network call, then posts one bet per staked
    selection. Placed selections leave the slip; rejected ones stay so the
    user can correct them.

Dependencies:
    - oddsline.client.api
    - oddsline.client.betting_slip
    - oddsline.client.http_client
    - oddsline.client.query_cache
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Protocol

import httpx

from oddsline.client.api import ApiError
from oddsline.client.betting_slip import BettingSlip
from oddsline.client.http_client import CircuitOpenError
from oddsline.client.query_cache import USER_BETS_KEY, USER_KEY, QueryCache
from oddsline.models.betting_slip import BetSubmission
from oddsline.utils import to_decimal

logger = logging.getLogger("oddsline.client.submission")

NETWORK_ERROR_CODE = "network_error"
NETWORK_ERROR_MESSAGE = "Network error. Check your bets before retrying."


class BetPlacer(Protocol):
    async def place_bet(self, submission: BetSubmission) -> dict: ...


class SlipValidationError(Exception):
    """Raised before any request is sent; ``code`` is stable for UI lookups."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


@dataclass
class SelectionFailure:
    fixture_id: str
    market: str
    status_code: Optional[int]
    message: str
    code: str | None = None


@dataclass
class SubmissionResult:
    placed: list[dict] = field(default_factory=list)
    failed: list[SelectionFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def validate_slip(slip: BettingSlip, user: dict[str, Any] | None) -> Decimal:
    """Check login, stake and balance. Returns the total stake."""
    if not user:
        raise SlipValidationError("login_required", "Please sign in to place bets.")

    total = slip.total_stake()
    if total <= 0:
        raise SlipValidationError("stake_required", "Stake must be greater than zero.")

    balance = to_decimal(user.get("balance")) or Decimal("0")
    if total > balance:
        raise SlipValidationError("insufficient_funds", "Total stake exceeds your balance.")
    return total


async def submit_betting_slip(
    slip: BettingSlip,
    api: BetPlacer,
    *,
    user: dict[str, Any] | None,
    cache: QueryCache | None = None,
) -> SubmissionResult:
    """Post every staked selection and collect per-selection outcomes.

    A network failure on one selection is recorded and the loop moves on.
    Such a request may still have reached the server, so user data is
    invalidated whenever a bet was placed or the outcome is unknown.
    """
    total = validate_slip(slip, user)
    submissions = slip.submission_payloads()
    logger.info("Submitting slip: %d bets, total stake %s", len(submissions), total)

    result = SubmissionResult()
    try:
        for submission in submissions:
            try:
                bet = await api.place_bet(submission)
            except ApiError as exc:
                logger.warning(
                    "Bet rejected fixture=%s market=%s status=%d: %s",
                    submission.fixture_id, submission.market.value, exc.status_code, exc.message,
                )
                result.failed.append(
                    SelectionFailure(
                        fixture_id=submission.fixture_id,
                        market=submission.market.value,
                        status_code=exc.status_code,
                        message=exc.message,
                        code=exc.code,
                    )
                )
                continue
            except (httpx.HTTPError, CircuitOpenError) as exc:
                logger.warning(
                    "Bet not confirmed fixture=%s market=%s: %s",
                    submission.fixture_id, submission.market.value, exc,
                )
                result.failed.append(
                    SelectionFailure(
                        fixture_id=submission.fixture_id,
                        market=submission.market.value,
                        status_code=None,
                        message=str(exc) or NETWORK_ERROR_MESSAGE,
                        code=NETWORK_ERROR_CODE,
                    )
                )
                continue
            result.placed.append(bet)
            slip.remove(submission.fixture_id, submission.market)

        if result.ok:
            slip.clear()
    finally:
        unconfirmed = any(f.code == NETWORK_ERROR_CODE for f in result.failed)
        if cache is not None and (result.placed or unconfirmed):
            # Balance and bet history changed server-side.
            cache.invalidate(USER_KEY)
            cache.invalidate(USER_BETS_KEY)

    return result
