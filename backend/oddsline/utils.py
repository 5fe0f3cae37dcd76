from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

_CENT = Decimal("0.01")


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a money/odds value. Returns None for anything that is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def round_money(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    """Format a stored amount as a 2-dp string, e.g. 12.5 -> '12.50'."""
    parsed = to_decimal(value)
    if parsed is None:
        parsed = Decimal("0")
    return str(round_money(parsed))


def format_odds(value: Any) -> str:
    """Format decimal odds without rounding: 1.875 -> '1.875', 2.5 -> '2.50'.

    At least two places are shown; extra places are kept as stored.
    """
    parsed = to_decimal(value)
    if parsed is None:
        parsed = Decimal("0")
    parsed = parsed.normalize()
    if parsed.as_tuple().exponent > -2:
        parsed = parsed.quantize(_CENT)
    return str(parsed)
