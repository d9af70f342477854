"""
services/split_allocator.py — Cent-exact equal split allocation.

Divides a total among participants so that the shares always sum to the
total exactly:

    base      = floor(total * 100 / n) / 100
    remainder = total - base * n
    first participant  -> base + remainder
    everyone else      -> base

Participants are deduplicated keeping the order of first occurrence, and that
order decides who absorbs the remainder. Reordering the same participants
moves the remainder; callers that care about who pays the extra cent must
control the order.

Layer rules:
  - Pure function. No Flask, no session, no logging.
  - Amounts are Decimal. Floats are rejected, not converted.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Iterable

from groupledger.app.errors import ErrorCode, InvalidInput
from groupledger.app.services.ledger_types import SplitShare

CENT = Decimal("0.01")
# Largest value a Numeric(12, 2) column holds.
MAX_AMOUNT = Decimal("9999999999.99")


def to_amount(value, field: str = "amount") -> Decimal:
    """
    Coerces a monetary value to a positive Decimal with at most 2 decimal places,
    no larger than MAX_AMOUNT.

    Accepts Decimal, int and numeric strings. Raises InvalidInput otherwise.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidInput(
            f"{field} must be a Decimal, int or numeric string, not {type(value).__name__}.",
            code=ErrorCode.INVALID_AMOUNT,
            field=field,
        )
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInput(
            f"{field} {value!r} is not a number.",
            code=ErrorCode.INVALID_AMOUNT,
            field=field,
        )

    if not amount.is_finite() or amount <= 0:
        raise InvalidInput(
            f"{field} must be greater than zero, got {value}.",
            code=ErrorCode.INVALID_AMOUNT,
            field=field,
        )
    if amount.as_tuple().exponent < -2:
        raise InvalidInput(
            f"{field} must have at most 2 decimal places, got {value}.",
            code=ErrorCode.INVALID_AMOUNT_PRECISION,
            field=field,
        )
    if amount > MAX_AMOUNT:
        raise InvalidInput(
            f"{field} must be at most {MAX_AMOUNT}, got {value}.",
            code=ErrorCode.INVALID_AMOUNT,
            field=field,
        )
    return amount


def dedupe_participants(participant_ids: Iterable[str]) -> list[str]:
    """Drops repeated ids, keeping the position of each id's first occurrence."""
    return list(dict.fromkeys(participant_ids))


def allocate(total_amount, participant_ids: Iterable[str]) -> list[SplitShare]:
    """
    Splits total_amount equally among participant_ids, cent-exact.

    Args:
        total_amount:    Positive amount, at most 2 decimal places.
        participant_ids: Ordered user ids; duplicates are removed first.

    Returns:
        One SplitShare per distinct participant, in first-occurrence order.
        Empty when there are no participants; a zero-participant expense is
        the caller's to reject.

    Raises:
        InvalidInput: total_amount is not a positive 2-dp amount up to MAX_AMOUNT.
    """
    total = to_amount(total_amount, field="total_amount")
    participants = dedupe_participants(participant_ids)
    if not participants:
        return []

    n = len(participants)
    base = (total / n).quantize(CENT, rounding=ROUND_FLOOR)
    remainder = total - base * n

    shares = [SplitShare(user_id=participants[0], amount=base + remainder)]
    shares.extend(SplitShare(user_id=uid, amount=base) for uid in participants[1:])
    return shares


def shares_total(shares: Iterable[SplitShare]) -> Decimal:
    return sum((s.amount for s in shares), Decimal("0.00"))
