"""
services/balance_calculator.py — Pairwise balances for one viewpoint in one group.

This file is the SINGLE SOURCE OF TRUTH for how a user's balances against the
other members of a group are computed. balance_aggregator.py and
balance_service.py build on it and must not reimplement it.

Sign convention (relative to the viewpoint user):
  positive  -> the counterpart owes the viewpoint
  negative  -> the viewpoint owes the counterpart

Per qualifying expense (type == expense, paid_by set, paid_by a member):
  viewpoint paid        -> +share(p) for every other participant p in the group
  viewpoint participated -> -share(viewpoint) against the payer
  otherwise              -> no effect

Splits are resolved as an explicit choice: Persisted (rows from storage) when
any exist, else Derived (split_allocator.allocate over split_participants).
A transaction with neither is skipped.

Settlements (optional): a payment from the viewpoint to member X adds +amount
to X, a payment from member X to the viewpoint adds -amount to X. Settlements
between two other users do not touch the viewpoint's balances. Without
settlements the result is the expense-only view.

Final values are rounded to cents; anything below one cent and the
viewpoint's own entry are dropped. Nothing here is cached.

Layer rules:
  - No Flask imports, no session. Inputs are ledger_types values.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from groupledger.app.errors import InvalidInput
from groupledger.app.services.ledger_types import (
    LedgerSettlement,
    LedgerTransaction,
    SplitShare,
)
from groupledger.app.services.split_allocator import CENT, allocate

logger = logging.getLogger(__name__)


# ── Split resolution ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Persisted:
    shares: tuple[SplitShare, ...]


@dataclass(frozen=True)
class Derived:
    shares: tuple[SplitShare, ...]


ResolvedSplits = Union[Persisted, Derived]


def resolve_splits(transaction: LedgerTransaction) -> ResolvedSplits | None:
    """
    Returns the transaction's persisted splits, or splits derived from its
    participant list, or None when neither is available.
    """
    if transaction.splits:
        return Persisted(tuple(transaction.splits))
    if transaction.split_participants:
        return Derived(tuple(allocate(transaction.amount, transaction.split_participants)))
    return None


# ── Rounding ───────────────────────────────────────────────────────────────

def finalize_balances(
        raw: dict[str, Decimal],
        viewpoint_user_id: str | None = None,
) -> dict[str, Decimal]:
    """Rounds to cents and drops settled (|x| < 0.01) and self entries."""
    result: dict[str, Decimal] = {}
    for user_id, amount in raw.items():
        if user_id == viewpoint_user_id:
            continue
        rounded = amount.quantize(CENT, rounding=ROUND_HALF_UP)
        if abs(rounded) < CENT:
            continue
        result[user_id] = rounded
    return result


# ── Core algorithm ─────────────────────────────────────────────────────────

def compute_group_balances(
        group_id: str,
        transactions: Iterable[LedgerTransaction],
        viewpoint_user_id: str,
        group_member_ids: Iterable[str],
        settlements: Iterable[LedgerSettlement] = (),
        currency: str | None = None,
) -> dict[str, Decimal]:
    """
    Computes {counterpart_user_id: signed amount} for viewpoint_user_id.

    Args:
        group_id:          Used for log context only.
        transactions:      The group's transactions with their persisted splits.
        viewpoint_user_id: Whose perspective the signs are relative to.
        group_member_ids:  Current members; payers outside it are ignored.
        settlements:       Settlements to net in (empty for expense-only).
        currency:          When given, other currencies are ignored.

    Raises:
        InvalidInput: viewpoint_user_id is empty.
    """
    if not viewpoint_user_id:
        raise InvalidInput("viewpoint_user_id is required.", field="viewpoint_user_id")

    members = set(group_member_ids)
    balances: dict[str, Decimal] = defaultdict(Decimal)

    for transaction in transactions:
        if not transaction.is_expense or transaction.paid_by is None:
            continue
        if currency is not None and transaction.currency != currency:
            continue
        if transaction.paid_by not in members:
            continue
        if transaction.amount <= 0:
            logger.warning(
                "Skipping transaction %s with non-positive amount %s",
                transaction.id,
                transaction.amount,
                extra={"group_id": group_id},
            )
            continue

        resolved = resolve_splits(transaction)
        if resolved is None:
            continue

        if transaction.paid_by == viewpoint_user_id:
            for share in resolved.shares:
                if share.user_id != viewpoint_user_id and share.user_id in members:
                    balances[share.user_id] += share.amount
        else:
            own = next(
                (s for s in resolved.shares if s.user_id == viewpoint_user_id),
                None,
            )
            if own is not None:
                balances[transaction.paid_by] -= own.amount

    for settlement in settlements:
        if currency is not None and settlement.currency != currency:
            continue
        if settlement.from_user_id == viewpoint_user_id and settlement.to_user_id in members:
            balances[settlement.to_user_id] += settlement.amount
        elif settlement.to_user_id == viewpoint_user_id and settlement.from_user_id in members:
            balances[settlement.from_user_id] -= settlement.amount

    return finalize_balances(balances, viewpoint_user_id)


def currencies_in(
        transactions: Iterable[LedgerTransaction],
        settlements: Iterable[LedgerSettlement] = (),
) -> list[str]:
    """Currencies present in a ledger, sorted, so callers never mix them."""
    found = {t.currency for t in transactions if t.is_expense}
    found.update(s.currency for s in settlements)
    return sorted(found)
