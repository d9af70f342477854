"""
services/ledger_types.py — Plain value types shared by the ledger engine.

The engine (split_allocator, split_service, balance_calculator,
balance_aggregator) works on these frozen dataclasses instead of ORM rows so
that it runs without a Flask app or a database session. services/ledger_loader.py
converts ORM rows into them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from groupledger.app.errors import BalanceComputationError
from groupledger.app.models.transaction import TransactionType


@dataclass(frozen=True)
class SplitShare:
    """One participant's share of a transaction amount."""

    user_id: str
    amount: Decimal


@dataclass(frozen=True)
class LedgerTransaction:
    """
    A transaction as the engine sees it.

    `splits` holds the persisted split rows (possibly empty).
    `split_participants` is the ordered participant list from a request; it
    is only consulted when nothing has been persisted yet.
    """

    id: int
    amount: Decimal
    currency: str
    type: TransactionType
    group_id: str | None = None
    paid_by: str | None = None
    split_participants: tuple[str, ...] = ()
    splits: tuple[SplitShare, ...] = ()

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


@dataclass(frozen=True)
class LedgerSettlement:
    from_user_id: str
    to_user_id: str
    amount: Decimal
    currency: str
    group_id: str | None = None


@dataclass(frozen=True)
class OverallBalances:
    """
    Result of the cross-group aggregation.

    merged:    counterpart -> signed amount summed over every computed group.
    per_group: group_id -> that group's own mapping, unmodified.
    failures:  group_id -> the BalanceComputationError that excluded it.
    """

    merged: dict[str, Decimal]
    per_group: dict[str, dict[str, Decimal]]
    failures: dict[str, BalanceComputationError] = field(default_factory=dict)
