"""
services/ledger_loader.py — Reads group ledgers from the database into engine types.

These are the ONLY sanctioned ways to query transaction/split/settlement data
for balance purposes. Every storage failure is re-raised as
BalanceComputationError tagged with the group id, which is what lets the
aggregator skip a broken group and keep going.

GroupLedgerLoader loads each group at most once per request and exposes the
loaded pieces as lazy Mappings (transactions, member_ids, settlements) keyed
by group id. It holds rows, not balances; balances are always recomputed.

Layer rules:
  - No Flask imports. Receives a SQLAlchemy session.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Iterable, Iterator

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from groupledger.app.errors import BalanceComputationError
from groupledger.app.models.membership import GroupMember
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.transaction import Transaction, TransactionType
from groupledger.app.services.ledger_types import (
    LedgerSettlement,
    LedgerTransaction,
    SplitShare,
)


# ── Row conversion ─────────────────────────────────────────────────────────

def to_ledger_transaction(
        transaction: Transaction,
        split_participants: Iterable[str] = (),
) -> LedgerTransaction:
    """Converts an ORM Transaction (with its split rows) to a LedgerTransaction."""
    return LedgerTransaction(
        id=transaction.id,
        amount=transaction.amount,
        currency=transaction.currency,
        type=transaction.type,
        group_id=transaction.group_id,
        paid_by=transaction.paid_by,
        split_participants=tuple(split_participants),
        splits=tuple(
            SplitShare(user_id=s.user_id, amount=s.amount)
            for s in transaction.splits
        ),
    )


def to_ledger_settlement(settlement: Settlement) -> LedgerSettlement:
    return LedgerSettlement(
        from_user_id=settlement.from_user_id,
        to_user_id=settlement.to_user_id,
        amount=settlement.amount,
        currency=settlement.currency,
        group_id=settlement.group_id,
    )


# ── Data access helpers ────────────────────────────────────────────────────

def get_expense_transactions(group_id: str, session: Session) -> list[LedgerTransaction]:
    """Returns the group's expense transactions with their persisted splits."""
    stmt = (
        select(Transaction)
        .options(selectinload(Transaction.splits))
        .where(
            Transaction.group_id == group_id,
            Transaction.type == TransactionType.EXPENSE,
        )
        .order_by(Transaction.id)
    )
    return [to_ledger_transaction(t) for t in session.execute(stmt).scalars().all()]


def get_settlements(group_id: str, session: Session) -> list[LedgerSettlement]:
    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.id)
    )
    return [to_ledger_settlement(s) for s in session.execute(stmt).scalars().all()]


def get_member_ids(group_id: str, session: Session) -> list[str]:
    """Returns the user_ids of all current members of a group."""
    stmt = select(GroupMember.user_id).where(GroupMember.group_id == group_id)
    return list(session.execute(stmt).scalars().all())


def get_group_ids_for_user(user_id: str, session: Session) -> list[str]:
    """Returns the ids of every group user_id currently belongs to."""
    stmt = (
        select(GroupMember.group_id)
        .where(GroupMember.user_id == user_id)
        .order_by(GroupMember.group_id)
    )
    return list(session.execute(stmt).scalars().all())


# ── Per-request loader ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class GroupLedger:
    group_id: str
    transactions: list[LedgerTransaction]
    member_ids: frozenset[str]
    settlements: list[LedgerSettlement]


def load_group_ledger(group_id: str, session: Session) -> GroupLedger:
    """
    Loads everything the balance engine needs for one group.

    Raises:
        BalanceComputationError: any storage error, tagged with group_id.
    """
    try:
        return GroupLedger(
            group_id=group_id,
            transactions=get_expense_transactions(group_id, session),
            member_ids=frozenset(get_member_ids(group_id, session)),
            settlements=get_settlements(group_id, session),
        )
    except SQLAlchemyError as exc:
        session.rollback()
        raise BalanceComputationError(
            group_id,
            f"Could not load the ledger of group {group_id}.",
        ) from exc


class GroupLedgerLoader:

    def __init__(self, session: Session, group_ids: Iterable[str]) -> None:
        self.session = session
        self.group_ids = list(dict.fromkeys(group_ids))
        self._loaded: dict[str, GroupLedger] = {}
        self._failed: dict[str, BalanceComputationError] = {}

        self.transactions = _LedgerView(self, "transactions")
        self.member_ids = _LedgerView(self, "member_ids")
        self.settlements = _LedgerView(self, "settlements")

    def load(self, group_id: str) -> GroupLedger:
        # A group that failed once keeps failing for this request.
        if group_id in self._failed:
            raise self._failed[group_id]
        if group_id not in self._loaded:
            try:
                self._loaded[group_id] = load_group_ledger(group_id, self.session)
            except BalanceComputationError as exc:
                self._failed[group_id] = exc
                raise
        return self._loaded[group_id]

    def loaded(self) -> list[GroupLedger]:
        """Ledgers that loaded successfully so far."""
        return list(self._loaded.values())


class _LedgerView(Mapping):
    """Read-only Mapping of group_id -> one attribute of that group's ledger."""

    def __init__(self, loader: GroupLedgerLoader, attribute: str) -> None:
        self._loader = loader
        self._attribute = attribute

    def __getitem__(self, group_id: str):
        if group_id not in self._loader.group_ids:
            raise KeyError(group_id)
        return getattr(self._loader.load(group_id), self._attribute)

    def __iter__(self) -> Iterator[str]:
        return iter(self._loader.group_ids)

    def __len__(self) -> int:
        return len(self._loader.group_ids)
