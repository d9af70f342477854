"""
services/split_service.py — Keeps a transaction's split rows consistent.

Split rows are derived from two facts about a transaction: its amount and its
participant set. Whenever either changes, the whole split set is recomputed by
split_allocator.allocate() and replaced as a unit. Rows are never patched one
by one, so a per-person amount from an older allocation can never survive.

Which participant list is used:
  on_create               -> the participants sent with the new transaction
  on_participants_changed -> the new participants, against the CURRENT amount
  on_amount_changed       -> the participants already PERSISTED as split rows,
                             never a list from the request payload
  repair                  -> the persisted participants, against the current
                             amount of the transaction row

Failure policy:
  - replace_splits failing raises SplitPersistenceError. The transaction row
    is not rolled back; the caller reports the problem and the splits can be
    repaired later with repair().
  - After each write the splits are read back and their sum compared with the
    transaction amount. A mismatch, or a failed read, is logged as an
    integrity warning and never fails the call.

Layer rules:
  - No Flask imports. Talks to storage only through a SplitStore.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from groupledger.app.errors import SplitPersistenceError
from groupledger.app.services.ledger_types import LedgerTransaction, SplitShare
from groupledger.app.services.split_allocator import allocate, shares_total
from groupledger.app.services.split_store import SplitStore

logger = logging.getLogger(__name__)


class SplitConsistencyMaintainer:

    def __init__(self, store: SplitStore) -> None:
        self.store = store

    # ── Triggers ───────────────────────────────────────────────────────────

    def on_create(self, transaction: LedgerTransaction) -> list[SplitShare]:
        """Allocates and persists splits for a new expense with participants."""
        if not transaction.is_expense or not transaction.split_participants:
            return []

        shares = allocate(transaction.amount, transaction.split_participants)
        self._replace(transaction.id, shares, transaction.amount)
        return shares

    def on_participants_changed(
            self,
            transaction: LedgerTransaction,
            new_participant_ids: Iterable[str],
    ) -> list[SplitShare]:
        """
        Replaces all splits with an allocation of the transaction's current
        amount over new_participant_ids. An empty list clears the splits.
        """
        if not transaction.is_expense:
            return self._clear(transaction)

        shares = allocate(transaction.amount, new_participant_ids)
        self._replace(transaction.id, shares, transaction.amount)
        return shares

    def on_amount_changed(
            self,
            transaction: LedgerTransaction,
            new_amount: Decimal,
    ) -> list[SplitShare]:
        """
        Re-allocates new_amount over the participants of record, i.e. the
        user ids of the persisted split rows in their persisted order.
        Nothing is written when no splits have been persisted.
        """
        if not transaction.is_expense:
            return self._clear(transaction)

        participant_ids = [s.user_id for s in self.store.read_splits(transaction.id)]
        if not participant_ids:
            logger.debug(
                "No persisted splits to rescale",
                extra={"transaction_id": transaction.id},
            )
            return []

        shares = allocate(new_amount, participant_ids)
        self._replace(transaction.id, shares, new_amount)
        return shares

    def repair(self, transaction: LedgerTransaction) -> list[SplitShare]:
        """Out-of-band repair: re-derives splits from the transaction row's amount."""
        return self.on_amount_changed(transaction, transaction.amount)

    # ── Internals ──────────────────────────────────────────────────────────

    def _clear(self, transaction: LedgerTransaction) -> list[SplitShare]:
        # Only expenses carry splits.
        self._replace(transaction.id, [], None)
        return []

    def _replace(
            self,
            transaction_id: int,
            shares: list[SplitShare],
            expected_total: Decimal | None,
    ) -> None:
        try:
            self.store.replace_splits(transaction_id, shares)
        except Exception as exc:
            logger.error(
                "Failed to persist splits for transaction %s: %s",
                transaction_id,
                exc,
                extra={"transaction_id": transaction_id},
            )
            raise SplitPersistenceError(
                transaction_id,
                f"Splits for transaction {transaction_id} could not be saved.",
            ) from exc

        self._verify(transaction_id, shares, expected_total)

    def _verify(
            self,
            transaction_id: int,
            shares: list[SplitShare],
            expected_total: Decimal | None,
    ) -> None:
        """Reads the splits back and logs when they disagree with the amount."""
        try:
            persisted = self.store.read_splits(transaction_id)
        except Exception:
            logger.warning(
                "Split verification read failed for transaction %s",
                transaction_id,
                exc_info=True,
                extra={"transaction_id": transaction_id},
            )
            return

        if expected_total is None or not shares:
            if persisted:
                logger.warning(
                    "Transaction %s still has %d split rows after clearing",
                    transaction_id,
                    len(persisted),
                    extra={"transaction_id": transaction_id},
                )
            return

        persisted_total = shares_total(persisted)
        if persisted_total != expected_total:
            logger.warning(
                "Split integrity check failed for transaction %s: "
                "splits sum to %s, transaction amount is %s",
                transaction_id,
                persisted_total,
                expected_total,
                extra={"transaction_id": transaction_id},
            )
