"""
services/split_store.py — Split row persistence for the split maintainer.

SplitStore is the contract services/split_service.py depends on:

    read_splits(transaction_id)          -> list[SplitShare] in persisted order
    replace_splits(transaction_id, rows) -> delete-then-insert of the whole set

SqlSplitStore is the SQLAlchemy implementation. replace_splits only flushes;
commits are the route's responsibility. On a database error the session is
rolled back before the error propagates so the caller can keep using it. The
transaction row itself is committed before splits are written (see
routes/transactions.py), so that rollback never takes the transaction with it.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groupledger.app.models.split import Split
from groupledger.app.services.ledger_types import SplitShare


class SplitStore(Protocol):

    def read_splits(self, transaction_id: int) -> list[SplitShare]:
        ...

    def replace_splits(self, transaction_id: int, shares: Iterable[SplitShare]) -> None:
        ...


class SqlSplitStore:

    def __init__(self, session: Session) -> None:
        self.session = session

    def read_splits(self, transaction_id: int) -> list[SplitShare]:
        stmt = (
            select(Split)
            .where(Split.transaction_id == transaction_id)
            .order_by(Split.id)
        )
        return [
            SplitShare(user_id=row.user_id, amount=row.amount)
            for row in self.session.execute(stmt).scalars().all()
        ]

    def replace_splits(self, transaction_id: int, shares: Iterable[SplitShare]) -> None:
        try:
            self.session.execute(
                delete(Split).where(Split.transaction_id == transaction_id)
            )
            # Insertion order is the persisted participant order.
            for share in shares:
                self.session.add(Split(
                    transaction_id=transaction_id,
                    user_id=share.user_id,
                    amount=share.amount,
                ))
            self.session.flush()
        except SQLAlchemyError:
            self.session.rollback()
            raise
