"""
models/split.py — Split table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - transaction_id is ON DELETE CASCADE — splits are owned by their
    transaction and are deleted and regenerated as a unit.
  - UNIQUE(transaction_id, user_id) prevents the same user appearing twice
    in one transaction's splits.
  - Rows are read back in id (insertion) order. That order is the persisted
    participant order, which decides who absorbs the rounding remainder when
    the splits are reallocated after an amount change.
  - amount >= 0: a 0.01 expense split three ways leaves two 0.00 shares.

The sum invariant (sum(splits.amount) == transaction.amount) is maintained by
services/split_service.py, not by a DB trigger: the transaction row is the
authority and a mismatch is logged and repaired, never used to block a write.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class Split(db.Model):
    __tablename__ = "transaction_splits"

    __table_args__ = (
        UniqueConstraint(
            "transaction_id",
            "user_id",
            name="uq_transaction_splits_transaction_user",
        ),
        CheckConstraint("amount >= 0", name="ck_transaction_splits_amount_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    transaction: Mapped["Transaction"] = relationship(  # noqa: F821
        "Transaction",
        back_populates="splits",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Split id={self.id} "
            f"transaction_id={self.transaction_id} "
            f"user_id={self.user_id} "
            f"amount={self.amount}>"
        )
