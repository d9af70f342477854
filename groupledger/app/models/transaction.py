"""
models/transaction.py — Transaction table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float. The row's amount is the single
    source of truth for what the transaction is worth; split rows are derived
    from it and may be repaired against it.
  - `currency` is a mandatory 3-letter code. There is no server default:
    a missing currency is a client error, never silently filled in.
  - `group_id` is NULL for personal transactions.
  - There is deliberately no participant-list column. Once split rows exist
    they are the participant set of record (see models/split.py).
  - TransactionType is a Python enum so it can be imported by schemas and
    services without repeating string literals.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class TransactionType(str, enum.Enum):
    INCOME  = "income"
    EXPENSE = "expense"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'expense'), not names ('EXPENSE')."""
    return [member.value for member in enum_cls]


class Transaction(db.Model):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "LENGTH(currency) = 3",
            name="ck_transactions_currency_code",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # The user who recorded the transaction (identity provider subject id).
    user_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
    )

    # ON DELETE CASCADE — a deleted group takes its transactions with it.
    group_id: Mapped[str | None] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    type: Mapped[TransactionType] = mapped_column(
        Enum(
            TransactionType,
            name="transaction_type_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )

    # Meaningful only for group expenses.
    paid_by: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="transactions",
    )

    # ON DELETE CASCADE — splits are owned by their transaction.
    splits: Mapped[list["Split"]] = relationship(  # noqa: F821
        "Split",
        back_populates="transaction",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Split.id",
    )

    @property
    def is_group_expense(self) -> bool:
        return self.group_id is not None and self.type == TransactionType.EXPENSE

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Transaction id={self.id} "
            f"group_id={self.group_id} "
            f"type={self.type} "
            f"amount={self.amount} {self.currency}>"
        )
