"""
models/membership.py — GroupMember junction table definition.

No business logic. No imports from services or routes.

user_id is the identity provider's subject id; there is no local users table.
The balance engine reads this table as the group's current member set, so a
removed member's row disappearing is what stops their stale transactions
from counting (the calculator skips payers that are not members).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class GroupMember(db.Model):
    __tablename__ = "group_members"

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE CASCADE — memberships go with their group.
    group_id: Mapped[str] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="members",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupMember id={self.id} "
            f"group_id={self.group_id} "
            f"user_id={self.user_id}>"
        )
