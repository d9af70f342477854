"""
services/transaction_service.py — Transaction writes and split maintenance.

Every create/edit happens in two steps, each committed by the route:

  1. The transaction row is written (create_transaction / edit_transaction).
  2. Its split rows are brought in line with it (apply_split_change), through
     SplitConsistencyMaintainer.

The row is committed before the splits are touched because the row is the
source of truth. If step 2 fails the row stays, the response carries a
SPLITS_NOT_PERSISTED warning, and POST /transactions/:id/splits/repair can
rebuild the splits later.

Authorization rules (identity comes from the route as a plain user id):
  - Personal transaction: only its creator may edit or repair it.
  - Group transaction: the creator or any current group member.
  - Create in a group: caller, payer and every split participant must be
    group members.

Layer rules:
  - No Flask imports. Receives plain values and a session.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode, SplitPersistenceError, WarningCode
from groupledger.app.models.group import Group
from groupledger.app.models.membership import GroupMember
from groupledger.app.models.transaction import Transaction, TransactionType
from groupledger.app.services.ledger_loader import get_member_ids, to_ledger_transaction
from groupledger.app.services.ledger_types import SplitShare
from groupledger.app.services.split_allocator import dedupe_participants
from groupledger.app.services.split_service import SplitConsistencyMaintainer
from groupledger.app.services.split_store import SqlSplitStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SplitChange:
    """
    What the split rows need after a transaction write.

    kind:
      "create"       -> allocate over participant_ids (new transaction)
      "participants" -> reallocate the current amount over participant_ids
      "amount"       -> reallocate amount over the persisted participants
      "clear"        -> the transaction no longer carries splits
    """

    kind: str
    participant_ids: tuple[str, ...] = ()
    amount: Decimal | None = None


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: str, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _get_transaction_or_404(transaction_id: int, session: Session) -> Transaction:
    """Returns the Transaction or raises TRANSACTION_NOT_FOUND (404)."""
    transaction = session.get(Transaction, transaction_id)
    if transaction is None:
        raise AppError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            f"Transaction {transaction_id} does not exist.",
            404,
        )
    return transaction


def _require_member(group_id: str, user_id: str, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    membership = session.execute(
        select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    ).scalar_one_or_none()

    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _require_can_modify(transaction: Transaction, caller_id: str, session: Session) -> None:
    if transaction.user_id == caller_id:
        return
    if transaction.group_id is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You can only modify your own personal transactions.",
            403,
        )
    _require_member(transaction.group_id, caller_id, session)


def _validate_payer_is_member(paid_by: str, group_id: str, member_ids: list[str]) -> None:
    if paid_by not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {paid_by} is not a member of group {group_id}.",
            422,
            field="paid_by",
        )


def _validate_split_users_are_members(
        participant_ids: list[str],
        group_id: str,
        member_ids: list[str],
) -> None:
    """Raises SPLIT_USER_NOT_MEMBER (422) for the first participant not in the group."""
    member_set = set(member_ids)
    for user_id in participant_ids:
        if user_id not in member_set:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {user_id} is not a member of group {group_id}.",
                422,
                field="split_participants",
            )


def _validate_participants_present(participant_ids: list[str]) -> None:
    if not participant_ids:
        raise AppError(
            ErrorCode.EMPTY_SPLIT,
            "A group expense needs at least one split participant.",
            422,
            field="split_participants",
        )


# ── Public service functions ───────────────────────────────────────────────

def create_transaction(
        caller_id: str,
        data: dict,
        session: Session,
) -> tuple[Transaction, SplitChange | None]:
    """
    Writes a new transaction row.

    Args:
        caller_id: The authenticated user recording the transaction.
        data:      Validated dict from CreateTransactionSchema.

    Returns:
        (transaction, split_change). split_change is None when the transaction
        carries no splits (income, or a personal transaction).
    """
    group_id: str | None = data.get("group_id")
    txn_type: TransactionType = data["type"]
    paid_by: str | None = data.get("paid_by")
    participants = dedupe_participants(data.get("split_participants") or [])

    split_change = None
    if group_id is not None:
        _get_group_or_404(group_id, session)
        _require_member(group_id, caller_id, session)

        if txn_type == TransactionType.EXPENSE:
            member_ids = get_member_ids(group_id, session)
            paid_by = paid_by or caller_id
            _validate_payer_is_member(paid_by, group_id, member_ids)
            _validate_participants_present(participants)
            _validate_split_users_are_members(participants, group_id, member_ids)
            split_change = SplitChange(kind="create", participant_ids=tuple(participants))
    else:
        # paid_by is meaningful only for group expenses.
        paid_by = None

    transaction = Transaction(
        user_id=caller_id,
        group_id=group_id,
        type=txn_type,
        amount=data["amount"],
        currency=data["currency"],
        description=data.get("description", ""),
        paid_by=paid_by,
    )
    session.add(transaction)
    session.flush()  # populate transaction.id before splits reference it

    logger.info(
        "Recorded %s transaction %s",
        txn_type.value,
        transaction.id,
        extra={"transaction_id": transaction.id, "group_id": group_id},
    )
    return transaction, split_change


def edit_transaction(
        transaction_id: int,
        caller_id: str,
        data: dict,
        session: Session,
) -> tuple[Transaction, SplitChange | None]:
    """
    Partially updates a transaction row.

    Split consequences (returned as a SplitChange, applied after commit):
      - split_participants present -> reallocate over the new list
      - only amount present        -> reallocate over the persisted participants
      - type changed away from expense -> clear the splits

    A group transaction turned into an expense must name split_participants
    (EMPTY_SPLIT otherwise). paid_by is rejected on personal transactions.

    Returns:
        (transaction, split_change or None)
    """
    transaction = _get_transaction_or_404(transaction_id, session)
    _require_can_modify(transaction, caller_id, session)

    new_type = data.get("type", transaction.type)
    new_participants = data.get("split_participants")
    is_group_expense = (
        transaction.group_id is not None and new_type == TransactionType.EXPENSE
    )
    becomes_expense = is_group_expense and transaction.type != TransactionType.EXPENSE

    if "paid_by" in data and transaction.group_id is None:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "paid_by can only be set on group transactions.",
            400,
            field="paid_by",
        )

    # No splits are persisted yet, so there is nothing to derive participants from.
    if becomes_expense and new_participants is None:
        _validate_participants_present([])

    if is_group_expense and ("paid_by" in data or new_participants is not None):
        member_ids = get_member_ids(transaction.group_id, session)
        if "paid_by" in data or becomes_expense:
            payer = data.get("paid_by") or transaction.paid_by or transaction.user_id
            _validate_payer_is_member(payer, transaction.group_id, member_ids)
        if new_participants is not None:
            new_participants = dedupe_participants(new_participants)
            _validate_participants_present(new_participants)
            _validate_split_users_are_members(
                new_participants, transaction.group_id, member_ids
            )

    # ── Apply field updates ────────────────────────────────────────────────

    if "description" in data:
        transaction.description = data["description"]
    if "currency" in data:
        transaction.currency = data["currency"]
    if "amount" in data:
        transaction.amount = data["amount"]
    if "paid_by" in data:
        transaction.paid_by = data["paid_by"]
    if "type" in data:
        transaction.type = new_type
        if is_group_expense and transaction.paid_by is None:
            transaction.paid_by = transaction.user_id

    transaction.updated_at = datetime.now(timezone.utc)
    session.flush()

    # ── Decide what the splits need ────────────────────────────────────────

    split_change = None
    if transaction.group_id is None:
        split_change = None
    elif not is_group_expense:
        split_change = SplitChange(kind="clear")
    elif new_participants is not None:
        split_change = SplitChange(kind="participants", participant_ids=tuple(new_participants))
    elif "amount" in data:
        split_change = SplitChange(kind="amount", amount=data["amount"])

    return transaction, split_change


def apply_split_change(
        transaction: Transaction,
        split_change: SplitChange | None,
        session: Session,
) -> tuple[list[SplitShare], list[dict]]:
    """
    Brings the transaction's split rows in line with a committed row.

    A SplitPersistenceError does not fail the request: the row stays the
    source of truth and the failure comes back as a warning.

    Returns:
        (persisted shares, warnings)
    """
    if split_change is None:
        return [], []

    maintainer = SplitConsistencyMaintainer(SqlSplitStore(session))
    ledger_txn = to_ledger_transaction(transaction, split_change.participant_ids)

    try:
        if split_change.kind == "create":
            shares = maintainer.on_create(ledger_txn)
        elif split_change.kind == "participants":
            shares = maintainer.on_participants_changed(ledger_txn, split_change.participant_ids)
        elif split_change.kind == "amount":
            shares = maintainer.on_amount_changed(ledger_txn, split_change.amount)
        elif split_change.kind == "clear":
            shares = maintainer.on_participants_changed(ledger_txn, [])
        else:
            raise ValueError(f"Unknown split change {split_change.kind!r}")
    except SplitPersistenceError as exc:
        return [], [{
            "code": WarningCode.SPLITS_NOT_PERSISTED,
            "message": (
                f"{exc.message} The transaction was saved; repair its splits "
                f"with POST /transactions/{exc.transaction_id}/splits/repair."
            ),
        }]
    finally:
        session.expire(transaction, ["splits"])

    return shares, []


def repair_splits(
        transaction_id: int,
        caller_id: str,
        session: Session,
) -> tuple[Transaction, list[SplitShare]]:
    """
    Rebuilds a transaction's splits from its current amount and the
    participants of record.

    Raises:
        AppError(TRANSACTION_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)
        SplitPersistenceError (500) -- the rebuilt splits could not be saved.
    """
    transaction = _get_transaction_or_404(transaction_id, session)
    _require_can_modify(transaction, caller_id, session)

    maintainer = SplitConsistencyMaintainer(SqlSplitStore(session))
    try:
        shares = maintainer.repair(to_ledger_transaction(transaction))
    finally:
        session.expire(transaction, ["splits"])
    return transaction, shares
