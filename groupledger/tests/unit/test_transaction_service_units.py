"""
Unit tests for transaction_service: validation, authorization and the split
change each write asks for.

DB access is mocked through a MagicMock session; membership lookups are
patched at module level.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from groupledger.app.errors import AppError, ErrorCode, SplitPersistenceError, WarningCode
from groupledger.app.models.transaction import TransactionType
from groupledger.app.services import transaction_service
from groupledger.app.services.transaction_service import SplitChange

MODULE = "groupledger.app.services.transaction_service"


def _member_session(is_member: bool = True) -> MagicMock:
    session = MagicMock()
    session.get.return_value = SimpleNamespace(id="g1", name="Trip")
    session.execute.return_value.scalar_one_or_none.return_value = (
        SimpleNamespace(user_id="alice") if is_member else None
    )
    return session


def _create_data(**overrides) -> dict:
    data = {
        "type": TransactionType.EXPENSE,
        "amount": Decimal("100.00"),
        "currency": "USD",
        "description": "Dinner",
        "group_id": "g1",
        "paid_by": None,
        "split_participants": ["alice", "bob", "alice"],
    }
    data.update(overrides)
    return data


def _txn(**overrides):
    row = dict(
        id=7,
        user_id="alice",
        group_id="g1",
        type=TransactionType.EXPENSE,
        amount=Decimal("100.00"),
        currency="USD",
        description="",
        paid_by="alice",
        splits=[],
        updated_at=None,
    )
    row.update(overrides)
    return SimpleNamespace(**row)


# ── create_transaction ─────────────────────────────────────────────────────

@patch(f"{MODULE}.get_member_ids", return_value=["alice", "bob"])
def test_create_group_expense_defaults_payer_and_dedupes(_members):
    session = _member_session()

    txn, change = transaction_service.create_transaction("alice", _create_data(), session)

    assert txn.paid_by == "alice"
    assert change == SplitChange(kind="create", participant_ids=("alice", "bob"))
    session.add.assert_called_once_with(txn)
    session.flush.assert_called_once()


def test_create_personal_transaction_has_no_splits():
    session = MagicMock()

    txn, change = transaction_service.create_transaction(
        "alice",
        _create_data(group_id=None, split_participants=[]),
        session,
    )

    assert change is None
    assert txn.paid_by is None
    session.get.assert_not_called()


def test_create_group_income_has_no_splits():
    session = _member_session()

    _, change = transaction_service.create_transaction(
        "alice", _create_data(type=TransactionType.INCOME), session
    )

    assert change is None


def test_create_in_missing_group_is_404():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        transaction_service.create_transaction("alice", _create_data(), session)

    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND
    assert exc_info.value.http_status == 404


def test_create_by_non_member_is_403():
    with pytest.raises(AppError) as exc_info:
        transaction_service.create_transaction("eve", _create_data(), _member_session(False))

    assert exc_info.value.code == ErrorCode.FORBIDDEN


@patch(f"{MODULE}.get_member_ids", return_value=["alice", "bob"])
def test_create_with_non_member_payer_is_422(_members):
    with pytest.raises(AppError) as exc_info:
        transaction_service.create_transaction(
            "alice", _create_data(paid_by="mallory"), _member_session()
        )

    assert exc_info.value.code == ErrorCode.PAYER_NOT_MEMBER
    assert exc_info.value.http_status == 422


@patch(f"{MODULE}.get_member_ids", return_value=["alice", "bob"])
def test_create_with_non_member_participant_is_422(_members):
    with pytest.raises(AppError) as exc_info:
        transaction_service.create_transaction(
            "alice", _create_data(split_participants=["alice", "mallory"]), _member_session()
        )

    assert exc_info.value.code == ErrorCode.SPLIT_USER_NOT_MEMBER
    assert exc_info.value.field == "split_participants"


@patch(f"{MODULE}.get_member_ids", return_value=["alice", "bob"])
def test_create_group_expense_without_participants_is_422(_members):
    with pytest.raises(AppError) as exc_info:
        transaction_service.create_transaction(
            "alice", _create_data(split_participants=[]), _member_session()
        )

    assert exc_info.value.code == ErrorCode.EMPTY_SPLIT


# ── edit_transaction ───────────────────────────────────────────────────────

def _edit(data: dict, txn=None, caller: str = "alice", members=("alice", "bob")):
    session = _member_session()
    session.get.return_value = txn or _txn()
    with patch(f"{MODULE}.get_member_ids", return_value=list(members)):
        return transaction_service.edit_transaction(7, caller, data, session)


def test_edit_amount_only_rescales_persisted_participants():
    txn, change = _edit({"amount": Decimal("60.00")})

    assert txn.amount == Decimal("60.00")
    assert txn.updated_at is not None
    assert change == SplitChange(kind="amount", amount=Decimal("60.00"))


def test_edit_participants_reallocates_over_new_list():
    _, change = _edit({"split_participants": ["bob", "alice", "bob"]})

    assert change == SplitChange(kind="participants", participant_ids=("bob", "alice"))


def test_edit_participants_and_amount_uses_participants_branch():
    txn, change = _edit({"amount": Decimal("30.00"), "split_participants": ["bob"]})

    assert txn.amount == Decimal("30.00")
    assert change.kind == "participants"


def test_edit_to_income_clears_splits():
    _, change = _edit({"type": TransactionType.INCOME})

    assert change == SplitChange(kind="clear")


def test_edit_description_on_personal_transaction_needs_no_split_change():
    txn, change = _edit({"description": "Lunch"}, txn=_txn(group_id=None, paid_by=None))

    assert txn.description == "Lunch"
    assert change is None


def test_edit_with_non_member_participant_is_422():
    with pytest.raises(AppError) as exc_info:
        _edit({"split_participants": ["mallory"]})

    assert exc_info.value.code == ErrorCode.SPLIT_USER_NOT_MEMBER


def test_edit_someone_elses_personal_transaction_is_403():
    with pytest.raises(AppError) as exc_info:
        _edit({"description": "x"}, txn=_txn(group_id=None), caller="bob")

    assert exc_info.value.code == ErrorCode.FORBIDDEN


def test_edit_income_to_expense_without_participants_is_422():
    with pytest.raises(AppError) as exc_info:
        _edit({"type": TransactionType.EXPENSE}, txn=_txn(type=TransactionType.INCOME, paid_by=None))

    assert exc_info.value.code == ErrorCode.EMPTY_SPLIT
    assert exc_info.value.http_status == 422


def test_edit_income_to_expense_with_participants_creates_splits():
    txn, change = _edit(
        {"type": TransactionType.EXPENSE, "split_participants": ["bob", "alice"]},
        txn=_txn(type=TransactionType.INCOME, paid_by=None),
    )

    assert txn.type == TransactionType.EXPENSE
    assert txn.paid_by == "alice"
    assert change == SplitChange(kind="participants", participant_ids=("bob", "alice"))


def test_edit_income_to_expense_checks_the_resulting_payer():
    with pytest.raises(AppError) as exc_info:
        _edit(
            {"type": TransactionType.EXPENSE, "split_participants": ["bob"]},
            txn=_txn(type=TransactionType.INCOME, paid_by=None),
            members=("bob",),
        )

    assert exc_info.value.code == ErrorCode.PAYER_NOT_MEMBER


def test_edit_paid_by_on_personal_transaction_is_400():
    txn = _txn(group_id=None, paid_by=None)

    with pytest.raises(AppError) as exc_info:
        _edit({"paid_by": "bob"}, txn=txn)

    assert exc_info.value.code == ErrorCode.INVALID_FIELD
    assert exc_info.value.field == "paid_by"
    assert exc_info.value.http_status == 400
    assert txn.paid_by is None


def test_edit_missing_transaction_is_404():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        transaction_service.edit_transaction(99, "alice", {"amount": Decimal("1.00")}, session)

    assert exc_info.value.code == ErrorCode.TRANSACTION_NOT_FOUND


# ── apply_split_change ─────────────────────────────────────────────────────

def test_apply_none_does_nothing():
    session = MagicMock()

    assert transaction_service.apply_split_change(_txn(), None, session) == ([], [])
    session.expire.assert_not_called()


@patch(f"{MODULE}.SplitConsistencyMaintainer")
def test_apply_create_calls_on_create(mock_maintainer_cls):
    mock_maintainer_cls.return_value.on_create.return_value = ["share"]
    session = MagicMock()
    txn = _txn()

    shares, warnings = transaction_service.apply_split_change(
        txn, SplitChange(kind="create", participant_ids=("alice", "bob")), session
    )

    assert shares == ["share"]
    assert warnings == []
    ledger_txn = mock_maintainer_cls.return_value.on_create.call_args.args[0]
    assert ledger_txn.split_participants == ("alice", "bob")
    session.expire.assert_called_once_with(txn, ["splits"])


@patch(f"{MODULE}.SplitConsistencyMaintainer")
def test_apply_turns_persistence_failure_into_warning(mock_maintainer_cls):
    mock_maintainer_cls.return_value.on_amount_changed.side_effect = SplitPersistenceError(
        7, "Splits for transaction 7 could not be saved."
    )
    session = MagicMock()

    shares, warnings = transaction_service.apply_split_change(
        _txn(), SplitChange(kind="amount", amount=Decimal("60.00")), session
    )

    assert shares == []
    assert warnings[0]["code"] == WarningCode.SPLITS_NOT_PERSISTED
    assert "/transactions/7/splits/repair" in warnings[0]["message"]
    session.expire.assert_called_once()


# ── repair_splits ──────────────────────────────────────────────────────────

@patch(f"{MODULE}.SplitConsistencyMaintainer")
def test_repair_propagates_persistence_error(mock_maintainer_cls):
    mock_maintainer_cls.return_value.repair.side_effect = SplitPersistenceError(7, "nope")
    session = _member_session()
    session.get.return_value = _txn()

    with pytest.raises(SplitPersistenceError):
        transaction_service.repair_splits(7, "alice", session)
