"""
tests/unit/test_transaction_schemas.py — Unit tests for transaction request schemas.

Schemas are plain marshmallow.Schema subclasses, so no app context is needed.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from marshmallow import ValidationError

from groupledger.app.errors import ErrorCode
from groupledger.app.models.transaction import TransactionType
from groupledger.app.schemas.transaction_schema import (
    CreateTransactionSchema,
    PatchTransactionSchema,
)


def _valid_create(**overrides) -> dict:
    payload = {
        "type": "expense",
        "amount": "100.00",
        "currency": "USD",
        "group_id": "g1",
        "paid_by": "alice",
        "split_participants": ["alice", "bob"],
    }
    payload.update(overrides)
    return payload


class TestCreateTransactionSchema:

    def test_valid_payload_loads_decimal_and_enum(self):
        data = CreateTransactionSchema().load(_valid_create())

        assert data["amount"] == Decimal("100.00")
        assert data["type"] == TransactionType.EXPENSE
        assert data["split_participants"] == ["alice", "bob"]
        assert data["description"] == ""

    def test_personal_transaction_defaults(self):
        data = CreateTransactionSchema().load(
            {"type": "income", "amount": "2500", "currency": "EUR"}
        )

        assert data["group_id"] is None
        assert data["paid_by"] is None
        assert data["split_participants"] == []

    def test_duplicate_participants_are_accepted(self):
        data = CreateTransactionSchema().load(
            _valid_create(split_participants=["alice", "alice", "bob"])
        )

        assert data["split_participants"] == ["alice", "alice", "bob"]

    @pytest.mark.parametrize("field", ["type", "amount", "currency"])
    def test_required_fields(self, field):
        payload = _valid_create()
        del payload[field]

        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(payload)

        assert field in exc_info.value.messages

    def test_three_decimal_places_rejected_with_precision_code(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(_valid_create(amount="10.005"))

        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    @pytest.mark.parametrize("amount", ["0", "0.00", "-3.50"])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(_valid_create(amount=amount))

        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT]

    @pytest.mark.parametrize("amount", ["10000000000.00", "1e27"])
    def test_amount_beyond_column_range_rejected(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(_valid_create(amount=amount))

        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT]

    def test_largest_storable_amount_accepted(self):
        data = CreateTransactionSchema().load(_valid_create(amount="9999999999.99"))

        assert data["amount"] == Decimal("9999999999.99")

    @pytest.mark.parametrize("currency", ["usd", "US", "USDX", "12A"])
    def test_currency_must_be_three_upper_case_letters(self, currency):
        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(_valid_create(currency=currency))

        assert exc_info.value.messages["currency"] == [ErrorCode.INVALID_CURRENCY]

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(_valid_create(type="transfer"))

        assert "type" in exc_info.value.messages

    def test_blank_participant_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(_valid_create(split_participants=["alice", "  "]))

        assert "split_participants" in exc_info.value.messages

    def test_paid_by_without_group_rejected(self):
        payload = _valid_create()
        del payload["group_id"]

        with pytest.raises(ValidationError) as exc_info:
            CreateTransactionSchema().load(payload)

        assert "paid_by" in exc_info.value.messages


class TestPatchTransactionSchema:

    def test_partial_payload(self):
        data = PatchTransactionSchema().load({"amount": "60.00"})

        assert data == {"amount": Decimal("60.00")}

    def test_participants_only(self):
        data = PatchTransactionSchema().load({"split_participants": ["bob"]})

        assert data == {"split_participants": ["bob"]}

    def test_empty_patch_rejected(self):
        with pytest.raises(ValidationError):
            PatchTransactionSchema().load({})

    def test_group_cannot_be_changed(self):
        with pytest.raises(ValidationError) as exc_info:
            PatchTransactionSchema().load({"group_id": "g2"})

        assert "group_id" in exc_info.value.messages

    def test_amount_precision_enforced(self):
        with pytest.raises(ValidationError) as exc_info:
            PatchTransactionSchema().load({"amount": "1.234"})

        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_amount_upper_bound_enforced(self):
        with pytest.raises(ValidationError) as exc_info:
            PatchTransactionSchema().load({"amount": "10000000000.00"})

        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT]
