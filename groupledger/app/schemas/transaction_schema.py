"""
schemas/transaction_schema.py — Marshmallow schemas for transaction endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values
      - Monetary amounts: strictly positive, at most 2 decimal places,
        no larger than the amount column holds
      - Currency: exactly three upper-case letters (ISO 4217 shape)
      - Participant ids: non-blank strings
  - services/transaction_service.py:
      - PAYER_NOT_MEMBER, SPLIT_USER_NOT_MEMBER (422) — DB membership lookup
      - EMPTY_SPLIT (422) — depends on whether the transaction is a group expense
      - FORBIDDEN (403) — requires DB record lookup

Duplicate participant ids are accepted here; the allocator keeps the first
occurrence of each.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

import re
from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from groupledger.app.errors import ErrorCode
from groupledger.app.models.transaction import TransactionType
from groupledger.app.services.split_allocator import MAX_AMOUNT

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


# ── Shared validators ──────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places and at most MAX_AMOUNT.
    Extra precision is REJECTED with INVALID_AMOUNT_PRECISION, never rounded.
    """
    if not value.is_finite() or value <= Decimal("0") or value > MAX_AMOUNT:
        raise ValidationError(ErrorCode.INVALID_AMOUNT)

    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_currency(value: str) -> None:
    if not _CURRENCY_RE.match(value):
        raise ValidationError(ErrorCode.INVALID_CURRENCY)


def _validate_non_blank(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _participant_list(**kwargs) -> fields.List:
    return fields.List(
        fields.Str(validate=[validate.Length(max=36), _validate_non_blank]),
        **kwargs,
    )


# ── Create transaction ─────────────────────────────────────────────────────

class CreateTransactionSchema(Schema):
    """
    POST /transactions

    group_id absent -> personal transaction; paid_by and split_participants
    are ignored.
    group expense   -> paid_by defaults to the caller; split_participants
                       must name at least one group member.
    """

    type = fields.Enum(TransactionType, required=True, by_value=True)

    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)

    currency = fields.Str(required=True, validate=_validate_currency)

    description = fields.Str(
        load_default="",
        validate=validate.Length(max=255, error="Description must be at most 255 characters."),
    )

    group_id = fields.Str(
        load_default=None,
        validate=[validate.Length(min=1, max=36), _validate_non_blank],
    )

    paid_by = fields.Str(
        load_default=None,
        validate=[validate.Length(min=1, max=36), _validate_non_blank],
    )

    split_participants = _participant_list(load_default=list)

    @validates_schema
    def validate_group_fields(self, data: dict, **kwargs) -> None:
        """paid_by only makes sense inside a group."""
        if data.get("group_id") is None and data.get("paid_by") is not None:
            raise ValidationError(
                {"paid_by": ["paid_by can only be set on group transactions."]}
            )


# ── Patch transaction ──────────────────────────────────────────────────────

class PatchTransactionSchema(Schema):
    """
    PATCH /transactions/:id

    All fields optional; only provided fields are updated. The group of a
    transaction cannot be changed.

    Split consequences (applied by the service):
      split_participants given -> reallocate the (new) amount over them
      only amount given        -> reallocate over the current participants
    """

    type = fields.Enum(TransactionType, by_value=True)

    amount = fields.Decimal(validate=_validate_monetary_amount)

    currency = fields.Str(validate=_validate_currency)

    description = fields.Str(
        validate=validate.Length(max=255, error="Description must be at most 255 characters."),
    )

    paid_by = fields.Str(validate=[validate.Length(min=1, max=36), _validate_non_blank])

    split_participants = _participant_list()

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("At least one field must be provided.")
