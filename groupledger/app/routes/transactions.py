"""
routes/transactions.py — Transaction route handlers.

Layer rules:
  - Parse, validate, call the service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - _serialize_transaction() is a pure data-shape helper.

Each write commits twice: once for the transaction row, once for its
splits. A split write that fails after the first commit leaves the row in
place and comes back as a SPLITS_NOT_PERSISTED warning.

Endpoints (base url_prefix=/api/v1):
  POST  /transactions                       → 201  record a transaction
  PATCH /transactions/:id                   → 200  partial update
  POST  /transactions/:id/splits/repair     → 200  rebuild splits from the row
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.models.transaction import Transaction
from groupledger.app.schemas.transaction_schema import (
    CreateTransactionSchema,
    PatchTransactionSchema,
)
from groupledger.app.services import transaction_service

transactions_bp = Blueprint("transactions", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def _serialize_transaction(transaction: Transaction) -> dict:
    """Converts a Transaction ORM object to a plain dict for JSON output."""
    return {
        "id": transaction.id,
        "user_id": transaction.user_id,
        "group_id": transaction.group_id,
        "type": transaction.type.value,
        "amount": str(transaction.amount),
        "currency": transaction.currency,
        "description": transaction.description,
        "paid_by": transaction.paid_by,
        "created_at": transaction.created_at.isoformat() if transaction.created_at else None,
        "updated_at": transaction.updated_at.isoformat() if transaction.updated_at else None,
        "splits": [
            {"user_id": s.user_id, "amount": str(s.amount)}
            for s in transaction.splits
        ],
    }


# ── Routes ─────────────────────────────────────────────────────────────────

@transactions_bp.route("/transactions", methods=["POST"])
@require_auth
def create_transaction():
    """POST /transactions — Record a transaction and allocate its splits."""
    data = CreateTransactionSchema().load(request.get_json(force=True) or {})
    transaction, split_change = transaction_service.create_transaction(
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()

    _, warnings = transaction_service.apply_split_change(
        transaction, split_change, db.session
    )
    db.session.commit()
    return jsonify({"data": _serialize_transaction(transaction), "warnings": warnings}), 201


@transactions_bp.route("/transactions/<int:transaction_id>", methods=["PATCH"])
@require_auth
def edit_transaction(transaction_id: int):
    """
    PATCH /transactions/:id — Partial update.
    Changing split_participants or amount recomputes the splits.
    """
    data = PatchTransactionSchema().load(request.get_json(force=True) or {})
    transaction, split_change = transaction_service.edit_transaction(
        transaction_id=transaction_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()

    _, warnings = transaction_service.apply_split_change(
        transaction, split_change, db.session
    )
    db.session.commit()
    return jsonify({"data": _serialize_transaction(transaction), "warnings": warnings}), 200


@transactions_bp.route("/transactions/<int:transaction_id>/splits/repair", methods=["POST"])
@require_auth
def repair_transaction_splits(transaction_id: int):
    """
    POST /transactions/:id/splits/repair — Rebuild splits from the current
    amount over the participants of record. Fails with
    SPLIT_PERSISTENCE_FAILED (500) if the rebuilt splits cannot be saved.
    """
    transaction, _ = transaction_service.repair_splits(
        transaction_id=transaction_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_transaction(transaction), "warnings": []}), 200
