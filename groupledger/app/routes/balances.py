"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Parse, call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1):
  GET /groups/:id/balances  → 200  caller's balances against each group member
  GET /balances             → 200  caller's balances across all their groups

Both are computed on demand from the ledger on every request; nothing is
cached. Whether settlements are netted in is controlled by the
BALANCES_NET_SETTLEMENTS config flag.
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


def _net_settlements() -> bool:
    return bool(current_app.config.get("BALANCES_NET_SETTLEMENTS", True))


@balances_bp.route("/groups/<group_id>/balances", methods=["GET"])
@require_auth
def get_group_balances(group_id: str):
    """
    GET /groups/:id/balances

    Positive amounts: that member owes the caller.
    Negative amounts: the caller owes that member.
    """
    result = balance_service.get_group_balance_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        net_settlements=_net_settlements(),
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/balances", methods=["GET"])
@require_auth
def get_overall_balances():
    """
    GET /balances

    A group whose ledger cannot be read is left out and reported in
    `warnings` as GROUP_BALANCE_UNAVAILABLE; the rest still returns 200.
    """
    result, warnings = balance_service.get_overall_balance_response(
        caller_id=g.user_id,
        session=db.session,
        net_settlements=_net_settlements(),
    )
    return jsonify({"data": result, "warnings": warnings}), 200
