"""
services/balance_service.py — Balance response payloads.

Builds the JSON-ready payloads for GET /groups/:id/balances and
GET /balances on top of balance_calculator and balance_aggregator. It adds
what those leave to the caller: authorization, currency bucketing, group
names and the list shape of the response.

Currencies are never mixed: the calculator and the aggregator are run once
per currency present in the ledgers, and every balance entry carries its
currency code. No conversion happens anywhere.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives the session and plain values; returns plain dicts and lists.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, BalanceComputationError, ErrorCode, WarningCode
from groupledger.app.models.group import Group
from groupledger.app.services.balance_aggregator import compute_overall_balances
from groupledger.app.services.balance_calculator import compute_group_balances, currencies_in
from groupledger.app.services.ledger_loader import (
    GroupLedgerLoader,
    get_group_ids_for_user,
    load_group_ledger,
)


def _balance_entries(balances: dict[str, Decimal], currency: str) -> list[dict]:
    return [
        {"user_id": user_id, "amount": amount, "currency": currency}
        for user_id, amount in sorted(balances.items())
    ]


def _group_names(group_ids: list[str], session: Session) -> dict[str, str]:
    if not group_ids:
        return {}
    stmt = select(Group.id, Group.name).where(Group.id.in_(group_ids))
    return {gid: name for gid, name in session.execute(stmt).all()}


def get_group_balance_response(
        group_id: str,
        caller_id: str,
        session: Session,
        net_settlements: bool = True,
) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)         -- group does not exist.
        AppError(FORBIDDEN, 403)               -- caller not a group member.
        BalanceComputationError (503)          -- the group's ledger could not be read.
    """
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )

    ledger = load_group_ledger(group_id, session)
    if caller_id not in ledger.member_ids:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )

    settlements = ledger.settlements if net_settlements else []
    entries: list[dict] = []
    for currency in currencies_in(ledger.transactions, settlements):
        balances = compute_group_balances(
            group_id,
            ledger.transactions,
            caller_id,
            ledger.member_ids,
            settlements=settlements,
            currency=currency,
        )
        entries.extend(_balance_entries(balances, currency))

    return {
        "group_id": group_id,
        "group_name": group.name,
        "balances": entries,
    }


def get_overall_balance_response(
        caller_id: str,
        session: Session,
        net_settlements: bool = True,
) -> tuple[dict, list[dict]]:
    """
    Builds the payload for GET /balances: a per-group breakdown plus the
    caller's balances merged across every group they belong to.

    A group whose ledger cannot be read is left out of both and reported as a
    GROUP_BALANCE_UNAVAILABLE warning.

    Returns:
        (data, warnings)
    """
    group_ids = get_group_ids_for_user(caller_id, session)
    loader = GroupLedgerLoader(session, group_ids)

    currencies: set[str] = set()
    for group_id in group_ids:
        try:
            ledger = loader.load(group_id)
        except BalanceComputationError:
            # The loader remembers the failure; the aggregator records it.
            continue
        currencies.update(currencies_in(
            ledger.transactions,
            ledger.settlements if net_settlements else [],
        ))

    per_group_entries: dict[str, list[dict]] = {}
    overall_entries: list[dict] = []
    failures: dict[str, BalanceComputationError] = {}

    for currency in sorted(currencies) or [None]:
        result = compute_overall_balances(
            group_ids,
            loader.transactions,
            caller_id,
            loader.member_ids,
            settlements_by_group=loader.settlements if net_settlements else None,
            currency=currency,
        )
        failures.update(result.failures)
        if currency is None:
            continue
        for group_id, balances in result.per_group.items():
            per_group_entries.setdefault(group_id, []).extend(
                _balance_entries(balances, currency)
            )
        overall_entries.extend(_balance_entries(result.merged, currency))

    names = _group_names(group_ids, session)
    group_balances = [
        {
            "group_id": group_id,
            "group_name": names.get(group_id, "Unknown Group"),
            "balances": per_group_entries.get(group_id, []),
        }
        for group_id in group_ids
        if group_id not in failures
    ]

    warnings = [
        {
            "code": WarningCode.GROUP_BALANCE_UNAVAILABLE,
            "group_id": group_id,
            "message": exc.message,
        }
        for group_id, exc in failures.items()
    ]

    return {
        "group_balances": group_balances,
        "overall_balances": overall_entries,
    }, warnings
