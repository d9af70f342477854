"""
services/balance_aggregator.py — Cross-group balances for one viewpoint.

Runs balance_calculator.compute_group_balances() once per group and sums the
results per counterpart. One group failing does not sink the others: its
BalanceComputationError is logged, recorded in OverallBalances.failures and
the group is left out of both the merged map and the per-group breakdown.
A partial overall view beats none.

transactions_by_group / member_ids_by_group / settlements_by_group may be any
Mapping. services/ledger_loader.GroupLedgerLoader is a lazy one that reads the
database on first lookup and raises BalanceComputationError when it cannot.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping

from groupledger.app.errors import BalanceComputationError
from groupledger.app.services.balance_calculator import (
    compute_group_balances,
    finalize_balances,
)
from groupledger.app.services.ledger_types import OverallBalances

logger = logging.getLogger(__name__)


def _lookup(mapping: Mapping, group_id: str, what: str):
    try:
        return mapping[group_id]
    except KeyError:
        raise BalanceComputationError(
            group_id,
            f"No {what} were loaded for group {group_id}.",
        )


def compute_overall_balances(
        group_ids: Iterable[str],
        transactions_by_group: Mapping,
        viewpoint_user_id: str,
        member_ids_by_group: Mapping,
        settlements_by_group: Mapping | None = None,
        currency: str | None = None,
) -> OverallBalances:
    """
    Aggregates the viewpoint's balances over group_ids.

    Returns:
        OverallBalances(merged, per_group, failures).
        merged is rounded and near-zero filtered exactly like a single group.
    """
    per_group: dict[str, dict[str, Decimal]] = {}
    failures: dict[str, BalanceComputationError] = {}

    for group_id in group_ids:
        try:
            transactions = _lookup(transactions_by_group, group_id, "transactions")
            member_ids = _lookup(member_ids_by_group, group_id, "members")
            settlements = (
                settlements_by_group.get(group_id, ())
                if settlements_by_group is not None
                else ()
            )
            per_group[group_id] = compute_group_balances(
                group_id,
                transactions,
                viewpoint_user_id,
                member_ids,
                settlements=settlements,
                currency=currency,
            )
        except BalanceComputationError as exc:
            logger.warning(
                "Omitting group %s from overall balances: %s",
                group_id,
                exc.message,
                extra={"group_id": group_id},
            )
            failures[group_id] = exc

    merged: dict[str, Decimal] = defaultdict(Decimal)
    for balances in per_group.values():
        for user_id, amount in balances.items():
            merged[user_id] += amount

    return OverallBalances(
        merged=finalize_balances(merged, viewpoint_user_id),
        per_group=per_group,
        failures=failures,
    )
