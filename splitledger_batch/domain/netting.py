"""
Debt netting: turn one group expense into pairwise transfers.

Contract:
    ``settle(total_amount, paid_by_shares, split_pct_shares, currency)``
    returns a tuple of ``DebtEdge`` where each debtor's debt is spread
    across all creditors in proportion to each creditor's share of the
    creditor pool.

Algorithm:
    1. Net position per participant: paid amount minus
       ``total_amount * share / 100``.
    2. Classification: net > CREDITOR_EPSILON is a creditor, net <
       DEBTOR_EPSILON is a debtor, anything between is settled.
    3. For each debtor, creditor-proportional transfers.  A transfer is
       emitted only when its unrounded amount exceeds EDGE_EPSILON.
       Each edge is rounded to cents (ROUND_HALF_UP) on its own; edges that
       round to zero are dropped.

Guarantees:
    - No participant is both a source and a target.
    - A debtor's edges add up to its net debt within half a cent per edge.
    - Output order is deterministic: debtors, then creditors, in the
      order they first appear in split shares then paid shares.

Architecture: splitledger_batch/domain.  ZERO I/O.  All arithmetic is
Decimal.

Note on thresholds: the creditor (+0.001) and debtor (-0.01) epsilons are
deliberately asymmetric to keep ledger behaviour stable.  A symmetric
0.01 is the likely intent; changing it alters which near-zero
participants receive edges.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from splitledger_batch.domain.types import DebtEdge
from splitledger_kernel.db.types import round_money

CREDITOR_EPSILON = Decimal("0.001")
DEBTOR_EPSILON = Decimal("-0.01")
EDGE_EPSILON = Decimal("0.001")

_HUNDRED = Decimal(100)


def net_positions(
    total_amount: Decimal,
    paid_by_shares: Mapping[str, Decimal],
    split_pct_shares: Mapping[str, Decimal],
) -> dict[str, Decimal]:
    """Net position per participant (positive: is owed, negative: owes)."""
    net: dict[str, Decimal] = {}
    for participant, share in split_pct_shares.items():
        net[participant] = net.get(participant, Decimal(0)) - total_amount * share / _HUNDRED
    for participant, paid in paid_by_shares.items():
        net[participant] = net.get(participant, Decimal(0)) + paid
    return net


def settle(
    total_amount: Decimal,
    paid_by_shares: Mapping[str, Decimal],
    split_pct_shares: Mapping[str, Decimal],
    currency: str,
) -> tuple[DebtEdge, ...]:
    """Pairwise transfers that settle one expense."""
    net = net_positions(total_amount, paid_by_shares, split_pct_shares)

    creditors = {p: v for p, v in net.items() if v > CREDITOR_EPSILON}
    debtors = {p: -v for p, v in net.items() if v < DEBTOR_EPSILON}
    creditor_pool = sum(creditors.values(), Decimal(0))
    if not creditors or not debtors:
        return ()

    edges: list[DebtEdge] = []
    for debtor, debt in debtors.items():
        for creditor, credit in creditors.items():
            amount = debt * credit / creditor_pool
            if amount <= EDGE_EPSILON:
                continue
            rounded = round_money(amount)
            if rounded > 0:
                edges.append(DebtEdge(debtor, creditor, rounded, currency))

    return tuple(edges)
