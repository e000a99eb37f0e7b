"""
Greedy settlement planning.

Each step pairs the largest remaining debtor with the largest remaining
creditor and moves ``min(debt, credit)`` between them, so every step clears
at least one side. This yields at most ``len(debtors) + len(creditors) - 1``
transfers; it is not a guaranteed global minimum.
"""
from __future__ import annotations

import heapq
import math
from typing import Any, Dict, List, Mapping, Tuple

from .balances import SETTLED_EPSILON
from .errors import ImbalancedLedger
from .models import SettlementSuggestion, UserId


def suggest_settlements(
    balances: Mapping[UserId, float],
    epsilon: float = SETTLED_EPSILON,
) -> List[SettlementSuggestion]:
    total = math.fsum(balances.values())
    if abs(total) > epsilon:
        raise ImbalancedLedger(total)

    # Heaps of (-outstanding, order, user_id): largest first, ties by ascending id.
    order = {user_id: index for index, user_id in enumerate(_sorted_ids(balances))}
    creditors: List[Tuple[float, int, UserId]] = []
    debtors: List[Tuple[float, int, UserId]] = []
    for user_id, net in balances.items():
        if net > epsilon:
            creditors.append((-net, order[user_id], user_id))
        elif net < -epsilon:
            debtors.append((net, order[user_id], user_id))
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    settlements: List[SettlementSuggestion] = []
    while debtors and creditors:
        neg_debt, debtor_order, debtor = heapq.heappop(debtors)
        neg_credit, creditor_order, creditor = heapq.heappop(creditors)
        debt, credit = -neg_debt, -neg_credit

        amount = min(debt, credit)
        settlements.append(SettlementSuggestion(debtor, creditor, amount))

        debt -= amount
        credit -= amount
        if debt > epsilon:
            heapq.heappush(debtors, (-debt, debtor_order, debtor))
        if credit > epsilon:
            heapq.heappush(creditors, (-credit, creditor_order, creditor))

    return settlements


def settlement_summary(
    balances: Mapping[UserId, float],
    settlements: List[SettlementSuggestion],
    epsilon: float = SETTLED_EPSILON,
) -> Dict[str, Any]:
    total_debt = math.fsum(-net for net in balances.values() if net < -epsilon)
    total_credit = math.fsum(net for net in balances.values() if net > epsilon)
    return {
        "totalSettlements": len(settlements),
        "totalDebt": total_debt,
        "totalCredit": total_credit,
        "balanced": abs(total_debt - total_credit) <= epsilon,
    }


def _sorted_ids(balances: Mapping[UserId, float]) -> List[UserId]:
    try:
        return sorted(balances)
    except TypeError:
        # Mixed id types: fall back to insertion order.
        return list(balances)
