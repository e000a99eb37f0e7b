"""
Folds expenses and payments into per-user paid/owes/net totals.
"""
from __future__ import annotations

import math
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional

from .models import BalanceRecord, EventId, Expense, Payment, Scope, UserId
from .splits import SPLIT_PERCENT_TOLERANCE, compute_shares

SETTLED_EPSILON = 0.01

STATUS_OWED = "owed"
STATUS_OWES = "owes"
STATUS_SETTLED = "settled"


def compute_balances(
    scope: Scope,
    expenses: Iterable[Expense],
    payments: Iterable[Payment],
    participant_ids: Iterable[UserId],
    split_participants: Optional[Mapping[EventId, Iterable[UserId]]] = None,
    tolerance: float = SPLIT_PERCENT_TOLERANCE,
) -> Dict[UserId, BalanceRecord]:
    """Return a BalanceRecord for every participant and every user with activity in scope.

    ``split_participants`` maps an event id to the participants its expenses are
    split over. Expenses of events missing from it are split over
    ``participant_ids``, which is what an event scope wants.

    Each user's amounts are summed with ``math.fsum`` so the result does not
    depend on the order of the input records.
    """
    participant_ids = list(participant_ids)
    split_participants = split_participants or {}

    paid: Dict[UserId, List[float]] = defaultdict(list)
    owes: Dict[UserId, List[float]] = defaultdict(list)

    for expense in expenses:
        if not scope.includes(expense.event_id):
            continue
        # The payer keeps the credit even after leaving the event.
        paid[expense.paid_by].append(expense.amount)
        sharers = split_participants.get(expense.event_id, participant_ids)
        for user_id, share in compute_shares(expense, sharers, tolerance).items():
            owes[user_id].append(share)

    for payment in payments:
        if not scope.includes(payment.event_id):
            continue
        paid[payment.payer_id].append(payment.amount)
        if payment.recipient_id is not None:
            owes[payment.recipient_id].append(payment.amount)

    balances = {user_id: BalanceRecord() for user_id in participant_ids}
    for user_id in list(paid) + list(owes):
        if user_id not in balances:
            balances[user_id] = BalanceRecord()
    for user_id, record in balances.items():
        record.paid = math.fsum(paid.get(user_id, ()))
        record.owes = math.fsum(owes.get(user_id, ()))
    return balances


def net_balances(balances: Mapping[UserId, BalanceRecord]) -> Dict[UserId, float]:
    return {user_id: record.net for user_id, record in balances.items()}


def round_currency(value: float) -> float:
    """Round to cents, halves away from zero."""
    rounded = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(rounded) if rounded else 0.0


def present_balance(record: BalanceRecord) -> Dict[str, float]:
    return {
        "paid": round_currency(record.paid),
        "owes": round_currency(record.owes),
        "net": round_currency(record.net),
    }


def present_balances(balances: Mapping[UserId, BalanceRecord]) -> Dict[UserId, Dict[str, float]]:
    return {user_id: present_balance(record) for user_id, record in balances.items()}


def balance_status(net: float, epsilon: float = SETTLED_EPSILON) -> str:
    if net > epsilon:
        return STATUS_OWED
    if net < -epsilon:
        return STATUS_OWES
    return STATUS_SETTLED


def is_settled(net: float, epsilon: float = SETTLED_EPSILON) -> bool:
    return abs(net) <= epsilon
