"""
Per-expense share computation.

Shares are left as unrounded floats; rounding to cents happens only when
balances are presented.
"""
from __future__ import annotations

from typing import Dict, Iterable, List

from .errors import InvalidSplit, SplitPercentageInvalid
from .models import CustomSplit, EqualSplit, Expense, UserId

SPLIT_PERCENT_TOLERANCE = 0.5


def compute_shares(
    expense: Expense,
    participant_ids: Iterable[UserId],
    tolerance: float = SPLIT_PERCENT_TOLERANCE,
) -> Dict[UserId, float]:
    participants = _unique(participant_ids)
    split = expense.split

    if isinstance(split, EqualSplit):
        if not participants:
            raise InvalidSplit(f"Expense {expense.id} has no participants to split among")
        share = expense.amount / len(participants)
        return {user_id: share for user_id in participants}

    if isinstance(split, CustomSplit):
        check_percentages(split, participants, tolerance)
        return {
            user_id: expense.amount * split.percentages.get(user_id, 0.0) / 100
            for user_id in participants
        }

    raise InvalidSplit(f"Unknown split rule {split!r}")


def percentage_total(split: CustomSplit, participant_ids: Iterable[UserId]) -> float:
    """Sum of percentages for users still in the event; stale ids are ignored."""
    active = set(participant_ids)
    return sum(pct for user_id, pct in split.percentages.items() if user_id in active)


def check_percentages(
    split: CustomSplit,
    participant_ids: Iterable[UserId],
    tolerance: float = SPLIT_PERCENT_TOLERANCE,
) -> float:
    total = percentage_total(split, participant_ids)
    if total < -tolerance or total > 100 + tolerance:
        raise SplitPercentageInvalid(total)
    return total


def equal_split_percentages(participant_ids: Iterable[UserId]) -> Dict[UserId, float]:
    """Percentages for an even custom split, rounded to 2 decimals and summing to 100.

    The rounding remainder goes to the first participant.
    """
    participants = _unique(participant_ids)
    if not participants:
        raise InvalidSplit("Must provide at least one participant")

    percentage = round(100 / len(participants), 2)
    percentages = {user_id: percentage for user_id in participants}
    diff = round(100 - percentage * len(participants), 2)
    if diff:
        percentages[participants[0]] = round(percentages[participants[0]] + diff, 2)
    return percentages


def _unique(ids: Iterable[UserId]) -> List[UserId]:
    seen = set()
    out = []
    for user_id in ids:
        if user_id not in seen:
            seen.add(user_id)
            out.append(user_id)
    return out
