"""
Balance facade: resolves a scope's records from the store and runs the engine.

Nothing is cached; every call reads a fresh snapshot and recomputes.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from .balances import (
    SETTLED_EPSILON,
    STATUS_OWED,
    STATUS_OWES,
    balance_status,
    compute_balances,
    net_balances,
    present_balance,
    present_balances,
    round_currency,
)
from .errors import ImbalancedLedger, InvalidSplit, NotFound, SplitPercentageInvalid
from .models import BalanceRecord, Event, EventId, Expense, Payment, Scope, SettlementSuggestion, UserId
from .settlements import settlement_summary, suggest_settlements
from .splits import SPLIT_PERCENT_TOLERANCE, compute_shares

logger = logging.getLogger(__name__)


class ScopeSnapshot(NamedTuple):
    scope: Scope
    participant_ids: List[UserId]
    split_participants: Dict[EventId, Iterable[UserId]]
    expenses: List[Expense]
    payments: List[Payment]
    event: Optional[Event] = None


class BalanceService:
    def __init__(
        self,
        store,
        settled_epsilon: float = SETTLED_EPSILON,
        split_tolerance: float = SPLIT_PERCENT_TOLERANCE,
    ) -> None:
        self.store = store
        self.epsilon = settled_epsilon
        self.split_tolerance = split_tolerance

    # ---------- Scope resolution ----------
    def get_event(self, event_id) -> Event:
        event = self.store.get_event(event_id)
        if event is None:
            raise NotFound("event", event_id)
        return event

    def load_scope(self, scope: Scope) -> ScopeSnapshot:
        event = None
        if scope.is_global:
            participant_ids = [user.id for user in self.store.list_users()]
            # Every event is listed, including ones left without participants.
            split_participants = {e.id: list(e.participants) for e in self.store.list_events()}
            expenses = self.store.list_expenses()
            payments = self.store.list_payments()
        else:
            event = self.get_event(scope.event_id)
            participant_ids = list(event.participants)
            split_participants = {event.id: participant_ids}
            expenses = self.store.list_expenses(event.id)
            payments = self.store.list_payments(event.id)
        return ScopeSnapshot(scope, participant_ids, split_participants, expenses, payments, event)

    def compute_scope(self, scope: Scope, snapshot: Optional[ScopeSnapshot] = None) -> Dict[UserId, BalanceRecord]:
        snapshot = snapshot or self.load_scope(scope)
        logger.debug(
            "Computing balances for %s: %d participants, %d expenses, %d payments",
            _describe(scope),
            len(snapshot.participant_ids),
            len(snapshot.expenses),
            len(snapshot.payments),
        )
        return compute_balances(
            scope,
            snapshot.expenses,
            snapshot.payments,
            snapshot.participant_ids,
            split_participants=snapshot.split_participants,
            tolerance=self.split_tolerance,
        )

    # ---------- Balances ----------
    def get_event_balance(self, event_id) -> Dict[str, Any]:
        snapshot = self.load_scope(Scope.event(event_id))
        event = snapshot.event
        balances = self.compute_scope(snapshot.scope, snapshot)
        expenses, payments = snapshot.expenses, snapshot.payments
        return {
            "eventId": event.id,
            "eventName": event.name,
            "userBalances": present_balances(balances),
            "totalCosts": round_currency(math.fsum(e.amount for e in expenses)),
            "totalPayments": round_currency(math.fsum(p.amount for p in payments)),
        }

    def get_event_participant_balances(self, event_id) -> List[Dict[str, Any]]:
        """One row per participant, in the event's participant order."""
        snapshot = self.load_scope(Scope.event(event_id))
        event = snapshot.event
        balances = self.compute_scope(snapshot.scope, snapshot)
        names = {user.id: user.name for user in self.store.list_users()}
        rows = []
        for user_id in event.participants:
            presented = present_balance(balances[user_id])
            rows.append(
                {
                    "id": user_id,
                    "name": names.get(user_id),
                    "eventBalance": presented["net"],
                    "eventOwes": presented["owes"],
                    "eventPaid": presented["paid"],
                }
            )
        return rows

    def get_global_balance(self) -> Dict[str, Any]:
        balances = self.compute_scope(Scope.all_events())
        return {"userBalances": present_balances(balances)}

    def get_user_balance(self, user_id) -> Dict[str, Any]:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("user", user_id)

        record = self.compute_scope(Scope.all_events()).get(user.id, BalanceRecord())
        events = [e for e in self.store.list_events() if user.id in e.participants]
        event_ids = {e.id for e in events}
        expenses = [e for e in self.store.list_expenses() if e.event_id in event_ids or e.paid_by == user.id]
        payments = [p for p in self.store.list_payments() if user.id in (p.payer_id, p.recipient_id)]

        presented = present_balance(record)
        return {
            "userId": user.id,
            "userName": user.name,
            "totalPaid": presented["paid"],
            "totalOwes": presented["owes"],
            "netBalance": presented["net"],
            "status": balance_status(record.net, self.epsilon),
            "events": len(events),
            "expenses": len(expenses),
            "payments": len(payments),
        }

    # ---------- Settlements ----------
    def get_settlement_suggestions(self, scope: Scope) -> List[SettlementSuggestion]:
        return self._plan(net_balances(self.compute_scope(scope)), scope)

    def get_settlement_plan(self, scope: Scope) -> Dict[str, Any]:
        nets = net_balances(self.compute_scope(scope))
        settlements = self._plan(nets, scope)
        summary = settlement_summary(nets, settlements, self.epsilon)
        summary["totalDebt"] = round_currency(summary["totalDebt"])
        summary["totalCredit"] = round_currency(summary["totalCredit"])
        return {
            "settlements": [
                {
                    "fromUserId": s.from_user_id,
                    "toUserId": s.to_user_id,
                    "amount": round_currency(s.amount),
                }
                for s in settlements
            ],
            "summary": summary,
        }

    def _plan(self, nets: Dict[UserId, float], scope: Scope) -> List[SettlementSuggestion]:
        try:
            return suggest_settlements(nets, self.epsilon)
        except ImbalancedLedger as exc:
            logger.warning("Ledger for %s does not balance: off by %.4f", _describe(scope), exc.total)
            raise

    # ---------- Statistics ----------
    def get_event_statistics(self, event_id) -> Dict[str, Any]:
        snapshot = self.load_scope(Scope.event(event_id))
        event = snapshot.event
        balances = self.compute_scope(snapshot.scope, snapshot)
        expenses, payments = snapshot.expenses, snapshot.payments

        total_costs = math.fsum(e.amount for e in expenses)
        participants = len(event.participants)
        statuses = [balance_status(balances[user_id].net, self.epsilon) for user_id in event.participants]
        owing = statuses.count(STATUS_OWES)
        owed = statuses.count(STATUS_OWED)

        return {
            "eventId": event.id,
            "totalExpenses": len(expenses),
            "totalPayments": len(payments),
            "totalAmount": round_currency(total_costs),
            "totalPaymentsAmount": round_currency(math.fsum(p.amount for p in payments)),
            "averageCostPerExpense": round_currency(total_costs / len(expenses)) if expenses else 0,
            "averageOwedPerUser": round_currency(total_costs / participants) if participants else 0,
            "participantStats": {
                "total": participants,
                "owing": owing,
                "owed": owed,
                "settled": participants - owing - owed,
            },
        }

    # ---------- Write-side checks ----------
    def check_expense_split(self, expense: Expense, participant_ids: Optional[List[UserId]] = None) -> Dict[UserId, float]:
        """Compute the expense's shares against the event's current participants.

        Raises the same errors the aggregation would, so callers can reject a
        write before it lands.
        """
        if participant_ids is None:
            participant_ids = list(self.get_event(expense.event_id).participants)
        try:
            return compute_shares(expense, participant_ids, self.split_tolerance)
        except (InvalidSplit, SplitPercentageInvalid) as exc:
            logger.warning("Rejected split for expense on event %s: %s", expense.event_id, exc)
            raise


def _describe(scope: Scope) -> str:
    return "all events" if scope.is_global else f"event {scope.event_id}"
