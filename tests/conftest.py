from __future__ import annotations

import itertools
from datetime import date
from typing import Dict, List, Optional

import pytest

from courtsplit.app import create_app
from courtsplit.models import CustomSplit, EqualSplit, Event, Expense, Payment, User
from courtsplit.service import BalanceService

ALICE, BOB, CHARLIE, DIANA = 1, 2, 3, 4
SESSION_DAY = date(2024, 3, 2)


class MemoryStore:
    """In-memory stand-in for LedgerStore."""

    def __init__(self) -> None:
        self.users: Dict[int, User] = {}
        self.events: Dict[int, Event] = {}
        self.participants: Dict[int, List[int]] = {}
        self.expenses: List[Expense] = []
        self.payments: List[Payment] = []
        self._ids = itertools.count(100)

    def list_users(self) -> List[User]:
        return list(self.users.values())

    def get_user(self, user_id) -> Optional[User]:
        return self.users.get(user_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.email == email), None)

    def create_user(self, name, email, phone=None, user_id=None) -> User:
        user = User(id=user_id or next(self._ids), name=name, email=email, phone=phone)
        self.users[user.id] = user
        return user

    def list_events(self) -> List[Event]:
        return [self.get_event(event_id) for event_id in self.events]

    def get_event(self, event_id) -> Optional[Event]:
        event = self.events.get(event_id)
        if event is None:
            return None
        return Event(
            id=event.id,
            name=event.name,
            date=event.date,
            location=event.location,
            description=event.description,
            participants=tuple(self.participants[event.id]),
        )

    def create_event(self, name, event_date, location, description="", participants=None, event_id=None) -> Event:
        event = Event(id=event_id or next(self._ids), name=name, date=event_date, location=location,
                      description=description)
        self.events[event.id] = event
        self.participants[event.id] = list(dict.fromkeys(participants or []))
        return self.get_event(event.id)

    def list_participants(self, event_id) -> List[int]:
        return list(self.participants.get(event_id, []))

    def add_participant(self, event_id, user_id) -> None:
        if user_id not in self.participants[event_id]:
            self.participants[event_id].append(user_id)

    def remove_participant(self, event_id, user_id) -> None:
        self.participants[event_id].remove(user_id)

    def list_expenses(self, event_id=None) -> List[Expense]:
        return [e for e in self.expenses if event_id is None or e.event_id == event_id]

    def create_expense(self, expense: Expense) -> Expense:
        stored = Expense(
            id=next(self._ids),
            event_id=expense.event_id,
            description=expense.description,
            amount=expense.amount,
            paid_by=expense.paid_by,
            date=expense.date,
            split=expense.split,
        )
        self.expenses.append(stored)
        return stored

    def get_expense(self, expense_id) -> Optional[Expense]:
        return next((e for e in self.expenses if e.id == expense_id), None)

    def update_expense(self, expense: Expense) -> Expense:
        self.expenses = [expense if e.id == expense.id else e for e in self.expenses]
        return expense

    def delete_expense(self, expense_id) -> None:
        self.expenses = [e for e in self.expenses if e.id != expense_id]

    def list_payments(self, event_id=None) -> List[Payment]:
        return [p for p in self.payments if event_id is None or p.event_id == event_id]

    def create_payment(self, payment: Payment) -> Payment:
        stored = Payment(
            id=next(self._ids),
            payer_id=payment.payer_id,
            amount=payment.amount,
            date=payment.date,
            description=payment.description,
            event_id=payment.event_id,
            recipient_id=payment.recipient_id,
        )
        self.payments.append(stored)
        return stored

    def get_payment(self, payment_id) -> Optional[Payment]:
        return next((p for p in self.payments if p.id == payment_id), None)

    def update_payment(self, payment: Payment) -> Payment:
        self.payments = [payment if p.id == payment.id else p for p in self.payments]
        return payment

    def delete_payment(self, payment_id) -> None:
        self.payments = [p for p in self.payments if p.id != payment_id]


def make_expense(amount, paid_by, split=None, event_id=1, expense_id=None, description="Court fee"):
    return Expense(
        id=expense_id,
        event_id=event_id,
        description=description,
        amount=amount,
        paid_by=paid_by,
        date=SESSION_DAY,
        split=split or EqualSplit(),
    )


def make_payment(amount, payer_id, event_id=1, recipient_id=None, payment_id=None):
    return Payment(
        id=payment_id,
        payer_id=payer_id,
        amount=amount,
        date=SESSION_DAY,
        event_id=event_id,
        recipient_id=recipient_id,
    )


def badminton_expenses(event_id=1):
    """Four expenses from a real Saturday session."""
    return [
        make_expense(80, ALICE, event_id=event_id, expense_id=1, description="Court booking"),
        make_expense(
            30,
            BOB,
            CustomSplit({ALICE: 33.33, BOB: 33.33, CHARLIE: 33.34, DIANA: 0}),
            event_id=event_id,
            expense_id=2,
            description="Shuttlecocks",
        ),
        make_expense(
            40,
            CHARLIE,
            CustomSplit({ALICE: 25, BOB: 25, CHARLIE: 0, DIANA: 50}),
            event_id=event_id,
            expense_id=3,
            description="Drinks",
        ),
        make_expense(
            25,
            DIANA,
            CustomSplit({ALICE: 0, BOB: 0, CHARLIE: 0, DIANA: 0}),
            event_id=event_id,
            expense_id=4,
            description="Snacks",
        ),
    ]


@pytest.fixture
def store():
    store = MemoryStore()
    for user_id, name in ((ALICE, "Alice"), (BOB, "Bob"), (CHARLIE, "Charlie"), (DIANA, "Diana")):
        store.create_user(name, f"{name.lower()}@example.com", user_id=user_id)
    store.create_event("Saturday badminton", SESSION_DAY, "Sports hall", participants=[ALICE, BOB, CHARLIE, DIANA],
                       event_id=1)
    return store


@pytest.fixture
def service(store):
    return BalanceService(store)


@pytest.fixture
def client(store):
    app = create_app(store=store)
    app.config["TESTING"] = True
    return app.test_client()
