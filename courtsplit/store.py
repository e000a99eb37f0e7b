"""
MySQL-backed storage collaborator for the balance engine.
"""
from __future__ import annotations

import json
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from .db import Database, db as default_db
from .models import CustomSplit, Event, Expense, Payment, User


class LedgerStore:
    def __init__(self, database: Optional[Database] = None) -> None:
        self.db = database or default_db

    # ---------- Users ----------
    def list_users(self) -> List[User]:
        rows = self.db.fetch_all("SELECT id, name, email, phone FROM users ORDER BY id")
        return [User.from_row(row) for row in rows]

    def get_user(self, user_id: int) -> Optional[User]:
        row = self.db.fetch_one("SELECT id, name, email, phone FROM users WHERE id=%s", (user_id,))
        return User.from_row(row) if row else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        row = self.db.fetch_one("SELECT id, name, email, phone FROM users WHERE email=%s", (email,))
        return User.from_row(row) if row else None

    def create_user(self, name: str, email: str, phone: Optional[str] = None) -> User:
        user_id = self.db.execute(
            "INSERT INTO users (name, email, phone) VALUES (%s, %s, %s)",
            (name, email, phone),
        )
        return User(id=user_id, name=name, email=email, phone=phone)

    # ---------- Events ----------
    def list_events(self) -> List[Event]:
        rows = self.db.fetch_all(
            "SELECT id, name, event_date, location, description FROM events ORDER BY event_date DESC, id"
        )
        participants = self._participants_by_event()
        return [Event.from_row(row, participants.get(row["id"], [])) for row in rows]

    def get_event(self, event_id: int) -> Optional[Event]:
        row = self.db.fetch_one(
            "SELECT id, name, event_date, location, description FROM events WHERE id=%s",
            (event_id,),
        )
        if not row:
            return None
        return Event.from_row(row, self.list_participants(event_id))

    def create_event(self, name: str, event_date: Any, location: str, description: str = "",
                     participants: Optional[List[int]] = None) -> Event:
        event_id = self.db.execute(
            "INSERT INTO events (name, event_date, location, description) VALUES (%s, %s, %s, %s)",
            (name, event_date, location, description),
        )
        self.db.execute_many(
            "INSERT IGNORE INTO event_participants (event_id, user_id) VALUES (%s, %s)",
            [(event_id, user_id) for user_id in dict.fromkeys(participants or [])],
        )
        return Event(
            id=event_id,
            name=name,
            date=event_date,
            location=location,
            description=description,
            participants=tuple(dict.fromkeys(participants or [])),
        )

    def list_participants(self, event_id: int) -> List[int]:
        rows = self.db.fetch_all(
            "SELECT user_id FROM event_participants WHERE event_id=%s ORDER BY id",
            (event_id,),
        )
        return [row["user_id"] for row in rows]

    def add_participant(self, event_id: int, user_id: int) -> None:
        self.db.execute(
            "INSERT IGNORE INTO event_participants (event_id, user_id) VALUES (%s, %s)",
            (event_id, user_id),
        )

    def remove_participant(self, event_id: int, user_id: int) -> None:
        self.db.execute(
            "DELETE FROM event_participants WHERE event_id=%s AND user_id=%s",
            (event_id, user_id),
        )

    def _participants_by_event(self) -> Dict[int, List[int]]:
        rows = self.db.fetch_all("SELECT event_id, user_id FROM event_participants ORDER BY id")
        participants: Dict[int, List[int]] = {}
        for row in rows:
            participants.setdefault(row["event_id"], []).append(row["user_id"])
        return participants

    # ---------- Expenses ----------
    EXPENSE_COLUMNS = (
        "SELECT id, event_id, description, amount, paid_by, expense_date, split_type, split_percentage "
        "FROM expenses"
    )

    def list_expenses(self, event_id: Optional[int] = None) -> List[Expense]:
        if event_id is None:
            rows = self.db.fetch_all(self.EXPENSE_COLUMNS + " ORDER BY expense_date, id")
        else:
            rows = self.db.fetch_all(
                self.EXPENSE_COLUMNS + " WHERE event_id=%s ORDER BY expense_date, id", (event_id,)
            )
        return [Expense.from_row(row) for row in rows]

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        row = self.db.fetch_one(self.EXPENSE_COLUMNS + " WHERE id=%s", (expense_id,))
        return Expense.from_row(row) if row else None

    def create_expense(self, expense: Expense) -> Expense:
        expense_id = self.db.execute(
            """
            INSERT INTO expenses
                (event_id, description, amount, paid_by, expense_date, split_type, split_percentage)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            _expense_params(expense),
        )
        return replace(expense, id=expense_id)

    def update_expense(self, expense: Expense) -> Expense:
        self.db.execute(
            """
            UPDATE expenses
            SET event_id=%s, description=%s, amount=%s, paid_by=%s, expense_date=%s,
                split_type=%s, split_percentage=%s
            WHERE id=%s
            """,
            _expense_params(expense) + (expense.id,),
        )
        return expense

    def delete_expense(self, expense_id: int) -> None:
        self.db.execute("DELETE FROM expenses WHERE id=%s", (expense_id,))

    # ---------- Payments ----------
    PAYMENT_COLUMNS = (
        "SELECT id, payer_id, recipient_id, event_id, amount, description, payment_date "
        "FROM payments"
    )

    def list_payments(self, event_id: Optional[int] = None) -> List[Payment]:
        if event_id is None:
            rows = self.db.fetch_all(self.PAYMENT_COLUMNS + " ORDER BY payment_date, id")
        else:
            rows = self.db.fetch_all(
                self.PAYMENT_COLUMNS + " WHERE event_id=%s ORDER BY payment_date, id", (event_id,)
            )
        return [Payment.from_row(row) for row in rows]

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        row = self.db.fetch_one(self.PAYMENT_COLUMNS + " WHERE id=%s", (payment_id,))
        return Payment.from_row(row) if row else None

    def create_payment(self, payment: Payment) -> Payment:
        payment_id = self.db.execute(
            """
            INSERT INTO payments (payer_id, recipient_id, event_id, amount, description, payment_date)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            _payment_params(payment),
        )
        return replace(payment, id=payment_id)

    def update_payment(self, payment: Payment) -> Payment:
        self.db.execute(
            """
            UPDATE payments
            SET payer_id=%s, recipient_id=%s, event_id=%s, amount=%s, description=%s, payment_date=%s
            WHERE id=%s
            """,
            _payment_params(payment) + (payment.id,),
        )
        return payment

    def delete_payment(self, payment_id: int) -> None:
        self.db.execute("DELETE FROM payments WHERE id=%s", (payment_id,))


def _expense_params(expense: Expense) -> Tuple[Any, ...]:
    percentages = None
    if isinstance(expense.split, CustomSplit):
        percentages = json.dumps({str(k): v for k, v in expense.split.percentages.items()})
    return (
        expense.event_id,
        expense.description,
        str(expense.amount),
        expense.paid_by,
        expense.date,
        expense.split_type,
        percentages,
    )


def _payment_params(payment: Payment) -> Tuple[Any, ...]:
    return (
        payment.payer_id,
        payment.recipient_id,
        payment.event_id,
        str(payment.amount),
        payment.description,
        payment.date,
    )
