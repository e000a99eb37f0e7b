import json
from datetime import date
from decimal import Decimal

import pytest

from courtsplit.errors import InvalidSplit
from courtsplit.models import CustomSplit
from courtsplit.service import BalanceService
from courtsplit.store import LedgerStore

from conftest import ALICE, BOB, CHARLIE, DIANA, make_expense

DAY = date(2024, 3, 2)


class RowDatabase:
    """Answers LedgerStore's queries from in-memory rows."""

    def __init__(self, **tables):
        self.tables = tables
        self.executed = []

    def _rows(self, query, params):
        table = query.split("FROM ")[1].split()[0]
        rows = [dict(row) for row in self.tables.get(table, [])]
        if params and "WHERE event_id=%s" in query:
            rows = [row for row in rows if row["event_id"] == params[0]]
        elif params and "WHERE id=%s" in query:
            rows = [row for row in rows if row["id"] == params[0]]
        return rows

    def fetch_all(self, query, params=None):
        return self._rows(query, params)

    def fetch_one(self, query, params=None):
        rows = self._rows(query, params)
        return rows[0] if rows else None

    def execute(self, query, params=None):
        self.executed.append((" ".join(query.split()), params))
        return 7

    def execute_many(self, query, rows):
        for params in rows:
            self.execute(query, params)


def users():
    return [
        {"id": user_id, "name": name, "email": f"{name.lower()}@example.com", "phone": None}
        for user_id, name in ((ALICE, "Alice"), (BOB, "Bob"), (CHARLIE, "Charlie"), (DIANA, "Diana"))
    ]


def event(event_id, name):
    return {"id": event_id, "name": name, "event_date": DAY, "location": "Sports hall", "description": None}


def expense_row(expense_id, event_id, amount, paid_by, split_type="equal", percentages=None):
    return {
        "id": expense_id,
        "event_id": event_id,
        "description": "Court fee",
        "amount": Decimal(amount),
        "paid_by": paid_by,
        "expense_date": DAY,
        "split_type": split_type,
        "split_percentage": json.dumps(percentages) if percentages is not None else None,
    }


def make_service(**tables):
    return BalanceService(LedgerStore(RowDatabase(**tables)))


def test_global_scope_keeps_events_without_participants_to_themselves():
    service = make_service(
        users=users(),
        events=[event(1, "Saturday"), event(2, "Sunday")],
        event_participants=[
            {"id": 1, "event_id": 1, "user_id": ALICE},
            {"id": 2, "event_id": 1, "user_id": BOB},
        ],
        expenses=[
            expense_row(1, 1, "20.00", ALICE),
            expense_row(2, 2, "40.00", ALICE, "custom", {str(CHARLIE): 50, str(DIANA): 50}),
        ],
        payments=[],
    )

    balances = service.get_global_balance()["userBalances"]

    assert balances[ALICE] == {"paid": 60.0, "owes": 10.0, "net": 50.0}
    assert balances[BOB]["net"] == -10.0
    assert balances[CHARLIE] == {"paid": 0.0, "owes": 0.0, "net": 0.0}
    assert balances[DIANA] == {"paid": 0.0, "owes": 0.0, "net": 0.0}


def test_global_scope_does_not_spread_equal_split_over_every_user():
    service = make_service(
        users=users(),
        events=[event(2, "Sunday")],
        event_participants=[],
        expenses=[expense_row(1, 2, "40.00", ALICE)],
        payments=[],
    )

    with pytest.raises(InvalidSplit):
        service.get_global_balance()


def test_event_rows_carry_participants_in_order():
    store = LedgerStore(
        RowDatabase(
            events=[event(1, "Saturday")],
            event_participants=[
                {"id": 1, "event_id": 1, "user_id": CHARLIE},
                {"id": 2, "event_id": 1, "user_id": ALICE},
            ],
        )
    )

    assert store.get_event(1).participants == (CHARLIE, ALICE)
    assert store.get_event(9) is None


def test_expense_rows_decode_custom_split():
    store = LedgerStore(
        RowDatabase(expenses=[expense_row(5, 1, "30.00", BOB, "custom", {str(ALICE): 60, str(BOB): 40})])
    )

    expense = store.get_expense(5)

    assert expense.amount == 30.0
    assert expense.split == CustomSplit({ALICE: 60.0, BOB: 40.0})
    assert store.get_expense(6) is None


def test_create_and_update_expense_write_split_as_json():
    database = RowDatabase()
    store = LedgerStore(database)

    created = store.create_expense(make_expense(12.35, ALICE, CustomSplit({ALICE: 50, BOB: 50})))
    store.update_expense(created)
    store.delete_expense(created.id)

    assert created.id == 7
    insert_params = database.executed[0][1]
    assert insert_params[2] == "12.35"
    assert json.loads(insert_params[6]) == {"1": 50, "2": 50}
    update_query, update_params = database.executed[1]
    assert update_query.startswith("UPDATE expenses")
    assert update_params[-1] == 7
    assert database.executed[2] == ("DELETE FROM expenses WHERE id=%s", (7,))
