"""
Plain records the balance engine consumes and produces.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Hashable, List, Optional, Tuple, Union

UserId = Hashable
EventId = Hashable

SPLIT_EQUAL = "equal"
SPLIT_CUSTOM = "custom"


@dataclass(frozen=True)
class User:
    id: UserId
    name: str
    email: str
    phone: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        return cls(id=row["id"], name=row["name"], email=row["email"], phone=row.get("phone"))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email, "phone": self.phone}


@dataclass(frozen=True)
class Event:
    id: EventId
    name: str
    date: date
    location: str
    description: str = ""
    # Ordered for display; the engine treats it as a set.
    participants: Tuple[UserId, ...] = ()

    @classmethod
    def from_row(cls, row: Dict[str, Any], participants: List[UserId]) -> "Event":
        return cls(
            id=row["id"],
            name=row["name"],
            date=row["event_date"],
            location=row["location"],
            description=row.get("description") or "",
            participants=tuple(participants),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "date": _iso(self.date),
            "location": self.location,
            "description": self.description,
            "participants": list(self.participants),
        }


@dataclass(frozen=True)
class EqualSplit:
    """Amount divided evenly over the event's current participants."""

    split_type = SPLIT_EQUAL


@dataclass(frozen=True)
class CustomSplit:
    """Per-user percentages (0-100). Users left out of the mapping owe nothing."""

    percentages: Dict[UserId, float] = field(default_factory=dict)

    split_type = SPLIT_CUSTOM


Split = Union[EqualSplit, CustomSplit]


def split_from_payload(split_type: Optional[str], percentages: Optional[Dict[Any, Any]] = None) -> Split:
    if split_type in (None, SPLIT_EQUAL):
        return EqualSplit()
    if split_type == SPLIT_CUSTOM:
        return CustomSplit({_coerce_id(k): float(v) for k, v in (percentages or {}).items()})
    raise ValueError("invalid_split_type")


@dataclass(frozen=True)
class Expense:
    id: Any
    event_id: EventId
    description: str
    amount: float
    paid_by: UserId
    date: date
    split: Split = field(default_factory=EqualSplit)

    @property
    def split_type(self) -> str:
        return self.split.split_type

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Expense":
        percentages = row.get("split_percentage")
        if isinstance(percentages, str):
            percentages = json.loads(percentages)
        return cls(
            id=row["id"],
            event_id=row["event_id"],
            description=row["description"],
            amount=float(row["amount"]),
            paid_by=row["paid_by"],
            date=row["expense_date"],
            split=split_from_payload(row["split_type"], percentages),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "eventId": self.event_id,
            "description": self.description,
            "amount": self.amount,
            "paidBy": self.paid_by,
            "date": _iso(self.date),
            "splitType": self.split_type,
        }
        if isinstance(self.split, CustomSplit):
            data["splitPercentage"] = dict(self.split.percentages)
        return data


@dataclass(frozen=True)
class Payment:
    id: Any
    payer_id: UserId
    amount: float
    date: date
    description: str = ""
    event_id: Optional[EventId] = None
    recipient_id: Optional[UserId] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Payment":
        return cls(
            id=row["id"],
            payer_id=row["payer_id"],
            amount=float(row["amount"]),
            date=row["payment_date"],
            description=row.get("description") or "",
            event_id=row.get("event_id"),
            recipient_id=row.get("recipient_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "payerId": self.payer_id,
            "amount": self.amount,
            "date": _iso(self.date),
            "description": self.description,
            "eventId": self.event_id,
            "recipientId": self.recipient_id,
        }


@dataclass
class BalanceRecord:
    paid: float = 0.0
    owes: float = 0.0

    @property
    def net(self) -> float:
        return self.paid - self.owes

    def to_dict(self) -> Dict[str, float]:
        return {"paid": self.paid, "owes": self.owes, "net": self.net}


@dataclass(frozen=True)
class SettlementSuggestion:
    from_user_id: UserId
    to_user_id: UserId
    amount: float


@dataclass(frozen=True)
class Scope:
    """Either one event (``event_id`` set) or every event."""

    event_id: Optional[EventId] = None

    @property
    def is_global(self) -> bool:
        return self.event_id is None

    @classmethod
    def event(cls, event_id: EventId) -> "Scope":
        return cls(event_id=event_id)

    @classmethod
    def all_events(cls) -> "Scope":
        return cls()

    def includes(self, event_id: Optional[EventId]) -> bool:
        return self.is_global or event_id == self.event_id


def _coerce_id(value: Any) -> Any:
    # JSON object keys arrive as strings; ids are integers in the database.
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value
