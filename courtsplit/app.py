from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .config import config
from .errors import LedgerError
from .models import SPLIT_CUSTOM, SPLIT_EQUAL, CustomSplit, Event, Expense, Payment, Scope, split_from_payload
from .service import BalanceService
from .splits import equal_split_percentages
from .store import LedgerStore


def create_app(store=None) -> Flask:
    app = Flask(__name__)
    app.logger.setLevel(config.LOG_LEVEL)
    logging.getLogger("courtsplit").setLevel(config.LOG_LEVEL)

    CORS(app, resources={r"/api/*": {"origins": config.CORS_ORIGINS}})

    app.extensions["ledger_store"] = store if store is not None else LedgerStore()
    app.extensions["balance_service"] = BalanceService(
        app.extensions["ledger_store"],
        settled_epsilon=config.SETTLED_EPSILON,
        split_tolerance=config.SPLIT_PERCENT_TOLERANCE,
    )

    register_error_handlers(app)
    register_routes(app)
    return app


def _store():
    return current_app.extensions["ledger_store"]


def _service() -> BalanceService:
    return current_app.extensions["balance_service"]


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        app.logger.info("%s %s failed: %s", request.method, request.path, exc)
        return jsonify(exc.to_dict()), exc.status

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.name.lower().replace(" ", "_")}), exc.code


def register_routes(app: Flask) -> None:
    @app.get("/api")
    def health_check():
        return jsonify({"status": "healthy"})

    # ---------- Users ----------
    @app.get("/api/users")
    def list_users():
        return jsonify([user.to_dict() for user in _store().list_users()])

    @app.post("/api/users")
    def create_user():
        payload = request.get_json(force=True) or {}
        name = (payload.get("name") or "").strip()
        email = (payload.get("email") or "").strip().lower()
        phone = (payload.get("phone") or "").strip() or None

        if not name or not email:
            return jsonify({"error": "missing_fields"}), 400

        if _store().find_user_by_email(email):
            return jsonify({"error": "email_in_use"}), 409

        user = _store().create_user(name, email, phone)
        return jsonify(user.to_dict()), 201

    @app.get("/api/users/<int:user_id>/balance")
    def get_user_balance(user_id: int):
        return jsonify(_service().get_user_balance(user_id))

    # ---------- Events ----------
    @app.get("/api/events")
    def list_events():
        return jsonify([event.to_dict() for event in _store().list_events()])

    @app.post("/api/events")
    def create_event():
        payload = request.get_json(force=True) or {}
        name = (payload.get("name") or "").strip()
        location = (payload.get("location") or "").strip()
        description = (payload.get("description") or "").strip()
        participants = payload.get("participants") or []

        if not name or not location:
            return jsonify({"error": "missing_fields"}), 400

        try:
            event_date = _parse_date(payload.get("date"))
            participant_ids = [int(user_id) for user_id in participants]
        except (TypeError, ValueError):
            return jsonify({"error": "invalid_fields"}), 400

        if not _users_exist(participant_ids):
            return jsonify({"error": "unknown_participant"}), 400

        event = _store().create_event(name, event_date, location, description, participant_ids)
        return jsonify(event.to_dict()), 201

    @app.get("/api/events/<int:event_id>")
    def get_event(event_id: int):
        event = _service().get_event(event_id)
        return jsonify(event.to_dict())

    @app.post("/api/events/<int:event_id>/participants")
    def add_participant(event_id: int):
        _service().get_event(event_id)
        payload = request.get_json(force=True) or {}
        try:
            user_id = int(payload.get("userId"))
        except (TypeError, ValueError):
            return jsonify({"error": "missing_fields"}), 400

        if not _users_exist([user_id]):
            return jsonify({"error": "user_not_found"}), 404

        _store().add_participant(event_id, user_id)
        return jsonify(_service().get_event(event_id).to_dict()), 201

    @app.delete("/api/events/<int:event_id>/participants/<int:user_id>")
    def remove_participant(event_id: int, user_id: int):
        event = _service().get_event(event_id)
        if user_id not in event.participants:
            return jsonify({"error": "participant_not_found"}), 404

        _store().remove_participant(event_id, user_id)
        return jsonify({"status": "removed"})

    # ---------- Expenses ----------
    @app.get("/api/events/<int:event_id>/expenses")
    def list_expenses(event_id: int):
        _service().get_event(event_id)
        return jsonify([expense.to_dict() for expense in _store().list_expenses(event_id)])

    @app.post("/api/events/<int:event_id>/expenses")
    def add_expense(event_id: int):
        event = _service().get_event(event_id)
        payload = request.get_json(force=True) or {}

        try:
            expense = _expense_from_payload(payload, event)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        shares = _service().check_expense_split(expense, list(event.participants))
        created = _store().create_expense(expense)
        return jsonify(_expense_body(created, shares)), 201

    @app.put("/api/expenses/<int:expense_id>")
    def update_expense(expense_id: int):
        existing = _store().get_expense(expense_id)
        if existing is None:
            return jsonify({"error": "expense_not_found"}), 404

        event = _service().get_event(existing.event_id)
        payload = request.get_json(force=True) or {}

        merged = existing.to_dict()
        if isinstance(existing.split, CustomSplit):
            # Users who left the event since the expense was recorded are dropped.
            merged["splitPercentage"] = {
                user_id: pct for user_id, pct in existing.split.percentages.items() if user_id in event.participants
            }
        merged.update(payload)

        try:
            expense = _expense_from_payload(merged, event, expense_id=existing.id, previous_payer=existing.paid_by)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        shares = _service().check_expense_split(expense, list(event.participants))
        updated = _store().update_expense(expense)
        return jsonify(_expense_body(updated, shares))

    @app.delete("/api/expenses/<int:expense_id>")
    def delete_expense(expense_id: int):
        if _store().get_expense(expense_id) is None:
            return jsonify({"error": "expense_not_found"}), 404

        _store().delete_expense(expense_id)
        return jsonify({"status": "deleted"})

    # ---------- Payments ----------
    @app.get("/api/payments")
    def list_payments():
        event_id = request.args.get("eventId", type=int)
        return jsonify([payment.to_dict() for payment in _store().list_payments(event_id)])

    @app.post("/api/payments")
    def record_payment():
        payload = request.get_json(force=True) or {}
        try:
            payment = _payment_from_payload(payload)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        if not _users_exist([u for u in (payment.payer_id, payment.recipient_id) if u is not None]):
            return jsonify({"error": "user_not_found"}), 404
        if payment.event_id is not None:
            _service().get_event(payment.event_id)

        return jsonify(_store().create_payment(payment).to_dict()), 201

    @app.put("/api/payments/<int:payment_id>")
    def update_payment(payment_id: int):
        existing = _store().get_payment(payment_id)
        if existing is None:
            return jsonify({"error": "payment_not_found"}), 404

        merged = existing.to_dict()
        merged.update(request.get_json(force=True) or {})
        try:
            payment = _payment_from_payload(merged, payment_id=existing.id)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        if not _users_exist([u for u in (payment.payer_id, payment.recipient_id) if u is not None]):
            return jsonify({"error": "user_not_found"}), 404
        if payment.event_id is not None:
            _service().get_event(payment.event_id)

        return jsonify(_store().update_payment(payment).to_dict())

    @app.delete("/api/payments/<int:payment_id>")
    def delete_payment(payment_id: int):
        if _store().get_payment(payment_id) is None:
            return jsonify({"error": "payment_not_found"}), 404

        _store().delete_payment(payment_id)
        return jsonify({"status": "deleted"})

    # ---------- Balances ----------
    @app.get("/api/events/<int:event_id>/balance")
    def get_event_participant_balances(event_id: int):
        return jsonify(_service().get_event_participant_balances(event_id))

    @app.get("/api/events/<int:event_id>/balances")
    def get_event_balance(event_id: int):
        return jsonify(_stringify_keys(_service().get_event_balance(event_id)))

    @app.get("/api/events/<int:event_id>/settlements")
    def get_event_settlements(event_id: int):
        return jsonify(_service().get_settlement_plan(Scope.event(event_id)))

    @app.get("/api/events/<int:event_id>/statistics")
    def get_event_statistics(event_id: int):
        return jsonify(_service().get_event_statistics(event_id))

    @app.get("/api/balances")
    def get_global_balance():
        return jsonify(_stringify_keys(_service().get_global_balance()))

    @app.get("/api/settlements")
    def get_global_settlements():
        return jsonify(_service().get_settlement_plan(Scope.all_events()))


def _users_exist(user_ids: List[int]) -> bool:
    known = {user.id for user in _store().list_users()}
    return all(user_id in known for user_id in user_ids)


def _expense_from_payload(
    payload: Dict[str, Any],
    event: Event,
    expense_id: Any = None,
    previous_payer: Optional[int] = None,
) -> Expense:
    description = (payload.get("description") or "").strip()
    amount = payload.get("amount")
    paid_by = payload.get("paidBy")
    split_type = payload.get("splitType") or SPLIT_EQUAL

    if not description or amount is None or paid_by is None:
        raise ValueError("missing_fields")

    amount_value = _positive_amount(amount)
    if amount_value is None:
        raise ValueError("invalid_amount")

    try:
        paid_by = int(paid_by)
        expense_date = _parse_date(payload.get("date"))
    except (TypeError, ValueError):
        raise ValueError("invalid_fields") from None

    # A payer who has since left the event may stay on an edited expense.
    if paid_by not in event.participants and paid_by != previous_payer:
        raise ValueError("payer_not_in_event")

    if split_type not in (SPLIT_EQUAL, SPLIT_CUSTOM):
        raise ValueError("invalid_split_type")

    percentages = payload.get("splitPercentage")
    if percentages is not None and not isinstance(percentages, dict):
        raise ValueError("invalid_split_percentage")
    if split_type == SPLIT_CUSTOM and not percentages:
        percentages = equal_split_percentages(event.participants)

    try:
        split = split_from_payload(split_type, percentages)
    except (TypeError, ValueError):
        raise ValueError("invalid_split_percentage") from None

    if isinstance(split, CustomSplit):
        if not all(0 <= pct <= 100 for pct in split.percentages.values()):
            raise ValueError("invalid_split_percentage")
        if any(user_id not in event.participants for user_id in split.percentages):
            raise ValueError("split_user_not_in_event")

    return Expense(
        id=expense_id,
        event_id=event.id,
        description=description,
        amount=amount_value,
        paid_by=paid_by,
        date=expense_date,
        split=split,
    )


def _expense_body(expense: Expense, shares: Dict[Any, float]) -> Dict[str, Any]:
    body = expense.to_dict()
    if "splitPercentage" in body:
        body["splitPercentage"] = {str(k): v for k, v in body["splitPercentage"].items()}
    body["shares"] = {str(user_id): share for user_id, share in shares.items()}
    return body


def _payment_from_payload(payload: Dict[str, Any], payment_id: Any = None) -> Payment:
    payer_id = payload.get("payerId")
    amount = payload.get("amount")

    if payer_id is None or amount is None:
        raise ValueError("missing_fields")

    amount_value = _positive_amount(amount)
    if amount_value is None:
        raise ValueError("invalid_amount")

    try:
        payer_id = int(payer_id)
        event_id = _optional_int(payload.get("eventId"))
        recipient_id = _optional_int(payload.get("recipientId"))
        payment_date = _parse_date(payload.get("date"))
    except (TypeError, ValueError):
        raise ValueError("invalid_fields") from None

    if recipient_id is not None and recipient_id == payer_id:
        raise ValueError("recipient_is_payer")

    return Payment(
        id=payment_id,
        payer_id=payer_id,
        amount=amount_value,
        date=payment_date,
        description=(payload.get("description") or "").strip(),
        event_id=event_id,
        recipient_id=recipient_id,
    )


def _positive_amount(value: Any) -> Optional[float]:
    """Amount quantized to cents, or None unless it is still positive."""
    if not isinstance(value, (int, float, str)) or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return float(amount)


def _optional_int(value: Any) -> Optional[int]:
    return None if value in (None, "") else int(value)


def _parse_date(value: Any) -> date:
    if not value:
        return date.today()
    return date.fromisoformat(str(value)[:10])


def _stringify_keys(payload: Dict[str, Any]) -> Dict[str, Any]:
    # JSON object keys must be strings; user ids are ints.
    balances = payload.get("userBalances")
    if balances is not None:
        payload = dict(payload, userBalances={str(k): v for k, v in balances.items()})
    return payload


app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
