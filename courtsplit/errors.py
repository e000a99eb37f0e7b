from typing import Any, Dict


class LedgerError(Exception):
    code = "ledger_error"
    status = 400

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code}
        payload.update(self.details())
        return payload


class InvalidSplit(LedgerError):
    code = "invalid_split"


class SplitPercentageInvalid(LedgerError):
    code = "split_percentage_invalid"

    def __init__(self, total: float) -> None:
        super().__init__(f"Split percentages sum to {total:.2f}, expected 0-100")
        self.total = total

    def details(self) -> Dict[str, Any]:
        return {"total": round(self.total, 4)}


class ImbalancedLedger(LedgerError):
    code = "imbalanced_ledger"
    status = 409

    def __init__(self, total: float) -> None:
        super().__init__(f"Net balances sum to {total:.4f}, expected 0")
        self.total = total

    def details(self) -> Dict[str, Any]:
        return {"total": round(self.total, 4)}


class NotFound(LedgerError):
    status = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"{self.entity}_not_found"
