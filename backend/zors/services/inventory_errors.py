# Overview: Error taxonomy for the inventory coordinator and transition policy.

from __future__ import annotations

from ..validation import ValidationError


class InventoryError(Exception):
    """
    Base class for per-intent inventory failures.

    Carries a stable machine-readable `reason` so batch callers can report
    {product_id, reason, error} per line without string matching.
    """
    reason = "inventory_error"

    def __init__(self, message: str, *, product_id: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.product_id = product_id
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {
            "product_id": self.product_id,
            "reason": self.reason,
            "error": str(self),
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ProductNotFoundError(InventoryError):
    reason = "not_found"


class InsufficientStockError(InventoryError):
    reason = "insufficient_stock"


class InvalidTransactionTypeError(InventoryError):
    reason = "invalid_transaction_type"


class StockConflictError(InventoryError):
    """Compare-and-swap kept losing to concurrent writers."""
    reason = "stock_conflict"


class IntentValidationError(InventoryError, ValidationError):
    """Malformed intent (missing product_id / quantity / type, bad quantity)."""
    reason = "validation_error"


class StockWriteFailed(InventoryError):
    """The stock write itself failed (database error); nothing was recorded."""
    reason = "stock_write_failed"


class LedgerWriteFailed(InventoryError):
    """
    Ledger append failed after the stock write committed.

    Never raised to callers: the coordinator logs it and records it on the
    outcome, because stock correctness takes priority over audit completeness.
    """
    reason = "ledger_write_failed"


HTTP_STATUS_BY_REASON = {
    ProductNotFoundError.reason: 404,
    InsufficientStockError.reason: 409,
    InvalidTransactionTypeError.reason: 400,
    IntentValidationError.reason: 400,
    StockConflictError.reason: 409,
    StockWriteFailed.reason: 500,
}


def http_status_for(error: InventoryError) -> int:
    return HTTP_STATUS_BY_REASON.get(error.reason, 500)
