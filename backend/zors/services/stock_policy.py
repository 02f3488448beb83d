# Overview: Pure stock transition rules shared by every inventory-affecting operation.

"""
ZORS Stock Transition Policy (authoritative)

Rule table (quantity is always a non-negative magnitude):

    sale, supplier_return          new = previous - quantity   (decrease)
    purchase, customer_return      new = previous + quantity   (increase)
    adjustment                     new = quantity              (absolute target)
    delete                         new = 0                     (product removal)

- A decrease that would make new < 0 is rejected (InsufficientStockError).
- adjustment and delete are authoritative resets and skip the sufficiency check.
- Unknown types are rejected (InvalidTransactionTypeError).
- The ledger quantity is the magnitude actually moved: |new - previous|
  for adjustment, previous for delete, quantity otherwise.

No I/O here: order creation, returns, direct transitions and product
create/update/delete all call resolve_transition() with the same inputs and
get the same answer.
"""

from __future__ import annotations

from dataclasses import dataclass

from .inventory_errors import (
    InsufficientStockError,
    IntentValidationError,
    InvalidTransactionTypeError,
)


DECREASE_TYPES = frozenset({"sale", "supplier_return"})
INCREASE_TYPES = frozenset({"purchase", "customer_return"})
SET_TYPES = frozenset({"adjustment"})
ZERO_TYPES = frozenset({"delete"})

VALID_TRANSACTION_TYPES = DECREASE_TYPES | INCREASE_TYPES | SET_TYPES | ZERO_TYPES


@dataclass(frozen=True)
class TransitionResult:
    transaction_type: str
    previous_stock: int
    new_stock: int
    quantity: int  # magnitude recorded on the ledger row


def _require_int(value, *, field: str, product_id: int | None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise IntentValidationError(f"{field} must be an integer", product_id=product_id)
    return value


def validate_quantity(transaction_type: str, quantity, *, product_id: int | None = None) -> int:
    """Check quantity shape for the type; returns it as int. delete ignores quantity."""
    if transaction_type in ZERO_TYPES:
        return 0 if quantity is None else _require_int(quantity, field="quantity", product_id=product_id)

    if quantity is None:
        raise IntentValidationError("quantity is required", product_id=product_id)
    qty = _require_int(quantity, field="quantity", product_id=product_id)

    if transaction_type in SET_TYPES:
        if qty < 0:
            raise IntentValidationError("adjustment target must be >= 0", product_id=product_id)
    elif qty <= 0:
        raise IntentValidationError("quantity must be a positive integer", product_id=product_id)
    return qty


def compute_new_stock(transaction_type: str, quantity: int, previous_stock: int) -> int:
    """Apply the rule table without validation. Raises only for unknown types."""
    if transaction_type in DECREASE_TYPES:
        return previous_stock - quantity
    if transaction_type in INCREASE_TYPES:
        return previous_stock + quantity
    if transaction_type in SET_TYPES:
        return quantity
    if transaction_type in ZERO_TYPES:
        return 0
    raise InvalidTransactionTypeError(f"Invalid transaction type: {transaction_type!r}")


def resolve_transition(
    transaction_type: str,
    quantity,
    previous_stock: int,
    *,
    product_id: int | None = None,
    product_name: str | None = None,
) -> TransitionResult:
    """
    Compute and validate one transition.

    Raises:
        InvalidTransactionTypeError: type outside the enumerated set
        IntentValidationError: quantity missing / non-integer / out of range
        InsufficientStockError: a decrease would drive stock negative
    """
    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise InvalidTransactionTypeError(
            f"Invalid transaction type: {transaction_type!r}",
            product_id=product_id,
        )

    qty = validate_quantity(transaction_type, quantity, product_id=product_id)
    new_stock = compute_new_stock(transaction_type, qty, previous_stock)

    if new_stock < 0:
        label = product_name or f"product {product_id}"
        raise InsufficientStockError(
            f"Insufficient stock for {label}. Available: {previous_stock}, Required: {qty}",
            product_id=product_id,
            details={"available": previous_stock, "requested": qty},
        )

    if transaction_type in SET_TYPES:
        moved = abs(new_stock - previous_stock)
    elif transaction_type in ZERO_TYPES:
        moved = previous_stock
    else:
        moved = qty

    return TransitionResult(
        transaction_type=transaction_type,
        previous_stock=previous_stock,
        new_stock=new_stock,
        quantity=moved,
    )


def is_consistent(transaction_type: str, quantity: int, previous_stock: int, new_stock: int) -> bool:
    """
    Whether a recorded ledger row agrees with the rule table.

    Used by the `ledger verify` CLI command to audit existing rows.
    """
    if transaction_type not in VALID_TRANSACTION_TYPES or quantity < 0 or new_stock < 0:
        return False
    if transaction_type in SET_TYPES:
        return quantity == abs(new_stock - previous_stock)
    if transaction_type in ZERO_TYPES:
        return new_stock == 0 and quantity == previous_stock
    return compute_new_stock(transaction_type, quantity, previous_stock) == new_stock
