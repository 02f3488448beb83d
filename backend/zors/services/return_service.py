"""
Return Processing Service

LIFECYCLE:
1. Create return (pending): the document exists before stock is touched
2. Apply the stock intent
   - customer return -> customer_return (stock goes up)
   - supplier return -> supplier_return (stock goes down, may be refused)
3. completed (with previous/new stock) or rejected (with the reason)

Valuation: customer returns at selling price, supplier returns at cost price.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, Return, RETURN_TYPES, User
from ..validation import MAX_STOCK_QUANTITY, ValidationError, coerce_int
from .inventory_errors import InventoryError, ProductNotFoundError
from .inventory_service import ProductSnapshot, StockIntent, apply_intent


# =============================================================================
# RETURN STATUS CONSTANTS
# =============================================================================

RETURN_STATUS_PENDING = "pending"
RETURN_STATUS_COMPLETED = "completed"
RETURN_STATUS_REJECTED = "rejected"

_PARTY_BY_TYPE = {
    "customer": {"name": "Customer Return", "type": "customer", "id": "customer_return"},
    "supplier": {"name": "Supplier Return", "type": "supplier", "id": "supplier_return"},
}


def _validate_return_payload(payload) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(
        k for k in ("product_id", "return_type", "quantity", "reason")
        if payload.get(k) in (None, "")
    )
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return_type = str(payload["return_type"]).strip()
    if return_type not in RETURN_TYPES:
        raise ValidationError(f"return_type must be one of: {', '.join(RETURN_TYPES)}")

    quantity = coerce_int("quantity", payload["quantity"])
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    if quantity > MAX_STOCK_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_STOCK_QUANTITY}")

    reason = str(payload["reason"]).strip()
    if len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")

    notes = payload.get("notes")
    return {
        "product_id": coerce_int("product_id", payload["product_id"]),
        "return_type": return_type,
        "quantity": quantity,
        "reason": reason,
        "notes": str(notes).strip() if notes not in (None, "") else None,
    }


# =============================================================================
# RETURN CREATION
# =============================================================================

def create_return(payload: dict, cashier: User | None = None) -> tuple[Return, InventoryError | None]:
    """
    Create a return document and apply it to stock.

    Returns (return, error). error is None when the return completed; otherwise
    the return was saved as rejected and error says why.

    Raises:
        ValidationError: malformed body
        ProductNotFoundError: product_id does not exist (no document is created)
    """
    data = _validate_return_payload(payload)

    product = db.session.get(Product, data["product_id"])
    if product is None:
        raise ProductNotFoundError(
            f"Product with ID {data['product_id']} not found",
            product_id=data["product_id"],
        )

    snapshot = ProductSnapshot.of(product)
    if data["return_type"] == "customer":
        unit_price = snapshot.selling_price_cents
    else:
        unit_price = snapshot.cost_price_cents

    ret = Return(
        product_id=snapshot.id,
        product_name=snapshot.name,
        return_type=data["return_type"],
        quantity=data["quantity"],
        reason=data["reason"],
        notes=data["notes"],
        unit_price_cents=unit_price,
        total_value_cents=unit_price * data["quantity"],
        status=RETURN_STATUS_PENDING,
        cashier_id=cashier.id if cashier else None,
        cashier_name=cashier.username if cashier else None,
    )
    db.session.add(ret)
    db.session.commit()
    return_id = ret.id

    intent = StockIntent(
        product_id=snapshot.id,
        transaction_type=f"{data['return_type']}_return",
        quantity=data["quantity"],
        unit_price_cents=unit_price,
        reference=str(return_id),
        party=_PARTY_BY_TYPE[data["return_type"]],
        user_id=cashier.id if cashier else None,
        user_name=cashier.username if cashier else None,
        notes=data["reason"] + (f" - {data['notes']}" if data["notes"] else ""),
    )

    try:
        outcome = apply_intent(intent, snapshot=snapshot)
    except InventoryError as e:
        ret = db.session.get(Return, return_id, populate_existing=True)
        ret.status = RETURN_STATUS_REJECTED
        ret.rejection_reason = str(e)[:255]
        db.session.commit()
        return ret, e

    ret = db.session.get(Return, return_id, populate_existing=True)
    ret.status = RETURN_STATUS_COMPLETED
    ret.previous_stock = outcome.previous_stock
    ret.new_stock = outcome.new_stock
    ret.stock_transition_id = outcome.transition.id if outcome.transition else None
    db.session.commit()
    return ret, None


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int) -> Return | None:
    return db.session.get(Return, return_id)


def list_returns(*, return_type: str | None = None, status: str | None = None) -> list[dict]:
    q = db.session.query(Return)
    if return_type and return_type != "all":
        q = q.filter(Return.return_type == return_type)
    if status and status != "all":
        q = q.filter(Return.status == status)
    rows = q.order_by(Return.created_at.desc(), Return.id.desc()).all()
    return [r.to_dict() for r in rows]
