"""
Order Service - checkout documents and their stock side

The order row (with its priced lines) is committed first; the cart is then
applied as one batch of `sale` intents. Lines are independent: a line that
fails (unknown product, insufficient stock) is marked on the order and does
not undo the lines that succeeded.
"""

from __future__ import annotations

import json

from ..extensions import db
from ..models import Customer, Order, OrderLine, ORDER_TYPES, User
from ..validation import MAX_PRICE_CENTS, MAX_STOCK_QUANTITY, ValidationError, coerce_int
from .inventory_service import BatchResult, StockIntent, apply_batch, snapshot_products

STOCK_UPDATE_REFERENCE = "STOCK_UPDATE"

_STOCK_STATUS_BY_BATCH = {"ok": "applied", "partial": "partial", "failed": "failed"}


def _parse_cart(cart) -> list[tuple[int, int]]:
    if not isinstance(cart, list) or not cart:
        raise ValidationError("cart must be a non-empty list")

    items = []
    for i, item in enumerate(cart):
        if not isinstance(item, dict):
            raise ValidationError(f"cart[{i}] must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"cart[{i}].product_id is required")
        product_id = coerce_int(f"cart[{i}].product_id", item.get("product_id"))
        quantity = coerce_int(f"cart[{i}].quantity", item.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"cart[{i}].quantity must be a positive integer")
        if quantity > MAX_STOCK_QUANTITY:
            raise ValidationError(f"cart[{i}].quantity cannot exceed {MAX_STOCK_QUANTITY}")
        items.append((product_id, quantity))
    return items


def _lenient_int(key: str, value):
    if value is None:
        return None
    try:
        return coerce_int(key, value)
    except ValidationError:
        return value


def _parse_customer(raw) -> tuple[int | None, str | None]:
    if raw is None:
        return None, None
    if not isinstance(raw, dict):
        raise ValidationError("customer must be an object")

    name = str(raw.get("name") or "").strip() or None
    if raw.get("id") in (None, ""):
        return None, name

    customer_id = coerce_int("customer.id", raw.get("id"))
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise ValidationError(f"Customer with ID {customer_id} not found")
    return customer.id, name or customer.name


def _parse_amount(payload: dict, key: str) -> int:
    raw = payload.get(key)
    if raw in (None, ""):
        return 0
    value = coerce_int(key, raw)
    if value < 0 or value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} must be between 0 and {MAX_PRICE_CENTS}")
    return value


def _order_notes(order_type: str, kitchen_note: str | None) -> str:
    if kitchen_note:
        return f"Order {order_type} - {kitchen_note}"
    return f"Order {order_type}"


def create_order(payload: dict, cashier: User | None = None) -> tuple[Order, BatchResult]:
    """
    Persist an order and apply its cart to stock.

    Returns (order, batch). order.stock_status reflects the batch:
    applied / partial / failed. Per-line failures are on the lines
    (stock_error) and in batch.errors.

    Raises:
        ValidationError: malformed body (cart, customer, charges, order_type)
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    cart = _parse_cart(payload.get("cart"))

    order_type = (payload.get("order_type") or "takeaway").strip()
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"order_type must be one of: {', '.join(ORDER_TYPES)}")

    customer_id, customer_name = _parse_customer(payload.get("customer"))

    discount_percentage = _parse_amount(payload, "discount_percentage")
    if discount_percentage > 100:
        raise ValidationError("discount_percentage must be between 0 and 100")
    table_charge = _parse_amount(payload, "table_charge_cents")
    delivery_charge = _parse_amount(payload, "delivery_charge_cents")

    kitchen_note = (payload.get("kitchen_note") or "").strip() or None

    payment_details = payload.get("payment_details")
    if payment_details is not None and not isinstance(payment_details, dict):
        raise ValidationError("payment_details must be an object")

    # Unit prices are fixed at checkout time
    snapshots = snapshot_products(pid for pid, _ in cart)

    order = Order(
        name=customer_name or "Walk-in Customer",
        order_type=order_type,
        status="completed",
        stock_status="pending",
        customer_id=customer_id,
        customer_name=customer_name,
        cashier_id=cashier.id if cashier else None,
        cashier_name=cashier.username if cashier else None,
        kitchen_note=kitchen_note,
        discount_percentage=discount_percentage,
        table_charge_cents=table_charge,
        delivery_charge_cents=delivery_charge,
        payment_details=json.dumps(payment_details) if payment_details is not None else None,
    )

    subtotal = 0
    for line_number, (product_id, quantity) in enumerate(cart):
        snap = snapshots.get(product_id)
        unit_price = snap.selling_price_cents if snap else 0
        line_total = unit_price * quantity
        subtotal += line_total
        order.lines.append(OrderLine(
            line_number=line_number,
            product_id=product_id,
            product_name=snap.name if snap else f"Product {product_id}",
            quantity=quantity,
            unit_price_cents=unit_price,
            line_total_cents=line_total,
        ))

    discount_cents = subtotal * discount_percentage // 100
    order.subtotal_cents = subtotal
    order.discount_cents = discount_cents
    order.total_amount_cents = subtotal - discount_cents + table_charge + delivery_charge

    db.session.add(order)
    db.session.commit()

    party = {
        "name": customer_name or "Walk-in Customer",
        "type": "customer",
        "id": str(customer_id) if customer_id else "walk-in",
    }
    notes = _order_notes(order_type, kitchen_note)

    intents = [
        StockIntent(
            product_id=line.product_id,
            transaction_type="sale",
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            reference=str(order.id),
            party=party,
            user_id=cashier.id if cashier else None,
            user_name=cashier.username if cashier else None,
            notes=notes,
        )
        for line in order.lines
    ]
    order_id = order.id

    batch = apply_batch(intents)

    order = db.session.get(Order, order_id, populate_existing=True)
    for line in order.lines:
        outcome = batch.outcome_for_line(line.line_number)
        if outcome is not None:
            line.stock_transition_id = outcome.transition.id if outcome.transition else None
            continue
        for err in batch.errors:
            if err["line"] == line.line_number:
                line.stock_error = f"{err['reason']}: {err['error']}"[:255]
                break

    order.stock_status = _STOCK_STATUS_BY_BATCH[batch.status]
    db.session.commit()

    return order, batch


def update_stock(cart_items, user: User | None = None) -> BatchResult:
    """
    Apply a bare list of {product_id, quantity} as sales, with no order document.

    Ids and quantities are coerced like cart lines (numeric strings accepted);
    values that still do not parse are reported per line by the batch, like
    missing products.
    """
    if not isinstance(cart_items, list) or not cart_items:
        raise ValidationError("cart_items must be a non-empty list")

    intents = []
    for item in cart_items:
        if not isinstance(item, dict):
            item = {}
        intents.append(StockIntent(
            product_id=_lenient_int("product_id", item.get("product_id")),
            transaction_type="sale",
            quantity=_lenient_int("quantity", item.get("quantity")),
            unit_price_cents=None,
            reference=STOCK_UPDATE_REFERENCE,
            party=None,
            user_id=user.id if user else None,
            user_name=user.username if user else None,
            notes="Stock update",
        ))

    return apply_batch(intents)


def get_order(order_id: int) -> Order | None:
    return db.session.get(Order, order_id)


def list_orders(*, page: int | None = None, per_page: int | None = None) -> dict:
    """Newest-first order list with pagination metadata."""
    per_page = min(per_page or 20, 100)
    page = max(page or 1, 1)

    base_query = db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc())
    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    orders = base_query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
