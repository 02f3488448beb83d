# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/zors/routes/orders.py
"""
Order API Routes

Response codes for POST /api/orders:
- 201: every cart line was applied to stock
- 207: some lines failed (order saved, stock_status=partial)
- 409: no line applied (order saved, stock_status=failed)
- 404: no line applied and every failure was an unknown product
"""

from flask import Blueprint, request, g, current_app

from ..services import order_service
from ..validation import ValidationError
from ..decorators import require_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _failed_batch_status(errors: list[dict]) -> int:
    if errors and all(err["reason"] == "not_found" for err in errors):
        return 404
    return 409


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Request body:
    {
        "cart": [{"product_id": 1, "quantity": 2}],
        "customer": {"id": 4, "name": "Jane"},      (optional)
        "order_type": "dine-in|takeaway|delivery",  (optional, default takeaway)
        "kitchen_note": "no onions",                (optional)
        "discount_percentage": 10,                  (optional)
        "table_charge_cents": 500,                  (optional)
        "delivery_charge_cents": 0,                 (optional)
        "payment_details": {...}                    (optional)
    }
    """
    payload = request.get_json(silent=True)

    try:
        order, batch = order_service.create_order(payload, cashier=g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return {"error": "Internal server error"}, 500

    body = {"order": order.to_dict(), "stock": batch.to_dict()}

    if batch.status == "ok":
        return body, 201
    if batch.status == "partial":
        body["error"] = "Some items could not be applied to stock"
        return body, 207
    body["error"] = "No items could be applied to stock"
    return body, _failed_batch_status(batch.errors)


@orders_bp.get("")
@require_auth
def list_orders_route():
    return order_service.list_orders(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    if not order:
        return {"error": "Order not found"}, 404
    return {"order": order.to_dict()}


@orders_bp.post("/update-stock")
@require_auth
def update_stock_route():
    """
    Apply {cart_items: [{product_id, quantity}]} as sales without an order.

    200 when every line applied; 207 with per-line details otherwise.
    """
    data = request.get_json(silent=True) or {}

    try:
        batch = order_service.update_stock(data.get("cart_items"), user=g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update stock")
        return {"error": "Internal server error"}, 500

    updates = batch.to_dict()["updates"]
    if batch.status == "ok":
        return {"message": "Stock updated successfully", "updates": updates}, 200

    return {
        "error": "Some stock updates failed",
        "details": batch.errors,
        "successful_updates": updates,
    }, 207
