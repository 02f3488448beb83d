# Overview: Flask API routes for the stock ledger; read surface plus direct stock intents.

"""
Stock transition routes.

Time semantics:
- startDate/endDate accept ISO-8601 dates or datetimes (Z/offsets normalized to UTC-naive).
- Both bounds are inclusive; a bare date as endDate covers that whole day.

Direct intents (POST) may not use 'delete': that type is reserved for
product deletion.
"""

from flask import Blueprint, request, g, current_app

from ..services import ledger_service
from ..services.inventory_errors import InventoryError, http_status_for
from ..services.inventory_service import StockIntent, apply_intent
from ..validation import ValidationError, coerce_int, parse_party
from ..decorators import require_auth, require_role

stock_transitions_bp = Blueprint("stock_transitions", __name__, url_prefix="/api/stock-transitions")

DIRECT_TRANSACTION_TYPES = ("sale", "purchase", "customer_return", "supplier_return", "adjustment")


def _arg(*names):
    for name in names:
        value = request.args.get(name)
        if value not in (None, ""):
            return value
    return None


@stock_transitions_bp.get("")
@require_auth
def list_stock_transitions_route():
    """
    Query params (snake_case or camelCase):
    - page, limit (default 50, max 500)
    - product_id / productId
    - type / transaction_type ("all" = no filter)
    - start_date / startDate, end_date / endDate
    """
    try:
        product_raw = _arg("product_id", "productId")
        page_raw = _arg("page")
        limit_raw = _arg("limit")
        result = ledger_service.list_stock_transitions(
            page=coerce_int("page", page_raw) if page_raw else None,
            limit=coerce_int("limit", limit_raw) if limit_raw else None,
            product_id=coerce_int("product_id", product_raw) if product_raw else None,
            transaction_type=_arg("type", "transaction_type"),
            start_date=ledger_service.parse_date_bound(_arg("start_date", "startDate")),
            end_date=ledger_service.parse_date_bound(_arg("end_date", "endDate"), end=True),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return result, 200


@stock_transitions_bp.get("/<int:transition_id>")
@require_auth
def get_stock_transition_route(transition_id: int):
    row = ledger_service.get_stock_transition(transition_id)
    if not row:
        return {"error": "Stock transition not found"}, 404
    return {"transition": row.to_dict()}, 200


@stock_transitions_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_stock_transition_route():
    """
    Apply one stock intent directly.

    Request body:
    {
        "product_id": 3,
        "transaction_type": "purchase",
        "quantity": 10,
        "unit_price_cents": 250,              (optional, default: cost price)
        "reference": "PO-1042",               (optional)
        "party": {"name", "type", "id"},      (optional)
        "notes": "..."                        (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        missing = sorted(k for k in ("product_id", "transaction_type", "quantity") if data.get(k) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        transaction_type = str(data["transaction_type"]).strip()
        if transaction_type not in DIRECT_TRANSACTION_TYPES:
            return {
                "error": f"Invalid transaction type: {transaction_type}",
                "reason": "invalid_transaction_type",
            }, 400

        unit_price = data.get("unit_price_cents")
        if unit_price is not None:
            unit_price = coerce_int("unit_price_cents", unit_price)
            if unit_price < 0:
                raise ValidationError("unit_price_cents must be >= 0")

        reference = data.get("reference")
        notes = data.get("notes")
        user = g.current_user
        intent = StockIntent(
            product_id=coerce_int("product_id", data["product_id"]),
            transaction_type=transaction_type,
            quantity=coerce_int("quantity", data["quantity"]),
            unit_price_cents=unit_price,
            reference=str(reference).strip()[:128] if reference else None,
            party=parse_party(data.get("party")),
            user_id=user.id,
            user_name=user.username,
            notes=str(notes).strip() if notes else None,
        )
    except ValidationError as e:
        return {"error": str(e), "reason": "validation_error"}, 400

    try:
        outcome = apply_intent(intent)
    except InventoryError as e:
        body = e.to_dict()
        return body, http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to apply stock transition")
        return {"error": "Internal server error"}, 500

    body = {"outcome": outcome.to_dict()}
    if outcome.transition is not None:
        body["transition"] = outcome.transition.to_dict()
    return body, 201
