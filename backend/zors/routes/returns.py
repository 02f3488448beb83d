# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/zors/routes/returns.py
"""
Return Processing API Routes

- Customer returns put stock back; supplier returns take it out
- A return the inventory refuses is still saved, as rejected
"""

from flask import Blueprint, request, g, current_app

from ..services import return_service
from ..services.inventory_errors import InventoryError, http_status_for
from ..validation import ValidationError
from ..decorators import require_auth


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Request body:
    {
        "product_id": 12,
        "return_type": "customer|supplier",
        "quantity": 2,
        "reason": "Damaged",
        "notes": "Box crushed"  (optional)
    }

    Returns:
        201: Return completed
        400: Invalid input
        404: Product not found
        409: Return rejected (e.g. insufficient stock for a supplier return)
    """
    payload = request.get_json(silent=True)

    try:
        ret, error = return_service.create_return(payload, cashier=g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except InventoryError as e:
        return {"error": str(e), "reason": e.reason}, http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to create return")
        return {"error": "Internal server error"}, 500

    if error is not None:
        return {
            "error": str(error),
            "reason": error.reason,
            "return": ret.to_dict(),
        }, http_status_for(error)

    return {"return": ret.to_dict()}, 201


@returns_bp.get("")
@require_auth
def list_returns_route():
    items = return_service.list_returns(
        return_type=request.args.get("type"),
        status=request.args.get("status"),
    )
    return {"items": items, "count": len(items)}


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    ret = return_service.get_return(return_id)
    if not ret:
        return {"error": "Return not found"}, 404
    return {"return": ret.to_dict()}
