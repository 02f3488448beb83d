# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/zors/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations: any role
- Write operations: admin or manager

STOCK: `stock` in a create/update payload is not written directly; the
service books the change through the inventory coordinator.
"""
from flask import Blueprint, request, g, current_app
from ..services.products_service import (
    list_products as list_products_service,
    list_low_stock_products,
    get_product,
    create_product,
    update_product,
    delete_product,
)
from ..services.inventory_errors import InventoryError, http_status_for
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "category", "cost_price_cents", "selling_price_cents",
        "stock", "min_stock", "barcode", "supplier", "discount", "size", "dryfood",
    },
    required_on_create={"name", "category", "cost_price_cents", "selling_price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products, newest first.

    Query params:
    - search: str (optional) - matches name, description, category, barcode
    - category: str (optional) - exact category; "all" disables the filter
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return list_products_service(
        search=request.args.get("search"),
        category=request.args.get("category"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/low-stock")
@require_auth
def low_stock_products():
    items = list_low_stock_products()
    return {"items": items, "count": len(items)}


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = get_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_product_route():
    """
    Create a new product.

    Initial stock > 0 is booked as a purchase from 0.

    Returns 201, or 207 with `stock_error` when the product was created but
    its initial stock could not be booked.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    user = g.current_user
    try:
        created = create_product(patch=patch, user_id=user.id, user_name=user.username)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InventoryError as e:
        return {"error": str(e), "reason": e.reason}, http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    if "stock_error" in created:
        return created, 207

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role("admin", "manager")
def update_product_route(product_id: int):
    """
    Update a product.

    A different `stock` becomes a purchase (increase) or an adjustment
    (decrease) in the stock ledger.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    user = g.current_user
    try:
        updated = update_product(
            product_id=product_id, patch=patch, user_id=user.id, user_name=user.username
        )
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InventoryError as e:
        return {"error": str(e), "reason": e.reason}, http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    if not updated:
        return {"error": "Product not found"}, 404

    return updated, 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("admin", "manager")
def delete_product_route(product_id: int):
    """Delete a product; remaining stock is first written off as a 'delete' transition."""
    user = g.current_user
    try:
        deleted = delete_product(product_id=product_id, user_id=user.id, user_name=user.username)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InventoryError as e:
        return {"error": str(e), "reason": e.reason}, http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Product not found"}, 404

    return {"ok": True}, 200
