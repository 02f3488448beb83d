# backend/zors/services/products_service.py
"""
Products Service

STOCK: product create/update/delete never write `stock` directly; every stock
effect goes through inventory_service.apply_intent so it lands in the ledger:
- create with stock > 0   -> purchase 0 -> stock        (PRODUCT_CREATED_<id>)
- update raising stock    -> purchase of the difference (PRODUCT_UPDATED_<id>)
- update lowering stock   -> adjustment to the target   (PRODUCT_UPDATED_<id>)
- delete with stock > 0   -> delete stock -> 0          (PRODUCT_DELETED_<id>)
"""
from __future__ import annotations

import secrets
import time

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product
from ..validation import ConflictError
from .concurrency import run_with_retry
from .inventory_errors import InventoryError
from .inventory_service import ProductSnapshot, StockIntent, apply_intent

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "description",
    "category",
    "cost_price_cents",
    "selling_price_cents",
    "min_stock",
    "barcode",
    "supplier",
    "discount",
    "size",
    "dryfood",
}

SYSTEM_PARTY = {"name": "System", "type": "system", "id": "system"}

DELETE_ATTEMPTS = 3


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def generate_barcode() -> str:
    """13 digits: last 7 of the epoch millis + 3 random digits + '000'."""
    millis = str(int(time.time() * 1000))
    random_part = f"{secrets.randbelow(1000):03d}"
    return (millis[-7:] + random_part + "000")[:13]


def _unique_barcode() -> str:
    while True:
        candidate = generate_barcode()
        if not db.session.query(Product.id).filter_by(barcode=candidate).first():
            return candidate


def _ensure_barcode_free(barcode: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError("Barcode already exists")


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing, newest first, with optional search and pagination.

    - search: case-insensitive match on name, description, category or barcode
    - category: exact match; "all" disables the filter
    - page omitted -> all items
    """
    base_query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(
            db.or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.category.ilike(pattern),
                Product.barcode.ilike(pattern),
            )
        )

    if category and category != "all":
        base_query = base_query.filter(Product.category == category)

    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_low_stock_products() -> list[dict]:
    products = (
        db.session.query(Product)
        .filter(Product.stock <= Product.min_stock)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
    return [p.to_dict() for p in products]


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def create_product(*, patch: dict, user_id: int | None = None, user_name: str | None = None) -> dict:
    """
    Create product from a validated patch dict.

    The row is inserted with stock 0; initial stock is then booked as a
    purchase so that the ledger explains every unit on hand.

    The product row is committed before that purchase runs. If the purchase
    is refused, the product is kept with stock 0 and the returned dict
    carries `stock_error` ({product_id, reason, error}).

    Raises:
        ConflictError: barcode already in use
    """
    patch = dict(patch)
    initial_stock = patch.pop("stock", None) or 0

    barcode = (patch.get("barcode") or "").strip()
    if barcode:
        _ensure_barcode_free(barcode)
        patch["barcode"] = barcode
    else:
        patch["barcode"] = _unique_barcode()

    product = Product(stock=0)
    apply_product_patch(product, patch)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists")

    stock_error = None
    if initial_stock > 0:
        intent = StockIntent(
            product_id=product.id,
            transaction_type="purchase",
            quantity=initial_stock,
            unit_price_cents=product.cost_price_cents or 0,
            reference=f"PRODUCT_CREATED_{product.id}",
            party=SYSTEM_PARTY,
            user_id=user_id,
            user_name=user_name or "System",
            notes=f"Initial stock added for new product: {product.name}",
        )
        try:
            apply_intent(intent, snapshot=ProductSnapshot.of(product))
        except InventoryError as e:
            current_app.logger.warning(
                "Product %s created but initial stock %s was not applied: %s",
                product.id, initial_stock, e,
            )
            stock_error = e.to_dict()
        db.session.refresh(product)

    created = product.to_dict()
    if stock_error:
        created["stock_error"] = stock_error
    return created


def update_product(
    *,
    product_id: int,
    patch: dict,
    user_id: int | None = None,
    user_name: str | None = None,
) -> dict | None:
    """
    Patch product fields; a changed `stock` is booked through the coordinator.

    Returns the updated product dict, or None if the product does not exist.

    Raises:
        ConflictError: barcode already used by another product
        InventoryError subclasses: the stock change was rejected
    """
    patch = dict(patch)
    target_stock = patch.pop("stock", None)

    if "barcode" in patch:
        barcode = (patch["barcode"] or "").strip()
        if barcode:
            _ensure_barcode_free(barcode, exclude_id=product_id)
            patch["barcode"] = barcode
        else:
            patch["barcode"] = _unique_barcode()

    def _op():
        p = db.session.get(Product, product_id, populate_existing=True)
        if p is None:
            return None
        apply_product_patch(p, patch)
        db.session.commit()
        return p

    try:
        product = run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already exists")

    if product is None:
        return None

    if target_stock is not None and target_stock != product.stock:
        previous = product.stock
        if target_stock > previous:
            transaction_type, quantity = "purchase", target_stock - previous
            direction = "increased"
        else:
            transaction_type, quantity = "adjustment", target_stock
            direction = "decreased"

        apply_intent(
            StockIntent(
                product_id=product.id,
                transaction_type=transaction_type,
                quantity=quantity,
                unit_price_cents=product.cost_price_cents or 0,
                reference=f"PRODUCT_UPDATED_{product.id}",
                party=SYSTEM_PARTY,
                user_id=user_id,
                user_name=user_name or "System",
                notes=f"Stock {direction} from {previous} to {target_stock} via product update",
            ),
            snapshot=ProductSnapshot.of(product),
        )
        db.session.refresh(product)

    return product.to_dict()


def delete_product(*, product_id: int, user_id: int | None = None, user_name: str | None = None) -> bool:
    """
    Delete a product. Remaining stock is first zeroed through a 'delete'
    transition, and that ledger row outlives the product.

    Returns False if the product does not exist.
    """
    for _ in range(DELETE_ATTEMPTS):
        product = db.session.get(Product, product_id, populate_existing=True)
        if product is None:
            return False

        if product.stock > 0:
            remaining = product.stock
            apply_intent(
                StockIntent(
                    product_id=product.id,
                    transaction_type="delete",
                    quantity=None,
                    unit_price_cents=product.cost_price_cents or 0,
                    reference=f"PRODUCT_DELETED_{product.id}",
                    party=SYSTEM_PARTY,
                    user_id=user_id,
                    user_name=user_name or "System",
                    notes=f"Product deleted with remaining stock: {remaining}",
                ),
                snapshot=ProductSnapshot.of(product),
            )
            # Re-check: stock may have been received between the zeroing and the delete
            continue

        db.session.delete(product)
        try:
            db.session.commit()
        except StaleDataError:
            # version_id moved: a stock write landed after our read
            db.session.rollback()
            continue
        return True

    raise ConflictError("Product stock kept changing during deletion; try again")
