from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from zors.time_utils import to_utc_z, utcnow


TRANSACTION_TYPES = (
    "sale",
    "purchase",
    "customer_return",
    "supplier_return",
    "adjustment",
    "delete",
)


class LedgerImmutableError(RuntimeError):
    """Raised when code tries to update or delete a stock ledger row."""


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data and the single source of truth for current stock.

    STOCK: `stock` is only written through the inventory coordinator
    (services/inventory_service.py), which pairs every write with a
    StockTransition row. Never assign product.stock directly elsewhere.

    BARCODE: unique when present; generated on create if the caller omits it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=False, index=True)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    barcode = db.Column(db.String(64), nullable=True, unique=True)
    supplier = db.Column(db.String(255), nullable=True)
    discount = db.Column(db.Integer, nullable=False, default=0)
    size = db.Column(db.String(64), nullable=True)
    dryfood = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "barcode": self.barcode,
            "supplier": self.supplier,
            "discount": self.discount,
            "size": self.size,
            "dryfood": self.dryfood,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransition(db.Model):
    """
    Append-only stock ledger entry: one row per inventory-affecting event.

    SNAPSHOTS: product_name, previous_stock and new_stock are value copies taken
    at transition time. product_id is deliberately NOT a foreign key so that
    entries outlive the product they describe (product deletion keeps its
    'delete' entry).

    QUANTITY: always the non-negative magnitude of the change; direction is
    implied by transaction_type.

    IMMUTABILITY: rows are never updated or deleted; corrections are new
    offsetting rows. Enforced by the mapper listeners below.
    """
    __tablename__ = "stock_transitions"
    __table_args__ = (
        db.Index("ix_stock_transitions_product_created", "product_id", "created_at"),
        db.Index("ix_stock_transitions_type_created", "transaction_type", "created_at"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_transitions_quantity_non_negative"),
        db.CheckConstraint("new_stock >= 0", name="ck_stock_transitions_new_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    reference = db.Column(db.String(128), nullable=True, index=True)

    party_name = db.Column(db.String(255), nullable=True)
    party_type = db.Column(db.String(32), nullable=True)
    party_id = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    user_name = db.Column(db.String(128), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # Must be stored in the same format as the date-filter bind parameters
    # (SQLite compares them as text); server_default covers raw inserts only.
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<StockTransition id={self.id} product_id={self.product_id} "
            f"type={self.transaction_type} {self.previous_stock}->{self.new_stock}>"
        )

    @property
    def party(self) -> dict | None:
        if not self.party_name:
            return None
        return {"name": self.party_name, "type": self.party_type, "id": self.party_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "transaction_type": self.transaction_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "unit_price_cents": self.unit_price_cents,
            "total_value_cents": self.total_value_cents,
            "reference": self.reference,
            "party": self.party,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockTransition, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise LedgerImmutableError(f"stock transition {target.id} is immutable")


@event.listens_for(StockTransition, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise LedgerImmutableError(f"stock transition {target.id} cannot be deleted")
