from __future__ import annotations

import json

from ..extensions import db
from zors.time_utils import to_utc_z


ORDER_TYPES = ("dine-in", "takeaway", "delivery")
RETURN_TYPES = ("customer", "supplier")


class Order(db.Model):
    """
    Order document (one POS checkout).

    The order row is persisted before its cart lines are applied to stock, so
    stock_status records how the inventory side went:
    - applied: every line produced a sale transition
    - partial: some lines failed (see OrderLine.stock_error)
    - failed: no line could be applied
    """
    __tablename__ = "orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)

    order_type = db.Column(db.String(16), nullable=False, default="takeaway")
    status = db.Column(db.String(16), nullable=False, default="completed")
    stock_status = db.Column(db.String(16), nullable=False, default="pending")

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    cashier_name = db.Column(db.String(128), nullable=True)

    kitchen_note = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_percentage = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    table_charge_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_charge_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_details = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.line_number",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "order_type": self.order_type,
            "status": self.status,
            "stock_status": self.stock_status,
            "customer": (
                {"id": self.customer_id, "name": self.customer_name}
                if self.customer_name else None
            ),
            "cashier": {"id": self.cashier_id, "username": self.cashier_name},
            "kitchen_note": self.kitchen_note,
            "subtotal_cents": self.subtotal_cents,
            "discount_percentage": self.discount_percentage,
            "discount_cents": self.discount_cents,
            "table_charge_cents": self.table_charge_cents,
            "delivery_charge_cents": self.delivery_charge_cents,
            "total_amount_cents": self.total_amount_cents,
            "payment_details": json.loads(self.payment_details) if self.payment_details else None,
            "lines": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_lines_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    # Snapshot, not a foreign key: the product may be deleted later
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    stock_transition_id = db.Column(db.Integer, db.ForeignKey("stock_transitions.id"), nullable=True)
    stock_error = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "stock_transition_id": self.stock_transition_id,
            "stock_error": self.stock_error,
        }


class Return(db.Model):
    """
    Product return document.

    Lifecycle: PENDING on creation, then COMPLETED once the stock change is
    applied, or REJECTED when the inventory side refuses it (insufficient
    stock for a supplier return, product gone).
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    return_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    previous_stock = db.Column(db.Integer, nullable=True)
    new_stock = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    rejection_reason = db.Column(db.String(255), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    cashier_name = db.Column(db.String(128), nullable=True)

    stock_transition_id = db.Column(db.Integer, db.ForeignKey("stock_transitions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product": {
                "id": self.product_id,
                "name": self.product_name,
                "selling_price_cents": self.unit_price_cents,
            },
            "return_type": self.return_type,
            "quantity": self.quantity,
            "reason": self.reason,
            "notes": self.notes,
            "total_value_cents": self.total_value_cents,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "cashier": {"id": self.cashier_id, "username": self.cashier_name},
            "stock_transition_id": self.stock_transition_id,
            "created_at": to_utc_z(self.created_at),
        }
