# Overview: Append and query operations for the stock ledger (stock_transitions).

"""
ZORS Stock Ledger Invariants (authoritative)

- Append-only: rows are inserted here and nowhere else; never updated or deleted.
- previous_stock / new_stock are the values the coordinator used for the stock
  write, passed in by value (never re-read here).
- total_value_cents = quantity * unit_price_cents, computed here and only here.
- user_id is kept only when it identifies an existing user; otherwise NULL.
- Read API is newest-first; date bounds are inclusive.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from ..extensions import db
from ..models import StockTransition, User
from ..validation import ValidationError
from zors.time_utils import parse_iso_datetime
from .stock_policy import VALID_TRANSACTION_TYPES

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def resolve_user_id(user_id) -> int | None:
    """Return user_id if it is a well-formed reference to an existing user, else None."""
    if user_id is None or isinstance(user_id, bool):
        return None
    if isinstance(user_id, str):
        if not user_id.strip().isdigit():
            return None
        user_id = int(user_id.strip())
    if not isinstance(user_id, int) or user_id <= 0:
        return None
    exists = db.session.query(User.id).filter_by(id=user_id).first()
    return user_id if exists else None


def append_stock_transition(
    *,
    product_id: int,
    product_name: str,
    transaction_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    unit_price_cents: int = 0,
    reference: str | None = None,
    party: dict | None = None,
    user_id=None,
    user_name: str | None = None,
    notes: str | None = None,
) -> StockTransition:
    """
    Append one ledger row. Flushes (assigns id) but does not commit.

    - No stock logic here; callers pass the already-resolved transition.
    - No updates/deletes of existing rows.
    """
    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise ValueError(f"invalid transaction_type {transaction_type!r}")
    if quantity < 0:
        raise ValueError("ledger quantity must be >= 0")
    unit_price_cents = unit_price_cents or 0

    row = StockTransition(
        product_id=product_id,
        product_name=product_name,
        transaction_type=transaction_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_price_cents=unit_price_cents,
        total_value_cents=quantity * unit_price_cents,
        reference=reference,
        party_name=party.get("name") if party else None,
        party_type=party.get("type") if party else None,
        party_id=party.get("id") if party else None,
        user_id=resolve_user_id(user_id),
        user_name=user_name,
        notes=notes,
    )
    db.session.add(row)
    db.session.flush()
    return row


def get_stock_transition(transition_id: int) -> StockTransition | None:
    return db.session.get(StockTransition, transition_id)


def parse_date_bound(raw: str | None, *, end: bool = False) -> datetime | None:
    """
    Parse a start/end filter value.

    A bare date ("2024-05-01") as an end bound covers that whole day.
    """
    if raw is None or not raw.strip():
        return None
    try:
        dt = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("startDate/endDate must be ISO-8601 dates or datetimes")
    if end and len(raw.strip()) == 10:
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


def list_stock_transitions(
    *,
    page: int | None = None,
    limit: int | None = None,
    product_id: int | None = None,
    transaction_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """
    Filtered, paginated, newest-first read over the ledger.

    All filters combine with AND; each date bound is optional and inclusive.
    transaction_type "all" (or empty) means no type filter.
    """
    page = max(page or 1, 1)
    limit = max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))

    q = db.session.query(StockTransition)

    if product_id is not None:
        q = q.filter(StockTransition.product_id == product_id)

    if transaction_type and transaction_type != "all":
        if transaction_type not in VALID_TRANSACTION_TYPES:
            raise ValidationError(f"Invalid transaction type: {transaction_type}")
        q = q.filter(StockTransition.transaction_type == transaction_type)

    if start_date is not None:
        q = q.filter(StockTransition.created_at >= start_date)

    if end_date is not None:
        q = q.filter(StockTransition.created_at <= end_date)

    total = q.count()
    rows = (
        q.order_by(StockTransition.created_at.desc(), StockTransition.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "transitions": [r.to_dict() for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }
