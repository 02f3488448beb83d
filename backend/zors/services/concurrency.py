# Overview: Retry and compare-and-swap helpers for concurrent stock writes.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked, deadlocks) and StaleDataError
    (optimistic locking conflicts on Product.version_id).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def compare_and_swap_stock(product_id: int, expected: int, new_stock: int) -> bool:
    """
    Set stock to new_stock only if it still equals expected.

    Single UPDATE ... WHERE id = :id AND stock = :expected, so the check and the
    write happen in one statement. Returns True iff exactly one row matched.
    Does not commit.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock == expected)
        .values(stock=new_stock, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def overwrite_stock(product_id: int, new_stock: int) -> bool:
    """
    Unguarded write: last writer wins. Only used when STOCK_GUARDED_WRITES is off.

    Returns False when the product row no longer exists. Does not commit.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=new_stock, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def read_stock(product_id: int) -> int | None:
    """Fresh read of the stored stock value (bypasses the identity map)."""
    return db.session.execute(
        db.select(Product.stock).where(Product.id == product_id)
    ).scalar_one_or_none()
