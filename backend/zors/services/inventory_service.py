# Overview: Inventory coordinator; applies stock intents and appends the matching ledger rows.

# backend/zors/services/inventory_service.py

"""
ZORS Inventory Coordinator (authoritative)

Per intent:
  1. read current stock (or take it from the batch snapshot)
  2. resolve the transition (stock_policy) -> reject before any write
  3. write the new stock and COMMIT
  4. append the ledger row and COMMIT

Failure policy (asymmetric):
- Step 3 fails -> the intent fails, no ledger row exists.
- Step 4 fails after step 3 committed -> stock is NOT rolled back. The intent
  is still a success for the caller; the failure is logged and surfaced on the
  outcome (ledger_written=False) but never raised.

Concurrency:
- STOCK_GUARDED_WRITES=True (default): step 3 is a compare-and-swap on the value
  read in step 1. If another writer got there first, the current value is
  re-read and the intent is re-resolved, so the insufficient-stock check always
  runs against the value actually being overwritten. Gives up with
  StockConflictError after STOCK_WRITE_ATTEMPTS.
- STOCK_GUARDED_WRITES=False: plain overwrite, last writer wins.

The ledger row always carries the previous/new values used in the write that
committed, never a re-read.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, StockTransition
from .concurrency import compare_and_swap_stock, overwrite_stock, read_stock, run_with_retry
from .inventory_errors import (
    InventoryError,
    IntentValidationError,
    LedgerWriteFailed,
    ProductNotFoundError,
    StockConflictError,
    StockWriteFailed,
)
from .ledger_service import append_stock_transition
from .stock_policy import TransitionResult, resolve_transition


@dataclass
class StockIntent:
    """One requested stock change with its business context."""
    product_id: int
    transaction_type: str
    quantity: int | None
    unit_price_cents: int | None = None  # None -> product cost price
    reference: str | None = None
    party: dict | None = None
    user_id: int | None = None
    user_name: str | None = None
    notes: str | None = None


@dataclass
class ProductSnapshot:
    id: int
    name: str
    stock: int
    cost_price_cents: int
    selling_price_cents: int

    @classmethod
    def of(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            stock=product.stock,
            cost_price_cents=product.cost_price_cents or 0,
            selling_price_cents=product.selling_price_cents or 0,
        )


@dataclass
class IntentOutcome:
    intent: StockIntent
    product_name: str
    result: TransitionResult
    unit_price_cents: int
    transition: StockTransition | None = None
    ledger_error: LedgerWriteFailed | None = None

    @property
    def ledger_written(self) -> bool:
        return self.transition is not None

    @property
    def previous_stock(self) -> int:
        return self.result.previous_stock

    @property
    def new_stock(self) -> int:
        return self.result.new_stock

    def to_dict(self) -> dict:
        return {
            "product_id": self.intent.product_id,
            "product_name": self.product_name,
            "transaction_type": self.result.transaction_type,
            "quantity": self.result.quantity,
            "previous_stock": self.result.previous_stock,
            "new_stock": self.result.new_stock,
            "ledger_written": self.ledger_written,
            "stock_transition_id": self.transition.id if self.transition else None,
            "ledger_error": str(self.ledger_error) if self.ledger_error else None,
        }


@dataclass
class BatchResult:
    outcomes: list[tuple[int, IntentOutcome]] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def status(self) -> str:
        """ok: every line applied; partial: some applied; failed: none applied."""
        if not self.errors:
            return "ok"
        if self.outcomes:
            return "partial"
        return "failed"

    def outcome_for_line(self, line: int) -> IntentOutcome | None:
        for index, outcome in self.outcomes:
            if index == line:
                return outcome
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "updates": [dict(outcome.to_dict(), line=index) for index, outcome in self.outcomes],
            "errors": self.errors,
        }


def _check_intent_shape(intent: StockIntent) -> None:
    pid = intent.product_id
    if pid is None or isinstance(pid, bool) or not isinstance(pid, int):
        raise IntentValidationError("product_id is required and must be an integer", product_id=None)
    if not intent.transaction_type or not isinstance(intent.transaction_type, str):
        raise IntentValidationError("transaction_type is required", product_id=pid)


def snapshot_products(product_ids) -> dict[int, ProductSnapshot]:
    """Read current stock for a set of products in one query."""
    ids = {pid for pid in product_ids if isinstance(pid, int) and not isinstance(pid, bool)}
    if not ids:
        return {}
    products = db.session.query(Product).filter(Product.id.in_(ids)).all()
    return {p.id: ProductSnapshot.of(p) for p in products}


def _load_snapshot(product_id: int) -> ProductSnapshot:
    product = db.session.get(Product, product_id, populate_existing=True)
    if product is None:
        raise ProductNotFoundError(f"Product with ID {product_id} not found", product_id=product_id)
    return ProductSnapshot.of(product)


def _write_stock(intent: StockIntent, snapshot: ProductSnapshot) -> TransitionResult:
    """Steps 2-3: resolve against the known value, write, commit. Returns the committed transition."""
    guarded = current_app.config.get("STOCK_GUARDED_WRITES", True)
    attempts = max(1, int(current_app.config.get("STOCK_WRITE_ATTEMPTS", 3)))
    previous = snapshot.stock

    for _ in range(attempts):
        result = resolve_transition(
            intent.transaction_type,
            intent.quantity,
            previous,
            product_id=snapshot.id,
            product_name=snapshot.name,
        )

        if not guarded:
            if not overwrite_stock(snapshot.id, result.new_stock):
                db.session.rollback()
                raise ProductNotFoundError(f"Product with ID {snapshot.id} not found", product_id=snapshot.id)
            db.session.commit()
            return result

        if compare_and_swap_stock(snapshot.id, previous, result.new_stock):
            db.session.commit()
            return result

        db.session.rollback()
        current = read_stock(snapshot.id)
        if current is None:
            raise ProductNotFoundError(f"Product with ID {snapshot.id} not found", product_id=snapshot.id)
        current_app.logger.info(
            "Stock for product %s changed concurrently (%s -> %s); re-resolving %s",
            snapshot.id, previous, current, intent.transaction_type,
        )
        previous = current

    raise StockConflictError(
        f"Stock for product {snapshot.id} kept changing; gave up after {attempts} attempts",
        product_id=snapshot.id,
    )


def _append_ledger(intent: StockIntent, snapshot: ProductSnapshot, result: TransitionResult,
                   unit_price_cents: int) -> tuple[StockTransition | None, LedgerWriteFailed | None]:
    """Step 4. Best-effort: failures are logged and returned, never raised."""
    try:
        row = append_stock_transition(
            product_id=snapshot.id,
            product_name=snapshot.name,
            transaction_type=result.transaction_type,
            quantity=result.quantity,
            previous_stock=result.previous_stock,
            new_stock=result.new_stock,
            unit_price_cents=unit_price_cents,
            reference=intent.reference,
            party=intent.party,
            user_id=intent.user_id,
            user_name=intent.user_name,
            notes=intent.notes,
        )
        db.session.commit()
        return row, None
    except Exception as exc:
        db.session.rollback()
        failure = LedgerWriteFailed(
            f"Stock for product {snapshot.id} updated {result.previous_stock} -> {result.new_stock} "
            f"but the ledger entry could not be written: {exc}",
            product_id=snapshot.id,
        )
        current_app.logger.error(
            "LedgerWriteFailed product_id=%s type=%s previous=%s new=%s reference=%s",
            snapshot.id, result.transaction_type, result.previous_stock, result.new_stock,
            intent.reference, exc_info=True,
        )
        return None, failure


def apply_intent(intent: StockIntent, *, snapshot: ProductSnapshot | None = None) -> IntentOutcome:
    """
    Apply one stock intent: read -> validate -> write stock -> append ledger.

    snapshot: stock/name already read by the caller (batch mode). When None the
    product is read fresh.

    Raises:
        IntentValidationError, InvalidTransactionTypeError: malformed intent
        ProductNotFoundError: product missing
        InsufficientStockError: decrease would make stock negative
        StockConflictError: compare-and-swap retries exhausted
        StockWriteFailed: database error during the stock write
    Ledger failures are NOT raised; see IntentOutcome.ledger_error.
    """
    _check_intent_shape(intent)

    if snapshot is None:
        snapshot = _load_snapshot(intent.product_id)

    try:
        result = run_with_retry(lambda: _write_stock(intent, snapshot))
    except InventoryError:
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Stock write failed for product %s", snapshot.id)
        raise StockWriteFailed(
            f"Failed to update stock for product {snapshot.id}",
            product_id=snapshot.id,
        ) from exc

    unit_price = intent.unit_price_cents
    if unit_price is None:
        unit_price = snapshot.cost_price_cents

    transition, ledger_error = _append_ledger(intent, snapshot, result, unit_price)

    return IntentOutcome(
        intent=intent,
        product_name=snapshot.name,
        result=result,
        unit_price_cents=unit_price,
        transition=transition,
        ledger_error=ledger_error,
    )


def apply_batch(intents: list[StockIntent]) -> BatchResult:
    """
    Apply intents independently against one stock snapshot taken up front.

    - Per-line errors are collected as {line, product_id, reason, error}; a
      failing line never aborts the others.
    - The snapshot is not re-read per line. Lines that succeed update the
      snapshot with their own committed value, so two lines for the same
      product compound instead of overwriting each other.
    """
    batch = BatchResult()
    snapshots = snapshot_products(intent.product_id for intent in intents)

    for index, intent in enumerate(intents):
        try:
            _check_intent_shape(intent)
            snapshot = snapshots.get(intent.product_id)
            if snapshot is None:
                raise ProductNotFoundError(
                    f"Product with ID {intent.product_id} not found",
                    product_id=intent.product_id,
                )
            outcome = apply_intent(intent, snapshot=snapshot)
        except InventoryError as e:
            batch.errors.append(dict(e.to_dict(), line=index))
            continue

        snapshot.stock = outcome.new_stock
        batch.outcomes.append((index, outcome))

    if batch.errors:
        current_app.logger.warning(
            "Stock batch finished with status=%s (%d applied, %d failed)",
            batch.status, len(batch.outcomes), len(batch.errors),
        )
    return batch
