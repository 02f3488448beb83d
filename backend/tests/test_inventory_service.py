"""
Inventory coordinator tests.

Verifies:
- Each applied intent writes stock and exactly one matching ledger row
- Rejected intents write neither
- Ledger failure after a committed stock write is reported, not raised
- Compare-and-swap re-resolves against the real value and gives up eventually
- Batches are independent per line and compound on the same product
"""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from zors.extensions import db
from zors.models import Product, StockTransition
from zors.services import concurrency, inventory_service
from zors.services.inventory_errors import (
    InsufficientStockError,
    IntentValidationError,
    LedgerWriteFailed,
    ProductNotFoundError,
    StockConflictError,
    StockWriteFailed,
)
from zors.services.inventory_service import (
    ProductSnapshot,
    StockIntent,
    apply_batch,
    apply_intent,
)


def _stock(product_id):
    return db.session.get(Product, product_id, populate_existing=True).stock


def _ledger(product_id=None):
    q = db.session.query(StockTransition)
    if product_id is not None:
        q = q.filter(StockTransition.product_id == product_id)
    return q.order_by(StockTransition.id).all()


# =============================================================================
# SINGLE INTENT
# =============================================================================


class TestApplyIntent:

    def test_sale_writes_stock_and_ledger(self, db_session, make_product):
        product = make_product(stock=10, cost_price_cents=120)

        outcome = apply_intent(StockIntent(product.id, "sale", 3, reference="42"))

        assert outcome.previous_stock == 10
        assert outcome.new_stock == 7
        assert outcome.ledger_written
        assert _stock(product.id) == 7

        rows = _ledger(product.id)
        assert len(rows) == 1
        row = rows[0]
        assert row.transaction_type == "sale"
        assert (row.previous_stock, row.new_stock, row.quantity) == (10, 7, 3)
        assert row.reference == "42"
        # unit price defaults to the product cost price
        assert row.unit_price_cents == 120
        assert row.total_value_cents == 360

    def test_explicit_unit_price(self, db_session, make_product):
        product = make_product(stock=0, cost_price_cents=100)

        apply_intent(StockIntent(product.id, "purchase", 4, unit_price_cents=75))

        row = _ledger(product.id)[0]
        assert row.unit_price_cents == 75
        assert row.total_value_cents == 300

    def test_adjustment_records_magnitude(self, db_session, make_product):
        product = make_product(stock=10)

        outcome = apply_intent(StockIntent(product.id, "adjustment", 4))

        assert _stock(product.id) == 4
        assert outcome.result.quantity == 6
        row = _ledger(product.id)[0]
        assert (row.previous_stock, row.new_stock, row.quantity) == (10, 4, 6)

    def test_missing_product(self, db_session):
        with pytest.raises(ProductNotFoundError) as exc:
            apply_intent(StockIntent(9999, "sale", 1))
        assert exc.value.product_id == 9999
        assert _ledger() == []

    def test_insufficient_stock_writes_nothing(self, db_session, make_product):
        product = make_product(stock=5)

        with pytest.raises(InsufficientStockError):
            apply_intent(StockIntent(product.id, "sale", 6))

        assert _stock(product.id) == 5
        assert _ledger(product.id) == []

    def test_malformed_intent(self, db_session):
        with pytest.raises(IntentValidationError):
            apply_intent(StockIntent(None, "sale", 1))

    def test_party_and_user_recorded(self, db_session, make_product, admin_user):
        product = make_product(stock=1)

        apply_intent(StockIntent(
            product.id, "purchase", 1,
            party={"name": "Acme Foods", "type": "supplier", "id": "7"},
            user_id=admin_user.id,
            user_name="admin",
        ))

        row = _ledger(product.id)[0]
        assert row.to_dict()["party"] == {"name": "Acme Foods", "type": "supplier", "id": "7"}
        assert row.user_id == admin_user.id
        assert row.user_name == "admin"

    def test_unknown_user_id_stored_as_null(self, db_session, make_product):
        product = make_product(stock=1)

        apply_intent(StockIntent(product.id, "purchase", 1, user_id=424242, user_name="ghost"))

        row = _ledger(product.id)[0]
        assert row.user_id is None
        assert row.user_name == "ghost"


# =============================================================================
# LEDGER FAILURE AFTER STOCK COMMIT
# =============================================================================


class TestLedgerFailure:

    def test_stock_kept_and_failure_reported(self, app, db_session, make_product, monkeypatch, caplog):
        product = make_product(stock=10)

        def _boom(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(inventory_service, "append_stock_transition", _boom)

        with caplog.at_level(logging.ERROR):
            outcome = apply_intent(StockIntent(product.id, "sale", 4))

        assert outcome.new_stock == 6
        assert not outcome.ledger_written
        assert isinstance(outcome.ledger_error, LedgerWriteFailed)
        assert outcome.to_dict()["ledger_written"] is False

        assert _stock(product.id) == 6
        assert _ledger(product.id) == []
        assert "LedgerWriteFailed" in caplog.text


# =============================================================================
# STOCK WRITE FAILURE
# =============================================================================


class TestStockWriteFailure:

    @pytest.fixture
    def locked_database(self, monkeypatch):
        def _locked(product_id, expected, new_stock):
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        monkeypatch.setattr(inventory_service, "compare_and_swap_stock", _locked)
        monkeypatch.setattr(concurrency.time, "sleep", lambda _: None)

    def test_intent_fails_without_ledger_row(self, db_session, make_product, locked_database):
        product = make_product(stock=10)

        with pytest.raises(StockWriteFailed) as exc:
            apply_intent(StockIntent(product.id, "sale", 2))

        assert exc.value.reason == "stock_write_failed"
        assert exc.value.product_id == product.id
        assert _stock(product.id) == 10
        assert _ledger(product.id) == []

    def test_batch_reports_failed_write_per_line(self, db_session, make_product, locked_database):
        product = make_product(stock=10)

        batch = apply_batch([StockIntent(product.id, "sale", 2)])

        assert batch.status == "failed"
        assert [e["reason"] for e in batch.errors] == ["stock_write_failed"]
        assert _ledger() == []


# =============================================================================
# CONCURRENCY
# =============================================================================


class TestGuardedWrites:

    def _stale(self, product, stock):
        snap = ProductSnapshot.of(product)
        snap.stock = stock
        return snap

    def test_stale_snapshot_is_re_resolved(self, db_session, make_product):
        product = make_product(stock=3)
        stale = self._stale(product, 10)

        outcome = apply_intent(StockIntent(product.id, "sale", 2), snapshot=stale)

        assert (outcome.previous_stock, outcome.new_stock) == (3, 1)
        assert _stock(product.id) == 1
        row = _ledger(product.id)[0]
        assert (row.previous_stock, row.new_stock) == (3, 1)

    def test_stale_snapshot_cannot_oversell(self, db_session, make_product):
        product = make_product(stock=3)
        stale = self._stale(product, 10)

        with pytest.raises(InsufficientStockError):
            apply_intent(StockIntent(product.id, "sale", 5), snapshot=stale)

        assert _stock(product.id) == 3
        assert _ledger(product.id) == []

    def test_gives_up_after_attempts(self, app, db_session, make_product, monkeypatch):
        product = make_product(stock=10)
        calls = []

        def _always_lose(product_id, expected, new_stock):
            calls.append(expected)
            return False

        monkeypatch.setattr(inventory_service, "compare_and_swap_stock", _always_lose)

        with pytest.raises(StockConflictError) as exc:
            apply_intent(StockIntent(product.id, "sale", 1))

        assert exc.value.reason == "stock_conflict"
        assert len(calls) == app.config["STOCK_WRITE_ATTEMPTS"]
        assert _stock(product.id) == 10
        assert _ledger(product.id) == []

    def test_unguarded_mode_last_writer_wins(self, app, db_session, make_product, monkeypatch):
        monkeypatch.setitem(app.config, "STOCK_GUARDED_WRITES", False)
        product = make_product(stock=3)
        stale = self._stale(product, 10)

        outcome = apply_intent(StockIntent(product.id, "sale", 5), snapshot=stale)

        assert (outcome.previous_stock, outcome.new_stock) == (10, 5)
        assert _stock(product.id) == 5


# =============================================================================
# BATCHES
# =============================================================================


class TestApplyBatch:

    def test_partial_batch(self, db_session, make_product):
        a = make_product(stock=10)
        b = make_product(stock=5)

        batch = apply_batch([
            StockIntent(a.id, "sale", 2),
            StockIntent(b.id, "sale", 1000),
        ])

        assert batch.status == "partial"
        assert _stock(a.id) == 8
        assert _stock(b.id) == 5
        assert len(_ledger()) == 1
        assert len(batch.errors) == 1
        err = batch.errors[0]
        assert err["line"] == 1
        assert err["product_id"] == b.id
        assert err["reason"] == "insufficient_stock"

    def test_all_lines_ok(self, db_session, make_product):
        a = make_product(stock=10)
        b = make_product(stock=10)

        batch = apply_batch([StockIntent(a.id, "sale", 1), StockIntent(b.id, "sale", 2)])

        assert batch.status == "ok"
        assert batch.errors == []
        assert [i for i, _ in batch.outcomes] == [0, 1]
        assert batch.to_dict()["status"] == "ok"

    def test_all_lines_fail(self, db_session, make_product):
        a = make_product(stock=1)

        batch = apply_batch([StockIntent(a.id, "sale", 5), StockIntent(777, "sale", 1)])

        assert batch.status == "failed"
        assert [e["reason"] for e in batch.errors] == ["insufficient_stock", "not_found"]
        assert _ledger() == []

    def test_same_product_lines_compound(self, db_session, make_product):
        a = make_product(stock=10)

        batch = apply_batch([StockIntent(a.id, "sale", 3), StockIntent(a.id, "sale", 4)])

        assert batch.status == "ok"
        assert _stock(a.id) == 3
        rows = _ledger(a.id)
        assert [(r.previous_stock, r.new_stock) for r in rows] == [(10, 7), (7, 3)]

    def test_malformed_line_reported(self, db_session, make_product):
        a = make_product(stock=10)

        batch = apply_batch([StockIntent(None, "sale", 1), StockIntent(a.id, "sale", "two")])

        assert batch.status == "failed"
        assert [e["reason"] for e in batch.errors] == ["validation_error", "validation_error"]
        assert _stock(a.id) == 10

    def test_outcome_for_line(self, db_session, make_product):
        a = make_product(stock=10)

        batch = apply_batch([StockIntent(999, "sale", 1), StockIntent(a.id, "sale", 1)])

        assert batch.outcome_for_line(0) is None
        assert batch.outcome_for_line(1).new_stock == 9
