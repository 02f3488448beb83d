"""
Stock ledger tests.

Verifies:
- Append computes total value and validates type/quantity
- Query filters combine with AND; dates are inclusive
- Newest-first ordering and pagination
- Rows cannot be updated or deleted through the ORM
"""

from datetime import datetime

import pytest

from zors.models import LedgerImmutableError, StockTransition
from zors.services.inventory_service import StockIntent, apply_intent
from zors.services.ledger_service import (
    append_stock_transition,
    list_stock_transitions,
    parse_date_bound,
)
from zors.validation import ValidationError


def _row(db_session, *, product_id=1, transaction_type="purchase", quantity=1, created_at=None, **kwargs):
    previous = kwargs.pop("previous_stock", 0)
    new = kwargs.pop("new_stock", previous + quantity)
    row = StockTransition(
        product_id=product_id,
        product_name=f"Product {product_id}",
        transaction_type=transaction_type,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new,
        unit_price_cents=0,
        total_value_cents=0,
        created_at=created_at or datetime(2024, 5, 1, 12, 0, 0),
        **kwargs,
    )
    db_session.add(row)
    db_session.commit()
    return row


class TestAppend:

    def test_total_value(self, db_session):
        row = append_stock_transition(
            product_id=1,
            product_name="Tea",
            transaction_type="sale",
            quantity=3,
            previous_stock=10,
            new_stock=7,
            unit_price_cents=199,
        )
        db_session.commit()
        assert row.id is not None
        assert row.total_value_cents == 597

    def test_party_is_optional(self, db_session):
        row = append_stock_transition(
            product_id=1, product_name="Tea", transaction_type="purchase",
            quantity=1, previous_stock=0, new_stock=1,
        )
        db_session.commit()
        assert row.to_dict()["party"] is None
        assert row.unit_price_cents == 0

    def test_rejects_unknown_type(self, db_session):
        with pytest.raises(ValueError):
            append_stock_transition(
                product_id=1, product_name="Tea", transaction_type="gift",
                quantity=1, previous_stock=0, new_stock=1,
            )

    def test_rejects_negative_quantity(self, db_session):
        with pytest.raises(ValueError):
            append_stock_transition(
                product_id=1, product_name="Tea", transaction_type="sale",
                quantity=-1, previous_stock=0, new_stock=1,
            )


class TestImmutability:

    def test_update_rejected(self, db_session):
        row = _row(db_session)
        row.quantity = 99
        with pytest.raises(LedgerImmutableError):
            db_session.flush()
        db_session.rollback()

    def test_delete_rejected(self, db_session):
        row = _row(db_session)
        db_session.delete(row)
        with pytest.raises(LedgerImmutableError):
            db_session.flush()
        db_session.rollback()
        assert db_session.query(StockTransition).count() == 1


class TestQuery:

    def test_newest_first(self, db_session):
        old = _row(db_session, created_at=datetime(2024, 1, 1))
        new = _row(db_session, created_at=datetime(2024, 6, 1))

        result = list_stock_transitions()

        assert [t["id"] for t in result["transitions"]] == [new.id, old.id]

    def test_same_timestamp_tie_broken_by_id(self, db_session):
        first = _row(db_session)
        second = _row(db_session)

        result = list_stock_transitions()

        assert [t["id"] for t in result["transitions"]] == [second.id, first.id]

    def test_filters_combine(self, db_session):
        match = _row(db_session, product_id=1, transaction_type="sale", previous_stock=5, new_stock=4)
        _row(db_session, product_id=1, transaction_type="purchase")
        _row(db_session, product_id=2, transaction_type="sale", previous_stock=5, new_stock=4)

        result = list_stock_transitions(product_id=1, transaction_type="sale")

        assert [t["id"] for t in result["transitions"]] == [match.id]
        assert result["pagination"]["total"] == 1

    def test_all_type_means_no_filter(self, db_session):
        _row(db_session, transaction_type="sale", previous_stock=5, new_stock=4)
        _row(db_session, transaction_type="purchase")

        assert list_stock_transitions(transaction_type="all")["pagination"]["total"] == 2

    def test_invalid_type_rejected(self, db_session):
        with pytest.raises(ValidationError):
            list_stock_transitions(transaction_type="gift")

    def test_date_bounds_inclusive(self, db_session):
        _row(db_session, created_at=datetime(2024, 4, 30, 23, 59, 59))
        on_start = _row(db_session, created_at=datetime(2024, 5, 1, 0, 0, 0))
        on_end = _row(db_session, created_at=datetime(2024, 5, 31, 23, 0, 0))
        _row(db_session, created_at=datetime(2024, 6, 1, 0, 0, 1))

        result = list_stock_transitions(
            start_date=parse_date_bound("2024-05-01"),
            end_date=parse_date_bound("2024-05-31", end=True),
        )

        assert {t["id"] for t in result["transitions"]} == {on_start.id, on_end.id}

    def test_only_start_bound(self, db_session):
        _row(db_session, created_at=datetime(2024, 1, 1))
        later = _row(db_session, created_at=datetime(2024, 3, 1))

        result = list_stock_transitions(start_date=datetime(2024, 2, 1))

        assert [t["id"] for t in result["transitions"]] == [later.id]

    def test_only_end_bound(self, db_session):
        earlier = _row(db_session, created_at=datetime(2024, 1, 1))
        _row(db_session, created_at=datetime(2024, 3, 1))

        result = list_stock_transitions(end_date=datetime(2024, 2, 1))

        assert [t["id"] for t in result["transitions"]] == [earlier.id]

    def test_bounds_include_rows_written_by_coordinator(self, db_session, make_product):
        product = make_product(stock=10)
        outcome = apply_intent(StockIntent(product.id, "sale", 3))
        db_session.expire_all()
        row = db_session.get(StockTransition, outcome.transition.id)

        from_start = list_stock_transitions(start_date=row.created_at)
        exact = list_stock_transitions(start_date=row.created_at, end_date=row.created_at)

        assert [t["id"] for t in from_start["transitions"]] == [row.id]
        assert [t["id"] for t in exact["transitions"]] == [row.id]

    def test_bare_start_date_includes_same_day_rows(self, db_session, make_product):
        product = make_product(stock=10)
        outcome = apply_intent(StockIntent(product.id, "sale", 1))
        db_session.expire_all()
        row = db_session.get(StockTransition, outcome.transition.id)
        day = row.created_at.date().isoformat()

        result = list_stock_transitions(
            start_date=parse_date_bound(day),
            end_date=parse_date_bound(day, end=True),
        )

        assert [t["id"] for t in result["transitions"]] == [row.id]

    def test_pagination(self, db_session):
        for _ in range(5):
            _row(db_session)

        result = list_stock_transitions(page=2, limit=2)

        assert len(result["transitions"]) == 2
        assert result["pagination"] == {"page": 2, "limit": 2, "total": 5, "pages": 3}

    def test_limit_clamped(self, db_session):
        _row(db_session)
        assert list_stock_transitions(limit=10_000)["pagination"]["limit"] == 500
        assert list_stock_transitions(page=0)["pagination"]["page"] == 1

    def test_empty(self, db_session):
        result = list_stock_transitions()
        assert result["transitions"] == []
        assert result["pagination"]["pages"] == 0


class TestDateBounds:

    def test_end_of_day_for_bare_date(self):
        assert parse_date_bound("2024-05-01", end=True) == datetime(2024, 5, 1, 23, 59, 59, 999999)

    def test_datetime_kept_as_is(self):
        assert parse_date_bound("2024-05-01T10:30:00Z", end=True) == datetime(2024, 5, 1, 10, 30)

    def test_blank_is_none(self):
        assert parse_date_bound("") is None
        assert parse_date_bound(None) is None

    def test_garbage_rejected(self):
        with pytest.raises(ValidationError):
            parse_date_bound("last tuesday")
