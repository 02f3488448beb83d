"""
Stock transition API and ledger CLI tests.

Verifies:
- Ledger query parameters (snake_case and camelCase)
- Direct stock intents and their error codes
- `flask ledger verify` flags rows that break the transition rules
"""

from datetime import datetime

from zors.extensions import db
from zors.models import Product, StockTransition
from zors.services.inventory_service import StockIntent, apply_intent


def _stock(product_id):
    return db.session.get(Product, product_id, populate_existing=True).stock


# =============================================================================
# READ
# =============================================================================


class TestListTransitions:

    def test_filter_by_product_and_type(self, client, cashier_headers, make_product):
        a = make_product(stock=10)
        b = make_product(stock=10)
        apply_intent(StockIntent(a.id, "sale", 1))
        apply_intent(StockIntent(a.id, "purchase", 5))
        apply_intent(StockIntent(b.id, "sale", 2))

        snake = client.get(
            f"/api/stock-transitions?product_id={a.id}&type=sale", headers=cashier_headers
        ).get_json()
        camel = client.get(
            f"/api/stock-transitions?productId={a.id}&transaction_type=sale", headers=cashier_headers
        ).get_json()

        assert snake == camel
        assert len(snake["transitions"]) == 1
        assert snake["transitions"][0]["product_id"] == a.id
        assert snake["transitions"][0]["transaction_type"] == "sale"

    def test_date_range(self, client, cashier_headers, db_session):
        for day in (1, 15, 30):
            db_session.add(StockTransition(
                product_id=1, product_name="Tea", transaction_type="purchase",
                quantity=1, previous_stock=0, new_stock=1,
                created_at=datetime(2024, 4, day, 9, 0),
            ))
        db_session.commit()

        body = client.get(
            "/api/stock-transitions?startDate=2024-04-10&endDate=2024-04-30", headers=cashier_headers
        ).get_json()

        assert [t["created_at"] for t in body["transitions"]] == [
            "2024-04-30T09:00:00Z",
            "2024-04-15T09:00:00Z",
        ]

    def test_pagination_params(self, client, cashier_headers, make_product):
        product = make_product(stock=0)
        for _ in range(3):
            apply_intent(StockIntent(product.id, "purchase", 1))

        body = client.get("/api/stock-transitions?page=2&limit=2", headers=cashier_headers).get_json()

        assert len(body["transitions"]) == 1
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    def test_invalid_type(self, client, cashier_headers):
        resp = client.get("/api/stock-transitions?type=gift", headers=cashier_headers)
        assert resp.status_code == 400

    def test_invalid_date(self, client, cashier_headers):
        resp = client.get("/api/stock-transitions?startDate=yesterday", headers=cashier_headers)
        assert resp.status_code == 400

    def test_invalid_product_id(self, client, cashier_headers):
        resp = client.get("/api/stock-transitions?product_id=abc", headers=cashier_headers)
        assert resp.status_code == 400

    def test_get_one(self, client, cashier_headers, make_product):
        product = make_product(stock=3)
        outcome = apply_intent(StockIntent(product.id, "sale", 1))

        resp = client.get(f"/api/stock-transitions/{outcome.transition.id}", headers=cashier_headers)

        assert resp.status_code == 200
        assert resp.get_json()["transition"]["new_stock"] == 2

    def test_get_missing(self, client, cashier_headers):
        assert client.get("/api/stock-transitions/9999", headers=cashier_headers).status_code == 404


# =============================================================================
# DIRECT INTENTS
# =============================================================================


class TestCreateTransition:

    def test_purchase(self, client, manager_headers, make_product):
        product = make_product(stock=2, cost_price_cents=90)

        resp = client.post(
            "/api/stock-transitions",
            json={
                "product_id": product.id,
                "transaction_type": "purchase",
                "quantity": 8,
                "reference": "PO-1042",
                "party": {"name": "Acme Foods", "type": "supplier", "id": 7},
            },
            headers=manager_headers,
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["outcome"]["new_stock"] == 10
        assert body["transition"]["reference"] == "PO-1042"
        assert body["transition"]["party"] == {"name": "Acme Foods", "type": "supplier", "id": "7"}
        assert body["transition"]["user_name"] == "manager"
        assert body["transition"]["total_value_cents"] == 8 * 90
        assert _stock(product.id) == 10

    def test_adjustment_sets_target(self, client, admin_headers, make_product):
        product = make_product(stock=12)

        resp = client.post(
            "/api/stock-transitions",
            json={"product_id": product.id, "transaction_type": "adjustment", "quantity": 5},
            headers=admin_headers,
        )

        assert resp.status_code == 201
        assert resp.get_json()["transition"]["quantity"] == 7
        assert _stock(product.id) == 5

    def test_delete_not_allowed(self, client, admin_headers, make_product):
        product = make_product(stock=4)

        resp = client.post(
            "/api/stock-transitions",
            json={"product_id": product.id, "transaction_type": "delete", "quantity": 4},
            headers=admin_headers,
        )

        assert resp.status_code == 400
        assert resp.get_json()["reason"] == "invalid_transaction_type"
        assert _stock(product.id) == 4

    def test_insufficient_stock(self, client, admin_headers, make_product):
        product = make_product(stock=1)

        resp = client.post(
            "/api/stock-transitions",
            json={"product_id": product.id, "transaction_type": "sale", "quantity": 3},
            headers=admin_headers,
        )

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["reason"] == "insufficient_stock"
        assert body["details"] == {"available": 1, "requested": 3}

    def test_unknown_product(self, client, admin_headers, db_session):
        resp = client.post(
            "/api/stock-transitions",
            json={"product_id": 5555, "transaction_type": "purchase", "quantity": 1},
            headers=admin_headers,
        )

        assert resp.status_code == 404
        assert resp.get_json()["reason"] == "not_found"

    def test_missing_fields(self, client, admin_headers):
        resp = client.post(
            "/api/stock-transitions",
            json={"transaction_type": "purchase"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_cashier_denied(self, client, cashier_headers, make_product):
        product = make_product(stock=1)

        resp = client.post(
            "/api/stock-transitions",
            json={"product_id": product.id, "transaction_type": "purchase", "quantity": 1},
            headers=cashier_headers,
        )

        assert resp.status_code == 403


# =============================================================================
# LEDGER AUDIT COMMAND
# =============================================================================


class TestLedgerVerifyCommand:

    def test_clean_ledger(self, app, make_product):
        product = make_product(stock=5)
        apply_intent(StockIntent(product.id, "sale", 2))
        apply_intent(StockIntent(product.id, "adjustment", 10))

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 0
        assert "Checked 2 transitions, 0 problem(s)" in result.output

    def test_bad_row_flagged(self, app, db_session):
        db_session.add(StockTransition(
            product_id=1, product_name="Tea", transaction_type="sale",
            quantity=2, previous_stock=10, new_stock=9,
        ))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_product_filter(self, app, db_session, make_product):
        product = make_product(stock=5)
        apply_intent(StockIntent(product.id, "sale", 1))
        db_session.add(StockTransition(
            product_id=product.id + 100, product_name="Gone", transaction_type="sale",
            quantity=2, previous_stock=10, new_stock=9,
        ))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify", "--product-id", str(product.id)])

        assert result.exit_code == 0
