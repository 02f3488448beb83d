"""
Pytest fixtures for ZORS backend tests.

Provides test database setup, staff users with session tokens, and test client.
"""

import pytest
from zors import create_app
from zors.config import TestConfig
from zors.extensions import db
from zors.models import Product, User
from zors.services.auth_service import hash_password
from zors.services import session_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema (Core deletes skip the ledger's ORM guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@zors.test",
        password_hash=hash_password(PASSWORD),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _make_user(db_session, "manager", "manager")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return _make_user(db_session, "cashier", "cashier")


@pytest.fixture(scope='function')
def admin_token(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return token


@pytest.fixture(scope='function')
def manager_token(manager_user):
    _, token = session_service.create_session(manager_user.id)
    return token


@pytest.fixture(scope='function')
def cashier_token(cashier_user):
    _, token = session_service.create_session(cashier_user.id)
    return token


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory for products with a given stock.

    Inserted directly (no ledger row) so tests start from a known stock value.
    """
    counter = {"n": 0}

    def _make(name=None, stock=10, cost_price_cents=100, selling_price_cents=250, **kwargs):
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            category=kwargs.pop("category", "General"),
            cost_price_cents=cost_price_cents,
            selling_price_cents=selling_price_cents,
            stock=stock,
            barcode=kwargs.pop("barcode", f"TEST{counter['n']:09d}"),
            **kwargs,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


def auth_headers(token):
    """Create authorization headers."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_headers(admin_token):
    return auth_headers(admin_token)


@pytest.fixture(scope='function')
def manager_headers(manager_token):
    return auth_headers(manager_token)


@pytest.fixture(scope='function')
def cashier_headers(cashier_token):
    return auth_headers(cashier_token)
