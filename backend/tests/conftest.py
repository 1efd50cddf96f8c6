"""
Pytest fixtures for the kirana backend tests.

Provides an in-memory application, a clean database per test, the admin
auth header and small factories for customers and products.
"""

import pytest

from kirana import create_app
from kirana.extensions import db
from kirana.services import catalog_service, customer_service

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
        'DEFAULT_MILK_PRICE': '60',
    })

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
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_TOKEN)


@pytest.fixture
def make_customer(db_session):
    """Factory: make_customer(name="Asha", phone="9876500001")."""
    counter = {"n": 0}

    def _make(name=None, phone=None, **extra):
        counter["n"] += 1
        payload = {
            "name": name or f"Customer {counter['n']}",
            "phone": phone or f"98765{counter['n']:05d}",
            **extra,
        }
        return customer_service.create_customer(payload)

    return _make


@pytest.fixture
def make_product(db_session):
    """Factory: make_product(stock=10, tiers=[(1, 80), (5, 70)])."""
    def _make(name="Atta 1kg", stock=10, tiers=((1, 80), (5, 70)), variant="v1", **extra):
        return catalog_service.create_product(
            name=name,
            stock_quantity=stock,
            variants=[{
                "id": variant,
                "label": "1 unit",
                "priceTiers": [{"minQty": q, "price": p} for q, p in tiers],
            }],
            **extra,
        )

    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
