"""
Pytest fixtures for back-office tests.

Provides test database setup, two stores for tenant isolation checks,
products, and small factories for customers/orders/returns.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Store, Product
from backoffice.services import order_service, return_service
from backoffice.services.customer_service import ContactBundle


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CONCURRENCY_RETRY_ATTEMPTS': 3,
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


@pytest.fixture(scope='function')
def store_a(db_session):
    """Create Store A (first tenant)."""
    store = Store(name="Store A - Lahore", default_currency="PKR")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    """Create Store B (second tenant)."""
    store = Store(name="Store B - Karachi", default_currency="PKR")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def product_a(db_session, store_a):
    """Product in Store A priced at 50.00."""
    product = Product(
        store_id=store_a.id,
        name="Blue Kurta",
        price_cents=5000,
        stock_quantity=20,
        reorder_threshold=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, store_b):
    """Product in Store B."""
    product = Product(
        store_id=store_b.id,
        name="Green Shawl",
        price_cents=2000,
        stock_quantity=20,
        reorder_threshold=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def place_order(db_session):
    """Factory: create an order through the order service."""
    def _place(store, product, quantity=1, *, name="Ali Khan", email="ali@example.com", phone=None, address=None):
        bundle = ContactBundle(name=name, email=email, phone=phone, address=address)
        return order_service.create_order(store.id, bundle, product.id, quantity)
    return _place


@pytest.fixture(scope='function')
def file_return(db_session):
    """Factory: create a return through the return service."""
    def _file(order, quantity=1, reason="Wrong size"):
        return return_service.create_return(order.store_id, order.id, reason, quantity)
    return _file


def tenant_headers(store_id, actor_id=None) -> dict:
    """Helper to create the upstream tenant headers."""
    headers = {'X-Store-Id': str(store_id)}
    if actor_id:
        headers['X-Actor-Id'] = actor_id
    return headers


@pytest.fixture(scope='function')
def headers_a(store_a):
    return tenant_headers(store_a.id, actor_id="manager-a")


@pytest.fixture(scope='function')
def headers_b(store_b):
    return tenant_headers(store_b.id, actor_id="manager-b")
