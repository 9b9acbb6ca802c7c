"""
Pytest fixtures for PharmaPOS backend tests.

Provides the application on an in-memory database, per-test table cleanup,
users for each role, a supplier and a couple of stocked products.
"""

import pytest

from pharmapos import create_app
from pharmapos.decorators import ACTOR_HEADER
from pharmapos.extensions import db
from pharmapos.models import Product, Supplier, User
from pharmapos.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_OFFICER


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'WRITE_RETRY_BACKOFF': 0,
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
        # Clear all data but keep schema (Core deletes bypass the ORM immutability hooks)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(session, name, email, role):
    user = User(name=name, email=email, role=role, is_active=True)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "Ama Admin", "admin@pharmapos.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def officer(db_session):
    return _make_user(db_session, "Kofi Officer", "officer@pharmapos.test", ROLE_OFFICER)


@pytest.fixture(scope='function')
def cashier(db_session):
    return _make_user(db_session, "Esi Cashier", "cashier@pharmapos.test", ROLE_CASHIER)


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="MedSupply Ltd", email="orders@medsupply.test", city="Accra")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def make_product(session, *, sku, name, quantity, unit_price_cents=500, category="Analgesics", **extra):
    product = Product(
        sku=sku,
        barcode=extra.pop("barcode", f"BC-{sku}"),
        name=name,
        category=category,
        unit_price_cents=unit_price_cents,
        quantity=quantity,
        opening_quantity=quantity,
        **extra,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def paracetamol(db_session):
    """Product with 10 units in stock."""
    return make_product(db_session, sku="PARA-500", name="Paracetamol 500mg", quantity=10, unit_price_cents=500)


@pytest.fixture(scope='function')
def amoxicillin(db_session):
    """Product with 4 units in stock."""
    return make_product(
        db_session, sku="AMOX-250", name="Amoxicillin 250mg", quantity=4,
        unit_price_cents=1250, category="Antibiotics",
    )


def actor_headers(user) -> dict:
    """Helper to identify the acting user on a request."""
    return {ACTOR_HEADER: str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return actor_headers(admin)


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return actor_headers(cashier)


@pytest.fixture(scope='function')
def product_factory(db_session):
    """Create extra products: product_factory(sku=..., name=..., quantity=...)."""
    def _factory(**kwargs):
        return make_product(db_session, **kwargs)
    return _factory
