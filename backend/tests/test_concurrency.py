"""
Concurrent sales against one product.

Runs on a file-backed SQLite database so that each worker thread has its own
connection. Whatever interleaving occurs, stock never goes negative and the
ledger always reconciles with the stored quantity.
"""

import threading

import pytest

from pharmapos import create_app
from pharmapos.errors import InsufficientStockError, PaymentFailedError
from pharmapos.extensions import db
from pharmapos.models import Company, Product, StockLedgerEntry, Transaction, User
from pharmapos.services.ledger_service import verify_ledger
from pharmapos.services.sales_service import record_sale

WORKERS = 8
STARTING_STOCK = 5


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'WRITE_RETRY_ATTEMPTS': 10,
        'WRITE_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_concurrent_sales_never_oversell(file_app):
    with file_app.app_context():
        user = User(name="Till 1", email="till1@pharmapos.test", role="cashier")
        product = Product(
            sku="ORS-1", barcode="ORS-1", name="Oral Rehydration Salts", category="Other",
            unit_price_cents=150, quantity=STARTING_STOCK, opening_quantity=STARTING_STOCK,
        )
        db.session.add_all([Company(), user, product])
        db.session.commit()
        user_id, product_id = user.id, product.id

    outcomes = []
    unexpected = []
    lock = threading.Lock()
    start = threading.Barrier(WORKERS)

    def worker():
        start.wait()
        with file_app.app_context():
            try:
                record_sale(
                    items=[{"product_id": product_id, "quantity": 1, "unit_price_cents": 150}],
                    actor_user_id=user_id,
                    payment_method="cash",
                )
                result = "sold"
            except InsufficientStockError:
                result = "out_of_stock"
            except PaymentFailedError:
                result = "failed"
            except Exception as exc:  # surfaced by the assertion below
                with lock:
                    unexpected.append(repr(exc))
                return
            finally:
                db.session.remove()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert unexpected == []
    assert len(outcomes) == WORKERS

    sold = outcomes.count("sold")
    assert 1 <= sold <= STARTING_STOCK

    with file_app.app_context():
        product = db.session.get(Product, product_id)
        assert product.quantity == STARTING_STOCK - sold
        assert product.quantity >= 0
        assert db.session.query(Transaction).count() == sold
        assert db.session.query(StockLedgerEntry).count() == sold
        assert verify_ledger() == []
