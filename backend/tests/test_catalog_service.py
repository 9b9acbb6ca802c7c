"""
Product catalog tests.
"""

from datetime import timedelta

import pytest

from pharmapos.errors import ConflictError, InvalidInputError, InvalidStateError, NotFoundError
from pharmapos.models import Product
from pharmapos.services import catalog_service
from pharmapos.time_utils import utcnow


def _payload(**overrides):
    payload = {
        "sku": "IBU-200",
        "barcode": "6001234500017",
        "name": "Ibuprofen 200mg",
        "category": "Analgesics",
        "unit_price_cents": 350,
        "quantity": 40,
        "expiry_date": "2027-01-31",
    }
    payload.update(overrides)
    return payload


class TestCreateUpdateDelete:

    def test_create_sets_opening_quantity(self, db_session):
        product = catalog_service.create_product(_payload())
        assert product.quantity == 40
        assert product.opening_quantity == 40
        assert product.expiry_date.isoformat() == "2027-01-31"

    def test_create_requires_fields(self, db_session):
        with pytest.raises(InvalidInputError):
            catalog_service.create_product({"name": "Nameless"})

    def test_negative_price_rejected(self, db_session):
        with pytest.raises(InvalidInputError):
            catalog_service.create_product(_payload(unit_price_cents=-1))

    def test_duplicate_barcode(self, db_session):
        catalog_service.create_product(_payload())
        with pytest.raises(ConflictError):
            catalog_service.create_product(_payload(sku="OTHER"))

    def test_update_fields(self, db_session, paracetamol):
        product = catalog_service.update_product(paracetamol.id, {"unit_price_cents": 650, "batch_number": "B7"})
        assert product.unit_price_cents == 650
        assert product.batch_number == "B7"

    def test_quantity_not_editable(self, db_session, paracetamol):
        with pytest.raises(InvalidStateError):
            catalog_service.update_product(paracetamol.id, {"quantity": 99})
        db_session.refresh(paracetamol)
        assert paracetamol.quantity == 10

    def test_delete(self, db_session, paracetamol):
        product_id = paracetamol.id
        catalog_service.delete_product(product_id)
        assert db_session.get(Product, product_id) is None

    def test_get_missing(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.get_product(db_session, 12345)


class TestQuantity:

    def test_update_quantity(self, db_session, paracetamol):
        catalog_service.update_quantity(db_session, paracetamol.id, 3)
        db_session.commit()
        db_session.refresh(paracetamol)
        assert paracetamol.quantity == 3

    def test_negative_quantity_rejected(self, db_session, paracetamol):
        with pytest.raises(InvalidStateError):
            catalog_service.update_quantity(db_session, paracetamol.id, -1)


class TestLookup:

    def test_barcode_lookup(self, db_session, paracetamol):
        assert catalog_service.get_product_by_barcode("BC-PARA-500").id == paracetamol.id
        with pytest.raises(NotFoundError):
            catalog_service.get_product_by_barcode("nope")

    def test_search_by_name_or_barcode(self, db_session, paracetamol, amoxicillin):
        assert [p.id for p in catalog_service.search_products("amox")] == [amoxicillin.id]
        assert [p.id for p in catalog_service.search_products("BC-PARA")] == [paracetamol.id]
        assert catalog_service.search_products("   ") == []

    def test_list_by_category(self, db_session, paracetamol, amoxicillin):
        assert [p.id for p in catalog_service.list_products(category="Antibiotics")] == [amoxicillin.id]
        assert len(catalog_service.list_products()) == 2

    def test_stock_alerts(self, db_session, product_factory):
        today = utcnow().date()
        low = product_factory(sku="LOW", name="Low Stock", quantity=3)
        product_factory(sku="OK", name="Plenty", quantity=500, expiry_date=today + timedelta(days=400))
        soon = product_factory(sku="SOON", name="Expiring", quantity=100, expiry_date=today + timedelta(days=30))
        gone = product_factory(sku="GONE", name="Expired", quantity=100, expiry_date=today - timedelta(days=1))

        alerts = catalog_service.stock_alerts(threshold=20, within_days=90)

        assert [p["id"] for p in alerts["low_stock"]] == [low.id]
        expiring = {p["id"]: p for p in alerts["expiring"]}
        assert set(expiring) == {soon.id, gone.id}
        assert expiring[gone.id]["expired"] is True
        assert expiring[soon.id]["days_left"] == 30
