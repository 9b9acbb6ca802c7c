"""
Purchase order workflow tests.

Verifies:
- Receipt restocks products once and writes inflow entries
- Only pending orders can be edited, cancelled or deleted
- A delete racing a receipt refuses instead of erroring
- Creation validation (order number, supplier, items, expected delivery)
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from pharmapos.errors import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    OperationFailedError,
)
from pharmapos.models import PurchaseOrder, StockLedgerEntry
from pharmapos.models.inventory import ENTRY_INFLOW
from pharmapos.services import catalog_service
from pharmapos.services import purchase_order_service as po_service


def _create(supplier, product, *, order_number="PO-001", quantity=20, unit_price_cents=100, **extra):
    return po_service.create_purchase_order(
        order_number=order_number,
        supplier=supplier.id,
        items=[{
            "product_id": product.id,
            "product_name": product.name,
            "quantity": quantity,
            "unit_price_cents": unit_price_cents,
            **extra,
        }],
        expected_delivery_date="2026-11-01",
    )


class TestCreatePurchaseOrder:

    def test_create_pending(self, db_session, supplier, paracetamol):
        po = _create(supplier, paracetamol)
        assert po.status == "pending"
        assert po.total_amount_cents == 2000
        assert po.order_date is not None
        assert po.delivery_date is None
        assert po.lines[0].line_total_cents == 2000

    def test_supplier_by_name(self, db_session, supplier, paracetamol):
        po = po_service.create_purchase_order(
            order_number="PO-NAME",
            supplier="MedSupply Ltd",
            items=[{"product_id": paracetamol.id, "product_name": "Paracetamol", "quantity": 1, "unit_price_cents": 10}],
            expected_delivery_date="2026-11-01",
        )
        assert po.supplier_id == supplier.id

    def test_unknown_supplier(self, db_session, paracetamol):
        with pytest.raises(NotFoundError):
            po_service.create_purchase_order(
                order_number="PO-X",
                supplier=31337,
                items=[{"product_id": paracetamol.id, "product_name": "P", "quantity": 1, "unit_price_cents": 10}],
                expected_delivery_date="2026-11-01",
            )

    def test_duplicate_order_number(self, db_session, supplier, paracetamol):
        _create(supplier, paracetamol)
        with pytest.raises(ConflictError):
            _create(supplier, paracetamol)

    @pytest.mark.parametrize("items", [
        [],
        [{"product_id": 1, "quantity": 1, "unit_price_cents": 10}],
        [{"product_id": 1, "product_name": "X", "quantity": 0, "unit_price_cents": 10}],
    ])
    def test_invalid_items(self, db_session, supplier, items):
        with pytest.raises(InvalidInputError):
            po_service.create_purchase_order(
                order_number="PO-BAD", supplier=supplier.id, items=items, expected_delivery_date="2026-11-01",
            )

    def test_expected_delivery_required(self, db_session, supplier, paracetamol):
        with pytest.raises(InvalidInputError):
            po_service.create_purchase_order(
                order_number="PO-NODATE",
                supplier=supplier.id,
                items=[{"product_id": paracetamol.id, "product_name": "P", "quantity": 1, "unit_price_cents": 10}],
                expected_delivery_date=None,
            )


class TestReceivePurchaseOrder:

    def test_receipt_restocks_and_writes_inflow(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)

        received = po_service.update_purchase_order(po.id, {"status": "received"}, actor_user_id=admin.id)

        assert received.status == "received"
        assert received.delivery_date is not None
        assert received.received_by_user_id == admin.id
        db_session.refresh(paracetamol)
        assert paracetamol.quantity == 30

        entries = db_session.query(StockLedgerEntry).filter_by(reference="PO-001").all()
        assert len(entries) == 1
        assert entries[0].entry_type == ENTRY_INFLOW
        assert entries[0].quantity == 20
        assert entries[0].notes == "Received from MedSupply Ltd"

    def test_second_receipt_is_noop(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        po_service.receive_purchase_order(po.id, actor_user_id=admin.id)
        po_service.receive_purchase_order(po.id, actor_user_id=admin.id)

        db_session.refresh(paracetamol)
        assert paracetamol.quantity == 30
        assert db_session.query(StockLedgerEntry).filter_by(reference="PO-001").count() == 1

    def test_receipt_overwrites_batch_and_expiry(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol, batch_number="B-2027", expiry_date="2027-06-30")
        po_service.receive_purchase_order(po.id, actor_user_id=admin.id)

        db_session.refresh(paracetamol)
        assert paracetamol.batch_number == "B-2027"
        assert paracetamol.expiry_date.isoformat() == "2027-06-30"

    def test_receipt_skips_deleted_product(self, db_session, supplier, admin, paracetamol, amoxicillin):
        po = po_service.create_purchase_order(
            order_number="PO-MIX",
            supplier=supplier.id,
            items=[
                {"product_id": paracetamol.id, "product_name": paracetamol.name, "quantity": 5, "unit_price_cents": 100},
                {"product_id": amoxicillin.id, "product_name": amoxicillin.name, "quantity": 5, "unit_price_cents": 100},
            ],
            expected_delivery_date="2026-11-01",
        )
        catalog_service.delete_product(amoxicillin.id)

        received = po_service.receive_purchase_order(po.id, actor_user_id=admin.id)

        assert received.status == "received"
        db_session.refresh(paracetamol)
        assert paracetamol.quantity == 15
        assert db_session.query(StockLedgerEntry).filter_by(reference="PO-MIX").count() == 1

    def test_cancelled_order_cannot_be_received(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        po_service.cancel_purchase_order(po.id, actor_user_id=admin.id)

        with pytest.raises(InvalidStateError):
            po_service.receive_purchase_order(po.id, actor_user_id=admin.id)
        db_session.refresh(paracetamol)
        assert paracetamol.quantity == 10


class TestEditCancelDelete:

    def test_edit_pending(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        updated = po_service.update_purchase_order(
            po.id, {"notes": "Call before delivery", "expected_delivery_date": "2026-12-01"}, actor_user_id=admin.id,
        )
        assert updated.notes == "Call before delivery"
        assert updated.expected_delivery_date.isoformat() == "2026-12-01"
        assert updated.status == "pending"

    def test_edit_received_rejected(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        po_service.receive_purchase_order(po.id, actor_user_id=admin.id)
        with pytest.raises(InvalidStateError):
            po_service.update_purchase_order(po.id, {"notes": "late edit"}, actor_user_id=admin.id)

    def test_unknown_field_rejected(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        with pytest.raises(InvalidInputError):
            po_service.update_purchase_order(po.id, {"total_amount_cents": 1}, actor_user_id=admin.id)

    def test_invalid_status_rejected(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        with pytest.raises(InvalidInputError):
            po_service.update_purchase_order(po.id, {"status": "shipped"}, actor_user_id=admin.id)

    def test_delete_pending(self, db_session, supplier, paracetamol):
        po = _create(supplier, paracetamol)
        po_service.delete_purchase_order(po.id)
        assert db_session.query(PurchaseOrder).count() == 0

    def test_delete_received_rejected(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        po_service.receive_purchase_order(po.id, actor_user_id=admin.id)

        with pytest.raises(InvalidStateError):
            po_service.delete_purchase_order(po.id)
        assert db_session.query(PurchaseOrder).count() == 1

    def test_delete_loses_to_concurrent_receipt(self, db_session, monkeypatch, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        po_id = po.id
        real_delete = po_service._delete_locked
        calls = []

        def delete_locked(session, order_id):
            calls.append(order_id)
            if len(calls) == 1:
                # Another till receives the order before the DELETE lands
                po_service.receive_purchase_order(order_id, actor_user_id=admin.id)
                raise StaleDataError("DELETE on purchase_orders expected to delete 1 row(s); 0 were matched")
            return real_delete(session, order_id)

        monkeypatch.setattr(po_service, "_delete_locked", delete_locked)

        with pytest.raises(InvalidStateError):
            po_service.delete_purchase_order(po_id)

        assert calls == [po_id, po_id]
        assert db_session.get(PurchaseOrder, po_id).status == "received"
        db_session.refresh(paracetamol)
        assert paracetamol.quantity == 30

    def test_delete_conflict_that_never_clears(self, db_session, monkeypatch, supplier, paracetamol):
        po = _create(supplier, paracetamol)
        po_id = po.id
        calls = []

        def delete_locked(session, order_id):
            calls.append(order_id)
            raise StaleDataError("version mismatch")

        monkeypatch.setattr(po_service, "_delete_locked", delete_locked)

        with pytest.raises(OperationFailedError):
            po_service.delete_purchase_order(po_id)

        assert len(calls) == 3
        assert db_session.get(PurchaseOrder, po_id).status == "pending"

    def test_cancel_only_pending(self, db_session, supplier, admin, paracetamol):
        po = _create(supplier, paracetamol)
        po_service.receive_purchase_order(po.id, actor_user_id=admin.id)
        with pytest.raises(InvalidStateError):
            po_service.cancel_purchase_order(po.id, actor_user_id=admin.id)

    def test_list_by_status(self, db_session, supplier, admin, paracetamol):
        _create(supplier, paracetamol, order_number="PO-A")
        received = _create(supplier, paracetamol, order_number="PO-B")
        po_service.receive_purchase_order(received.id, actor_user_id=admin.id)

        assert [po.order_number for po in po_service.list_purchase_orders(status="pending")] == ["PO-A"]
        assert len(po_service.list_purchase_orders()) == 2
