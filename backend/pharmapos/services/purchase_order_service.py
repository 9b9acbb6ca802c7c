# Overview: Purchase order workflow; receipt restocks products and writes inflow ledger entries.

"""
Purchase Order Service

LIFECYCLE:
1. pending: created, editable, deletable
2. received: stock increased and ledger written for every line (terminal)
3. cancelled: closed without stock effect (terminal)

RECEIPT GUARD: stock effects run only when the incoming status is "received"
and the stored status is not already "received", so marking an order
received twice restocks once. The order row carries a version counter, so two
concurrent receipts cannot both commit.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConflictError, InvalidStateError, NotFoundError, OperationFailedError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderLine, User
from ..models.inventory import ENTRY_INFLOW
from ..models.purchasing import (
    PO_STATUSES,
    STATUS_CANCELLED,
    STATUS_PENDING,
    STATUS_RECEIVED,
    TERMINAL_STATUSES,
)
from ..time_utils import parse_iso_date, utcnow
from ..validation import (
    ValidationError,
    coerce_int,
    require_non_negative_cents,
    require_positive_quantity,
)
from . import catalog_service, ledger_service, supplier_service, user_service
from .concurrency import UnitOfWork, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

# Fields a caller may change on a pending order alongside a status change
EDITABLE_FIELDS = {"expected_delivery_date", "notes"}


def _parse_date(value, field: str, *, required: bool = False):
    if value in (None, ""):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")
    if parsed is None and required:
        raise ValidationError(f"{field} is required")
    return parsed


def _build_lines(items) -> list[PurchaseOrderLine]:
    if not items or not isinstance(items, list):
        raise ValidationError("At least one item is required")

    lines = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {idx} must be an object")
        missing = [f for f in ("product_id", "product_name", "quantity", "unit_price_cents") if item.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Invalid item data: item {idx} missing {', '.join(missing)}")

        quantity = require_positive_quantity(item["quantity"])
        unit_price = require_non_negative_cents(item["unit_price_cents"], "unit_price_cents")
        lines.append(PurchaseOrderLine(
            position=idx,
            product_id=coerce_int(item["product_id"], "product_id"),
            product_name=str(item["product_name"]).strip(),
            quantity=quantity,
            unit_price_cents=unit_price,
            line_total_cents=quantity * unit_price,
            batch_number=(str(item["batch_number"]).strip() or None) if item.get("batch_number") else None,
            expiry_date=_parse_date(item.get("expiry_date"), f"items[{idx}].expiry_date"),
        ))
    return lines


def create_purchase_order(
    *,
    order_number: str,
    supplier,
    items,
    expected_delivery_date,
    created_by_user_id: int | None = None,
    total_amount_cents: int | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a pending purchase order.

    Args:
        order_number: Unique order number (required)
        supplier: Supplier id, or exact supplier name
        items: [{product_id, product_name, quantity, unit_price_cents, batch_number?, expiry_date?}]
        expected_delivery_date: ISO date (required)
        total_amount_cents: Defaults to the sum of line totals

    Raises:
        ValidationError: missing/invalid fields
        NotFoundError: supplier not found
        ConflictError: order number already used
    """
    order_number = (order_number or "").strip()
    if not order_number:
        raise ValidationError("Order number is required")
    if supplier in (None, ""):
        raise ValidationError("Supplier is required")

    lines = _build_lines(items)
    expected = _parse_date(expected_delivery_date, "expected_delivery_date", required=True)

    supplier_row = supplier_service.resolve_supplier(db.session, supplier)
    if supplier_row is None:
        raise NotFoundError("Supplier not found", details={"supplier": supplier})

    if db.session.query(PurchaseOrder.id).filter_by(order_number=order_number).first() is not None:
        raise ConflictError(f"Order number {order_number} already exists", details={"order_number": order_number})

    if total_amount_cents is None:
        total = sum(line.line_total_cents for line in lines)
    else:
        total = require_non_negative_cents(total_amount_cents, "total_amount_cents")

    po = PurchaseOrder(
        order_number=order_number,
        supplier_id=supplier_row.id,
        total_amount_cents=total,
        status=STATUS_PENDING,
        order_date=utcnow(),
        expected_delivery_date=expected,
        notes=notes,
        created_by_user_id=created_by_user_id,
    )
    po.lines = lines
    db.session.add(po)
    db.session.commit()
    logger.info("Created purchase order %s for supplier %s", po.order_number, supplier_row.name)
    return po


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if po is None:
        raise NotFoundError(f"PO {po_id} not found", details={"purchase_order_id": po_id})
    return po


def list_purchase_orders(status: str | None = None) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder)
    if status:
        q = q.filter(PurchaseOrder.status == status)
    return q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def _receive_lines(session, po: PurchaseOrder, actor: User) -> int:
    """Restock every line; returns the number of lines applied."""
    supplier_name = po.supplier.name if po.supplier else "supplier"
    applied = 0
    for line in po.lines:
        product = catalog_service.find_product(session, line.product_id, lock=True)
        if product is None:
            logger.warning(
                "PO %s: product %s (%s) not found, line skipped",
                po.order_number, line.product_id, line.product_name,
            )
            continue

        catalog_service.set_quantity(product, product.quantity + line.quantity)
        if line.batch_number:
            product.batch_number = line.batch_number
        if line.expiry_date:
            product.expiry_date = line.expiry_date

        ledger_service.append_entry(
            session,
            product=product,
            entry_type=ENTRY_INFLOW,
            quantity=line.quantity,
            actor=actor,
            reference=po.order_number,
            notes=f"Received from {supplier_name}",
            product_name=line.product_name,
        )
        applied += 1
    return applied


def _update_locked(session, *, po_id: int, changes: dict, actor_user_id: int) -> PurchaseOrder:
    po = lock_for_update(session.query(PurchaseOrder).filter_by(id=po_id)).first()
    if po is None:
        raise NotFoundError(f"PO {po_id} not found", details={"purchase_order_id": po_id})

    new_status = changes.get("status")
    if new_status is not None and new_status not in PO_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(PO_STATUSES))}")

    # Idempotency boundary: a repeated "received" is a no-op
    if new_status == STATUS_RECEIVED and po.status == STATUS_RECEIVED:
        return po

    if po.status in TERMINAL_STATUSES:
        raise InvalidStateError(
            f"Cannot modify a {po.status} purchase order",
            details={"purchase_order_id": po.id, "status": po.status},
        )

    edits = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    if "expected_delivery_date" in edits:
        po.expected_delivery_date = _parse_date(
            edits["expected_delivery_date"], "expected_delivery_date", required=True
        )
    if "notes" in edits:
        po.notes = edits["notes"] or None

    if new_status == STATUS_RECEIVED:
        actor = user_service.resolve_actor(session, actor_user_id)
        applied = _receive_lines(session, po, actor)
        po.status = STATUS_RECEIVED
        po.delivery_date = utcnow()
        po.received_by_user_id = actor.id
        logger.info("PO %s received: %d of %d line(s) restocked", po.order_number, applied, len(po.lines))
    elif new_status == STATUS_CANCELLED:
        po.status = STATUS_CANCELLED

    session.flush()
    return po


def update_purchase_order(po_id: int, changes: dict, *, actor_user_id: int) -> PurchaseOrder:
    """
    Apply edits and/or a status transition to a purchase order.

    Only pending orders can change. status="received" restocks every line
    (skipping products that no longer exist) and stamps delivery_date;
    repeating it on a received order changes nothing.
    """
    if not isinstance(changes, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(changes) - EDITABLE_FIELDS - {"status"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    def _op():
        with UnitOfWork() as uow:
            po = _update_locked(uow.session, po_id=po_id, changes=changes, actor_user_id=actor_user_id)
        return po

    try:
        return run_with_retry(_op)
    except SQLAlchemyError as exc:
        logger.exception("Update of PO %s failed; rolled back", po_id)
        raise OperationFailedError("Purchase order update failed. Try again.") from exc


def receive_purchase_order(po_id: int, *, actor_user_id: int) -> PurchaseOrder:
    return update_purchase_order(po_id, {"status": STATUS_RECEIVED}, actor_user_id=actor_user_id)


def cancel_purchase_order(po_id: int, *, actor_user_id: int) -> PurchaseOrder:
    po = get_purchase_order(po_id)
    if po.status != STATUS_PENDING:
        raise InvalidStateError(
            f"Only pending orders can be cancelled (order is {po.status})",
            details={"purchase_order_id": po.id, "status": po.status},
        )
    return update_purchase_order(po_id, {"status": STATUS_CANCELLED}, actor_user_id=actor_user_id)


def _delete_locked(session, po_id: int) -> str:
    po = lock_for_update(session.query(PurchaseOrder).filter_by(id=po_id)).first()
    if po is None:
        raise NotFoundError(f"PO {po_id} not found", details={"purchase_order_id": po_id})
    if po.status != STATUS_PENDING:
        raise InvalidStateError(
            "Cannot delete received/cancelled orders",
            details={"purchase_order_id": po.id, "status": po.status},
        )
    order_number = po.order_number
    session.delete(po)
    session.flush()
    return order_number


def delete_purchase_order(po_id: int) -> None:
    """
    Delete a pending purchase order.

    The status check runs under the same lock as the delete; if a concurrent
    receipt lands first the version-checked DELETE conflicts, and the retry
    then sees the received order and refuses.
    """
    def _op():
        with UnitOfWork() as uow:
            order_number = _delete_locked(uow.session, po_id)
        return order_number

    try:
        order_number = run_with_retry(_op)
    except SQLAlchemyError as exc:
        logger.exception("Delete of PO %s failed; rolled back", po_id)
        raise OperationFailedError("Purchase order delete failed. Try again.") from exc
    logger.info("Deleted purchase order %s", order_number)
