# Overview: Supplier records referenced by purchase orders.

from __future__ import annotations

import logging

from ..errors import InvalidStateError, NotFoundError
from ..extensions import db
from ..models import PurchaseOrder, Supplier
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "city", "country"},
    required_on_create={"name", "email"},
)

logger = logging.getLogger(__name__)


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    if "@" not in patch["email"]:
        raise ValidationError("email must be a valid email address")

    supplier = Supplier(**patch)
    db.session.add(supplier)
    db.session.commit()
    logger.info("Created supplier %s (%s)", supplier.id, supplier.name)
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


def resolve_supplier(session, ref) -> Supplier | None:
    """
    Look a supplier up by id, falling back to an exact name match so that
    purchase orders may name the supplier instead of quoting its id.
    """
    if ref is None or ref == "":
        return None
    supplier = None
    if isinstance(ref, int) and not isinstance(ref, bool):
        supplier = session.get(Supplier, ref)
    elif isinstance(ref, str) and ref.strip().isdigit():
        supplier = session.get(Supplier, int(ref.strip()))
    if supplier is None and isinstance(ref, str):
        supplier = session.query(Supplier).filter(Supplier.name == ref.strip()).first()
    return supplier


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name.asc()).all()


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    if "email" in patch and "@" not in (patch["email"] or ""):
        raise ValidationError("email must be a valid email address")

    for key, value in patch.items():
        setattr(supplier, key, value)
    db.session.commit()
    logger.info("Updated supplier %s: %s", supplier_id, ", ".join(sorted(patch)) or "no changes")
    return supplier


def delete_supplier(supplier_id: int) -> None:
    """
    Remove a supplier that no purchase order refers to.

    Purchase orders keep a hard reference to their supplier, so a supplier
    with any order on file (including cancelled ones) stays.
    """
    supplier = get_supplier(supplier_id)
    orders = db.session.query(PurchaseOrder).filter_by(supplier_id=supplier_id).count()
    if orders:
        raise InvalidStateError(
            f"Supplier {supplier.name} has {orders} purchase order(s) and cannot be deleted",
            details={"supplier_id": supplier_id, "purchase_orders": orders},
        )
    name = supplier.name
    db.session.delete(supplier)
    db.session.commit()
    logger.info("Deleted supplier %s (%s)", supplier_id, name)
