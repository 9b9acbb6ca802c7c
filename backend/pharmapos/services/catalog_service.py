# backend/pharmapos/services/catalog_service.py
"""
Product Catalog Service

Authoritative store of current quantity per product. Every stock-affecting
operation reads and writes products through get_product / update_quantity
with the session of its unit of work.

Administrative maintenance (create/update/delete) never changes quantity
after creation: stock only moves through sales, refunds, purchase order
receipt, adjustments and disposals, each of which writes the ledger.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import or_

from ..errors import ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import Product
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category", "unit_price_cents",
        "quantity", "batch_number", "expiry_date", "supplier",
    },
    required_on_create={"sku", "barcode", "name", "category", "unit_price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category", "unit_price_cents",
        "batch_number", "expiry_date", "supplier",
    },
)


def get_product(session, product_id: int, *, lock: bool = False) -> Product:
    product = find_product(session, product_id, lock=lock)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def find_product(session, product_id: int, *, lock: bool = False) -> Product | None:
    """Like get_product but returns None for a missing product."""
    query = session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def update_quantity(session, product_id: int, new_quantity: int) -> Product:
    """
    Set a product's quantity. Rejects negative stock.

    Callers own the ledger entry that explains the change.
    """
    product = get_product(session, product_id, lock=True)
    return set_quantity(product, new_quantity)


def set_quantity(product: Product, new_quantity: int) -> Product:
    if new_quantity < 0:
        raise InvalidStateError(
            f"Negative stock not allowed for {product.name}",
            details={
                "product_id": product.id,
                "product_name": product.name,
                "available": product.quantity,
                "requested_quantity": new_quantity,
            },
        )
    product.quantity = new_quantity
    return product


def _check_unique(patch: dict, exclude_id: int | None = None) -> None:
    for field in ("sku", "barcode"):
        value = patch.get(field)
        if not value:
            continue
        q = db.session.query(Product).filter(getattr(Product, field) == value)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(f"A product with {field} {value!r} already exists", details={field: value})


def create_product(payload: dict) -> Product:
    """
    Create a catalog entry. An initial quantity is recorded as the product's
    opening quantity (the seed the ledger is measured from).
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_unique(patch)

    opening = patch.pop("quantity", None) or 0
    product = Product(**patch, quantity=opening, opening_quantity=opening)
    db.session.add(product)
    db.session.commit()
    logger.info("Created product %s (%s) with opening quantity %d", product.id, product.sku, opening)
    return product


def update_product(product_id: int, payload: dict) -> Product:
    if isinstance(payload, dict) and "quantity" in payload:
        raise InvalidStateError(
            "quantity cannot be edited directly; use an inventory adjustment",
            details={"product_id": product_id},
        )
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    product = get_product(db.session, product_id)
    _check_unique(patch, exclude_id=product.id)
    for k, v in patch.items():
        setattr(product, k, v)
    db.session.commit()
    return product


def delete_product(product_id: int) -> None:
    """
    Remove a catalog entry.

    Ledger entries and transaction lines keep their product_id and name
    snapshots; later sales, refunds and receipts referencing the product skip
    it with a warning.
    """
    product = get_product(db.session, product_id)
    sku = product.sku
    db.session.delete(product)
    db.session.commit()
    logger.info("Deleted product %s (%s)", product_id, sku)


def get_product_by_barcode(barcode: str) -> Product:
    product = db.session.query(Product).filter_by(barcode=barcode).first()
    if product is None:
        raise NotFoundError(f"No product with barcode {barcode!r}", details={"barcode": barcode})
    return product


def list_products(category: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    return q.order_by(Product.created_at.desc(), Product.id.desc()).all()


def search_products(query: str, limit: int = 50) -> list[Product]:
    """Case-insensitive substring match on barcode or name."""
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    return (
        db.session.query(Product)
        .filter(or_(Product.barcode.ilike(pattern), Product.name.ilike(pattern)))
        .order_by(Product.name.asc())
        .limit(limit)
        .all()
    )


def stock_alerts(*, threshold: int, within_days: int) -> dict:
    """
    Products needing attention:
    - low_stock: quantity below threshold
    - expiring: expiry date within the warning window (already expired included)
    """
    today = utcnow().date()
    horizon = today + timedelta(days=within_days)

    low = (
        db.session.query(Product)
        .filter(Product.quantity < threshold)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )
    expiring = (
        db.session.query(Product)
        .filter(Product.expiry_date.isnot(None), Product.expiry_date <= horizon)
        .order_by(Product.expiry_date.asc())
        .all()
    )
    return {
        "threshold": threshold,
        "within_days": within_days,
        "low_stock": [p.to_dict() for p in low],
        "expiring": [
            {**p.to_dict(), "expired": p.expiry_date < today, "days_left": (p.expiry_date - today).days}
            for p in expiring
        ],
    }
