# backend/pharmapos/services/inventory_service.py
"""
Manual stock corrections outside of sales and purchasing.

- Adjustment: signed delta (found discrepancy, recount). Written as an
  "adjustment" ledger entry carrying the signed delta.
- Disposal: expired or damaged stock removed with a mandatory reason.
  Written as an "outflow" entry with a negative quantity and notes
  "Disposal: <reason>".

Both run as one unit of work and never drive quantity below zero.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import InvalidStateError, OperationFailedError
from ..models import Product, StockLedgerEntry
from ..models.inventory import ENTRY_ADJUSTMENT, ENTRY_OUTFLOW
from ..validation import ValidationError, coerce_int, require_positive_quantity
from . import catalog_service, ledger_service, user_service
from .concurrency import UnitOfWork, run_with_retry

logger = logging.getLogger(__name__)

DISPOSAL_NOTE_PREFIX = "Disposal: "


def _run_atomic(op, description: str):
    try:
        return run_with_retry(op)
    except SQLAlchemyError as exc:
        logger.exception("%s failed; rolled back", description)
        raise OperationFailedError(f"{description} failed. Try again.") from exc


def adjust_inventory(
    *,
    product_id: int,
    quantity_delta,
    actor_user_id: int,
    notes: str | None = None,
) -> tuple[Product, StockLedgerEntry]:
    """
    Apply a signed stock correction.

    Raises:
        ValidationError: delta missing or zero
        NotFoundError: unknown product
        InvalidStateError: the correction would make stock negative
    """
    if quantity_delta is None:
        raise ValidationError("quantity is required")
    delta = coerce_int(quantity_delta, "quantity")
    if delta == 0:
        raise ValidationError("quantity must be non-zero for an adjustment")

    def _op():
        with UnitOfWork() as uow:
            session = uow.session
            product = catalog_service.get_product(session, product_id, lock=True)
            if product.quantity + delta < 0:
                raise InvalidStateError(
                    "Negative stock not allowed",
                    details={
                        "product_id": product.id,
                        "product_name": product.name,
                        "available": product.quantity,
                        "quantity_delta": delta,
                    },
                )
            actor = user_service.resolve_actor(session, actor_user_id)
            catalog_service.set_quantity(product, product.quantity + delta)
            entry = ledger_service.append_entry(
                session,
                product=product,
                entry_type=ENTRY_ADJUSTMENT,
                quantity=delta,
                actor=actor,
                notes=notes or None,
            )
        return product, entry

    product, entry = _run_atomic(_op, "Stock adjustment")
    logger.info("Adjusted product %s by %+d (now %d)", product_id, delta, product.quantity)
    return product, entry


def dispose_inventory(
    *,
    product_id: int,
    quantity,
    reason: str | None,
    actor_user_id: int,
) -> tuple[Product, StockLedgerEntry]:
    """
    Remove expired or damaged stock.

    Raises:
        ValidationError: non-positive quantity or blank reason
        NotFoundError: unknown product
        InvalidStateError: quantity exceeds current stock
    """
    qty = require_positive_quantity(quantity)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for disposal")

    def _op():
        with UnitOfWork() as uow:
            session = uow.session
            product = catalog_service.get_product(session, product_id, lock=True)
            if qty > product.quantity:
                raise InvalidStateError(
                    "Disposal quantity cannot exceed current stock",
                    details={
                        "product_id": product.id,
                        "product_name": product.name,
                        "available": product.quantity,
                        "requested_quantity": qty,
                    },
                )
            actor = user_service.resolve_actor(session, actor_user_id)
            catalog_service.set_quantity(product, product.quantity - qty)
            entry = ledger_service.append_entry(
                session,
                product=product,
                entry_type=ENTRY_OUTFLOW,
                quantity=-qty,
                actor=actor,
                notes=f"{DISPOSAL_NOTE_PREFIX}{reason}",
            )
        return product, entry

    product, entry = _run_atomic(_op, "Disposal")
    logger.info("Disposed %d unit(s) of product %s: %s", qty, product_id, reason)
    return product, entry
