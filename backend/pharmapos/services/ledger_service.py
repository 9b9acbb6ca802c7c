# Overview: Append-only stock ledger; every stock mutation is traceable to one entry.

from __future__ import annotations

from datetime import datetime
from typing import Iterator

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockLedgerEntry, User
from ..models.inventory import ENTRY_TYPES
from ..time_utils import utcnow
"""
Stock Ledger Invariants (authoritative)

- Append-only: entries are never updated or deleted (ORM listeners on the
  model reject both).
- Entries are written inside the same unit of work as the stock mutation they
  record; they commit or roll back together.
- Quantities are always signed: inflow > 0, outflow < 0, adjustment either way.
- For every product: quantity == opening_quantity + SUM(entry.quantity).
- Date range filters are inclusive on both ends.
"""

# Rows fetched per round trip when streaming a product's history
STREAM_BATCH_SIZE = 200


def append_entry(
    session,
    *,
    product: Product,
    entry_type: str,
    quantity: int,
    actor: User,
    reference: str | None = None,
    notes: str | None = None,
    product_name: str | None = None,
) -> StockLedgerEntry:
    """
    Append one ledger entry.

    - No domain logic here; callers validate and mutate stock first.
    - product_name defaults to the product's current name (snapshot).
    """
    if entry_type not in ENTRY_TYPES:
        raise ValueError(f"invalid ledger entry type {entry_type!r}")
    if quantity == 0:
        raise ValueError("ledger entry quantity must be non-zero")

    entry = StockLedgerEntry(
        product_id=product.id,
        product_name=product_name or product.name,
        entry_type=entry_type,
        quantity=quantity,
        reference=reference,
        user_id=actor.id,
        user_name=actor.name,
        notes=notes,
        created_at=utcnow(),
    )
    session.add(entry)
    session.flush()  # ensures entry.id is assigned without committing
    return entry


def _apply_filters(q, *, product_id=None, start: datetime | None = None, end: datetime | None = None,
                   reference: str | None = None, entry_type: str | None = None):
    if product_id is not None:
        q = q.filter(StockLedgerEntry.product_id == product_id)
    if start is not None:
        q = q.filter(StockLedgerEntry.created_at >= start)
    if end is not None:
        q = q.filter(StockLedgerEntry.created_at <= end)
    if reference is not None:
        q = q.filter(StockLedgerEntry.reference == reference)
    if entry_type is not None:
        q = q.filter(StockLedgerEntry.entry_type == entry_type)
    return q.order_by(StockLedgerEntry.created_at.desc(), StockLedgerEntry.id.desc())


def list_by_product(
    product_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> Iterator[StockLedgerEntry]:
    """Stream a product's entries newest-first, fetching in batches."""
    q = _apply_filters(db.session.query(StockLedgerEntry), product_id=product_id, start=start, end=end)
    yield from q.yield_per(STREAM_BATCH_SIZE)


def list_entries(
    *,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    reference: str | None = None,
    entry_type: str | None = None,
    limit: int | None = None,
) -> list[StockLedgerEntry]:
    q = _apply_filters(
        db.session.query(StockLedgerEntry),
        product_id=product_id,
        start=start,
        end=end,
        reference=reference,
        entry_type=entry_type,
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def ledger_net_quantity(session, product_id: int) -> int:
    return int(
        session.query(func.coalesce(func.sum(StockLedgerEntry.quantity), 0))
        .filter(StockLedgerEntry.product_id == product_id)
        .scalar()
        or 0
    )


def verify_ledger(product_id: int | None = None) -> list[dict]:
    """
    Compare each product's stored quantity with its ledger.

    Returns one row per product that diverges; an empty list means catalog
    and ledger agree.
    """
    sums = (
        db.session.query(
            StockLedgerEntry.product_id.label("product_id"),
            func.sum(StockLedgerEntry.quantity).label("net"),
        )
        .group_by(StockLedgerEntry.product_id)
        .subquery()
    )
    q = db.session.query(Product, func.coalesce(sums.c.net, 0)).outerjoin(
        sums, sums.c.product_id == Product.id
    )
    if product_id is not None:
        q = q.filter(Product.id == product_id)

    mismatches = []
    for product, net in q.order_by(Product.id.asc()).all():
        expected = product.opening_quantity + int(net)
        if expected != product.quantity:
            mismatches.append({
                "product_id": product.id,
                "product_name": product.name,
                "quantity": product.quantity,
                "opening_quantity": product.opening_quantity,
                "ledger_net": int(net),
                "expected_quantity": expected,
            })
    return mismatches
