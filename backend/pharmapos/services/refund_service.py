"""
Refund Engine

A refund mirrors a completed sale:
- a new Transaction numbered "REF-<original number>" with every amount and
  line quantity negated (unit prices stay as sold) and payment_method "refund"
- stock restored for each original line the sale actually took out of stock
  (it has an outflow ledger entry referencing the sale number), with one inflow
  ledger entry per restored line referencing the refund number

Runs as one unit of work. A sale can be refunded once; refund transactions
cannot themselves be refunded.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import InvalidStateError, NotFoundError, OperationFailedError
from ..models import StockLedgerEntry, Transaction, TransactionLine
from ..models.inventory import ENTRY_INFLOW, ENTRY_OUTFLOW
from ..models.sales import PAYMENT_METHOD_REFUND, REFUND_NUMBER_PREFIX
from ..time_utils import utcnow
from . import catalog_service, ledger_service, user_service
from .concurrency import UnitOfWork, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def refund_number_for(original_number: str) -> str:
    return f"{REFUND_NUMBER_PREFIX}{original_number}"


def _sold_quantities(session, transaction_number: str) -> dict[int, int]:
    """Units each product actually lost to a sale, from its outflow entries."""
    rows = (
        session.query(StockLedgerEntry.product_id, func.sum(StockLedgerEntry.quantity))
        .filter(
            StockLedgerEntry.reference == transaction_number,
            StockLedgerEntry.entry_type == ENTRY_OUTFLOW,
        )
        .group_by(StockLedgerEntry.product_id)
        .all()
    )
    return {product_id: -int(total) for product_id, total in rows}


def _refund_locked(session, *, transaction_id: int, actor_user_id: int) -> Transaction:
    original = lock_for_update(session.query(Transaction).filter_by(id=transaction_id)).first()
    if original is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})

    if original.is_refund:
        raise InvalidStateError(
            "Refund transactions cannot be refunded",
            details={"transaction_id": original.id, "transaction_number": original.transaction_number},
        )

    existing = session.query(Transaction.id, Transaction.transaction_number).filter_by(
        refund_of_id=original.id
    ).first()
    if existing is not None:
        raise InvalidStateError(
            f"Transaction {original.transaction_number} has already been refunded",
            details={"transaction_id": original.id, "refund_transaction_number": existing.transaction_number},
        )

    actor = user_service.resolve_actor(session, actor_user_id)
    number = refund_number_for(original.transaction_number)
    sold = _sold_quantities(session, original.transaction_number)

    refund_lines = []
    for line in original.lines:
        refund_lines.append(TransactionLine(
            position=line.position,
            product_id=line.product_id,
            product_name=line.product_name,
            product_sku=line.product_sku,
            product_category=line.product_category,
            quantity=-line.quantity,
            unit_price_cents=line.unit_price_cents,
            discount_cents=-line.discount_cents,
            line_total_cents=-line.line_total_cents,
        ))

        restock = min(line.quantity, sold.get(line.product_id, 0))
        if restock <= 0:
            logger.warning("Refund %s: product %s was never taken from stock, not restored", number, line.product_id)
            continue
        sold[line.product_id] -= restock

        product = catalog_service.find_product(session, line.product_id, lock=True)
        if product is None:
            logger.warning("Refund %s: product %s no longer exists, stock not restored", number, line.product_id)
            continue

        catalog_service.set_quantity(product, product.quantity + restock)
        ledger_service.append_entry(
            session,
            product=product,
            entry_type=ENTRY_INFLOW,
            quantity=restock,
            actor=actor,
            reference=number,
            notes=f"Refund of {original.transaction_number}",
        )

    refund = Transaction(
        transaction_number=number,
        cashier_id=actor.id,
        cashier_name=actor.name,
        subtotal_cents=-original.subtotal_cents,
        tax_cents=-original.tax_cents,
        discount_cents=-original.discount_cents,
        order_discount_cents=-original.order_discount_cents,
        total_cents=-original.total_cents,
        tax_rate_bps=original.tax_rate_bps,
        payment_method=PAYMENT_METHOD_REFUND,
        payment_reference=original.transaction_number,
        customer_name=original.customer_name,
        customer_phone=original.customer_phone,
        notes=f"Refund for transaction {original.transaction_number}",
        refund_of_id=original.id,
        created_at=utcnow(),
    )
    refund.lines = refund_lines
    session.add(refund)
    session.flush()
    return refund


def refund_transaction(transaction_id: int, actor_user_id: int) -> Transaction:
    """
    Refund a completed sale.

    Raises:
        NotFoundError: unknown transaction
        InvalidStateError: already refunded, or the transaction is a refund
        ActorNotFoundError: requesting user missing
        OperationFailedError: storage failure; nothing was written
    """
    def _op():
        with UnitOfWork() as uow:
            refund = _refund_locked(uow.session, transaction_id=transaction_id, actor_user_id=actor_user_id)
        return refund

    try:
        refund = run_with_retry(_op)
    except IntegrityError as exc:
        # A concurrent refund of the same sale won the unique refund_of_id slot
        raise InvalidStateError(
            "Transaction has already been refunded",
            details={"transaction_id": transaction_id},
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception("Refund of transaction %s failed; rolled back", transaction_id)
        raise OperationFailedError("Refund failed. Try again.") from exc

    logger.info("Refunded transaction %s as %s", transaction_id, refund.transaction_number)
    return refund
