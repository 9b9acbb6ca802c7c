"""
Sale Transaction Engine

Records a sale atomically against product stock:

1. Reject an empty cart, a malformed line or an invalid payment before
   touching storage.
2. Inside one unit of work: resolve the cashier, allocate a transaction
   number, load and lock each product in cart order, and check stock for the
   whole cart (quantities of repeated products are summed).
3. Only when every line passed: decrement stock, append one outflow ledger
   entry per line and persist the transaction.

Any failure rolls the unit of work back, so no stock change, ledger entry or
transaction row from a failed attempt is ever visible. Write conflicts with a
concurrent sale of the same product are retried against fresh stock.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from ..errors import EmptyCartError, InsufficientStockError, NotFoundError, PaymentFailedError
from ..extensions import db
from ..models import Product, Transaction, TransactionLine
from ..models.inventory import ENTRY_OUTFLOW
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    coerce_int,
    enforce_rules_payment,
    require_non_negative_cents,
    require_positive_quantity,
)
from . import catalog_service, company_service, ledger_service, user_service
from .concurrency import UnitOfWork, run_with_retry
from .receipt_service import build_receipt

logger = logging.getLogger(__name__)

TRANSACTION_NUMBER_PREFIX = "TXN"
NUMBER_ALLOCATION_ATTEMPTS = 5


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0
    product_name: str | None = None
    product_sku: str | None = None
    product_category: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity - self.discount_cents


@dataclass
class SaleResult:
    transaction: Transaction
    receipt: dict


def parse_cart(items) -> list[CartLine]:
    """
    Validate raw cart items into CartLines.

    Each item needs product_id, quantity > 0 and unit_price_cents >= 0.
    discount_cents is optional and cannot exceed the line amount. A supplied
    line_total_cents must match unit_price_cents * quantity - discount_cents.
    Product name/sku/category are optional fallbacks for the line snapshot
    when the product no longer exists.
    """
    if not items:
        raise EmptyCartError("No items in cart")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    lines = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {idx} must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"Item {idx}: product_id is required")
        if item.get("unit_price_cents") is None:
            raise ValidationError(f"Item {idx}: unit_price_cents is required")

        product_id = coerce_int(item["product_id"], "product_id")
        quantity = require_positive_quantity(item.get("quantity"))
        unit_price = require_non_negative_cents(item["unit_price_cents"], "unit_price_cents")
        discount = require_non_negative_cents(item.get("discount_cents") or 0, "discount_cents")
        if discount > unit_price * quantity:
            raise ValidationError(f"Item {idx}: discount exceeds line amount")

        snapshot = item.get("product") if isinstance(item.get("product"), dict) else {}
        line = CartLine(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=unit_price,
            discount_cents=discount,
            product_name=snapshot.get("name") or item.get("product_name"),
            product_sku=snapshot.get("sku") or item.get("product_sku"),
            product_category=snapshot.get("category") or item.get("product_category"),
        )

        supplied_total = item.get("line_total_cents")
        if supplied_total is not None and coerce_int(supplied_total, "line_total_cents") != line.line_total_cents:
            raise ValidationError(
                f"Item {idx}: line_total_cents does not match unit price, quantity and discount",
                details={"expected": line.line_total_cents, "supplied": supplied_total},
            )
        lines.append(line)
    return lines


def compute_tax_cents(taxable_cents: int, rate_bps: int) -> int:
    """Tax at rate_bps basis points, rounded half away from zero."""
    product = abs(taxable_cents) * rate_bps
    tax = (product + 5_000) // 10_000
    return tax if taxable_cents >= 0 else -tax


def generate_transaction_number(now: datetime | None = None) -> str:
    """
    Time-derived number with a random suffix.

    Collisions are improbable, not impossible; allocate_transaction_number
    re-draws on a clash.
    """
    now = now or utcnow()
    millis = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return f"{TRANSACTION_NUMBER_PREFIX}-{millis}-{secrets.token_hex(2).upper()}"


def allocate_transaction_number(session) -> str:
    for _ in range(NUMBER_ALLOCATION_ATTEMPTS):
        number = generate_transaction_number()
        taken = session.query(Transaction.id).filter_by(transaction_number=number).first()
        if taken is None:
            return number
    raise PaymentFailedError("Could not allocate a unique transaction number")


def _snapshot_line(position: int, line: CartLine, product: Product | None) -> TransactionLine:
    return TransactionLine(
        position=position,
        product_id=line.product_id,
        product_name=(product.name if product else None) or line.product_name or "Unknown",
        product_sku=(product.sku if product else None) or line.product_sku or "",
        product_category=(product.category if product else None) or line.product_category or "Other",
        quantity=line.quantity,
        unit_price_cents=line.unit_price_cents,
        discount_cents=line.discount_cents,
        line_total_cents=line.line_total_cents,
    )


def _record_sale_locked(
    session,
    *,
    cart: list[CartLine],
    actor_user_id: int,
    payment_method: str,
    payment_reference: str | None,
    customer_name: str | None,
    customer_phone: str | None,
    notes: str | None,
    order_discount: int = 0,
) -> Transaction:
    actor = user_service.resolve_actor(session, actor_user_id)
    number = allocate_transaction_number(session)

    # Phase 1: validate the whole cart before any mutation
    resolved: list[tuple[CartLine, Product | None]] = []
    requested: dict[int, int] = {}
    for line in cart:
        product = catalog_service.find_product(session, line.product_id, lock=True)
        if product is None:
            logger.warning("Sale %s: product %s not found, line skipped", number, line.product_id)
            resolved.append((line, None))
            continue

        requested[product.id] = requested.get(product.id, 0) + line.quantity
        if product.quantity < requested[product.id]:
            raise InsufficientStockError(
                f"Not enough stock for {product.name}. Only {product.quantity} left.",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "available": product.quantity,
                    "requested_quantity": requested[product.id],
                },
            )
        resolved.append((line, product))

    # Phase 2: apply
    for line, product in resolved:
        if product is None:
            continue
        catalog_service.set_quantity(product, product.quantity - line.quantity)
        ledger_service.append_entry(
            session,
            product=product,
            entry_type=ENTRY_OUTFLOW,
            quantity=-line.quantity,
            actor=actor,
            reference=number,
            notes=f"Sale {number}",
        )

    company = company_service.get_company_profile(session)
    subtotal = sum(line.line_total_cents for line in cart)
    taxable = subtotal - order_discount
    tax = compute_tax_cents(taxable, company.tax_rate_bps)

    transaction = Transaction(
        transaction_number=number,
        cashier_id=actor.id,
        cashier_name=actor.name,
        subtotal_cents=subtotal,
        tax_cents=tax,
        discount_cents=sum(line.discount_cents for line in cart) + order_discount,
        order_discount_cents=order_discount,
        total_cents=taxable + tax,
        tax_rate_bps=company.tax_rate_bps,
        payment_method=payment_method,
        payment_reference=payment_reference,
        customer_name=customer_name or None,
        customer_phone=customer_phone or None,
        notes=notes or None,
        created_at=utcnow(),
    )
    transaction.lines = [
        _snapshot_line(position, line, product)
        for position, (line, product) in enumerate(resolved, start=1)
    ]
    session.add(transaction)
    session.flush()
    return transaction


def record_sale(
    *,
    items,
    actor_user_id: int,
    payment_method: str,
    payment_reference: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    notes: str | None = None,
    discount_cents=None,
) -> SaleResult:
    """
    Record a sale and return the persisted transaction with its receipt.

    discount_cents is an optional order-level discount taken off the subtotal
    before VAT: total = subtotal - discount_cents + tax.

    Raises:
        EmptyCartError, ValidationError: bad cart or payment details
        ActorNotFoundError: cashier record missing
        InsufficientStockError: a product cannot cover the requested quantity
        PaymentFailedError: storage failure; nothing was written
    """
    cart = parse_cart(items)
    method, reference = enforce_rules_payment(payment_method, payment_reference)
    order_discount = require_non_negative_cents(discount_cents or 0, "discount_cents")
    subtotal = sum(line.line_total_cents for line in cart)
    if order_discount > subtotal:
        raise ValidationError(
            "discount_cents cannot exceed the subtotal",
            details={"discount_cents": order_discount, "subtotal_cents": subtotal},
        )

    def _op():
        with UnitOfWork() as uow:
            txn = _record_sale_locked(
                uow.session,
                cart=cart,
                actor_user_id=actor_user_id,
                payment_method=method,
                payment_reference=reference,
                customer_name=customer_name,
                customer_phone=customer_phone,
                notes=notes,
                order_discount=order_discount,
            )
        return txn

    try:
        transaction = run_with_retry(_op)
    except SQLAlchemyError as exc:
        logger.exception("Sale failed during mutation phase; rolled back")
        raise PaymentFailedError("Payment failed. Try again.") from exc

    logger.info(
        "Recorded sale %s by user %s: %d line(s), total %d cents",
        transaction.transaction_number, actor_user_id, len(cart), transaction.total_cents,
    )
    receipt = build_receipt(transaction, company_service.get_company_profile())
    return SaleResult(transaction=transaction, receipt=receipt)


def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return txn


def get_receipt(transaction_id: int) -> dict:
    txn = get_transaction(transaction_id)
    return build_receipt(txn, company_service.get_company_profile())


def list_transactions(start: datetime | None = None, end: datetime | None = None) -> list[Transaction]:
    q = db.session.query(Transaction)
    if start is not None:
        q = q.filter(Transaction.created_at >= start)
    if end is not None:
        q = q.filter(Transaction.created_at <= end)
    return q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()
