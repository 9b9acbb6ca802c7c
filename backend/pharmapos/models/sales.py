from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..errors import InvalidStateError
from ..extensions import db
from ..time_utils import to_utc_z, utcnow

PAYMENT_METHOD_REFUND = "refund"
REFUND_NUMBER_PREFIX = "REF-"


class Transaction(db.Model):
    """
    Completed sale (or refund) record.

    Immutable after creation. A refund is its own Transaction with negated
    amounts, payment_method="refund" and refund_of_id pointing at the original;
    the unique constraint on refund_of_id allows at most one refund per sale.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_transactions_number"),
        db.UniqueConstraint("refund_of_id", name="uq_transactions_refund_of"),
        db.Index("ix_transactions_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "TXN-1760832000000-4F2A")
    transaction_number = db.Column(db.String(64), nullable=False)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cashier_name = db.Column(db.String(255), nullable=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    # Line discounts plus order_discount_cents
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    order_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # VAT rate in force when the sale was recorded
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_reference = db.Column(db.String(128), nullable=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    refund_of_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    lines = db.relationship(
        "TransactionLine",
        back_populates="transaction",
        order_by="TransactionLine.position",
        lazy="selectin",
    )
    refund_of = db.relationship("Transaction", remote_side=[id], foreign_keys=[refund_of_id])

    @property
    def is_refund(self) -> bool:
        return self.refund_of_id is not None

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} number={self.transaction_number!r} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "items": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "order_discount_cents": self.order_discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "refund_of_id": self.refund_of_id,
            "created_at": to_utc_z(self.created_at),
        }


class TransactionLine(db.Model):
    """Line item on a transaction, with product details snapshotted at sale time."""
    __tablename__ = "transaction_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    product_category = db.Column(db.String(64), nullable=True)

    # Negative on refund lines
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("Transaction", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "product_id": self.product_id,
            "product": {
                "name": self.product_name,
                "sku": self.product_sku,
                "category": self.product_category,
            },
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
        }


def _block_mutation(mapper, connection, target):
    # Collection changes (lines appended during creation) are not edits
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise InvalidStateError(
        "Transactions are immutable once recorded",
        details={"entity": type(target).__name__, "id": target.id},
    )


for _model in (Transaction, TransactionLine):
    event.listen(_model, "before_update", _block_mutation)
    event.listen(_model, "before_delete", _block_mutation)
