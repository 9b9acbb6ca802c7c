from __future__ import annotations

from sqlalchemy import event

from ..errors import InvalidStateError
from ..extensions import db
from ..time_utils import to_utc_z, utcnow

ENTRY_INFLOW = "inflow"
ENTRY_OUTFLOW = "outflow"
ENTRY_ADJUSTMENT = "adjustment"
ENTRY_TYPES = {ENTRY_INFLOW, ENTRY_OUTFLOW, ENTRY_ADJUSTMENT}


class StockLedgerEntry(db.Model):
    """
    One immutable stock movement.

    SIGN CONVENTION: quantity is always signed (positive adds stock, negative
    removes it). entry_type classifies the movement for reporting only.

    product_id is a plain reference (no FK) and product_name / user_name are
    snapshots taken at write time, so the audit trail survives later renames
    and deletions of the product or user.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_stock_ledger_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    entry_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # PO order number or transaction number
    reference = db.Column(db.String(64), nullable=True, index=True)

    user_id = db.Column(db.Integer, nullable=False)
    user_name = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry id={self.id} product_id={self.product_id} "
            f"type={self.entry_type} quantity={self.quantity} reference={self.reference!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "type": self.entry_type,
            "quantity": self.quantity,
            "reference": self.reference,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockLedgerEntry, "before_update")
def _block_ledger_update(mapper, connection, target):
    raise InvalidStateError(
        "Stock ledger entries are immutable",
        details={"entry_id": target.id},
    )


@event.listens_for(StockLedgerEntry, "before_delete")
def _block_ledger_delete(mapper, connection, target):
    raise InvalidStateError(
        "Stock ledger entries cannot be deleted",
        details={"entry_id": target.id},
    )
