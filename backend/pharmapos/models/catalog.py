from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data and the authoritative current stock level.

    QUANTITY DESIGN:
    - quantity is stored on the row and mutated only by the stock operations
      (sale, refund, purchase order receipt, adjustment, disposal), each of
      which appends a StockLedgerEntry in the same unit of work.
    - opening_quantity is the seed quantity at creation; at all times
      quantity == opening_quantity + SUM(ledger quantities for the product).
    - version_id is the optimistic concurrency counter: two read-modify-write
      sequences on the same row cannot both commit.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    opening_quantity = db.Column(db.Integer, nullable=False, default=0)

    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True, index=True)

    # Free text, as printed on the supplier's invoice
    supplier = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "opening_quantity": self.opening_quantity,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "supplier": self.supplier,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    country = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "created_at": to_utc_z(self.created_at),
        }


class Company(db.Model):
    """
    Issuing company profile printed on receipts.

    Single row; services.company_service.get_company_profile() creates it
    with defaults on first access.
    """
    __tablename__ = "company"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, default="Pharmacy POS")
    address_street = db.Column(db.String(255), nullable=True)
    address_city = db.Column(db.String(128), nullable=True)
    address_state = db.Column(db.String(128), nullable=True)
    address_zip_code = db.Column(db.String(32), nullable=True)
    address_country = db.Column(db.String(128), nullable=True, default="Ghana")
    contact_phone = db.Column(db.String(64), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_website = db.Column(db.String(255), nullable=True)
    tax_id = db.Column(db.String(64), nullable=True)
    include_tax_id = db.Column(db.Boolean, nullable=False, default=False)
    receipt_header = db.Column(db.Text, nullable=True, default="Thank you for your business!")
    receipt_footer = db.Column(db.Text, nullable=True, default="We hope to see you again soon!")

    # Basis points: 1500 = 15.00%
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=1500)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def address_lines(self) -> list[str]:
        city_line = " ".join(p for p in (self.address_city, self.address_state, self.address_zip_code) if p)
        return [line for line in (self.address_street, city_line, self.address_country) if line]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address_street": self.address_street,
            "address_city": self.address_city,
            "address_state": self.address_state,
            "address_zip_code": self.address_zip_code,
            "address_country": self.address_country,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "contact_website": self.contact_website,
            "tax_id": self.tax_id,
            "include_tax_id": self.include_tax_id,
            "receipt_header": self.receipt_header,
            "receipt_footer": self.receipt_footer,
            "tax_rate_bps": self.tax_rate_bps,
            "updated_at": to_utc_z(self.updated_at),
        }
