# Overview: Read-only receipt projection composed from a transaction and the company profile.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..models import Company, Transaction
from ..time_utils import to_utc_z

CURRENCY = "GHS"
RECEIPT_DATE_FORMAT = "%d/%m/%Y, %H:%M"


def format_money(cents: int) -> str:
    amount = (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if amount < 0:
        return f"-{CURRENCY} {abs(amount):,.2f}"
    return f"{CURRENCY} {amount:,.2f}"


def format_tax_rate(bps: int) -> str:
    pct = (Decimal(bps) / Decimal(100)).normalize()
    return f"{pct:f}%"


def build_receipt(transaction: Transaction, company: Company) -> dict:
    """
    Compose the receipt view returned after a sale. Nothing here is stored.
    """
    lines = []
    for line in transaction.lines:
        lines.append({
            "name": line.product_name,
            "quantity": line.quantity,
            "unit_price": format_money(line.unit_price_cents),
            "discount": format_money(line.discount_cents) if line.discount_cents else None,
            "amount": format_money(line.line_total_cents),
        })

    company_block = {
        "name": company.name,
        "address": company.address_lines(),
        "phone": company.contact_phone,
        "email": company.contact_email,
        "website": company.contact_website,
        "tax_id": company.tax_id if company.include_tax_id else None,
        "header": company.receipt_header,
        "footer": company.receipt_footer,
    }

    return {
        "transaction": transaction.to_dict(),
        "company": company_block,
        "receipt_number": transaction.transaction_number,
        "date": transaction.created_at.strftime(RECEIPT_DATE_FORMAT),
        "issued_at": to_utc_z(transaction.created_at),
        "cashier": transaction.cashier_name,
        "payment": transaction.payment_method.upper(),
        "payment_reference": transaction.payment_reference,
        "customer": {
            "name": transaction.customer_name,
            "phone": transaction.customer_phone,
        } if (transaction.customer_name or transaction.customer_phone) else None,
        "lines": lines,
        "totals": {
            "subtotal": format_money(transaction.subtotal_cents),
            "discount": format_money(transaction.discount_cents) if transaction.discount_cents else None,
            "tax_label": f"VAT ({format_tax_rate(transaction.tax_rate_bps)})",
            "tax": format_money(transaction.tax_cents),
            "total": format_money(transaction.total_cents),
        },
    }
