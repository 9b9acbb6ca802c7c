# Overview: Issuing company profile (receipt header/footer, address, tax rate).

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Company
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

COMPANY_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "address_street", "address_city", "address_state", "address_zip_code",
        "address_country", "contact_phone", "contact_email", "contact_website", "tax_id",
        "include_tax_id", "receipt_header", "receipt_footer", "tax_rate_bps",
    },
)


def get_company_profile(session=None) -> Company:
    """Return the company profile, creating the default one on first call."""
    session = session if session is not None else db.session
    company = session.query(Company).order_by(Company.id.asc()).first()
    if company is not None:
        return company

    company = Company(tax_rate_bps=current_app.config.get("DEFAULT_TAX_RATE_BPS", 1500))
    session.add(company)
    session.flush()
    return company


def update_company_profile(payload: dict) -> Company:
    patch = validate_payload(model=Company, payload=payload, policy=COMPANY_POLICY, partial=True)
    rate = patch.get("tax_rate_bps")
    if rate is not None and not 0 <= rate <= 10_000:
        raise ValidationError("tax_rate_bps must be between 0 and 10000")

    company = get_company_profile()
    for k, v in patch.items():
        setattr(company, k, v)
    db.session.commit()
    return company
