# Overview: Flask API routes for the company profile.

from flask import Blueprint, jsonify

from ..decorators import require_actor, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN
from ..services import company_service
from ._params import json_body

company_bp = Blueprint("company", __name__, url_prefix="/api/company")


@company_bp.get("/")
@require_actor
def get_company_route():
    company = company_service.get_company_profile()
    db.session.commit()
    return jsonify({"company": company.to_dict()}), 200


@company_bp.put("/")
@require_actor
@require_role(ROLE_ADMIN)
def update_company_route():
    company = company_service.update_company_profile(json_body())
    return jsonify({"company": company.to_dict()}), 200
