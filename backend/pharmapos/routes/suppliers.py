# Overview: Flask API routes for suppliers.

from flask import Blueprint, jsonify

from ..decorators import require_actor, require_role
from ..models.auth import ROLE_ADMIN, ROLE_OFFICER
from ..services import supplier_service
from ._params import json_body

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("/")
@require_actor
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers()
    return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_actor
def get_supplier_route(supplier_id: int):
    return jsonify({"supplier": supplier_service.get_supplier(supplier_id).to_dict()}), 200


@suppliers_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def create_supplier_route():
    supplier = supplier_service.create_supplier(json_body())
    return jsonify({"supplier": supplier.to_dict()}), 201


@suppliers_bp.put("/<int:supplier_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def update_supplier_route(supplier_id: int):
    supplier = supplier_service.update_supplier(supplier_id, json_body())
    return jsonify({"supplier": supplier.to_dict()}), 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def delete_supplier_route(supplier_id: int):
    supplier_service.delete_supplier(supplier_id)
    return jsonify({"msg": "Supplier deleted"}), 200
