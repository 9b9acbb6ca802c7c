# Overview: Flask API routes for purchase orders.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_role
from ..models.auth import ROLE_ADMIN, ROLE_OFFICER
from ..services import purchase_order_service
from ._params import json_body

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("/")
@require_actor
def list_purchase_orders_route():
    pos = purchase_order_service.list_purchase_orders(status=request.args.get("status"))
    return jsonify({"items": [po.to_dict() for po in pos], "count": len(pos)}), 200


@purchase_orders_bp.get("/<int:po_id>")
@require_actor
def get_purchase_order_route(po_id: int):
    po = purchase_order_service.get_purchase_order(po_id)
    return jsonify({"purchase_order": po.to_dict()}), 200


@purchase_orders_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def create_purchase_order_route():
    data = json_body()
    po = purchase_order_service.create_purchase_order(
        order_number=data.get("order_number"),
        supplier=data.get("supplier_id"),
        items=data.get("items"),
        expected_delivery_date=data.get("expected_delivery_date"),
        total_amount_cents=data.get("total_amount_cents"),
        notes=data.get("notes"),
        created_by_user_id=g.current_user.id,
    )
    return jsonify({"purchase_order": po.to_dict()}), 201


@purchase_orders_bp.put("/<int:po_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def update_purchase_order_route(po_id: int):
    """
    Edit a pending order and/or change its status.

    {"status": "received"} restocks the order's products (once);
    {"status": "cancelled"} closes it without stock effect.
    """
    po = purchase_order_service.update_purchase_order(po_id, json_body(), actor_user_id=g.current_user.id)
    return jsonify({"purchase_order": po.to_dict()}), 200


@purchase_orders_bp.delete("/<int:po_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def delete_purchase_order_route(po_id: int):
    purchase_order_service.delete_purchase_order(po_id)
    return jsonify({"msg": "PO deleted"}), 200
