# backend/pharmapos/routes/inventory.py
"""
Inventory routes: ledger queries, adjustments, disposals and stock alerts.

- Any active user may read the ledger and alerts.
- Adjust and dispose require the admin or officer role.

Date filters accept ISO-8601 with Z/offsets and are inclusive on both ends.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..models.auth import ROLE_ADMIN, ROLE_OFFICER
from ..models.inventory import ENTRY_TYPES
from ..services import catalog_service, inventory_service, ledger_service
from ..validation import ValidationError
from ._params import date_range_args, int_arg, json_body

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/logs")
@require_actor
def list_logs_route():
    start, end = date_range_args()
    entry_type = request.args.get("type")
    if entry_type is not None and entry_type not in ENTRY_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(sorted(ENTRY_TYPES))}")

    entries = ledger_service.list_entries(
        product_id=int_arg("product_id"),
        start=start,
        end=end,
        reference=request.args.get("reference"),
        entry_type=entry_type,
        limit=int_arg("limit"),
    )
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200


@inventory_bp.get("/logs/<int:product_id>")
@require_actor
def product_history_route(product_id: int):
    start, end = date_range_args()
    entries = [e.to_dict() for e in ledger_service.list_by_product(product_id, start=start, end=end)]
    return jsonify({"product_id": product_id, "items": entries, "count": len(entries)}), 200


@inventory_bp.post("/adjust/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def adjust_route(product_id: int):
    """
    Body: {"quantity": <signed delta>, "notes": "..."}
    """
    data = json_body()
    product, entry = inventory_service.adjust_inventory(
        product_id=product_id,
        quantity_delta=data.get("quantity"),
        actor_user_id=g.current_user.id,
        notes=data.get("notes"),
    )
    return jsonify({"product": product.to_dict(), "log": entry.to_dict()}), 200


@inventory_bp.post("/dispose/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def dispose_route(product_id: int):
    """
    Body: {"quantity": <positive>, "reason": "expired"}
    """
    data = json_body()
    product, entry = inventory_service.dispose_inventory(
        product_id=product_id,
        quantity=data.get("quantity"),
        reason=data.get("reason"),
        actor_user_id=g.current_user.id,
    )
    return jsonify({"product": product.to_dict(), "log": entry.to_dict()}), 200


@inventory_bp.get("/alerts")
@require_actor
def stock_alerts_route():
    alerts = catalog_service.stock_alerts(
        threshold=int_arg("threshold", current_app.config["LOW_STOCK_THRESHOLD"]),
        within_days=int_arg("within_days", current_app.config["EXPIRY_WARNING_DAYS"]),
    )
    return jsonify(alerts), 200


@inventory_bp.get("/verify")
@require_actor
@require_role(ROLE_ADMIN)
def verify_ledger_route():
    mismatches = ledger_service.verify_ledger(product_id=int_arg("product_id"))
    return jsonify({"consistent": not mismatches, "mismatches": mismatches}), 200
