# Overview: Flask API routes for user administration (admin only).

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_role
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER
from ..services import user_service
from ._params import json_body

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/")
@require_actor
@require_role(ROLE_ADMIN)
def list_users_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    users = user_service.list_users(include_inactive=include_inactive)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Body:
        name, email: required
        role: admin | cashier | officer (default cashier)
    """
    data = json_body()
    user = user_service.create_user(
        name=data.get("name"),
        email=data.get("email"),
        role=data.get("role") or ROLE_CASHIER,
    )
    return jsonify({"user": user.to_dict()}), 201


@users_bp.put("/<int:user_id>")
@require_actor
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    user = user_service.update_user(user_id, json_body(), acting_user_id=g.current_user.id)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.delete("/<int:user_id>")
@require_actor
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    user = user_service.deactivate_user(user_id, acting_user_id=g.current_user.id)
    return jsonify({"msg": "User deactivated", "user": user.to_dict()}), 200
