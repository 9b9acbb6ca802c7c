# Overview: Flask API routes for the product catalog.

from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_OFFICER
from ..services import catalog_service
from ._params import json_body

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
@require_actor
def list_products_route():
    products = catalog_service.list_products(category=request.args.get("category"))
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    product = catalog_service.get_product(db.session, product_id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/search/<string:query>")
@require_actor
def search_products_route(query: str):
    products = catalog_service.search_products(query)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/barcode/<string:barcode>")
@require_actor
def get_product_by_barcode_route(barcode: str):
    product = catalog_service.get_product_by_barcode(barcode)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def create_product_route():
    product = catalog_service.create_product(json_body())
    return jsonify({"product": product.to_dict()}), 201


@products_bp.put("/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_OFFICER)
def update_product_route(product_id: int):
    product = catalog_service.update_product(product_id, json_body())
    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    catalog_service.delete_product(product_id)
    return jsonify({"msg": "Product deleted"}), 200
