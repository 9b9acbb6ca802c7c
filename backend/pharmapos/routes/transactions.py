# Overview: Flask API routes for sales, receipts and refunds.

from flask import Blueprint, g, jsonify

from ..decorators import require_actor
from ..services import refund_service, sales_service
from ._params import date_range_args, json_body

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("/")
@require_actor
def list_transactions_route():
    start, end = date_range_args()
    txns = sales_service.list_transactions(start=start, end=end)
    return jsonify({"items": [t.to_dict() for t in txns], "count": len(txns)}), 200


@transactions_bp.post("/")
@require_actor
def create_transaction_route():
    """
    Record a sale (payment).

    Body:
        items: [{product_id, quantity, unit_price_cents, discount_cents?, line_total_cents?}]
        payment_method: cash | mtn | vodafone | airteltigo | card
        payment_reference: required for non-cash payments (>= 10 chars)
        discount_cents: optional order-level discount, applied before VAT
        customer_name, customer_phone, notes: optional
    """
    data = json_body()
    result = sales_service.record_sale(
        items=data.get("items"),
        actor_user_id=g.current_user.id,
        payment_method=data.get("payment_method"),
        payment_reference=data.get("payment_reference"),
        customer_name=data.get("customer_name"),
        customer_phone=data.get("customer_phone"),
        notes=data.get("notes"),
        discount_cents=data.get("discount_cents"),
    )
    return jsonify({"transaction": result.transaction.to_dict(), "receipt": result.receipt}), 201


@transactions_bp.get("/<int:transaction_id>")
@require_actor
def get_transaction_route(transaction_id: int):
    txn = sales_service.get_transaction(transaction_id)
    return jsonify({"transaction": txn.to_dict()}), 200


@transactions_bp.get("/<int:transaction_id>/receipt")
@require_actor
def get_receipt_route(transaction_id: int):
    return jsonify({"receipt": sales_service.get_receipt(transaction_id)}), 200


@transactions_bp.post("/<int:transaction_id>/refund")
@require_actor
def refund_transaction_route(transaction_id: int):
    refund = refund_service.refund_transaction(transaction_id, g.current_user.id)
    return jsonify({"transaction": refund.to_dict()}), 201
