# Overview: Flask API routes for storefront orders; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import handle_service_errors, json_body, require_admin
from ..services import order_service
from ..validation import require_int

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@handle_service_errors("Failed to place order")
def place_order_route():
    """
    Public checkout. Prices and stock are decided server-side.

    400: validation / unavailable / insufficient stock
    409: stock changed during checkout (retryable)
    """
    order = order_service.place_order(json_body())
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("")
@require_admin
@handle_service_errors("Failed to list orders")
def list_orders_route():
    limit = request.args.get("limit")
    orders = order_service.list_orders(
        status=request.args.get("status"),
        phone=request.args.get("phone"),
        limit=require_int(limit, "limit") if limit else 200,
    )
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_admin
@handle_service_errors("Failed to load order")
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<int:order_id>")
@require_admin
@handle_service_errors("Failed to update order")
def update_order_route(order_id: int):
    """
    Update order status. Setting "cancelled" restores stock once.
    """
    data = json_body()
    if "status" not in data:
        return jsonify({"error": "status required"}), 400
    order = order_service.update_status(order_id, data["status"])
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/convert-to-udhar")
@require_admin
@handle_service_errors("Failed to convert order to udhar")
def convert_to_udhar_route(order_id: int):
    """
    Put an order on a customer's udhar. Body may carry customerId; otherwise
    the customer is matched by the order's phone.

    409: already added to udhar
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get("customerId", data.get("customer_id"))
    order = order_service.convert_to_credit(
        order_id,
        customer_id=require_int(customer_id, "customerId") if customer_id not in (None, "") else None,
        phone=data.get("phone"),
    )
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/mark-paid")
@require_admin
@handle_service_errors("Failed to mark order paid")
def mark_paid_route(order_id: int):
    order = order_service.mark_paid(order_id)
    return jsonify({"ok": True, "order": order.to_dict()}), 200
