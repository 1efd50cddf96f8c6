# Overview: Flask API routes for milk subscriptions, daily deliveries and monthly milk billing.

from flask import Blueprint, jsonify, request

from ..decorators import handle_service_errors, json_body, require_admin
from ..money import as_number
from ..services import billing_service, milk_service, settings_service
from ..validation import ValidationError, require_int

milk_bp = Blueprint("milk", __name__, url_prefix="/api/milk")


def _customer_id(data: dict) -> int:
    raw = data.get("customerId", data.get("customer_id"))
    if raw in (None, ""):
        raise ValidationError("customerId is required")
    return require_int(raw, "customerId")


@milk_bp.post("/subscriptions")
@require_admin
@handle_service_errors("Failed to create milk subscription")
def subscribe_route():
    data = json_body()
    sub = milk_service.subscribe(
        _customer_id(data),
        default_qty=data.get("defaultQty", data.get("qty")),
        default_items=data.get("defaultItems", data.get("items")),
        price_per_litre=data.get("pricePerLitre"),
    )
    return jsonify({"ok": True, "subscription": sub.to_dict()}), 201


@milk_bp.post("/subscriptions/<int:customer_id>/pause")
@require_admin
@handle_service_errors("Failed to pause milk subscription")
def pause_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    sub = milk_service.pause(
        customer_id,
        pause_from=data.get("pauseFrom"),
        pause_until=data.get("pauseUntil"),
    )
    return jsonify({"ok": True, "subscription": sub.to_dict()}), 200


@milk_bp.post("/subscriptions/<int:customer_id>/resume")
@require_admin
@handle_service_errors("Failed to resume milk subscription")
def resume_route(customer_id: int):
    sub = milk_service.resume(customer_id)
    return jsonify({"ok": True, "subscription": sub.to_dict()}), 200


@milk_bp.post("/logs")
@require_admin
@handle_service_errors("Failed to record milk delivery")
def record_delivery_route():
    """
    Mark one day's delivery. qty 0 with no items clears the day.
    """
    data = json_body()
    if not data.get("date"):
        raise ValidationError("date is required")
    log = milk_service.record_delivery(
        _customer_id(data),
        data["date"],
        qty=data.get("qty"),
        items=data.get("items"),
        price=data.get("price"),
    )
    return jsonify({"ok": True, "log": log.to_dict() if log else None}), 200


@milk_bp.get("/logs")
@require_admin
@handle_service_errors("Failed to list milk deliveries")
def list_logs_route():
    customer_id = request.args.get("customerId")
    logs = milk_service.list_logs(
        request.args.get("month"),
        require_int(customer_id, "customerId") if customer_id else None,
    )
    return jsonify({"logs": [l.to_dict() for l in logs]}), 200


@milk_bp.post("/payments")
@require_admin
@handle_service_errors("Failed to record milk payment")
def record_payment_route():
    data = json_body()
    payment = milk_service.record_payment(
        _customer_id(data),
        data.get("month"),
        data.get("amount"),
        data.get("note"),
    )
    return jsonify({"ok": True, "payment": payment.to_dict()}), 201


@milk_bp.put("/settings")
@require_admin
@handle_service_errors("Failed to update milk settings")
def update_settings_route():
    data = json_body()
    if data.get("milkPrice") in (None, ""):
        raise ValidationError("milkPrice is required")
    price = settings_service.set_milk_price(data["milkPrice"])
    return jsonify({"ok": True, "milkPrice": as_number(price)}), 200


@milk_bp.get("/billing/<month>")
@require_admin
@handle_service_errors("Failed to build milk billing")
def billing_route(month: str):
    billing = billing_service.milk_billing(month)
    return jsonify(billing_service.milk_billing_to_json(billing)), 200
