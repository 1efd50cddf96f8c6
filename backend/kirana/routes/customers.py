# Overview: Flask API routes for the customer directory and monthly statements.

from flask import Blueprint, jsonify, request

from ..decorators import handle_service_errors, json_body, require_admin
from ..services import billing_service, customer_service, ledger_service

customers_bp = Blueprint("customers", __name__, url_prefix="/api")


@customers_bp.post("/customers")
@require_admin
@handle_service_errors("Failed to create customer")
def create_customer_route():
    """
    Register a customer. Phone must be unique among non-deleted customers.

    409: phone already registered
    """
    data = json_body()
    customer = customer_service.create_customer(data, pin=data.get("pin"))
    return jsonify({"ok": True, "customer": customer.to_dict()}), 201


@customers_bp.get("/customers")
@require_admin
@handle_service_errors("Failed to list customers")
def list_customers_route():
    include_deleted = request.args.get("includeDeleted", "").lower() == "true"
    customers = customer_service.list_customers(include_deleted=include_deleted)
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.get("/customers/<int:customer_id>")
@require_admin
@handle_service_errors("Failed to load customer")
def get_customer_route(customer_id: int):
    customer = customer_service.get_customer(customer_id, include_deleted=True)
    subscription = customer.milk_subscription
    return jsonify({
        "customer": customer.to_dict(),
        "subscription": subscription.to_dict() if subscription else None,
        "balance": ledger_service.balance_of(customer.id).to_dict(),
    }), 200


@customers_bp.delete("/customers/<int:customer_id>")
@require_admin
@handle_service_errors("Failed to delete customer")
def delete_customer_route(customer_id: int):
    """
    Soft delete by default. ?hard=true removes the customer and every related row.
    """
    if request.args.get("hard", "").lower() == "true":
        removed = customer_service.hard_delete(customer_id)
        return jsonify({"ok": True, "hard": True, "removed": removed}), 200
    customer = customer_service.soft_delete(customer_id)
    return jsonify({"ok": True, "hard": False, "customer": customer.to_dict()}), 200


@customers_bp.post("/customers/<int:customer_id>/restore")
@require_admin
@handle_service_errors("Failed to restore customer")
def restore_customer_route(customer_id: int):
    customer = customer_service.restore(customer_id)
    return jsonify({"ok": True, "customer": customer.to_dict()}), 200


@customers_bp.get("/customers/<int:customer_id>/statement")
@require_admin
@handle_service_errors("Failed to build statement")
def statement_route(customer_id: int):
    statement = billing_service.monthly_statement(customer_id, request.args.get("month"))
    return jsonify(billing_service.statement_to_json(statement)), 200


@customers_bp.get("/customers/<int:customer_id>/months")
@require_admin
@handle_service_errors("Failed to list activity months")
def months_route(customer_id: int):
    return jsonify({"months": billing_service.activity_months(customer_id)}), 200


@customers_bp.get("/udhar-summary")
@require_admin
@handle_service_errors("Failed to build udhar summary")
def udhar_summary_route():
    return jsonify({"customers": billing_service.credit_summary()}), 200
