# Overview: Flask API routes for the customer ledger, legacy udhar views and migration.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import handle_service_errors, json_body, require_admin
from ..services import ledger_service, migration_service
from ..services.customer_service import get_customer
from ..time_utils import parse_month
from ..validation import ValidationError, require_int

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


def _customer_id_arg() -> int | None:
    raw = request.args.get("customerId", request.args.get("customer_id"))
    if raw in (None, ""):
        return None
    return require_int(raw, "customerId")


def _month_arg() -> str | None:
    raw = request.args.get("month")
    if not raw:
        return None
    try:
        return parse_month(raw)
    except ValueError as exc:
        raise ValidationError(str(exc))


@ledger_bp.get("/ledger")
@require_admin
@handle_service_errors("Failed to list ledger entries")
def list_ledger_route():
    """
    Ledger entries. With customerId the customer's entries in business-date
    order (optionally one month) plus the balance view.
    """
    customer_id = _customer_id_arg()
    if customer_id is None:
        entries = ledger_service.list_all(source=request.args.get("source"))
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200

    customer = get_customer(customer_id, include_deleted=True)
    entries = ledger_service.list_for(customer.id, _month_arg())
    return jsonify({
        "entries": [e.to_dict() for e in entries],
        "balance": ledger_service.balance_of(customer.id).to_dict(),
    }), 200


@ledger_bp.post("/ledger")
@require_admin
@handle_service_errors("Failed to post ledger entry")
def post_ledger_route():
    entry = ledger_service.post_from_payload(json_body())
    return jsonify({"ok": True, "entry": entry.to_dict()}), 201


@ledger_bp.put("/ledger/<int:entry_id>")
@require_admin
@handle_service_errors("Failed to update ledger entry")
def update_ledger_route(entry_id: int):
    entry = ledger_service.update_entry(entry_id, json_body())
    current_app.logger.info("Ledger entry %s corrected by operator", entry_id)
    return jsonify({"ok": True, "entry": entry.to_dict()}), 200


@ledger_bp.delete("/ledger/<int:entry_id>")
@require_admin
@handle_service_errors("Failed to delete ledger entry")
def delete_ledger_route(entry_id: int):
    ledger_service.delete_entry(entry_id)
    current_app.logger.info("Ledger entry %s deleted by operator", entry_id)
    return jsonify({"ok": True}), 200


@ledger_bp.get("/ledger/balance/<int:customer_id>")
@require_admin
@handle_service_errors("Failed to compute balance")
def balance_route(customer_id: int):
    customer = get_customer(customer_id, include_deleted=True)
    return jsonify(ledger_service.balance_of(customer.id).to_dict()), 200


@ledger_bp.post("/migrate-to-ledger")
@require_admin
@handle_service_errors("Legacy migration failed")
def migrate_route():
    """
    Copy legacy udhar records into the ledger. Safe to run repeatedly.
    """
    result = migration_service.migrate_legacy_to_ledger()
    return jsonify({"ok": True, **result}), 200


@ledger_bp.get("/legacy/udhar")
@require_admin
@handle_service_errors("Failed to list legacy udhar")
def legacy_udhar_route():
    """Legacy credits that are still outside the ledger."""
    entries = ledger_service.unmigrated_legacy_credits(_customer_id_arg())
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200


@ledger_bp.get("/legacy/udhar-payments")
@require_admin
@handle_service_errors("Failed to list legacy udhar payments")
def legacy_udhar_payments_route():
    payments = ledger_service.unmigrated_legacy_payments(_customer_id_arg())
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200
