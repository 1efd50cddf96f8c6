# Overview: Request decorators for API routes: admin bearer auth and service error translation.

import hmac
from functools import wraps

from flask import current_app, jsonify, request

from .validation import BusinessRuleError, ConflictError, NotFoundError, ValidationError


def require_admin(f):
    """
    Require the shop operator's bearer token.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Token does not match ADMIN_API_TOKEN
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        expected = current_app.config.get("ADMIN_API_TOKEN") or ""

        if not expected or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            current_app.logger.warning("Rejected admin token for %s %s", request.method, request.path)
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, **kwargs)

    return decorated_function


def handle_service_errors(action_msg: str):
    """
    Translate service-layer exceptions into JSON error responses.

    ValidationError / BusinessRuleError -> 400
    NotFoundError -> 404
    ConflictError -> 409 (with "retryable")
    anything else -> logged, 500
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except BusinessRuleError as e:
                return jsonify({"error": str(e), "details": e.details}), 400
            except ConflictError as e:
                return jsonify({"error": str(e), "details": e.details, "retryable": e.retryable}), 409
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e.args[0]) if e.args else "Not found"}), 404
            except Exception:
                current_app.logger.exception(action_msg)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
