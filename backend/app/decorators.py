# Overview: Vendor authentication and role decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .services import session_service
from .services.auth_service import role_at_least


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_vendor(f):
    """
    Require a verified vendor identity.

    Sets g.vendor_context (VendorContext). Routes pass it explicitly to
    every service call; services never read g.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired, idle or revoked token
    - User or vendor deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.vendor_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_vendor_role(minimum_role: str):
    """
    Require the authenticated vendor user to hold at least minimum_role
    (budtender < manager < owner). Must be applied after @require_vendor.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            context = getattr(g, "vendor_context", None)
            if context is None:
                return jsonify({"error": "Authentication required"}), 401

            if not role_at_least(context.role, minimum_role):
                current_app.logger.warning(
                    "Role check failed: user=%s role=%s required=%s path=%s",
                    context.user_id, context.role, minimum_role, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_role": minimum_role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
