# Overview: Flask API routes for vendor login, logout and identity.

# backend/app/routes/auth.py
"""
Vendor Authentication API routes

- POST /login issues a bearer token (stored only as a SHA-256 hash)
- POST /logout revokes it
- GET /me returns the VendorContext the token grants
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import bearer_token, require_vendor
from ..validation import ValidationError, parse_optional_id


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a vendor user and create a session token.

    Body: {email, password, vendorId?}
    The token must be sent as "Authorization: Bearer <token>".
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
            return jsonify({"error": "email and password required"}), 400

        vendor_id = parse_optional_id(data.get("vendorId"), "vendorId")
        user = auth_service.authenticate(email, password, vendor_id=vendor_id)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "vendor_id": session.vendor_id,
            "message": "Login successful"
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to login vendor user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    WHY: Explicit logout prevents token reuse.
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout vendor user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_vendor
def me_route():
    context = g.vendor_context
    return jsonify({
        "user": context.user.to_dict() if context.user else None,
        "vendor_id": context.vendor_id,
        "vendor": context.user.vendor.to_dict() if context.user and context.user.vendor else None,
        "role": context.role,
    }), 200
