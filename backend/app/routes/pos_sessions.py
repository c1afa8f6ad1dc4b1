# Overview: Flask API routes for POS register sessions; consumed by the POS client's session manager.

# backend/app/routes/pos_sessions.py
"""
POS Session API Routes

DESIGN:
- get-or-create never opens a second session on a register; it returns
  the open one (created=false)
- status is polled by every POS client (default every 3s); a "closed"
  answer tells the client to drop its local session
- close is one-way; closing a closed session is a 409
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_vendor
from ..errors import internal_error_response
from ..quantities import ZERO
from ..services import pos_session_service
from ..services.pos_session_service import RegisterNotFound, SessionNotFound
from ..validation import (
    ConflictError,
    ValidationError,
    parse_id,
    parse_optional_decimal,
    parse_optional_id,
    parse_optional_str,
    require_fields,
    require_object,
)


pos_sessions_bp = Blueprint("pos_sessions", __name__, url_prefix="/api/pos")


@pos_sessions_bp.post("/sessions/get-or-create")
@require_vendor
def get_or_create_session_route():
    """
    Body: {registerId, locationId, openingCash?}

    Returns 201 with created=true for a new session, 200 with
    created=false when the register already had one open.
    """
    try:
        payload = require_object(request.get_json(silent=True))
        require_fields(payload, "registerId", "locationId")

        session, created = pos_session_service.get_or_create_session(
            g.vendor_context,
            register_id=parse_id(payload.get("registerId"), "registerId"),
            location_id=parse_id(payload.get("locationId"), "locationId"),
            opening_cash=parse_optional_decimal(payload.get("openingCash"), "openingCash", non_negative=True) or ZERO,
        )
        return jsonify({
            "session": pos_session_service.serialize_session(session),
            "created": created,
        }), 201 if created else 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RegisterNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        return internal_error_response("Failed to open POS session", e)


@pos_sessions_bp.get("/sessions/status")
@require_vendor
def session_status_route():
    """?sessionId= -> {session} (null when unknown to this vendor)."""
    try:
        session_id = parse_id(request.args.get("sessionId"), "sessionId")
        session = pos_session_service.get_session(g.vendor_context, session_id)
        return jsonify({
            "session": pos_session_service.serialize_session(session) if session else None,
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return internal_error_response("Failed to load POS session status", e)


@pos_sessions_bp.post("/sessions/close")
@require_vendor
def close_session_route():
    """Body: {sessionId, closingCash?, closingNotes?}"""
    try:
        payload = require_object(request.get_json(silent=True))
        require_fields(payload, "sessionId")

        session = pos_session_service.close_session(
            g.vendor_context,
            parse_id(payload.get("sessionId"), "sessionId"),
            closing_cash=parse_optional_decimal(payload.get("closingCash"), "closingCash", non_negative=True) or ZERO,
            closing_notes=parse_optional_str(payload.get("closingNotes"), "closingNotes", max_length=2000),
        )
        return jsonify({
            "success": True,
            "session": pos_session_service.serialize_session(session),
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SessionNotFound as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception as e:
        return internal_error_response("Failed to close POS session", e)


@pos_sessions_bp.get("/registers")
@require_vendor
def list_registers_route():
    """?locationId= -> registers with processor binding and open session."""
    try:
        location_id = parse_optional_id(request.args.get("locationId"), "locationId")
        if location_id is None:
            return jsonify({"error": "locationId is required"}), 400

        registers = pos_session_service.list_registers(g.vendor_context, location_id)
        return jsonify({"registers": registers}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return internal_error_response("Failed to list registers", e)
