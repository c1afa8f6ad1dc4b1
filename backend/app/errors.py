# Overview: Shared 500 responses for route boundaries.

from flask import current_app, jsonify


def internal_error_response(log_message: str, exc: Exception | None = None):
    """
    Log the active exception and return a generic 500.

    details (the exception text) is included only when EXPOSE_ERROR_DETAILS
    is on, i.e. outside production.
    """
    current_app.logger.exception(log_message)
    body = {"success": False, "error": "Internal server error"}
    if exc is not None and current_app.config.get("EXPOSE_ERROR_DETAILS"):
        body["details"] = getattr(exc, "details", None) or str(exc)
    return jsonify(body), 500
