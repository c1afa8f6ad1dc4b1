# backend/app/routes/inventory.py
"""
Vendor inventory routes.

SECURITY: All routes require a vendor bearer token.
- Bulk operations (zero_out / audit / transfer) require manager or owner
- Single adjustments and read-only history are open to any vendor user

Quantities are grams; JSON numbers with at most two decimal places.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_vendor, require_vendor_role
from ..errors import internal_error_response
from ..quantities import to_json_number
from ..services import bulk_inventory_service
from ..services import inventory_ledger_service as ledger
from ..services.inventory_ledger_service import (
    InsufficientQuantityError,
    InventoryError,
    InventoryRecordNotFound,
)
from ..validation import (
    ValidationError,
    parse_decimal,
    parse_id,
    parse_optional_id,
    parse_optional_str,
    require_object,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/vendor")


@inventory_bp.post("/inventory/bulk-operations")
@require_vendor
@require_vendor_role("manager")
def bulk_operations_route():
    """
    Apply one operation to many inventory rows.

    Body: {operation, items[], toLocationId?}
    Per-item failures are reported in results.errors; the call itself only
    fails (400) for a malformed request.
    """
    try:
        payload = require_object(request.get_json(silent=True))
        results = bulk_inventory_service.execute(
            g.vendor_context,
            payload.get("operation"),
            payload.get("items"),
            to_location_id=payload.get("toLocationId"),
        )
        return jsonify({"success": True, "results": results.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return internal_error_response("Failed to run bulk inventory operation", e)


@inventory_bp.post("/inventory/adjust")
@require_vendor
def adjust_inventory_route():
    """
    Body: {productId, adjustment, inventoryId?, locationId?, reason?}

    adjustment is a signed gram amount. The record is created at zero if
    the product has never been stocked at the location.
    """
    try:
        payload = require_object(request.get_json(silent=True))
        if payload.get("productId") is None or payload.get("adjustment") is None:
            raise ValidationError("Missing required fields: productId, adjustment")

        result = ledger.adjust_inventory_item(
            g.vendor_context,
            product_id=parse_id(payload.get("productId"), "productId"),
            adjustment=parse_decimal(payload.get("adjustment"), "adjustment"),
            inventory_id=parse_optional_id(payload.get("inventoryId"), "inventoryId"),
            location_id=parse_optional_id(payload.get("locationId"), "locationId"),
            reason=parse_optional_str(payload.get("reason"), "reason"),
        )
        return jsonify({"success": True, **result.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InsufficientQuantityError as e:
        return jsonify({
            "error": str(e),
            "available": to_json_number(e.available),
            "requested": to_json_number(e.requested),
        }), 400
    except InventoryRecordNotFound as e:
        return jsonify({"error": str(e)}), 404
    except InventoryError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return internal_error_response("Failed to adjust inventory", e)


@inventory_bp.get("/inventory/<int:inventory_id>/transactions")
@require_vendor
def inventory_transactions_route(inventory_id: int):
    """Ledger rows for one record, oldest first. ?limit= caps the count."""
    try:
        limit = request.args.get("limit", type=int)
        rows = ledger.list_transactions(g.vendor_context, inventory_id, limit=limit)
        return jsonify({"transactions": [r.to_dict() for r in rows]}), 200
    except InventoryRecordNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        return internal_error_response("Failed to list inventory transactions", e)


@inventory_bp.get("/inventory/<int:inventory_id>/verify")
@require_vendor
def verify_inventory_route(inventory_id: int):
    """Replay the record's ledger and compare with the stored quantity."""
    try:
        record = ledger.get_record(g.vendor_context, inventory_id)
        return jsonify(ledger.verify_record(record)), 200
    except InventoryRecordNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        return internal_error_response("Failed to verify inventory record", e)


@inventory_bp.get("/products/<int:product_id>/stock")
@require_vendor
def product_stock_route(product_id: int):
    try:
        return jsonify(ledger.get_product_stock(g.vendor_context, product_id)), 200
    except InventoryError as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        return internal_error_response("Failed to load product stock", e)
