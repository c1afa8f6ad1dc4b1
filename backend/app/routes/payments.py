# Overview: Flask API routes for POS card/cash payments, refunds and voids.

"""
POS payment routes.

POST   /api/pos/payment/process   sale
PUT    /api/pos/payment/process   refund {transactionId, amount?, reason?}
DELETE /api/pos/payment/process   void   ?transactionId=&reason=

Processor failures map to HTTP by kind:
- declined        200, success:false ("try another card")
- terminal_error  503 ("try again")
- timeout         504 ("check with staff before retrying")
- unknown         400
Every response carries isDeclined / isTerminalError / isTimeout so the POS
can tell them apart.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_vendor, require_vendor_role
from ..errors import internal_error_response
from ..services import payment_service
from ..services.payment_processor_service import PaymentError, ProcessorUnavailable, TransactionNotFound
from ..validation import ValidationError, parse_id, parse_optional_decimal, parse_optional_str, require_object


payments_bp = Blueprint("payments", __name__, url_prefix="/api/pos/payment")


def _payment_error_response(e: PaymentError):
    return jsonify(e.to_dict()), e.http_status


@payments_bp.post("/process")
@require_vendor
def process_payment_route():
    try:
        payload = require_object(request.get_json(silent=True))
        sale_request = payment_service.parse_sale_request(payload, g.vendor_context)
        result = payment_service.process_sale(g.vendor_context, sale_request)
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ProcessorUnavailable as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except PaymentError as e:
        return _payment_error_response(e)
    except Exception as e:
        return internal_error_response("Failed to process payment", e)


@payments_bp.put("/process")
@require_vendor
def refund_payment_route():
    """Refund through the processor that captured the original sale."""
    try:
        payload = require_object(request.get_json(silent=True))
        if not payload.get("transactionId"):
            return jsonify({"error": "Missing required field: transactionId"}), 400

        result = payment_service.process_refund(
            g.vendor_context,
            parse_id(payload.get("transactionId"), "transactionId"),
            amount=parse_optional_decimal(payload.get("amount"), "amount", positive=True),
            reason=parse_optional_str(payload.get("reason"), "reason"),
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except TransactionNotFound as e:
        return jsonify({"error": str(e)}), 404
    except ProcessorUnavailable as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except PaymentError as e:
        return _payment_error_response(e)
    except Exception as e:
        return internal_error_response("Failed to process refund", e)


@payments_bp.delete("/process")
@require_vendor
def void_payment_route():
    try:
        transaction_id = request.args.get("transactionId")
        if not transaction_id:
            return jsonify({"error": "Missing required parameter: transactionId"}), 400

        result = payment_service.void_transaction(
            g.vendor_context,
            parse_id(transaction_id, "transactionId"),
            reason=parse_optional_str(request.args.get("reason"), "reason"),
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except TransactionNotFound as e:
        return jsonify({"error": str(e)}), 404
    except ProcessorUnavailable as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except PaymentError as e:
        return _payment_error_response(e)
    except Exception as e:
        return internal_error_response("Failed to void transaction", e)


@payments_bp.post("/processors/<int:processor_id>/test")
@require_vendor
@require_vendor_role("manager")
def test_processor_route(processor_id: int):
    """Run a $1.00 authorization against the terminal."""
    try:
        result = payment_service.test_processor(g.vendor_context, processor_id)
        return jsonify(result), 200
    except ProcessorUnavailable as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        return internal_error_response("Failed to test payment processor", e)
