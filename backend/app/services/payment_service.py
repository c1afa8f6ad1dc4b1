# Overview: Service-layer entry points for card/cash sales, refunds and voids.

"""
Payment Processing Service

WHY: The POS takes cash and card tenders. Cash needs no external
confirmation; card tenders go through whichever processor the register
(or location) is bound to, and refunds/voids go back through the
processor that captured the original charge.

DESIGN PRINCIPLES:
- Cash fast path: no processor lookup, no database access
- Processor resolution happens here, never in routes
- Processor instances are closed after each call
- The caller's VendorContext scopes every lookup
"""

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import PaymentTransaction
from app.quantities import ZERO, to_json_number
from app.validation import (
    ValidationError,
    parse_decimal,
    parse_id,
    parse_optional_decimal,
    parse_optional_id,
    parse_optional_str,
)
from .payment_processor_service import (
    ProcessPaymentRequest,
    ProcessRefundRequest,
    TransactionNotFound,
    VoidTransactionRequest,
    get_payment_processor,
    get_payment_processor_by_id,
    get_payment_processor_for_register,
)
from .session_service import VendorContext


PAYMENT_METHOD_CASH = "cash"

VALID_PAYMENT_METHODS = (
    "cash",
    "credit",
    "debit",
    "card",
    "ebt_food",
    "ebt_cash",
    "gift_card",
    "check",
)


# =============================================================================
# REQUEST PARSING
# =============================================================================

def parse_sale_request(payload: dict, context: VendorContext) -> ProcessPaymentRequest:
    """
    Validate a POST /payment/process body.

    locationId, amount and paymentMethod are required; a zero amount counts
    as missing.
    """
    if not payload.get("locationId") or not payload.get("amount") or not payload.get("paymentMethod"):
        raise ValidationError("Missing required fields: locationId, amount, paymentMethod")

    payment_method = payload.get("paymentMethod")
    if not isinstance(payment_method, str) or payment_method.lower() not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid paymentMethod. Must be one of: {', '.join(VALID_PAYMENT_METHODS)}")

    metadata = payload.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    return ProcessPaymentRequest(
        amount=parse_decimal(payload.get("amount"), "amount", positive=True),
        tip_amount=parse_optional_decimal(payload.get("tipAmount"), "tipAmount", non_negative=True) or ZERO,
        payment_method=payment_method.lower(),
        location_id=parse_id(payload.get("locationId"), "locationId"),
        register_id=parse_optional_id(payload.get("registerId"), "registerId"),
        order_id=parse_optional_str(payload.get("orderId"), "orderId", max_length=64),
        user_id=context.user_id,
        reference_id=parse_optional_str(payload.get("referenceId"), "referenceId", max_length=50),
        invoice_number=parse_optional_str(payload.get("invoiceNumber"), "invoiceNumber", max_length=64),
        customer_id=parse_optional_str(payload.get("customerId"), "customerId", max_length=64),
        metadata=metadata,
    )


# =============================================================================
# OPERATIONS
# =============================================================================

def process_sale(context: VendorContext, request: ProcessPaymentRequest) -> dict[str, Any]:
    """
    Take a payment.

    Cash returns a synthetic success immediately. Card tenders resolve the
    register's processor (or the location default) and charge through it.

    Raises:
        ProcessorUnavailable: nothing usable is configured
        PaymentError: the processor call failed (declined/terminal/timeout/unknown)
    """
    if request.payment_method == PAYMENT_METHOD_CASH:
        return {
            "success": True,
            "message": "Cash payment - no processor required",
            "paymentMethod": PAYMENT_METHOD_CASH,
            "amount": to_json_number(request.amount),
        }

    if request.register_id is not None:
        processor = get_payment_processor_for_register(context, request.register_id)
    else:
        processor = get_payment_processor(context, request.location_id)

    try:
        result = processor.process_sale(request)
    finally:
        processor.close()
    return result.to_dict()


def _original_transaction(context: VendorContext, transaction_id: int) -> PaymentTransaction:
    txn = db.session.query(PaymentTransaction).filter_by(
        id=transaction_id,
        vendor_id=context.vendor_id,
    ).first()
    if txn is None:
        raise TransactionNotFound("Transaction not found")
    return txn


def process_refund(
    context: VendorContext,
    transaction_id: int,
    amount=None,
    reason: str | None = None,
) -> dict[str, Any]:
    """
    Refund all or part of a captured sale.

    The processor comes from the original transaction's payment_processor_id,
    active or not.
    amount defaults to whatever is still refundable.
    """
    original = _original_transaction(context, transaction_id)
    processor = get_payment_processor_by_id(context, original.payment_processor_id, require_active=False)

    try:
        result = processor.process_refund(ProcessRefundRequest(
            original_transaction_id=original.id,
            amount=amount,
            reason=reason,
            user_id=context.user_id,
        ))
    finally:
        processor.close()

    return {
        "success": result.success,
        "transactionId": result.transaction_id,
        "message": result.message,
        "amount": to_json_number(result.amount),
        "receiptData": result.receipt_data,
    }


def void_transaction(context: VendorContext, transaction_id: int, reason: str | None = None) -> dict[str, Any]:
    """Void a transaction on the processor that captured it, even if since deactivated."""
    original = _original_transaction(context, transaction_id)
    processor = get_payment_processor_by_id(context, original.payment_processor_id, require_active=False)

    try:
        result = processor.void_transaction(VoidTransactionRequest(
            transaction_id=original.id,
            user_id=context.user_id,
            reason=reason,
        ))
    finally:
        processor.close()

    return {
        "success": result.success,
        "transactionId": result.transaction_id,
        "message": result.message,
    }


def test_processor(context: VendorContext, processor_id: int) -> dict[str, Any]:
    """Run the processor's connection test (inactive processors included)."""
    processor = get_payment_processor_by_id(context, processor_id, require_active=False)
    try:
        connected = processor.test_connection()
    finally:
        processor.close()

    config = processor.get_config()
    return {
        "success": connected,
        "processor": config.to_dict(),
        "message": "Connection successful" if connected else "Connection failed",
    }
