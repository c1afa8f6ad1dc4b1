# Overview: Payment processor abstraction; one implementation per terminal vendor, resolved per register/location.

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx
from flask import current_app

from ..extensions import db
from ..models import PaymentProcessor, PaymentTransaction, POSSession, Register
from ..models.payments import (
    TXN_STATUS_APPROVED,
    TXN_STATUS_DECLINED,
    TXN_STATUS_ERROR,
    TXN_STATUS_PARTIALLY_REFUNDED,
    TXN_STATUS_PENDING_RECONCILIATION,
    TXN_STATUS_REFUNDED,
    TXN_STATUS_VOIDED,
)
from ..models.registers import SESSION_STATUS_OPEN
from app.quantities import ZERO, quantize, to_json_number
from app.time_utils import utcnow
from app.validation import ValidationError
from .concurrency import PersistenceError, lock_for_update, run_atomic
from .dejavoo_client import DejavooApiError, DejavooClient, generate_reference_id, parse_card_type
from .session_service import VendorContext
"""
Payment Processor Invariants (authoritative)

- Every processor call that reaches the gateway is logged as one
  PaymentTransaction, whatever the outcome.
- Refunds and voids always run on the processor stored on the ORIGINAL
  transaction, never the caller's current register/location.
- Failures leave this module as exactly one PaymentError whose kind is
  resolved here (timeout > terminal_error > declined > unknown). The three
  flags stay independently readable.
- A timeout is ambiguous: the card may have been charged. It is logged as
  pending_reconciliation and must not be retried automatically.
"""

logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

KIND_DECLINED = "declined"
KIND_TERMINAL_ERROR = "terminal_error"
KIND_TIMEOUT = "timeout"
KIND_UNKNOWN = "unknown"

_HTTP_STATUS_BY_KIND = {
    KIND_DECLINED: 200,
    KIND_TERMINAL_ERROR: 503,
    KIND_TIMEOUT: 504,
    KIND_UNKNOWN: 400,
}


class PaymentError(Exception):
    """
    Processor failure resolved once at the processor boundary.

    kind picks the HTTP status and the operator prompt:
    declined -> "try another card", terminal_error -> "try again",
    timeout -> "check with staff before retrying".
    """

    kind = KIND_UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        is_declined: bool | None = None,
        is_terminal_error: bool | None = None,
        is_timeout: bool | None = None,
        status_code: str | None = None,
        result_code: str | None = None,
        transaction_id: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.is_declined = self.kind == KIND_DECLINED if is_declined is None else is_declined
        self.is_terminal_error = self.kind == KIND_TERMINAL_ERROR if is_terminal_error is None else is_terminal_error
        self.is_timeout = self.kind == KIND_TIMEOUT if is_timeout is None else is_timeout
        self.status_code = status_code
        self.result_code = result_code
        self.transaction_id = transaction_id

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS_BY_KIND[self.kind]

    @classmethod
    def from_dejavoo(cls, err: DejavooApiError, transaction_id: int | None = None) -> "PaymentError":
        is_timeout = err.is_timeout
        is_terminal = err.is_terminal_error or err.is_terminal_unavailable
        is_declined = err.is_declined

        if is_timeout:
            error_cls = ProcessorTimeout
        elif is_terminal:
            error_cls = ProcessorTerminalError
        elif is_declined:
            error_cls = ProcessorDeclined
        else:
            error_cls = PaymentError

        return error_cls(
            err.message or "Payment processing failed",
            is_declined=is_declined,
            is_terminal_error=is_terminal,
            is_timeout=is_timeout,
            status_code=err.status_code,
            result_code=err.result_code,
            transaction_id=transaction_id,
        )

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.message or "Payment processing failed",
            "kind": self.kind,
            "isDeclined": self.is_declined,
            "isTerminalError": self.is_terminal_error,
            "isTimeout": self.is_timeout,
            "transactionId": self.transaction_id,
            "details": f"Status: {self.status_code}" if self.status_code else None,
        }


class ProcessorDeclined(PaymentError):
    kind = KIND_DECLINED


class ProcessorTerminalError(PaymentError):
    kind = KIND_TERMINAL_ERROR


class ProcessorTimeout(PaymentError):
    kind = KIND_TIMEOUT


class ProcessorUnavailable(Exception):
    """No usable processor: none configured, inactive, or unsupported type."""
    pass


class TransactionNotFound(Exception):
    pass


# =============================================================================
# REQUEST / RESULT TYPES
# =============================================================================

@dataclass
class ProcessPaymentRequest:
    amount: Decimal
    payment_method: str
    location_id: int
    tip_amount: Decimal = ZERO
    register_id: int | None = None
    order_id: str | None = None
    user_id: int | None = None
    reference_id: str | None = None
    invoice_number: str | None = None
    customer_id: str | None = None
    metadata: dict | None = None


@dataclass
class ProcessRefundRequest:
    original_transaction_id: int
    amount: Decimal | None = None
    reason: str | None = None
    user_id: int | None = None


@dataclass
class VoidTransactionRequest:
    transaction_id: int
    user_id: int | None = None
    reason: str | None = None


@dataclass
class PaymentResult:
    success: bool
    transaction_id: int | None
    message: str | None
    amount: Decimal
    tip_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    authorization_code: str | None = None
    card_type: str | None = None
    card_last4: str | None = None
    receipt_data: Any = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "transactionId": self.transaction_id,
            "authorizationCode": self.authorization_code,
            "message": self.message,
            "cardType": self.card_type,
            "cardLast4": self.card_last4,
            "amount": to_json_number(self.amount),
            "tipAmount": to_json_number(self.tip_amount),
            "totalAmount": to_json_number(self.total_amount),
            "receiptData": self.receipt_data,
            "metadata": self.metadata,
        }


# =============================================================================
# PROCESSOR INTERFACE
# =============================================================================

class BasePaymentProcessor(ABC):
    """Capability set every terminal/gateway integration provides."""

    processor_type: str = ""

    def __init__(self, config: PaymentProcessor):
        self.config = config

    @abstractmethod
    def process_sale(self, request: ProcessPaymentRequest) -> PaymentResult:
        ...

    @abstractmethod
    def process_refund(self, request: ProcessRefundRequest) -> PaymentResult:
        ...

    @abstractmethod
    def void_transaction(self, request: VoidTransactionRequest) -> PaymentResult:
        ...

    @abstractmethod
    def test_connection(self) -> bool:
        ...

    def close(self) -> None:
        pass

    def get_config(self) -> PaymentProcessor:
        return self.config

    # -- shared log writing -------------------------------------------------

    def _load_original(self, transaction_id: int) -> PaymentTransaction:
        txn = db.session.query(PaymentTransaction).filter_by(
            id=transaction_id,
            vendor_id=self.config.vendor_id,
        ).first()
        if txn is None:
            raise TransactionNotFound("Transaction not found")
        return txn

    def _record(self, apply=None, **fields) -> PaymentTransaction | None:
        """
        Insert one PaymentTransaction; apply(txn) runs in the same
        transaction for side effects (original status, session totals).

        The gateway call has already happened, so a database failure here is
        logged for reconciliation rather than raised over the gateway result.
        """
        fields.setdefault("tip_amount", ZERO)
        fields["total_amount"] = quantize(fields["amount"] + fields["tip_amount"])

        def _op():
            txn = PaymentTransaction(
                vendor_id=self.config.vendor_id,
                payment_processor_id=self.config.id,
                processor_type=self.processor_type,
                processed_at=utcnow(),
                **fields,
            )
            db.session.add(txn)
            db.session.flush()
            if apply is not None:
                apply(txn)
            db.session.commit()
            return txn

        try:
            return run_atomic(_op)
        except PersistenceError as e:
            logger.error(
                "Failed to record %s %s transaction (processor=%s, reference=%s, status=%s): %s",
                self.processor_type,
                fields.get("transaction_type"),
                self.config.id,
                fields.get("processor_reference_id"),
                fields.get("status"),
                e.details,
            )
            return None


# =============================================================================
# DEJAVOO
# =============================================================================

PAYMENT_METHOD_MAP = {
    "credit": "Credit",
    "debit": "Debit",
    "ebt_food": "EBT_Food",
    "ebt_cash": "EBT_Cash",
    "gift_card": "Gift",
    "cash": "Cash",
    "check": "Check",
}


def map_payment_method(method: str | None) -> str:
    return PAYMENT_METHOD_MAP.get(method or "", "Card")


def _http_client_factory(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def _failure_status(error: PaymentError) -> str:
    if error.kind == KIND_TIMEOUT:
        return TXN_STATUS_PENDING_RECONCILIATION
    if error.kind == KIND_DECLINED:
        return TXN_STATUS_DECLINED
    return TXN_STATUS_ERROR


class DejavooPaymentProcessor(BasePaymentProcessor):
    processor_type = "dejavoo"

    def __init__(self, config: PaymentProcessor, client: DejavooClient | None = None):
        super().__init__(config)
        if not config.dejavoo_authkey or not config.dejavoo_tpn:
            raise ProcessorUnavailable("Dejavoo configuration missing authkey or TPN")

        self._http_client = None
        if client is None:
            app_config = current_app.config
            self._http_client = _http_client_factory(app_config.get("PAYMENT_HTTP_TIMEOUT_SECONDS", 150))
            client = DejavooClient(
                authkey=config.dejavoo_authkey,
                tpn=config.dejavoo_tpn,
                environment=config.environment,
                timeout_minutes=app_config.get("DEJAVOO_PROXY_TIMEOUT_MINUTES", 2),
                client=self._http_client,
            )
        self.client = client

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()

    def _fail(self, err: DejavooApiError, **fields) -> PaymentError:
        """Log, persist and classify a gateway failure."""
        error = PaymentError.from_dejavoo(err)
        status = _failure_status(error)

        txn = self._record(
            status=status,
            result_code=err.result_code,
            status_code=err.status_code,
            error_message=(err.message or "")[:255],
            response_data=err.response or {},
            **fields,
        )
        error.transaction_id = txn.id if txn else None

        if error.kind == KIND_TIMEOUT:
            logger.error(
                "Dejavoo %s timed out, needs reconciliation (processor=%s, reference=%s)",
                fields.get("transaction_type"), self.config.id, fields.get("processor_reference_id"),
            )
        elif error.kind == KIND_DECLINED:
            logger.warning(
                "Dejavoo %s declined (processor=%s, status=%s): %s",
                fields.get("transaction_type"), self.config.id, err.status_code, err.message,
            )
        else:
            logger.error(
                "Dejavoo %s failed (processor=%s, kind=%s, status=%s, result=%s): %s",
                fields.get("transaction_type"), self.config.id, error.kind, err.status_code, err.result_code, err.message,
            )
        return error

    def process_sale(self, request: ProcessPaymentRequest) -> PaymentResult:
        reference_id = request.reference_id or generate_reference_id("TXN")
        tip_amount = request.tip_amount or ZERO
        base = dict(
            location_id=request.location_id,
            pos_register_id=request.register_id,
            order_id=request.order_id,
            invoice_number=request.invoice_number,
            customer_id=request.customer_id,
            user_id=request.user_id,
            transaction_type="sale",
            payment_method=request.payment_method,
            amount=request.amount,
            tip_amount=tip_amount,
            processor_reference_id=reference_id,
            request_data={"amount": str(request.amount), "tipAmount": str(tip_amount)},
            extra_metadata=request.metadata,
        )

        try:
            response = self.client.sale(
                amount=request.amount,
                tip_amount=tip_amount,
                payment_type=map_payment_method(request.payment_method),
                reference_id=reference_id,
                invoice_number=request.invoice_number,
                get_receipt="Both",
            )
        except DejavooApiError as e:
            raise self._fail(e, **base)

        general = response.get("GeneralResponse", {})
        receipt = response.get("ReceiptData")
        card_type = parse_card_type(response.get("CardType"))

        def _bump_session_totals(txn):
            if request.register_id is None:
                return
            session = lock_for_update(
                db.session.query(POSSession).filter_by(
                    register_id=request.register_id,
                    status=SESSION_STATUS_OPEN,
                )
            ).first()
            if session is not None:
                session.total_sales = quantize(Decimal(session.total_sales or 0) + txn.total_amount)
                session.total_transactions = (session.total_transactions or 0) + 1

        txn = self._record(
            apply=_bump_session_totals,
            status=TXN_STATUS_APPROVED,
            processor_transaction_id=response.get("ReferenceId"),
            authorization_code=response.get("AuthCode"),
            result_code=general.get("ResultCode"),
            status_code=general.get("StatusCode"),
            message=(general.get("Message") or "")[:255] or None,
            response_data=response,
            card_type=card_type,
            card_last_four=response.get("CardLast4"),
            card_bin=response.get("CardBin"),
            cardholder_name=response.get("CardholderName"),
            receipt_data={"text": receipt} if receipt else None,
            **base,
        )
        logger.info(
            "Dejavoo sale approved (processor=%s, reference=%s, amount=%s)",
            self.config.id, reference_id, request.amount,
        )

        return PaymentResult(
            success=True,
            transaction_id=txn.id if txn else None,
            authorization_code=response.get("AuthCode"),
            message=general.get("Message"),
            card_type=card_type,
            card_last4=response.get("CardLast4"),
            amount=request.amount,
            tip_amount=tip_amount,
            total_amount=quantize(request.amount + tip_amount),
            receipt_data=receipt,
            metadata=request.metadata or {},
        )

    def process_refund(self, request: ProcessRefundRequest) -> PaymentResult:
        original = self._load_original(request.original_transaction_id)
        if original.transaction_type != "sale":
            raise ValidationError("Only sale transactions can be refunded")
        if original.status not in (TXN_STATUS_APPROVED, TXN_STATUS_PARTIALLY_REFUNDED):
            raise ValidationError(f"Cannot refund a transaction with status {original.status}")

        refundable = refundable_amount(original)
        amount = request.amount if request.amount is not None else refundable
        if amount <= 0:
            raise ValidationError("Refund amount must be greater than 0")
        if amount > refundable:
            raise ValidationError(f"Refund amount exceeds refundable amount ({refundable})")

        reference_id = generate_reference_id("REFUND")
        original_id = original.id
        base = dict(
            location_id=original.location_id,
            pos_register_id=original.pos_register_id,
            original_transaction_id=original_id,
            order_id=original.order_id,
            user_id=request.user_id,
            transaction_type="refund",
            payment_method=original.payment_method,
            amount=amount,
            processor_reference_id=reference_id,
            request_data={
                "originalTransactionId": original_id,
                "amount": str(amount),
                "reason": request.reason,
            },
        )

        try:
            response = self.client.return_(
                amount=amount,
                payment_type=map_payment_method(original.payment_method),
                reference_id=reference_id,
                invoice_number=original.invoice_number,
                get_receipt="Both",
            )
        except DejavooApiError as e:
            raise self._fail(e, **base)

        general = response.get("GeneralResponse", {})
        receipt = response.get("ReceiptData")

        def _mark_original(txn):
            locked = lock_for_update(db.session.query(PaymentTransaction).filter_by(id=original_id)).first()
            remaining = refundable_amount(locked)
            locked.status = TXN_STATUS_REFUNDED if remaining <= 0 else TXN_STATUS_PARTIALLY_REFUNDED

        txn = self._record(
            apply=_mark_original,
            status=TXN_STATUS_APPROVED,
            processor_transaction_id=response.get("ReferenceId"),
            authorization_code=response.get("AuthCode"),
            result_code=general.get("ResultCode"),
            status_code=general.get("StatusCode"),
            message=(general.get("Message") or "")[:255] or None,
            response_data=response,
            receipt_data={"text": receipt} if receipt else None,
            **base,
        )
        logger.info(
            "Dejavoo refund approved (processor=%s, original=%s, amount=%s)",
            self.config.id, original_id, amount,
        )

        return PaymentResult(
            success=True,
            transaction_id=txn.id if txn else None,
            authorization_code=response.get("AuthCode"),
            message=general.get("Message"),
            amount=amount,
            total_amount=amount,
            receipt_data=receipt,
        )

    def void_transaction(self, request: VoidTransactionRequest) -> PaymentResult:
        original = self._load_original(request.transaction_id)
        if not original.processor_reference_id:
            raise ValidationError("Cannot void transaction without processor reference ID")
        if original.status == TXN_STATUS_VOIDED:
            raise ValidationError("Transaction already voided")

        original_id = original.id
        base = dict(
            location_id=original.location_id,
            pos_register_id=original.pos_register_id,
            original_transaction_id=original_id,
            order_id=original.order_id,
            user_id=request.user_id,
            transaction_type="void",
            payment_method=original.payment_method,
            amount=quantize(Decimal(original.amount)),
            tip_amount=quantize(Decimal(original.tip_amount or 0)),
            processor_reference_id=original.processor_reference_id,
            request_data={"transactionId": original_id, "reason": request.reason},
        )

        try:
            response = self.client.void(reference_id=original.processor_reference_id, get_receipt="Both")
        except DejavooApiError as e:
            raise self._fail(e, **base)

        general = response.get("GeneralResponse", {})

        def _mark_original(txn):
            locked = lock_for_update(db.session.query(PaymentTransaction).filter_by(id=original_id)).first()
            locked.status = TXN_STATUS_VOIDED

        self._record(
            apply=_mark_original,
            status=TXN_STATUS_APPROVED,
            result_code=general.get("ResultCode"),
            status_code=general.get("StatusCode"),
            message=(general.get("Message") or "")[:255] or None,
            response_data=response,
            **base,
        )
        logger.info("Dejavoo void approved (processor=%s, transaction=%s)", self.config.id, original_id)

        return PaymentResult(
            success=True,
            transaction_id=original_id,
            message=general.get("Message"),
            amount=base["amount"],
            tip_amount=base["tip_amount"],
            total_amount=quantize(base["amount"] + base["tip_amount"]),
        )

    def test_connection(self) -> bool:
        return self.client.test_connection()


def refundable_amount(original: PaymentTransaction) -> Decimal:
    """Original total minus approved refunds already linked to it."""
    refunded = db.session.query(
        db.func.coalesce(db.func.sum(PaymentTransaction.amount), 0)
    ).filter(
        PaymentTransaction.original_transaction_id == original.id,
        PaymentTransaction.transaction_type == "refund",
        PaymentTransaction.status == TXN_STATUS_APPROVED,
    ).scalar()
    return quantize(Decimal(original.total_amount) - Decimal(str(refunded or 0)))


# =============================================================================
# REGISTRY / RESOLUTION
# =============================================================================

PROCESSOR_TYPES: dict[str, type[BasePaymentProcessor] | None] = {
    "dejavoo": DejavooPaymentProcessor,
    "authorize_net": None,
    "stripe": None,
    "square": None,
    "clover": None,
}

_DISPLAY_NAMES = {
    "authorize_net": "Authorize.Net",
    "stripe": "Stripe",
    "square": "Square",
    "clover": "Clover",
}


def create_processor_instance(config: PaymentProcessor) -> BasePaymentProcessor:
    if not config.processor_type:
        raise ProcessorUnavailable(
            "Payment processor configuration is incomplete. Missing processor_type. "
            f"Processor ID: {config.id}, Name: {config.processor_name or 'Unknown'}"
        )

    if config.processor_type not in PROCESSOR_TYPES:
        raise ProcessorUnavailable(
            f'Unsupported processor type: "{config.processor_type}". '
            f"Supported types: {', '.join(PROCESSOR_TYPES)}"
        )

    processor_cls = PROCESSOR_TYPES[config.processor_type]
    if processor_cls is None:
        raise ProcessorUnavailable(f"{_DISPLAY_NAMES[config.processor_type]} integration not yet implemented")
    return processor_cls(config)


def get_payment_processor(context: VendorContext, location_id: int) -> BasePaymentProcessor:
    """The location's active default processor."""
    config = db.session.query(PaymentProcessor).filter_by(
        vendor_id=context.vendor_id,
        location_id=location_id,
        is_active=True,
        is_default=True,
    ).order_by(PaymentProcessor.id).first()
    if config is None:
        raise ProcessorUnavailable(f"No active payment processor found for location {location_id}")
    return create_processor_instance(config)


def get_payment_processor_by_id(
    context: VendorContext,
    processor_id: int,
    *,
    require_active: bool = True,
) -> BasePaymentProcessor:
    config = db.session.query(PaymentProcessor).filter_by(
        id=processor_id,
        vendor_id=context.vendor_id,
    ).first()
    if config is None:
        raise ProcessorUnavailable(f"Payment processor {processor_id} not found")
    if require_active and not config.is_active:
        raise ProcessorUnavailable(f"Payment processor {processor_id} is inactive")
    return create_processor_instance(config)


def get_payment_processor_for_register(context: VendorContext, register_id: int) -> BasePaymentProcessor:
    """Register's bound processor, else its location default."""
    register = db.session.query(Register).filter_by(id=register_id, vendor_id=context.vendor_id).first()
    if register is None:
        raise ProcessorUnavailable(f"Register {register_id} not found")

    if register.payment_processor_id:
        return get_payment_processor_by_id(context, register.payment_processor_id)
    return get_payment_processor(context, register.location_id)
