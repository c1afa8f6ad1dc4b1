# Overview: Pytest coverage for processor classification, transaction logging and resolution.

"""
Payment Processor Tests

Verifies:
1. Gateway failures resolve to exactly one kind (timeout > terminal > declined)
   while all three flags stay readable
2. Every gateway call is logged as a PaymentTransaction
3. Refunds and voids update the original transaction
4. Processor resolution: register binding, location default, registry errors
"""

from decimal import Decimal

import httpx
import pytest

from app.extensions import db
from app.models import PaymentProcessor, PaymentTransaction, POSSession
from app.services import payment_processor_service as pps
from app.services import pos_session_service
from app.services.concurrency import PersistenceError
from app.services.dejavoo_client import DejavooApiError, DejavooClient
from app.services.payment_processor_service import (
    DejavooPaymentProcessor,
    PaymentError,
    ProcessorDeclined,
    ProcessorTerminalError,
    ProcessorTimeout,
    ProcessorUnavailable,
    ProcessPaymentRequest,
    ProcessRefundRequest,
    TransactionNotFound,
    VoidTransactionRequest,
)
from app.validation import ValidationError


def approved(**extra):
    body = {
        "GeneralResponse": {"ResultCode": "0", "StatusCode": "0000", "Message": "Approved"},
        "AuthCode": "AUTH01",
        "ReferenceId": "GW-123",
        "CardType": "VISA",
        "CardLast4": "4242",
        "ReceiptData": "APPROVED\nVISA ****4242",
    }
    body.update(extra)
    return body


DECLINED = {"GeneralResponse": {"ResultCode": "0", "StatusCode": "1015", "Message": "Declined"}}
TIMED_OUT = {"GeneralResponse": {"ResultCode": "2", "StatusCode": "2007", "Message": "Transaction timeout"}}
TERMINAL_DOWN = {"GeneralResponse": {"ResultCode": "1", "StatusCode": "2011", "Message": "Terminal not available"}}


class Gateway:
    """MockTransport handler answering with queued bodies and recording calls."""

    def __init__(self, *bodies):
        self.bodies = list(bodies)
        self.paths = []

    def __call__(self, request):
        self.paths.append(request.url.path.rsplit("/", 1)[-1])
        body = self.bodies.pop(0) if len(self.bodies) > 1 else self.bodies[0]
        return httpx.Response(200, json=body)


def _processor(config, gateway):
    client = DejavooClient(
        config.dejavoo_authkey,
        config.dejavoo_tpn,
        client=httpx.Client(transport=httpx.MockTransport(gateway)),
    )
    return DejavooPaymentProcessor(config, client=client)


def _sale_request(store, **overrides):
    fields = dict(amount=Decimal("20.00"), payment_method="credit", location_id=store.id)
    fields.update(overrides)
    return ProcessPaymentRequest(**fields)


# =============================================================================
# CLASSIFICATION
# =============================================================================


class TestPaymentErrorClassification:
    def test_timeout_wins_over_terminal_error(self):
        err = PaymentError.from_dejavoo(DejavooApiError("Transaction timeout", "2007", "TerminalError"))

        assert isinstance(err, ProcessorTimeout)
        assert err.kind == "timeout"
        assert err.is_timeout and err.is_terminal_error
        assert err.http_status == 504

    def test_terminal_unavailable(self):
        err = PaymentError.from_dejavoo(DejavooApiError("Terminal not available", "2011", "1"))

        assert isinstance(err, ProcessorTerminalError)
        assert err.http_status == 503
        assert not err.is_declined and not err.is_timeout

    def test_declined(self):
        err = PaymentError.from_dejavoo(DejavooApiError("Declined", "1015", "0"))

        assert isinstance(err, ProcessorDeclined)
        assert err.http_status == 200
        assert err.to_dict() == {
            "success": False,
            "error": "Declined",
            "kind": "declined",
            "isDeclined": True,
            "isTerminalError": False,
            "isTimeout": False,
            "transactionId": None,
            "details": "Status: 1015",
        }

    def test_unclassified_api_error(self):
        err = PaymentError.from_dejavoo(DejavooApiError("Invalid request", "2301", "ApiError"))

        assert type(err) is PaymentError
        assert err.kind == "unknown"
        assert err.http_status == 400

    def test_timeout_and_decline_are_distinguishable(self):
        timeout = PaymentError.from_dejavoo(DejavooApiError("Transaction timeout", "2007", "ApiError")).to_dict()
        decline = PaymentError.from_dejavoo(DejavooApiError("Declined", "1015", "0")).to_dict()

        assert timeout["success"] is decline["success"] is False
        assert (timeout["kind"], timeout["isTimeout"], timeout["isDeclined"]) == ("timeout", True, False)
        assert (decline["kind"], decline["isTimeout"], decline["isDeclined"]) == ("declined", False, True)


# =============================================================================
# SALE
# =============================================================================


class TestSale:
    def test_approved_sale_is_logged(self, context, processor, store):
        gateway = Gateway(approved())

        result = _processor(processor, gateway).process_sale(
            _sale_request(store, tip_amount=Decimal("3.00"), order_id="ORD-1", reference_id="REF-SALE-1"),
        )

        assert result.success is True
        assert result.authorization_code == "AUTH01"
        assert result.card_type == "Visa"
        assert result.card_last4 == "4242"
        assert result.total_amount == Decimal("23.00")
        assert gateway.paths == ["Sale"]

        txn = db.session.get(PaymentTransaction, result.transaction_id)
        assert txn.status == "approved"
        assert txn.transaction_type == "sale"
        assert txn.payment_processor_id == processor.id
        assert txn.processor_reference_id == "REF-SALE-1"
        assert txn.total_amount == Decimal("23.00")
        assert txn.receipt_data == {"text": "APPROVED\nVISA ****4242"}

    def test_sale_bumps_open_session_totals(self, context, processor, store, register):
        session, _ = pos_session_service.get_or_create_session(context, register.id, store.id)

        _processor(processor, Gateway(approved())).process_sale(
            _sale_request(store, register_id=register.id, amount=Decimal("12.34")),
        )

        db.session.expire_all()
        refreshed = db.session.get(POSSession, session.id)
        assert refreshed.total_sales == Decimal("12.34")
        assert refreshed.total_transactions == 1

    def test_declined_sale_is_logged_and_raised(self, context, processor, store):
        with pytest.raises(ProcessorDeclined) as exc_info:
            _processor(processor, Gateway(DECLINED)).process_sale(_sale_request(store))

        txn = db.session.get(PaymentTransaction, exc_info.value.transaction_id)
        assert txn.status == "declined"
        assert txn.status_code == "1015"
        assert txn.error_message == "Declined"

    def test_timeout_needs_reconciliation(self, context, processor, store):
        with pytest.raises(ProcessorTimeout) as exc_info:
            _processor(processor, Gateway(TIMED_OUT)).process_sale(_sale_request(store))

        txn = db.session.get(PaymentTransaction, exc_info.value.transaction_id)
        assert txn.status == "pending_reconciliation"

    def test_terminal_error_logged_as_error(self, context, processor, store):
        with pytest.raises(ProcessorTerminalError) as exc_info:
            _processor(processor, Gateway(TERMINAL_DOWN)).process_sale(_sale_request(store))

        assert db.session.get(PaymentTransaction, exc_info.value.transaction_id).status == "error"

    def test_log_failure_after_approval_still_reports_success(self, monkeypatch, context, processor, store):
        def _fail(func, **kwargs):
            raise PersistenceError("Database write failed", details="disk full")

        monkeypatch.setattr(pps, "run_atomic", _fail)

        result = _processor(processor, Gateway(approved())).process_sale(_sale_request(store))

        assert result.success is True
        assert result.transaction_id is None
        assert db.session.query(PaymentTransaction).count() == 0


# =============================================================================
# REFUND / VOID
# =============================================================================


def _approved_sale(processor, store, amount="50.00"):
    result = _processor(processor, Gateway(approved())).process_sale(_sale_request(store, amount=Decimal(amount)))
    return result.transaction_id


class TestRefund:
    def test_full_refund_defaults_to_original_total(self, context, processor, store):
        sale_id = _approved_sale(processor, store)
        gateway = Gateway(approved())

        result = _processor(processor, gateway).process_refund(ProcessRefundRequest(original_transaction_id=sale_id))

        assert result.amount == Decimal("50.00")
        assert gateway.paths == ["Return"]
        refund = db.session.get(PaymentTransaction, result.transaction_id)
        assert refund.transaction_type == "refund"
        assert refund.original_transaction_id == sale_id
        assert refund.processor_reference_id.startswith("REFUND-")
        db.session.expire_all()
        assert db.session.get(PaymentTransaction, sale_id).status == "refunded"

    def test_partial_refunds(self, context, processor, store):
        sale_id = _approved_sale(processor, store)
        proc = _processor(processor, Gateway(approved()))

        proc.process_refund(ProcessRefundRequest(original_transaction_id=sale_id, amount=Decimal("20.00")))
        db.session.expire_all()
        assert db.session.get(PaymentTransaction, sale_id).status == "partially_refunded"

        result = proc.process_refund(ProcessRefundRequest(original_transaction_id=sale_id))
        assert result.amount == Decimal("30.00")
        db.session.expire_all()
        assert db.session.get(PaymentTransaction, sale_id).status == "refunded"

    def test_refund_cannot_exceed_remaining(self, context, processor, store):
        sale_id = _approved_sale(processor, store)

        with pytest.raises(ValidationError, match="exceeds refundable amount"):
            _processor(processor, Gateway(approved())).process_refund(
                ProcessRefundRequest(original_transaction_id=sale_id, amount=Decimal("50.01")),
            )

    def test_fully_refunded_sale_cannot_be_refunded_again(self, context, processor, store):
        sale_id = _approved_sale(processor, store)
        proc = _processor(processor, Gateway(approved()))
        proc.process_refund(ProcessRefundRequest(original_transaction_id=sale_id))

        with pytest.raises(ValidationError, match="status refunded"):
            proc.process_refund(ProcessRefundRequest(original_transaction_id=sale_id))

    def test_declined_refund_leaves_original_untouched(self, context, processor, store):
        sale_id = _approved_sale(processor, store)

        with pytest.raises(ProcessorDeclined):
            _processor(processor, Gateway(DECLINED)).process_refund(ProcessRefundRequest(original_transaction_id=sale_id))

        db.session.expire_all()
        assert db.session.get(PaymentTransaction, sale_id).status == "approved"

    def test_unknown_original(self, context, processor):
        with pytest.raises(TransactionNotFound):
            _processor(processor, Gateway(approved())).process_refund(ProcessRefundRequest(original_transaction_id=404))


class TestVoid:
    def test_void_marks_original(self, context, processor, store):
        sale_id = _approved_sale(processor, store)
        gateway = Gateway(approved())

        result = _processor(processor, gateway).void_transaction(VoidTransactionRequest(transaction_id=sale_id))

        assert result.success is True
        assert result.transaction_id == sale_id
        assert gateway.paths == ["Void"]
        db.session.expire_all()
        assert db.session.get(PaymentTransaction, sale_id).status == "voided"
        void_row = db.session.query(PaymentTransaction).filter_by(transaction_type="void").one()
        assert void_row.original_transaction_id == sale_id

    def test_double_void_rejected(self, context, processor, store):
        sale_id = _approved_sale(processor, store)
        proc = _processor(processor, Gateway(approved()))
        proc.void_transaction(VoidTransactionRequest(transaction_id=sale_id))

        with pytest.raises(ValidationError, match="already voided"):
            proc.void_transaction(VoidTransactionRequest(transaction_id=sale_id))


# =============================================================================
# RESOLUTION
# =============================================================================


def _add_processor(db_session, vendor, store, **overrides):
    fields = dict(
        vendor_id=vendor.id,
        location_id=store.id,
        processor_type="dejavoo",
        processor_name="Back Office Terminal",
        is_active=True,
        is_default=False,
        dejavoo_authkey="k",
        dejavoo_tpn="TPN0002",
    )
    fields.update(overrides)
    config = PaymentProcessor(**fields)
    db_session.add(config)
    db_session.commit()
    return config


class TestResolution:
    def test_register_binding(self, context, register, processor):
        proc = pps.get_payment_processor_for_register(context, register.id)
        try:
            assert proc.get_config().id == processor.id
        finally:
            proc.close()

    def test_register_without_binding_uses_location_default(self, context, cash_register, processor):
        proc = pps.get_payment_processor_for_register(context, cash_register.id)
        try:
            assert proc.get_config().id == processor.id
        finally:
            proc.close()

    def test_inactive_bound_processor_is_unavailable(self, db_session, context, register, processor):
        processor.is_active = False
        db_session.commit()

        with pytest.raises(ProcessorUnavailable, match="inactive"):
            pps.get_payment_processor_for_register(context, register.id)

    def test_no_default_for_location(self, db_session, context, store, processor):
        processor.is_default = False
        db_session.commit()

        with pytest.raises(ProcessorUnavailable, match=f"location {store.id}"):
            pps.get_payment_processor(context, store.id)

    def test_other_vendor_cannot_use_processor(self, other_context, processor):
        with pytest.raises(ProcessorUnavailable, match="not found"):
            pps.get_payment_processor_by_id(other_context, processor.id)

    def test_missing_processor_type(self, db_session, vendor, store):
        config = _add_processor(db_session, vendor, store, processor_type=None, processor_name="Half Configured")

        with pytest.raises(ProcessorUnavailable) as exc_info:
            pps.create_processor_instance(config)

        message = str(exc_info.value)
        assert "Missing processor_type" in message
        assert f"Processor ID: {config.id}" in message
        assert "Half Configured" in message

    def test_unsupported_type(self, db_session, vendor, store):
        config = _add_processor(db_session, vendor, store, processor_type="paypal")

        with pytest.raises(ProcessorUnavailable, match='Unsupported processor type: "paypal"'):
            pps.create_processor_instance(config)

    @pytest.mark.parametrize("processor_type,name", [
        ("stripe", "Stripe"),
        ("square", "Square"),
        ("clover", "Clover"),
        ("authorize_net", "Authorize.Net"),
    ])
    def test_recognised_but_not_implemented(self, db_session, vendor, store, processor_type, name):
        config = _add_processor(db_session, vendor, store, processor_type=processor_type)

        with pytest.raises(ProcessorUnavailable, match=f"{name} integration not yet implemented"):
            pps.create_processor_instance(config)

    def test_dejavoo_requires_credentials(self, db_session, vendor, store):
        config = _add_processor(db_session, vendor, store, dejavoo_tpn=None)

        with pytest.raises(ProcessorUnavailable, match="missing authkey or TPN"):
            pps.create_processor_instance(config)
