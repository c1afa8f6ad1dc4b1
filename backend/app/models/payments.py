from __future__ import annotations

from ..extensions import db
from app.quantities import to_json_number
from app.time_utils import to_utc_z, utcnow

# PaymentTransaction.status values
TXN_STATUS_APPROVED = "approved"
TXN_STATUS_DECLINED = "declined"
TXN_STATUS_ERROR = "error"
# Terminal timed out: the card may or may not have been charged
TXN_STATUS_PENDING_RECONCILIATION = "pending_reconciliation"
TXN_STATUS_REFUNDED = "refunded"
TXN_STATUS_PARTIALLY_REFUNDED = "partially_refunded"
TXN_STATUS_VOIDED = "voided"


class PaymentProcessor(db.Model):
    """
    Configured payment gateway / terminal integration.

    processor_type selects the implementation (dejavoo, ...). A location may
    have one is_default processor; registers may bind a specific one.
    Credentials are per-processor (a Dejavoo TPN identifies one terminal).
    """
    __tablename__ = "payment_processors"
    __table_args__ = (
        db.Index("ix_payment_processors_location_active", "location_id", "is_active", "is_default"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    processor_type = db.Column(db.String(32), nullable=True)
    processor_name = db.Column(db.String(128), nullable=True)

    # production or sandbox
    environment = db.Column(db.String(16), nullable=False, default="sandbox")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    # Dejavoo SPIN credentials
    dejavoo_authkey = db.Column(db.String(255), nullable=True)
    dejavoo_tpn = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<PaymentProcessor id={self.id} type={self.processor_type!r} name={self.processor_name!r}>"

    def to_dict(self) -> dict:
        # Credentials are never serialized
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "location_id": self.location_id,
            "processor_type": self.processor_type,
            "processor_name": self.processor_name,
            "environment": self.environment,
            "is_active": self.is_active,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PaymentTransaction(db.Model):
    """
    Log of every processor call (sale, refund, void) and its outcome.

    WHY payment_processor_id: refunds and voids route back to the exact
    gateway/terminal that captured the original charge, never to whatever
    processor the caller's register happens to use now.
    """
    __tablename__ = "payment_transactions"
    __table_args__ = (
        db.Index("ix_payment_txn_vendor_processed", "vendor_id", "processed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    payment_processor_id = db.Column(db.Integer, db.ForeignKey("payment_processors.id"), nullable=False, index=True)
    pos_register_id = db.Column(db.Integer, db.ForeignKey("pos_registers.id"), nullable=True, index=True)
    original_transaction_id = db.Column(db.Integer, db.ForeignKey("payment_transactions.id"), nullable=True, index=True)

    order_id = db.Column(db.String(64), nullable=True, index=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    customer_id = db.Column(db.String(64), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("vendor_users.id"), nullable=True)

    processor_type = db.Column(db.String(32), nullable=False)
    # sale, refund, void
    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    payment_method = db.Column(db.String(32), nullable=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    tip_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(32), nullable=False, index=True)

    processor_transaction_id = db.Column(db.String(128), nullable=True)
    processor_reference_id = db.Column(db.String(64), nullable=True, index=True)
    authorization_code = db.Column(db.String(64), nullable=True)
    result_code = db.Column(db.String(32), nullable=True)
    status_code = db.Column(db.String(32), nullable=True)
    message = db.Column(db.String(255), nullable=True)
    error_message = db.Column(db.String(255), nullable=True)

    card_type = db.Column(db.String(32), nullable=True)
    card_last_four = db.Column(db.String(4), nullable=True)
    card_bin = db.Column(db.String(8), nullable=True)
    cardholder_name = db.Column(db.String(128), nullable=True)

    request_data = db.Column(db.JSON, nullable=True)
    response_data = db.Column(db.JSON, nullable=True)
    receipt_data = db.Column(db.JSON, nullable=True)
    extra_metadata = db.Column("metadata", db.JSON, nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)

    payment_processor = db.relationship("PaymentProcessor")
    original_transaction = db.relationship("PaymentTransaction", remote_side=[id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "location_id": self.location_id,
            "payment_processor_id": self.payment_processor_id,
            "pos_register_id": self.pos_register_id,
            "original_transaction_id": self.original_transaction_id,
            "order_id": self.order_id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "processor_type": self.processor_type,
            "transaction_type": self.transaction_type,
            "payment_method": self.payment_method,
            "amount": to_json_number(self.amount),
            "tip_amount": to_json_number(self.tip_amount),
            "total_amount": to_json_number(self.total_amount),
            "status": self.status,
            "processor_reference_id": self.processor_reference_id,
            "authorization_code": self.authorization_code,
            "status_code": self.status_code,
            "message": self.message,
            "error_message": self.error_message,
            "card_type": self.card_type,
            "card_last_four": self.card_last_four,
            "metadata": self.extra_metadata,
            "processed_at": to_utc_z(self.processed_at),
        }
