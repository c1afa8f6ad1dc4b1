from __future__ import annotations

from ..extensions import db
from app.quantities import to_json_number
from app.time_utils import to_utc_z

SESSION_STATUS_OPEN = "open"
SESSION_STATUS_CLOSED = "closed"


class Register(db.Model):
    """
    Physical POS register/terminal at a location.

    WHY: A register is what a POS client binds to. It optionally points at
    one PaymentProcessor; with no active processor bound (and no location
    default) the register can only take cash.

    DESIGN: Registers are persistent (not deleted when inactive).
    Each register can have many sessions over time, at most one open.
    """
    __tablename__ = "pos_registers"
    __table_args__ = (
        db.UniqueConstraint("location_id", "register_number", name="uq_pos_registers_location_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # Human-readable identifier (e.g., "REG-01", "FRONT")
    register_number = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)

    payment_processor_id = db.Column(db.Integer, db.ForeignKey("payment_processors.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    location = db.relationship("Location", backref=db.backref("registers", lazy=True))
    payment_processor = db.relationship("PaymentProcessor", foreign_keys=[payment_processor_id])
    __mapper_args__ = {"version_id_col": version_id}

    def has_active_processor(self) -> bool:
        """A bound processor only counts when it is also flagged active."""
        return bool(
            self.payment_processor_id
            and self.payment_processor is not None
            and self.payment_processor.is_active
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "location_id": self.location_id,
            "register_number": self.register_number,
            "name": self.name,
            "payment_processor_id": self.payment_processor_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class POSSession(db.Model):
    """
    Register session (shift).

    LIFECYCLE:
    - open: created by get-or-create; any client on the register joins it
    - closed: terminal state, set once by an explicit close

    INVARIANT: at most one open session per register, enforced by the
    partial unique index below and by serialising get-or-create on the
    register row.
    """
    __tablename__ = "pos_sessions"
    __table_args__ = (
        db.UniqueConstraint("register_id", "session_number", name="uq_pos_sessions_register_number"),
        db.Index(
            "uq_pos_sessions_register_open",
            "register_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_number = db.Column(db.String(64), nullable=False)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("pos_registers.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("vendor_users.id"), nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("vendor_users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_OPEN, index=True)

    # Processor bound when the session opened (None = cash only)
    payment_processor_id = db.Column(db.Integer, db.ForeignKey("payment_processors.id"), nullable=True)

    opening_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    closing_cash = db.Column(db.Numeric(12, 2), nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)

    total_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_transactions = db.Column(db.Integer, nullable=False, default=0)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    register = db.relationship("Register", backref=db.backref("sessions", lazy=True))
    location = db.relationship("Location")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_number": self.session_number,
            "vendor_id": self.vendor_id,
            "register_id": self.register_id,
            "location_id": self.location_id,
            "status": self.status,
            "payment_processor_id": self.payment_processor_id,
            "opening_cash": to_json_number(self.opening_cash),
            "closing_cash": to_json_number(self.closing_cash),
            "closing_notes": self.closing_notes,
            "total_sales": to_json_number(self.total_sales),
            "total_transactions": self.total_transactions,
            "opened_by_user_id": self.opened_by_user_id,
            "closed_by_user_id": self.closed_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }
