"""
POS Session Service

WHY: A POS client works inside a session bound to one register and
location. Every terminal on the register shares that session; the
server record is the source of truth and clients poll it.

DESIGN PRINCIPLES:
- At most one open session per register (get-or-create, never duplicate)
- open -> closed exactly once; closed sessions are never reopened
- The session captures the register's ACTIVE processor at open time
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Location, POSSession, Register
from ..models.registers import SESSION_STATUS_CLOSED, SESSION_STATUS_OPEN
from app.quantities import ZERO
from app.time_utils import utcnow
from app.validation import ConflictError, ValidationError
from .concurrency import PersistenceError, lock_for_update, run_atomic
from .session_service import VendorContext


class SessionNotFound(Exception):
    pass


class RegisterNotFound(Exception):
    pass


# =============================================================================
# SERIALIZATION
# =============================================================================

def _processor_summary(processor) -> dict | None:
    if processor is None:
        return None
    return {
        "id": processor.id,
        "processor_type": processor.processor_type,
        "processor_name": processor.processor_name,
        "is_active": processor.is_active,
    }


def serialize_session(session: POSSession) -> dict:
    """Session row plus the display fields the POS shows."""
    data = session.to_dict()
    register = session.register
    data["register_name"] = register.name if register else None
    data["register_number"] = register.register_number if register else None
    data["location_name"] = session.location.name if session.location else None
    data["has_processor"] = bool(register and register.has_active_processor())
    data["payment_processor"] = _processor_summary(register.payment_processor if register else None)
    return data


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def _open_session_for(register_id: int) -> POSSession | None:
    return db.session.query(POSSession).filter_by(
        register_id=register_id,
        status=SESSION_STATUS_OPEN,
    ).first()


def get_or_create_session(
    context: VendorContext,
    register_id: int,
    location_id: int | None = None,
    opening_cash: Decimal = ZERO,
) -> tuple[POSSession, bool]:
    """
    Return the register's open session, opening one if none exists.

    Serialised on the register row; the partial unique index on open
    sessions catches anything that slips past (another process on a
    database without FOR UPDATE). The loser of that race gets the winner's
    session.

    Returns:
        (session, created)

    Raises:
        RegisterNotFound: unknown register for this vendor
        ValidationError: inactive register or location mismatch
    """
    def _op():
        register = lock_for_update(
            db.session.query(Register).filter_by(id=register_id, vendor_id=context.vendor_id)
        ).first()
        if register is None:
            raise RegisterNotFound("Register not found")
        if not register.is_active:
            raise ValidationError("Cannot open session on inactive register")
        if location_id is not None and register.location_id != location_id:
            raise ValidationError("Register does not belong to this location")

        existing = _open_session_for(register.id)
        if existing is not None:
            db.session.commit()
            return existing, False

        count = db.session.query(POSSession).filter_by(register_id=register.id).count()
        session = POSSession(
            session_number=f"S-{register.register_number}-{count + 1:05d}",
            vendor_id=context.vendor_id,
            register_id=register.id,
            location_id=register.location_id,
            opened_by_user_id=context.user_id,
            status=SESSION_STATUS_OPEN,
            payment_processor_id=register.payment_processor_id if register.has_active_processor() else None,
            opening_cash=opening_cash,
            total_sales=ZERO,
            total_transactions=0,
            opened_at=utcnow(),
        )
        db.session.add(session)
        db.session.commit()
        return session, True

    try:
        return run_atomic(_op)
    except PersistenceError as e:
        if isinstance(e.__cause__, IntegrityError):
            existing = _open_session_for(register_id)
            if existing is not None and existing.vendor_id == context.vendor_id:
                return existing, False
        raise


def get_session(context: VendorContext, session_id: int) -> POSSession | None:
    return db.session.query(POSSession).filter_by(id=session_id, vendor_id=context.vendor_id).first()


def close_session(
    context: VendorContext,
    session_id: int,
    closing_cash: Decimal = ZERO,
    closing_notes: str | None = None,
) -> POSSession:
    """
    Close an open session.

    IMMUTABLE: once closed the session cannot be reopened or closed again.

    Raises:
        SessionNotFound
        ConflictError: session already closed
    """
    def _op():
        session = lock_for_update(
            db.session.query(POSSession).filter_by(id=session_id, vendor_id=context.vendor_id)
        ).first()
        if session is None:
            raise SessionNotFound("Session not found")
        if session.status == SESSION_STATUS_CLOSED:
            raise ConflictError("Session is already closed")

        session.status = SESSION_STATUS_CLOSED
        session.closed_at = utcnow()
        session.closing_cash = closing_cash
        session.closing_notes = closing_notes
        session.closed_by_user_id = context.user_id
        db.session.commit()
        return session

    return run_atomic(_op)


# =============================================================================
# REGISTERS
# =============================================================================

def list_registers(context: VendorContext, location_id: int) -> list[dict]:
    """
    Registers at a location with processor binding and current session.

    has_active_processor is what the POS uses to decide card vs cash-only.
    """
    location = db.session.query(Location).filter_by(id=location_id, vendor_id=context.vendor_id).first()
    if location is None:
        raise ValidationError("Location not found")

    registers = db.session.query(Register).filter_by(
        vendor_id=context.vendor_id,
        location_id=location_id,
        is_active=True,
    ).order_by(Register.register_number).all()

    result = []
    for register in registers:
        data = register.to_dict()
        data["payment_processor"] = _processor_summary(register.payment_processor)
        data["has_active_processor"] = register.has_active_processor()
        current = _open_session_for(register.id)
        data["current_session"] = current.to_dict() if current else None
        result.append(data)
    return result
