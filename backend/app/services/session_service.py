# Overview: Bearer token lifecycle and the VendorContext handed to every service call.

"""
Session Token Management Service

WHY: A verified vendor identity must be bound to every inventory and
payment request before anything is touched. validate_session() turns a
bearer token into an explicit VendorContext; routes pass that value down
to services instead of reading ambient request state.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout, 8-hour idle timeout
- Revocable on logout
- vendor_id is captured at login and immutable for the token lifetime
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta
from ..extensions import db
from ..models import SessionToken, VendorUser, Vendor
from app.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=8)


@dataclass(frozen=True)
class VendorContext:
    """
    Authenticated caller: which vendor, which user, which token.

    Every service that reads or writes tenant data takes one of these as
    its first argument and scopes its queries by vendor_id.
    """
    vendor_id: int
    user: VendorUser | None = None
    session: SessionToken | None = None

    @property
    def user_id(self) -> int | None:
        return self.user.id if self.user is not None else None

    @property
    def role(self) -> str | None:
        return self.user.role if self.user is not None else None

    @property
    def performed_by_name(self) -> str:
        if self.user is None:
            return "System"
        return self.user.display_name or self.user.email


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 of the token for storage.

    WHY SHA-256 not bcrypt: tokens are already high-entropy, and every
    request validates one.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create a session token for a vendor user.

    Returns (session_record, plaintext_token); only the hash is stored.
    Raises ValueError if the user or vendor is missing/inactive.
    """
    user = db.session.query(VendorUser).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    vendor = db.session.query(Vendor).filter_by(id=user.vendor_id).first()
    if not vendor or not vendor.is_active:
        raise ValueError("Vendor is not active")

    plaintext_token = generate_token()

    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        vendor_id=user.vendor_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> VendorContext | None:
    """
    Validate a bearer token and return the VendorContext it grants.

    Returns None if the token is unknown, expired, idle too long, revoked,
    or its user/vendor has been deactivated. Updates last_used_at.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    vendor = session.vendor
    if not vendor or not vendor.is_active:
        _revoke(session, "Vendor deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return VendorContext(vendor_id=session.vendor_id, user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if an active session was revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def cleanup_expired_sessions() -> int:
    """
    Delete expired or revoked sessions older than 30 days.

    Returns count of sessions deleted.
    """
    cutoff = utcnow() - timedelta(days=30)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
