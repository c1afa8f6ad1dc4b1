# Overview: Vendor user accounts and password authentication.

"""
Vendor Authentication Service

WHY: Every inventory edit and payment must carry a verified vendor identity.
Passwords are hashed with bcrypt; bearer tokens live in session_service.py.

MULTI-TENANT: Users belong to exactly one vendor (vendor_id). Email
uniqueness is vendor-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower, digit and special char
- Authentication fails closed for inactive users and inactive vendors
"""

import bcrypt
import re
from ..extensions import db
from ..models import Vendor, VendorUser
from ..models.auth import VENDOR_ROLES
from app.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes simply fail."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_vendor_user(
    vendor_id: int,
    email: str,
    password: str,
    role: str = "budtender",
    display_name: str | None = None,
) -> VendorUser:
    """
    Create a vendor user with a bcrypt password hash.

    Raises:
        ValueError: vendor missing/inactive, unknown role, or duplicate email
        PasswordValidationError: weak password
    """
    vendor = db.session.query(Vendor).filter_by(id=vendor_id).first()
    if not vendor:
        raise ValueError("Vendor not found")
    if not vendor.is_active:
        raise ValueError("Vendor is not active")

    if role not in VENDOR_ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of {list(VENDOR_ROLES)}")

    normalized_email = email.strip().lower()
    existing = db.session.query(VendorUser).filter_by(
        vendor_id=vendor_id,
        email=normalized_email,
    ).first()
    if existing:
        raise ValueError("Email already exists for this vendor")

    user = VendorUser(
        vendor_id=vendor_id,
        email=normalized_email,
        display_name=display_name,
        password_hash=hash_password(password),
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str, vendor_id: int | None = None) -> VendorUser | None:
    """
    Authenticate a vendor user by email and password.

    If vendor_id is given the lookup is scoped to that vendor; otherwise the
    first active account with that email wins.

    Returns the user (and stamps last_login_at) or None.
    """
    query = db.session.query(VendorUser).filter(
        VendorUser.email == email.strip().lower(),
        VendorUser.is_active.is_(True),
    )
    if vendor_id is not None:
        query = query.filter(VendorUser.vendor_id == vendor_id)

    user = query.order_by(VendorUser.id).first()
    if not user:
        return None

    vendor = db.session.query(Vendor).filter_by(id=user.vendor_id).first()
    if not vendor or not vendor.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def role_at_least(role: str, minimum: str) -> bool:
    """budtender < manager < owner"""
    if role not in VENDOR_ROLES or minimum not in VENDOR_ROLES:
        return False
    return VENDOR_ROLES.index(role) >= VENDOR_ROLES.index(minimum)
