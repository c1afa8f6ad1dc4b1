from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class Vendor(db.Model):
    """
    Multi-tenant root: every tenant is a Vendor (a licensed retailer/brand).

    WHY: Shared-database multi-tenancy. Locations, products, inventory,
    registers and payment processors all carry vendor_id, and every service
    call is scoped by the vendor taken from the authenticated VendorContext.
    """
    __tablename__ = "vendors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Vendor id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

class Location(db.Model):
    """
    Physical place that holds stock: a retail store or the vendor's warehouse.

    Location type "vendor" marks the primary warehouse used when an inventory
    adjustment arrives without an explicit location.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("vendor_id", "name", name="uq_locations_vendor_name"),
        db.Index("ix_locations_vendor_type", "vendor_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    # "store" or "vendor" (warehouse)
    type = db.Column(db.String(16), nullable=False, default="store")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("locations", lazy=True))

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} vendor_id={self.vendor_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "name": self.name,
            "type": self.type,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
