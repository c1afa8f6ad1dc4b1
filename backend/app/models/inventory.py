from __future__ import annotations

from ..extensions import db
from app.quantities import to_json_number
from app.time_utils import to_utc_z, utcnow

STOCK_STATUS_IN_STOCK = "instock"
STOCK_STATUS_OUT_OF_STOCK = "outofstock"


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to a vendor via vendor_id.

    STOCK ROLLUP:
    stock_quantity / stock_status are DERIVED. stock_quantity is the sum of
    InventoryRecord.quantity across every location for this product and is
    recomputed inside the same database transaction as every ledger write.
    Never write these columns from anywhere else.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("vendor_id", "sku", name="uq_products_vendor_sku"),
        db.Index("ix_products_vendor_name", "vendor_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    # Derived aggregate (grams)
    stock_quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock_status = db.Column(db.String(16), nullable=False, default=STOCK_STATUS_OUT_OF_STOCK)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    vendor = db.relationship("Vendor", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} vendor_id={self.vendor_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "sku": self.sku,
            "name": self.name,
            "stock_quantity": to_json_number(self.stock_quantity),
            "stock_status": self.stock_status,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryRecord(db.Model):
    """
    Mutable on-hand quantity for one (product, location) pair.

    INVARIANTS:
    - At most one row per (product_id, location_id): UniqueConstraint below.
    - quantity >= 0, two decimal places (grams).
    - Only the inventory ledger service mutates quantity, and every mutation
      is paired with an InventoryTransaction row in the same DB transaction.
    - Rows are created lazily (first stock at a location) and never deleted.

    CONCURRENCY: version_id is the optimistic lock; writers also take
    SELECT ... FOR UPDATE where the database honors it.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_inventory_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.Index("ix_inventory_vendor_location", "vendor_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    low_stock_threshold = db.Column(db.Numeric(12, 2), nullable=False, default=10)
    notes = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))
    location = db.relationship("Location", backref=db.backref("inventory_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryRecord id={self.id} product_id={self.product_id} location_id={self.location_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": to_json_number(self.quantity),
            "low_stock_threshold": to_json_number(self.low_stock_threshold),
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Immutable inventory audit log.

    APPEND-ONLY: rows are inserted by the ledger and never updated or deleted.
    quantity_after == quantity_before + quantity_change, and replaying an
    inventory_id's rows in (created_at, id) order reconstructs its quantity.

    transaction_type: zero_out, audit, transfer_in, transfer_out, sale,
    adjustment, ...
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_inventory_created", "inventory_id", "created_at"),
        db.Index("ix_invtx_vendor_product_created", "vendor_id", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)

    quantity_before = db.Column(db.Numeric(12, 2), nullable=False)
    quantity_change = db.Column(db.Numeric(12, 2), nullable=False)
    quantity_after = db.Column(db.Numeric(12, 2), nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("vendor_users.id"), nullable=True)
    performed_by_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        index=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "inventory_id": self.inventory_id,
            "transaction_type": self.transaction_type,
            "quantity_before": to_json_number(self.quantity_before),
            "quantity_change": to_json_number(self.quantity_change),
            "quantity_after": to_json_number(self.quantity_after),
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_by_name": self.performed_by_name,
            "created_at": to_utc_z(self.created_at),
        }
