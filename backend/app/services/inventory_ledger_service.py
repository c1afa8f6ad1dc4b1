# Overview: Inventory ledger; every quantity change, its audit row and the product rollup in one transaction.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryRecord, InventoryTransaction, Location, Product
from ..models.inventory import STOCK_STATUS_IN_STOCK, STOCK_STATUS_OUT_OF_STOCK
from app.quantities import ZERO, quantize, signed, to_decimal, to_json_number
from app.time_utils import utcnow
from .concurrency import lock_for_update, run_atomic
from .session_service import VendorContext
"""
Inventory Ledger Invariants (authoritative)

Storage model:
- InventoryRecord.quantity is the mutable on-hand amount per (product, location).
- InventoryTransaction is the append-only log beside it.

Every mutation, in ONE database transaction:
1. lock the InventoryRecord row, compute the new quantity
2. update InventoryRecord.quantity
3. insert one InventoryTransaction (before / change / after / reason)
4. recompute Product.stock_quantity / stock_status from all of its rows
If any step fails the whole unit rolls back: no quantity change without a
log row, no log row with a stale rollup.

Numeric semantics:
- Quantities are grams, Decimal, two places, ROUND_HALF_UP.
- "set to X" is delta = round(X - current, 2) computed from the locked row,
  never from a client-sent current value.
- Quantity may never go below zero.

Replay:
- For any inventory_id, summing quantity_change over its log rows in
  (created_at, id) order equals the stored quantity.
"""


TXN_ADJUSTMENT = "adjustment"
TXN_ZERO_OUT = "zero_out"
TXN_AUDIT = "audit"
TXN_TRANSFER_IN = "transfer_in"
TXN_TRANSFER_OUT = "transfer_out"


class InventoryError(Exception):
    """Base class for inventory business-rule failures."""
    pass


class InsufficientQuantityError(InventoryError):
    """The change would take on-hand quantity below zero."""

    def __init__(self, message: str = "Insufficient quantity", *, available: Decimal | None = None, requested: Decimal | None = None):
        super().__init__(message)
        self.available = available
        self.requested = requested


class InventoryRecordNotFound(InventoryError):
    pass


class InventoryMismatchError(InventoryError):
    """Caller's product/location does not match the inventory record."""
    pass


@dataclass
class AdjustmentResult:
    inventory: InventoryRecord
    transaction: InventoryTransaction | None
    new_quantity: Decimal
    product_stock_quantity: Decimal

    def to_dict(self) -> dict:
        return {
            "newQuantity": to_json_number(self.new_quantity),
            "inventory": self.inventory.to_dict(),
            "transaction": self.transaction.to_dict() if self.transaction else None,
            "productStockQuantity": to_json_number(self.product_stock_quantity),
        }


# =============================================================================
# LOOKUPS
# =============================================================================

def _locked_record(context: VendorContext, inventory_id: int) -> InventoryRecord:
    record = lock_for_update(
        db.session.query(InventoryRecord).filter_by(id=inventory_id, vendor_id=context.vendor_id)
    ).first()
    if record is None:
        raise InventoryRecordNotFound("Inventory record not found")
    return record


def _check_identity(record: InventoryRecord, location_id: int | None, product_id: int | None) -> None:
    if location_id is not None and record.location_id != location_id:
        raise InventoryMismatchError("Inventory record does not belong to this location")
    if product_id is not None and record.product_id != product_id:
        raise InventoryMismatchError("Inventory record does not belong to this product")


def get_vendor_location(context: VendorContext, location_id: int, *, require_active: bool = True) -> Location:
    location = db.session.query(Location).filter_by(id=location_id, vendor_id=context.vendor_id).first()
    if location is None:
        raise InventoryError("Location not found")
    if require_active and not location.is_active:
        raise InventoryError("Location is inactive")
    return location


def get_vendor_product(context: VendorContext, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, vendor_id=context.vendor_id).first()
    if product is None:
        raise InventoryError("Product not found")
    return product


def get_primary_location(context: VendorContext) -> Location:
    """The vendor's warehouse (type 'vendor'), used when no location is given."""
    location = db.session.query(Location).filter_by(
        vendor_id=context.vendor_id,
        type="vendor",
        is_active=True,
    ).order_by(Location.id).first()
    if location is None:
        raise InventoryError("No vendor location found. Set up a warehouse location first.")
    return location


def default_low_stock_threshold() -> Decimal:
    return to_decimal(current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 10))


# =============================================================================
# ROLLUP
# =============================================================================

def recompute_product_stock(product_id: int) -> Decimal:
    """
    Recompute Product.stock_quantity / stock_status from InventoryRecord rows.

    Runs inside the caller's transaction; does not commit. Pending (flushed)
    changes are included because the SUM runs on the same session.
    """
    db.session.flush()

    total = db.session.query(
        func.coalesce(func.sum(InventoryRecord.quantity), 0)
    ).filter(InventoryRecord.product_id == product_id).scalar()
    total = quantize(Decimal(str(total or 0)))

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise InventoryError("Product not found")

    product.stock_quantity = total
    product.stock_status = STOCK_STATUS_IN_STOCK if total > 0 else STOCK_STATUS_OUT_OF_STOCK
    product.updated_at = utcnow()
    return total


# =============================================================================
# CORE MUTATION
# =============================================================================

def _append_transaction(
    context: VendorContext,
    record: InventoryRecord,
    *,
    transaction_type: str,
    quantity_before: Decimal,
    quantity_change: Decimal,
    reason: str | None,
    reference_type: str | None,
    reference_id: str | None,
) -> InventoryTransaction:
    txn = InventoryTransaction(
        vendor_id=context.vendor_id,
        location_id=record.location_id,
        product_id=record.product_id,
        inventory_id=record.id,
        transaction_type=transaction_type,
        quantity_before=quantity_before,
        quantity_change=quantity_change,
        quantity_after=quantize(quantity_before + quantity_change),
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by_user_id=context.user_id,
        performed_by_name=context.performed_by_name,
        created_at=utcnow(),
    )
    db.session.add(txn)
    return txn


def _apply_delta_locked(
    context: VendorContext,
    record: InventoryRecord,
    delta: Decimal,
    *,
    transaction_type: str,
    reason: str | None,
    reference_type: str | None,
    reference_id: str | None,
) -> tuple[Decimal, InventoryTransaction]:
    """Steps 2 and 3 on an already-locked row. Caller owns the transaction."""
    before = quantize(Decimal(record.quantity))
    after = quantize(before + delta)
    if after < 0:
        raise InsufficientQuantityError(
            "Insufficient quantity",
            available=before,
            requested=-delta,
        )

    record.quantity = after
    record.updated_at = utcnow()

    txn = _append_transaction(
        context,
        record,
        transaction_type=transaction_type,
        quantity_before=before,
        quantity_change=delta,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    return after, txn


def adjust(
    context: VendorContext,
    inventory_id: int,
    location_id: int | None,
    product_id: int | None,
    delta,
    *,
    transaction_type: str = TXN_ADJUSTMENT,
    reason: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> AdjustmentResult:
    """
    Apply a signed delta to one inventory record.

    Args:
        context: Authenticated vendor (scopes the record lookup)
        inventory_id: Record to change
        location_id / product_id: Optional identity check against the record
        delta: Signed grams; quantized to two places

    Raises:
        InsufficientQuantityError: result would be negative
        InventoryRecordNotFound / InventoryMismatchError
        PersistenceError: database failure (nothing was written)
    """
    delta = to_decimal(delta)

    def _op():
        record = _locked_record(context, inventory_id)
        _check_identity(record, location_id, product_id)

        new_quantity, txn = _apply_delta_locked(
            context,
            record,
            delta,
            transaction_type=transaction_type,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        stock = recompute_product_stock(record.product_id)
        db.session.commit()
        return AdjustmentResult(record, txn, new_quantity, stock)

    return run_atomic(_op)


def set_quantity(
    context: VendorContext,
    inventory_id: int,
    location_id: int | None,
    product_id: int | None,
    target,
    *,
    transaction_type: str,
    reason_template: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    skip_if_unchanged: bool = False,
) -> AdjustmentResult:
    """
    Set a record to an exact quantity (counts, zero-outs).

    The delta is computed from the LOCKED current quantity:
    delta = round(target - current, 2). reason_template may reference
    {delta} (signed, e.g. "+5.00") and {target}.

    skip_if_unchanged: when the record already holds target, write nothing
    and return a result with transaction=None.
    """
    target = to_decimal(target)
    if target < 0:
        raise InventoryError("Quantity cannot be negative")

    def _op():
        record = _locked_record(context, inventory_id)
        _check_identity(record, location_id, product_id)

        current = quantize(Decimal(record.quantity))
        delta = quantize(target - current)

        if delta == 0 and skip_if_unchanged:
            stock = quantize(Decimal(record.product.stock_quantity or 0))
            db.session.rollback()
            return AdjustmentResult(record, None, current, stock)

        reason = None
        if reason_template:
            reason = reason_template.format(delta=signed(delta), target=format(target, "f"))

        new_quantity, txn = _apply_delta_locked(
            context,
            record,
            delta,
            transaction_type=transaction_type,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        stock = recompute_product_stock(record.product_id)
        db.session.commit()
        return AdjustmentResult(record, txn, new_quantity, stock)

    return run_atomic(_op)


# =============================================================================
# LAZY RECORD CREATION
# =============================================================================

def find_or_create_record(
    context: VendorContext,
    product_id: int,
    location_id: int,
    *,
    notes: str | None = None,
) -> InventoryRecord:
    """
    Return the (product, location) record, creating it at quantity 0.

    Creation writes no log row: a zero-quantity record replays to zero.
    """
    product = get_vendor_product(context, product_id)
    location = get_vendor_location(context, location_id)

    def _op():
        record = lock_for_update(
            db.session.query(InventoryRecord).filter_by(product_id=product.id, location_id=location.id)
        ).first()
        if record is not None:
            if record.vendor_id != context.vendor_id:
                raise InventoryRecordNotFound("Inventory record not found")
            return record

        record = InventoryRecord(
            vendor_id=context.vendor_id,
            product_id=product.id,
            location_id=location.id,
            quantity=ZERO,
            low_stock_threshold=default_low_stock_threshold(),
            notes=notes,
        )
        db.session.add(record)
        db.session.commit()
        return record

    return run_atomic(_op)


def adjust_inventory_item(
    context: VendorContext,
    *,
    product_id: int,
    adjustment: Decimal,
    inventory_id: int | None = None,
    location_id: int | None = None,
    reason: str | None = None,
) -> AdjustmentResult:
    """
    Manual +/- adjustment from the back office.

    Resolves the record by inventory_id, else by (product, location),
    creating it at zero if the product has never been stocked there.
    With no location the vendor's warehouse is used.
    """
    if adjustment == 0:
        raise InventoryError("Adjustment cannot be zero")

    if inventory_id is not None:
        record_id = inventory_id
    else:
        if location_id is None:
            location_id = get_primary_location(context).id
        record_id = find_or_create_record(context, product_id, location_id).id

    return adjust(
        context,
        record_id,
        location_id,
        product_id,
        adjustment,
        transaction_type=TXN_ADJUSTMENT,
        reason=reason or "Manual adjustment",
        reference_type="manual_adjustment",
    )


# =============================================================================
# QUERIES
# =============================================================================

def get_record(context: VendorContext, inventory_id: int) -> InventoryRecord:
    record = db.session.query(InventoryRecord).filter_by(id=inventory_id, vendor_id=context.vendor_id).first()
    if record is None:
        raise InventoryRecordNotFound("Inventory record not found")
    return record


def list_transactions(context: VendorContext, inventory_id: int, limit: int | None = None) -> list[InventoryTransaction]:
    get_record(context, inventory_id)
    query = db.session.query(InventoryTransaction).filter_by(
        inventory_id=inventory_id,
        vendor_id=context.vendor_id,
    ).order_by(InventoryTransaction.created_at, InventoryTransaction.id)
    if limit:
        query = query.limit(limit)
    return query.all()


def replay_quantity(inventory_id: int) -> Decimal:
    """Sum of quantity_change over the record's log, oldest first."""
    rows = db.session.query(InventoryTransaction.quantity_change).filter_by(
        inventory_id=inventory_id
    ).order_by(InventoryTransaction.created_at, InventoryTransaction.id).all()

    total = ZERO
    for (change,) in rows:
        total = quantize(total + Decimal(change))
    return total


def verify_record(record: InventoryRecord) -> dict:
    """Compare stored quantity with the replayed log."""
    stored = quantize(Decimal(record.quantity))
    replayed = replay_quantity(record.id)
    return {
        "inventory_id": record.id,
        "stored_quantity": to_json_number(stored),
        "replayed_quantity": to_json_number(replayed),
        "consistent": stored == replayed,
    }


def get_product_stock(context: VendorContext, product_id: int) -> dict:
    """Per-location breakdown plus the stored rollup."""
    product = get_vendor_product(context, product_id)
    records = db.session.query(InventoryRecord).filter_by(product_id=product.id).order_by(InventoryRecord.location_id).all()

    return {
        "product": product.to_dict(),
        "locations": [
            {
                "inventory_id": r.id,
                "location_id": r.location_id,
                "location_name": r.location.name if r.location else None,
                "quantity": to_json_number(r.quantity),
                "low_stock_threshold": to_json_number(r.low_stock_threshold),
                "is_low_stock": Decimal(r.quantity) <= Decimal(r.low_stock_threshold),
            }
            for r in records
        ],
    }
