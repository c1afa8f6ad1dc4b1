# backend/app/services/bulk_inventory_service.py
"""
Bulk inventory operations: zero_out, audit, transfer.

WHY: Back-office staff act on many (product, location) rows at once
(end-of-day counts, damaged stock, moving product to a store). Each item
is its own unit of work: one item failing must not undo the others, so
the batch never raises for per-item business errors. Only a malformed
request (no items, unknown operation, no destination) aborts the call.

ITEM SHAPE (camelCase, as sent by the back office):
    {inventoryId, productId, productName, locationId,
     currentQuantity, newQuantity?, transferQuantity?}

currentQuantity is what the operator saw on screen. It is advisory: every
operation re-reads the quantity under a row lock before writing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from app.extensions import db
from app.models import InventoryRecord, Location
from app.quantities import quantize
from app.services.concurrency import PersistenceError, lock_for_update, run_atomic
from app.services.inventory_ledger_service import (
    TXN_AUDIT,
    TXN_TRANSFER_IN,
    TXN_TRANSFER_OUT,
    TXN_ZERO_OUT,
    InsufficientQuantityError,
    InventoryError,
    InventoryRecordNotFound,
    _append_transaction,
    default_low_stock_threshold,
    recompute_product_stock,
    set_quantity,
)
from app.services.session_service import VendorContext
from app.time_utils import utcnow
from app.validation import ValidationError, parse_decimal, parse_id, parse_optional_id


OPERATION_ZERO_OUT = "zero_out"
OPERATION_AUDIT = "audit"
OPERATION_TRANSFER = "transfer"
OPERATIONS = (OPERATION_ZERO_OUT, OPERATION_AUDIT, OPERATION_TRANSFER)

REFERENCE_TYPE = "bulk_operation"

# Per-item failures that are reported, not raised
ITEM_ERRORS = (InventoryError, ValidationError, PersistenceError)


@dataclass
class BulkOperationResults:
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def record_success(self) -> None:
        self.success += 1

    def record_failure(self, item: dict, message: str) -> None:
        self.failed += 1
        self.errors.append(f"{_item_label(item)}: {message}")

    def to_dict(self) -> dict:
        return {"success": self.success, "failed": self.failed, "errors": list(self.errors)}


def _item_label(item: dict) -> str:
    name = item.get("productName")
    if name:
        return str(name)
    if item.get("productId") is not None:
        return f"Product {item.get('productId')}"
    return "Unknown product"


def _item_ids(item: dict) -> tuple[int, int | None, int | None]:
    inventory_id = parse_id(item.get("inventoryId"), "inventoryId")
    location_id = parse_optional_id(item.get("locationId"), "locationId")
    product_id = parse_optional_id(item.get("productId"), "productId")
    return inventory_id, location_id, product_id


# =============================================================================
# PER-ITEM HANDLERS
# =============================================================================

def _zero_out_item(context: VendorContext, item: dict) -> None:
    inventory_id, location_id, product_id = _item_ids(item)
    # Stored zero: success, no log row
    set_quantity(
        context,
        inventory_id,
        location_id,
        product_id,
        Decimal("0"),
        transaction_type=TXN_ZERO_OUT,
        reason_template="Bulk zero-out operation",
        reference_type=REFERENCE_TYPE,
        skip_if_unchanged=True,
    )


def _audit_item(context: VendorContext, item: dict) -> None:
    if item.get("newQuantity") is None:
        raise ValidationError("Missing newQuantity")
    new_quantity = parse_decimal(item.get("newQuantity"), "newQuantity", non_negative=True)
    inventory_id, location_id, product_id = _item_ids(item)

    set_quantity(
        context,
        inventory_id,
        location_id,
        product_id,
        new_quantity,
        transaction_type=TXN_AUDIT,
        reason_template="Bulk audit - adjusted by {delta}g",
        reference_type=REFERENCE_TYPE,
    )


def _transfer_item(context: VendorContext, item: dict, destination: Location) -> None:
    """
    Move transferQuantity from the item's record to destination.

    One transaction: lock source, check, decrement, upsert destination,
    write transfer_out + transfer_in together, recompute rollup once.
    """
    raw_quantity = item.get("transferQuantity")
    try:
        quantity = parse_decimal(raw_quantity, "transferQuantity", positive=True)
    except ValidationError:
        raise ValidationError("Invalid transfer quantity")
    inventory_id, location_id, product_id = _item_ids(item)

    def _op():
        source = lock_for_update(
            db.session.query(InventoryRecord).filter_by(id=inventory_id, vendor_id=context.vendor_id)
        ).first()
        if source is None:
            raise InventoryRecordNotFound("Inventory record not found")
        if location_id is not None and source.location_id != location_id:
            raise InventoryError("Inventory record does not belong to this location")
        if product_id is not None and source.product_id != product_id:
            raise InventoryError("Inventory record does not belong to this product")
        if source.location_id == destination.id:
            raise InventoryError("Cannot transfer to the same location")

        source_before = quantize(Decimal(source.quantity))
        if source_before < quantity:
            raise InsufficientQuantityError(
                "Insufficient quantity",
                available=source_before,
                requested=quantity,
            )

        now = utcnow()
        source.quantity = quantize(source_before - quantity)
        source.updated_at = now

        dest = lock_for_update(
            db.session.query(InventoryRecord).filter_by(
                product_id=source.product_id,
                location_id=destination.id,
            )
        ).first()
        if dest is None:
            dest = InventoryRecord(
                vendor_id=context.vendor_id,
                product_id=source.product_id,
                location_id=destination.id,
                quantity=Decimal("0"),
                low_stock_threshold=default_low_stock_threshold(),
            )
            db.session.add(dest)
            db.session.flush()  # Get ID for the transfer_in row
        elif dest.vendor_id != context.vendor_id:
            raise InventoryError("Destination inventory belongs to another vendor")

        dest_before = quantize(Decimal(dest.quantity))
        dest.quantity = quantize(dest_before + quantity)
        dest.updated_at = now

        reference_id = str(source.id)
        _append_transaction(
            context,
            source,
            transaction_type=TXN_TRANSFER_OUT,
            quantity_before=source_before,
            quantity_change=-quantity,
            reason="Transfer to destination location",
            reference_type=REFERENCE_TYPE,
            reference_id=str(dest.id),
        )
        _append_transaction(
            context,
            dest,
            transaction_type=TXN_TRANSFER_IN,
            quantity_before=dest_before,
            quantity_change=quantity,
            reason="Transfer from source location",
            reference_type=REFERENCE_TYPE,
            reference_id=reference_id,
        )

        recompute_product_stock(source.product_id)
        db.session.commit()

    run_atomic(_op)


# =============================================================================
# ENTRY POINT
# =============================================================================

def _resolve_destination(context: VendorContext, to_location_id) -> Location:
    if to_location_id is None or to_location_id == "":
        raise ValidationError("Missing toLocationId for transfer operation")
    location_id = parse_id(to_location_id, "toLocationId")
    location = db.session.query(Location).filter_by(id=location_id, vendor_id=context.vendor_id).first()
    if location is None:
        raise ValidationError("Destination location not found")
    if not location.is_active:
        raise ValidationError("Destination location is inactive")
    return location


def execute(context: VendorContext, operation, items, to_location_id=None) -> BulkOperationResults:
    """
    Run one bulk operation over items, in input order, sequentially.

    Raises:
        ValidationError: malformed request (never for a single bad item)

    Returns:
        BulkOperationResults with success/failed counts and
        "{productName}: {message}" strings for each failure.
    """
    if not operation or not items or not isinstance(items, list):
        raise ValidationError("Missing operation or items")
    if operation not in OPERATIONS:
        raise ValidationError(f"Unknown operation: {operation}")
    if any(not isinstance(item, dict) for item in items):
        raise ValidationError("Each item must be an object")

    destination = None
    if operation == OPERATION_TRANSFER:
        destination = _resolve_destination(context, to_location_id)

    results = BulkOperationResults()
    for item in items:
        try:
            if operation == OPERATION_ZERO_OUT:
                _zero_out_item(context, item)
            elif operation == OPERATION_AUDIT:
                _audit_item(context, item)
            else:
                _transfer_item(context, item, destination)
        except ITEM_ERRORS as e:
            results.record_failure(item, str(e))
        else:
            results.record_success()

    return results
