# Overview: Pytest coverage for bulk zero_out / audit / transfer operations.

"""
Bulk Inventory Operation Tests

Each item is its own unit of work: a failing item is reported in
results.errors as "{productName}: {message}" and the rest of the batch
still runs. Only a malformed request raises.
"""

from decimal import Decimal

import pytest

from app.extensions import db
from app.models import InventoryRecord, InventoryTransaction, Product
from app.services import bulk_inventory_service as bulk
from app.services import inventory_ledger_service as ledger
from app.validation import ValidationError


def _item(record, product, **extra):
    item = {
        "inventoryId": record.id,
        "productId": product.id,
        "productName": product.name,
        "locationId": record.location_id,
        "currentQuantity": float(record.quantity),
    }
    item.update(extra)
    return item


def _quantity(record_id):
    db.session.expire_all()
    return db.session.get(InventoryRecord, record_id).quantity


def _rows(record_id, transaction_type=None):
    query = db.session.query(InventoryTransaction).filter_by(inventory_id=record_id)
    if transaction_type:
        query = query.filter_by(transaction_type=transaction_type)
    return query.order_by(InventoryTransaction.id).all()


# =============================================================================
# REQUEST SHAPE
# =============================================================================


class TestMalformedRequests:
    @pytest.mark.parametrize("operation,items", [
        (None, [{"inventoryId": 1}]),
        ("zero_out", None),
        ("zero_out", []),
        ("zero_out", {"inventoryId": 1}),
    ])
    def test_missing_operation_or_items(self, context, operation, items):
        with pytest.raises(ValidationError, match="Missing operation or items"):
            bulk.execute(context, operation, items)

    def test_unknown_operation(self, context):
        with pytest.raises(ValidationError, match="Unknown operation: explode"):
            bulk.execute(context, "explode", [{"inventoryId": 1}])

    def test_items_must_be_objects(self, context):
        with pytest.raises(ValidationError, match="Each item must be an object"):
            bulk.execute(context, "audit", ["not-an-object"])

    def test_transfer_requires_destination(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 10)

        with pytest.raises(ValidationError, match="Missing toLocationId"):
            bulk.execute(context, "transfer", [_item(record, product, transferQuantity=1)])

    def test_transfer_destination_must_belong_to_vendor(self, context, product, warehouse, other_location, stock):
        record = stock(product, warehouse, 10)

        with pytest.raises(ValidationError, match="Destination location not found"):
            bulk.execute(context, "transfer", [_item(record, product, transferQuantity=1)], to_location_id=other_location.id)

    def test_transfer_destination_must_be_active(self, context, product, warehouse, store, stock):
        record = stock(product, warehouse, 10)
        store.is_active = False
        db.session.commit()

        with pytest.raises(ValidationError, match="inactive"):
            bulk.execute(context, "transfer", [_item(record, product, transferQuantity=1)], to_location_id=store.id)


# =============================================================================
# ZERO OUT
# =============================================================================


class TestZeroOut:
    def test_zero_out_writes_negative_delta(self, context, product, warehouse, stock):
        record = stock(product, warehouse, "37.5")

        results = bulk.execute(context, "zero_out", [_item(record, product)])

        assert results.to_dict() == {"success": 1, "failed": 0, "errors": []}
        assert _quantity(record.id) == Decimal("0")
        row = _rows(record.id, "zero_out")[0]
        assert row.quantity_change == Decimal("-37.50")
        assert row.reason == "Bulk zero-out operation"
        assert row.reference_type == "bulk_operation"

    def test_zero_out_on_empty_record_is_noop_success(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 0)

        results = bulk.execute(context, "zero_out", [_item(record, product)])

        assert results.success == 1
        assert results.failed == 0
        assert _rows(record.id) == []

    def test_zero_out_uses_locked_quantity_not_client_value(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 20)
        item = _item(record, product, currentQuantity=5)

        bulk.execute(context, "zero_out", [item])

        assert _quantity(record.id) == Decimal("0")
        assert _rows(record.id, "zero_out")[0].quantity_change == Decimal("-20.00")

    def test_zero_out_updates_rollup(self, context, product, warehouse, store, stock):
        record = stock(product, warehouse, 20)
        stock(product, store, 5)

        bulk.execute(context, "zero_out", [_item(record, product)])

        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == Decimal("5.00")


# =============================================================================
# AUDIT
# =============================================================================


class TestAudit:
    def test_audit_100_to_0(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 100)

        results = bulk.execute(context, "audit", [_item(record, product, newQuantity=0)])

        assert results.success == 1
        row = _rows(record.id, "audit")[0]
        assert row.quantity_before == Decimal("100.00")
        assert row.quantity_change == Decimal("-100.00")
        assert row.quantity_after == Decimal("0")
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_status == "outofstock"

    def test_audit_reason_carries_signed_delta(self, context, product, warehouse, stock):
        record = stock(product, warehouse, "10.10")

        bulk.execute(context, "audit", [_item(record, product, newQuantity=12.3)])

        row = _rows(record.id, "audit")[0]
        assert row.reason == "Bulk audit - adjusted by +2.20g"
        assert _quantity(record.id) == Decimal("12.30")

    def test_audit_unchanged_count_is_recorded(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 8)

        results = bulk.execute(context, "audit", [_item(record, product, newQuantity=8)])

        assert results.success == 1
        rows = _rows(record.id, "audit")
        assert len(rows) == 1
        assert rows[0].quantity_change == Decimal("0")

    def test_missing_new_quantity_is_per_item_error(self, context, product, product_b, warehouse, stock):
        record_a = stock(product, warehouse, 10)
        record_b = stock(product_b, warehouse, 10)

        results = bulk.execute(context, "audit", [
            _item(record_a, product),
            _item(record_b, product_b, newQuantity=4),
        ])

        assert results.to_dict() == {
            "success": 1,
            "failed": 1,
            "errors": ["OG Kush: Missing newQuantity"],
        }
        assert _quantity(record_b.id) == Decimal("4.00")

    def test_negative_new_quantity_is_per_item_error(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 10)

        results = bulk.execute(context, "audit", [_item(record, product, newQuantity=-3)])

        assert results.failed == 1
        assert _quantity(record.id) == Decimal("10.00")

    def test_oversized_new_quantity_fails_alone(self, context, product, product_b, warehouse, stock):
        record_a = stock(product, warehouse, 10)
        record_b = stock(product_b, warehouse, 10)

        results = bulk.execute(context, "audit", [
            _item(record_a, product, newQuantity="1e30"),
            _item(record_b, product_b, newQuantity=3),
        ])

        assert results.to_dict() == {
            "success": 1,
            "failed": 1,
            "errors": ["OG Kush: newQuantity is out of range"],
        }
        assert _quantity(record_a.id) == Decimal("10.00")
        assert _rows(record_a.id, "audit") == []
        assert _quantity(record_b.id) == Decimal("3.00")


# =============================================================================
# TRANSFER
# =============================================================================


class TestTransfer:
    def test_transfer_moves_quantity_with_paired_rows(self, context, product, warehouse, store, stock):
        source = stock(product, warehouse, 100)

        results = bulk.execute(
            context, "transfer", [_item(source, product, transferQuantity="12.5")], to_location_id=store.id,
        )

        assert results.to_dict() == {"success": 1, "failed": 0, "errors": []}
        dest = db.session.query(InventoryRecord).filter_by(product_id=product.id, location_id=store.id).one()
        assert _quantity(source.id) == Decimal("87.50")
        assert dest.quantity == Decimal("12.50")
        assert dest.low_stock_threshold == Decimal("10")

        out_row = _rows(source.id, "transfer_out")[0]
        in_row = _rows(dest.id, "transfer_in")[0]
        assert out_row.quantity_change == Decimal("-12.50")
        assert in_row.quantity_change == Decimal("12.50")
        assert out_row.reason == "Transfer to destination location"
        assert in_row.reason == "Transfer from source location"

        # rollup is unchanged by a move between locations
        assert db.session.get(Product, product.id).stock_quantity == Decimal("100.00")

    def test_transfer_increments_existing_destination(self, context, product, warehouse, store, stock):
        source = stock(product, warehouse, 30)
        dest = stock(product, store, 5)

        bulk.execute(context, "transfer", [_item(source, product, transferQuantity=10)], to_location_id=store.id)

        assert _quantity(dest.id) == Decimal("15.00")
        assert ledger.verify_record(db.session.get(InventoryRecord, dest.id))["consistent"] is True
        assert ledger.verify_record(db.session.get(InventoryRecord, source.id))["consistent"] is True

    def test_insufficient_item_fails_alone(self, context, product, product_b, product_c, warehouse, store, stock):
        record_a = stock(product, warehouse, 100)
        record_b = stock(product_b, warehouse, 10)
        record_c = stock(product_c, warehouse, 100)

        results = bulk.execute(context, "transfer", [
            _item(record_a, product, transferQuantity=5),
            _item(record_b, product_b, productName="ProductB", transferQuantity=50),
            _item(record_c, product_c, transferQuantity=5),
        ], to_location_id=store.id)

        assert results.to_dict() == {
            "success": 2,
            "failed": 1,
            "errors": ["ProductB: Insufficient quantity"],
        }
        assert _quantity(record_b.id) == Decimal("10.00")
        assert _rows(record_b.id, "transfer_out") == []
        assert _quantity(record_a.id) == Decimal("95.00")
        assert _quantity(record_c.id) == Decimal("95.00")

    @pytest.mark.parametrize("quantity", [0, -5, "abc", None, 1e30])
    def test_invalid_transfer_quantity(self, context, product, warehouse, store, stock, quantity):
        record = stock(product, warehouse, 10)

        results = bulk.execute(
            context, "transfer", [_item(record, product, transferQuantity=quantity)], to_location_id=store.id,
        )

        assert results.errors == ["OG Kush: Invalid transfer quantity"]
        assert _quantity(record.id) == Decimal("10.00")

    def test_same_location_is_per_item_error(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 10)

        results = bulk.execute(
            context, "transfer", [_item(record, product, transferQuantity=1)], to_location_id=warehouse.id,
        )

        assert results.errors == ["OG Kush: Cannot transfer to the same location"]

    def test_unknown_record_uses_product_label(self, context, store, product):
        results = bulk.execute(
            context,
            "transfer",
            [{"inventoryId": 99999, "productId": product.id, "transferQuantity": 1}],
            to_location_id=store.id,
        )

        assert results.errors == [f"Product {product.id}: Inventory record not found"]

    def test_transfer_entire_quantity_with_string_destination_id(self, context, product, warehouse, store, stock):
        source = stock(product, warehouse, 3)

        results = bulk.execute(context, "transfer", [_item(source, product, transferQuantity=3)], to_location_id=str(store.id))

        assert results.success == 1
        assert _quantity(source.id) == Decimal("0")
