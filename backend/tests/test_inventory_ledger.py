# Overview: Pytest coverage for the inventory ledger (quantity + log + rollup).

"""
Inventory Ledger Tests

Verifies:
1. Every adjustment writes exactly one log row with before/change/after
2. Replaying a record's log reproduces its stored quantity
3. Product.stock_quantity is the sum over all locations after every write
4. Quantity never goes below zero
5. A failure anywhere in the unit of work leaves nothing behind
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from app.extensions import db
from app.models import InventoryRecord, InventoryTransaction, Product
from app.services import inventory_ledger_service as ledger
from app.services.concurrency import PersistenceError
from app.services.inventory_ledger_service import (
    InsufficientQuantityError,
    InventoryError,
    InventoryMismatchError,
    InventoryRecordNotFound,
)


def _transactions(record_id):
    return db.session.query(InventoryTransaction).filter_by(
        inventory_id=record_id
    ).order_by(InventoryTransaction.id).all()


# =============================================================================
# ADJUST
# =============================================================================


class TestAdjust:
    def test_adjust_updates_quantity_and_logs_one_row(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 0)

        result = ledger.adjust(context, record.id, warehouse.id, product.id, Decimal("25.50"), reason="Received")

        assert result.new_quantity == Decimal("25.50")
        rows = _transactions(record.id)
        assert len(rows) == 1
        assert rows[0].transaction_type == "adjustment"
        assert rows[0].quantity_before == Decimal("0")
        assert rows[0].quantity_change == Decimal("25.50")
        assert rows[0].quantity_after == Decimal("25.50")
        assert rows[0].reason == "Received"
        assert rows[0].performed_by_user_id == context.user_id

    def test_negative_delta(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 40)

        result = ledger.adjust(context, record.id, None, None, -15)

        assert result.new_quantity == Decimal("25.00")
        assert db.session.get(InventoryRecord, record.id).quantity == Decimal("25.00")

    def test_decimal_arithmetic_has_no_float_drift(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 0.1)

        result = ledger.adjust(context, record.id, None, None, 0.2)

        assert result.new_quantity == Decimal("0.30")

    def test_delta_is_rounded_half_up_to_two_places(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 0)

        result = ledger.adjust(context, record.id, None, None, "1.005")

        assert result.new_quantity == Decimal("1.01")

    def test_insufficient_quantity_is_rejected(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 10)

        with pytest.raises(InsufficientQuantityError) as exc_info:
            ledger.adjust(context, record.id, None, None, -50)

        assert exc_info.value.available == Decimal("10.00")
        assert exc_info.value.requested == Decimal("50.00")
        db.session.expire_all()
        assert db.session.get(InventoryRecord, record.id).quantity == Decimal("10.00")
        assert len(_transactions(record.id)) == 1

    def test_draining_to_exactly_zero_is_allowed(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 10)

        result = ledger.adjust(context, record.id, None, None, -10)

        assert result.new_quantity == Decimal("0")
        assert result.product_stock_quantity == Decimal("0")

    def test_location_mismatch(self, context, product, warehouse, store, stock):
        record = stock(product, warehouse, 10)

        with pytest.raises(InventoryMismatchError):
            ledger.adjust(context, record.id, store.id, product.id, 1)

    def test_product_mismatch(self, context, product, product_b, warehouse, stock):
        record = stock(product, warehouse, 10)

        with pytest.raises(InventoryMismatchError):
            ledger.adjust(context, record.id, warehouse.id, product_b.id, 1)

    def test_other_vendor_cannot_touch_record(self, context, other_context, product, warehouse, stock):
        record = stock(product, warehouse, 10)

        with pytest.raises(InventoryRecordNotFound):
            ledger.adjust(other_context, record.id, None, None, -5)

        db.session.expire_all()
        assert db.session.get(InventoryRecord, record.id).quantity == Decimal("10.00")


# =============================================================================
# INVARIANTS
# =============================================================================


class TestLedgerInvariants:
    def test_replay_equals_stored_quantity(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 100)
        for delta in ("-25.5", "0.1", "-10", "3.33", "-0.03"):
            ledger.adjust(context, record.id, None, None, delta)

        check = ledger.verify_record(db.session.get(InventoryRecord, record.id))

        assert check["consistent"] is True
        assert check["stored_quantity"] == 67.9
        assert check["replayed_quantity"] == 67.9
        assert ledger.replay_quantity(record.id) == Decimal("67.90")

    def test_every_row_chains_before_to_after(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 5)
        ledger.adjust(context, record.id, None, None, 7)
        ledger.set_quantity(context, record.id, None, None, 2, transaction_type="audit")

        rows = _transactions(record.id)
        for previous, current in zip(rows, rows[1:]):
            assert current.quantity_before == previous.quantity_after
        for row in rows:
            assert row.quantity_before + row.quantity_change == row.quantity_after

    def test_rollup_sums_all_locations(self, context, product, warehouse, store, stock):
        stock(product, warehouse, 30)
        stock(product, store, "12.5")

        db.session.expire_all()
        refreshed = db.session.get(Product, product.id)
        assert refreshed.stock_quantity == Decimal("42.50")
        assert refreshed.stock_status == "instock"

    def test_rollup_flips_to_out_of_stock(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 100)

        result = ledger.set_quantity(context, record.id, None, None, 0, transaction_type="audit")

        txn = result.transaction
        assert txn.quantity_before == Decimal("100.00")
        assert txn.quantity_change == Decimal("-100.00")
        assert txn.quantity_after == Decimal("0")
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_status == "outofstock"

    def test_failure_rolls_back_quantity_and_log(self, monkeypatch, context, product, warehouse, stock):
        record = stock(product, warehouse, 10)

        def _boom(product_id):
            raise IntegrityError("UPDATE products", {}, Exception("simulated"))

        monkeypatch.setattr(ledger, "recompute_product_stock", _boom)

        with pytest.raises(PersistenceError):
            ledger.adjust(context, record.id, None, None, 5)

        db.session.expire_all()
        assert db.session.get(InventoryRecord, record.id).quantity == Decimal("10.00")
        assert len(_transactions(record.id)) == 1
        assert db.session.get(Product, product.id).stock_quantity == Decimal("10.00")

    def test_stale_write_is_retried_from_a_fresh_read(self, monkeypatch, context, product, warehouse, stock):
        record = stock(product, warehouse, 10)
        recompute = ledger.recompute_product_stock
        sleeps = []
        calls = []

        def _stale_once(product_id):
            calls.append(product_id)
            if len(calls) == 1:
                raise StaleDataError("UPDATE inventory_records matched 0 rows")
            return recompute(product_id)

        monkeypatch.setattr(ledger, "recompute_product_stock", _stale_once)
        monkeypatch.setattr("app.services.concurrency.time.sleep", sleeps.append)

        result = ledger.adjust(context, record.id, None, None, 5)

        assert len(calls) == 2
        assert len(sleeps) == 1
        assert result.new_quantity == Decimal("15.00")
        db.session.expire_all()
        rows = _transactions(record.id)
        assert len(rows) == 2
        assert rows[-1].quantity_before == Decimal("10.00")
        assert rows[-1].quantity_change == Decimal("5.00")
        assert db.session.get(InventoryRecord, record.id).quantity == Decimal("15.00")
        assert ledger.verify_record(db.session.get(InventoryRecord, record.id))["consistent"] is True


# =============================================================================
# SET QUANTITY
# =============================================================================


class TestSetQuantity:
    def test_reason_template_gets_signed_delta(self, context, product, warehouse, stock):
        record = stock(product, warehouse, "10.25")

        result = ledger.set_quantity(
            context, record.id, None, None, "12",
            transaction_type="audit",
            reason_template="Counted - adjusted by {delta}g",
        )

        assert result.transaction.reason == "Counted - adjusted by +1.75g"

    def test_skip_if_unchanged_writes_nothing(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 0)

        result = ledger.set_quantity(
            context, record.id, None, None, 0,
            transaction_type="zero_out",
            skip_if_unchanged=True,
        )

        assert result.transaction is None
        assert _transactions(record.id) == []

    def test_negative_target_rejected(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 5)

        with pytest.raises(InventoryError):
            ledger.set_quantity(context, record.id, None, None, -1, transaction_type="audit")


# =============================================================================
# MANUAL ADJUSTMENT
# =============================================================================


class TestAdjustInventoryItem:
    def test_creates_record_at_warehouse_when_no_location(self, context, product, warehouse):
        result = ledger.adjust_inventory_item(context, product_id=product.id, adjustment=Decimal("8"))

        assert result.inventory.location_id == warehouse.id
        assert result.inventory.low_stock_threshold == Decimal("10")
        assert result.new_quantity == Decimal("8.00")
        assert result.transaction.reason == "Manual adjustment"
        assert result.transaction.reference_type == "manual_adjustment"

    def test_uses_existing_record_for_location(self, context, product, store, stock):
        record = stock(product, store, 4)

        result = ledger.adjust_inventory_item(
            context, product_id=product.id, location_id=store.id, adjustment=Decimal("-1"), reason="Damaged",
        )

        assert result.inventory.id == record.id
        assert result.new_quantity == Decimal("3.00")
        assert result.transaction.reason == "Damaged"

    def test_zero_adjustment_rejected(self, context, product, warehouse):
        with pytest.raises(InventoryError, match="cannot be zero"):
            ledger.adjust_inventory_item(context, product_id=product.id, adjustment=Decimal("0"))

    def test_no_warehouse(self, context, product, store):
        with pytest.raises(InventoryError, match="No vendor location found"):
            ledger.adjust_inventory_item(context, product_id=product.id, adjustment=Decimal("1"))

    def test_negative_on_new_record_fails_and_logs_nothing(self, context, product, warehouse):
        with pytest.raises(InsufficientQuantityError):
            ledger.adjust_inventory_item(context, product_id=product.id, adjustment=Decimal("-1"))

        assert db.session.query(InventoryTransaction).count() == 0


# =============================================================================
# QUERIES
# =============================================================================


class TestQueries:
    def test_list_transactions_oldest_first_with_limit(self, context, product, warehouse, stock):
        record = stock(product, warehouse, 1)
        ledger.adjust(context, record.id, None, None, 2)
        ledger.adjust(context, record.id, None, None, 3)

        rows = ledger.list_transactions(context, record.id)
        assert [r.quantity_change for r in rows] == [Decimal("1.00"), Decimal("2.00"), Decimal("3.00")]
        assert len(ledger.list_transactions(context, record.id, limit=2)) == 2

    def test_product_stock_breakdown(self, context, product, warehouse, store, stock):
        stock(product, warehouse, 50)
        stock(product, store, 4)

        data = ledger.get_product_stock(context, product.id)

        assert data["product"]["stock_quantity"] == 54.0
        by_location = {row["location_id"]: row for row in data["locations"]}
        assert by_location[warehouse.id]["quantity"] == 50.0
        assert by_location[store.id]["is_low_stock"] is True
        assert by_location[warehouse.id]["is_low_stock"] is False

    def test_product_stock_is_vendor_scoped(self, other_context, product):
        with pytest.raises(InventoryError):
            ledger.get_product_stock(other_context, product.id)
