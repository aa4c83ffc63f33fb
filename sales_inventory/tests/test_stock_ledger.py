import pytest
from concurrent.futures import ThreadPoolExecutor
from sqlalchemy.dialects import mysql

from sales_inventory.core.database import transaction
from sales_inventory.core.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
    UnsupportedDatabaseError,
)
from sales_inventory.models.database import StockMovement, StockRecord
from sales_inventory.services.stock_ledger import StockLedger, insert_if_absent


class TestAdjust:
    def test_adjust_applies_delta(self, test_db, product, warehouses, make_stock):
        record = make_stock(product, warehouses[0], 5)
        ledger = StockLedger(test_db)

        with transaction(test_db):
            ledger.adjust(record.id, 3)
            updated = ledger.adjust(record.id, -6)

        assert updated.quantity == 2
        assert updated.version == 3

    def test_adjust_rejects_negative_result_and_leaves_quantity(self, test_db, product, warehouses, make_stock):
        record = make_stock(product, warehouses[0], 4)
        ledger = StockLedger(test_db)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.adjust(record.id, -5)

        assert exc_info.value.available == 4
        assert exc_info.value.requested == 5
        assert exc_info.value.shortfall == 1
        assert ledger.get_record(record.id).quantity == 4

    def test_sequence_of_adjustments_never_goes_negative(self, test_db, product, warehouses, make_stock):
        record = make_stock(product, warehouses[0], 3)
        ledger = StockLedger(test_db)

        for delta in [-2, -2, +1, -3, -1, +4, -5]:
            try:
                ledger.adjust(record.id, delta)
            except InsufficientStockError:
                pass
            assert ledger.get_record(record.id).quantity >= 0

        # -2 ok (1), -2 rejected, +1 (2), -3 rejected, -1 (1), +4 (5), -5 (0)
        assert ledger.get_record(record.id).quantity == 0

    def test_adjust_unknown_record(self, test_db):
        with pytest.raises(NotFoundError):
            StockLedger(test_db).adjust(999, 1)

    def test_adjust_records_movement(self, test_db, product, warehouses, make_stock):
        record = make_stock(product, warehouses[0], 10)
        ledger = StockLedger(test_db)

        with transaction(test_db):
            ledger.adjust(record.id, -4, reason="damaged in transit")

        movement = test_db.query(StockMovement).filter(StockMovement.stock_record_id == record.id).one()
        assert movement.quantity == -4
        assert movement.new_quantity == 6
        assert movement.movement_type == "adjustment"
        assert movement.reason == "damaged in transit"


class TestSetExact:
    def test_set_exact(self, test_db, product, warehouses, make_stock):
        record = make_stock(product, warehouses[0], 10)
        ledger = StockLedger(test_db)

        with transaction(test_db):
            updated = ledger.set_exact(record.id, 42)

        assert updated.quantity == 42
        movement = test_db.query(StockMovement).one()
        assert movement.quantity == 32

    def test_set_exact_negative(self, test_db, product, warehouses, make_stock):
        record = make_stock(product, warehouses[0], 10)

        with pytest.raises(InvalidQuantityError):
            StockLedger(test_db).set_exact(record.id, -1)

        test_db.refresh(record)
        assert record.quantity == 10


class TestFindOrCreate:
    def test_returns_existing_record(self, test_db, product, warehouses, make_stock):
        record = make_stock(product, warehouses[0], 7)

        with transaction(test_db):
            found = StockLedger(test_db).find_or_create(product.id, warehouses[0].id)

        assert found.id == record.id
        assert found.quantity == 7

    def test_creates_missing_record_with_zero_quantity(self, test_db, product, warehouses):
        with transaction(test_db):
            created = StockLedger(test_db).find_or_create(product.id, warehouses[1].id)

        assert created.quantity == 0
        assert test_db.query(StockRecord).count() == 1

    def test_concurrent_callers_create_one_row(self, session_factory, test_db, product, warehouses):
        product_id, warehouse_id = product.id, warehouses[2].id

        def find_or_create(_):
            db = session_factory()
            try:
                with transaction(db):
                    return StockLedger(db).find_or_create(product_id, warehouse_id).id
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=8) as executor:
            ids = list(executor.map(find_or_create, range(8)))

        assert len(set(ids)) == 1
        rows = test_db.query(StockRecord).filter(
            StockRecord.product_id == product_id,
            StockRecord.warehouse_id == warehouse_id,
        ).count()
        assert rows == 1

    def test_mysql_insert_leaves_existing_row_alone(self):
        stmt = insert_if_absent("mysql", 1, 2)
        sql = str(stmt.compile(dialect=mysql.dialect()))

        assert sql.startswith("INSERT INTO stock_records")
        assert "ON DUPLICATE KEY UPDATE id = " in sql

    def test_unsupported_dialect(self):
        with pytest.raises(UnsupportedDatabaseError, match="oracle"):
            insert_if_absent("oracle", 1, 2)


def test_total_for_product(test_db, product, other_product, warehouses, make_stock):
    make_stock(product, warehouses[0], 4)
    make_stock(product, warehouses[1], 10)
    make_stock(other_product, warehouses[0], 99)

    ledger = StockLedger(test_db)
    assert ledger.total_for_product(product.id) == 14
    assert ledger.total_for_product(12345) == 0
