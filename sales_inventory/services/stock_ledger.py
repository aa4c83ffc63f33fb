import logging
from typing import List, Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session

from sales_inventory.core.database import utcnow
from sales_inventory.core.exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
    UnsupportedDatabaseError,
)
from sales_inventory.models.database import MovementType, StockMovement, StockRecord

logger = logging.getLogger(__name__)


def insert_if_absent(dialect: str, product_id: int, warehouse_id: int):
    """INSERT of an empty stock record that is a no-op when the pair exists."""
    now = utcnow()
    values = dict(
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=0,
        version=1,
        created_at=now,
        updated_at=now,
    )
    table = StockRecord.__table__
    if dialect == "postgresql":
        return postgresql.insert(table).values(**values).on_conflict_do_nothing(
            index_elements=["product_id", "warehouse_id"]
        )
    if dialect == "sqlite":
        return sqlite.insert(table).values(**values).on_conflict_do_nothing(
            index_elements=["product_id", "warehouse_id"]
        )
    if dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(table).values(**values)
        # Assigning id to itself leaves the existing row untouched
        return stmt.on_duplicate_key_update(id=table.c.id)
    raise UnsupportedDatabaseError(dialect)


class StockLedger:
    """
    Sole mutator of StockRecord.quantity.

    Every change is a single conditional UPDATE, so the non-negativity
    check and the write happen in one statement under the row lock; there
    is no read-then-write at the application level. The ledger never
    commits: callers own the transaction (see core.database.transaction).
    Each mutation is recorded as a StockMovement in the same transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_record(self, record_id: int) -> StockRecord:
        record = self.db.get(StockRecord, record_id, populate_existing=True)
        if record is None:
            raise NotFoundError("StockRecord", record_id)
        return record

    def find_record(self, product_id: int, warehouse_id: int) -> Optional[StockRecord]:
        return self.db.execute(
            select(StockRecord)
            .where(
                StockRecord.product_id == product_id,
                StockRecord.warehouse_id == warehouse_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def adjust(
        self,
        record_id: int,
        delta: int,
        movement_type: MovementType = MovementType.ADJUSTMENT,
        reason: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
    ) -> StockRecord:
        """Apply quantity += delta, rejecting any result below zero."""
        updated = self.db.execute(
            text("""
                UPDATE stock_records
                SET quantity = quantity + :delta,
                    version = version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = :record_id AND quantity + :delta >= 0
            """),
            {"delta": delta, "record_id": record_id},
        ).rowcount

        if updated == 0:
            # Either the record is gone or the result would be negative
            record = self.get_record(record_id)
            raise InsufficientStockError(
                product_id=record.product_id,
                requested=-delta,
                available=record.quantity,
            )

        record = self.get_record(record_id)
        self._record_movement(record, delta, movement_type, reason, reference_type, reference_id)
        return record

    def set_exact(
        self,
        record_id: int,
        new_quantity: int,
        reason: Optional[str] = None,
    ) -> StockRecord:
        if new_quantity < 0:
            raise InvalidQuantityError(new_quantity)

        snapshot = self.get_record(record_id)
        previous = snapshot.quantity

        # Optimistic lock: only overwrite the version we read
        updated = self.db.execute(
            text("""
                UPDATE stock_records
                SET quantity = :new_quantity,
                    version = version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = :record_id AND version = :expected_version
            """),
            {
                "new_quantity": new_quantity,
                "record_id": record_id,
                "expected_version": snapshot.version,
            },
        ).rowcount
        if updated == 0:
            raise ConcurrencyConflictError(
                f"Stock record {record_id} was modified by another transaction"
            )

        record = self.get_record(record_id)
        self._record_movement(record, new_quantity - previous, MovementType.ADJUSTMENT, reason)
        return record

    def find_or_create(self, product_id: int, warehouse_id: int) -> StockRecord:
        """
        Return the record for the pair, creating it with quantity 0 if absent.

        Relies on the (product_id, warehouse_id) unique constraint with
        an insert that is a no-op on conflict, so concurrent callers never
        produce two rows for one pair.
        """
        insert_stmt = insert_if_absent(
            self.db.get_bind().dialect.name, product_id, warehouse_id
        )
        result = self.db.execute(insert_stmt)
        if result.rowcount:
            logger.info(f"Created stock record for product {product_id} in warehouse {warehouse_id}")

        return self.find_record(product_id, warehouse_id)

    def total_for_product(self, product_id: int) -> int:
        """Aggregate stock across warehouses. Not atomic with later writes."""
        total = self.db.execute(
            select(func.coalesce(func.sum(StockRecord.quantity), 0)).where(
                StockRecord.product_id == product_id
            )
        ).scalar_one()
        return int(total)

    def records_for_product(self, product_id: int, in_stock_only: bool = False) -> List[StockRecord]:
        """Stock records of a product, oldest first (ties broken by id)."""
        query = select(StockRecord).where(StockRecord.product_id == product_id)
        if in_stock_only:
            query = query.where(StockRecord.quantity > 0)
        query = query.order_by(StockRecord.created_at.asc(), StockRecord.id.asc())
        return list(
            self.db.execute(query.execution_options(populate_existing=True)).scalars().all()
        )

    def earliest_record(self, product_id: int) -> Optional[StockRecord]:
        records = self.records_for_product(product_id)
        return records[0] if records else None

    def record_initial(self, record: StockRecord, reason: Optional[str] = None) -> None:
        """Log the opening quantity of a manually created record."""
        self._record_movement(record, record.quantity, MovementType.INITIAL, reason)

    def _record_movement(
        self,
        record: StockRecord,
        delta: int,
        movement_type: MovementType,
        reason: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
    ) -> None:
        self.db.add(
            StockMovement(
                stock_record_id=record.id,
                product_id=record.product_id,
                warehouse_id=record.warehouse_id,
                movement_type=movement_type.value,
                quantity=delta,
                new_quantity=record.quantity,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
            )
        )
        self.db.flush()
