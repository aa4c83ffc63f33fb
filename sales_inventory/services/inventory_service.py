import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sales_inventory.core.database import transaction
from sales_inventory.core.exceptions import (
    DuplicateRecordError,
    InvalidInputError,
    InvalidQuantityError,
    NotFoundError,
)
from sales_inventory.models.database import (
    Product,
    StockMovement,
    StockOperation,
    StockRecord,
    Warehouse,
)
from sales_inventory.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class InventoryService:
    """Manual stock record management on top of the stock ledger."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedger(db)

    def adjust_stock(
        self,
        record_id: int,
        quantity: int,
        operation,
        reason: Optional[str] = None,
    ) -> StockRecord:
        """Apply an add, subtract or set operation to one stock record."""
        try:
            operation = StockOperation(operation)
        except ValueError:
            raise InvalidInputError(f"Unknown stock operation: {operation}")

        if operation == StockOperation.SET:
            if quantity < 0:
                raise InvalidQuantityError(quantity)
        elif quantity < 0:
            raise InvalidInputError(f"Quantity to {operation.value} must not be negative")

        with transaction(self.db):
            if operation == StockOperation.ADD:
                record = self.ledger.adjust(record_id, quantity, reason=reason)
            elif operation == StockOperation.SUBTRACT:
                record = self.ledger.adjust(record_id, -quantity, reason=reason)
            else:
                record = self.ledger.set_exact(record_id, quantity, reason=reason)

        logger.info(
            f"Stock record {record_id}: {operation.value} {quantity}, "
            f"new quantity = {record.quantity}"
        )
        return record

    def create_stock_record(
        self,
        product_id: int,
        warehouse_id: int,
        quantity: int = 0,
        reason: Optional[str] = None,
    ) -> StockRecord:
        if quantity is None or quantity < 0:
            raise InvalidQuantityError(quantity)

        with transaction(self.db):
            if self.db.get(Product, product_id) is None:
                raise NotFoundError("Product", product_id)
            if self.db.get(Warehouse, warehouse_id) is None:
                raise NotFoundError("Warehouse", warehouse_id)
            if self.ledger.find_record(product_id, warehouse_id) is not None:
                raise DuplicateRecordError(product_id, warehouse_id)

            record = StockRecord(
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=quantity,
            )
            self.db.add(record)
            try:
                self.db.flush()
            except IntegrityError as e:
                # Lost the race against a concurrent insert of the same pair
                raise DuplicateRecordError(product_id, warehouse_id) from e
            self.ledger.record_initial(record, reason)

        logger.info(
            f"Created stock record {record.id} for product {product_id} "
            f"in warehouse {warehouse_id} with quantity {quantity}"
        )
        return record

    def delete_stock_record(self, record_id: int) -> None:
        with transaction(self.db):
            record = self.ledger.get_record(record_id)
            self.db.delete(record)
        logger.info(f"Deleted stock record {record_id}")

    def get_stock_record(self, record_id: int) -> StockRecord:
        return self.ledger.get_record(record_id)

    def list_stock_records(
        self,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        max_quantity: Optional[int] = None,
    ) -> List[StockRecord]:
        query = select(StockRecord)
        if warehouse_id is not None:
            query = query.where(StockRecord.warehouse_id == warehouse_id)
        if product_id is not None:
            query = query.where(StockRecord.product_id == product_id)
        if max_quantity is not None:
            query = query.where(StockRecord.quantity <= max_quantity)
        query = query.order_by(StockRecord.id)
        return list(self.db.execute(query).scalars().all())

    def list_movements(self, record_id: int) -> List[StockMovement]:
        self.ledger.get_record(record_id)
        return list(
            self.db.execute(
                select(StockMovement)
                .where(StockMovement.stock_record_id == record_id)
                .order_by(StockMovement.id)
            )
            .scalars()
            .all()
        )
