import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from sales_inventory.core.database import transaction
from sales_inventory.core.exceptions import (
    InsufficientStockError,
    InvalidInputError,
    InventoryError,
    NotFoundError,
)
from sales_inventory.models.database import MovementType, Product, StockRecord, Warehouse
from sales_inventory.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class StockTransferService:
    """Moves stock of one product between two warehouses in a single transaction."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedger(db)

    def transfer(
        self,
        product_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity: int,
        reason: Optional[str] = None,
    ) -> Tuple[StockRecord, StockRecord]:
        """
        Debit the source record and credit the destination record (created
        if absent). Both adjustments commit together or not at all.
        """
        if from_warehouse_id == to_warehouse_id:
            raise InvalidInputError("Source and destination warehouses must be different")
        if quantity is None or quantity < 1:
            raise InvalidInputError(f"Transfer quantity must be at least 1, got {quantity}")

        try:
            with transaction(self.db):
                if self.db.get(Product, product_id) is None:
                    raise NotFoundError("Product", product_id)
                for warehouse_id in (from_warehouse_id, to_warehouse_id):
                    if self.db.get(Warehouse, warehouse_id) is None:
                        raise NotFoundError("Warehouse", warehouse_id)

                source = self.ledger.find_record(product_id, from_warehouse_id)
                if source is None or source.quantity < quantity:
                    raise InsufficientStockError(
                        product_id=product_id,
                        requested=quantity,
                        available=source.quantity if source is not None else 0,
                    )

                destination = self.ledger.find_or_create(product_id, to_warehouse_id)
                source = self.ledger.adjust(
                    source.id,
                    -quantity,
                    MovementType.TRANSFER_OUT,
                    reason=reason,
                    reference_type="warehouse",
                    reference_id=to_warehouse_id,
                )
                destination = self.ledger.adjust(
                    destination.id,
                    quantity,
                    MovementType.TRANSFER_IN,
                    reason=reason,
                    reference_type="warehouse",
                    reference_id=from_warehouse_id,
                )
        except InventoryError as e:
            logger.warning(f"Transfer of product {product_id} failed: {e}")
            raise

        logger.info(
            f"Transferred {quantity} of product {product_id} from warehouse "
            f"{from_warehouse_id} to warehouse {to_warehouse_id}"
        )
        return source, destination
