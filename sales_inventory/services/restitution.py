import logging
from typing import Optional

from sales_inventory.core import config
from sales_inventory.models.database import MovementType, Order, OrderLine
from sales_inventory.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

EXACT = "exact"
EARLIEST = "earliest"


class CancellationRestitution:
    """
    Returns the stock of a cancelled order.

    Two policies:
    - "exact": each recorded allocation goes back to the stock record it
      was taken from. An allocation whose record has since been deleted
      falls back to the earliest record of the product.
    - "earliest": the whole line quantity is credited to the
      earliest-created stock record of the product. This does not reverse
      the original FIFO deduction.

    A line whose product has no stock record left is skipped with a warning.
    The caller guarantees this runs once per cancellation.
    """

    def __init__(self, ledger: StockLedger, policy: Optional[str] = None):
        self.ledger = ledger
        self.policy = policy or config.RESTITUTION_POLICY
        if self.policy not in (EXACT, EARLIEST):
            raise ValueError(f"Unknown restitution policy: {self.policy}")

    def restore(self, order: Order) -> int:
        """Credit every line of the order back to stock; returns units restored."""
        restored = 0
        for line in order.lines:
            if self.policy == EXACT and line.allocations:
                restored += self._restore_exact(order, line)
            else:
                restored += self._credit_earliest(order, line, line.quantity)
        logger.info(f"Returned {restored} unit(s) to stock for cancelled order {order.id}")
        return restored

    def _restore_exact(self, order: Order, line: OrderLine) -> int:
        restored = 0
        for allocation in line.allocations:
            if allocation.stock_record_id is None:
                restored += self._credit_earliest(order, line, allocation.quantity)
                continue
            self.ledger.adjust(
                allocation.stock_record_id,
                allocation.quantity,
                MovementType.RESTITUTION,
                reference_type="order",
                reference_id=order.id,
            )
            restored += allocation.quantity
        return restored

    def _credit_earliest(self, order: Order, line: OrderLine, quantity: int) -> int:
        record = self.ledger.earliest_record(line.product_id)
        if record is None:
            logger.warning(
                f"No stock record for product {line.product_id}; "
                f"{quantity} unit(s) of order {order.id} not returned"
            )
            return 0
        self.ledger.adjust(
            record.id,
            quantity,
            MovementType.RESTITUTION,
            reference_type="order",
            reference_id=order.id,
        )
        return quantity
