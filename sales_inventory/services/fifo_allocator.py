import logging
from typing import List, NamedTuple, Optional

from sales_inventory.core.exceptions import InsufficientStockError, InvalidInputError, NotFoundError
from sales_inventory.models.database import MovementType, StockRecord
from sales_inventory.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class Allocation(NamedTuple):
    stock_record_id: int
    quantity: int


class FifoAllocator:
    """
    Deducts a required quantity of a product across its stock records,
    draining the oldest record first and stopping once the requirement is met.

    Exhaustion is detected here, not by any earlier availability check:
    if the records run out, every deduction made by the call is credited
    back before InsufficientStockError is raised.
    """

    def __init__(self, ledger: StockLedger):
        self.ledger = ledger

    def allocate(
        self,
        product_id: int,
        required_quantity: int,
        product_name: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
    ) -> List[Allocation]:
        if required_quantity <= 0:
            raise InvalidInputError(f"Quantity must be positive, got {required_quantity}")

        allocations: List[Allocation] = []
        remaining = required_quantity

        for record in self.ledger.records_for_product(product_id, in_stock_only=True):
            if remaining == 0:
                break
            taken = self._take(record, remaining, reference_type, reference_id)
            if taken:
                allocations.append(Allocation(record.id, taken))
                remaining -= taken

        if remaining > 0:
            self.release(allocations, reason="allocation rolled back")
            raise InsufficientStockError(
                product_id=product_id,
                requested=required_quantity,
                available=required_quantity - remaining,
                product_name=product_name,
            )

        logger.info(
            f"Allocated {required_quantity} of product {product_id} from "
            f"{len(allocations)} stock record(s)"
        )
        return allocations

    def release(self, allocations: List[Allocation], reason: Optional[str] = None) -> None:
        """Credit allocations back to the records they were taken from."""
        for allocation in reversed(allocations):
            self.ledger.adjust(
                allocation.stock_record_id,
                allocation.quantity,
                MovementType.ADJUSTMENT,
                reason=reason,
            )

    def _take(
        self,
        record: StockRecord,
        wanted: int,
        reference_type: Optional[str],
        reference_id: Optional[int],
    ) -> int:
        available = record.quantity
        while available > 0:
            take = min(available, wanted)
            try:
                self.ledger.adjust(
                    record.id,
                    -take,
                    MovementType.SALE,
                    reference_type=reference_type,
                    reference_id=reference_id,
                )
                return take
            except InsufficientStockError as e:
                # A concurrent consumer got to this record first
                logger.warning(
                    f"Stock record {record.id} dropped to {e.available} during allocation"
                )
                available = e.available
            except NotFoundError:
                logger.warning(f"Stock record {record.id} was deleted during allocation")
                return 0
        return 0
