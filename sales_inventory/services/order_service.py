import logging
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from sales_inventory.core import config
from sales_inventory.core.database import transaction, utcnow
from sales_inventory.core.exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    InvalidInputError,
    InvalidTransitionError,
    InventoryError,
    NotFoundError,
)
from sales_inventory.models.database import (
    Customer,
    Order,
    OrderLine,
    OrderLineAllocation,
    OrderStatus,
    Product,
)
from sales_inventory.services.fifo_allocator import FifoAllocator
from sales_inventory.services.restitution import CancellationRestitution
from sales_inventory.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# Forward order of the non-terminal statuses
STATUS_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]


class OrderService:
    """
    Creates orders and moves them through their status lifecycle.

    Order creation is all-or-nothing: the order row, its lines, their
    allocations and every stock deduction commit together or not at all.
    Conflicts with concurrent writers are surfaced, never retried.
    """

    def __init__(
        self,
        db: Session,
        restitution_policy: Optional[str] = None,
        availability_precheck: Optional[bool] = None,
    ):
        self.db = db
        self.ledger = StockLedger(db)
        self.allocator = FifoAllocator(self.ledger)
        self.restitution = CancellationRestitution(self.ledger, restitution_policy)
        if availability_precheck is None:
            availability_precheck = config.AVAILABILITY_PRECHECK
        self.availability_precheck = availability_precheck

    def create_order(
        self,
        customer_id: int,
        payment_method: str,
        lines: Sequence[Tuple[int, int]],
        user_id: Optional[int] = None,
    ) -> Order:
        """
        Create an order from (product_id, quantity) lines.

        Each line is filled by the FIFO allocator and priced at the
        product's current unit price, which is captured on the line.
        """
        self._validate(payment_method, lines)
        logger.info(f"Processing order for customer {customer_id} ({len(lines)} line(s))")

        try:
            with transaction(self.db):
                if self.db.get(Customer, customer_id) is None:
                    raise NotFoundError("Customer", customer_id)
                products = self._load_products(lines)

                order = Order(
                    customer_id=customer_id,
                    user_id=user_id,
                    order_date=utcnow(),
                    payment_method=payment_method,
                    status=OrderStatus.PENDING.value,
                    total_amount=Decimal("0"),
                )
                self.db.add(order)
                self.db.flush()  # Get the order ID

                total_amount = Decimal("0")
                for product_id, quantity in lines:
                    line = self._fill_line(order, products[product_id], quantity)
                    total_amount += line.subtotal

                order.total_amount = total_amount
                self.db.flush()
        except InventoryError as e:
            logger.warning(f"Order creation failed for customer {customer_id}: {e}")
            raise

        logger.info(f"Order {order.id} created, total {order.total_amount}")
        return order

    def update_order_status(self, order_id: int, new_status: str) -> Order:
        """
        Move an order to a new status.

        Statuses only move forward; Cancelled is reachable from any other
        status and is terminal. Cancelling returns the order's stock, at
        most once: the status flip is a conditional update, so a second or
        concurrent cancellation finds nothing to flip and credits nothing.
        """
        with transaction(self.db):
            order = self.get_order(order_id)
            current = OrderStatus(order.status)
            requested = self._parse_status(current, new_status)

            if requested == current:
                return order
            if current == OrderStatus.CANCELLED:
                raise InvalidTransitionError(current.value, requested.value)
            if requested != OrderStatus.CANCELLED and (
                STATUS_SEQUENCE.index(requested) < STATUS_SEQUENCE.index(current)
            ):
                raise InvalidTransitionError(current.value, requested.value)

            if requested == OrderStatus.CANCELLED:
                claimed = self.db.execute(
                    text("""
                        UPDATE orders
                        SET status = :cancelled, updated_at = CURRENT_TIMESTAMP
                        WHERE id = :order_id AND status != :cancelled
                    """),
                    {"cancelled": OrderStatus.CANCELLED.value, "order_id": order_id},
                ).rowcount
                if claimed:
                    self.restitution.restore(order)
                else:
                    logger.info(f"Order {order_id} was already cancelled")
            else:
                updated = self.db.execute(
                    text("""
                        UPDATE orders
                        SET status = :requested, updated_at = CURRENT_TIMESTAMP
                        WHERE id = :order_id AND status = :current
                    """),
                    {
                        "requested": requested.value,
                        "current": current.value,
                        "order_id": order_id,
                    },
                ).rowcount
                if updated == 0:
                    raise ConcurrencyConflictError(
                        f"Order {order_id} was modified by another transaction"
                    )

            order = self.get_order(order_id)

        logger.info(f"Order {order_id} status changed from {current.value} to {requested.value}")
        return order

    def get_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(
        self,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
    ) -> List[Order]:
        query = select(Order)
        if status is not None:
            query = query.where(Order.status == status)
        if customer_id is not None:
            query = query.where(Order.customer_id == customer_id)
        query = query.order_by(Order.created_at.desc(), Order.id.desc())
        return list(self.db.execute(query).scalars().all())

    def _validate(self, payment_method: str, lines: Sequence[Tuple[int, int]]) -> None:
        if not payment_method or not payment_method.strip():
            raise InvalidInputError("Payment method is required")
        if not lines:
            raise InvalidInputError("An order needs at least one line")
        for product_id, quantity in lines:
            if quantity is None or quantity <= 0:
                raise InvalidInputError(
                    f"Quantity for product {product_id} must be positive, got {quantity}"
                )

    def _load_products(self, lines: Sequence[Tuple[int, int]]) -> dict:
        products = {}
        for product_id, _ in lines:
            if product_id in products:
                continue
            product = self.db.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            products[product_id] = product
        return products

    def _fill_line(self, order: Order, product: Product, quantity: int) -> OrderLine:
        if self.availability_precheck:
            # Soft admission check; the allocator is the real guard
            available = self.ledger.total_for_product(product.id)
            if available < quantity:
                raise InsufficientStockError(
                    product_id=product.id,
                    requested=quantity,
                    available=available,
                    product_name=product.name,
                )

        allocations = self.allocator.allocate(
            product.id,
            quantity,
            product_name=product.name,
            reference_type="order",
            reference_id=order.id,
        )

        unit_price = Decimal(product.unit_price).quantize(CENTS)
        line = OrderLine(
            order=order,
            product_id=product.id,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=(unit_price * quantity).quantize(CENTS),
        )
        line.allocations = [
            OrderLineAllocation(stock_record_id=a.stock_record_id, quantity=a.quantity)
            for a in allocations
        ]
        self.db.add(line)
        return line

    @staticmethod
    def _parse_status(current: OrderStatus, new_status) -> OrderStatus:
        try:
            return OrderStatus(new_status)
        except ValueError:
            raise InvalidTransitionError(current.value, str(new_status))
