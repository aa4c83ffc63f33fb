"""Business errors raised by the inventory and order services."""
from typing import Optional


class InventoryError(Exception):
    """Base exception for all inventory/order business errors."""

    pass


class NotFoundError(InventoryError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidInputError(InventoryError):
    """Raised for malformed or out-of-range arguments, before anything is mutated."""

    pass


class InvalidQuantityError(InvalidInputError):
    """Raised when a stock quantity would be set below zero."""

    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Stock quantity cannot be negative: {quantity}")


class InsufficientStockError(InventoryError):
    """Raised when a deduction exceeds the quantity available."""

    def __init__(
        self,
        product_id: int,
        requested: int,
        available: int,
        product_name: Optional[str] = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.product_name = product_name
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. "
            f"Available: {available}, Requested: {requested}"
        )

    @property
    def shortfall(self) -> int:
        return self.requested - self.available


class DuplicateRecordError(InventoryError):
    """Raised when a stock record already exists for a product/warehouse pair."""

    def __init__(self, product_id: int, warehouse_id: int):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        super().__init__(
            f"Inventory record for product {product_id} and "
            f"warehouse {warehouse_id} already exists"
        )


class InvalidTransitionError(InventoryError):
    """Raised for an order status change that is not allowed."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from {current} to {requested}")


class ReferencedEntityError(InventoryError):
    """Raised when deleting an entity that other records still reference."""

    def __init__(self, entity: str, entity_id, reason: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"Cannot delete {entity.lower()} {entity_id} with {reason}")


class ConcurrencyConflictError(InventoryError):
    """Raised when a concurrent transaction forced this one to abort."""

    pass


class UnsupportedDatabaseError(RuntimeError):
    """Raised when the configured database has no atomic insert-if-absent."""

    def __init__(self, dialect: str):
        self.dialect = dialect
        super().__init__(
            f"Database dialect '{dialect}' is not supported; "
            f"use PostgreSQL, MySQL or SQLite"
        )
