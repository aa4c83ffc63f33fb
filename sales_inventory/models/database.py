import enum
from datetime import date

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sales_inventory.core.database import Base, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class MovementType(str, enum.Enum):
    INITIAL = "initial"
    ADJUSTMENT = "adjustment"
    SALE = "sale"
    RESTITUTION = "restitution"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"


class StockOperation(str, enum.Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


class Customer(Base):
    """Customer placing orders"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(100), nullable=False)
    phone = Column(String(20), unique=True, nullable=False)
    email = Column(String(100), unique=True)
    address = Column(String(200))
    registration_date = Column(Date, default=date.today)
    created_at = Column(DateTime, default=utcnow)

    orders = relationship("Order", back_populates="customer")


class Product(Base):
    """Catalog product; unit_price is captured on each order line at order time"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    category = Column(String(50))
    unit_price = Column(Numeric(10, 2), nullable=False)
    sku = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    stock_records = relationship("StockRecord", back_populates="product")
    order_lines = relationship("OrderLine", back_populates="product")


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    location = Column(String(150), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    stock_records = relationship("StockRecord", back_populates="warehouse")


class StockRecord(Base):
    """Quantity of one product held in one warehouse"""
    __tablename__ = "stock_records"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_records_product_warehouse"),
        CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)  # bumped on every ledger update
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    product = relationship("Product", back_populates="stock_records")
    warehouse = relationship("Warehouse", back_populates="stock_records")


class StockMovement(Base):
    """Audit trail of every ledger mutation"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    stock_record_id = Column(
        Integer, ForeignKey("stock_records.id", ondelete="SET NULL"), index=True
    )
    product_id = Column(Integer, nullable=False, index=True)
    warehouse_id = Column(Integer, nullable=False)
    movement_type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)  # signed delta
    new_quantity = Column(Integer, nullable=False)
    reason = Column(String(255))
    reference_type = Column(String(30))
    reference_id = Column(Integer)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Order(Base):
    """Customer order; total_amount is the sum of its line subtotals"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=True)  # creator, issued by the auth layer
    order_date = Column(DateTime, default=utcnow, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    customer = relationship("Customer", back_populates="orders")
    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )


class OrderLine(Base):
    __tablename__ = "order_lines"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="lines")
    product = relationship("Product", back_populates="order_lines")
    allocations = relationship(
        "OrderLineAllocation",
        back_populates="order_line",
        cascade="all, delete-orphan",
        order_by="OrderLineAllocation.id",
    )


class OrderLineAllocation(Base):
    """Quantity taken from one stock record to fill an order line"""
    __tablename__ = "order_line_allocations"

    id = Column(Integer, primary_key=True, index=True)
    order_line_id = Column(Integer, ForeignKey("order_lines.id"), nullable=False, index=True)
    stock_record_id = Column(
        Integer, ForeignKey("stock_records.id", ondelete="SET NULL"), nullable=True
    )
    quantity = Column(Integer, nullable=False)

    order_line = relationship("OrderLine", back_populates="allocations")
