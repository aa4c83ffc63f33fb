from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from sales_inventory.models.database import StockOperation


class CustomerBase(BaseModel):
    full_name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None

class CustomerCreate(CustomerBase):
    pass

class CustomerUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None

class Customer(CustomerBase):
    id: int
    registration_date: Optional[date] = None
    created_at: datetime

    class Config:
        from_attributes = True

class ProductBase(BaseModel):
    name: str
    category: Optional[str] = None
    unit_price: Decimal
    sku: str
    description: Optional[str] = None

class ProductCreate(ProductBase):
    pass

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    unit_price: Optional[Decimal] = None
    sku: Optional[str] = None
    description: Optional[str] = None

class Product(ProductBase):
    id: int
    created_at: datetime
    updated_at: datetime
    total_stock: Optional[int] = None

    class Config:
        from_attributes = True

class WarehouseBase(BaseModel):
    name: str
    location: str

class WarehouseCreate(WarehouseBase):
    pass

class WarehouseUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None

class Warehouse(WarehouseBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True

class StockRecordCreate(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: int = 0
    reason: Optional[str] = None

class StockRecord(BaseModel):
    id: int
    product_id: int
    warehouse_id: int
    quantity: int
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class StockAdjustment(BaseModel):
    quantity: int
    operation: StockOperation
    reason: Optional[str] = None

class StockTransfer(BaseModel):
    product_id: int
    from_warehouse_id: int
    to_warehouse_id: int
    quantity: int
    reason: Optional[str] = None

class StockTransferResult(BaseModel):
    source: StockRecord
    destination: StockRecord

    class Config:
        from_attributes = True

class StockMovement(BaseModel):
    id: int
    stock_record_id: Optional[int] = None
    product_id: int
    warehouse_id: int
    movement_type: str
    quantity: int
    new_quantity: int
    reason: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True

class OrderLineCreate(BaseModel):
    product_id: int
    quantity: int

class OrderLineAllocation(BaseModel):
    stock_record_id: Optional[int] = None
    quantity: int

    class Config:
        from_attributes = True

class OrderLine(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    allocations: List[OrderLineAllocation] = []

    class Config:
        from_attributes = True

class OrderCreate(BaseModel):
    customer_id: int
    payment_method: str
    items: List[OrderLineCreate]
    user_id: Optional[int] = None

class OrderStatusUpdate(BaseModel):
    status: str

class Order(BaseModel):
    id: int
    customer_id: int
    user_id: Optional[int] = None
    order_date: datetime
    total_amount: Decimal
    payment_method: str
    status: str
    created_at: datetime
    updated_at: datetime
    lines: List[OrderLine] = []

    class Config:
        from_attributes = True
