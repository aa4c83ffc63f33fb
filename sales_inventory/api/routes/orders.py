from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from sales_inventory.core.database import get_db
from sales_inventory.models.schemas import OrderCreate, Order, OrderStatusUpdate
from sales_inventory.services.order_service import OrderService

router = APIRouter()

@router.post("/", response_model=Order, status_code=201)
def create_order(order_data: OrderCreate, db: Session = Depends(get_db)):
    """Create a new order, deducting stock oldest-record first"""
    service = OrderService(db)
    return service.create_order(
        order_data.customer_id,
        order_data.payment_method,
        [(item.product_id, item.quantity) for item in order_data.items],
        user_id=order_data.user_id,
    )

@router.get("/", response_model=List[Order])
def get_orders(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """Get all orders, newest first"""
    return OrderService(db).list_orders(status=status, customer_id=customer_id)

@router.get("/{order_id}", response_model=Order)
def get_order(order_id: int, db: Session = Depends(get_db)):
    """Get a specific order"""
    return OrderService(db).get_order(order_id)

@router.put("/{order_id}/status", response_model=Order)
def update_order_status(order_id: int, status_data: OrderStatusUpdate, db: Session = Depends(get_db)):
    """Change the status of an order; cancelling returns its stock"""
    return OrderService(db).update_order_status(order_id, status_data.status)
