from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from sales_inventory.core import config
from sales_inventory.core.database import get_db
from sales_inventory.models.schemas import (
    StockAdjustment,
    StockMovement,
    StockRecord,
    StockRecordCreate,
    StockTransfer,
    StockTransferResult,
)
from sales_inventory.services.inventory_service import InventoryService
from sales_inventory.services.transfer_service import StockTransferService

router = APIRouter()

@router.post("/", response_model=StockRecord, status_code=201)
def create_stock_record(record_data: StockRecordCreate, db: Session = Depends(get_db)):
    """Create a stock record for a product/warehouse pair"""
    service = InventoryService(db)
    return service.create_stock_record(
        record_data.product_id,
        record_data.warehouse_id,
        record_data.quantity,
        reason=record_data.reason,
    )

@router.get("/", response_model=List[StockRecord])
def get_stock_records(
    warehouse_id: Optional[int] = None,
    product_id: Optional[int] = None,
    low_stock: bool = False,
    threshold: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """List stock records, optionally only those at or below a low-stock threshold"""
    max_quantity = None
    if low_stock:
        max_quantity = threshold if threshold is not None else config.LOW_STOCK_THRESHOLD
    service = InventoryService(db)
    return service.list_stock_records(warehouse_id, product_id, max_quantity)

@router.post("/transfer", response_model=StockTransferResult)
def transfer_stock(transfer_data: StockTransfer, db: Session = Depends(get_db)):
    """Move stock of a product between warehouses"""
    service = StockTransferService(db)
    source, destination = service.transfer(
        transfer_data.product_id,
        transfer_data.from_warehouse_id,
        transfer_data.to_warehouse_id,
        transfer_data.quantity,
        reason=transfer_data.reason,
    )
    return {"source": source, "destination": destination}

@router.get("/{record_id}", response_model=StockRecord)
def get_stock_record(record_id: int, db: Session = Depends(get_db)):
    """Get a specific stock record"""
    return InventoryService(db).get_stock_record(record_id)

@router.delete("/{record_id}")
def delete_stock_record(record_id: int, db: Session = Depends(get_db)):
    """Delete a stock record"""
    InventoryService(db).delete_stock_record(record_id)
    return {"message": "Inventory record deleted successfully"}

@router.post("/{record_id}/adjust", response_model=StockRecord)
def adjust_stock(record_id: int, adjustment: StockAdjustment, db: Session = Depends(get_db)):
    """Add to, subtract from or overwrite the quantity of a stock record"""
    service = InventoryService(db)
    return service.adjust_stock(
        record_id,
        adjustment.quantity,
        adjustment.operation,
        reason=adjustment.reason,
    )

@router.get("/{record_id}/movements", response_model=List[StockMovement])
def get_stock_movements(record_id: int, db: Session = Depends(get_db)):
    """Movement history of a stock record"""
    return InventoryService(db).list_movements(record_id)
