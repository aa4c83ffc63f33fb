from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from sales_inventory.core.database import get_db, transaction
from sales_inventory.core.exceptions import NotFoundError, ReferencedEntityError
from sales_inventory.models.database import StockRecord, Warehouse as DBWarehouse
from sales_inventory.models.schemas import Warehouse, WarehouseCreate, WarehouseUpdate

router = APIRouter()

def _get_warehouse(db: Session, warehouse_id: int) -> DBWarehouse:
    warehouse = db.query(DBWarehouse).filter(DBWarehouse.id == warehouse_id).first()
    if not warehouse:
        raise NotFoundError("Warehouse", warehouse_id)
    return warehouse

@router.post("/", response_model=Warehouse, status_code=201)
def create_warehouse(warehouse_data: WarehouseCreate, db: Session = Depends(get_db)):
    """Create a new warehouse"""
    with transaction(db):
        warehouse = DBWarehouse(**warehouse_data.model_dump())
        db.add(warehouse)
    db.refresh(warehouse)
    return warehouse

@router.get("/", response_model=List[Warehouse])
def get_warehouses(db: Session = Depends(get_db)):
    """Get all warehouses"""
    return db.query(DBWarehouse).order_by(DBWarehouse.id).all()

@router.get("/{warehouse_id}", response_model=Warehouse)
def get_warehouse(warehouse_id: int, db: Session = Depends(get_db)):
    """Get a specific warehouse"""
    return _get_warehouse(db, warehouse_id)

@router.put("/{warehouse_id}", response_model=Warehouse)
def update_warehouse(warehouse_id: int, warehouse_data: WarehouseUpdate, db: Session = Depends(get_db)):
    """Update a warehouse"""
    with transaction(db):
        warehouse = _get_warehouse(db, warehouse_id)
        for field, value in warehouse_data.model_dump(exclude_unset=True).items():
            setattr(warehouse, field, value)
    db.refresh(warehouse)
    return warehouse

@router.delete("/{warehouse_id}")
def delete_warehouse(warehouse_id: int, db: Session = Depends(get_db)):
    """Delete a warehouse that holds no stock records"""
    with transaction(db):
        warehouse = _get_warehouse(db, warehouse_id)
        if db.query(StockRecord).filter(StockRecord.warehouse_id == warehouse_id).count() > 0:
            raise ReferencedEntityError("Warehouse", warehouse_id, "existing inventory")
        db.delete(warehouse)
    return {"message": "Warehouse deleted successfully"}
