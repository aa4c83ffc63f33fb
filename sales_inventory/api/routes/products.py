from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
from sales_inventory.core.database import get_db, transaction
from sales_inventory.core.exceptions import InvalidInputError, NotFoundError, ReferencedEntityError
from sales_inventory.models.database import OrderLine, Product as DBProduct, StockRecord
from sales_inventory.models.schemas import Product, ProductCreate, ProductUpdate
from sales_inventory.services.stock_ledger import StockLedger

router = APIRouter()

def _get_product(db: Session, product_id: int) -> DBProduct:
    product = db.query(DBProduct).filter(DBProduct.id == product_id).first()
    if not product:
        raise NotFoundError("Product", product_id)
    return product

def _check_sku_free(db: Session, sku: str, product_id: Optional[int] = None):
    query = db.query(DBProduct).filter(DBProduct.sku == sku)
    if product_id is not None:
        query = query.filter(DBProduct.id != product_id)
    if query.first():
        raise InvalidInputError(f"SKU {sku} already exists")

def _flush_sku(db: Session, sku: str):
    try:
        db.flush()
    except IntegrityError as e:
        # A concurrent request took the SKU after the check
        raise InvalidInputError(f"SKU {sku} already exists") from e

@router.post("/", response_model=Product, status_code=201)
def create_product(product_data: ProductCreate, db: Session = Depends(get_db)):
    """Create a new product"""
    with transaction(db):
        _check_sku_free(db, product_data.sku)
        product = DBProduct(**product_data.model_dump())
        db.add(product)
        _flush_sku(db, product.sku)
    db.refresh(product)
    return product

@router.get("/", response_model=List[Product])
def get_products(category: Optional[str] = None, db: Session = Depends(get_db)):
    """Get all products"""
    query = db.query(DBProduct)
    if category is not None:
        query = query.filter(DBProduct.category == category)
    return query.order_by(DBProduct.id).all()

@router.get("/{product_id}", response_model=Product)
def get_product(product_id: int, db: Session = Depends(get_db)):
    """Get a product with its total stock across warehouses"""
    product = _get_product(db, product_id)
    product.total_stock = StockLedger(db).total_for_product(product_id)
    return product

@router.put("/{product_id}", response_model=Product)
def update_product(product_id: int, product_data: ProductUpdate, db: Session = Depends(get_db)):
    """Update a product; existing order lines keep the price they were sold at"""
    with transaction(db):
        product = _get_product(db, product_id)
        changes = product_data.model_dump(exclude_unset=True)
        if "sku" in changes:
            _check_sku_free(db, changes["sku"], product_id)
        for field, value in changes.items():
            setattr(product, field, value)
        if "sku" in changes:
            _flush_sku(db, changes["sku"])
    db.refresh(product)
    return product

@router.delete("/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db)):
    """Delete a product that has no stock records and no order lines"""
    with transaction(db):
        product = _get_product(db, product_id)
        stock_count = db.query(StockRecord).filter(StockRecord.product_id == product_id).count()
        line_count = db.query(OrderLine).filter(OrderLine.product_id == product_id).count()
        if stock_count > 0 or line_count > 0:
            raise ReferencedEntityError("Product", product_id, "existing inventory or orders")
        db.delete(product)
    return {"message": "Product deleted successfully"}
