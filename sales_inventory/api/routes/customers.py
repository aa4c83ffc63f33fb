from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
from sales_inventory.core.database import get_db, transaction
from sales_inventory.core.exceptions import InvalidInputError, NotFoundError, ReferencedEntityError
from sales_inventory.models.database import Customer as DBCustomer, Order
from sales_inventory.models.schemas import Customer, CustomerCreate, CustomerUpdate

router = APIRouter()

def _get_customer(db: Session, customer_id: int) -> DBCustomer:
    customer = db.query(DBCustomer).filter(DBCustomer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer

def _check_contact_free(db: Session, field: str, value: Optional[str], customer_id: Optional[int] = None):
    if not value:
        return
    query = db.query(DBCustomer).filter(getattr(DBCustomer, field) == value)
    if customer_id is not None:
        query = query.filter(DBCustomer.id != customer_id)
    if query.first():
        raise InvalidInputError(f"{field.capitalize()} {value} is already registered")

def _flush_contact(db: Session):
    try:
        db.flush()
    except IntegrityError as e:
        # A concurrent request registered the same phone or email
        raise InvalidInputError("Phone or email is already registered") from e

@router.post("/", response_model=Customer, status_code=201)
def create_customer(customer_data: CustomerCreate, db: Session = Depends(get_db)):
    """Create a new customer"""
    with transaction(db):
        _check_contact_free(db, "phone", customer_data.phone)
        _check_contact_free(db, "email", customer_data.email)
        customer = DBCustomer(**customer_data.model_dump())
        db.add(customer)
        _flush_contact(db)
    db.refresh(customer)
    return customer

@router.get("/", response_model=List[Customer])
def get_customers(db: Session = Depends(get_db)):
    """Get all customers"""
    return db.query(DBCustomer).order_by(DBCustomer.id).all()

@router.get("/{customer_id}", response_model=Customer)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    """Get a specific customer"""
    return _get_customer(db, customer_id)

@router.put("/{customer_id}", response_model=Customer)
def update_customer(customer_id: int, customer_data: CustomerUpdate, db: Session = Depends(get_db)):
    """Update the given fields of a customer; phone and email stay unique"""
    with transaction(db):
        customer = _get_customer(db, customer_id)
        changes = customer_data.model_dump(exclude_unset=True)
        # Required columns cannot be cleared
        for field in ("full_name", "phone"):
            if changes.get(field) is None:
                changes.pop(field, None)
        _check_contact_free(db, "phone", changes.get("phone"), customer_id)
        _check_contact_free(db, "email", changes.get("email"), customer_id)
        for field, value in changes.items():
            setattr(customer, field, value)
        _flush_contact(db)
    db.refresh(customer)
    return customer

@router.delete("/{customer_id}")
def delete_customer(customer_id: int, db: Session = Depends(get_db)):
    """Delete a customer without orders"""
    with transaction(db):
        customer = _get_customer(db, customer_id)
        if db.query(Order).filter(Order.customer_id == customer_id).count() > 0:
            raise ReferencedEntityError("Customer", customer_id, "existing orders")
        db.delete(customer)
    return {"message": "Customer deleted successfully"}
