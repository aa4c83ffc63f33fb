import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from sales_inventory.core.database import Base, get_db, make_engine
from sales_inventory.models.database import Customer, Product, StockRecord, Warehouse


@pytest.fixture
def test_engine(tmp_path):
    # File-backed so that concurrent sessions share one database
    engine = make_engine(f"sqlite:///{tmp_path / 'test_inventory.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    del app.dependency_overrides[get_db]

@pytest.fixture
def customer(test_db):
    customer = Customer(full_name="Layla Haddad", phone="+962790000001", email="layla@example.com")
    test_db.add(customer)
    test_db.commit()
    test_db.refresh(customer)
    return customer

@pytest.fixture
def product(test_db):
    """Product priced at 10.00"""
    product = Product(name="Wireless Mouse", category="Accessories", unit_price=Decimal("10.00"), sku="ACC-MOUSE-01")
    test_db.add(product)
    test_db.commit()
    test_db.refresh(product)
    return product

@pytest.fixture
def other_product(test_db):
    product = Product(name="USB Keyboard", category="Accessories", unit_price=Decimal("25.50"), sku="ACC-KEYB-01")
    test_db.add(product)
    test_db.commit()
    test_db.refresh(product)
    return product

@pytest.fixture
def warehouses(test_db):
    warehouses = [
        Warehouse(name="Main Warehouse", location="Amman"),
        Warehouse(name="North Warehouse", location="Irbid"),
        Warehouse(name="South Warehouse", location="Aqaba"),
    ]
    test_db.add_all(warehouses)
    test_db.commit()
    for warehouse in warehouses:
        test_db.refresh(warehouse)
    return warehouses

@pytest.fixture
def make_stock(test_db):
    """Create stock records with strictly increasing creation times"""
    base_time = datetime(2026, 1, 1, 9, 0, 0)
    created = []

    def _make_stock(product, warehouse, quantity):
        record = StockRecord(
            product_id=product.id,
            warehouse_id=warehouse.id,
            quantity=quantity,
            created_at=base_time + timedelta(minutes=len(created)),
        )
        test_db.add(record)
        test_db.commit()
        test_db.refresh(record)
        created.append(record)
        return record

    return _make_stock
