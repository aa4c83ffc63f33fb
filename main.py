import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sales_inventory.api.routes import customers, inventory, orders, products, warehouses
from sales_inventory.core import config
from sales_inventory.core.database import Base, engine
from sales_inventory.core.exceptions import (
    ConcurrencyConflictError,
    InventoryError,
    NotFoundError,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Business errors not listed here map to 400
ERROR_STATUS_CODES = {
    NotFoundError: 404,
    ConcurrencyConflictError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Sales & Inventory Backend",
    description="Customers, products, warehouses, stock and orders",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(customers.router, prefix="/api/v1/customers", tags=["customers"])
app.include_router(products.router, prefix="/api/v1/products", tags=["products"])
app.include_router(warehouses.router, prefix="/api/v1/warehouses", tags=["warehouses"])
app.include_router(inventory.router, prefix="/api/v1/inventory", tags=["inventory"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    """Report business rule violations to the client instead of as server faults."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


@app.get("/")
async def root():
    return {"message": "Sales & Inventory Backend API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
