import os

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sales_inventory.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# "exact" reverses the recorded allocations, "earliest" credits the oldest stock record
RESTITUTION_POLICY = os.getenv("RESTITUTION_POLICY", "exact").lower()

# Soft admission check on aggregate stock before allocating an order line
AVAILABILITY_PRECHECK = os.getenv("AVAILABILITY_PRECHECK", "true").lower() in ("1", "true", "yes")

LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))
