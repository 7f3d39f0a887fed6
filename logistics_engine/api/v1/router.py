from fastapi import APIRouter

from logistics_engine.config import settings
from logistics_engine.api.v1.endpoints import (
    # Order intake and lifecycle
    sales_orders,
    # Vehicles and their documents
    vehicles,
    # Security gate
    gate,
    # Payment requests and allocation
    payments,
    transactions,
)


# Create main API router
api_router = APIRouter(prefix=settings.API_V1_PREFIX)

# ==================== Sales Orders ====================
api_router.include_router(
    sales_orders.router,
    prefix="/sales-orders",
    tags=["Sales Orders"]
)

# ==================== Vehicles ====================
api_router.include_router(
    vehicles.router,
    prefix="/vehicles",
    tags=["Vehicles"]
)

# ==================== Gate ====================
api_router.include_router(
    gate.router,
    prefix="/gate",
    tags=["Gate"]
)

# ==================== Payments ====================
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)

# ==================== Bank Transactions ====================
api_router.include_router(
    transactions.router,
    prefix="/transactions",
    tags=["Bank Transactions"]
)
