"""
Sales Order API Endpoints.

- Manual create / update with auto-advance
- Hold, delete and reactivate
- Bulk import and external capture
"""
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from logistics_engine.api.deps import DB, OperationsCaller
from logistics_engine.schemas.sales_order import (
    SalesOrderCreate, SalesOrderUpdate, SalesOrderResponse,
    SalesOrderImportRequest, SalesOrderImportResult, SalesOrderCapture,
)
from logistics_engine.services.sales_order_service import SalesOrderService

router = APIRouter()


# ============================================================================
# MANUAL OPERATIONS
# ============================================================================

@router.post(
    "",
    response_model=SalesOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Sales Order"
)
async def create_sales_order(data: SalesOrderCreate, db: DB, caller: OperationsCaller):
    """Create an order; its status is derived from the fields supplied."""
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    return await service.create_order(data)


@router.get(
    "/{order_id}",
    response_model=SalesOrderResponse,
    summary="Get Sales Order"
)
async def get_sales_order(order_id: UUID, db: DB, caller: OperationsCaller):
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    order = await service.get_order(order_id)
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sales order not found"
        )
    return order


@router.patch(
    "/{order_id}",
    response_model=SalesOrderResponse,
    summary="Update Sales Order"
)
async def update_sales_order(order_id: UUID, data: SalesOrderUpdate, db: DB, caller: OperationsCaller):
    """Partial update; an explicit status must move forward."""
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    return await service.update_order(order_id, data)


@router.post(
    "/{order_id}/hold",
    response_model=SalesOrderResponse,
    summary="Put Sales Order On Hold"
)
async def hold_sales_order(order_id: UUID, db: DB, caller: OperationsCaller):
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    return await service.hold_order(order_id)


@router.post(
    "/{order_id}/delete",
    response_model=SalesOrderResponse,
    summary="Delete Sales Order"
)
async def delete_sales_order(order_id: UUID, db: DB, caller: OperationsCaller):
    """Soft delete; the order can be reactivated."""
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    return await service.delete_order(order_id)


@router.post(
    "/{order_id}/reactivate",
    response_model=SalesOrderResponse,
    summary="Reactivate Sales Order"
)
async def reactivate_sales_order(order_id: UUID, db: DB, caller: OperationsCaller):
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    return await service.reactivate_order(order_id)


# ============================================================================
# IMPORT / CAPTURE
# ============================================================================

@router.post(
    "/import",
    response_model=SalesOrderImportResult,
    summary="Import Sales Orders"
)
async def import_sales_orders(data: SalesOrderImportRequest, db: DB, caller: OperationsCaller):
    """Upsert parsed rows by SO number; manual edits are kept."""
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    return await service.import_rows(data.rows)


@router.post(
    "/capture",
    response_model=SalesOrderResponse,
    summary="Capture Sales Order"
)
async def capture_sales_order(data: SalesOrderCapture, db: DB, caller: OperationsCaller):
    """Upsert one order from the external capture pipeline."""
    service = SalesOrderService(db, caller.tenant_id, caller.role)
    return await service.capture_order(data)
