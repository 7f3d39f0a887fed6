"""
Vehicle API Endpoints.

- Vehicle assignment to sales orders
- Vehicle updates (status changes propagate to orders)
- Vehicle documents (POD upload re-checks completion)
"""
from uuid import UUID

from fastapi import APIRouter, status

from logistics_engine.api.deps import DB, OperationsCaller
from logistics_engine.schemas.vehicle import (
    VehicleAssignRequest, VehicleAssignResult, VehicleUpdate, VehicleUpdateResult,
    VehicleResponse, VehicleDetailResponse, VehicleDocumentCreate, DocumentResponse,
    DocumentAttachResult, SyncResultResponse,
)
from logistics_engine.services.vehicle_service import VehicleService

router = APIRouter()


@router.post(
    "/assign",
    response_model=VehicleAssignResult,
    status_code=status.HTTP_201_CREATED,
    summary="Assign Vehicle"
)
async def assign_vehicle(data: VehicleAssignRequest, db: DB, caller: OperationsCaller):
    """Link orders to a new vehicle, or to an existing one when vehicle_id is given."""
    service = VehicleService(db, caller.tenant_id, caller.role)
    vehicle, order_ids, created = await service.assign_vehicle(data)
    return VehicleAssignResult(
        vehicle=VehicleResponse.model_validate(vehicle),
        sales_order_ids=order_ids,
        created=created,
    )


@router.get(
    "/{vehicle_id}",
    response_model=VehicleDetailResponse,
    summary="Get Vehicle"
)
async def get_vehicle(vehicle_id: UUID, db: DB, caller: OperationsCaller):
    service = VehicleService(db, caller.tenant_id, caller.role)
    vehicle, order_ids, documents = await service.get_vehicle_detail(vehicle_id)
    return VehicleDetailResponse(
        **VehicleResponse.model_validate(vehicle).model_dump(),
        sales_order_ids=order_ids,
        documents=[DocumentResponse.model_validate(d) for d in documents],
    )


@router.patch(
    "/{vehicle_id}",
    response_model=VehicleUpdateResult,
    summary="Update Vehicle"
)
async def update_vehicle(vehicle_id: UUID, data: VehicleUpdate, db: DB, caller: OperationsCaller):
    """Update vehicle fields or move its status forward."""
    service = VehicleService(db, caller.tenant_id, caller.role)
    vehicle, sync = await service.update_vehicle(vehicle_id, data)
    return VehicleUpdateResult(
        vehicle=VehicleResponse.model_validate(vehicle),
        sync=SyncResultResponse.model_validate(sync) if sync else None,
    )


@router.post(
    "/{vehicle_id}/documents",
    response_model=DocumentAttachResult,
    status_code=status.HTTP_201_CREATED,
    summary="Attach Vehicle Document"
)
async def attach_vehicle_document(vehicle_id: UUID, data: VehicleDocumentCreate, db: DB, caller: OperationsCaller):
    service = VehicleService(db, caller.tenant_id, caller.role)
    document, completion = await service.attach_document(vehicle_id, data)
    return DocumentAttachResult(
        document=DocumentResponse.model_validate(document),
        completion_outcome=completion.outcome.value if completion else None,
    )
