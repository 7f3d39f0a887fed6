"""
Gate API Endpoints.

Check-in, gate-in and gate-out at the security gate. Vehicle moves that
the lifecycle rejects come back as warnings; the gate pass is still saved.
"""
from uuid import UUID

from fastapi import APIRouter, status

from logistics_engine.api.deps import DB, GateCaller
from logistics_engine.schemas.gate import (
    GateCheckInRequest, GatePassUpdate, GatePassResponse, GateActionResult,
)
from logistics_engine.schemas.vehicle import SyncResultResponse
from logistics_engine.services.gate_service import GateService, GateActionOutcome

router = APIRouter()


def _action_result(outcome: GateActionOutcome) -> GateActionResult:
    return GateActionResult(
        gate_pass=GatePassResponse.model_validate(outcome.gate_pass),
        vehicle_status=outcome.vehicle_status,
        sync=SyncResultResponse.model_validate(outcome.sync) if outcome.sync else None,
        warnings=outcome.warnings,
    )


# ============================================================================
# GATE ACTIONS
# ============================================================================

@router.post(
    "/check-in",
    response_model=GateActionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Gate Check-In"
)
async def check_in(data: GateCheckInRequest, db: DB, caller: GateCaller):
    """Open a gate pass for an arriving vehicle."""
    service = GateService(db, caller.tenant_id)
    return _action_result(await service.check_in(data.vehicle_number, data.notes))


@router.post(
    "/{pass_id}/gate-in",
    response_model=GateActionResult,
    summary="Gate In"
)
async def gate_in(pass_id: UUID, db: DB, caller: GateCaller):
    service = GateService(db, caller.tenant_id)
    return _action_result(await service.gate_in(pass_id))


@router.post(
    "/{pass_id}/gate-out",
    response_model=GateActionResult,
    summary="Gate Out"
)
async def gate_out(pass_id: UUID, db: DB, caller: GateCaller):
    """Close the visit; the vehicle and its orders go IN_JOURNEY."""
    service = GateService(db, caller.tenant_id)
    return _action_result(await service.gate_out(pass_id))


# ============================================================================
# EDIT / DELETE
# ============================================================================

@router.patch(
    "/{pass_id}",
    response_model=GatePassResponse,
    summary="Update Gate Pass"
)
async def update_gate_pass(pass_id: UUID, data: GatePassUpdate, db: DB, caller: GateCaller):
    service = GateService(db, caller.tenant_id)
    return await service.update_gate_pass(pass_id, data)


@router.delete(
    "/{pass_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Gate Pass"
)
async def delete_gate_pass(pass_id: UUID, db: DB, caller: GateCaller):
    """Delete a pass that has not gone past check-in."""
    service = GateService(db, caller.tenant_id)
    await service.delete_gate_pass(pass_id)


@router.post(
    "/{pass_id}/cancel",
    response_model=GatePassResponse,
    summary="Cancel Gate Pass"
)
async def cancel_gate_pass(pass_id: UUID, db: DB, caller: GateCaller):
    service = GateService(db, caller.tenant_id)
    return await service.cancel_gate_pass(pass_id)
