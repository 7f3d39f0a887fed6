"""
Vehicle Completion Service.

Feeds ledger events back into the vehicle lifecycle: once a vehicle has
a completed balance or full shipping payment and a proof of delivery,
it moves to COMPLETED and its orders follow.

Runs inside the caller's unit of work and never commits.
"""
import uuid
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.core.exceptions import NotFound
from logistics_engine.models.document import DocumentType
from logistics_engine.models.payment import (
    PaymentRequest, PaymentRequestStatus, PaymentRequestType
)
from logistics_engine.models.vehicle import Vehicle, VehicleStatus
from logistics_engine.services.document_service import DocumentService
from logistics_engine.services.status_rules import (
    VEHICLE_SEQUENCE, can_transition, transition_vehicle
)
from logistics_engine.services.status_sync_service import StatusSyncService, SyncResult


logger = logging.getLogger(__name__)


# Payment types that settle a trip
SETTLEMENT_TYPES = [
    PaymentRequestType.BALANCE_SHIPPING.value,
    PaymentRequestType.FULL_SHIPPING_CHARGES.value,
]


class CompletionOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    NOT_SETTLEMENT = "NOT_SETTLEMENT"       # Triggering request is not balance/full
    NO_SETTLEMENT = "NO_SETTLEMENT"         # No completed balance/full request yet
    MISSING_POD = "MISSING_POD"
    BLOCKED = "BLOCKED"                     # Vehicle is past COMPLETED


@dataclass
class CompletionResult:
    vehicle_id: uuid.UUID
    outcome: CompletionOutcome
    sync: Optional[SyncResult] = None


class VehicleCompletionService:
    """Completion policy for vehicles."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id
        self.documents = DocumentService(db, tenant_id)
        self.sync_service = StatusSyncService(db, tenant_id)

    async def on_request_completed(self, request: PaymentRequest) -> CompletionResult:
        """React to a payment request reaching COMPLETED."""
        if request.transaction_type not in SETTLEMENT_TYPES:
            return CompletionResult(request.vehicle_id, CompletionOutcome.NOT_SETTLEMENT)
        return await self.evaluate_vehicle(request.vehicle_id)

    async def evaluate_vehicle(self, vehicle_id: uuid.UUID) -> CompletionResult:
        """Complete the vehicle if it is settled and delivered."""
        await self.db.flush()

        result = await self.db.execute(
            select(Vehicle)
            .where(Vehicle.id == vehicle_id, Vehicle.tenant_id == self.tenant_id)
            .with_for_update()
        )
        vehicle = result.scalar_one_or_none()
        if not vehicle:
            raise NotFound("Vehicle not found", details={"vehicle_id": str(vehicle_id)})

        settled = await self.db.execute(
            select(func.count(PaymentRequest.id)).where(
                PaymentRequest.tenant_id == self.tenant_id,
                PaymentRequest.vehicle_id == vehicle_id,
                PaymentRequest.status == PaymentRequestStatus.COMPLETED.value,
                PaymentRequest.transaction_type.in_(SETTLEMENT_TYPES),
            )
        )
        if (settled.scalar() or 0) == 0:
            return CompletionResult(vehicle_id, CompletionOutcome.NO_SETTLEMENT)

        if not await self.documents.document_exists(DocumentType.POD, vehicle_id=vehicle_id):
            logger.info(f"Vehicle {vehicle.vehicle_number} settled but has no POD; not completing")
            return CompletionResult(vehicle_id, CompletionOutcome.MISSING_POD)

        if vehicle.status == VehicleStatus.COMPLETED.value:
            sync = await self.sync_service.sync_orders_from_vehicle(vehicle.id, vehicle.status)
            return CompletionResult(vehicle_id, CompletionOutcome.ALREADY_COMPLETED, sync)

        if not can_transition(vehicle.status, VehicleStatus.COMPLETED, VEHICLE_SEQUENCE):
            logger.warning(
                f"Vehicle {vehicle.vehicle_number} is {vehicle.status}; "
                f"settlement does not move it back to COMPLETED"
            )
            return CompletionResult(vehicle_id, CompletionOutcome.BLOCKED)

        previous = vehicle.status
        transition_vehicle(vehicle, VehicleStatus.COMPLETED)
        sync = await self.sync_service.sync_orders_from_vehicle(vehicle.id, vehicle.status)
        logger.info(
            f"Vehicle {vehicle.vehicle_number}: {previous} -> COMPLETED "
            f"({sync.updated_count} orders updated)"
        )
        return CompletionResult(vehicle_id, CompletionOutcome.COMPLETED, sync)
