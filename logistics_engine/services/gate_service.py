"""
Gate Service.

Security gate operations: check-in, gate-in, gate-out. Each gate action
records the visit on the gate pass and then moves the linked vehicle (and
through the sync, its orders) forward. The vehicle move is best-effort:
gate control never blocks on back-office state, so a rejected vehicle
transition is reported as a warning and the gate pass is still written.
"""
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.core.enum_utils import status_in
from logistics_engine.core.exceptions import (
    InvalidTransition, NotFound, ValidationFailed,
    BackwardTransition, UnsupportedSource,
)
from logistics_engine.models.gate_pass import GatePass, GatePassStatus
from logistics_engine.models.sales_order import SalesOrder, SalesOrderStatus
from logistics_engine.models.vehicle import Vehicle, VehicleSalesOrder, VehicleStatus
from logistics_engine.schemas.gate import GatePassUpdate
from logistics_engine.services.status_rules import (
    assert_forward_order, is_frozen, transition_vehicle,
)
from logistics_engine.services.status_sync_service import StatusSyncService, SyncResult


logger = logging.getLogger(__name__)


# A pass can be deleted while its vehicle is no further than the arrival the check-in recorded
DELETABLE_VEHICLE_STATUSES = (VehicleStatus.ASSIGNED, VehicleStatus.ARRIVED)


@dataclass
class GateActionOutcome:
    gate_pass: GatePass
    vehicle_status: Optional[str] = None
    sync: Optional[SyncResult] = None
    warnings: List[str] = field(default_factory=list)


class GateService:
    """Service for gate pass operations."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id
        self.sync_service = StatusSyncService(db, tenant_id)

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def get_gate_pass(self, pass_id: uuid.UUID) -> Optional[GatePass]:
        result = await self.db.execute(
            select(GatePass)
            .where(GatePass.id == pass_id, GatePass.tenant_id == self.tenant_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _require_gate_pass(self, pass_id: uuid.UUID) -> GatePass:
        gate_pass = await self.get_gate_pass(pass_id)
        if not gate_pass:
            raise NotFound("Gate pass not found", details={"gate_pass_id": str(pass_id)})
        return gate_pass

    async def _find_vehicle_by_number(self, vehicle_number: str) -> Optional[Vehicle]:
        result = await self.db.execute(
            select(Vehicle)
            .where(
                Vehicle.tenant_id == self.tenant_id,
                func.lower(Vehicle.vehicle_number) == vehicle_number.lower(),
            )
            .with_for_update()
        )
        return result.scalars().first()

    async def _vehicle(self, vehicle_id: Optional[uuid.UUID]) -> Optional[Vehicle]:
        if vehicle_id is None:
            return None
        result = await self.db.execute(
            select(Vehicle)
            .where(Vehicle.id == vehicle_id, Vehicle.tenant_id == self.tenant_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _first_linked_order_id(self, vehicle_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.db.execute(
            select(VehicleSalesOrder.sales_order_id)
            .where(
                VehicleSalesOrder.tenant_id == self.tenant_id,
                VehicleSalesOrder.vehicle_id == vehicle_id,
            )
            .order_by(VehicleSalesOrder.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ========================================================================
    # VEHICLE MOVE
    # ========================================================================

    async def _advance_vehicle(
        self,
        vehicle: Vehicle,
        target: VehicleStatus,
        at: datetime,
        outcome: GateActionOutcome,
    ) -> None:
        """Move the vehicle and sync its orders; a rejected move becomes a warning."""
        try:
            changed = transition_vehicle(vehicle, target, at=at)
        except (BackwardTransition, InvalidTransition, UnsupportedSource) as e:
            outcome.warnings.append(e.message)
            logger.warning(f"Gate: vehicle {vehicle.vehicle_number} not moved to {target.value}: {e.message}")
            outcome.vehicle_status = vehicle.status
            return

        outcome.vehicle_status = vehicle.status
        if changed:
            outcome.sync = await self.sync_service.sync_orders_from_vehicle(vehicle.id, vehicle.status)

    # ========================================================================
    # GATE ACTIONS
    # ========================================================================

    async def check_in(self, vehicle_number: str, notes: Optional[str] = None) -> GateActionOutcome:
        """Open a gate pass for an arriving truck and mark its vehicle ARRIVED."""
        vehicle_number = (vehicle_number or "").strip()
        if not vehicle_number:
            raise ValidationFailed("vehicle_number is required")

        now = datetime.now(timezone.utc)
        try:
            vehicle = await self._find_vehicle_by_number(vehicle_number)
            order_id = await self._first_linked_order_id(vehicle.id) if vehicle else None

            gate_pass = GatePass(
                id=uuid.uuid4(),
                tenant_id=self.tenant_id,
                vehicle_number=vehicle.vehicle_number if vehicle else vehicle_number,
                vehicle_id=vehicle.id if vehicle else None,
                sales_order_id=order_id,
                status=GatePassStatus.CHECK_IN.value,
                notes=notes,
                check_in_at=now,
            )
            self.db.add(gate_pass)
            outcome = GateActionOutcome(gate_pass=gate_pass)

            if vehicle is None:
                outcome.warnings.append(f"No vehicle registered as {vehicle_number}")
            elif vehicle.status != VehicleStatus.ARRIVED.value:
                await self._advance_vehicle(vehicle, VehicleStatus.ARRIVED, now, outcome)
            else:
                outcome.vehicle_status = vehicle.status

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(gate_pass)
        logger.info(f"Gate check-in {gate_pass.vehicle_number} (pass {gate_pass.id})")
        return outcome

    async def gate_in(self, pass_id: uuid.UUID) -> GateActionOutcome:
        """CHECK_IN -> GATE_IN; vehicle moves to GATE_IN."""
        now = datetime.now(timezone.utc)
        try:
            gate_pass = await self._require_gate_pass(pass_id)
            if gate_pass.status != GatePassStatus.CHECK_IN.value:
                raise InvalidTransition(
                    f"Gate-in requires CHECK_IN; pass is {gate_pass.status}",
                    details={"gate_pass_id": str(pass_id), "status": gate_pass.status},
                )
            gate_pass.status = GatePassStatus.GATE_IN.value
            gate_pass.gate_in_at = now
            outcome = GateActionOutcome(gate_pass=gate_pass)

            vehicle = await self._vehicle(gate_pass.vehicle_id)
            if vehicle:
                await self._advance_vehicle(vehicle, VehicleStatus.GATE_IN, now, outcome)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(gate_pass)
        logger.info(f"Gate-in {gate_pass.vehicle_number} (pass {gate_pass.id})")
        return outcome

    async def gate_out(self, pass_id: uuid.UUID) -> GateActionOutcome:
        """GATE_IN -> GATE_OUT; vehicle moves to IN_JOURNEY, and so does the pass's order."""
        now = datetime.now(timezone.utc)
        try:
            gate_pass = await self._require_gate_pass(pass_id)
            if gate_pass.status != GatePassStatus.GATE_IN.value:
                raise InvalidTransition(
                    f"Gate-out requires GATE_IN; pass is {gate_pass.status}",
                    details={"gate_pass_id": str(pass_id), "status": gate_pass.status},
                )
            gate_pass.status = GatePassStatus.GATE_OUT.value
            gate_pass.gate_out_at = now
            outcome = GateActionOutcome(gate_pass=gate_pass)

            vehicle = await self._vehicle(gate_pass.vehicle_id)
            if vehicle:
                await self._advance_vehicle(vehicle, VehicleStatus.IN_JOURNEY, now, outcome)

            if gate_pass.sales_order_id:
                await self._order_in_journey(gate_pass.sales_order_id, outcome)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(gate_pass)
        logger.info(f"Gate-out {gate_pass.vehicle_number} (pass {gate_pass.id})")
        return outcome

    async def _order_in_journey(self, order_id: uuid.UUID, outcome: GateActionOutcome) -> None:
        # Covers a pass whose order is not (or no longer) linked to the vehicle
        result = await self.db.execute(
            select(SalesOrder).where(
                SalesOrder.id == order_id,
                SalesOrder.tenant_id == self.tenant_id,
            )
        )
        order = result.scalar_one_or_none()
        if order is None or is_frozen(order.status):
            return
        try:
            assert_forward_order(order.status, SalesOrderStatus.IN_JOURNEY)
        except (BackwardTransition, InvalidTransition, UnsupportedSource) as e:
            outcome.warnings.append(e.message)
            logger.warning(f"Gate-out: SO {order.so_number} not moved: {e.message}")
            return
        order.status = SalesOrderStatus.IN_JOURNEY.value

    # ========================================================================
    # EDIT / DELETE
    # ========================================================================

    async def update_gate_pass(self, pass_id: uuid.UUID, data: GatePassUpdate) -> GatePass:
        """Only notes and the vehicle number are editable."""
        payload = data.model_dump(exclude_unset=True)
        try:
            gate_pass = await self._require_gate_pass(pass_id)
            if "vehicle_number" in payload:
                number = (payload["vehicle_number"] or "").strip()
                if not number:
                    raise ValidationFailed("vehicle_number cannot be empty")
                gate_pass.vehicle_number = number
            if "notes" in payload:
                gate_pass.notes = payload["notes"]
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(gate_pass)
        return gate_pass

    async def delete_gate_pass(self, pass_id: uuid.UUID) -> None:
        """
        Delete a pass that is still CHECK_IN and whose vehicle has not moved past arrival.

        Raises:
            NotFound, InvalidTransition
        """
        try:
            gate_pass = await self._require_gate_pass(pass_id)
            if gate_pass.status != GatePassStatus.CHECK_IN.value:
                raise InvalidTransition(
                    f"Only CHECK_IN passes can be deleted; pass is {gate_pass.status}",
                    details={"gate_pass_id": str(pass_id), "status": gate_pass.status},
                )
            vehicle = await self._vehicle(gate_pass.vehicle_id)
            if vehicle and not status_in(vehicle.status, *DELETABLE_VEHICLE_STATUSES):
                raise InvalidTransition(
                    f"Vehicle {vehicle.vehicle_number} is {vehicle.status}; gate pass can no longer be deleted",
                    details={"vehicle_status": vehicle.status},
                )
            await self.db.delete(gate_pass)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Gate pass {pass_id} deleted")

    async def cancel_gate_pass(self, pass_id: uuid.UUID) -> GatePass:
        """Cancel an open pass. The vehicle is left as it is."""
        try:
            gate_pass = await self._require_gate_pass(pass_id)
            if not status_in(gate_pass.status, GatePassStatus.CHECK_IN, GatePassStatus.GATE_IN):
                raise InvalidTransition(
                    f"Cannot cancel a {gate_pass.status} gate pass",
                    details={"status": gate_pass.status},
                )
            gate_pass.status = GatePassStatus.CANCELLED.value
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(gate_pass)
        return gate_pass
