"""
Status Sync Service.

Propagates a vehicle status change to every order linked to the vehicle.
Runs inside the caller's unit of work and never commits.

Propagation is best-effort per order: a frozen order or one that cannot
legally move to the implied status (typically because it is already
further along) is skipped and reported in the outcome list, and the
sibling orders still move.
"""
import uuid
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.core.enum_utils import get_enum_value
from logistics_engine.core.exceptions import (
    InvalidTransition, UnsupportedSource, BackwardTransition
)
from logistics_engine.models.sales_order import SalesOrder
from logistics_engine.models.vehicle import VehicleSalesOrder
from logistics_engine.services.profit import apply_order_profit
from logistics_engine.services.status_rules import (
    assert_forward_order, is_frozen, order_status_for_vehicle
)


logger = logging.getLogger(__name__)


class SyncOutcome(str, Enum):
    UPDATED = "UPDATED"
    UNCHANGED = "UNCHANGED"
    SKIPPED_FROZEN = "SKIPPED_FROZEN"
    SKIPPED_REJECTED = "SKIPPED_REJECTED"


@dataclass
class OrderSyncOutcome:
    """What happened to one linked order."""
    sales_order_id: uuid.UUID
    so_number: str
    previous_status: str
    target_status: str
    outcome: SyncOutcome
    reason: Optional[str] = None


@dataclass
class SyncResult:
    vehicle_id: uuid.UUID
    vehicle_status: str
    updated_count: int = 0
    outcomes: List[OrderSyncOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> List[OrderSyncOutcome]:
        return [
            o for o in self.outcomes
            if o.outcome in (SyncOutcome.SKIPPED_FROZEN, SyncOutcome.SKIPPED_REJECTED)
        ]


class StatusSyncService:
    """Moves linked orders along with their vehicle."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def _linked_orders(self, vehicle_id: uuid.UUID) -> List[SalesOrder]:
        result = await self.db.execute(
            select(SalesOrder)
            .join(VehicleSalesOrder, VehicleSalesOrder.sales_order_id == SalesOrder.id)
            .where(
                VehicleSalesOrder.tenant_id == self.tenant_id,
                VehicleSalesOrder.vehicle_id == vehicle_id,
                SalesOrder.tenant_id == self.tenant_id,
            )
            .order_by(SalesOrder.so_number)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def sync_orders_from_vehicle(
        self,
        vehicle_id: uuid.UUID,
        vehicle_status,
    ) -> SyncResult:
        """
        Move every order linked to the vehicle to the status the vehicle implies.

        Raises:
            InvalidTransition: the vehicle status has no order counterpart
        """
        vehicle_status = get_enum_value(vehicle_status)
        target = order_status_for_vehicle(vehicle_status)
        if target is None:
            raise InvalidTransition(
                f"Vehicle status {vehicle_status} has no order status mapping",
                details={"vehicle_id": str(vehicle_id), "vehicle_status": vehicle_status},
            )

        sync = SyncResult(vehicle_id=vehicle_id, vehicle_status=vehicle_status)

        for order in await self._linked_orders(vehicle_id):
            previous = order.status

            if is_frozen(previous):
                sync.outcomes.append(OrderSyncOutcome(
                    order.id, order.so_number, previous, target,
                    SyncOutcome.SKIPPED_FROZEN, reason=f"order is {previous}",
                ))
                logger.warning(
                    f"Sync skipped SO {order.so_number}: frozen ({previous}), "
                    f"vehicle {vehicle_id} -> {vehicle_status}"
                )
                continue

            try:
                assert_forward_order(previous, target)
            except (BackwardTransition, InvalidTransition, UnsupportedSource) as e:
                sync.outcomes.append(OrderSyncOutcome(
                    order.id, order.so_number, previous, target,
                    SyncOutcome.SKIPPED_REJECTED, reason=e.message,
                ))
                logger.warning(f"Sync skipped SO {order.so_number}: {e.message}")
                continue

            if previous == target:
                sync.outcomes.append(OrderSyncOutcome(
                    order.id, order.so_number, previous, target, SyncOutcome.UNCHANGED,
                ))
                continue

            order.status = target
            await apply_order_profit(self.db, order)
            sync.updated_count += 1
            sync.outcomes.append(OrderSyncOutcome(
                order.id, order.so_number, previous, target, SyncOutcome.UPDATED,
            ))
            logger.info(f"SO {order.so_number}: {previous} -> {target} (vehicle {vehicle_id})")

        await self.db.flush()
        return sync
