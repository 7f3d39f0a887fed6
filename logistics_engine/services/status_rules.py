"""
Order and Vehicle Status Rules

This module is the SINGLE SOURCE OF TRUTH for order and vehicle status
transitions. All status changes must go through this module.

Each entity owns one totally-ordered pipeline. A transition is legal when
both statuses are in the pipeline and the target is not earlier than the
current status. Orders also have two frozen statuses (HOLD, DELETED) which
sit outside the pipeline and are only entered or left through the
hold/delete/reactivate operations.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence
import math

from logistics_engine.core.enum_utils import get_enum_value
from logistics_engine.core.exceptions import (
    InvalidTransition, UnsupportedSource, BackwardTransition, FrozenEntity,
)
from logistics_engine.models.sales_order import SalesOrderStatus, OrderField
from logistics_engine.models.vehicle import VehicleStatus


# =============================================================================
# SEQUENCES (Single Source of Truth)
# =============================================================================

@dataclass(frozen=True)
class StatusSequence:
    """Ordered status pipeline with O(1) rank lookup."""
    entity: str
    statuses: Sequence[str]
    frozen: FrozenSet[str] = frozenset()
    rank: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "rank", {s: i for i, s in enumerate(self.statuses)})

    def index_of(self, status: Optional[str]) -> Optional[int]:
        return self.rank.get(status)

    def is_frozen(self, status: Optional[str]) -> bool:
        return status in self.frozen


ORDER_SEQUENCE = StatusSequence(
    entity="sales_order",
    statuses=(
        SalesOrderStatus.INFORMATION_NEEDED.value,
        SalesOrderStatus.ASSIGN_VEHICLE.value,
        SalesOrderStatus.VEHICLE_ASSIGNED.value,
        SalesOrderStatus.ARRIVED.value,
        SalesOrderStatus.GATE_IN.value,
        SalesOrderStatus.LOADING_START.value,
        SalesOrderStatus.LOADING_COMPLETE.value,
        SalesOrderStatus.GATE_OUT.value,
        SalesOrderStatus.IN_JOURNEY.value,
        SalesOrderStatus.COMPLETED.value,
        SalesOrderStatus.TRIP_INVOICED.value,
        SalesOrderStatus.INVOICED.value,
        SalesOrderStatus.CANCELLED.value,
    ),
    frozen=frozenset({SalesOrderStatus.HOLD.value, SalesOrderStatus.DELETED.value}),
)

# TRIP_INVOICED precedes GATE_OUT for vehicles: the trip is billed before the truck leaves
VEHICLE_SEQUENCE = StatusSequence(
    entity="vehicle",
    statuses=(
        VehicleStatus.ASSIGNED.value,
        VehicleStatus.ARRIVED.value,
        VehicleStatus.GATE_IN.value,
        VehicleStatus.LOADING_START.value,
        VehicleStatus.LOADING_COMPLETE.value,
        VehicleStatus.TRIP_INVOICED.value,
        VehicleStatus.GATE_OUT.value,
        VehicleStatus.IN_JOURNEY.value,
        VehicleStatus.COMPLETED.value,
        VehicleStatus.INVOICED.value,
        VehicleStatus.CANCELLED.value,
    ),
)

# Vehicle status -> order status it implies
VEHICLE_TO_ORDER_STATUS: Dict[str, str] = {
    VehicleStatus.ASSIGNED.value: SalesOrderStatus.VEHICLE_ASSIGNED.value,
    VehicleStatus.ARRIVED.value: SalesOrderStatus.ARRIVED.value,
    VehicleStatus.GATE_IN.value: SalesOrderStatus.GATE_IN.value,
    VehicleStatus.LOADING_START.value: SalesOrderStatus.LOADING_START.value,
    VehicleStatus.LOADING_COMPLETE.value: SalesOrderStatus.LOADING_COMPLETE.value,
    VehicleStatus.TRIP_INVOICED.value: SalesOrderStatus.TRIP_INVOICED.value,
    VehicleStatus.GATE_OUT.value: SalesOrderStatus.GATE_OUT.value,
    VehicleStatus.IN_JOURNEY.value: SalesOrderStatus.IN_JOURNEY.value,
    VehicleStatus.COMPLETED.value: SalesOrderStatus.COMPLETED.value,
    VehicleStatus.INVOICED.value: SalesOrderStatus.INVOICED.value,
    VehicleStatus.CANCELLED.value: SalesOrderStatus.CANCELLED.value,
}

# Timestamp stamped the first time a vehicle enters a status
VEHICLE_MILESTONES: Dict[str, str] = {
    VehicleStatus.ARRIVED.value: "check_in_at",
    VehicleStatus.GATE_IN.value: "gate_in_at",
    VehicleStatus.LOADING_START.value: "loading_started_at",
    VehicleStatus.LOADING_COMPLETE.value: "loading_completed_at",
    VehicleStatus.GATE_OUT.value: "gate_out_at",
    VehicleStatus.IN_JOURNEY.value: "gate_out_at",
}


# =============================================================================
# VALIDATION
# =============================================================================

def assert_forward(current_status: Any, next_status: Any, sequence: StatusSequence) -> None:
    """
    Validate a status transition within a sequence. Raises if illegal.

    Same-status transitions are a no-op success. Checks run in order:
    frozen side, unknown target, unknown source, backward move.

    Raises:
        FrozenEntity: either side is a frozen status
        InvalidTransition: target is not in the sequence
        UnsupportedSource: current status is not in the sequence
        BackwardTransition: target is earlier than current
    """
    current = get_enum_value(current_status)
    target = get_enum_value(next_status)
    details = {"entity": sequence.entity, "current_status": current, "target_status": target}

    if sequence.is_frozen(current) or sequence.is_frozen(target):
        raise FrozenEntity(
            f"{sequence.entity} status {current} -> {target} crosses a frozen status; "
            f"use hold/delete/reactivate",
            details=details,
        )

    target_index = sequence.index_of(target)
    if target_index is None:
        raise InvalidTransition(f"Unknown {sequence.entity} status: {target}", details=details)

    if current == target:
        return

    current_index = sequence.index_of(current)
    if current_index is None:
        raise UnsupportedSource(f"Unsupported {sequence.entity} status: {current}", details=details)

    if target_index < current_index:
        raise BackwardTransition(
            f"Cannot move {sequence.entity} from {current} back to {target}",
            details=details,
        )


def can_transition(current_status: Any, next_status: Any, sequence: StatusSequence) -> bool:
    """Check if a transition is allowed."""
    try:
        assert_forward(current_status, next_status, sequence)
    except (FrozenEntity, InvalidTransition, UnsupportedSource, BackwardTransition):
        return False
    return True


def assert_forward_order(current_status: Any, next_status: Any) -> None:
    assert_forward(current_status, next_status, ORDER_SEQUENCE)


def assert_forward_vehicle(current_status: Any, next_status: Any) -> None:
    assert_forward(current_status, next_status, VEHICLE_SEQUENCE)


def is_frozen(order_status: Any) -> bool:
    """True for HOLD and DELETED orders."""
    return ORDER_SEQUENCE.is_frozen(get_enum_value(order_status))


def is_after_loading_complete(order_status: Any) -> bool:
    """True once an order has moved past LOADING_COMPLETE in its pipeline."""
    index = ORDER_SEQUENCE.index_of(get_enum_value(order_status))
    limit = ORDER_SEQUENCE.index_of(SalesOrderStatus.LOADING_COMPLETE.value)
    return index is not None and index > limit


def can_hold_or_delete(order_status: Any) -> bool:
    """Orders may be frozen only up to and including LOADING_COMPLETE."""
    index = ORDER_SEQUENCE.index_of(get_enum_value(order_status))
    return index is not None and not is_after_loading_complete(order_status)


def order_status_for_vehicle(vehicle_status: Any) -> Optional[str]:
    """Order status implied by a vehicle status, or None if unmapped."""
    return VEHICLE_TO_ORDER_STATUS.get(get_enum_value(vehicle_status))


def transition_vehicle(vehicle, new_status: Any, at: Optional[datetime] = None) -> bool:
    """
    Move a vehicle forward and stamp the milestone timestamp if unset.

    Returns True if the status actually changed.
    """
    target = get_enum_value(new_status)
    assert_forward_vehicle(vehicle.status, target)
    changed = vehicle.status != target
    now = at or datetime.now(timezone.utc)
    milestone = VEHICLE_MILESTONES.get(target)
    if milestone and getattr(vehicle, milestone) is None:
        setattr(vehicle, milestone, now)
    vehicle.status = target
    return changed


# =============================================================================
# ELIGIBILITY
# =============================================================================

# Fields an order needs before it can be dispatched
ELIGIBILITY_FIELDS: List[OrderField] = [
    OrderField.SO_NUMBER,
    OrderField.SO_CASES,
    OrderField.CASE_LOT,
    OrderField.TOWN_NAME,
    OrderField.PIN_CODE,
    OrderField.REQUESTED_TRUCK_SIZE,
    OrderField.REQUESTED_TRUCK_TYPE,
]


def _read(candidate: Any, name: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(name)
    return getattr(candidate, name, None)


def has_value(value: Any) -> bool:
    """Numbers count when finite and > 0; strings when non-empty after trimming."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return math.isfinite(value) and value > 0
    if isinstance(value, str):
        return bool(value.strip())
    return False


def missing_eligibility_fields(candidate: Any) -> List[OrderField]:
    """Eligibility fields absent from a record (dict or ORM object)."""
    return [f for f in ELIGIBILITY_FIELDS if not has_value(_read(candidate, f.value))]


def derive_status(candidate: Any) -> SalesOrderStatus:
    """ASSIGN_VEHICLE when every eligibility field is present, else INFORMATION_NEEDED."""
    if missing_eligibility_fields(candidate):
        return SalesOrderStatus.INFORMATION_NEEDED
    return SalesOrderStatus.ASSIGN_VEHICLE


def auto_advance(order) -> bool:
    """
    Promote an INFORMATION_NEEDED order to ASSIGN_VEHICLE once it is complete.

    Only this one direction; an order past dispatch-readiness is left alone.
    Returns True if the status changed.
    """
    if order.status != SalesOrderStatus.INFORMATION_NEEDED.value:
        return False
    if derive_status(order) != SalesOrderStatus.ASSIGN_VEHICLE:
        return False
    order.status = SalesOrderStatus.ASSIGN_VEHICLE.value
    return True
