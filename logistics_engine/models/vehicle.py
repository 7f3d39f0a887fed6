"""
Vehicle models.

- Vehicle: a truck/driver placement with its own status pipeline
- VehicleSalesOrder: link between a vehicle and the orders it carries
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Numeric, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from logistics_engine.core.enum_utils import enum_comment
from logistics_engine.database import Base
from logistics_engine.db_types import UUIDType


# ============================================================================
# ENUMS
# ============================================================================

class VehicleStatus(str, Enum):
    """Vehicle lifecycle status."""
    ASSIGNED = "ASSIGNED"
    ARRIVED = "ARRIVED"
    GATE_IN = "GATE_IN"
    LOADING_START = "LOADING_START"
    LOADING_COMPLETE = "LOADING_COMPLETE"
    TRIP_INVOICED = "TRIP_INVOICED"     # Invoiced before leaving the gate
    GATE_OUT = "GATE_OUT"
    IN_JOURNEY = "IN_JOURNEY"
    COMPLETED = "COMPLETED"
    INVOICED = "INVOICED"
    CANCELLED = "CANCELLED"


class VehicleInvoiceStatus(str, Enum):
    """Billing state of the vehicle's trip."""
    NONE = "NONE"
    PENDING = "PENDING"
    INVOICED = "INVOICED"
    PAID = "PAID"


# ============================================================================
# MODELS
# ============================================================================

class Vehicle(Base):
    """Truck and driver placed against one trip."""
    __tablename__ = "vehicles"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'vehicle_number', name='uq_vehicles_tenant_number'),
        Index('ix_vehicles_tenant_status', 'tenant_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )

    vehicle_number: Mapped[str] = mapped_column(String(30), nullable=False)
    driver_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    driver_phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    placed_truck_size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    placed_truck_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=VehicleStatus.ASSIGNED.value,
        comment=enum_comment(VehicleStatus),
    )
    invoice_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=VehicleInvoiceStatus.NONE.value,
        comment=enum_comment(VehicleInvoiceStatus),
    )
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)

    # Financials
    vehicle_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    vehicle_expense: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    profit: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)

    # Loading / unloading
    loading_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    has_unloading_charge: Mapped[bool] = mapped_column(Boolean, default=False)
    location_reached_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    unloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    waiting_time_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Milestones
    check_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    gate_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    loading_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    loading_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    gate_out_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Vehicle(number='{self.vehicle_number}', status='{self.status}')>"


class VehicleSalesOrder(Base):
    """An order carried by a vehicle. An order rides on at most one vehicle."""
    __tablename__ = "vehicle_sales_orders"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'sales_order_id', name='uq_vehicle_sales_orders_order'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vehicles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sales_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("sales_orders.id", ondelete="CASCADE"),
        nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
