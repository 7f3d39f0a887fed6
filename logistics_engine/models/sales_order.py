"""
Sales Order model.

A sales order is a customer shipment request. It moves through a fixed
status pipeline (see services/status_rules.py) and may be frozen on
HOLD or DELETED. Orders are never removed from the table.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict

from sqlalchemy import (
    String, Boolean, DateTime, Integer, Numeric, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from logistics_engine.core.enum_utils import enum_comment
from logistics_engine.database import Base
from logistics_engine.db_types import UUIDType, JSONType


# ============================================================================
# ENUMS
# ============================================================================

class SalesOrderStatus(str, Enum):
    """Sales order lifecycle status."""
    INFORMATION_NEEDED = "INFORMATION_NEEDED"   # Eligibility fields incomplete
    ASSIGN_VEHICLE = "ASSIGN_VEHICLE"           # Ready for dispatch
    VEHICLE_ASSIGNED = "VEHICLE_ASSIGNED"
    ARRIVED = "ARRIVED"
    GATE_IN = "GATE_IN"
    LOADING_START = "LOADING_START"
    LOADING_COMPLETE = "LOADING_COMPLETE"
    GATE_OUT = "GATE_OUT"
    IN_JOURNEY = "IN_JOURNEY"
    COMPLETED = "COMPLETED"
    TRIP_INVOICED = "TRIP_INVOICED"
    INVOICED = "INVOICED"
    CANCELLED = "CANCELLED"
    # Frozen - entered only through hold/delete, left only through reactivate
    HOLD = "HOLD"
    DELETED = "DELETED"


class OrderField(str, Enum):
    """Order attributes whose last writer is tracked."""
    SO_NUMBER = "so_number"
    SO_CASES = "so_cases"
    CASE_LOT = "case_lot"
    TOWN_NAME = "town_name"
    PIN_CODE = "pin_code"
    REQUESTED_TRUCK_SIZE = "requested_truck_size"
    REQUESTED_TRUCK_TYPE = "requested_truck_type"
    TRIP_REFERENCE_NO = "trip_reference_no"
    CUSTOMER_NAME = "customer_name"
    FREIGHT_COST = "freight_cost"


class FieldSource(str, Enum):
    """Who last wrote an order field."""
    MANUAL = "MANUAL"
    IMPORT = "IMPORT"
    EXTERNAL_CAPTURE = "EXTERNAL_CAPTURE"


# ============================================================================
# MODELS
# ============================================================================

class SalesOrder(Base):
    """Customer shipment request."""
    __tablename__ = "sales_orders"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'so_number', name='uq_sales_orders_tenant_so_number'),
        Index('ix_sales_orders_tenant_status', 'tenant_id', 'status'),
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

    so_number: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=SalesOrderStatus.INFORMATION_NEEDED.value,
        comment=enum_comment(SalesOrderStatus),
    )
    previous_status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Status held before HOLD/DELETED"
    )

    # Eligibility fields
    so_cases: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    case_lot: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    town_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    pin_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    requested_truck_size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    requested_truck_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    trip_reference_no: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Financials
    freight_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    profit: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)

    # Provenance: OrderField value -> FieldSource value
    field_source: Mapped[Dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)
    created_from_import: Mapped[bool] = mapped_column(Boolean, default=False)

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
        return f"<SalesOrder(so_number='{self.so_number}', status='{self.status}')>"
