"""Gate pass model: one physical visit of a vehicle to the facility."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from logistics_engine.core.enum_utils import enum_comment
from logistics_engine.database import Base
from logistics_engine.db_types import UUIDType


class GatePassStatus(str, Enum):
    """Gate pass status."""
    CHECK_IN = "CHECK_IN"
    GATE_IN = "GATE_IN"
    GATE_OUT = "GATE_OUT"
    CANCELLED = "CANCELLED"


class GatePass(Base):
    """
    Gate visit log.

    Vehicle and order links are optional: a truck may be checked in before
    it is known to the back office.
    """
    __tablename__ = "gate_passes"
    __table_args__ = (
        Index('ix_gate_passes_vehicle_number', 'tenant_id', 'vehicle_number'),
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
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vehicles.id", ondelete="SET NULL"),
        nullable=True
    )
    sales_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("sales_orders.id", ondelete="SET NULL"),
        nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=GatePassStatus.CHECK_IN.value,
        comment=enum_comment(GatePassStatus)
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    check_in_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    gate_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
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
        return f"<GatePass(vehicle='{self.vehicle_number}', status='{self.status}')>"
