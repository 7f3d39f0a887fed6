"""
Payment models.

- PaymentRequest: a demand for payment against one order/vehicle pair
- PaymentAllocation: ledger entry assigning bank transaction funds to a request
"""
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Text, Date, DateTime, ForeignKey, Numeric, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from logistics_engine.core.enum_utils import enum_comment
from logistics_engine.database import Base
from logistics_engine.db_types import UUIDType


class PaymentRequestType(str, Enum):
    """What the payment is for."""
    ADVANCE_SHIPPING = "ADVANCE_SHIPPING"
    BALANCE_SHIPPING = "BALANCE_SHIPPING"
    FULL_SHIPPING_CHARGES = "FULL_SHIPPING_CHARGES"
    UNLOADING_CHARGE = "UNLOADING_CHARGE"
    UNLOADING_DETENTION = "UNLOADING_DETENTION"
    MISCELLANEOUS_CHARGES = "MISCELLANEOUS_CHARGES"


class PaymentRequestStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class PaymentRequest(Base):
    """Payment demand. PENDING until fully covered by allocations, then COMPLETED for good."""
    __tablename__ = "payment_requests"
    __table_args__ = (
        Index('ix_payment_requests_vehicle_status', 'tenant_id', 'vehicle_id', 'status'),
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
    sales_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("sales_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vehicles.id", ondelete="CASCADE"),
        nullable=False
    )

    transaction_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment=enum_comment(PaymentRequestType)
    )
    requested_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    beneficiary_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=PaymentRequestStatus.PENDING.value,
        comment=enum_comment(PaymentRequestStatus)
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

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
        return f"<PaymentRequest(type='{self.transaction_type}', amount={self.requested_amount}, status='{self.status}')>"


class PaymentAllocation(Base):
    """Immutable (request, transaction, amount) ledger entry."""
    __tablename__ = "payment_allocations"

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
    payment_request_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("payment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    bank_transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("bank_transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    allocated_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
