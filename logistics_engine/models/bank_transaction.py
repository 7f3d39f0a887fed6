"""Bank transaction model: one recorded payment instrument whose funds feed payment requests."""
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, Text, Date, DateTime, ForeignKey, Numeric, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from logistics_engine.database import Base
from logistics_engine.db_types import UUIDType


class BankTransaction(Base):
    """
    Recorded bank payment.

    Funds may be split over many payment requests; the allocations drawn
    from one transaction never exceed total_paid_amount.
    """
    __tablename__ = "bank_transactions"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'transaction_code', name='uq_bank_transactions_tenant_code'),
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

    transaction_code: Mapped[str] = mapped_column(String(100), nullable=False)
    beneficiary_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)
    total_paid_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    payment_document_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
        return f"<BankTransaction(code='{self.transaction_code}', amount={self.total_paid_amount})>"
