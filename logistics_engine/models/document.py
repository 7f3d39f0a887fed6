"""Document metadata. File bytes live in external storage; only the pointer is kept here."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from logistics_engine.core.enum_utils import enum_comment
from logistics_engine.database import Base
from logistics_engine.db_types import UUIDType


class DocumentType(str, Enum):
    """Document kinds."""
    POD = "POD"                         # Proof of delivery
    LR_COPY = "LR_COPY"                 # Lorry receipt
    INVOICE_PDF = "INVOICE_PDF"
    VEHICLE_PHOTO = "VEHICLE_PHOTO"
    PAYMENT_PROOF = "PAYMENT_PROOF"


class Document(Base):
    """Uploaded document, optionally attached to a vehicle or an order."""
    __tablename__ = "documents"
    __table_args__ = (
        Index('ix_documents_vehicle_type', 'tenant_id', 'vehicle_id', 'type'),
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
    type: Mapped[str] = mapped_column(String(50), nullable=False, comment=enum_comment(DocumentType))
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    storage_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vehicles.id", ondelete="CASCADE"),
        nullable=True
    )
    sales_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("sales_orders.id", ondelete="CASCADE"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Document(type='{self.type}', file='{self.file_name}')>"
