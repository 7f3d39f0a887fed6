"""
Document Service.

Gateway to document metadata. File bytes are held by external storage;
the engine only asks whether a document of a given type exists for a
vehicle or order.
"""
import uuid
import logging
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.core.enum_utils import get_enum_value
from logistics_engine.core.exceptions import ValidationFailed
from logistics_engine.models.document import Document, DocumentType


logger = logging.getLogger(__name__)


class DocumentService:
    """Service for document lookups and attachment."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def document_exists(
        self,
        document_type: DocumentType,
        vehicle_id: Optional[uuid.UUID] = None,
        sales_order_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Whether a document of this type is attached to the vehicle or order."""
        if vehicle_id is None and sales_order_id is None:
            raise ValueError("vehicle_id or sales_order_id is required")

        query = select(func.count(Document.id)).where(
            Document.tenant_id == self.tenant_id,
            Document.type == get_enum_value(document_type),
        )
        if vehicle_id is not None:
            query = query.where(Document.vehicle_id == vehicle_id)
        if sales_order_id is not None:
            query = query.where(Document.sales_order_id == sales_order_id)

        result = await self.db.execute(query)
        return (result.scalar() or 0) > 0

    async def missing_types(
        self,
        vehicle_id: uuid.UUID,
        document_types: List[DocumentType],
    ) -> List[DocumentType]:
        """Which of the given document types the vehicle lacks."""
        missing = []
        for document_type in document_types:
            if not await self.document_exists(document_type, vehicle_id=vehicle_id):
                missing.append(document_type)
        return missing

    async def add_document(
        self,
        document_type: DocumentType,
        file_name: str,
        mime_type: str,
        vehicle_id: Optional[uuid.UUID] = None,
        sales_order_id: Optional[uuid.UUID] = None,
        storage_path: Optional[str] = None,
    ) -> Document:
        """Record document metadata. Caller owns the commit."""
        if not file_name or not file_name.strip():
            raise ValidationFailed("file_name is required")

        document = Document(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            type=get_enum_value(document_type),
            file_name=file_name.strip(),
            mime_type=mime_type,
            storage_path=storage_path,
            vehicle_id=vehicle_id,
            sales_order_id=sales_order_id,
        )
        self.db.add(document)
        await self.db.flush()
        logger.info(f"Document {document.type} {document.id} recorded (vehicle={vehicle_id})")
        return document

    async def list_for_vehicle(self, vehicle_id: uuid.UUID) -> List[Document]:
        result = await self.db.execute(
            select(Document)
            .where(
                Document.tenant_id == self.tenant_id,
                Document.vehicle_id == vehicle_id,
            )
            .order_by(Document.created_at)
        )
        return list(result.scalars().all())
