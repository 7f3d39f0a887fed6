"""Pydantic schemas for vehicles, assignments and vehicle documents."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from logistics_engine.core.enum_utils import get_enum_value
from logistics_engine.models.document import DocumentType
from logistics_engine.models.vehicle import VehicleStatus, VehicleInvoiceStatus
from logistics_engine.schemas.base import (
    BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
)


class VehicleAssignRequest(BaseCreateSchema):
    """Assign orders to a new vehicle, or to an existing one via vehicle_id."""
    sales_order_ids: List[UUID]
    vehicle_id: Optional[UUID] = None
    vehicle_number: Optional[str] = Field(None, max_length=30)
    driver_name: Optional[str] = Field(None, max_length=200)
    driver_phone_number: Optional[str] = Field(None, max_length=20)
    placed_truck_size: Optional[str] = Field(None, max_length=50)
    placed_truck_type: Optional[str] = Field(None, max_length=50)
    vehicle_amount: Optional[Decimal] = Field(None, gt=0)
    vehicle_expense: Optional[Decimal] = Field(None, ge=0)
    location: Optional[str] = Field(None, max_length=200)


class VehicleUpdate(BaseUpdateSchema):
    vehicle_number: Optional[str] = Field(None, max_length=30)
    driver_name: Optional[str] = Field(None, max_length=200)
    driver_phone_number: Optional[str] = Field(None, max_length=20)
    placed_truck_size: Optional[str] = Field(None, max_length=50)
    placed_truck_type: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=200)
    status: Optional[VehicleStatus] = None
    loading_quantity: Optional[Decimal] = Field(None, ge=0)
    vehicle_amount: Optional[Decimal] = Field(None, ge=0)
    vehicle_expense: Optional[Decimal] = Field(None, ge=0)
    is_paid: Optional[bool] = None
    invoice_status: Optional[VehicleInvoiceStatus] = None
    profit: Optional[Decimal] = None


class VehicleDocumentCreate(BaseCreateSchema):
    """Metadata for a file already stored externally."""
    type: DocumentType
    file_name: str = Field(..., max_length=255)
    mime_type: str = Field("application/pdf", max_length=100)
    storage_path: Optional[str] = Field(None, max_length=500)


class DocumentResponse(BaseResponseSchema):
    id: UUID
    type: str
    file_name: str
    mime_type: str
    storage_path: Optional[str] = None
    vehicle_id: Optional[UUID] = None
    sales_order_id: Optional[UUID] = None
    created_at: datetime


class VehicleResponse(BaseResponseSchema):
    id: UUID
    tenant_id: UUID
    vehicle_number: str
    driver_name: Optional[str] = None
    driver_phone_number: Optional[str] = None
    placed_truck_size: Optional[str] = None
    placed_truck_type: Optional[str] = None
    location: Optional[str] = None
    status: str
    invoice_status: str
    is_paid: bool = False
    vehicle_amount: Optional[Decimal] = None
    vehicle_expense: Optional[Decimal] = None
    profit: Optional[Decimal] = None
    loading_quantity: Optional[Decimal] = None
    has_unloading_charge: bool = False
    location_reached_at: Optional[datetime] = None
    unloaded_at: Optional[datetime] = None
    waiting_time_hours: Optional[Decimal] = None
    check_in_at: Optional[datetime] = None
    gate_in_at: Optional[datetime] = None
    loading_started_at: Optional[datetime] = None
    loading_completed_at: Optional[datetime] = None
    gate_out_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class VehicleDetailResponse(VehicleResponse):
    sales_order_ids: List[UUID] = []
    documents: List[DocumentResponse] = []


class OrderSyncOutcomeResponse(BaseResponseSchema):
    sales_order_id: UUID
    so_number: str
    previous_status: str
    target_status: str
    outcome: str
    reason: Optional[str] = None

    @field_validator('outcome', mode='before')
    @classmethod
    def outcome_value(cls, v):
        return get_enum_value(v)


class SyncResultResponse(BaseResponseSchema):
    vehicle_id: UUID
    vehicle_status: str
    updated_count: int
    outcomes: List[OrderSyncOutcomeResponse] = []


class VehicleUpdateResult(BaseModel):
    vehicle: VehicleResponse
    sync: Optional[SyncResultResponse] = None


class VehicleAssignResult(BaseModel):
    vehicle: VehicleResponse
    sales_order_ids: List[UUID]
    created: bool


class DocumentAttachResult(BaseModel):
    document: DocumentResponse
    completion_outcome: Optional[str] = None
