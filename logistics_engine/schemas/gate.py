"""Pydantic schemas for gate passes."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from logistics_engine.schemas.base import (
    BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
)
from logistics_engine.schemas.vehicle import SyncResultResponse


class GateCheckInRequest(BaseCreateSchema):
    vehicle_number: str = Field(..., max_length=30)
    notes: Optional[str] = None


class GatePassUpdate(BaseUpdateSchema):
    """Only notes and the vehicle number are editable."""
    vehicle_number: Optional[str] = Field(None, max_length=30)
    notes: Optional[str] = None


class GatePassResponse(BaseResponseSchema):
    id: UUID
    tenant_id: UUID
    vehicle_number: str
    vehicle_id: Optional[UUID] = None
    sales_order_id: Optional[UUID] = None
    status: str
    notes: Optional[str] = None
    check_in_at: datetime
    gate_in_at: Optional[datetime] = None
    gate_out_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class GateActionResult(BaseModel):
    """Gate pass after a gate action, plus what happened to the vehicle."""
    gate_pass: GatePassResponse
    vehicle_status: Optional[str] = None
    sync: Optional[SyncResultResponse] = None
    warnings: List[str] = []
