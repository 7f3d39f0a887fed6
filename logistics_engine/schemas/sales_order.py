"""Pydantic schemas for sales orders."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, Field

from logistics_engine.models.sales_order import SalesOrderStatus
from logistics_engine.schemas.base import (
    BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
)


class SalesOrderFields(BaseModel):
    """Writable order attributes shared by create, import and capture."""
    so_cases: Optional[int] = Field(None, ge=0)
    case_lot: Optional[str] = Field(None, max_length=100)
    town_name: Optional[str] = Field(None, max_length=200)
    pin_code: Optional[str] = Field(None, max_length=20)
    requested_truck_size: Optional[str] = Field(None, max_length=50)
    requested_truck_type: Optional[str] = Field(None, max_length=50)
    trip_reference_no: Optional[str] = Field(None, max_length=100)
    customer_name: Optional[str] = Field(None, max_length=200)
    freight_cost: Optional[Decimal] = Field(None, ge=0)


class SalesOrderCreate(SalesOrderFields, BaseCreateSchema):
    """Manual order creation. Status is derived, never supplied."""
    so_number: str = Field(..., max_length=100)


class SalesOrderUpdate(BaseUpdateSchema):
    """Partial update. Status is optional; without it the order may auto-advance."""
    so_number: Optional[str] = Field(None, max_length=100)
    so_cases: Optional[int] = Field(None, ge=0)
    case_lot: Optional[str] = Field(None, max_length=100)
    town_name: Optional[str] = Field(None, max_length=200)
    pin_code: Optional[str] = Field(None, max_length=20)
    requested_truck_size: Optional[str] = Field(None, max_length=50)
    requested_truck_type: Optional[str] = Field(None, max_length=50)
    trip_reference_no: Optional[str] = Field(None, max_length=100)
    customer_name: Optional[str] = Field(None, max_length=200)
    freight_cost: Optional[Decimal] = Field(None, ge=0)
    profit: Optional[Decimal] = None
    status: Optional[SalesOrderStatus] = None


class SalesOrderImportRow(SalesOrderFields, BaseCreateSchema):
    """One already-parsed spreadsheet row."""
    so_number: str = Field(..., max_length=100)


class SalesOrderImportRequest(BaseModel):
    rows: List[SalesOrderImportRow]


class SalesOrderCapture(SalesOrderFields, BaseCreateSchema):
    """Fields extracted by the external capture pipeline."""
    so_number: str = Field(..., max_length=100)


class SalesOrderResponse(BaseResponseSchema):
    id: UUID
    tenant_id: UUID
    so_number: str
    status: str
    previous_status: Optional[str] = None
    so_cases: Optional[int] = None
    case_lot: Optional[str] = None
    town_name: Optional[str] = None
    pin_code: Optional[str] = None
    requested_truck_size: Optional[str] = None
    requested_truck_type: Optional[str] = None
    trip_reference_no: Optional[str] = None
    customer_name: Optional[str] = None
    freight_cost: Optional[Decimal] = None
    profit: Optional[Decimal] = None
    field_source: Dict[str, str] = {}
    created_from_import: bool = False
    created_at: datetime
    updated_at: datetime


class ImportRowError(BaseModel):
    row: int
    so_number: Optional[str] = None
    error: str


class SalesOrderImportResult(BaseModel):
    created: int = 0
    updated: int = 0
    failed: List[ImportRowError] = []
