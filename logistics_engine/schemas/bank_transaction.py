"""Pydantic schemas for bank transactions."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from logistics_engine.schemas.base import BaseResponseSchema, BaseCreateSchema


class BankTransactionCreate(BaseCreateSchema):
    transaction_code: str = Field(..., max_length=100)
    beneficiary_id: UUID
    total_paid_amount: Decimal
    transaction_date: date
    payment_proof_file_name: str = Field(..., max_length=255)
    payment_proof_mime_type: str = Field("application/pdf", max_length=100)
    payment_proof_storage_path: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class BankTransactionResponse(BaseResponseSchema):
    id: UUID
    tenant_id: UUID
    transaction_code: str
    beneficiary_id: UUID
    total_paid_amount: Decimal
    transaction_date: date
    payment_document_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RemainingBalanceResponse(BaseModel):
    bank_transaction_id: UUID
    total_paid_amount: Decimal
    allocated_amount: Decimal
    remaining_balance: Decimal
