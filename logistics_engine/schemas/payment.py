"""Pydantic schemas for payment requests and allocations."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from logistics_engine.models.payment import PaymentRequestType
from logistics_engine.schemas.base import BaseResponseSchema, BaseCreateSchema


class PaymentRequestCreate(BaseCreateSchema):
    sales_order_id: UUID
    vehicle_id: UUID
    transaction_type: PaymentRequestType
    requested_amount: Decimal = Field(..., gt=0)
    beneficiary_id: UUID
    notes: Optional[str] = None
    # Detention only
    location_reached_at: Optional[datetime] = None
    unloaded_at: Optional[datetime] = None


class BeneficiaryUpdate(BaseModel):
    beneficiary_id: UUID


class TransactionLeg(BaseModel):
    """One bank transaction offered to a request. Without amount, its whole remaining balance is offered."""
    bank_transaction_id: UUID
    amount: Optional[Decimal] = Field(None, gt=0)


class LinkTransactionsRequest(BaseModel):
    transactions: List[TransactionLeg]


class BatchAllocation(BaseModel):
    bank_transaction_id: UUID
    amount: Decimal = Field(..., gt=0)


class CompleteBatchRequest(BaseModel):
    payment_request_ids: List[UUID]
    allocations: List[BatchAllocation]

    @model_validator(mode='after')
    def unique_request_ids(self):
        if len(set(self.payment_request_ids)) != len(self.payment_request_ids):
            raise ValueError("payment_request_ids must be unique")
        return self


class PaymentAllocationResponse(BaseResponseSchema):
    id: UUID
    payment_request_id: UUID
    bank_transaction_id: UUID
    allocated_amount: Decimal
    created_at: datetime


class PaymentRequestResponse(BaseResponseSchema):
    id: UUID
    tenant_id: UUID
    sales_order_id: UUID
    vehicle_id: UUID
    transaction_type: str
    requested_amount: Decimal
    beneficiary_id: UUID
    status: str
    notes: Optional[str] = None
    payment_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime


class PaymentRequestDetail(BaseModel):
    """Request with its ledger position."""
    request: PaymentRequestResponse
    allocations: List[PaymentAllocationResponse] = []
    allocated_amount: Decimal
    remaining_amount: Decimal
    completion_outcome: Optional[str] = None


class EligibleTransaction(BaseModel):
    id: UUID
    transaction_code: str
    beneficiary_id: UUID
    transaction_date: date
    total_paid_amount: Decimal
    allocated_amount: Decimal
    remaining_balance: Decimal


class BatchCompletionResult(BaseModel):
    requests: List[PaymentRequestDetail]
    completion_outcomes: List[str] = []
