"""
Payment API Endpoints.

- Payment requests against vehicles
- Linking bank transactions to a request
- Batch completion of same-beneficiary requests
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from logistics_engine.api.deps import DB, FinanceCaller
from logistics_engine.schemas.payment import (
    PaymentRequestCreate, PaymentRequestResponse, PaymentRequestDetail,
    BeneficiaryUpdate, EligibleTransaction, LinkTransactionsRequest,
    CompleteBatchRequest, BatchCompletionResult,
)
from logistics_engine.services.payment_service import PaymentService

router = APIRouter()


# ============================================================================
# PAYMENT REQUESTS
# ============================================================================

@router.post(
    "/requests",
    response_model=PaymentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Payment Request"
)
async def create_payment_request(data: PaymentRequestCreate, db: DB, caller: FinanceCaller):
    service = PaymentService(db, caller.tenant_id)
    return await service.create_request(data)


@router.get(
    "/requests/{request_id}",
    response_model=PaymentRequestDetail,
    summary="Get Payment Request"
)
async def get_payment_request(request_id: UUID, db: DB, caller: FinanceCaller):
    """Request with its allocations and outstanding amount."""
    service = PaymentService(db, caller.tenant_id)
    return await service.get_request_detail(request_id)


@router.patch(
    "/requests/{request_id}/beneficiary",
    response_model=PaymentRequestResponse,
    summary="Change Beneficiary"
)
async def update_beneficiary(request_id: UUID, data: BeneficiaryUpdate, db: DB, caller: FinanceCaller):
    service = PaymentService(db, caller.tenant_id)
    return await service.update_beneficiary(request_id, data.beneficiary_id)


# ============================================================================
# ALLOCATION
# ============================================================================

@router.get(
    "/requests/{request_id}/eligible-transactions",
    response_model=List[EligibleTransaction],
    summary="List Eligible Transactions"
)
async def list_eligible_transactions(request_id: UUID, db: DB, caller: FinanceCaller):
    """Same-beneficiary transactions with a remaining balance."""
    service = PaymentService(db, caller.tenant_id)
    return await service.eligible_transactions(request_id)


@router.post(
    "/requests/{request_id}/link-transactions",
    response_model=PaymentRequestDetail,
    summary="Link Transactions"
)
async def link_transactions(request_id: UUID, data: LinkTransactionsRequest, db: DB, caller: FinanceCaller):
    service = PaymentService(db, caller.tenant_id)
    return await service.link_transactions(request_id, data.transactions)


@router.post(
    "/complete-batch",
    response_model=BatchCompletionResult,
    summary="Complete Payment Requests In Batch"
)
async def complete_batch(data: CompleteBatchRequest, db: DB, caller: FinanceCaller):
    """Complete several requests at once; allocations must cover them exactly."""
    service = PaymentService(db, caller.tenant_id)
    return await service.complete_batch(data.payment_request_ids, data.allocations)
