"""Bank Transaction API Endpoints."""
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from logistics_engine.api.deps import DB, FinanceCaller
from logistics_engine.schemas.bank_transaction import (
    BankTransactionCreate, BankTransactionResponse, RemainingBalanceResponse,
)
from logistics_engine.services.bank_transaction_service import BankTransactionService

router = APIRouter()


@router.post(
    "",
    response_model=BankTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record Bank Transaction"
)
async def create_bank_transaction(data: BankTransactionCreate, db: DB, caller: FinanceCaller):
    """Record a bank payment together with its payment proof."""
    service = BankTransactionService(db, caller.tenant_id)
    return await service.create_transaction(data)


@router.get(
    "/{transaction_id}",
    response_model=BankTransactionResponse,
    summary="Get Bank Transaction"
)
async def get_bank_transaction(transaction_id: UUID, db: DB, caller: FinanceCaller):
    service = BankTransactionService(db, caller.tenant_id)
    transaction = await service.get_transaction(transaction_id)
    if not transaction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Bank transaction not found"
        )
    return transaction


@router.get(
    "/{transaction_id}/remaining-balance",
    response_model=RemainingBalanceResponse,
    summary="Get Remaining Balance"
)
async def get_remaining_balance(transaction_id: UUID, db: DB, caller: FinanceCaller):
    service = BankTransactionService(db, caller.tenant_id)
    return await service.remaining_balance(transaction_id)
