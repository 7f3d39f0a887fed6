"""
Bank Transaction Service.

Records bank payments (with their payment proof) and reports how much of
each is still free for allocation.
"""
import uuid
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.core.exceptions import Conflict, TransactionNotFound, ValidationFailed
from logistics_engine.models.bank_transaction import BankTransaction
from logistics_engine.models.document import DocumentType
from logistics_engine.models.payment import PaymentAllocation
from logistics_engine.schemas.bank_transaction import BankTransactionCreate, RemainingBalanceResponse
from logistics_engine.services.document_service import DocumentService


logger = logging.getLogger(__name__)


class BankTransactionService:
    """Service for bank transactions."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id
        self.documents = DocumentService(db, tenant_id)

    async def get_transaction(self, transaction_id: uuid.UUID) -> Optional[BankTransaction]:
        result = await self.db.execute(
            select(BankTransaction).where(
                BankTransaction.id == transaction_id,
                BankTransaction.tenant_id == self.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_transaction(self, data: BankTransactionCreate) -> BankTransaction:
        """
        Record a bank transaction and its payment proof.

        Raises:
            ValidationFailed: non-positive amount or empty code
            Conflict: transaction_code already recorded
        """
        code = (data.transaction_code or "").strip()
        if not code:
            raise ValidationFailed("transaction_code is required")
        if data.total_paid_amount is None or data.total_paid_amount <= 0:
            raise ValidationFailed(
                "total_paid_amount must be greater than 0",
                details={"total_paid_amount": str(data.total_paid_amount)},
            )

        try:
            existing = await self.db.execute(
                select(BankTransaction.id).where(
                    BankTransaction.tenant_id == self.tenant_id,
                    BankTransaction.transaction_code == code,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise Conflict(
                    f"Bank transaction {code} already exists",
                    details={"transaction_code": code},
                )

            proof = await self.documents.add_document(
                DocumentType.PAYMENT_PROOF,
                data.payment_proof_file_name,
                data.payment_proof_mime_type,
                storage_path=data.payment_proof_storage_path,
            )

            transaction = BankTransaction(
                id=uuid.uuid4(),
                tenant_id=self.tenant_id,
                transaction_code=code,
                beneficiary_id=data.beneficiary_id,
                total_paid_amount=data.total_paid_amount,
                transaction_date=data.transaction_date,
                payment_document_id=proof.id,
                notes=data.notes,
            )
            self.db.add(transaction)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(transaction)
        logger.info(f"Bank transaction {code} recorded: {transaction.total_paid_amount}")
        return transaction

    async def remaining_balance(self, transaction_id: uuid.UUID) -> RemainingBalanceResponse:
        """total_paid_amount minus everything allocated from it so far."""
        transaction = await self.get_transaction(transaction_id)
        if not transaction:
            raise TransactionNotFound(
                "Bank transaction not found",
                details={"bank_transaction_id": str(transaction_id)},
            )

        result = await self.db.execute(
            select(PaymentAllocation.allocated_amount)
            .where(
                PaymentAllocation.tenant_id == self.tenant_id,
                PaymentAllocation.bank_transaction_id == transaction_id,
            )
        )
        allocated = sum(result.scalars().all(), Decimal("0"))

        return RemainingBalanceResponse(
            bank_transaction_id=transaction.id,
            total_paid_amount=transaction.total_paid_amount,
            allocated_amount=allocated,
            remaining_balance=transaction.total_paid_amount - allocated,
        )
