"""
Payment Service - payment requests and the allocation ledger.

Handles:
- Payment request creation with per-type ceilings and document preconditions
- Linking bank transactions to a request (partial fill, multi-transaction)
- Batch completion of several requests against one set of transactions
- Completion of requests and the resulting vehicle completion check

Ledger invariants:
- Per request: sum of allocations <= requested_amount
- Per bank transaction: sum of allocations <= total_paid_amount
- A request becomes COMPLETED exactly once, when fully allocated
"""
import uuid
import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.config import settings
from logistics_engine.core.exceptions import (
    AllocationExceedsRequest, AlreadyCompleted, BeneficiaryMismatch, NotFound,
    PreconditionNotMet, TransactionExhausted, TransactionNotFound, ValidationFailed,
)
from logistics_engine.models.bank_transaction import BankTransaction
from logistics_engine.models.document import DocumentType
from logistics_engine.models.payment import (
    PaymentRequest, PaymentAllocation, PaymentRequestStatus, PaymentRequestType
)
from logistics_engine.models.sales_order import SalesOrder
from logistics_engine.models.vehicle import Vehicle, VehicleSalesOrder
from logistics_engine.schemas.payment import (
    PaymentRequestCreate, TransactionLeg, BatchAllocation,
    PaymentRequestResponse, PaymentAllocationResponse, PaymentRequestDetail,
    EligibleTransaction, BatchCompletionResult,
)
from logistics_engine.services.document_service import DocumentService
from logistics_engine.services.vehicle_completion_service import (
    VehicleCompletionService, SETTLEMENT_TYPES
)


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HOURS = Decimal("0.01")

# Types that together may not exceed the agreed vehicle amount
SHIPPING_TYPES = [
    PaymentRequestType.ADVANCE_SHIPPING.value,
    PaymentRequestType.BALANCE_SHIPPING.value,
    PaymentRequestType.FULL_SHIPPING_CHARGES.value,
]


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PaymentService:
    """Service for payment requests and allocations."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id
        self.documents = DocumentService(db, tenant_id)
        self.completion = VehicleCompletionService(db, tenant_id)

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def get_request(self, request_id: uuid.UUID, for_update: bool = False) -> Optional[PaymentRequest]:
        query = select(PaymentRequest).where(
            PaymentRequest.id == request_id,
            PaymentRequest.tenant_id == self.tenant_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _require_request(self, request_id: uuid.UUID) -> PaymentRequest:
        request = await self.get_request(request_id, for_update=True)
        if not request:
            raise NotFound("Payment request not found", details={"payment_request_id": str(request_id)})
        return request

    async def _allocations_for_requests(self, request_ids: Iterable[uuid.UUID]) -> List[PaymentAllocation]:
        result = await self.db.execute(
            select(PaymentAllocation)
            .where(
                PaymentAllocation.tenant_id == self.tenant_id,
                PaymentAllocation.payment_request_id.in_(list(request_ids)),
            )
            .order_by(PaymentAllocation.created_at)
        )
        return list(result.scalars().all())

    async def allocated_by_transaction(self, transaction_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Decimal]:
        """Sum of allocations already drawn from each transaction."""
        transaction_ids = list(transaction_ids)
        totals: Dict[uuid.UUID, Decimal] = {tid: ZERO for tid in transaction_ids}
        if not transaction_ids:
            return totals
        result = await self.db.execute(
            select(PaymentAllocation.bank_transaction_id, PaymentAllocation.allocated_amount).where(
                PaymentAllocation.tenant_id == self.tenant_id,
                PaymentAllocation.bank_transaction_id.in_(transaction_ids),
            )
        )
        for transaction_id, amount in result.all():
            totals[transaction_id] += amount
        return totals

    async def _load_transactions(self, transaction_ids: List[uuid.UUID]) -> Dict[uuid.UUID, BankTransaction]:
        result = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.id.in_(transaction_ids),
            )
            .with_for_update()
        )
        transactions = {t.id: t for t in result.scalars().all()}
        missing = [str(t) for t in transaction_ids if t not in transactions]
        if missing:
            raise TransactionNotFound(
                "Bank transaction(s) not found",
                details={"bank_transaction_ids": missing},
            )
        return transactions

    @staticmethod
    def _check_beneficiary(transactions: Iterable[BankTransaction], beneficiary_id: uuid.UUID) -> None:
        mismatched = [t.transaction_code for t in transactions if t.beneficiary_id != beneficiary_id]
        if mismatched:
            raise BeneficiaryMismatch(
                f"Transaction(s) {', '.join(mismatched)} belong to a different beneficiary",
                details={"transaction_codes": mismatched, "beneficiary_id": str(beneficiary_id)},
            )

    async def get_request_detail(self, request_id: uuid.UUID, completion_outcome: Optional[str] = None) -> PaymentRequestDetail:
        request = await self.get_request(request_id)
        if not request:
            raise NotFound("Payment request not found", details={"payment_request_id": str(request_id)})
        allocations = await self._allocations_for_requests([request.id])
        allocated = sum((a.allocated_amount for a in allocations), ZERO)
        return PaymentRequestDetail(
            request=PaymentRequestResponse.model_validate(request),
            allocations=[PaymentAllocationResponse.model_validate(a) for a in allocations],
            allocated_amount=allocated,
            remaining_amount=max(request.requested_amount - allocated, ZERO),
            completion_outcome=completion_outcome,
        )

    # ========================================================================
    # PAYMENT REQUESTS
    # ========================================================================

    async def create_request(self, data: PaymentRequestCreate) -> PaymentRequest:
        """
        Raise a payment request against an order/vehicle pair.

        Raises:
            NotFound: vehicle missing
            ValidationFailed: order not on the vehicle, ceilings, missing notes/timestamps
            PreconditionNotMet: balance/full requested without a POD
        """
        request_type = data.transaction_type
        amount = data.requested_amount
        if amount is None or amount <= 0:
            raise ValidationFailed("requested_amount must be greater than 0")

        try:
            vehicle_result = await self.db.execute(
                select(Vehicle)
                .where(Vehicle.id == data.vehicle_id, Vehicle.tenant_id == self.tenant_id)
                .with_for_update()
            )
            vehicle = vehicle_result.scalar_one_or_none()
            if not vehicle:
                raise NotFound("Vehicle not found", details={"vehicle_id": str(data.vehicle_id)})

            link = await self.db.execute(
                select(VehicleSalesOrder.id)
                .join(SalesOrder, SalesOrder.id == VehicleSalesOrder.sales_order_id)
                .where(
                    VehicleSalesOrder.tenant_id == self.tenant_id,
                    VehicleSalesOrder.vehicle_id == vehicle.id,
                    VehicleSalesOrder.sales_order_id == data.sales_order_id,
                )
            )
            if link.scalar_one_or_none() is None:
                raise ValidationFailed(
                    "Sales order is not assigned to this vehicle",
                    details={"sales_order_id": str(data.sales_order_id), "vehicle_id": str(vehicle.id)},
                )

            if request_type == PaymentRequestType.MISCELLANEOUS_CHARGES and not (data.notes or "").strip():
                raise ValidationFailed("Notes are required for miscellaneous charges")

            if request_type.value in SETTLEMENT_TYPES:
                if not await self.documents.document_exists(DocumentType.POD, vehicle_id=vehicle.id):
                    raise PreconditionNotMet(
                        f"Upload the POD for vehicle {vehicle.vehicle_number} before requesting "
                        f"{request_type.value}",
                        details={"missing_documents": [DocumentType.POD.value]},
                    )

            if request_type.value in SHIPPING_TYPES:
                await self._check_shipping_ceiling(vehicle, request_type, amount)

            if request_type == PaymentRequestType.UNLOADING_CHARGE:
                ceiling = settings.UNLOADING_CHARGE_RATE_PER_UNIT * (vehicle.loading_quantity or ZERO)
                if amount > ceiling:
                    raise ValidationFailed(
                        f"Unloading charge {amount} exceeds {ceiling} "
                        f"({settings.UNLOADING_CHARGE_RATE_PER_UNIT} x loading quantity)",
                        details={"ceiling": str(ceiling)},
                    )
                vehicle.has_unloading_charge = True

            if request_type == PaymentRequestType.UNLOADING_DETENTION:
                reached, unloaded = data.location_reached_at, data.unloaded_at
                if reached is None or unloaded is None:
                    raise ValidationFailed(
                        "location_reached_at and unloaded_at are required for unloading detention"
                    )
                reached, unloaded = as_utc(reached), as_utc(unloaded)
                if unloaded < reached:
                    raise ValidationFailed("unloaded_at cannot be before location_reached_at")
                hours = Decimal(str((unloaded - reached).total_seconds() / 3600))
                vehicle.location_reached_at = reached
                vehicle.unloaded_at = unloaded
                vehicle.waiting_time_hours = hours.quantize(HOURS, rounding=ROUND_HALF_UP)

            request = PaymentRequest(
                id=uuid.uuid4(),
                tenant_id=self.tenant_id,
                sales_order_id=data.sales_order_id,
                vehicle_id=vehicle.id,
                transaction_type=request_type.value,
                requested_amount=amount,
                beneficiary_id=data.beneficiary_id,
                status=PaymentRequestStatus.PENDING.value,
                notes=data.notes,
            )
            self.db.add(request)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(request)
        logger.info(f"Payment request {request.id} {request.transaction_type} {amount} for vehicle {vehicle.vehicle_number}")
        return request

    async def _check_shipping_ceiling(self, vehicle: Vehicle, request_type: PaymentRequestType, amount: Decimal) -> None:
        if vehicle.vehicle_amount is None:
            raise ValidationFailed(
                f"Vehicle {vehicle.vehicle_number} has no agreed amount",
                details={"vehicle_id": str(vehicle.id)},
            )
        if request_type == PaymentRequestType.ADVANCE_SHIPPING and amount >= vehicle.vehicle_amount:
            raise ValidationFailed(
                f"Advance {amount} must be less than the vehicle amount {vehicle.vehicle_amount}",
                details={"vehicle_amount": str(vehicle.vehicle_amount)},
            )
        result = await self.db.execute(
            select(PaymentRequest.requested_amount).where(
                PaymentRequest.tenant_id == self.tenant_id,
                PaymentRequest.vehicle_id == vehicle.id,
                PaymentRequest.transaction_type.in_(SHIPPING_TYPES),
            )
        )
        existing = sum(result.scalars().all(), ZERO)
        if existing + amount > vehicle.vehicle_amount:
            raise ValidationFailed(
                f"Shipping requests would total {existing + amount}, above the vehicle amount "
                f"{vehicle.vehicle_amount}",
                details={"existing": str(existing), "vehicle_amount": str(vehicle.vehicle_amount)},
            )

    async def update_beneficiary(self, request_id: uuid.UUID, beneficiary_id: uuid.UUID) -> PaymentRequest:
        """Change who gets paid, while nothing has been allocated yet."""
        try:
            request = await self._require_request(request_id)
            if request.status == PaymentRequestStatus.COMPLETED.value:
                raise AlreadyCompleted("Payment request is already completed")
            if await self._allocations_for_requests([request.id]):
                raise ValidationFailed(
                    "Beneficiary cannot change once transactions are linked",
                    details={"payment_request_id": str(request.id)},
                )
            request.beneficiary_id = beneficiary_id
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(request)
        return request

    async def eligible_transactions(self, request_id: uuid.UUID) -> List[EligibleTransaction]:
        """Same-beneficiary transactions that still have funds."""
        request = await self.get_request(request_id)
        if not request:
            raise NotFound("Payment request not found", details={"payment_request_id": str(request_id)})
        if request.status == PaymentRequestStatus.COMPLETED.value:
            return []

        result = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.beneficiary_id == request.beneficiary_id,
            )
            .order_by(BankTransaction.transaction_date, BankTransaction.transaction_code)
        )
        transactions = list(result.scalars().all())
        allocated = await self.allocated_by_transaction(t.id for t in transactions)

        eligible = []
        for t in transactions:
            remaining = t.total_paid_amount - allocated[t.id]
            if remaining > 0:
                eligible.append(EligibleTransaction(
                    id=t.id,
                    transaction_code=t.transaction_code,
                    beneficiary_id=t.beneficiary_id,
                    transaction_date=t.transaction_date,
                    total_paid_amount=t.total_paid_amount,
                    allocated_amount=allocated[t.id],
                    remaining_balance=remaining,
                ))
        return eligible

    # ========================================================================
    # ALLOCATION LEDGER
    # ========================================================================

    async def _complete(self, request: PaymentRequest, allocations: List[PaymentAllocation]) -> None:
        """Mark COMPLETED; payment date is the latest date among the funding transactions."""
        transaction_ids = list({a.bank_transaction_id for a in allocations})
        result = await self.db.execute(
            select(BankTransaction.transaction_date).where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.id.in_(transaction_ids),
            )
        )
        dates: List[date] = list(result.scalars().all())
        request.status = PaymentRequestStatus.COMPLETED.value
        request.payment_date = max(dates) if dates else None
        logger.info(f"Payment request {request.id} completed (payment date {request.payment_date})")

    async def link_transactions(self, request_id: uuid.UUID, legs: List[TransactionLeg]) -> PaymentRequestDetail:
        """
        Allocate bank transaction funds to one payment request.

        A single transaction may over-cover the request (the surplus stays on
        the transaction). With several transactions no single leg may exceed
        the outstanding amount and neither may their sum.

        Raises:
            NotFound, AlreadyCompleted, ValidationFailed, TransactionNotFound,
            BeneficiaryMismatch, TransactionExhausted, AllocationExceedsRequest
        """
        if not legs:
            raise ValidationFailed("At least one bank transaction is required")
        transaction_ids = [leg.bank_transaction_id for leg in legs]
        if len(set(transaction_ids)) != len(transaction_ids):
            raise ValidationFailed("Each bank transaction may appear only once")

        completion_outcome = None
        try:
            request = await self._require_request(request_id)
            if request.status == PaymentRequestStatus.COMPLETED.value:
                raise AlreadyCompleted(
                    "Payment request is already completed",
                    details={"payment_request_id": str(request.id)},
                )
            existing = await self._allocations_for_requests([request.id])
            already_allocated = sum((a.allocated_amount for a in existing), ZERO)
            remaining = request.requested_amount - already_allocated
            if remaining <= 0:
                raise AllocationExceedsRequest(
                    "Payment request has no outstanding amount",
                    details={"requested_amount": str(request.requested_amount)},
                )

            transactions = await self._load_transactions(transaction_ids)
            self._check_beneficiary(transactions.values(), request.beneficiary_id)

            drawn = await self.allocated_by_transaction(transaction_ids)
            offers: List[Decimal] = []
            for leg in legs:
                txn = transactions[leg.bank_transaction_id]
                capacity = txn.total_paid_amount - drawn[txn.id]
                if capacity <= 0:
                    raise TransactionExhausted(
                        f"Transaction {txn.transaction_code} has no remaining balance",
                        details={"transaction_code": txn.transaction_code},
                    )
                if leg.amount is not None and leg.amount > capacity:
                    raise TransactionExhausted(
                        f"Transaction {txn.transaction_code} has only {capacity} remaining",
                        details={"transaction_code": txn.transaction_code, "remaining_balance": str(capacity)},
                    )
                offers.append(leg.amount if leg.amount is not None else capacity)

            if len(offers) > 1:
                oversized = [
                    transactions[leg.bank_transaction_id].transaction_code
                    for leg, offer in zip(legs, offers) if offer > remaining
                ]
                if oversized:
                    raise AllocationExceedsRequest(
                        f"Transaction(s) {', '.join(oversized)} alone exceed the outstanding {remaining}",
                        details={"remaining_amount": str(remaining), "transaction_codes": oversized},
                    )
                if sum(offers, ZERO) > remaining:
                    raise AllocationExceedsRequest(
                        f"Transactions total {sum(offers, ZERO)}, above the outstanding {remaining}",
                        details={"remaining_amount": str(remaining)},
                    )

            left = remaining
            for leg, offer in zip(legs, offers):
                amount = min(offer, left)
                if amount <= 0:
                    break
                self.db.add(PaymentAllocation(
                    id=uuid.uuid4(),
                    tenant_id=self.tenant_id,
                    payment_request_id=request.id,
                    bank_transaction_id=leg.bank_transaction_id,
                    allocated_amount=amount,
                ))
                left -= amount
            await self.db.flush()

            allocations = await self._allocations_for_requests([request.id])
            total_allocated = sum((a.allocated_amount for a in allocations), ZERO)
            if total_allocated >= request.requested_amount:
                await self._complete(request, allocations)
                await self.db.flush()
                completion = await self.completion.on_request_completed(request)
                completion_outcome = completion.outcome.value

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Linked {len(legs)} transaction(s) to payment request {request_id}: "
            f"{remaining - left} allocated"
        )
        return await self.get_request_detail(request_id, completion_outcome)

    async def complete_batch(
        self,
        request_ids: List[uuid.UUID],
        allocations: List[BatchAllocation],
    ) -> BatchCompletionResult:
        """
        Complete several same-beneficiary requests at once, all or nothing.

        Allocations must cover the outstanding total exactly. They are spread
        over the requests in the given order.

        Raises:
            ValidationFailed, NotFound, AlreadyCompleted, BeneficiaryMismatch,
            TransactionNotFound, AllocationExceedsRequest, TransactionExhausted,
            PreconditionNotMet
        """
        if not request_ids:
            raise ValidationFailed("At least one payment request is required")
        if not allocations:
            raise ValidationFailed("At least one allocation is required")
        if len(set(request_ids)) != len(request_ids):
            raise ValidationFailed("Each payment request may appear only once")
        if any(a.amount <= 0 for a in allocations):
            raise ValidationFailed("Allocation amounts must be greater than 0")

        outcomes: List[str] = []
        try:
            result = await self.db.execute(
                select(PaymentRequest)
                .where(
                    PaymentRequest.tenant_id == self.tenant_id,
                    PaymentRequest.id.in_(request_ids),
                )
                .with_for_update()
            )
            by_id = {r.id: r for r in result.scalars().all()}
            missing = [str(i) for i in request_ids if i not in by_id]
            if missing:
                raise NotFound("Payment request(s) not found", details={"payment_request_ids": missing})
            requests = [by_id[i] for i in request_ids]

            completed = [str(r.id) for r in requests if r.status == PaymentRequestStatus.COMPLETED.value]
            if completed:
                raise AlreadyCompleted(
                    "Payment request(s) already completed",
                    details={"payment_request_ids": completed},
                )

            beneficiaries = {r.beneficiary_id for r in requests}
            if len(beneficiaries) > 1:
                raise BeneficiaryMismatch(
                    "Batch requests must share one beneficiary",
                    details={"beneficiary_ids": sorted(str(b) for b in beneficiaries)},
                )
            beneficiary_id = beneficiaries.pop()

            transaction_ids = list(dict.fromkeys(a.bank_transaction_id for a in allocations))
            transactions = await self._load_transactions(transaction_ids)
            self._check_beneficiary(transactions.values(), beneficiary_id)

            prior = await self._allocations_for_requests(request_ids)
            prior_by_request: Dict[uuid.UUID, Decimal] = defaultdict(lambda: ZERO)
            for a in prior:
                prior_by_request[a.payment_request_id] += a.allocated_amount
            outstanding = {r.id: r.requested_amount - prior_by_request[r.id] for r in requests}

            total_outstanding = sum(outstanding.values(), ZERO)
            total_allocations = sum((a.amount for a in allocations), ZERO)
            if total_allocations > total_outstanding:
                raise AllocationExceedsRequest(
                    f"Allocations total {total_allocations}, above the outstanding {total_outstanding}",
                    details={"allocations": str(total_allocations), "outstanding": str(total_outstanding)},
                )
            if total_allocations < total_outstanding:
                raise ValidationFailed(
                    f"Allocations total {total_allocations} but {total_outstanding} is outstanding; "
                    f"batch completion must cover every request in full",
                    details={"allocations": str(total_allocations), "outstanding": str(total_outstanding)},
                )

            drawn = await self.allocated_by_transaction(transaction_ids)
            new_by_transaction: Dict[uuid.UUID, Decimal] = defaultdict(lambda: ZERO)
            for a in allocations:
                new_by_transaction[a.bank_transaction_id] += a.amount
            for transaction_id, amount in new_by_transaction.items():
                txn = transactions[transaction_id]
                if drawn[transaction_id] + amount > txn.total_paid_amount:
                    raise TransactionExhausted(
                        f"Transaction {txn.transaction_code} has only "
                        f"{txn.total_paid_amount - drawn[transaction_id]} remaining",
                        details={"transaction_code": txn.transaction_code},
                    )

            for request in requests:
                if request.transaction_type in SETTLEMENT_TYPES:
                    if not await self.documents.document_exists(DocumentType.POD, vehicle_id=request.vehicle_id):
                        raise PreconditionNotMet(
                            f"POD missing for {request.transaction_type} request {request.id}",
                            details={"payment_request_id": str(request.id), "missing_documents": [DocumentType.POD.value]},
                        )

            # Spread the legs greedily over the requests
            legs = [[a.bank_transaction_id, a.amount] for a in allocations]
            leg_index = 0
            for request in requests:
                need = outstanding[request.id]
                while need > 0:
                    transaction_id, available = legs[leg_index]
                    take = min(need, available)
                    self.db.add(PaymentAllocation(
                        id=uuid.uuid4(),
                        tenant_id=self.tenant_id,
                        payment_request_id=request.id,
                        bank_transaction_id=transaction_id,
                        allocated_amount=take,
                    ))
                    need -= take
                    legs[leg_index][1] = available - take
                    if legs[leg_index][1] == 0:
                        leg_index += 1
            await self.db.flush()

            all_allocations = await self._allocations_for_requests(request_ids)
            for request in requests:
                await self._complete(
                    request,
                    [a for a in all_allocations if a.payment_request_id == request.id],
                )
            await self.db.flush()

            settled_vehicles = list(dict.fromkeys(
                r.vehicle_id for r in requests if r.transaction_type in SETTLEMENT_TYPES
            ))
            for vehicle_id in settled_vehicles:
                completion = await self.completion.evaluate_vehicle(vehicle_id)
                outcomes.append(completion.outcome.value)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Batch completed {len(request_ids)} payment requests for {total_allocations}")
        details = [await self.get_request_detail(i) for i in request_ids]
        return BatchCompletionResult(requests=details, completion_outcomes=outcomes)
