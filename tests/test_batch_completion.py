"""Completing several payment requests against one set of transactions."""
import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from logistics_engine.core.exceptions import (
    AllocationExceedsRequest, AlreadyCompleted, BeneficiaryMismatch, PreconditionNotMet,
    TransactionExhausted, TransactionNotFound, ValidationFailed,
)
from logistics_engine.models.payment import PaymentAllocation, PaymentRequestStatus, PaymentRequestType
from logistics_engine.models.vehicle import VehicleStatus
from logistics_engine.schemas.payment import BatchAllocation, TransactionLeg
from logistics_engine.services.bank_transaction_service import BankTransactionService
from logistics_engine.services.payment_service import PaymentService
from logistics_engine.services.vehicle_completion_service import VehicleCompletionService

from tests.conftest import attach, create_request, create_transaction


def split(*pairs):
    return [BatchAllocation(bank_transaction_id=t.id, amount=Decimal(str(a))) for t, a in pairs]


@pytest.fixture
def service(db, tenant_id):
    return PaymentService(db, tenant_id)


@pytest.fixture
async def charges(db, tenant_id, trip, beneficiary_id):
    """An advance of 2000 and a miscellaneous charge of 500 on the trip."""
    order, vehicle = trip
    advance = await create_request(db, tenant_id, order, vehicle, beneficiary_id, 2000)
    misc = await create_request(
        db, tenant_id, order, vehicle, beneficiary_id, 500,
        PaymentRequestType.MISCELLANEOUS_CHARGES, notes="Toll",
    )
    return advance, misc


class TestBatchCompletion:

    async def test_allocations_spread_in_request_order(self, db, tenant_id, service, charges, beneficiary_id):
        advance, misc = charges
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 1500, on=date(2024, 3, 1))
        t2 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-2", 1000, on=date(2024, 3, 7))

        result = await service.complete_batch([advance.id, misc.id], split((t1, 1500), (t2, 1000)))

        first, second = result.requests
        assert first.request.status == PaymentRequestStatus.COMPLETED.value
        assert second.request.status == PaymentRequestStatus.COMPLETED.value
        assert {(a.bank_transaction_id, a.allocated_amount) for a in first.allocations} == {
            (t1.id, Decimal("1500")), (t2.id, Decimal("500")),
        }
        assert [(a.bank_transaction_id, a.allocated_amount) for a in second.allocations] == [
            (t2.id, Decimal("500")),
        ]
        assert first.request.payment_date == date(2024, 3, 7)
        assert second.request.payment_date == date(2024, 3, 7)
        assert result.completion_outcomes == []

    async def test_over_allocation(self, db, tenant_id, service, charges, beneficiary_id):
        advance, misc = charges
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 5000)
        with pytest.raises(AllocationExceedsRequest):
            await service.complete_batch([advance.id, misc.id], split((t1, 3000)))

    async def test_under_allocation(self, db, tenant_id, service, charges, beneficiary_id):
        advance, misc = charges
        advance_id, misc_id = advance.id, misc.id
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 5000)

        with pytest.raises(ValidationFailed):
            await service.complete_batch([advance_id, misc_id], split((t1, 2000)))

        detail = await service.get_request_detail(advance_id)
        assert detail.request.status == PaymentRequestStatus.PENDING.value
        assert detail.allocations == []

    async def test_prior_partial_allocation_counts(self, db, tenant_id, service, charges, beneficiary_id):
        advance, misc = charges
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 600)
        t2 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-2", 5000)
        await service.link_transactions(advance.id, [TransactionLeg(bank_transaction_id=t1.id)])

        result = await service.complete_batch([advance.id, misc.id], split((t2, 1900)))

        assert [r.allocated_amount for r in result.requests] == [Decimal("2000"), Decimal("500")]
        balance = await BankTransactionService(db, tenant_id).remaining_balance(t2.id)
        assert balance.remaining_balance == Decimal("3100")

    async def test_mixed_beneficiaries(self, db, tenant_id, service, trip, charges, beneficiary_id):
        order, vehicle = trip
        advance, _ = charges
        stranger = await create_request(
            db, tenant_id, order, vehicle, uuid.uuid4(), 100,
            PaymentRequestType.MISCELLANEOUS_CHARGES, notes="Parking",
        )
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 5000)
        with pytest.raises(BeneficiaryMismatch):
            await service.complete_batch([advance.id, stranger.id], split((t1, 2100)))

    async def test_transaction_of_another_beneficiary(self, db, tenant_id, service, charges):
        advance, _ = charges
        t1 = await create_transaction(db, tenant_id, uuid.uuid4(), "UTR-1", 5000)
        with pytest.raises(BeneficiaryMismatch):
            await service.complete_batch([advance.id], split((t1, 2000)))

    async def test_transaction_overdraw(self, db, tenant_id, service, charges, beneficiary_id):
        advance, misc = charges
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 1000)
        t2 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-2", 1000)
        with pytest.raises(TransactionExhausted):
            await service.complete_batch([advance.id, misc.id], split((t1, 1500), (t2, 1000)))

    async def test_unknown_transaction(self, service, charges):
        advance, _ = charges
        with pytest.raises(TransactionNotFound):
            await service.complete_batch(
                [advance.id], [BatchAllocation(bank_transaction_id=uuid.uuid4(), amount=Decimal("2000"))]
            )

    async def test_completed_request_rejected(self, db, tenant_id, service, charges, beneficiary_id):
        advance, misc = charges
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 5000)
        await service.complete_batch([misc.id], split((t1, 500)))
        with pytest.raises(AlreadyCompleted):
            await service.complete_batch([advance.id, misc.id], split((t1, 2000)))

    async def test_duplicate_requests(self, db, tenant_id, service, charges, beneficiary_id):
        advance, _ = charges
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 5000)
        with pytest.raises(ValidationFailed):
            await service.complete_batch([advance.id, advance.id], split((t1, 4000)))


class TestBatchSettlement:

    async def test_balance_in_batch_completes_vehicle(self, db, tenant_id, service, trip, charges, beneficiary_id):
        order, vehicle = trip
        advance, _ = charges
        await attach(db, tenant_id, vehicle)
        balance = await create_request(
            db, tenant_id, order, vehicle, beneficiary_id, 8000, PaymentRequestType.BALANCE_SHIPPING
        )
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 10000)

        result = await service.complete_batch([advance.id, balance.id], split((t1, 10000)))

        assert result.completion_outcomes == ["COMPLETED"]
        assert vehicle.status == VehicleStatus.COMPLETED.value

    async def test_missing_pod_blocks_batch(self, db, tenant_id, service, trip, charges, beneficiary_id):
        order, vehicle = trip
        pod, _ = await attach(db, tenant_id, vehicle)
        balance = await create_request(
            db, tenant_id, order, vehicle, beneficiary_id, 8000, PaymentRequestType.BALANCE_SHIPPING
        )
        balance_id = balance.id
        await db.delete(pod)
        await db.commit()
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 8000)

        with pytest.raises(PreconditionNotMet):
            await service.complete_batch([balance_id], split((t1, 8000)))

        detail = await service.get_request_detail(balance_id)
        assert detail.request.status == PaymentRequestStatus.PENDING.value

    async def test_completion_failure_discards_batch(
        self, db, tenant_id, service, trip, charges, beneficiary_id, monkeypatch
    ):
        async def fail(self, vehicle_id):
            raise RuntimeError("completion policy unavailable")

        order, vehicle = trip
        advance, _ = charges
        await attach(db, tenant_id, vehicle)
        balance = await create_request(
            db, tenant_id, order, vehicle, beneficiary_id, 8000, PaymentRequestType.BALANCE_SHIPPING
        )
        advance_id, balance_id = advance.id, balance.id
        t1 = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 10000)
        monkeypatch.setattr(VehicleCompletionService, "evaluate_vehicle", fail)

        with pytest.raises(RuntimeError):
            await service.complete_batch([advance_id, balance_id], split((t1, 10000)))

        count = await db.execute(select(func.count(PaymentAllocation.id)))
        assert count.scalar() == 0
        for request_id in (advance_id, balance_id):
            detail = await service.get_request_detail(request_id)
            assert detail.request.status == PaymentRequestStatus.PENDING.value
