"""Settlement plus proof of delivery completes the vehicle and its orders."""
from decimal import Decimal

import pytest

from logistics_engine.models.payment import PaymentRequestType
from logistics_engine.models.sales_order import SalesOrderStatus
from logistics_engine.models.vehicle import VehicleStatus
from logistics_engine.schemas.payment import TransactionLeg
from logistics_engine.services.payment_service import PaymentService
from logistics_engine.services.vehicle_completion_service import (
    CompletionOutcome, VehicleCompletionService,
)

from tests.conftest import attach, create_request, create_transaction, move_vehicle


async def pay(db, tenant_id, request, transaction):
    service = PaymentService(db, tenant_id)
    return await service.link_transactions(
        request.id, [TransactionLeg(bank_transaction_id=transaction.id)]
    )


class TestCompletion:

    async def test_settlement_without_pod_waits(self, db, tenant_id, trip, beneficiary_id):
        order, vehicle = trip
        pod, _ = await attach(db, tenant_id, vehicle)
        full = await create_request(
            db, tenant_id, order, vehicle, beneficiary_id, 10000, PaymentRequestType.FULL_SHIPPING_CHARGES
        )
        # Proof of delivery withdrawn after the request was raised
        await db.delete(pod)
        await db.commit()
        transaction = await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 10000)

        detail = await pay(db, tenant_id, full, transaction)

        assert detail.request.status == "COMPLETED"
        assert detail.completion_outcome == CompletionOutcome.MISSING_POD.value
        assert vehicle.status == VehicleStatus.LOADING_COMPLETE.value
        assert order.status == SalesOrderStatus.LOADING_COMPLETE.value

        _, completion = await attach(db, tenant_id, vehicle)

        assert completion.outcome == CompletionOutcome.COMPLETED
        assert vehicle.status == VehicleStatus.COMPLETED.value
        assert order.status == SalesOrderStatus.COMPLETED.value

    async def test_balance_payment_completes_and_books_profit(self, db, tenant_id, trip, beneficiary_id):
        order, vehicle = trip
        advance = await create_request(db, tenant_id, order, vehicle, beneficiary_id, 2000)
        await pay(db, tenant_id, advance, await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 2000))
        await attach(db, tenant_id, vehicle)
        balance = await create_request(
            db, tenant_id, order, vehicle, beneficiary_id, 8000, PaymentRequestType.BALANCE_SHIPPING
        )

        detail = await pay(
            db, tenant_id, balance, await create_transaction(db, tenant_id, beneficiary_id, "UTR-2", 8000)
        )

        assert detail.completion_outcome == CompletionOutcome.COMPLETED.value
        assert vehicle.status == VehicleStatus.COMPLETED.value
        assert vehicle.profit == Decimal("2000")
        assert order.status == SalesOrderStatus.COMPLETED.value
        # Freight 15000 less the completed advance
        assert order.profit == Decimal("13000")

    async def test_advance_does_not_complete(self, db, tenant_id, trip, beneficiary_id):
        order, vehicle = trip
        await attach(db, tenant_id, vehicle)
        advance = await create_request(db, tenant_id, order, vehicle, beneficiary_id, 2000)

        detail = await pay(
            db, tenant_id, advance, await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 2000)
        )

        assert detail.completion_outcome == CompletionOutcome.NOT_SETTLEMENT.value
        assert vehicle.status == VehicleStatus.LOADING_COMPLETE.value

    async def test_pod_without_settlement(self, db, tenant_id, trip):
        _, vehicle = trip
        _, completion = await attach(db, tenant_id, vehicle)
        assert completion.outcome == CompletionOutcome.NO_SETTLEMENT

    async def test_invoiced_vehicle_is_not_moved_back(self, db, tenant_id, trip, beneficiary_id):
        order, vehicle = trip
        await attach(db, tenant_id, vehicle)
        full = await create_request(
            db, tenant_id, order, vehicle, beneficiary_id, 9000, PaymentRequestType.FULL_SHIPPING_CHARGES
        )
        vehicle, _ = await move_vehicle(db, tenant_id, vehicle, VehicleStatus.INVOICED)

        detail = await pay(
            db, tenant_id, full, await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 9000)
        )

        assert detail.completion_outcome == CompletionOutcome.BLOCKED.value
        assert vehicle.status == VehicleStatus.INVOICED.value

    async def test_second_pod_resyncs_completed_vehicle(self, db, tenant_id, trip, beneficiary_id):
        order, vehicle = trip
        await attach(db, tenant_id, vehicle)
        full = await create_request(
            db, tenant_id, order, vehicle, beneficiary_id, 9000, PaymentRequestType.FULL_SHIPPING_CHARGES
        )
        await pay(db, tenant_id, full, await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 9000))

        outcome = await VehicleCompletionService(db, tenant_id).evaluate_vehicle(vehicle.id)

        assert outcome.outcome == CompletionOutcome.ALREADY_COMPLETED
        assert outcome.sync.updated_count == 0


@pytest.mark.parametrize("request_type", [
    PaymentRequestType.UNLOADING_CHARGE,
    PaymentRequestType.MISCELLANEOUS_CHARGES,
])
async def test_other_charges_are_not_settlement(db, tenant_id, trip, beneficiary_id, request_type):
    order, vehicle = trip
    await attach(db, tenant_id, vehicle)
    request = await create_request(
        db, tenant_id, order, vehicle, beneficiary_id, 100, request_type, notes="Labour"
    )
    detail = await pay(
        db, tenant_id, request, await create_transaction(db, tenant_id, beneficiary_id, "UTR-1", 100)
    )
    assert detail.completion_outcome == CompletionOutcome.NOT_SETTLEMENT.value
