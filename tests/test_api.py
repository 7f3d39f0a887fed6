"""HTTP surface: headers, role gates, error bodies and one trip end to end."""
import uuid
from decimal import Decimal

import pytest

from logistics_engine.core.permissions import UserRole

from tests.conftest import READY_FIELDS, headers_for


API = "/api/v1"


@pytest.fixture
def admin(tenant_id):
    return headers_for(tenant_id)


@pytest.fixture
def security(tenant_id):
    return headers_for(tenant_id, UserRole.SECURITY)


@pytest.fixture
def accountant(tenant_id):
    return headers_for(tenant_id, UserRole.ACCOUNTANT)


async def new_order(client, headers, so_number="SO-1001", **fields):
    payload = {"so_number": so_number, **READY_FIELDS, **fields}
    response = await client.post(f"{API}/sales-orders", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def new_vehicle(client, headers, order_ids):
    response = await client.post(f"{API}/vehicles/assign", headers=headers, json={
        "sales_order_ids": order_ids,
        "vehicle_number": "MH12AB1234",
        "driver_name": "Ravi",
        "driver_phone_number": "9876543210",
        "placed_truck_size": "32FT",
        "placed_truck_type": "CONTAINER",
        "vehicle_amount": "10000",
        "vehicle_expense": "8000",
    })
    assert response.status_code == 201, response.text
    return response.json()["vehicle"]


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "connected"


class TestCallerHeaders:

    async def test_missing_tenant(self, client):
        response = await client.get(f"{API}/sales-orders/{uuid.uuid4()}", headers={"X-User-Role": "ADMIN"})
        assert response.status_code == 400

    async def test_malformed_tenant(self, client):
        response = await client.get(
            f"{API}/sales-orders/{uuid.uuid4()}",
            headers={"X-Tenant-ID": "not-a-uuid", "X-User-Role": "ADMIN"},
        )
        assert response.status_code == 400

    async def test_unknown_role(self, client, tenant_id):
        response = await client.get(
            f"{API}/sales-orders/{uuid.uuid4()}",
            headers={"X-Tenant-ID": str(tenant_id), "X-User-Role": "DRIVER"},
        )
        assert response.status_code == 403

    async def test_security_cannot_reach_payments(self, client, security):
        response = await client.post(
            f"{API}/payments/complete-batch",
            headers=security,
            json={"payment_request_ids": [str(uuid.uuid4())], "allocations": []},
        )
        assert response.status_code == 403

    async def test_logistic_worker_cannot_run_the_gate(self, client, tenant_id):
        response = await client.post(
            f"{API}/gate/check-in",
            headers=headers_for(tenant_id, UserRole.LOGISTIC_WORKER),
            json={"vehicle_number": "MH12AB1234"},
        )
        assert response.status_code == 403

    async def test_tenants_do_not_see_each_other(self, client, admin):
        order = await new_order(client, admin)
        response = await client.get(
            f"{API}/sales-orders/{order['id']}", headers=headers_for(uuid.uuid4())
        )
        assert response.status_code == 404


class TestErrorBodies:

    async def test_not_found(self, client, accountant):
        request_id = uuid.uuid4()
        response = await client.get(f"{API}/payments/requests/{request_id}", headers=accountant)
        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "NOT_FOUND"
        assert body["details"] == {"payment_request_id": str(request_id)}
        assert body["error"]

    async def test_conflict(self, client, admin):
        await new_order(client, admin)
        response = await client.post(f"{API}/sales-orders", json={"so_number": "SO-1001"}, headers=admin)
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    async def test_backward_transition(self, client, admin):
        order = await new_order(client, admin)
        vehicle = await new_vehicle(client, admin, [order["id"]])
        await client.patch(f"{API}/vehicles/{vehicle['id']}", json={"status": "GATE_IN"}, headers=admin)

        response = await client.patch(f"{API}/vehicles/{vehicle['id']}", json={"status": "ARRIVED"}, headers=admin)

        assert response.status_code == 422
        assert response.json()["code"] == "BACKWARD_TRANSITION"

    async def test_missing_pod(self, client, admin, beneficiary_id):
        order = await new_order(client, admin)
        vehicle = await new_vehicle(client, admin, [order["id"]])
        response = await client.post(f"{API}/payments/requests", headers=admin, json={
            "sales_order_id": order["id"],
            "vehicle_id": vehicle["id"],
            "transaction_type": "BALANCE_SHIPPING",
            "requested_amount": "500",
            "beneficiary_id": str(beneficiary_id),
        })
        assert response.status_code == 412
        assert response.json()["details"]["missing_documents"] == ["POD"]

    async def test_field_permission(self, client, tenant_id):
        worker = headers_for(tenant_id, UserRole.LOGISTIC_WORKER)
        response = await client.post(
            f"{API}/sales-orders", headers=worker, json={"so_number": "SO-1", "freight_cost": "10"}
        )
        assert response.status_code == 403
        assert response.json()["code"] == "PERMISSION_DENIED"


async def test_trip_from_order_to_settlement(client, admin, security, accountant, beneficiary_id):
    order = await new_order(client, admin, freight_cost="15000")
    assert order["status"] == "ASSIGN_VEHICLE"
    vehicle = await new_vehicle(client, admin, [order["id"]])
    vehicle_url = f"{API}/vehicles/{vehicle['id']}"

    response = await client.post(f"{API}/gate/check-in", headers=security, json={"vehicle_number": "mh12ab1234"})
    assert response.status_code == 201
    gate = response.json()
    assert gate["vehicle_status"] == "ARRIVED"
    pass_id = gate["gate_pass"]["id"]

    response = await client.post(f"{API}/gate/{pass_id}/gate-in", headers=security)
    assert response.json()["gate_pass"]["status"] == "GATE_IN"

    response = await client.patch(
        vehicle_url, headers=admin, json={"status": "LOADING_COMPLETE", "loading_quantity": "100"}
    )
    assert response.status_code == 200
    assert response.json()["sync"]["updated_count"] == 1

    response = await client.post(f"{API}/gate/{pass_id}/gate-out", headers=security)
    assert response.json()["vehicle_status"] == "IN_JOURNEY"

    response = await client.post(
        f"{vehicle_url}/documents", headers=admin, json={"type": "POD", "file_name": "pod.jpg"}
    )
    assert response.status_code == 201
    assert response.json()["completion_outcome"] == "NO_SETTLEMENT"

    response = await client.post(f"{API}/transactions", headers=accountant, json={
        "transaction_code": "UTR-77",
        "beneficiary_id": str(beneficiary_id),
        "total_paid_amount": "12000",
        "transaction_date": "2024-03-02",
        "payment_proof_file_name": "utr-77.pdf",
    })
    assert response.status_code == 201
    transaction = response.json()

    response = await client.post(f"{API}/payments/requests", headers=accountant, json={
        "sales_order_id": order["id"],
        "vehicle_id": vehicle["id"],
        "transaction_type": "FULL_SHIPPING_CHARGES",
        "requested_amount": "10000",
        "beneficiary_id": str(beneficiary_id),
    })
    assert response.status_code == 201
    request_id = response.json()["id"]

    response = await client.get(f"{API}/payments/requests/{request_id}/eligible-transactions", headers=accountant)
    assert [t["transaction_code"] for t in response.json()] == ["UTR-77"]

    response = await client.post(
        f"{API}/payments/requests/{request_id}/link-transactions",
        headers=accountant,
        json={"transactions": [{"bank_transaction_id": transaction["id"]}]},
    )
    assert response.status_code == 200
    detail = response.json()
    assert detail["request"]["status"] == "COMPLETED"
    assert detail["request"]["payment_date"] == "2024-03-02"
    assert detail["completion_outcome"] == "COMPLETED"
    assert isinstance(detail["allocated_amount"], str)
    assert Decimal(detail["allocated_amount"]) == Decimal("10000")

    response = await client.get(f"{API}/transactions/{transaction['id']}/remaining-balance", headers=accountant)
    assert Decimal(response.json()["remaining_balance"]) == Decimal("2000")

    response = await client.get(f"{API}/sales-orders/{order['id']}", headers=admin)
    completed = response.json()
    assert completed["status"] == "COMPLETED"
    assert Decimal(completed["profit"]) == Decimal("15000")

    response = await client.get(vehicle_url, headers=admin)
    body = response.json()
    assert body["status"] == "COMPLETED"
    assert body["sales_order_ids"] == [order["id"]]
    assert [d["type"] for d in body["documents"]] == ["POD"]


async def test_delete_checked_in_pass(client, admin, security):
    order = await new_order(client, admin)
    await new_vehicle(client, admin, [order["id"]])
    response = await client.post(f"{API}/gate/check-in", headers=security, json={"vehicle_number": "MH12AB1234"})
    pass_id = response.json()["gate_pass"]["id"]

    response = await client.delete(f"{API}/gate/{pass_id}", headers=security)

    assert response.status_code == 204
