"""
Shared fixtures: an in-memory SQLite database with a fresh schema per test,
seed helpers that drive the services, and an httpx client bound to the app.
"""
import uuid
from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from logistics_engine import models  # noqa: F401
from logistics_engine.core.permissions import UserRole
from logistics_engine.database import Base, get_db
from logistics_engine.main import app
from logistics_engine.models.document import DocumentType
from logistics_engine.models.payment import PaymentRequestType
from logistics_engine.models.vehicle import VehicleStatus
from logistics_engine.schemas.bank_transaction import BankTransactionCreate
from logistics_engine.schemas.payment import PaymentRequestCreate
from logistics_engine.schemas.sales_order import SalesOrderCreate
from logistics_engine.schemas.vehicle import VehicleAssignRequest, VehicleDocumentCreate, VehicleUpdate
from logistics_engine.services.bank_transaction_service import BankTransactionService
from logistics_engine.services.payment_service import PaymentService
from logistics_engine.services.sales_order_service import SalesOrderService
from logistics_engine.services.vehicle_service import VehicleService


TEST_DATABASE_URL = "sqlite+aiosqlite://"


# Everything an order needs to be ready for dispatch
READY_FIELDS = {
    "so_cases": 120,
    "case_lot": "LOT-7",
    "town_name": "Nashik",
    "pin_code": "422001",
    "requested_truck_size": "32FT",
    "requested_truck_type": "CONTAINER",
}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def beneficiary_id():
    return uuid.uuid4()


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def headers_for(tenant_id, role=UserRole.ADMIN):
    return {"X-Tenant-ID": str(tenant_id), "X-User-Role": role.value}


# ============================================================================
# SEED HELPERS
# ============================================================================

async def create_ready_order(db, tenant_id, so_number, **overrides):
    fields = dict(READY_FIELDS, **overrides)
    service = SalesOrderService(db, tenant_id)
    return await service.create_order(SalesOrderCreate(so_number=so_number, **fields))


async def assign_vehicle(db, tenant_id, orders, vehicle_number="MH12AB1234", **overrides):
    data = {
        "sales_order_ids": [o.id for o in orders],
        "vehicle_number": vehicle_number,
        "driver_name": "Ravi",
        "driver_phone_number": "9876543210",
        "placed_truck_size": "32FT",
        "placed_truck_type": "CONTAINER",
        "vehicle_amount": Decimal("10000"),
        "vehicle_expense": Decimal("8000"),
    }
    data.update(overrides)
    service = VehicleService(db, tenant_id)
    vehicle, _, _ = await service.assign_vehicle(VehicleAssignRequest(**data))
    return vehicle


async def move_vehicle(db, tenant_id, vehicle, status, **fields):
    service = VehicleService(db, tenant_id)
    vehicle, sync = await service.update_vehicle(
        vehicle.id, VehicleUpdate(status=status, **fields)
    )
    return vehicle, sync


async def attach(db, tenant_id, vehicle, document_type=DocumentType.POD):
    service = VehicleService(db, tenant_id)
    return await service.attach_document(
        vehicle.id,
        VehicleDocumentCreate(type=document_type, file_name=f"{document_type.value.lower()}.pdf"),
    )


async def create_request(db, tenant_id, order, vehicle, beneficiary_id, amount,
                         request_type=PaymentRequestType.ADVANCE_SHIPPING, **extra):
    service = PaymentService(db, tenant_id)
    return await service.create_request(PaymentRequestCreate(
        sales_order_id=order.id,
        vehicle_id=vehicle.id,
        transaction_type=request_type,
        requested_amount=Decimal(str(amount)),
        beneficiary_id=beneficiary_id,
        **extra,
    ))


async def create_transaction(db, tenant_id, beneficiary_id, code, amount, on=date(2024, 3, 1)):
    service = BankTransactionService(db, tenant_id)
    return await service.create_transaction(BankTransactionCreate(
        transaction_code=code,
        beneficiary_id=beneficiary_id,
        total_paid_amount=Decimal(str(amount)),
        transaction_date=on,
        payment_proof_file_name=f"{code}.pdf",
    ))


@pytest.fixture
async def trip(db, tenant_id):
    """One ready order on a vehicle that has finished loading."""
    order = await create_ready_order(db, tenant_id, "SO-1001", freight_cost=Decimal("15000"))
    vehicle = await assign_vehicle(db, tenant_id, [order])
    vehicle, _ = await move_vehicle(db, tenant_id, vehicle, VehicleStatus.ARRIVED)
    vehicle, _ = await move_vehicle(
        db, tenant_id, vehicle, VehicleStatus.LOADING_COMPLETE, loading_quantity=Decimal("100")
    )
    return order, vehicle
