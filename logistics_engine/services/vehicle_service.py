"""
Vehicle Service.

Vehicle assignment, vehicle status updates and vehicle documents.
Every status change here runs the order sync in the same transaction.
"""
import uuid
import logging
from typing import Optional, List, Dict, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.core.exceptions import (
    Conflict, FrozenEntity, InvalidTransition, MissingEligibilityFields,
    NotFound, PreconditionNotMet, ValidationFailed,
)
from logistics_engine.core.permissions import UserRole, check_field_access
from logistics_engine.models.document import Document, DocumentType
from logistics_engine.models.sales_order import SalesOrder, SalesOrderStatus
from logistics_engine.models.vehicle import (
    Vehicle, VehicleSalesOrder, VehicleStatus, VehicleInvoiceStatus
)
from logistics_engine.schemas.vehicle import (
    VehicleAssignRequest, VehicleUpdate, VehicleDocumentCreate,
)
from logistics_engine.services.document_service import DocumentService
from logistics_engine.services.profit import vehicle_profit
from logistics_engine.services.status_rules import (
    VEHICLE_SEQUENCE, assert_forward_order, can_transition, is_after_loading_complete,
    is_frozen, missing_eligibility_fields, transition_vehicle,
)
from logistics_engine.services.status_sync_service import StatusSyncService, SyncResult
from logistics_engine.services.vehicle_completion_service import (
    VehicleCompletionService, CompletionResult
)


logger = logging.getLogger(__name__)


# Documents a vehicle needs before TRIP_INVOICED
TRIP_INVOICE_DOCUMENTS = [DocumentType.LR_COPY, DocumentType.INVOICE_PDF]

VEHICLE_DOCUMENT_TYPES = {
    DocumentType.POD, DocumentType.LR_COPY, DocumentType.INVOICE_PDF, DocumentType.VEHICLE_PHOTO,
}


def normalize_trip_reference(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def _text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class VehicleService:
    """Service for vehicle assignment and lifecycle."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, role: UserRole = UserRole.ADMIN):
        self.db = db
        self.tenant_id = tenant_id
        self.role = role
        self.documents = DocumentService(db, tenant_id)
        self.sync_service = StatusSyncService(db, tenant_id)
        self.completion = VehicleCompletionService(db, tenant_id)

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def get_vehicle(self, vehicle_id: uuid.UUID, for_update: bool = False) -> Optional[Vehicle]:
        query = select(Vehicle).where(
            Vehicle.id == vehicle_id,
            Vehicle.tenant_id == self.tenant_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _require_vehicle(self, vehicle_id: uuid.UUID) -> Vehicle:
        vehicle = await self.get_vehicle(vehicle_id, for_update=True)
        if not vehicle:
            raise NotFound("Vehicle not found", details={"vehicle_id": str(vehicle_id)})
        return vehicle

    async def linked_order_ids(self, vehicle_id: uuid.UUID) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(VehicleSalesOrder.sales_order_id).where(
                VehicleSalesOrder.tenant_id == self.tenant_id,
                VehicleSalesOrder.vehicle_id == vehicle_id,
            )
        )
        return list(result.scalars().all())

    async def get_vehicle_detail(self, vehicle_id: uuid.UUID) -> Tuple[Vehicle, List[uuid.UUID], List[Document]]:
        vehicle = await self.get_vehicle(vehicle_id)
        if not vehicle:
            raise NotFound("Vehicle not found", details={"vehicle_id": str(vehicle_id)})
        order_ids = await self.linked_order_ids(vehicle_id)
        documents = await self.documents.list_for_vehicle(vehicle_id)
        return vehicle, order_ids, documents

    # ========================================================================
    # ASSIGNMENT
    # ========================================================================

    async def _load_orders_for_assignment(self, order_ids: List[uuid.UUID]) -> List[SalesOrder]:
        if not order_ids:
            raise ValidationFailed("At least one sales order is required")

        result = await self.db.execute(
            select(SalesOrder)
            .where(
                SalesOrder.tenant_id == self.tenant_id,
                SalesOrder.id.in_(order_ids),
            )
            .with_for_update()
        )
        orders = list(result.scalars().all())
        found = {o.id for o in orders}
        missing = [str(i) for i in dict.fromkeys(order_ids) if i not in found]
        if missing:
            raise NotFound("Sales order(s) not found", details={"sales_order_ids": missing})
        return orders

    async def _check_assignable(self, orders: List[SalesOrder]) -> Optional[str]:
        """Validate the selection and return its trip reference (if any)."""
        frozen = [o.so_number for o in orders if is_frozen(o.status)]
        if frozen:
            raise FrozenEntity(
                f"Sales order(s) on hold or deleted: {', '.join(frozen)}",
                details={"so_numbers": frozen},
            )

        progressed = [o.so_number for o in orders if is_after_loading_complete(o.status)]
        if progressed:
            raise InvalidTransition(
                f"Vehicle assignment is not allowed after LOADING_COMPLETE for: {', '.join(progressed)}",
                details={"so_numbers": progressed},
            )

        buckets: Dict[str, List[str]] = {}
        for order in orders:
            ref = normalize_trip_reference(order.trip_reference_no)
            if ref:
                buckets.setdefault(ref, []).append(order.so_number)
        if len(buckets) > 1:
            summary = "; ".join(f"{ref}: {', '.join(nums)}" for ref, nums in buckets.items())
            raise Conflict(
                f"Selected sales orders must share one trip reference. Found: {summary}",
                details={"trip_references": buckets},
            )

        linked = await self.db.execute(
            select(VehicleSalesOrder.sales_order_id).where(
                VehicleSalesOrder.tenant_id == self.tenant_id,
                VehicleSalesOrder.sales_order_id.in_([o.id for o in orders]),
            )
        )
        already = set(linked.scalars().all())
        if already:
            nums = [o.so_number for o in orders if o.id in already]
            raise Conflict(
                f"Sales order(s) already assigned to a vehicle: {', '.join(nums)}",
                details={"so_numbers": nums},
            )

        ineligible = {
            o.so_number: [f.value for f in missing_eligibility_fields(o)]
            for o in orders
        }
        ineligible = {k: v for k, v in ineligible.items() if v}
        if ineligible:
            summary = "; ".join(f"SO {k}: missing {', '.join(v)}" for k, v in ineligible.items())
            raise MissingEligibilityFields(
                f"Sales order(s) missing required fields for assignment: {summary}",
                details={"missing": ineligible},
            )

        return next(iter(buckets), None)

    async def _check_vehicle_trip_reference(self, vehicle: Vehicle, selected_ref: Optional[str]) -> None:
        result = await self.db.execute(
            select(SalesOrder.trip_reference_no)
            .join(VehicleSalesOrder, VehicleSalesOrder.sales_order_id == SalesOrder.id)
            .where(
                VehicleSalesOrder.tenant_id == self.tenant_id,
                VehicleSalesOrder.vehicle_id == vehicle.id,
            )
        )
        existing = sorted({r for r in (normalize_trip_reference(v) for v in result.scalars().all()) if r})
        if len(existing) > 1:
            raise Conflict(
                f"Vehicle {vehicle.vehicle_number} already carries conflicting trip references: "
                f"{', '.join(existing)}",
                details={"trip_references": existing},
            )
        if existing and selected_ref and selected_ref != existing[0]:
            raise Conflict(
                f"Vehicle {vehicle.vehicle_number} already has trip reference {existing[0]}; "
                f"selected orders use {selected_ref}",
                details={"vehicle_trip_reference": existing[0], "selected": selected_ref},
            )

    def _update_existing_vehicle(self, vehicle: Vehicle, data: VehicleAssignRequest) -> None:
        driver_name = _text(data.driver_name) or vehicle.driver_name
        driver_phone = _text(data.driver_phone_number) or vehicle.driver_phone_number
        truck_size = _text(data.placed_truck_size) or vehicle.placed_truck_size
        truck_type = _text(data.placed_truck_type) or vehicle.placed_truck_type
        amount = data.vehicle_amount if data.vehicle_amount is not None else vehicle.vehicle_amount

        required = {
            "driver_name": driver_name,
            "driver_phone_number": driver_phone,
            "placed_truck_size": truck_size,
            "placed_truck_type": truck_type,
            "vehicle_amount": amount,
        }
        missing = [k for k, v in required.items() if v is None]
        if missing:
            raise ValidationFailed(
                f"Vehicle assignment requires: {', '.join(missing)}",
                details={"missing": missing},
            )

        expense = data.vehicle_expense
        if expense is None:
            expense = vehicle.vehicle_expense if vehicle.vehicle_expense is not None else amount

        vehicle.driver_name = driver_name
        vehicle.driver_phone_number = driver_phone
        vehicle.placed_truck_size = truck_size
        vehicle.placed_truck_type = truck_type
        vehicle.vehicle_amount = amount
        vehicle.vehicle_expense = expense
        vehicle.profit = vehicle_profit(amount, expense)
        if data.location is not None:
            vehicle.location = data.location

        if can_transition(vehicle.status, VehicleStatus.ASSIGNED, VEHICLE_SEQUENCE):
            transition_vehicle(vehicle, VehicleStatus.ASSIGNED)

    async def _create_vehicle(self, data: VehicleAssignRequest) -> Vehicle:
        required = {
            "vehicle_number": _text(data.vehicle_number),
            "driver_name": _text(data.driver_name),
            "driver_phone_number": _text(data.driver_phone_number),
            "placed_truck_size": _text(data.placed_truck_size),
            "placed_truck_type": _text(data.placed_truck_type),
            "vehicle_amount": data.vehicle_amount,
        }
        missing = [k for k, v in required.items() if v is None]
        if missing:
            raise ValidationFailed(
                f"New vehicle requires: {', '.join(missing)}",
                details={"missing": missing},
            )

        existing = await self.db.execute(
            select(Vehicle.id).where(
                Vehicle.tenant_id == self.tenant_id,
                Vehicle.vehicle_number == required["vehicle_number"],
            )
        )
        if existing.scalar_one_or_none():
            raise Conflict(
                f"Vehicle {required['vehicle_number']} already exists; assign with its vehicle_id",
                details={"vehicle_number": required["vehicle_number"]},
            )

        amount = data.vehicle_amount
        expense = data.vehicle_expense if data.vehicle_expense is not None else amount
        vehicle = Vehicle(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            vehicle_number=required["vehicle_number"],
            driver_name=required["driver_name"],
            driver_phone_number=required["driver_phone_number"],
            placed_truck_size=required["placed_truck_size"],
            placed_truck_type=required["placed_truck_type"],
            location=data.location,
            vehicle_amount=amount,
            vehicle_expense=expense,
            profit=vehicle_profit(amount, expense),
            status=VehicleStatus.ASSIGNED.value,
            invoice_status=VehicleInvoiceStatus.NONE.value,
            is_paid=False,
            has_unloading_charge=False,
        )
        self.db.add(vehicle)
        return vehicle

    async def assign_vehicle(self, data: VehicleAssignRequest) -> Tuple[Vehicle, List[uuid.UUID], bool]:
        """
        Assign sales orders to a vehicle in one transaction.

        Returns (vehicle, linked order ids, created flag).

        Raises:
            ValidationFailed, NotFound, FrozenEntity, InvalidTransition,
            Conflict, MissingEligibilityFields
        """
        order_ids = list(dict.fromkeys(data.sales_order_ids))

        try:
            orders = await self._load_orders_for_assignment(order_ids)
            selected_ref = await self._check_assignable(orders)

            if data.vehicle_id:
                vehicle = await self._require_vehicle(data.vehicle_id)
                await self._check_vehicle_trip_reference(vehicle, selected_ref)
                self._update_existing_vehicle(vehicle, data)
                created = False
            else:
                vehicle = await self._create_vehicle(data)
                created = True

            for order in orders:
                self.db.add(VehicleSalesOrder(
                    id=uuid.uuid4(),
                    tenant_id=self.tenant_id,
                    vehicle_id=vehicle.id,
                    sales_order_id=order.id,
                ))
                assert_forward_order(order.status, SalesOrderStatus.VEHICLE_ASSIGNED)
                order.status = SalesOrderStatus.VEHICLE_ASSIGNED.value

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(vehicle)
        logger.info(
            f"Vehicle {vehicle.vehicle_number} assigned to "
            f"{', '.join(o.so_number for o in orders)}"
        )
        return vehicle, [o.id for o in orders], created

    # ========================================================================
    # UPDATE
    # ========================================================================

    async def update_vehicle(
        self,
        vehicle_id: uuid.UUID,
        data: VehicleUpdate,
    ) -> Tuple[Vehicle, Optional[SyncResult]]:
        """
        Update a vehicle. A status change is validated forward-only and
        propagated to the linked orders in the same transaction.

        Raises:
            NotFound, PermissionDenied, ValidationFailed, BackwardTransition,
            InvalidTransition, UnsupportedSource, PreconditionNotMet
        """
        payload = data.model_dump(exclude_unset=True)
        check_field_access("vehicle", self.role, payload.keys())
        requested_status = payload.pop("status", None)
        sync = None

        try:
            vehicle = await self._require_vehicle(vehicle_id)
            previous_status = vehicle.status

            new_number = payload.pop("vehicle_number", None)
            if new_number is not None and new_number.strip() != vehicle.vehicle_number:
                raise ValidationFailed(
                    "vehicle_number cannot be changed",
                    details={"vehicle_number": vehicle.vehicle_number},
                )

            if "invoice_status" in payload and payload["invoice_status"] is not None:
                payload["invoice_status"] = payload["invoice_status"].value

            for field, value in payload.items():
                setattr(vehicle, field, value)

            if requested_status is not None:
                target = requested_status.value
                if target == VehicleStatus.LOADING_COMPLETE.value:
                    if not vehicle.loading_quantity or vehicle.loading_quantity <= 0:
                        raise ValidationFailed(
                            "loading_quantity must be greater than 0 to complete loading",
                            details={"loading_quantity": str(vehicle.loading_quantity)},
                        )
                if target == VehicleStatus.TRIP_INVOICED.value and target != previous_status:
                    missing = await self.documents.missing_types(vehicle.id, TRIP_INVOICE_DOCUMENTS)
                    if missing:
                        raise PreconditionNotMet(
                            f"Upload {', '.join(d.value for d in missing)} before TRIP_INVOICED",
                            details={"missing_documents": [d.value for d in missing]},
                        )
                transition_vehicle(vehicle, target)

            vehicle.profit = vehicle_profit(vehicle.vehicle_amount, vehicle.vehicle_expense)

            if vehicle.status != previous_status:
                sync = await self.sync_service.sync_orders_from_vehicle(vehicle.id, vehicle.status)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(vehicle)
        if sync is not None:
            logger.info(
                f"Vehicle {vehicle.vehicle_number}: {previous_status} -> {vehicle.status}, "
                f"{sync.updated_count} orders updated, {len(sync.skipped)} skipped"
            )
        return vehicle, sync

    # ========================================================================
    # DOCUMENTS
    # ========================================================================

    async def attach_document(
        self,
        vehicle_id: uuid.UUID,
        data: VehicleDocumentCreate,
    ) -> Tuple[Document, Optional[CompletionResult]]:
        """
        Record a vehicle document. A POD re-runs the completion policy, so a
        vehicle that was settled before delivery proof arrived completes now.
        """
        if data.type not in VEHICLE_DOCUMENT_TYPES:
            raise ValidationFailed(
                f"{data.type.value} cannot be attached to a vehicle",
                details={"type": data.type.value},
            )

        completion = None
        try:
            await self._require_vehicle(vehicle_id)
            document = await self.documents.add_document(
                data.type,
                data.file_name,
                data.mime_type,
                vehicle_id=vehicle_id,
                storage_path=data.storage_path,
            )
            if data.type == DocumentType.POD:
                completion = await self.completion.evaluate_vehicle(vehicle_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(document)
        return document, completion
