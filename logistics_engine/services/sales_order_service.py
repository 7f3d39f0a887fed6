"""
Sales Order Service.

Order intake and order-level lifecycle operations:
- Manual create and update (with eligibility-driven auto-advance)
- Hold / delete / reactivate (frozen statuses)
- Bulk import and external capture upserts, respecting field provenance
"""
import uuid
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.core.exceptions import (
    Conflict, FrozenEntity, InvalidTransition, NotFound, ValidationFailed,
)
from logistics_engine.core.permissions import UserRole, check_field_access
from logistics_engine.models.sales_order import (
    SalesOrder, SalesOrderStatus, OrderField, FieldSource
)
from logistics_engine.schemas.sales_order import (
    SalesOrderCreate, SalesOrderUpdate, SalesOrderImportRow, SalesOrderCapture,
    SalesOrderImportResult, ImportRowError,
)
from logistics_engine.services.profit import apply_order_profit, PROFIT_STATUSES
from logistics_engine.services.status_rules import (
    assert_forward_order, auto_advance, can_hold_or_delete, derive_status, is_frozen,
)


logger = logging.getLogger(__name__)


TRACKED_FIELDS = {f.value for f in OrderField}


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


class SalesOrderService:
    """Service for sales order lifecycle operations."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, role: UserRole = UserRole.ADMIN):
        self.db = db
        self.tenant_id = tenant_id
        self.role = role

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def get_order(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[SalesOrder]:
        query = select(SalesOrder).where(
            SalesOrder.id == order_id,
            SalesOrder.tenant_id == self.tenant_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _require_order(self, order_id: uuid.UUID) -> SalesOrder:
        order = await self.get_order(order_id, for_update=True)
        if not order:
            raise NotFound("Sales order not found", details={"sales_order_id": str(order_id)})
        return order

    async def get_by_so_number(self, so_number: str) -> Optional[SalesOrder]:
        result = await self.db.execute(
            select(SalesOrder).where(
                SalesOrder.tenant_id == self.tenant_id,
                SalesOrder.so_number == so_number,
            )
        )
        return result.scalar_one_or_none()

    # ========================================================================
    # FIELD WRITES
    # ========================================================================

    @staticmethod
    def _write_fields(order: SalesOrder, values: Dict[str, Any], source: FieldSource) -> List[str]:
        """Set fields and record their provenance. Returns names written."""
        sources = dict(order.field_source or {})
        written = []
        for name, value in values.items():
            if name not in TRACKED_FIELDS:
                continue
            setattr(order, name, value)
            sources[name] = source.value
            written.append(name)
        # New dict so the JSON column is flagged dirty
        order.field_source = sources
        return written

    @staticmethod
    def _writable_by(order: SalesOrder, name: str, source: FieldSource) -> bool:
        """Import never overwrites a manual edit; capture only overwrites capture or unset fields."""
        current = (order.field_source or {}).get(name)
        if source == FieldSource.IMPORT:
            return current != FieldSource.MANUAL.value
        if source == FieldSource.EXTERNAL_CAPTURE:
            return current is None or current == FieldSource.EXTERNAL_CAPTURE.value
        return True

    def _new_order(self, so_number: str, values: Dict[str, Any], source: FieldSource) -> SalesOrder:
        order = SalesOrder(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            so_number=so_number,
            field_source={},
            created_from_import=source == FieldSource.IMPORT,
        )
        present = {k: v for k, v in values.items() if v is not None}
        present[OrderField.SO_NUMBER.value] = so_number
        self._write_fields(order, present, source)
        order.status = derive_status(order).value
        self.db.add(order)
        return order

    # ========================================================================
    # MANUAL OPERATIONS
    # ========================================================================

    async def create_order(self, data: SalesOrderCreate) -> SalesOrder:
        """
        Create an order by hand.

        Raises:
            ValidationFailed: so_number missing
            Conflict: so_number already used in this tenant
        """
        values = {k: _clean(v) for k, v in data.model_dump(exclude_unset=True).items()}
        check_field_access("sales_order", self.role, [k for k, v in values.items() if v is not None])

        so_number = values.pop("so_number", None)
        if not so_number:
            raise ValidationFailed("so_number is required")

        try:
            if await self.get_by_so_number(so_number):
                raise Conflict(
                    f"Sales order {so_number} already exists",
                    details={"so_number": so_number},
                )
            order = self._new_order(so_number, values, FieldSource.MANUAL)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info(f"SO {order.so_number} created with status {order.status}")
        return order

    async def update_order(self, order_id: uuid.UUID, data: SalesOrderUpdate) -> SalesOrder:
        """
        Apply a partial update.

        An explicit status goes through the forward-only validator. Without
        one, an INFORMATION_NEEDED order advances to ASSIGN_VEHICLE once the
        merged record is complete.

        Raises:
            NotFound, FrozenEntity, InvalidTransition, BackwardTransition,
            UnsupportedSource, PermissionDenied, Conflict
        """
        payload = data.model_dump(exclude_unset=True)
        check_field_access("sales_order", self.role, payload.keys())
        requested_status = payload.pop("status", None)

        try:
            order = await self._require_order(order_id)
            current_status = order.status

            if is_frozen(current_status):
                raise FrozenEntity(
                    f"Sales order {order.so_number} is {current_status}; reactivate it first",
                    details={"sales_order_id": str(order.id), "status": current_status},
                )

            if requested_status in (SalesOrderStatus.HOLD, SalesOrderStatus.DELETED):
                raise InvalidTransition(
                    f"Use the hold/delete actions to set {requested_status.value}",
                    details={"target_status": requested_status.value},
                )

            values = {k: _clean(v) for k, v in payload.items()}
            new_so_number = values.get("so_number")
            if "so_number" in values:
                if not new_so_number:
                    raise ValidationFailed("so_number cannot be empty")
                if new_so_number != order.so_number and await self.get_by_so_number(new_so_number):
                    raise Conflict(
                        f"Sales order {new_so_number} already exists",
                        details={"so_number": new_so_number},
                    )
            self._write_fields(order, values, FieldSource.MANUAL)

            if requested_status is not None:
                assert_forward_order(current_status, requested_status)
                order.status = requested_status.value
            else:
                auto_advance(order)

            status_changed = order.status != current_status
            if order.status in PROFIT_STATUSES and (status_changed or current_status in PROFIT_STATUSES):
                await apply_order_profit(self.db, order)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        if status_changed:
            logger.info(f"SO {order.so_number}: {current_status} -> {order.status}")
        return order

    async def _freeze(self, order_id: uuid.UUID, frozen_status: SalesOrderStatus) -> SalesOrder:
        try:
            order = await self._require_order(order_id)
            current_status = order.status
            if is_frozen(current_status) or not can_hold_or_delete(current_status):
                raise InvalidTransition(
                    f"Sales order {order.so_number} cannot be set to {frozen_status.value} "
                    f"from {current_status}",
                    details={"status": current_status, "target_status": frozen_status.value},
                )
            if not order.previous_status:
                order.previous_status = current_status
            order.status = frozen_status.value
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info(f"SO {order.so_number}: {current_status} -> {order.status}")
        return order

    async def hold_order(self, order_id: uuid.UUID) -> SalesOrder:
        """Freeze an order on HOLD (only up to LOADING_COMPLETE)."""
        return await self._freeze(order_id, SalesOrderStatus.HOLD)

    async def delete_order(self, order_id: uuid.UUID) -> SalesOrder:
        """Soft delete: freeze as DELETED. The row stays."""
        return await self._freeze(order_id, SalesOrderStatus.DELETED)

    async def reactivate_order(self, order_id: uuid.UUID) -> SalesOrder:
        """Restore the status held before freezing."""
        try:
            order = await self._require_order(order_id)
            current_status = order.status
            if not is_frozen(current_status):
                raise InvalidTransition(
                    f"Sales order {order.so_number} is not on hold or deleted",
                    details={"status": current_status},
                )
            order.status = order.previous_status or SalesOrderStatus.INFORMATION_NEEDED.value
            order.previous_status = None
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info(f"SO {order.so_number}: {current_status} -> {order.status} (reactivated)")
        return order

    # ========================================================================
    # IMPORT / CAPTURE
    # ========================================================================

    def _merge_external(self, order: SalesOrder, values: Dict[str, Any], source: FieldSource) -> List[str]:
        writable = {
            k: v for k, v in values.items()
            if v is not None and k != OrderField.SO_NUMBER.value and self._writable_by(order, k, source)
        }
        written = self._write_fields(order, writable, source)
        auto_advance(order)
        return written

    async def import_rows(self, rows: List[SalesOrderImportRow]) -> SalesOrderImportResult:
        """
        Upsert already-parsed rows by so_number.

        Rows fail individually (frozen order, missing so_number); the rest
        are committed together.
        """
        result = SalesOrderImportResult()
        seen: Dict[str, SalesOrder] = {}

        try:
            for index, row in enumerate(rows, start=1):
                values = {k: _clean(v) for k, v in row.model_dump(exclude_unset=True).items()}
                so_number = values.pop("so_number", None)
                if not so_number:
                    result.failed.append(ImportRowError(row=index, error="so_number is required"))
                    continue

                order = seen.get(so_number) or await self.get_by_so_number(so_number)
                if order is None:
                    seen[so_number] = self._new_order(so_number, values, FieldSource.IMPORT)
                    result.created += 1
                    continue

                if is_frozen(order.status):
                    result.failed.append(ImportRowError(
                        row=index, so_number=so_number,
                        error=f"Sales order is {order.status}; import skipped",
                    ))
                    continue

                self._merge_external(order, values, FieldSource.IMPORT)
                seen[so_number] = order
                result.updated += 1

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Import finished: {result.created} created, {result.updated} updated, "
            f"{len(result.failed)} failed"
        )
        return result

    async def capture_order(self, data: SalesOrderCapture) -> SalesOrder:
        """
        Upsert an order from the external capture pipeline.

        Raises:
            ValidationFailed: so_number missing
            FrozenEntity: the existing order is on hold or deleted
        """
        values = {k: _clean(v) for k, v in data.model_dump(exclude_unset=True).items()}
        so_number = values.pop("so_number", None)
        if not so_number:
            raise ValidationFailed("so_number is required")

        try:
            order = await self.get_by_so_number(so_number)
            if order is None:
                order = self._new_order(so_number, values, FieldSource.EXTERNAL_CAPTURE)
            else:
                if is_frozen(order.status):
                    raise FrozenEntity(
                        f"Sales order {so_number} is {order.status}; capture rejected",
                        details={"so_number": so_number, "status": order.status},
                    )
                self._merge_external(order, values, FieldSource.EXTERNAL_CAPTURE)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        return order
