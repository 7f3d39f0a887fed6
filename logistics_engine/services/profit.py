"""Profit calculations for orders and vehicles."""
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.models.payment import (
    PaymentRequest, PaymentRequestStatus, PaymentRequestType
)
from logistics_engine.models.sales_order import SalesOrder, SalesOrderStatus


# Completed requests of these types are costs booked against the order
ORDER_EXPENSE_TYPES = [
    PaymentRequestType.ADVANCE_SHIPPING.value,
    PaymentRequestType.UNLOADING_CHARGE.value,
    PaymentRequestType.UNLOADING_DETENTION.value,
    PaymentRequestType.MISCELLANEOUS_CHARGES.value,
]

PROFIT_STATUSES = {SalesOrderStatus.COMPLETED.value, SalesOrderStatus.INVOICED.value}

ZERO = Decimal("0")


def vehicle_profit(amount: Optional[Decimal], expense: Optional[Decimal]) -> Decimal:
    return (amount or ZERO) - (expense or ZERO)


async def order_expenses(db: AsyncSession, tenant_id: uuid.UUID, order_id: uuid.UUID) -> Decimal:
    """Sum of completed expense requests raised against an order."""
    result = await db.execute(
        select(PaymentRequest.requested_amount).where(
            PaymentRequest.tenant_id == tenant_id,
            PaymentRequest.sales_order_id == order_id,
            PaymentRequest.status == PaymentRequestStatus.COMPLETED.value,
            PaymentRequest.transaction_type.in_(ORDER_EXPENSE_TYPES),
        )
    )
    return sum((amount for amount in result.scalars().all()), ZERO)


async def apply_order_profit(db: AsyncSession, order: SalesOrder) -> Optional[Decimal]:
    """
    Set order.profit = freight cost - expenses when the order is COMPLETED or INVOICED.

    Returns the profit, or None if the order is not yet in a profit status.
    """
    if order.status not in PROFIT_STATUSES:
        return None
    expenses = await order_expenses(db, order.tenant_id, order.id)
    order.profit = (order.freight_cost or ZERO) - expenses
    return order.profit
