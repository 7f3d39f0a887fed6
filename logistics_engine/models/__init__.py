from logistics_engine.models.sales_order import SalesOrder, SalesOrderStatus, OrderField, FieldSource
from logistics_engine.models.vehicle import Vehicle, VehicleSalesOrder, VehicleStatus, VehicleInvoiceStatus
from logistics_engine.models.document import Document, DocumentType
from logistics_engine.models.gate_pass import GatePass, GatePassStatus
from logistics_engine.models.bank_transaction import BankTransaction
from logistics_engine.models.payment import (
    PaymentRequest, PaymentAllocation, PaymentRequestType, PaymentRequestStatus
)

__all__ = [
    "SalesOrder", "SalesOrderStatus", "OrderField", "FieldSource",
    "Vehicle", "VehicleSalesOrder", "VehicleStatus", "VehicleInvoiceStatus",
    "Document", "DocumentType",
    "GatePass", "GatePassStatus",
    "BankTransaction",
    "PaymentRequest", "PaymentAllocation", "PaymentRequestType", "PaymentRequestStatus",
]
