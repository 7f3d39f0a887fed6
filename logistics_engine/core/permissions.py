"""Caller roles and the field-level payload filters applied before the engine runs."""
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Set

from logistics_engine.core.exceptions import PermissionDenied


class UserRole(str, Enum):
    """Roles known to the request layer."""
    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"
    LOGISTIC_WORKER = "LOGISTIC_WORKER"
    SECURITY = "SECURITY"


@dataclass(frozen=True)
class CallerContext:
    """Tenant and role of the caller, resolved by the request layer."""
    tenant_id: uuid.UUID
    role: UserRole


# Fields each role may NOT write, per entity
RESTRICTED_FIELDS: Dict[str, Dict[UserRole, Set[str]]] = {
    "sales_order": {
        UserRole.ACCOUNTANT: {"freight_cost"},
        UserRole.LOGISTIC_WORKER: {"freight_cost"},
        UserRole.SECURITY: {"freight_cost"},
    },
    "vehicle": {
        UserRole.LOGISTIC_WORKER: {"vehicle_amount", "vehicle_expense", "is_paid", "invoice_status"},
    },
}

# Never accepted from any client
SYSTEM_FIELDS: Dict[str, Set[str]] = {
    "sales_order": {"profit"},
    "vehicle": {"profit"},
}


def check_field_access(entity: str, role: UserRole, fields: Iterable[str]) -> None:
    """
    Reject a payload that sets a field the role may not write.

    Raises:
        PermissionDenied: listing the offending fields
    """
    fields = set(fields)
    blocked = fields & SYSTEM_FIELDS.get(entity, set())
    blocked |= fields & RESTRICTED_FIELDS.get(entity, {}).get(role, set())
    if blocked:
        raise PermissionDenied(
            f"Role {role.value} cannot set: {', '.join(sorted(blocked))}",
            details={"fields": sorted(blocked), "role": role.value},
        )
