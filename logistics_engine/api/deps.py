from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from logistics_engine.database import get_db
from logistics_engine.core.permissions import CallerContext, UserRole


logger = logging.getLogger(__name__)


async def get_caller(
    x_tenant_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> CallerContext:
    """
    Dependency resolving the caller's tenant and role.

    Authentication happens upstream; the gateway forwards the tenant as
    X-Tenant-ID and the role as X-User-Role.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required"
        )
    try:
        tenant_id = uuid.UUID(x_tenant_id)
    except ValueError:
        logger.warning(f"Invalid X-Tenant-ID header: {x_tenant_id}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID must be a UUID"
        )

    try:
        role = UserRole((x_user_role or "").upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_user_role}"
        )

    return CallerContext(tenant_id=tenant_id, role=role)


def require_roles(*allowed_roles: UserRole):
    """
    Dependency factory to restrict an endpoint to some roles.

    Usage:
        caller: CallerContext = Depends(require_roles(UserRole.ADMIN, UserRole.SECURITY))
    """
    async def role_dependency(
        caller: Annotated[CallerContext, Depends(get_caller)]
    ) -> CallerContext:
        if caller.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied. Required any of: {', '.join(r.value for r in allowed_roles)}"
            )
        return caller

    return role_dependency


GATE_ROLES = (UserRole.ADMIN, UserRole.SECURITY)
FINANCE_ROLES = (UserRole.ADMIN, UserRole.ACCOUNTANT)
OPERATIONS_ROLES = (UserRole.ADMIN, UserRole.ACCOUNTANT, UserRole.LOGISTIC_WORKER)


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
GateCaller = Annotated[CallerContext, Depends(require_roles(*GATE_ROLES))]
FinanceCaller = Annotated[CallerContext, Depends(require_roles(*FINANCE_ROLES))]
OperationsCaller = Annotated[CallerContext, Depends(require_roles(*OPERATIONS_ROLES))]
