"""
Lifecycle and ledger exceptions.

Every rejected operation raises one of these. The API layer maps the
`code` to an HTTP status; the message and details go back to the caller.
"""
from typing import Dict


class LifecycleError(Exception):
    """Base exception for rejected lifecycle and ledger operations."""
    code = "LIFECYCLE_ERROR"

    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# =============================================================================
# STATE MACHINE
# =============================================================================

class InvalidTransition(LifecycleError):
    """Target status is unknown or not reachable through this operation."""
    code = "INVALID_TRANSITION"


class UnsupportedSource(LifecycleError):
    """Current status is not a member of the entity's sequence."""
    code = "UNSUPPORTED_SOURCE"


class BackwardTransition(LifecycleError):
    """Target status lies earlier in the sequence than the current one."""
    code = "BACKWARD_TRANSITION"


class FrozenEntity(LifecycleError):
    """Order is on HOLD or DELETED."""
    code = "FROZEN_ENTITY"


class MissingEligibilityFields(LifecycleError):
    code = "MISSING_ELIGIBILITY_FIELDS"


# =============================================================================
# LEDGER
# =============================================================================

class AlreadyCompleted(LifecycleError):
    code = "ALREADY_COMPLETED"


class BeneficiaryMismatch(LifecycleError):
    code = "BENEFICIARY_MISMATCH"


class TransactionExhausted(LifecycleError):
    """Bank transaction has no remaining capacity for the requested amount."""
    code = "TRANSACTION_EXHAUSTED"


class AllocationExceedsRequest(LifecycleError):
    code = "ALLOCATION_EXCEEDS_REQUEST"


# =============================================================================
# GENERAL
# =============================================================================

class PreconditionNotMet(LifecycleError):
    """A required document (POD, LR copy, invoice) is missing."""
    code = "PRECONDITION_NOT_MET"


class NotFound(LifecycleError):
    code = "NOT_FOUND"


class TransactionNotFound(NotFound):
    code = "TRANSACTION_NOT_FOUND"


class ValidationFailed(LifecycleError):
    """Input breaks a business rule (ceilings, required values)."""
    code = "VALIDATION_FAILED"


class Conflict(LifecycleError):
    code = "CONFLICT"


class PermissionDenied(LifecycleError):
    """Caller's role may not set one of the supplied fields."""
    code = "PERMISSION_DENIED"
