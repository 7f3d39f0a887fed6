"""
Enum Utilities for VARCHAR-based Status Fields

STORAGE STANDARD:
━━━━━━━━━━━━━━━━━
• Database: VARCHAR(50), never a native ENUM type
• SQLAlchemy: String(50) with Mapped[str]
• Pydantic: Python Enum for API validation
• Case: All enum values stored in UPPERCASE

DATA FLOW:
━━━━━━━━━━
INPUT (API Request):
    Pydantic Enum → .value → String → Database
    Example: VehicleStatus.GATE_IN → "GATE_IN" → VARCHAR

OUTPUT (API Response):
    Database → String → Return directly
"""

from enum import Enum
from typing import Any, Optional, Type


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(VehicleStatus.ARRIVED)
        'ARRIVED'
        >>> get_enum_value("ARRIVED")
        'ARRIVED'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def enum_comment(enum_class: Type[Enum]) -> str:
    """Comma-separated valid values, for VARCHAR column comments."""
    return ", ".join(e.value for e in enum_class)


def status_in(db_value: Optional[str], *enum_values: Enum) -> bool:
    """Check if a database value matches any of the given enums."""
    if db_value is None:
        return False
    return db_value in {e.value for e in enum_values}
