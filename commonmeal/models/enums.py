"""
Closed enumerations for every state machine and category in the schema.
"""
from enum import Enum

from sqlalchemy import Enum as SAEnum


class DinnerState(str, Enum):
    """Lifecycle of a dinner event."""
    SCHEDULED = "SCHEDULED"
    ANNOUNCED = "ANNOUNCED"
    CONSUMED = "CONSUMED"
    CANCELLED = "CANCELLED"


class OrderState(str, Enum):
    """Lifecycle of a single booking."""
    BOOKED = "BOOKED"
    RELEASED = "RELEASED"
    CANCELLED = "CANCELLED"
    CLOSED = "CLOSED"


class DinnerMode(str, Enum):
    TAKEAWAY = "TAKEAWAY"
    DINEIN = "DINEIN"
    DINEINLATE = "DINEINLATE"
    NONE = "NONE"


class TicketType(str, Enum):
    ADULT = "ADULT"
    CHILD = "CHILD"
    BABY = "BABY"


class TeamRole(str, Enum):
    CHEF = "CHEF"
    COOK = "COOK"
    JUNIORHELPER = "JUNIORHELPER"


class OrderAuditAction(str, Enum):
    """Actions recorded in the order history log."""
    USER_BOOKED = "USER_BOOKED"
    USER_CANCELLED = "USER_CANCELLED"
    USER_CLAIMED = "USER_CLAIMED"
    SYSTEM_CREATED = "SYSTEM_CREATED"
    SYSTEM_DELETED = "SYSTEM_DELETED"
    SYSTEM_UPDATED = "SYSTEM_UPDATED"


class JobType(str, Enum):
    DAILY_MAINTENANCE = "DAILY_MAINTENANCE"
    MONTHLY_BILLING = "MONTHLY_BILLING"
    HEYNABO_IMPORT = "HEYNABO_IMPORT"
    MAINTENANCE_IMPORT = "MAINTENANCE_IMPORT"
    MAINTENANCE_EXPORT = "MAINTENANCE_EXPORT"


class JobStatus(str, Enum):
    """RUNNING until exactly one terminal update."""
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


TERMINAL_ORDER_STATES = frozenset({OrderState.CANCELLED, OrderState.CLOSED})
TERMINAL_DINNER_STATES = frozenset({DinnerState.CONSUMED, DinnerState.CANCELLED})


def enum_column_type(enum_cls: type[Enum]) -> SAEnum:
    """Non-native SQL enum storing the member name, portable across backends."""
    return SAEnum(enum_cls, name=enum_cls.__name__.lower(), native_enum=False, length=20)
