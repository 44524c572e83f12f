"""
Order audit trail writer.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from commonmeal.core.calendar import to_db_timestamp, utcnow
from commonmeal.models.enums import OrderAuditAction
from commonmeal.models.order import Order, OrderHistory


def record_order_event(
    db: Session,
    order: Order,
    action: OrderAuditAction,
    performed_by_user_id: Optional[int] = None,
    audit_data: Optional[Dict[str, Any]] = None,
) -> OrderHistory:
    """
    Append one history row for an order transition.

    The caller owns the transaction: the row is added to the session, never
    committed here, so it lands atomically with the transition it describes.
    """
    entry = OrderHistory(
        order_id=order.id,
        action=action,
        performed_by_user_id=performed_by_user_id,
        audit_data=audit_data or {},
        timestamp=to_db_timestamp(utcnow()),
        inhabitant_id=order.inhabitant_id,
        dinner_event_id=order.dinner_event_id,
        season_id=order.dinner_event.season_id if order.dinner_event else None,
    )
    db.add(entry)
    return entry
