"""
Order and OrderHistory models.

Order: one inhabitant's ticket for one dinner, with the price captured at
booking time.
OrderHistory: append-only audit log of every order transition.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    event,
    false,
    func,
)
from sqlalchemy.orm import relationship

from commonmeal.core.errors import DataIntegrityError
from commonmeal.db.base import Base
from commonmeal.models.enums import DinnerMode, OrderAuditAction, OrderState, enum_column_type


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dinner_event_id = Column(Integer, ForeignKey("dinner_events.id", ondelete="RESTRICT"), nullable=False)
    inhabitant_id = Column(Integer, ForeignKey("inhabitants.id", ondelete="RESTRICT"), nullable=False)
    booked_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    ticket_price_id = Column(Integer, ForeignKey("ticket_prices.id", ondelete="SET NULL"), nullable=True)
    price_at_booking = Column(Integer, nullable=True)  # legacy imports may lack it
    dinner_mode = Column(enum_column_type(DinnerMode), nullable=False, default=DinnerMode.DINEIN)
    state = Column(enum_column_type(OrderState), nullable=False, default=OrderState.BOOKED)
    is_guest_ticket = Column(Boolean, nullable=False, default=False)
    released_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dinner_event = relationship("DinnerEvent", back_populates="orders")
    inhabitant = relationship("Inhabitant")
    booked_by = relationship("User")
    ticket_price = relationship("TicketPrice")
    transaction = relationship("Transaction", back_populates="order", uselist=False)
    history = relationship(
        "OrderHistory",
        back_populates="order",
        order_by="OrderHistory.id",
        passive_deletes=True,
    )


# One live ticket per inhabitant per dinner. Guest tickets and cancelled
# orders are outside the constraint so a cancelled seat can be rebooked.
Index(
    "uq_orders_inhabitant_dinner_active",
    Order.inhabitant_id,
    Order.dinner_event_id,
    unique=True,
    sqlite_where=(Order.is_guest_ticket == false()) & (Order.state != OrderState.CANCELLED),
    postgresql_where=(Order.is_guest_ticket == false()) & (Order.state != OrderState.CANCELLED),
)
Index("idx_orders_dinner_state", Order.dinner_event_id, Order.state)


class OrderHistory(Base):
    """
    One audit entry.

    inhabitant_id, dinner_event_id and season_id are copied from the order
    when the entry is written so the log stays queryable after the order is
    gone. They are plain integers, not foreign keys.
    """
    __tablename__ = "order_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    action = Column(enum_column_type(OrderAuditAction), nullable=False)
    performed_by_user_id = Column(Integer, nullable=True)
    audit_data = Column(JSON, nullable=True)
    timestamp = Column(DateTime, nullable=False, server_default=func.now())
    inhabitant_id = Column(Integer, nullable=True)
    dinner_event_id = Column(Integer, nullable=True)
    season_id = Column(Integer, nullable=True)

    order = relationship("Order", back_populates="history")

    __table_args__ = (
        Index("idx_order_history_order", "order_id"),
        Index("idx_order_history_dinner_event", "dinner_event_id"),
        Index("idx_order_history_inhabitant", "inhabitant_id"),
    )


@event.listens_for(OrderHistory, "before_update")
def _refuse_history_update(mapper, connection, target):
    raise DataIntegrityError(f"Order history entry {target.id} is append-only and cannot be updated")


@event.listens_for(OrderHistory, "before_delete")
def _refuse_history_delete(mapper, connection, target):
    raise DataIntegrityError(f"Order history entry {target.id} is append-only and cannot be deleted")
