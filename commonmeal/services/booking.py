"""
Order lifecycle service.

State machine:

    (book) -> BOOKED -> RELEASED -> BOOKED (claim)
              BOOKED | RELEASED -> CANCELLED
              BOOKED | RELEASED -> CLOSED (billing only)

Every transition writes exactly one OrderHistory row in the same
transaction as the state change.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commonmeal.core.calendar import (
    cancellation_deadline,
    dining_mode_deadline,
    is_before_deadline,
    to_db_timestamp,
    utcnow,
)
from commonmeal.core.errors import (
    BookingConflictError,
    ConflictError,
    DataIntegrityError,
    GuardViolationError,
    InvalidStateTransitionError,
    NotFoundError,
    SeasonMismatchError,
    TooLateToCancelError,
    TooLateToChangeModeError,
)
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import DinnerMode, DinnerState, OrderAuditAction, OrderState
from commonmeal.models.household import Inhabitant
from commonmeal.models.order import Order, OrderHistory
from commonmeal.models.season import Season, TicketPrice
from commonmeal.services.audit import record_order_event
from commonmeal.services.season import SeasonService

logger = logging.getLogger(__name__)

BOOKABLE_DINNER_STATES = (DinnerState.SCHEDULED, DinnerState.ANNOUNCED)


class OrderService:
    """Booking, release, cancellation, claim and dining-mode edits."""

    def __init__(self, db: Session):
        self.db = db

    # ---- lookups ----

    def get_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def list_for_dinner(self, dinner_event_id: int) -> List[Order]:
        return list(self.db.scalars(
            select(Order).where(Order.dinner_event_id == dinner_event_id).order_by(Order.id)
        ))

    def history(self, order_id: int) -> List[OrderHistory]:
        self.get_order(order_id)
        return list(self.db.scalars(
            select(OrderHistory).where(OrderHistory.order_id == order_id).order_by(OrderHistory.id)
        ))

    def _season_for(self, dinner: DinnerEvent) -> Season:
        if dinner.season is not None:
            return dinner.season
        return SeasonService(self.db).get_active_season()

    def _get_dinner(self, dinner_event_id: int) -> DinnerEvent:
        dinner = self.db.get(DinnerEvent, dinner_event_id)
        if dinner is None:
            raise NotFoundError("DinnerEvent", dinner_event_id)
        return dinner

    # ---- transitions ----

    def book(
        self,
        dinner_event_id: int,
        inhabitant_id: int,
        booked_by_user_id: Optional[int] = None,
        dinner_mode: DinnerMode = DinnerMode.DINEIN,
        is_guest_ticket: bool = False,
        ticket_price_id: Optional[int] = None,
    ) -> Order:
        """
        Create a BOOKED order with the price that applies right now.

        The booking deadline is not checked; only cancellation is windowed.
        A second live order for the same inhabitant and dinner is refused by
        the unique index and surfaces as BookingConflictError.
        """
        dinner = self._get_dinner(dinner_event_id)
        if dinner.state not in BOOKABLE_DINNER_STATES:
            raise GuardViolationError(
                f"Dinner event {dinner.id} is {dinner.state.value} and does not accept bookings"
            )
        inhabitant = self.db.get(Inhabitant, inhabitant_id)
        if inhabitant is None:
            raise NotFoundError("Inhabitant", inhabitant_id)

        season = self._season_for(dinner)
        if ticket_price_id is not None:
            ticket_price = self.db.get(TicketPrice, ticket_price_id)
            if ticket_price is None:
                raise NotFoundError("TicketPrice", ticket_price_id)
            if ticket_price.season_id != season.id:
                raise SeasonMismatchError(
                    f"Ticket price {ticket_price.id} belongs to season {ticket_price.season_id}, "
                    f"dinner {dinner.id} to season {season.id}"
                )
        else:
            ticket_price = SeasonService(self.db).determine_ticket_price(season, inhabitant, dinner.date)

        order = Order(
            dinner_event_id=dinner.id,
            inhabitant_id=inhabitant.id,
            booked_by_user_id=booked_by_user_id,
            ticket_price_id=ticket_price.id,
            price_at_booking=ticket_price.price,
            dinner_mode=dinner_mode,
            state=OrderState.BOOKED,
            is_guest_ticket=is_guest_ticket,
        )
        try:
            with self.db.begin_nested():
                self.db.add(order)
                self.db.flush()
        except IntegrityError:
            logger.info(f"Booking conflict for inhabitant {inhabitant.id} on dinner {dinner.id}")
            raise BookingConflictError(inhabitant.id, dinner.id)

        record_order_event(
            self.db,
            order,
            OrderAuditAction.USER_BOOKED if booked_by_user_id else OrderAuditAction.SYSTEM_CREATED,
            performed_by_user_id=booked_by_user_id,
            audit_data={
                "ticket_type": ticket_price.ticket_type.value,
                "price_at_booking": order.price_at_booking,
                "dinner_mode": order.dinner_mode.value,
                "is_guest_ticket": order.is_guest_ticket,
            },
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} booked for inhabitant {inhabitant.id} on dinner {dinner.id}")
        return order

    def release(
        self,
        order_id: int,
        performed_by_user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Give up a ticket before the cancellation deadline. It stays claimable."""
        order = self.get_order(order_id)
        if order.state != OrderState.BOOKED:
            raise InvalidStateTransitionError("Order", order.id, order.state, OrderState.RELEASED)

        now = now or utcnow()
        self._check_cancellation_window(order, now)

        order.state = OrderState.RELEASED
        order.released_at = to_db_timestamp(now)
        record_order_event(
            self.db,
            order,
            OrderAuditAction.USER_CANCELLED if performed_by_user_id else OrderAuditAction.SYSTEM_UPDATED,
            performed_by_user_id=performed_by_user_id,
            audit_data={"from": OrderState.BOOKED.value, "to": OrderState.RELEASED.value},
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} released")
        return order

    def cancel(
        self,
        order_id: int,
        performed_by_user_id: Optional[int] = None,
        admin: bool = False,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Cancel an order for good.

        Owners are held to the cancellation window; administrative
        cancellation is not.
        """
        order = self.get_order(order_id)
        if not admin:
            if order.state not in (OrderState.BOOKED, OrderState.RELEASED):
                raise InvalidStateTransitionError("Order", order.id, order.state, OrderState.CANCELLED)
            self._check_cancellation_window(order, now or utcnow())

        self.force_cancel(
            order,
            OrderAuditAction.SYSTEM_DELETED if admin else OrderAuditAction.USER_CANCELLED,
            performed_by_user_id=performed_by_user_id,
            reason="admin" if admin else "user",
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} cancelled ({'admin' if admin else 'user'})")
        return order

    def force_cancel(
        self,
        order: Order,
        action: OrderAuditAction,
        performed_by_user_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Move a BOOKED or RELEASED order to CANCELLED without committing."""
        if order.state not in (OrderState.BOOKED, OrderState.RELEASED):
            raise InvalidStateTransitionError("Order", order.id, order.state, OrderState.CANCELLED)
        previous = order.state
        order.state = OrderState.CANCELLED
        record_order_event(
            self.db,
            order,
            action,
            performed_by_user_id=performed_by_user_id,
            audit_data={"from": previous.value, "to": OrderState.CANCELLED.value, "reason": reason},
        )

    def claim(
        self,
        order_id: int,
        inhabitant_id: int,
        performed_by_user_id: Optional[int] = None,
    ) -> Order:
        """
        Take over a released ticket.

        The order keeps its price and goes back to BOOKED under the claimant.
        The RELEASED check and the update are one statement so two claimants
        cannot both win.
        """
        order = self.get_order(order_id)
        if order.dinner_event.state not in BOOKABLE_DINNER_STATES:
            raise GuardViolationError(
                f"Dinner event {order.dinner_event_id} is {order.dinner_event.state.value}; "
                f"its tickets can no longer be claimed"
            )
        if self.db.get(Inhabitant, inhabitant_id) is None:
            raise NotFoundError("Inhabitant", inhabitant_id)
        previous_inhabitant_id = order.inhabitant_id

        try:
            with self.db.begin_nested():
                result = self.db.execute(
                    update(Order)
                    .where(Order.id == order.id, Order.state == OrderState.RELEASED)
                    .values(
                        state=OrderState.BOOKED,
                        inhabitant_id=inhabitant_id,
                        booked_by_user_id=performed_by_user_id,
                        released_at=None,
                    )
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            raise BookingConflictError(inhabitant_id, order.dinner_event_id)
        if result.rowcount != 1:
            self.db.refresh(order)
            raise ConflictError(f"Order {order.id} is {order.state.value} and cannot be claimed")

        self.db.refresh(order)
        record_order_event(
            self.db,
            order,
            OrderAuditAction.USER_CLAIMED,
            performed_by_user_id=performed_by_user_id,
            audit_data={
                "from": OrderState.RELEASED.value,
                "to": OrderState.BOOKED.value,
                "previous_inhabitant_id": previous_inhabitant_id,
            },
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} claimed by inhabitant {inhabitant_id}")
        return order

    def update_dining_mode(
        self,
        order_id: int,
        dinner_mode: DinnerMode,
        performed_by_user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Change how a booked ticket is eaten. State is unchanged."""
        order = self.get_order(order_id)
        if order.state != OrderState.BOOKED:
            raise GuardViolationError(
                f"Dining mode of order {order.id} cannot change while it is {order.state.value}"
            )
        if order.dinner_mode == dinner_mode:
            return order

        season = self._season_for(order.dinner_event)
        deadline = dining_mode_deadline(order.dinner_event.date, season.dining_mode_is_editable_minutes_before)
        if not is_before_deadline(now or utcnow(), deadline):
            raise TooLateToChangeModeError(order.id, deadline)

        previous = order.dinner_mode
        order.dinner_mode = dinner_mode
        record_order_event(
            self.db,
            order,
            OrderAuditAction.USER_CLAIMED if performed_by_user_id else OrderAuditAction.SYSTEM_UPDATED,
            performed_by_user_id=performed_by_user_id,
            audit_data={"field": "dinner_mode", "from": previous.value, "to": dinner_mode.value},
        )
        self.db.commit()
        self.db.refresh(order)
        return order

    def close(self, order: Order, now: Optional[datetime] = None) -> bool:
        """
        Mark a consumed dinner's order as billed, without committing.

        Returns False when the order is already CLOSED: closing is
        idempotent. A missing price is a data integrity failure.
        """
        if order.state == OrderState.CLOSED:
            return False
        if order.state not in (OrderState.BOOKED, OrderState.RELEASED):
            raise InvalidStateTransitionError("Order", order.id, order.state, OrderState.CLOSED)
        if order.dinner_event is None:
            raise DataIntegrityError(f"Order {order.id} has no dinner event")
        if order.dinner_event.state != DinnerState.CONSUMED:
            raise GuardViolationError(
                f"Order {order.id} cannot close before dinner {order.dinner_event_id} is consumed"
            )
        if order.price_at_booking is None:
            raise DataIntegrityError(f"Order {order.id} has no price at booking")

        previous = order.state
        order.state = OrderState.CLOSED
        order.closed_at = to_db_timestamp(now or utcnow())
        record_order_event(
            self.db,
            order,
            OrderAuditAction.SYSTEM_UPDATED,
            audit_data={"from": previous.value, "to": OrderState.CLOSED.value},
        )
        return True

    def _check_cancellation_window(self, order: Order, now: datetime) -> None:
        season = self._season_for(order.dinner_event)
        deadline = cancellation_deadline(order.dinner_event.date, season.ticket_is_cancellable_days_before)
        if not is_before_deadline(now, deadline):
            raise TooLateToCancelError(order.id, deadline)
