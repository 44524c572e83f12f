"""
Preference-driven prebooking.

Every inhabitant carries a weekday -> dining mode map. For the active
season the map is fitted to the cooking days and turned into tickets for
the bookable dinners of the next PREBOOKING_WINDOW_DAYS days:

    - a missing ticket on a wanted day is booked (SYSTEM_CREATED)
    - a system-made ticket on a day now set to NONE is cancelled while it
      is still inside the cancellation window
    - a ticket the inhabitant gave up (user cancel or release) is never
      booked again

Running it twice in a row changes nothing the second time.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from commonmeal.core.calendar import (
    WEEKDAYS,
    cancellation_deadline,
    is_before_deadline,
    local_date,
    utcnow,
    weekday_name,
)
from commonmeal.core.config import get_settings
from commonmeal.core.errors import BookingConflictError, DomainError, NoActiveSeasonError, NotFoundError
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import DinnerMode, OrderAuditAction, OrderState
from commonmeal.models.household import Inhabitant
from commonmeal.models.order import Order, OrderHistory
from commonmeal.models.season import Season
from commonmeal.services.booking import BOOKABLE_DINNER_STATES, OrderService
from commonmeal.services.season import SeasonService

logger = logging.getLogger(__name__)

LIVE_ORDER_STATES = (OrderState.BOOKED, OrderState.RELEASED, OrderState.CLOSED)
SYSTEM_ACTIONS = {OrderAuditAction.SYSTEM_CREATED, OrderAuditAction.SYSTEM_UPDATED}


def validate_preferences(preferences: Dict[str, str]) -> Dict[str, str]:
    """
    Normalize a weekday -> mode map.

    >>> validate_preferences({"Monday": "takeaway"})
    {'monday': 'TAKEAWAY'}
    """
    cleaned = {}
    for day, mode in preferences.items():
        key = day.strip().lower()
        if key not in WEEKDAYS:
            raise ValueError(f"Unknown weekday '{day}'")
        try:
            cleaned[key] = DinnerMode(str(mode).strip().upper()).value
        except ValueError:
            raise ValueError(f"Unknown dining mode '{mode}' for {key}")
    return {day: cleaned[day] for day in WEEKDAYS if day in cleaned}


def clip_preferences(preferences: Optional[Dict[str, str]], cooking_days: Iterable[str]) -> Dict[str, str]:
    """
    Fit preferences to a season's cooking days.

    No preferences means dine in on every cooking day. A cooking day
    without an entry is dine in too; every other day is NONE.
    """
    cooking = set(cooking_days)
    preferences = preferences or {}
    return {
        day: preferences.get(day, DinnerMode.DINEIN.value) if day in cooking else DinnerMode.NONE.value
        for day in WEEKDAYS
    }


def lives_there_on(day: date, moved_in: Optional[date], move_out: Optional[date]) -> bool:
    if moved_in is not None and day < moved_in:
        return False
    return move_out is None or day <= move_out


@dataclass
class ScaffoldResult:
    season_id: Optional[int] = None
    created: int = 0
    removed: int = 0
    unchanged: int = 0
    skipped_cancelled: int = 0
    preferences_clipped: int = 0
    households: Set[int] = field(default_factory=set)
    failures: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "season_id": self.season_id,
            "created": self.created,
            "removed": self.removed,
            "unchanged": self.unchanged,
            "skipped_cancelled": self.skipped_cancelled,
            "preferences_clipped": self.preferences_clipped,
            "households": len(self.households),
            "failed": len(self.failures),
            "errors": self.failures[:10],
        }


class PrebookingService:
    """Keeps system-made tickets in line with inhabitants' dinner preferences."""

    def __init__(self, db: Session, window_days: Optional[int] = None):
        self.db = db
        self.window_days = get_settings().PREBOOKING_WINDOW_DAYS if window_days is None else window_days
        self.orders = OrderService(db)

    # ---- preferences ----

    def set_preferences(self, inhabitant_id: int, preferences: Dict[str, str]) -> Inhabitant:
        inhabitant = self.db.get(Inhabitant, inhabitant_id)
        if inhabitant is None:
            raise NotFoundError("Inhabitant", inhabitant_id)
        inhabitant.dinner_preferences = validate_preferences(preferences)
        self.db.commit()
        self.db.refresh(inhabitant)
        logger.info(f"Dinner preferences of inhabitant {inhabitant.id} set to {inhabitant.dinner_preferences}")
        return inhabitant

    def clip_season_preferences(self, season: Season, inhabitants: Iterable[Inhabitant]) -> int:
        """Store preferences fitted to the season; returns how many changed."""
        changed = 0
        for inhabitant in inhabitants:
            clipped = clip_preferences(inhabitant.dinner_preferences, season.cooking_days)
            if clipped != inhabitant.dinner_preferences:
                inhabitant.dinner_preferences = clipped
                changed += 1
        self.db.commit()
        return changed

    # ---- scaffolding ----

    def scaffoldable_dinners(self, season: Season, now: datetime) -> List[DinnerEvent]:
        today = local_date(now)
        return list(self.db.scalars(
            select(DinnerEvent)
            .where(
                DinnerEvent.season_id == season.id,
                DinnerEvent.state.in_(BOOKABLE_DINNER_STATES),
                DinnerEvent.date >= today,
                DinnerEvent.date <= today + timedelta(days=self.window_days),
            )
            .order_by(DinnerEvent.date, DinnerEvent.id)
        ))

    def _existing(self, dinner_ids: List[int]) -> Tuple[Dict[Tuple[int, int], Order], Set[Tuple[int, int]]]:
        """Live own tickets by (inhabitant, dinner), and the pairs an inhabitant gave up."""
        live = {
            (o.inhabitant_id, o.dinner_event_id): o
            for o in self.db.scalars(
                select(Order).where(
                    Order.dinner_event_id.in_(dinner_ids),
                    Order.state.in_(LIVE_ORDER_STATES),
                    Order.is_guest_ticket.is_(False),
                )
            )
        }
        # history keeps the inhabitant at the time, so a released ticket
        # claimed by someone else still counts for whoever released it
        given_up = set(self.db.execute(
            select(OrderHistory.inhabitant_id, OrderHistory.dinner_event_id)
            .join(Order, OrderHistory.order_id == Order.id)
            .where(
                OrderHistory.dinner_event_id.in_(dinner_ids),
                OrderHistory.action == OrderAuditAction.USER_CANCELLED,
                Order.is_guest_ticket.is_(False),
            )
        ).all())
        return live, given_up

    def scaffold(
        self,
        season_id: Optional[int] = None,
        now: Optional[datetime] = None,
        household_id: Optional[int] = None,
    ) -> ScaffoldResult:
        """
        Bring tickets in the prebooking window in line with preferences.

        Without a season id the active season is used; when there is none
        the run is skipped. Per-ticket failures are collected, not raised.
        """
        seasons = SeasonService(self.db)
        if season_id is None:
            try:
                season = seasons.get_active_season()
            except NoActiveSeasonError:
                logger.info("No active season, prebooking skipped")
                return ScaffoldResult()
        else:
            season = seasons.get_season(season_id)
        now = now or utcnow()
        result = ScaffoldResult(season_id=season.id)

        stmt = select(Inhabitant).order_by(Inhabitant.id)
        if household_id is not None:
            stmt = stmt.where(Inhabitant.household_id == household_id)
        inhabitants = list(self.db.scalars(stmt))
        result.preferences_clipped = self.clip_season_preferences(season, inhabitants)

        dinners = self.scaffoldable_dinners(season, now)
        if not dinners or not inhabitants:
            return result
        live, given_up = self._existing([d.id for d in dinners])
        # plain values: per-ticket commits expire the ORM objects
        residents = [
            (
                i.id,
                i.household_id,
                i.household.moved_in_date,
                i.household.move_out_date,
                dict(i.dinner_preferences),
            )
            for i in inhabitants
        ]
        plan = [(d.id, d.date) for d in dinners]

        for dinner_id, dinner_date in plan:
            weekday = weekday_name(dinner_date)
            for inhabitant_id, inhabitant_household_id, moved_in, move_out, preferences in residents:
                if not lives_there_on(dinner_date, moved_in, move_out):
                    continue
                mode = DinnerMode(preferences[weekday])
                key = (inhabitant_id, dinner_id)
                order = live.get(key)

                if mode == DinnerMode.NONE:
                    if order is not None and self._remove_if_system_made(order, season, dinner_date, now):
                        result.removed += 1
                        result.households.add(inhabitant_household_id)
                    continue
                if order is not None:
                    result.unchanged += 1
                    continue
                if key in given_up:
                    result.skipped_cancelled += 1
                    continue

                try:
                    self.orders.book(dinner_id, inhabitant_id, dinner_mode=mode)
                except BookingConflictError:
                    result.unchanged += 1
                    continue
                except DomainError as e:
                    self.db.rollback()
                    logger.warning(f"Prebooking inhabitant {inhabitant_id} on dinner {dinner_id} failed: {e}")
                    result.failures.append(f"Inhabitant {inhabitant_id} on dinner {dinner_id}: {e}")
                    continue
                result.created += 1
                result.households.add(inhabitant_household_id)

        logger.info(
            f"Prebooking for season {season.short_name}: {result.created} created, "
            f"{result.removed} removed, {result.unchanged} unchanged, "
            f"{result.skipped_cancelled} given up, {len(result.failures)} failed"
        )
        return result

    def _remove_if_system_made(self, order: Order, season: Season, dinner_date: date, now: datetime) -> bool:
        if order.state != OrderState.BOOKED or order.booked_by_user_id is not None:
            return False
        # claimed or edited by a person: theirs now
        if {h.action for h in self.orders.history(order.id)} - SYSTEM_ACTIONS:
            return False
        if not is_before_deadline(now, cancellation_deadline(dinner_date, season.ticket_is_cancellable_days_before)):
            return False
        self.orders.force_cancel(order, OrderAuditAction.SYSTEM_DELETED, reason="preference")
        self.db.commit()
        return True
