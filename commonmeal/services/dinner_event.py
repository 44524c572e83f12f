"""
Dinner event lifecycle service.

    SCHEDULED -> ANNOUNCED -> CONSUMED
    SCHEDULED | ANNOUNCED -> CANCELLED (cascades to open orders)

Dinners whose time has passed are consumed by daily maintenance whether or
not they were announced.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from commonmeal.core.calendar import dinner_end_time, to_utc, utcnow
from commonmeal.core.errors import InvalidStateTransitionError, NotFoundError, SeasonMismatchError
from commonmeal.models.cooking_team import CookingTeam
from commonmeal.models.dinner_event import DinnerEvent, DinnerEventAllergen
from commonmeal.models.enums import DinnerState, OrderAuditAction, OrderState
from commonmeal.models.household import AllergyType, Inhabitant
from commonmeal.models.order import Order
from commonmeal.services.booking import OrderService
from commonmeal.services.season import SeasonService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    DinnerState.SCHEDULED: {DinnerState.ANNOUNCED, DinnerState.CONSUMED, DinnerState.CANCELLED},
    DinnerState.ANNOUNCED: {DinnerState.CONSUMED, DinnerState.CANCELLED},
    DinnerState.CONSUMED: set(),
    DinnerState.CANCELLED: set(),
}


class DinnerEventService:
    def __init__(self, db: Session):
        self.db = db

    def get_dinner(self, dinner_event_id: int) -> DinnerEvent:
        dinner = self.db.get(DinnerEvent, dinner_event_id)
        if dinner is None:
            raise NotFoundError("DinnerEvent", dinner_event_id)
        return dinner

    def list_dinners(self, start: Optional[date] = None, end: Optional[date] = None,
                     season_id: Optional[int] = None) -> List[DinnerEvent]:
        stmt = select(DinnerEvent).order_by(DinnerEvent.date, DinnerEvent.id)
        if start is not None:
            stmt = stmt.where(DinnerEvent.date >= start)
        if end is not None:
            stmt = stmt.where(DinnerEvent.date <= end)
        if season_id is not None:
            stmt = stmt.where(DinnerEvent.season_id == season_id)
        return list(self.db.scalars(stmt))

    def create_dinner(
        self,
        dinner_date: date,
        season_id: Optional[int] = None,
        cooking_team_id: Optional[int] = None,
        chef_id: Optional[int] = None,
        menu_title: str = "TBD",
        menu_description: Optional[str] = None,
        heynabo_event_id: Optional[int] = None,
    ) -> DinnerEvent:
        if season_id is not None:
            season = SeasonService(self.db).get_season(season_id)
            if not season.season_start <= dinner_date <= season.season_end:
                raise SeasonMismatchError(
                    f"{dinner_date.isoformat()} is outside season {season.short_name} "
                    f"({season.season_start.isoformat()} - {season.season_end.isoformat()})"
                )
        if chef_id is not None and self.db.get(Inhabitant, chef_id) is None:
            raise NotFoundError("Inhabitant", chef_id)

        dinner = DinnerEvent(
            date=dinner_date,
            season_id=season_id,
            chef_id=chef_id,
            menu_title=menu_title,
            menu_description=menu_description,
            heynabo_event_id=heynabo_event_id,
            state=DinnerState.SCHEDULED,
            total_cost=0,
        )
        if cooking_team_id is not None:
            dinner.cooking_team_id = self._checked_team(cooking_team_id, season_id).id
        self.db.add(dinner)
        self.db.commit()
        self.db.refresh(dinner)
        return dinner

    def assign_team(self, dinner_event_id: int, cooking_team_id: int) -> DinnerEvent:
        dinner = self.get_dinner(dinner_event_id)
        dinner.cooking_team_id = self._checked_team(cooking_team_id, dinner.season_id).id
        self.db.commit()
        self.db.refresh(dinner)
        return dinner

    def _checked_team(self, cooking_team_id: int, season_id: Optional[int]) -> CookingTeam:
        team = self.db.get(CookingTeam, cooking_team_id)
        if team is None:
            raise NotFoundError("CookingTeam", cooking_team_id)
        if season_id is not None and team.season_id != season_id:
            raise SeasonMismatchError(
                f"Team {team.name} belongs to season {team.season_id}, not season {season_id}"
            )
        return team

    def update_menu(
        self,
        dinner_event_id: int,
        menu_title: Optional[str] = None,
        menu_description: Optional[str] = None,
        menu_picture_url: Optional[str] = None,
    ) -> DinnerEvent:
        dinner = self.get_dinner(dinner_event_id)
        if dinner.state not in (DinnerState.SCHEDULED, DinnerState.ANNOUNCED):
            raise InvalidStateTransitionError("DinnerEvent", dinner.id, dinner.state, dinner.state)
        if menu_title is not None:
            dinner.menu_title = menu_title
        if menu_description is not None:
            dinner.menu_description = menu_description
        if menu_picture_url is not None:
            dinner.menu_picture_url = menu_picture_url
        self.db.commit()
        self.db.refresh(dinner)
        return dinner

    def _transition(self, dinner: DinnerEvent, target: DinnerState) -> None:
        if target not in ALLOWED_TRANSITIONS[dinner.state]:
            raise InvalidStateTransitionError("DinnerEvent", dinner.id, dinner.state, target)
        dinner.state = target

    def announce(
        self,
        dinner_event_id: int,
        total_cost: Optional[int] = None,
        menu_title: Optional[str] = None,
        menu_description: Optional[str] = None,
    ) -> DinnerEvent:
        """Finalize menu and cost and open the dinner to bookers."""
        dinner = self.get_dinner(dinner_event_id)
        self._transition(dinner, DinnerState.ANNOUNCED)
        if total_cost is not None:
            if total_cost < 0:
                raise ValueError("total_cost cannot be negative")
            dinner.total_cost = total_cost
        if menu_title is not None:
            dinner.menu_title = menu_title
        if menu_description is not None:
            dinner.menu_description = menu_description
        self.db.commit()
        self.db.refresh(dinner)
        logger.info(f"Dinner {dinner.id} on {dinner.date} announced")
        return dinner

    def consume(self, dinner_event_id: int) -> DinnerEvent:
        dinner = self.get_dinner(dinner_event_id)
        self._transition(dinner, DinnerState.CONSUMED)
        self.db.commit()
        self.db.refresh(dinner)
        logger.info(f"Dinner {dinner.id} on {dinner.date} consumed")
        return dinner

    def cancel(self, dinner_event_id: int, performed_by_user_id: Optional[int] = None) -> DinnerEvent:
        """
        Cancel a dinner and every open order on it, all or nothing.

        CLOSED orders are already billed and stay as they are.
        """
        dinner = self.get_dinner(dinner_event_id)
        orders = OrderService(self.db)
        try:
            self._transition(dinner, DinnerState.CANCELLED)
            open_orders = self.db.scalars(
                select(Order)
                .where(
                    Order.dinner_event_id == dinner.id,
                    Order.state.in_([OrderState.BOOKED, OrderState.RELEASED]),
                )
                .order_by(Order.id)
            ).all()
            for order in open_orders:
                orders.force_cancel(
                    order,
                    OrderAuditAction.SYSTEM_DELETED,
                    performed_by_user_id=performed_by_user_id,
                    reason="dinner_cancelled",
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(dinner)
        logger.info(f"Dinner {dinner.id} on {dinner.date} cancelled, {len(open_orders)} order(s) cancelled")
        return dinner

    def set_allergens(self, dinner_event_id: int, allergy_type_ids: Iterable[int]) -> DinnerEvent:
        """Replace the dinner's allergen disclosure."""
        dinner = self.get_dinner(dinner_event_id)
        wanted = set(allergy_type_ids)
        for allergy_type_id in wanted:
            if self.db.get(AllergyType, allergy_type_id) is None:
                raise NotFoundError("AllergyType", allergy_type_id)

        current = {a.allergy_type_id: a for a in dinner.allergens}
        for allergy_type_id, allergen in current.items():
            if allergy_type_id not in wanted:
                dinner.allergens.remove(allergen)
        for allergy_type_id in sorted(wanted - set(current)):
            dinner.allergens.append(DinnerEventAllergen(allergy_type_id=allergy_type_id))
        self.db.commit()
        self.db.refresh(dinner)
        return dinner

    def dinners_due_for_consumption(self, now: Optional[datetime] = None) -> List[DinnerEvent]:
        """Open dinners whose dinner window has ended."""
        now = to_utc(now or utcnow())
        candidates = self.db.scalars(
            select(DinnerEvent)
            .where(
                DinnerEvent.state.in_([DinnerState.SCHEDULED, DinnerState.ANNOUNCED]),
                DinnerEvent.date <= now.date() + timedelta(days=1),
            )
            .order_by(DinnerEvent.date, DinnerEvent.id)
        ).all()
        return [d for d in candidates if dinner_end_time(d.date) <= now]
