"""
Season calendar service: active-season resolution, activation, dinner
generation and ticket price lookup.
"""
import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from commonmeal.core.calendar import (
    age_on,
    compute_cooking_dates,
    local_date,
    normalize_weekdays,
    parse_date_range,
    utcnow,
)
from commonmeal.core.config import get_settings
from commonmeal.core.errors import (
    DataIntegrityError,
    GuardViolationError,
    NoActiveSeasonError,
    NotFoundError,
)
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import DinnerState, TicketType
from commonmeal.models.household import Inhabitant
from commonmeal.models.season import Season, TicketPrice

logger = logging.getLogger(__name__)

DateRange = Tuple[date, date]


def serialize_holidays(holidays: Iterable[DateRange]) -> List[dict]:
    return [{"start": start.isoformat(), "end": end.isoformat()} for start, end in holidays]


def holiday_ranges(season: Season) -> List[DateRange]:
    return [parse_date_range(raw) for raw in (season.holidays or [])]


def season_cooking_dates(season: Season) -> List[date]:
    return compute_cooking_dates(
        season.season_start,
        season.season_end,
        season.cooking_days or [],
        holiday_ranges(season),
    )


def ticket_type_for_age(prices: Sequence[TicketPrice], age: Optional[int]) -> TicketType:
    """
    Pick the ticket type for an age.

    Prices with an age limit are tried youngest first and the first limit the
    age is strictly below wins. No match, or an unknown age, means ADULT.

    >>> ticket_type_for_age([TicketPrice(ticket_type=TicketType.BABY, maximum_age_limit=2),
    ...                      TicketPrice(ticket_type=TicketType.CHILD, maximum_age_limit=12)], 2)
    <TicketType.CHILD: 'CHILD'>
    """
    if age is None:
        return TicketType.ADULT
    limited = sorted(
        (p for p in prices if p.maximum_age_limit is not None),
        key=lambda p: p.maximum_age_limit,
    )
    for price in limited:
        if age < price.maximum_age_limit:
            return price.ticket_type
    return TicketType.ADULT


class SeasonService:
    """Season lifecycle and the calendar rules derived from it."""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def get_season(self, season_id: int) -> Season:
        season = self.db.get(Season, season_id)
        if season is None:
            raise NotFoundError("Season", season_id)
        return season

    def list_seasons(self) -> List[Season]:
        return list(self.db.scalars(select(Season).order_by(Season.season_start)))

    def get_active_season(self) -> Season:
        """
        Resolve the single active season.

        More than one active row is corrupt data, not a choice to make here.
        """
        active = list(self.db.scalars(select(Season).where(Season.is_active.is_(True))))
        if not active:
            raise NoActiveSeasonError()
        if len(active) > 1:
            names = ", ".join(sorted(s.short_name for s in active))
            raise DataIntegrityError(f"More than one active season: {names}")
        return active[0]

    def create_season(
        self,
        short_name: str,
        season_start: date,
        season_end: date,
        cooking_days: Iterable[str],
        holidays: Iterable[DateRange] = (),
        ticket_is_cancellable_days_before: Optional[int] = None,
        dining_mode_is_editable_minutes_before: Optional[int] = None,
        consecutive_cooking_days: Optional[int] = None,
    ) -> Season:
        if season_end < season_start:
            raise ValueError(f"Season {short_name} ends before it starts")
        holidays = list(holidays)
        for start, end in holidays:
            if end < start:
                raise ValueError(f"Holiday {start} - {end} ends before it starts")

        season = Season(
            short_name=short_name,
            season_start=season_start,
            season_end=season_end,
            is_active=False,
            cooking_days=normalize_weekdays(cooking_days),
            holidays=serialize_holidays(holidays),
            ticket_is_cancellable_days_before=(
                self.settings.DEFAULT_TICKET_CANCELLABLE_DAYS_BEFORE
                if ticket_is_cancellable_days_before is None else ticket_is_cancellable_days_before
            ),
            dining_mode_is_editable_minutes_before=(
                self.settings.DEFAULT_DINING_MODE_EDITABLE_MINUTES_BEFORE
                if dining_mode_is_editable_minutes_before is None else dining_mode_is_editable_minutes_before
            ),
            consecutive_cooking_days=(
                self.settings.DEFAULT_CONSECUTIVE_COOKING_DAYS
                if consecutive_cooking_days is None else consecutive_cooking_days
            ),
        )
        self.db.add(season)
        self.db.commit()
        self.db.refresh(season)
        logger.info(f"Created season {season.short_name} ({season.season_start} - {season.season_end})")
        return season

    def update_rules(
        self,
        season_id: int,
        ticket_is_cancellable_days_before: Optional[int] = None,
        dining_mode_is_editable_minutes_before: Optional[int] = None,
        consecutive_cooking_days: Optional[int] = None,
    ) -> Season:
        """Change deadline/rotation rules. Existing orders keep their prices."""
        season = self.get_season(season_id)
        if ticket_is_cancellable_days_before is not None:
            season.ticket_is_cancellable_days_before = ticket_is_cancellable_days_before
        if dining_mode_is_editable_minutes_before is not None:
            season.dining_mode_is_editable_minutes_before = dining_mode_is_editable_minutes_before
        if consecutive_cooking_days is not None:
            if consecutive_cooking_days < 1:
                raise ValueError("consecutive_cooking_days must be at least 1")
            season.consecutive_cooking_days = consecutive_cooking_days
        self.db.commit()
        self.db.refresh(season)
        return season

    def activate(self, season_id: int, today: Optional[date] = None) -> Season:
        """Make this the only active season. Past seasons cannot be activated."""
        season = self.get_season(season_id)
        today = today or local_date(utcnow())
        if season.season_end < today:
            raise GuardViolationError(
                f"Season {season.short_name} ended on {season.season_end.isoformat()} and cannot be activated"
            )

        others = self.db.scalars(
            select(Season).where(Season.is_active.is_(True), Season.id != season.id)
        )
        for other in others:
            other.is_active = False
            logger.info(f"Deactivated season {other.short_name}")
        season.is_active = True
        self.db.commit()
        self.db.refresh(season)
        logger.info(f"Activated season {season.short_name}")
        return season

    def deactivate(self, season_id: int) -> Season:
        season = self.get_season(season_id)
        season.is_active = False
        self.db.commit()
        self.db.refresh(season)
        logger.info(f"Deactivated season {season.short_name}")
        return season

    def generate_dinner_events(self, season_id: int) -> List[DinnerEvent]:
        """Create a SCHEDULED dinner for every cooking date that has none yet."""
        season = self.get_season(season_id)
        existing = set(self.db.scalars(
            select(DinnerEvent.date).where(DinnerEvent.season_id == season.id)
        ))

        created = []
        for cooking_date in season_cooking_dates(season):
            if cooking_date in existing:
                continue
            dinner = DinnerEvent(
                date=cooking_date,
                menu_title="TBD",
                state=DinnerState.SCHEDULED,
                total_cost=0,
                season_id=season.id,
            )
            self.db.add(dinner)
            created.append(dinner)

        self.db.commit()
        logger.info(
            f"Generated {len(created)} dinner events for season {season.short_name} "
            f"({len(existing)} already existed)"
        )
        return created

    def add_ticket_price(
        self,
        season_id: int,
        ticket_type: TicketType,
        price: int,
        maximum_age_limit: Optional[int] = None,
        description: Optional[str] = None,
    ) -> TicketPrice:
        season = self.get_season(season_id)
        if price < 0:
            raise ValueError("Ticket price cannot be negative")
        ticket_price = TicketPrice(
            season_id=season.id,
            ticket_type=ticket_type,
            price=price,
            maximum_age_limit=maximum_age_limit,
            description=description,
        )
        self.db.add(ticket_price)
        self.db.commit()
        self.db.refresh(ticket_price)
        return ticket_price

    def determine_ticket_price(self, season: Season, inhabitant: Inhabitant, dinner_date: date) -> TicketPrice:
        """The price row that applies to this inhabitant on this dinner date."""
        age = age_on(inhabitant.birth_date, dinner_date) if inhabitant.birth_date else None
        ticket_type = ticket_type_for_age(season.ticket_prices, age)
        matching = [p for p in season.ticket_prices if p.ticket_type == ticket_type]
        if not matching:
            raise DataIntegrityError(
                f"Season {season.short_name} has no {ticket_type.value} ticket price"
            )
        return min(matching, key=lambda p: p.id)
