"""
Test configuration and fixtures.
"""
import os
import pytest
from datetime import date, datetime
from typing import Generator, Optional

import pytz
from sqlalchemy.orm import sessionmaker, Session
from fastapi.testclient import TestClient

# Set test database URL before importing app
os.environ["DATABASE_URL"] = "sqlite://"

from commonmeal.main import app
from commonmeal.db.base import Base
from commonmeal.db.session import build_engine, get_db
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import DinnerState, TicketType
from commonmeal.models.household import Household, Inhabitant, User
from commonmeal.models.season import Season, TicketPrice
from commonmeal.services.booking import OrderService
from commonmeal.services.dinner_event import DinnerEventService
import commonmeal.models  # noqa: F401


# In-memory database, schema rebuilt for every test
TEST_DATABASE_URL = os.environ["DATABASE_URL"]
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a database session for the test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database session override."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# ============ Factories ============

@pytest.fixture
def make_household(db: Session):
    """Create a household; heynabo and pbs ids default to a running counter."""
    counter = {"n": 0}

    def _make(name: Optional[str] = None, pbs_id: Optional[int] = None, address: Optional[str] = None) -> Household:
        counter["n"] += 1
        n = counter["n"]
        household = Household(
            heynabo_id=1000 + n,
            pbs_id=pbs_id or 5000 + n,
            name=name or f"Household {n}",
            address=address or f"Fællesvej {n}",
        )
        db.add(household)
        db.commit()
        db.refresh(household)
        return household

    return _make


@pytest.fixture
def make_inhabitant(db: Session):
    counter = {"n": 0}

    def _make(
        household: Household,
        name: str = "Anna",
        last_name: str = "Jensen",
        birth_date: Optional[date] = date(1980, 1, 1),
        email: Optional[str] = None,
    ) -> Inhabitant:
        counter["n"] += 1
        user = None
        if email:
            user = User(email=email)
            db.add(user)
            db.flush()
        inhabitant = Inhabitant(
            heynabo_id=2000 + counter["n"],
            household_id=household.id,
            user_id=user.id if user else None,
            name=name,
            last_name=last_name,
            birth_date=birth_date,
        )
        db.add(inhabitant)
        db.commit()
        db.refresh(inhabitant)
        return inhabitant

    return _make


@pytest.fixture
def make_season(db: Session):
    """
    Create a season with the standard ADULT 400 / CHILD 200 (<12) /
    BABY 0 (<2) price list.
    """
    def _make(
        short_name: str = "2024/2025",
        season_start: date = date(2024, 1, 1),
        season_end: date = date(2025, 6, 30),
        cooking_days=("monday", "tuesday", "wednesday", "thursday"),
        holidays=(),
        is_active: bool = True,
        ticket_is_cancellable_days_before: int = 8,
        dining_mode_is_editable_minutes_before: int = 90,
        consecutive_cooking_days: int = 2,
        with_prices: bool = True,
    ) -> Season:
        season = Season(
            short_name=short_name,
            season_start=season_start,
            season_end=season_end,
            is_active=is_active,
            cooking_days=list(cooking_days),
            holidays=[{"start": s.isoformat(), "end": e.isoformat()} for s, e in holidays],
            ticket_is_cancellable_days_before=ticket_is_cancellable_days_before,
            dining_mode_is_editable_minutes_before=dining_mode_is_editable_minutes_before,
            consecutive_cooking_days=consecutive_cooking_days,
        )
        db.add(season)
        db.flush()
        if with_prices:
            db.add_all([
                TicketPrice(season_id=season.id, ticket_type=TicketType.ADULT, price=400),
                TicketPrice(season_id=season.id, ticket_type=TicketType.CHILD, price=200, maximum_age_limit=12),
                TicketPrice(season_id=season.id, ticket_type=TicketType.BABY, price=0, maximum_age_limit=2),
            ])
        db.commit()
        db.refresh(season)
        return season

    return _make


@pytest.fixture
def make_dinner(db: Session):
    def _make(
        season: Optional[Season],
        dinner_date: date,
        state: DinnerState = DinnerState.SCHEDULED,
        cooking_team_id: Optional[int] = None,
    ) -> DinnerEvent:
        dinner = DinnerEvent(
            date=dinner_date,
            season_id=season.id if season else None,
            state=state,
            menu_title="TBD",
            total_cost=0,
            cooking_team_id=cooking_team_id,
        )
        db.add(dinner)
        db.commit()
        db.refresh(dinner)
        return dinner

    return _make


@pytest.fixture
def season(make_season) -> Season:
    return make_season()


@pytest.fixture
def household(make_household) -> Household:
    return make_household()


@pytest.fixture
def adult(make_inhabitant, household) -> Inhabitant:
    return make_inhabitant(household, email="anna@example.com")


@pytest.fixture
def may_2024_orders(db: Session, make_season, make_household, make_inhabitant, make_dinner):
    """
    Billing period 2024-05 (2024-04-18 .. 2024-05-17): three households,
    seven chargeable orders totaling 1400 on two consumed dinners, plus a
    cancelled order and an order from the next period that must not be billed.

    Returns (orders, households) with orders in booking order.
    """
    season = make_season()
    early = make_dinner(season, date(2024, 4, 22))
    late = make_dinner(season, date(2024, 5, 6))
    next_period = make_dinner(season, date(2024, 5, 20))

    h1 = make_household(name="Jensen", pbs_id=101, address="Fællesvej 1")
    h2 = make_household(name="Hansen", pbs_id=102, address="Fællesvej 2")
    h3 = make_household(name="Nielsen", pbs_id=103, address="Fællesvej 3")
    h1_adult = make_inhabitant(h1, name="Anna", email="anna@example.com")
    h1_child = make_inhabitant(h1, name="Bo", birth_date=date(2016, 1, 1))
    h1_baby = make_inhabitant(h1, name="Liv", birth_date=date(2023, 6, 1))
    h2_child_a = make_inhabitant(h2, name="Emil", birth_date=date(2015, 1, 1))
    h2_child_b = make_inhabitant(h2, name="Ida", birth_date=date(2017, 1, 1))
    h3_adult = make_inhabitant(h3, name="Karl", email="karl@example.com")
    h3_baby = make_inhabitant(h3, name="Mia", birth_date=date(2024, 1, 1))

    service = OrderService(db)
    orders = [
        service.book(early.id, h1_adult.id, booked_by_user_id=h1_adult.user_id),  # 400
        service.book(early.id, h1_child.id, booked_by_user_id=h1_adult.user_id),  # 200
        service.book(late.id, h1_baby.id),                                        # 0
        service.book(early.id, h2_child_a.id),                                    # 200
        service.book(late.id, h2_child_b.id),                                     # 200
        service.book(late.id, h3_adult.id, booked_by_user_id=h3_adult.user_id),  # 400
        service.book(late.id, h3_baby.id),                                        # 0
    ]
    # released but never claimed: still charged
    service.release(orders[3].id, now=datetime(2024, 4, 1, tzinfo=pytz.UTC))
    # cancelled: never charged
    cancelled = service.book(early.id, h2_child_b.id)
    service.cancel(cancelled.id, admin=True)
    # next period
    service.book(next_period.id, h1_adult.id)

    dinners = DinnerEventService(db)
    for dinner in (early, late, next_period):
        dinners.consume(dinner.id)

    return orders, [h1, h2, h3]


# ============ Season import spreadsheets ============

CALENDAR_CSV = """date,weekday,team
02-09-2024,mandag,1
03-09-2024,tirsdag,1
04-09-2024,onsdag,2
05-09-2024,torsdag,2
09-09-2024,mandag,Efterårsferie
10-09-2024,tirsdag,Efterårsferie
11-09-2024,onsdag,Efterårsferie
12-09-2024,torsdag,Efterårsferie
16-09-2024,mandag,1
""".encode("utf-8")

TEAMS_CSV = b"""team,role,name,affinity
Team 1,CHEF,Anna Jensen,man
Team 1,COOK,Bo,
Team 2,CHEF,Carl Hansen,ons
Team 2,cook,Ukendt Person,
"""


@pytest.fixture
def calendar_csv() -> bytes:
    """Nine calendar rows: two teams and the autumn holiday week."""
    return CALENDAR_CSV


@pytest.fixture
def teams_csv() -> bytes:
    """Two teams; one member name matches nobody."""
    return TEAMS_CSV
