"""
Tests for preference-driven prebooking.
"""
import pytest
from datetime import date, datetime

import pytz

from commonmeal.models.enums import DinnerMode, DinnerState, OrderAuditAction, OrderState
from commonmeal.models.order import Order
from commonmeal.services.booking import OrderService
from commonmeal.services.prebooking import PrebookingService, clip_preferences, validate_preferences

# Friday; 60 days ahead is 2024-04-30
NOW = datetime(2024, 3, 1, 8, 0, tzinfo=pytz.UTC)
MON_THU = ["monday", "tuesday", "wednesday", "thursday"]


@pytest.fixture
def dinners(season, make_dinner):
    """Mon 18th and Thu 21st are cooking days; Fri 22nd is an extra dinner."""
    return {
        "past": make_dinner(season, date(2024, 2, 26)),
        "monday": make_dinner(season, date(2024, 3, 18)),
        "thursday": make_dinner(season, date(2024, 3, 21)),
        "friday": make_dinner(season, date(2024, 3, 22)),
        "too_far": make_dinner(season, date(2024, 5, 13)),
    }


def own_orders(db, inhabitant):
    return db.query(Order).filter(Order.inhabitant_id == inhabitant.id).order_by(Order.id).all()


class TestPreferences:
    def test_no_preferences_dine_in_on_cooking_days(self):
        clipped = clip_preferences(None, MON_THU)
        assert [clipped[d] for d in MON_THU] == ["DINEIN"] * 4
        assert clipped["friday"] == clipped["sunday"] == "NONE"

    def test_non_cooking_days_are_clipped(self):
        clipped = clip_preferences({"monday": "TAKEAWAY", "friday": "DINEIN"}, MON_THU)
        assert clipped["monday"] == "TAKEAWAY"
        assert clipped["tuesday"] == "DINEIN"
        assert clipped["friday"] == "NONE"

    def test_validate_normalizes(self):
        assert validate_preferences({"Thursday": "takeaway", "monday": "NONE"}) == {
            "monday": "NONE",
            "thursday": "TAKEAWAY",
        }

    @pytest.mark.parametrize("preferences", [{"someday": "DINEIN"}, {"monday": "PICNIC"}])
    def test_validate_rejects(self, preferences):
        with pytest.raises(ValueError):
            validate_preferences(preferences)

    def test_set_preferences_stores_normalized_map(self, db, adult):
        inhabitant = PrebookingService(db).set_preferences(adult.id, {"Monday": "takeaway"})
        assert inhabitant.dinner_preferences == {"monday": "TAKEAWAY"}


class TestScaffold:
    def test_books_wanted_days_inside_the_window(self, db, dinners, adult):
        result = PrebookingService(db).scaffold(now=NOW)

        assert result.created == 2
        assert result.preferences_clipped == 1
        orders = own_orders(db, adult)
        assert [o.dinner_event_id for o in orders] == [dinners["monday"].id, dinners["thursday"].id]
        assert all(o.state == OrderState.BOOKED and o.booked_by_user_id is None for o in orders)
        assert OrderService(db).history(orders[0].id)[0].action == OrderAuditAction.SYSTEM_CREATED
        db.refresh(adult)
        assert adult.dinner_preferences["monday"] == "DINEIN"
        assert adult.dinner_preferences["friday"] == "NONE"

    def test_second_run_changes_nothing(self, db, dinners, adult):
        service = PrebookingService(db)
        service.scaffold(now=NOW)

        again = service.scaffold(now=NOW)

        assert (again.created, again.removed, again.unchanged) == (0, 0, 2)
        assert len(own_orders(db, adult)) == 2

    def test_preferred_mode_is_booked(self, db, dinners, adult):
        PrebookingService(db).set_preferences(adult.id, {"thursday": "TAKEAWAY"})
        PrebookingService(db).scaffold(now=NOW)

        modes = {o.dinner_event_id: o.dinner_mode for o in own_orders(db, adult)}
        assert modes == {dinners["monday"].id: DinnerMode.DINEIN, dinners["thursday"].id: DinnerMode.TAKEAWAY}

    def test_user_cancelled_ticket_is_not_booked_again(self, db, dinners, adult):
        service = PrebookingService(db)
        service.scaffold(now=NOW)
        monday = own_orders(db, adult)[0]
        OrderService(db).cancel(monday.id, performed_by_user_id=adult.user_id, now=NOW)

        result = service.scaffold(now=NOW)

        assert result.created == 0
        assert result.skipped_cancelled == 1
        live = [o for o in own_orders(db, adult) if o.state == OrderState.BOOKED]
        assert [o.dinner_event_id for o in live] == [dinners["thursday"].id]

    def test_released_and_claimed_ticket_is_not_booked_again(self, db, dinners, adult, household, make_inhabitant):
        neighbour = make_inhabitant(household, name="Bent")
        PrebookingService(db).set_preferences(neighbour.id, {"monday": "NONE", "thursday": "NONE"})
        service = PrebookingService(db)
        service.scaffold(now=NOW)
        monday = own_orders(db, adult)[0]
        OrderService(db).release(monday.id, adult.user_id, now=NOW)
        OrderService(db).claim(monday.id, neighbour.id)

        result = service.scaffold(now=NOW)

        assert result.created == 0
        assert [o.dinner_event_id for o in own_orders(db, adult)] == [dinners["thursday"].id]
        assert own_orders(db, neighbour)[0].state == OrderState.BOOKED

    def test_day_set_to_none_removes_system_ticket(self, db, dinners, adult):
        service = PrebookingService(db)
        service.scaffold(now=NOW)
        service.set_preferences(adult.id, {"monday": "NONE"})

        result = service.scaffold(now=NOW)

        assert result.removed == 1
        monday = own_orders(db, adult)[0]
        assert monday.state == OrderState.CANCELLED
        last = OrderService(db).history(monday.id)[-1]
        assert last.action == OrderAuditAction.SYSTEM_DELETED
        assert last.audit_data["reason"] == "preference"

        # turning the day back on books it again
        service.set_preferences(adult.id, {"monday": "DINEIN"})
        assert service.scaffold(now=NOW).created == 1

    def test_user_booked_ticket_is_kept(self, db, dinners, adult):
        OrderService(db).book(dinners["monday"].id, adult.id, booked_by_user_id=adult.user_id)
        service = PrebookingService(db)
        service.set_preferences(adult.id, {"monday": "NONE"})

        result = service.scaffold(now=NOW)

        assert result.removed == 0
        assert own_orders(db, adult)[0].state == OrderState.BOOKED

    def test_moved_out_household_is_skipped(self, db, dinners, adult, household):
        household.move_out_date = date(2024, 3, 19)
        db.commit()

        PrebookingService(db).scaffold(now=NOW)

        assert [o.dinner_event_id for o in own_orders(db, adult)] == [dinners["monday"].id]

    def test_cancelled_dinner_is_skipped(self, db, dinners, adult):
        dinners["monday"].state = DinnerState.CANCELLED
        db.commit()

        assert PrebookingService(db).scaffold(now=NOW).created == 1

    def test_no_active_season_is_skipped(self, db, make_season, make_dinner, adult):
        inactive = make_season(is_active=False)
        make_dinner(inactive, date(2024, 3, 18))

        result = PrebookingService(db).scaffold(now=NOW)

        assert result.season_id is None
        assert own_orders(db, adult) == []

    def test_failures_are_collected(self, db, make_season, make_dinner, adult):
        unpriced = make_season(with_prices=False)
        make_dinner(unpriced, date(2024, 3, 18))

        result = PrebookingService(db).scaffold(now=NOW)

        assert result.created == 0
        assert len(result.failures) == 1
        assert f"Inhabitant {adult.id}" in result.failures[0]

    def test_household_filter(self, db, dinners, adult, make_household, make_inhabitant):
        other = make_inhabitant(make_household(name="Hansen", pbs_id=202, address="Fællesvej 2"), name="Emil")

        PrebookingService(db).scaffold(now=NOW, household_id=other.household_id)

        assert own_orders(db, adult) == []
        assert len(own_orders(db, other)) == 2
