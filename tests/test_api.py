"""
API tests through the FastAPI test client.
"""
import pytest
from datetime import date, datetime, timedelta

import pytz

from commonmeal.core.calendar import local_date, utcnow, weekday_name
from commonmeal.models.order import Order
from commonmeal.services.billing import BillingAggregator


@pytest.fixture
def current_season(make_season):
    """A season around today with every weekday a cooking day."""
    today = local_date(utcnow())
    return make_season(
        season_start=today - timedelta(days=30),
        season_end=today + timedelta(days=60),
        cooking_days=("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"),
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_api_health_checks_database(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["services"]["database"]["status"] == "ok"
        assert response.json()["services"]["active_season"]["status"] == "missing"

    def test_api_health_reports_active_season(self, client, season):
        services = client.get("/api/health").json()["services"]
        assert services["active_season"] == {"status": "ok", "short_names": ["2024/2025"]}


class TestOrdersAPI:
    def test_book_and_conflict(self, client, current_season, adult, make_dinner):
        dinner = make_dinner(current_season, local_date(utcnow()) + timedelta(days=30))
        body = {"dinner_event_id": dinner.id, "inhabitant_id": adult.id, "booked_by_user_id": adult.user_id}

        response = client.post("/api/orders", json=body)
        assert response.status_code == 201
        data = response.json()
        assert data["state"] == "BOOKED"
        assert data["price_at_booking"] == 400

        again = client.post("/api/orders", json=body)
        assert again.status_code == 409
        assert again.json()["error"] == "BOOKING_CONFLICT"

    def test_release_after_deadline_is_422(self, client, current_season, adult, make_dinner):
        dinner = make_dinner(current_season, local_date(utcnow()) + timedelta(days=1))
        order = client.post("/api/orders", json={"dinner_event_id": dinner.id, "inhabitant_id": adult.id}).json()

        response = client.post(f"/api/orders/{order['id']}/release", json={"performed_by_user_id": adult.user_id})

        assert response.status_code == 422
        assert response.json()["error"] == "TOO_LATE_TO_CANCEL"

    def test_release_then_history(self, client, current_season, adult, make_dinner):
        dinner = make_dinner(current_season, local_date(utcnow()) + timedelta(days=30))
        order = client.post("/api/orders", json={"dinner_event_id": dinner.id, "inhabitant_id": adult.id}).json()

        released = client.post(f"/api/orders/{order['id']}/release", json={"performed_by_user_id": adult.user_id})
        assert released.status_code == 200
        assert released.json()["state"] == "RELEASED"

        history = client.get(f"/api/orders/{order['id']}/history").json()
        assert [h["action"] for h in history] == ["SYSTEM_CREATED", "USER_CANCELLED"]

    def test_unknown_order_is_404(self, client):
        response = client.get("/api/orders/999")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


class TestBillingAPI:
    def test_close_share_and_export(self, client, db, may_2024_orders):
        summary = BillingAggregator(db, cutoff_day=17).close_period(
            "2024-05", now=datetime(2024, 6, 1, 3, 0, tzinfo=pytz.UTC)
        ).summary

        shared = client.get(f"/api/public/billing/{summary.share_token}")
        assert shared.status_code == 200
        assert shared.json()["total_amount"] == 1400
        assert "share_token" not in shared.json()
        assert [i["pbs_id"] for i in shared.json()["invoices"]] == [101, 102, 103]

        export = client.get("/api/billing/periods/2024-05/pbs.csv")
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        assert export.text.splitlines()[1] == "101,2024-05,600,2024-06-01,Fællesvej 1"

    def test_bad_period_key_is_400(self, client):
        response = client.get("/api/billing/periods/2024-13")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"


class TestJobsAPI:
    def test_trigger_and_list(self, client):
        response = client.post("/api/jobs", json={"job_type": "DAILY_MAINTENANCE"})
        assert response.status_code == 200
        run = response.json()
        assert run["status"] == "SUCCESS"
        assert run["triggered_by"] == "ADMIN"

        listed = client.get("/api/jobs", params={"job_type": "DAILY_MAINTENANCE"}).json()
        assert listed["total"] == 1
        assert client.get(f"/api/jobs/{run['id']}").json()["id"] == run["id"]


class TestSeasonsAPI:
    def test_import_season_from_csv(self, client, household, make_inhabitant, calendar_csv, teams_csv):
        for first, last in (("Anna", "Jensen"), ("Bo", "Jensen"), ("Carl", "Hansen")):
            make_inhabitant(household, name=first, last_name=last)

        response = client.post(
            "/api/seasons/import",
            files={
                "calendar": ("kalender.csv", calendar_csv, "text/csv"),
                "teams": ("hold.csv", teams_csv, "text/csv"),
            },
            data={"short_name": "Efterår 2024"},
        )

        assert response.status_code == 200
        run = response.json()
        assert run["status"] == "PARTIAL"
        assert run["result_summary"]["dinner_events_created"] == 5

        seasons = client.get("/api/seasons").json()
        assert [s["short_name"] for s in seasons] == ["Efterår 2024"]

    def test_import_rejects_non_csv(self, client, teams_csv):
        response = client.post(
            "/api/seasons/import",
            files={
                "calendar": ("kalender.xlsx", b"x", "application/octet-stream"),
                "teams": ("hold.csv", teams_csv, "text/csv"),
            },
        )
        assert response.status_code == 400

    def test_rotation_range_must_be_ordered(self, client):
        response = client.get("/api/rotation/teams", params={"start": "2024-09-10", "end": "2024-09-01"})
        assert response.status_code == 400

    def test_create_season_with_rules(self, client):
        response = client.post("/api/seasons", json={
            "short_name": "2025/2026",
            "season_start": str(date(2025, 8, 1)),
            "season_end": str(date(2026, 6, 30)),
            "cooking_days": ["Monday", "thursday"],
            "holidays": [{"start": "2025-10-13", "end": "2025-10-17"}],
        })
        assert response.status_code == 201
        assert response.json()["cooking_days"] == ["monday", "thursday"]

    def test_activation_prebooks_from_preferences(self, client, db, make_season, make_dinner, adult):
        today = local_date(utcnow())
        upcoming = make_season(
            is_active=False,
            season_start=today,
            season_end=today + timedelta(days=90),
            cooking_days=("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"),
        )
        dinner = make_dinner(upcoming, today + timedelta(days=20))

        response = client.post(f"/api/seasons/{upcoming.id}/activate")

        assert response.status_code == 200
        assert response.json()["is_active"] is True
        rerun = client.post(f"/api/seasons/{upcoming.id}/prebookings").json()
        assert (rerun["created"], rerun["unchanged"]) == (0, 1)
        order = db.query(Order).filter(Order.dinner_event_id == dinner.id).one()
        assert order.inhabitant_id == adult.id


class TestInhabitantsAPI:
    def test_set_preferences_rebooks_household(self, client, db, current_season, adult, make_dinner):
        dinner = make_dinner(current_season, local_date(utcnow()) + timedelta(days=20))
        weekday = weekday_name(dinner.date)

        response = client.put(
            f"/api/inhabitants/{adult.id}/preferences",
            json={"preferences": {weekday.title(): "takeaway"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["dinner_preferences"][weekday] == "TAKEAWAY"
        assert body["prebooking"]["created"] == 1
        order = db.query(Order).filter(Order.dinner_event_id == dinner.id).one()
        assert order.dinner_mode.value == "TAKEAWAY"

    def test_unknown_weekday_is_400(self, client, adult):
        response = client.put(f"/api/inhabitants/{adult.id}/preferences", json={"preferences": {"caturday": "DINEIN"}})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"

    def test_unknown_inhabitant_is_404(self, client):
        response = client.put("/api/inhabitants/999/preferences", json={"preferences": {}})
        assert response.status_code == 404
