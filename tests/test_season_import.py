"""
Tests for season import from the calendar and teams spreadsheets.
"""
import pytest
from datetime import date
from functools import partial

from commonmeal.models.cooking_team import CookingTeam, CookingTeamAssignment
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import JobStatus, JobType
from commonmeal.services.jobs import JobRunner, maintenance_import
from commonmeal.services.season_import import (
    SeasonCSVParser,
    SeasonImportError,
    SeasonImporter,
    build_inhabitant_matcher,
    team_number,
)


@pytest.fixture
def members(household, make_inhabitant):
    return [
        make_inhabitant(household, name="Anna", last_name="Jensen"),
        make_inhabitant(household, name="Bo", last_name="Jensen"),
        make_inhabitant(household, name="Carl", last_name="Hansen"),
    ]


class TestCalendarParsing:
    def test_parse_calendar(self, calendar_csv):
        calendar = SeasonCSVParser().parse_calendar(calendar_csv)

        assert calendar.season_start == date(2024, 9, 2)
        assert calendar.season_end == date(2024, 9, 16)
        assert calendar.cooking_days == ["monday", "tuesday", "wednesday", "thursday"]
        assert [(h.name, h.start, h.end) for h in calendar.holidays] == [
            ("Efterårsferie", date(2024, 9, 9), date(2024, 9, 12)),
        ]
        assert calendar.team_dates == {
            1: [date(2024, 9, 2), date(2024, 9, 3), date(2024, 9, 16)],
            2: [date(2024, 9, 4), date(2024, 9, 5)],
        }

    def test_utf8_bom_is_stripped(self, calendar_csv):
        calendar = SeasonCSVParser().parse_calendar(b"\xef\xbb\xbf" + calendar_csv)
        assert calendar.season_start == date(2024, 9, 2)

    def test_invalid_date_reports_row(self):
        with pytest.raises(SeasonImportError) as exc_info:
            SeasonCSVParser().parse_calendar(b"date,weekday,team\nikke en dato,mandag,1\n")
        assert exc_info.value.errors[0].row_number == 2
        assert exc_info.value.errors[0].field == "date"

    def test_header_only_rejected(self):
        with pytest.raises(SeasonImportError):
            SeasonCSVParser().parse_calendar(b"date,weekday,team\n")


class TestTeamsParsing:
    def test_parse_teams_with_matcher(self, members, teams_csv):
        teams = SeasonCSVParser().parse_teams(teams_csv, build_inhabitant_matcher(members))

        assert [(t.name, t.number) for t in teams.teams] == [("Team 1", 1), ("Team 2", 2)]
        anna = teams.teams[0].members[0]
        assert (anna.role, anna.affinity, anna.inhabitant_id) == ("CHEF", ["monday"], members[0].id)
        assert teams.teams[0].members[1].inhabitant_id == members[1].id
        assert teams.unmatched == ["Ukendt Person"]

    def test_invalid_role_rejected(self):
        with pytest.raises(SeasonImportError):
            SeasonCSVParser().parse_teams(b"team,role,name\nTeam 1,BOSS,Anna\n", lambda name: None)

    def test_ambiguous_first_name_is_unmatched(self, household, make_inhabitant):
        twins = [make_inhabitant(household, name="Bo", last_name="A"), make_inhabitant(household, name="Bo", last_name="B")]
        match = build_inhabitant_matcher(twins)
        assert match("Bo") is None
        assert match("bo  b") == twins[1].id

    def test_team_number(self):
        assert team_number("Team 4") == 4
        assert team_number("Hold 12 ") == 12
        assert team_number("Gæster") is None


class TestSeasonImporter:
    def test_import_creates_season_dinners_and_teams(self, db, members, calendar_csv, teams_csv):
        result = SeasonImporter(db).import_season(calendar_csv, teams_csv, short_name="Efterår 2024")

        assert result.created is True
        assert result.season.short_name == "Efterår 2024"
        assert result.season.holidays == [{"start": "2024-09-09", "end": "2024-09-12"}]
        assert result.dinner_events_created == 5
        assert result.teams_created == 2
        assert result.assignments_created == 3
        assert result.dinners_assigned == 5
        assert result.matched_members == 3
        assert result.unmatched == ["Ukendt Person"]

        team_1 = db.query(CookingTeam).filter(CookingTeam.name == "Team 1").one()
        dinner_teams = {d.date: d.cooking_team_id for d in db.query(DinnerEvent).all()}
        assert dinner_teams[date(2024, 9, 16)] == team_1.id
        anna = db.query(CookingTeamAssignment).filter(CookingTeamAssignment.inhabitant_id == members[0].id).one()
        assert anna.allocation_percentage == 100

    def test_reimport_changes_nothing(self, db, members, calendar_csv, teams_csv):
        SeasonImporter(db).import_season(calendar_csv, teams_csv)
        again = SeasonImporter(db).import_season(calendar_csv, teams_csv)

        assert again.created is False
        assert again.season.short_name == "2024/2024"
        assert (again.dinner_events_created, again.teams_created, again.assignments_created) == (0, 0, 0)
        assert db.query(DinnerEvent).count() == 5

    def test_import_job_is_partial_with_unmatched_names(self, db, members, calendar_csv, teams_csv):
        run = JobRunner(db).run(
            JobType.MAINTENANCE_IMPORT,
            partial(maintenance_import, calendar_csv=calendar_csv, teams_csv=teams_csv),
        )

        assert run.status == JobStatus.PARTIAL
        assert run.result_summary["message"] == "3/4 matched"
        assert run.error_message == "No inhabitant matches 'Ukendt Person'"
