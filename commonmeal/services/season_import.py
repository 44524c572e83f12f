"""
Season import from the committee's spreadsheets.

Calendar CSV (one row per cooking date):

    date,weekday,team
    02-09-2024,mandag,1
    14-10-2024,mandag,Efterårsferie

A numeric team is the team cooking that day; any other text names a
holiday, and consecutive rows with the same holiday name form one range.

Teams CSV (one row per member):

    team,role,name,affinity
    Team 1,CHEF,Anna Jensen,man

Affinity is an optional weekday abbreviation.
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional

import chardet
from dateutil import parser as date_parser
from sqlalchemy import select
from sqlalchemy.orm import Session

from commonmeal.core.calendar import normalize_weekdays, weekday_name
from commonmeal.models.cooking_team import CookingTeam, CookingTeamAssignment
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import TeamRole
from commonmeal.models.household import Inhabitant
from commonmeal.models.season import Season
from commonmeal.schemas.imports import (
    CalendarHoliday,
    ParsedCalendar,
    ParsedTeam,
    ParsedTeamMember,
    ParsedTeams,
    RowError,
)
from commonmeal.services.season import SeasonService, serialize_holidays

logger = logging.getLogger(__name__)

AFFINITY_ABBREVIATIONS = {
    "man": "monday",
    "tirs": "tuesday",
    "ons": "wednesday",
    "tors": "thursday",
    "fre": "friday",
}

TEAM_NUMBER_PATTERN = re.compile(r"(\d+)\s*$")


class SeasonImportError(ValueError):
    """The uploaded CSV could not be parsed; carries the row errors."""

    def __init__(self, message: str, errors: Optional[List[RowError]] = None):
        super().__init__(message)
        self.errors = errors or []


def team_number(name: str) -> Optional[int]:
    """
    >>> team_number("Team 4")
    4
    """
    match = TEAM_NUMBER_PATTERN.search(name.strip())
    return int(match.group(1)) if match else None


def default_team_name(number: int) -> str:
    return f"Team {number}"


class SeasonCSVParser:
    """Parses the calendar and teams spreadsheets into validated records."""

    def detect_encoding(self, file_bytes: bytes) -> str:
        result = chardet.detect(file_bytes)
        encoding = result["encoding"] or "utf-8"
        encoding_lower = encoding.lower()
        if "utf" in encoding_lower or "ascii" in encoding_lower:
            return "utf-8"
        if "iso-8859" in encoding_lower or "latin" in encoding_lower:
            return "iso-8859-1"
        if "windows" in encoding_lower or "cp125" in encoding_lower:
            return "windows-1252"
        return encoding

    def decode(self, file_bytes: bytes) -> str:
        encoding = self.detect_encoding(file_bytes)
        try:
            text = file_bytes.decode(encoding)
        except UnicodeDecodeError:
            text = file_bytes.decode("utf-8", errors="replace")
        return text.lstrip("\ufeff")

    def _rows(self, file_bytes: bytes) -> List[List[str]]:
        reader = csv.reader(io.StringIO(self.decode(file_bytes)))
        rows = [[cell.strip() for cell in row] for row in reader]
        return [row for row in rows if any(row)]

    def parse_date(self, raw: str, row_number: int) -> date:
        """Calendar dates are day-first (dd-mm-yyyy)."""
        try:
            return date_parser.parse(raw, dayfirst=True).date()
        except (ValueError, OverflowError) as e:
            raise SeasonImportError(
                f"Calendar CSV row {row_number}: invalid date '{raw}'",
                [RowError(row_number=row_number, field="date", message=str(e), raw_value=raw)],
            )

    def parse_calendar(self, file_bytes: bytes) -> ParsedCalendar:
        rows = self._rows(file_bytes)
        if len(rows) < 2:
            raise SeasonImportError("Calendar CSV must have a header and at least one data row")

        entries = []
        for row_number, row in enumerate(rows[1:], start=2):
            if not row[0]:
                raise SeasonImportError(
                    f"Calendar CSV row {row_number}: missing date",
                    [RowError(row_number=row_number, field="date", message="missing date")],
                )
            day = self.parse_date(row[0], row_number)
            team = row[2] if len(row) > 2 else ""
            entries.append((day, team))
        entries.sort(key=lambda e: e[0])

        holidays: List[CalendarHoliday] = []
        team_dates: Dict[int, List[date]] = {}
        current: Optional[CalendarHoliday] = None
        for day, team in entries:
            if team and not team.isdigit():
                if current is not None and current.name == team:
                    current = CalendarHoliday(name=current.name, start=current.start, end=day)
                else:
                    if current is not None:
                        holidays.append(current)
                    current = CalendarHoliday(name=team, start=day, end=day)
                continue
            if current is not None:
                holidays.append(current)
                current = None
            if team:
                team_dates.setdefault(int(team), []).append(day)
        if current is not None:
            holidays.append(current)

        return ParsedCalendar(
            season_start=entries[0][0],
            season_end=entries[-1][0],
            cooking_days=normalize_weekdays({weekday_name(day) for day, _ in entries}),
            holidays=holidays,
            team_dates=team_dates,
        )

    def parse_teams(self, file_bytes: bytes, match_inhabitant: Callable[[str], Optional[int]]) -> ParsedTeams:
        rows = self._rows(file_bytes)
        if len(rows) < 2:
            raise SeasonImportError("Teams CSV must have a header and at least one data row")

        teams: Dict[str, ParsedTeam] = {}
        unmatched: List[str] = []
        for row_number, row in enumerate(rows[1:], start=2):
            row = row + [""] * (4 - len(row))
            team_name, role, name, affinity_raw = row[:4]
            if not team_name or not role or not name:
                raise SeasonImportError(
                    f"Teams CSV row {row_number}: missing required fields",
                    [RowError(row_number=row_number, field="team/role/name", message="missing required fields")],
                )
            role = role.upper()
            if role not in TeamRole.__members__:
                raise SeasonImportError(
                    f"Teams CSV row {row_number}: invalid role '{role}'",
                    [RowError(row_number=row_number, field="role", message="invalid role", raw_value=role)],
                )

            weekday = AFFINITY_ABBREVIATIONS.get(affinity_raw.lower()) if affinity_raw else None
            inhabitant_id = match_inhabitant(name)
            if inhabitant_id is None:
                unmatched.append(name)

            team = teams.setdefault(team_name, ParsedTeam(name=team_name, number=team_number(team_name)))
            team.members.append(ParsedTeamMember(
                csv_name=name,
                role=role,
                affinity=[weekday] if weekday else None,
                inhabitant_id=inhabitant_id,
            ))

        return ParsedTeams(teams=list(teams.values()), unmatched=unmatched)


def build_inhabitant_matcher(inhabitants: List[Inhabitant]) -> Callable[[str], Optional[int]]:
    """
    Match a spreadsheet name to an inhabitant id.

    Full name wins; a bare first name matches only when it is unambiguous.
    """
    by_full_name: Dict[str, List[int]] = {}
    by_first_name: Dict[str, List[int]] = {}
    for inhabitant in inhabitants:
        by_full_name.setdefault(f"{inhabitant.name} {inhabitant.last_name}".lower(), []).append(inhabitant.id)
        by_first_name.setdefault(inhabitant.name.lower(), []).append(inhabitant.id)

    def match(name: str) -> Optional[int]:
        key = " ".join(name.split()).lower()
        for candidates in (by_full_name.get(key), by_first_name.get(key)):
            if candidates and len(candidates) == 1:
                return candidates[0]
        return None

    return match


@dataclass
class SeasonImportResult:
    season: Season
    created: bool
    dinner_events_created: int = 0
    teams_created: int = 0
    assignments_created: int = 0
    dinners_assigned: int = 0
    matched_members: int = 0
    unmatched: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "season_id": self.season.id,
            "short_name": self.season.short_name,
            "created": self.created,
            "dinner_events_created": self.dinner_events_created,
            "teams_created": self.teams_created,
            "assignments_created": self.assignments_created,
            "dinners_assigned": self.dinners_assigned,
            "matched_members": self.matched_members,
            "unmatched": self.unmatched,
        }


class SeasonImporter:
    """Creates or updates a season, its dinners and its teams from the two CSVs."""

    def __init__(self, db: Session):
        self.db = db
        self.parser = SeasonCSVParser()
        self.seasons = SeasonService(db)

    def import_season(
        self,
        calendar_csv: bytes,
        teams_csv: bytes,
        short_name: Optional[str] = None,
    ) -> SeasonImportResult:
        calendar = self.parser.parse_calendar(calendar_csv)
        inhabitants = list(self.db.scalars(select(Inhabitant)))
        parsed_teams = self.parser.parse_teams(teams_csv, build_inhabitant_matcher(inhabitants))
        logger.info(
            f"Season import: {calendar.season_start} - {calendar.season_end}, "
            f"{len(calendar.team_dates)} calendar teams, {len(parsed_teams.teams)} CSV teams, "
            f"{len(parsed_teams.unmatched)} unmatched names"
        )

        short_name = short_name or f"{calendar.season_start.year}/{calendar.season_end.year}"
        holidays = [(h.start, h.end) for h in calendar.holidays]
        season = self.db.scalar(select(Season).where(Season.short_name == short_name))
        created = season is None
        if created:
            season = self.seasons.create_season(
                short_name,
                calendar.season_start,
                calendar.season_end,
                calendar.cooking_days,
                holidays,
            )
        else:
            season.season_start = calendar.season_start
            season.season_end = calendar.season_end
            season.cooking_days = calendar.cooking_days
            season.holidays = serialize_holidays(holidays)
            self.db.commit()

        result = SeasonImportResult(
            season=season,
            created=created,
            matched_members=sum(
                1 for t in parsed_teams.teams for m in t.members if m.inhabitant_id is not None
            ),
            unmatched=parsed_teams.unmatched,
        )
        result.dinner_events_created = len(self.seasons.generate_dinner_events(season.id))

        teams_by_number = self._reconcile_teams(season, calendar, parsed_teams, result)
        result.dinners_assigned = self._assign_calendar_teams(season, calendar, teams_by_number)
        self.db.commit()
        return result

    def _reconcile_teams(
        self,
        season: Season,
        calendar: ParsedCalendar,
        parsed_teams: ParsedTeams,
        result: SeasonImportResult,
    ) -> Dict[int, CookingTeam]:
        existing = {
            team_number(t.name): t
            for t in self.db.scalars(select(CookingTeam).where(CookingTeam.season_id == season.id))
        }
        csv_by_number = {t.number: t for t in parsed_teams.teams if t.number is not None}

        team_count: Dict[int, int] = {}
        for team in parsed_teams.teams:
            for member in team.members:
                if member.inhabitant_id is not None:
                    team_count[member.inhabitant_id] = team_count.get(member.inhabitant_id, 0) + 1

        teams_by_number = {}
        for number in sorted(set(calendar.team_dates) | set(csv_by_number)):
            team = existing.get(number)
            if team is None:
                team = CookingTeam(season_id=season.id, name=default_team_name(number))
                self.db.add(team)
                self.db.flush()
                result.teams_created += 1
            teams_by_number[number] = team

            current_members = {a.inhabitant_id for a in team.assignments}
            csv_team = csv_by_number.get(number)
            for member in (csv_team.members if csv_team else []):
                if member.inhabitant_id is None or member.inhabitant_id in current_members:
                    continue
                self.db.add(CookingTeamAssignment(
                    cooking_team_id=team.id,
                    inhabitant_id=member.inhabitant_id,
                    role=TeamRole(member.role),
                    allocation_percentage=round(100 / team_count[member.inhabitant_id]),
                    affinity=member.affinity,
                ))
                current_members.add(member.inhabitant_id)
                result.assignments_created += 1
        self.db.flush()
        return teams_by_number

    def _assign_calendar_teams(
        self,
        season: Season,
        calendar: ParsedCalendar,
        teams_by_number: Dict[int, CookingTeam],
    ) -> int:
        team_for_date = {
            day: teams_by_number[number]
            for number, days in calendar.team_dates.items()
            for day in days
        }
        assigned = 0
        dinners = self.db.scalars(select(DinnerEvent).where(DinnerEvent.season_id == season.id))
        for dinner in dinners:
            team = team_for_date.get(dinner.date)
            if team is not None and dinner.cooking_team_id is None:
                dinner.cooking_team_id = team.id
                assigned += 1
        return assigned
