"""
Cooking team rotation.

Turns a season's teams into a fair, repeating duty roster:

1. Teams without a preferred weekday block get one (compute_affinities).
2. Teams are ordered into a roster by their first preferred weekday
   (create_team_roster).
3. Dinners without a team are walked in date order and each team cooks
   `consecutive_cooking_days` dinners in a row (compute_team_assignments).

Holidays: whole cooking weeks inside a holiday are a week off and do not
move the rotation; leftover holiday cooking days still count as ghost duty
so a short break does not hand the same team an extra turn.
"""
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commonmeal.core.calendar import WEEKDAYS, each_day_on_weekdays, in_ranges, normalize_weekdays, weekday_name
from commonmeal.core.errors import ConflictError, NotFoundError, SeasonMismatchError
from commonmeal.models.cooking_team import CookingTeam, CookingTeamAssignment
from commonmeal.models.dinner_event import DinnerEvent
from commonmeal.models.enums import DinnerState, TeamRole
from commonmeal.models.household import Inhabitant
from commonmeal.services.season import SeasonService, holiday_ranges

logger = logging.getLogger(__name__)

DateRange = Tuple[date, date]


# ============ Pure rotation functions ============

def compute_affinities(
    teams: Sequence[CookingTeam],
    cooking_days: Sequence[str],
    consecutive_cooking_days: int,
    first_day: date,
) -> Dict[int, List[str]]:
    """
    Weekday blocks for teams that have no affinity yet, keyed by team id.

    Blocks are handed out round-robin over the cooking weekdays, starting at
    the weekday of first_day. Teams that already have an affinity keep it.

    Example: cooking monday-thursday in blocks of 2 from a Monday gives
    team 1 [monday, tuesday], team 2 [wednesday, thursday], team 3
    [monday, tuesday].
    """
    rotation_days = normalize_weekdays(cooking_days)
    start_day = weekday_name(first_day)
    if not rotation_days or start_day not in rotation_days:
        return {}

    start_index = rotation_days.index(start_day)
    computed = {}
    for i, team in enumerate(t for t in teams if not t.affinity):
        rotation_index = start_index + i * consecutive_cooking_days
        computed[team.id] = [
            rotation_days[(rotation_index + k) % len(rotation_days)]
            for k in range(consecutive_cooking_days)
        ]
    return computed


def first_affinity_day(affinity: Optional[Sequence[str]]) -> Optional[str]:
    """Earliest weekday (in week order) of an affinity."""
    if not affinity:
        return None
    wanted = set(affinity)
    for day in WEEKDAYS:
        if day in wanted:
            return day
    return None


def create_team_roster(start_day: str, teams: Sequence[CookingTeam]) -> List[CookingTeam]:
    """
    Order teams for rotation.

    Teams are bucketed by the first weekday of their affinity, buckets are
    ordered by distance from start_day, and the roster takes one team from
    each bucket per round (names ascending within a bucket).
    """
    start_index = WEEKDAYS.index(start_day)
    buckets: Dict[str, List[CookingTeam]] = defaultdict(list)
    for team in teams:
        day = first_affinity_day(team.affinity)
        if day is not None:
            buckets[day].append(team)

    ordered_days = sorted(buckets, key=lambda d: (WEEKDAYS.index(d) - start_index) % 7)
    ordered_buckets = [sorted(buckets[d], key=lambda t: t.name) for d in ordered_days]
    if not ordered_buckets:
        return []

    roster = []
    for i in range(max(len(b) for b in ordered_buckets)):
        for bucket in ordered_buckets:
            if i < len(bucket):
                roster.append(bucket[i])
    return roster


def is_holiday_ghost_duty(cooking_date: date, holidays: Sequence[DateRange], cooking_days: Sequence[str]) -> bool:
    """
    Whether a cooking date inside a holiday still counts as a turn.

    With four cooking days a week, a holiday covering 5 cooking days is one
    week off plus one ghost duty day (the fifth).
    """
    per_week = len(cooking_days)
    if per_week == 0:
        return False
    for start, end in holidays:
        if not start <= cooking_date <= end:
            continue
        in_holiday = len(each_day_on_weekdays(start, end, cooking_days))
        week_off_days = (in_holiday // per_week) * per_week
        before_this = len([d for d in each_day_on_weekdays(start, cooking_date, cooking_days) if d < cooking_date])
        if before_this >= week_off_days:
            return True
    return False


def compute_team_assignments(
    roster: Sequence[CookingTeam],
    cooking_days: Sequence[str],
    consecutive_cooking_days: int,
    events: Sequence[DinnerEvent],
    holidays: Sequence[DateRange] = (),
) -> Dict[int, int]:
    """
    Map dinner event id -> cooking team id for events without a team.

    Every would-be cooking date from the first unassigned event onward
    advances a quota counter except week-off holiday dates; ghost duty dates
    in holidays before the first event are counted too.
    """
    if not roster or consecutive_cooking_days < 1:
        return {}
    pending = sorted((e for e in events if e.cooking_team_id is None), key=lambda e: e.date)
    if not pending:
        return {}

    first_event_date = pending[0].date
    ghost_before = sorted(
        d
        for start, end in holidays if start < first_event_date
        for d in each_day_on_weekdays(start, end, cooking_days)
        if d < first_event_date and is_holiday_ghost_duty(d, holidays, cooking_days)
    )
    walk_start = ghost_before[0] if ghost_before else first_event_date
    pending_by_date: Dict[date, List[DinnerEvent]] = defaultdict(list)
    for event in pending:
        pending_by_date[event.date].append(event)

    assignments = {}
    quota_counter = 0
    for cooking_date in each_day_on_weekdays(walk_start, pending[-1].date, cooking_days):
        if in_ranges(cooking_date, holidays) and not is_holiday_ghost_duty(cooking_date, holidays, cooking_days):
            continue
        team = roster[(quota_counter // consecutive_cooking_days) % len(roster)]
        quota_counter += 1
        # dinners sharing a date share that date's team
        for event in pending_by_date.get(cooking_date, ()):
            assignments[event.id] = team.id
    return assignments


# ============ Service ============

class RotationService:
    """Team membership, rotation assignment and chef resolution."""

    def __init__(self, db: Session):
        self.db = db

    # ---- teams ----

    def get_team(self, team_id: int) -> CookingTeam:
        team = self.db.get(CookingTeam, team_id)
        if team is None:
            raise NotFoundError("CookingTeam", team_id)
        return team

    def list_teams(self, season_id: int) -> List[CookingTeam]:
        return list(self.db.scalars(
            select(CookingTeam).where(CookingTeam.season_id == season_id).order_by(CookingTeam.id)
        ))

    def create_team(self, season_id: int, name: str, affinity: Optional[Sequence[str]] = None) -> CookingTeam:
        SeasonService(self.db).get_season(season_id)
        team = CookingTeam(
            season_id=season_id,
            name=name,
            affinity=normalize_weekdays(affinity) if affinity else None,
        )
        self.db.add(team)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"A team named '{name}' already exists in season {season_id}")
        self.db.refresh(team)
        return team

    def delete_team(self, team_id: int) -> None:
        """Delete a team nothing refers to."""
        team = self.get_team(team_id)
        dinner_count = self.db.scalar(
            select(func.count(DinnerEvent.id)).where(DinnerEvent.cooking_team_id == team.id)
        )
        member_count = self.db.scalar(
            select(func.count(CookingTeamAssignment.id)).where(CookingTeamAssignment.cooking_team_id == team.id)
        )
        if dinner_count or member_count:
            raise ConflictError(
                f"Team {team.name} is still referenced by {dinner_count} dinner(s) "
                f"and {member_count} assignment(s)"
            )
        self.db.delete(team)
        self.db.commit()
        logger.info(f"Deleted cooking team {team.name}")

    # ---- members ----

    def add_member(
        self,
        team_id: int,
        inhabitant_id: int,
        role: TeamRole,
        allocation_percentage: int = 100,
        affinity: Optional[Sequence[str]] = None,
    ) -> CookingTeamAssignment:
        team = self.get_team(team_id)
        if self.db.get(Inhabitant, inhabitant_id) is None:
            raise NotFoundError("Inhabitant", inhabitant_id)
        if not 0 <= allocation_percentage <= 100:
            raise ValueError("allocation_percentage must be between 0 and 100")

        assignment = CookingTeamAssignment(
            cooking_team_id=team.id,
            inhabitant_id=inhabitant_id,
            role=role,
            allocation_percentage=allocation_percentage,
            affinity=normalize_weekdays(affinity) if affinity else None,
        )
        self.db.add(assignment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Inhabitant {inhabitant_id} is already on team {team.name}")
        self.db.refresh(assignment)
        return assignment

    def remove_member(self, assignment_id: int) -> None:
        assignment = self.db.get(CookingTeamAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError("CookingTeamAssignment", assignment_id)
        self.db.delete(assignment)
        self.db.commit()

    # ---- rotation ----

    def assign_affinities(self, season_id: int) -> List[CookingTeam]:
        """Persist computed weekday blocks for teams that have none."""
        season = SeasonService(self.db).get_season(season_id)
        teams = self.list_teams(season.id)
        first_dinner = self.db.scalar(
            select(func.min(DinnerEvent.date)).where(DinnerEvent.season_id == season.id)
        ) or season.season_start
        first_cooking_day = next(
            iter(each_day_on_weekdays(first_dinner, season.season_end, season.cooking_days or [])),
            None,
        )
        if first_cooking_day is None:
            return teams

        computed = compute_affinities(teams, season.cooking_days, season.consecutive_cooking_days, first_cooking_day)
        for team in teams:
            if team.id in computed:
                team.affinity = computed[team.id]
        self.db.commit()
        logger.info(f"Computed affinities for {len(computed)} of {len(teams)} teams in season {season.short_name}")
        return teams

    def assign_teams_to_dinners(self, season_id: int) -> int:
        """Give every unassigned, non-cancelled dinner of the season a team."""
        season = SeasonService(self.db).get_season(season_id)
        teams = self.assign_affinities(season.id)
        events = list(self.db.scalars(
            select(DinnerEvent).where(
                DinnerEvent.season_id == season.id,
                DinnerEvent.state != DinnerState.CANCELLED,
            )
        ))
        pending = [e for e in events if e.cooking_team_id is None]
        if not pending or not teams:
            return 0

        roster = create_team_roster(weekday_name(min(e.date for e in pending)), teams)
        assignments = compute_team_assignments(
            roster,
            season.cooking_days,
            season.consecutive_cooking_days,
            events,
            holiday_ranges(season),
        )
        for event in pending:
            if event.id in assignments:
                event.cooking_team_id = assignments[event.id]
        self.db.commit()
        logger.info(f"Assigned teams to {len(assignments)} dinners in season {season.short_name}")
        return len(assignments)

    # ---- queries ----

    def chef_for_dinner(self, dinner_event_id: int) -> Optional[Inhabitant]:
        """
        The dinner's chef: the explicit chef if set, else the team's CHEF with
        the highest allocation (lowest assignment id on ties).
        """
        dinner = self.db.get(DinnerEvent, dinner_event_id)
        if dinner is None:
            raise NotFoundError("DinnerEvent", dinner_event_id)
        if dinner.chef is not None:
            return dinner.chef
        if dinner.cooking_team_id is None:
            return None

        chef_assignment = self.db.scalars(
            select(CookingTeamAssignment)
            .where(
                CookingTeamAssignment.cooking_team_id == dinner.cooking_team_id,
                CookingTeamAssignment.role == TeamRole.CHEF,
            )
            .order_by(CookingTeamAssignment.allocation_percentage.desc(), CookingTeamAssignment.id)
        ).first()
        return chef_assignment.inhabitant if chef_assignment else None

    def teams_for_range(self, start: date, end: date) -> Dict[date, List[CookingTeam]]:
        """Teams cooking on each dinner date in [start, end], one entry per dinner."""
        dinners = self.db.scalars(
            select(DinnerEvent)
            .where(
                DinnerEvent.date >= start,
                DinnerEvent.date <= end,
                DinnerEvent.cooking_team_id.is_not(None),
                DinnerEvent.state != DinnerState.CANCELLED,
            )
            .order_by(DinnerEvent.date, DinnerEvent.id)
        )
        schedule: Dict[date, List[CookingTeam]] = defaultdict(list)
        for dinner in dinners:
            schedule[dinner.date].append(dinner.cooking_team)
        return dict(schedule)

    def find_season_mismatches(self, season_id: Optional[int] = None) -> List[dict]:
        """Dinners cooked by a team that belongs to a different season."""
        stmt = (
            select(DinnerEvent, CookingTeam)
            .join(CookingTeam, DinnerEvent.cooking_team_id == CookingTeam.id)
            .where(DinnerEvent.season_id != CookingTeam.season_id)
        )
        if season_id is not None:
            stmt = stmt.where(DinnerEvent.season_id == season_id)
        return [
            {
                "dinner_event_id": dinner.id,
                "date": dinner.date.isoformat(),
                "dinner_season_id": dinner.season_id,
                "cooking_team_id": team.id,
                "team_season_id": team.season_id,
            }
            for dinner, team in self.db.execute(stmt).all()
        ]

    def validate_assignments(self, season_id: Optional[int] = None) -> None:
        mismatches = self.find_season_mismatches(season_id)
        if mismatches:
            first = mismatches[0]
            raise SeasonMismatchError(
                f"{len(mismatches)} dinner(s) are cooked by a team from another season; "
                f"first: dinner {first['dinner_event_id']} on {first['date']} "
                f"(season {first['dinner_season_id']}) by team {first['cooking_team_id']} "
                f"(season {first['team_season_id']})"
            )

    def allocation_summary(self, team_id: int) -> dict:
        """
        Per-role allocation totals for a team.

        Advisory only: a role whose total is not a whole number of people
        is logged, never rejected.
        """
        team = self.get_team(team_id)
        by_role: Dict[str, dict] = {}
        for assignment in team.assignments:
            entry = by_role.setdefault(assignment.role.value, {"members": 0, "allocation": 0})
            entry["members"] += 1
            entry["allocation"] += assignment.allocation_percentage

        for role, entry in by_role.items():
            if entry["allocation"] % 100 != 0:
                logger.warning(
                    f"Team {team.name}: {role} allocation totals {entry['allocation']}%, "
                    f"not a whole number of members"
                )
        return {
            "cooking_team_id": team.id,
            "name": team.name,
            "total_allocation": sum(e["allocation"] for e in by_role.values()),
            "roles": by_role,
        }
