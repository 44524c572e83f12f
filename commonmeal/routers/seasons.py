"""
Season router: calendar, ticket prices, cooking teams and rotation.
"""
from datetime import date
from functools import partial
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from commonmeal.db.session import get_db
from commonmeal.models.enums import JobType
from commonmeal.schemas.job_run import JobRunResponse
from commonmeal.schemas.order import PrebookingResultResponse
from commonmeal.schemas.season import (
    AllocationSummaryResponse,
    AssignTeamsResponse,
    CookingTeamCreate,
    CookingTeamResponse,
    GenerateDinnersResponse,
    RotationValidationResponse,
    SeasonCreate,
    SeasonResponse,
    SeasonRulesUpdate,
    TeamMemberCreate,
    TeamMemberResponse,
    TicketPriceCreate,
    TicketPriceResponse,
)
from commonmeal.services.jobs import JobRunner, maintenance_import
from commonmeal.services.prebooking import PrebookingService
from commonmeal.services.rotation import RotationService
from commonmeal.services.season import SeasonService

router = APIRouter(tags=["seasons"])


# ============ Seasons ============

@router.get("/seasons", response_model=List[SeasonResponse])
def list_seasons(db: Session = Depends(get_db)):
    return SeasonService(db).list_seasons()


@router.post("/seasons", response_model=SeasonResponse, status_code=status.HTTP_201_CREATED)
def create_season(body: SeasonCreate, db: Session = Depends(get_db)):
    return SeasonService(db).create_season(
        body.short_name,
        body.season_start,
        body.season_end,
        body.cooking_days,
        [(h.start, h.end) for h in body.holidays],
        ticket_is_cancellable_days_before=body.ticket_is_cancellable_days_before,
        dining_mode_is_editable_minutes_before=body.dining_mode_is_editable_minutes_before,
        consecutive_cooking_days=body.consecutive_cooking_days,
    )


@router.get("/seasons/active", response_model=SeasonResponse)
def get_active_season(db: Session = Depends(get_db)):
    return SeasonService(db).get_active_season()


@router.get("/seasons/{season_id}", response_model=SeasonResponse)
def get_season(season_id: int, db: Session = Depends(get_db)):
    return SeasonService(db).get_season(season_id)


@router.patch("/seasons/{season_id}/rules", response_model=SeasonResponse)
def update_season_rules(season_id: int, body: SeasonRulesUpdate, db: Session = Depends(get_db)):
    return SeasonService(db).update_rules(season_id, **body.model_dump())


@router.post("/seasons/{season_id}/activate", response_model=SeasonResponse)
def activate_season(season_id: int, db: Session = Depends(get_db)):
    """Make this the only active season and prebook it from preferences."""
    season = SeasonService(db).activate(season_id)
    PrebookingService(db).scaffold(season.id)
    db.refresh(season)
    return season


@router.post("/seasons/{season_id}/prebookings", response_model=PrebookingResultResponse)
def scaffold_prebookings(season_id: int, db: Session = Depends(get_db)):
    """Bring the season's tickets in the prebooking window in line with preferences."""
    return PrebookingService(db).scaffold(season_id).to_dict()


@router.post("/seasons/{season_id}/deactivate", response_model=SeasonResponse)
def deactivate_season(season_id: int, db: Session = Depends(get_db)):
    return SeasonService(db).deactivate(season_id)


@router.post(
    "/seasons/{season_id}/ticket-prices",
    response_model=TicketPriceResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_ticket_price(season_id: int, body: TicketPriceCreate, db: Session = Depends(get_db)):
    return SeasonService(db).add_ticket_price(
        season_id,
        body.ticket_type,
        body.price,
        maximum_age_limit=body.maximum_age_limit,
        description=body.description,
    )


@router.post("/seasons/{season_id}/dinner-events/generate", response_model=GenerateDinnersResponse)
def generate_dinner_events(season_id: int, db: Session = Depends(get_db)):
    created = SeasonService(db).generate_dinner_events(season_id)
    return GenerateDinnersResponse(season_id=season_id, created=len(created))


@router.post("/seasons/import", response_model=JobRunResponse)
async def import_season(
    calendar: UploadFile = File(...),
    teams: UploadFile = File(...),
    short_name: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """
    Import a season from the calendar and teams spreadsheets.

    Runs as a MAINTENANCE_IMPORT job; unmatched member names make it PARTIAL.
    """
    for upload in (calendar, teams):
        if not upload.filename or not upload.filename.lower().endswith(".csv"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Files must be CSV")
    calendar_csv = await calendar.read()
    teams_csv = await teams.read()
    return JobRunner(db, triggered_by="ADMIN:season-import").run(
        JobType.MAINTENANCE_IMPORT,
        partial(maintenance_import, calendar_csv=calendar_csv, teams_csv=teams_csv, short_name=short_name),
    )


# ============ Cooking teams ============

@router.get("/seasons/{season_id}/teams", response_model=List[CookingTeamResponse])
def list_teams(season_id: int, db: Session = Depends(get_db)):
    return RotationService(db).list_teams(season_id)


@router.post("/seasons/{season_id}/teams", response_model=CookingTeamResponse, status_code=status.HTTP_201_CREATED)
def create_team(season_id: int, body: CookingTeamCreate, db: Session = Depends(get_db)):
    return RotationService(db).create_team(season_id, body.name, body.affinity)


@router.delete("/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_team(team_id: int, db: Session = Depends(get_db)):
    """Delete a team. 409 while dinners or members still reference it."""
    RotationService(db).delete_team(team_id)


@router.post("/teams/{team_id}/members", response_model=TeamMemberResponse, status_code=status.HTTP_201_CREATED)
def add_team_member(team_id: int, body: TeamMemberCreate, db: Session = Depends(get_db)):
    return RotationService(db).add_member(
        team_id,
        body.inhabitant_id,
        body.role,
        allocation_percentage=body.allocation_percentage,
        affinity=body.affinity,
    )


@router.delete("/team-members/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_team_member(assignment_id: int, db: Session = Depends(get_db)):
    RotationService(db).remove_member(assignment_id)


@router.get("/teams/{team_id}/allocation", response_model=AllocationSummaryResponse)
def get_team_allocation(team_id: int, db: Session = Depends(get_db)):
    """Advisory allocation totals per role."""
    return RotationService(db).allocation_summary(team_id)


# ============ Rotation ============

@router.post("/seasons/{season_id}/teams/assign", response_model=AssignTeamsResponse)
def assign_teams(season_id: int, db: Session = Depends(get_db)):
    """Give every unassigned dinner of the season a cooking team."""
    assigned = RotationService(db).assign_teams_to_dinners(season_id)
    return AssignTeamsResponse(season_id=season_id, assigned=assigned)


@router.get("/seasons/{season_id}/rotation/validate", response_model=RotationValidationResponse)
def validate_rotation(season_id: int, db: Session = Depends(get_db)):
    mismatches = RotationService(db).find_season_mismatches(season_id)
    return RotationValidationResponse(valid=not mismatches, mismatches=mismatches)


@router.get("/rotation/teams", response_model=Dict[date, List[CookingTeamResponse]])
def teams_for_range(
    start: date = Query(...),
    end: date = Query(...),
    db: Session = Depends(get_db),
):
    """Teams cooking on each dinner date in the range, one per dinner."""
    if end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must not be before start")
    return RotationService(db).teams_for_range(start, end)
