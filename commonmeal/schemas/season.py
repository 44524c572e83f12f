"""
Season, ticket price and cooking team schemas.
"""
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from commonmeal.core.calendar import normalize_weekdays
from commonmeal.models.enums import TeamRole, TicketType


class HolidayRange(BaseModel):
    start: date
    end: date


class SeasonCreate(BaseModel):
    short_name: str
    season_start: date
    season_end: date
    cooking_days: List[str]
    holidays: List[HolidayRange] = Field(default_factory=list)
    ticket_is_cancellable_days_before: Optional[int] = None
    dining_mode_is_editable_minutes_before: Optional[int] = None
    consecutive_cooking_days: Optional[int] = None

    @field_validator("cooking_days")
    @classmethod
    def known_weekdays(cls, v):
        return normalize_weekdays(v)


class SeasonRulesUpdate(BaseModel):
    ticket_is_cancellable_days_before: Optional[int] = Field(default=None, ge=0)
    dining_mode_is_editable_minutes_before: Optional[int] = Field(default=None, ge=0)
    consecutive_cooking_days: Optional[int] = Field(default=None, ge=1)


class TicketPriceCreate(BaseModel):
    ticket_type: TicketType
    price: int = Field(ge=0)
    maximum_age_limit: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None


class TicketPriceResponse(BaseModel):
    id: int
    season_id: int
    ticket_type: TicketType
    price: int
    maximum_age_limit: Optional[int]
    description: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class SeasonResponse(BaseModel):
    id: int
    short_name: str
    season_start: date
    season_end: date
    is_active: bool
    cooking_days: List[str]
    holidays: List[HolidayRange]
    ticket_is_cancellable_days_before: int
    dining_mode_is_editable_minutes_before: int
    consecutive_cooking_days: int
    ticket_prices: List[TicketPriceResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CookingTeamCreate(BaseModel):
    name: str
    affinity: Optional[List[str]] = None


class TeamMemberCreate(BaseModel):
    inhabitant_id: int
    role: TeamRole
    allocation_percentage: int = Field(default=100, ge=0, le=100)
    affinity: Optional[List[str]] = None


class TeamMemberResponse(BaseModel):
    id: int
    cooking_team_id: int
    inhabitant_id: int
    role: TeamRole
    allocation_percentage: int
    affinity: Optional[List[str]]

    model_config = ConfigDict(from_attributes=True)


class CookingTeamResponse(BaseModel):
    id: int
    season_id: int
    name: str
    affinity: Optional[List[str]]
    assignments: List[TeamMemberResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RoleAllocation(BaseModel):
    members: int
    allocation: int


class AllocationSummaryResponse(BaseModel):
    cooking_team_id: int
    name: str
    total_allocation: int
    roles: Dict[str, RoleAllocation]


class GenerateDinnersResponse(BaseModel):
    season_id: int
    created: int


class AssignTeamsResponse(BaseModel):
    season_id: int
    assigned: int


class SeasonMismatch(BaseModel):
    dinner_event_id: int
    date: date
    dinner_season_id: Optional[int]
    cooking_team_id: int
    team_season_id: int


class RotationValidationResponse(BaseModel):
    valid: bool
    mismatches: List[SeasonMismatch]
