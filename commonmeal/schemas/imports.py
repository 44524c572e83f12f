"""
Normalized records consumed by the membership and season importers.
"""
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class InhabitantRecord(BaseModel):
    """One resident as delivered by the membership system."""
    heynabo_id: int
    name: str
    last_name: str
    birth_date: Optional[date] = None
    picture_url: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        return v or None


class HouseholdRecord(BaseModel):
    heynabo_id: int
    pbs_id: int
    name: str
    address: str
    moved_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    inhabitants: List[InhabitantRecord] = Field(default_factory=list)

    @field_validator("pbs_id")
    @classmethod
    def pbs_id_positive(cls, v):
        if v <= 0:
            raise ValueError("pbs_id must be positive")
        return v


class RowError(BaseModel):
    """A problem with one row of an uploaded CSV."""
    row_number: int
    field: str
    message: str
    raw_value: Optional[str] = None


class CalendarHoliday(BaseModel):
    name: str
    start: date
    end: date


class ParsedCalendar(BaseModel):
    season_start: date
    season_end: date
    cooking_days: List[str]
    holidays: List[CalendarHoliday]
    team_dates: dict[int, List[date]]


class ParsedTeamMember(BaseModel):
    csv_name: str
    role: str
    affinity: Optional[List[str]] = None
    inhabitant_id: Optional[int] = None


class ParsedTeam(BaseModel):
    name: str
    number: Optional[int] = None
    members: List[ParsedTeamMember] = Field(default_factory=list)


class ParsedTeams(BaseModel):
    teams: List[ParsedTeam]
    unmatched: List[str] = Field(default_factory=list)
