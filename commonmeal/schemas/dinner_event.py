"""
Dinner event schemas.
"""
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from commonmeal.models.enums import DinnerState


class DinnerEventCreate(BaseModel):
    date: date
    season_id: Optional[int] = None
    cooking_team_id: Optional[int] = None
    chef_id: Optional[int] = None
    menu_title: str = "TBD"
    menu_description: Optional[str] = None
    heynabo_event_id: Optional[int] = None


class DinnerAnnounce(BaseModel):
    total_cost: Optional[int] = None
    menu_title: Optional[str] = None
    menu_description: Optional[str] = None

    @field_validator("total_cost")
    @classmethod
    def cost_not_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("total_cost cannot be negative")
        return v


class DinnerCancel(BaseModel):
    performed_by_user_id: Optional[int] = None


class DinnerAllergensUpdate(BaseModel):
    allergy_type_ids: List[int]


class DinnerTeamUpdate(BaseModel):
    cooking_team_id: int


class DinnerEventResponse(BaseModel):
    id: int
    date: date
    menu_title: str
    menu_description: Optional[str]
    menu_picture_url: Optional[str]
    state: DinnerState
    total_cost: int
    chef_id: Optional[int]
    cooking_team_id: Optional[int]
    season_id: Optional[int]
    heynabo_event_id: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class ChefResponse(BaseModel):
    dinner_event_id: int
    inhabitant_id: Optional[int]
    name: Optional[str]
