"""
Point-in-time copies written into a Transaction when an order is billed.

They are frozen value objects: later edits to the order, the inhabitant
or the household never reach a snapshot that has already been stored.
"""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class HouseholdSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    pbs_id: int
    name: str
    address: str


class InhabitantSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    last_name: str


class DinnerSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    date: date
    menu_title: str


class OrderSnapshot(BaseModel):
    """Everything billing needs to explain a line on an invoice."""
    model_config = ConfigDict(frozen=True)

    id: int
    state: str
    ticket_type: Optional[str] = None
    ticket_price_id: Optional[int] = None
    price_at_booking: int
    dinner_mode: str
    is_guest_ticket: bool
    booked_by_user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    dinner: DinnerSnapshot
    inhabitant: InhabitantSnapshot
    household: HouseholdSnapshot


class UserSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    email: str = "unknown"
