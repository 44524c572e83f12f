"""
Order request/response schemas.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from commonmeal.models.enums import DinnerMode, OrderAuditAction, OrderState


class OrderCreate(BaseModel):
    dinner_event_id: int
    inhabitant_id: int
    booked_by_user_id: Optional[int] = None
    dinner_mode: DinnerMode = DinnerMode.DINEIN
    is_guest_ticket: bool = False
    ticket_price_id: Optional[int] = None


class OrderAction(BaseModel):
    """Body for release/cancel: who is acting."""
    performed_by_user_id: Optional[int] = None


class OrderClaim(BaseModel):
    inhabitant_id: int
    performed_by_user_id: Optional[int] = None


class DiningModeUpdate(BaseModel):
    dinner_mode: DinnerMode
    performed_by_user_id: Optional[int] = None


class OrderResponse(BaseModel):
    id: int
    dinner_event_id: int
    inhabitant_id: int
    booked_by_user_id: Optional[int]
    ticket_price_id: Optional[int]
    price_at_booking: Optional[int]
    dinner_mode: DinnerMode
    state: OrderState
    is_guest_ticket: bool
    released_at: Optional[datetime]
    closed_at: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class OrderHistoryResponse(BaseModel):
    id: int
    order_id: Optional[int]
    action: OrderAuditAction
    performed_by_user_id: Optional[int]
    audit_data: Optional[Dict[str, Any]]
    timestamp: datetime
    inhabitant_id: Optional[int]
    dinner_event_id: Optional[int]
    season_id: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total: int


class DinnerPreferencesUpdate(BaseModel):
    """Weekday -> dining mode, e.g. {"monday": "DINEIN", "friday": "NONE"}."""
    preferences: Dict[str, str]


class PrebookingResultResponse(BaseModel):
    season_id: Optional[int]
    created: int
    removed: int
    unchanged: int
    skipped_cancelled: int
    preferences_clipped: int
    households: int
    failed: int
    errors: List[str]


class DinnerPreferencesResponse(BaseModel):
    inhabitant_id: int
    dinner_preferences: Optional[Dict[str, DinnerMode]]
    prebooking: PrebookingResultResponse
