"""
Dinner event router.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from commonmeal.db.session import get_db
from commonmeal.schemas.dinner_event import (
    ChefResponse,
    DinnerAllergensUpdate,
    DinnerAnnounce,
    DinnerCancel,
    DinnerEventCreate,
    DinnerEventResponse,
    DinnerTeamUpdate,
)
from commonmeal.schemas.order import OrderListResponse, OrderResponse
from commonmeal.services.booking import OrderService
from commonmeal.services.dinner_event import DinnerEventService
from commonmeal.services.rotation import RotationService

router = APIRouter(prefix="/dinner-events", tags=["dinner-events"])


@router.get("", response_model=List[DinnerEventResponse])
def list_dinner_events(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    season_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return DinnerEventService(db).list_dinners(start, end, season_id)


@router.post("", response_model=DinnerEventResponse, status_code=status.HTTP_201_CREATED)
def create_dinner_event(body: DinnerEventCreate, db: Session = Depends(get_db)):
    return DinnerEventService(db).create_dinner(
        body.date,
        season_id=body.season_id,
        cooking_team_id=body.cooking_team_id,
        chef_id=body.chef_id,
        menu_title=body.menu_title,
        menu_description=body.menu_description,
        heynabo_event_id=body.heynabo_event_id,
    )


@router.get("/{dinner_event_id}", response_model=DinnerEventResponse)
def get_dinner_event(dinner_event_id: int, db: Session = Depends(get_db)):
    return DinnerEventService(db).get_dinner(dinner_event_id)


@router.post("/{dinner_event_id}/announce", response_model=DinnerEventResponse)
def announce_dinner_event(dinner_event_id: int, body: DinnerAnnounce, db: Session = Depends(get_db)):
    return DinnerEventService(db).announce(
        dinner_event_id,
        total_cost=body.total_cost,
        menu_title=body.menu_title,
        menu_description=body.menu_description,
    )


@router.post("/{dinner_event_id}/consume", response_model=DinnerEventResponse)
def consume_dinner_event(dinner_event_id: int, db: Session = Depends(get_db)):
    return DinnerEventService(db).consume(dinner_event_id)


@router.post("/{dinner_event_id}/cancel", response_model=DinnerEventResponse)
def cancel_dinner_event(dinner_event_id: int, body: DinnerCancel, db: Session = Depends(get_db)):
    """Cancel the dinner and every open order on it."""
    return DinnerEventService(db).cancel(dinner_event_id, performed_by_user_id=body.performed_by_user_id)


@router.put("/{dinner_event_id}/allergens", response_model=DinnerEventResponse)
def set_dinner_allergens(dinner_event_id: int, body: DinnerAllergensUpdate, db: Session = Depends(get_db)):
    return DinnerEventService(db).set_allergens(dinner_event_id, body.allergy_type_ids)


@router.put("/{dinner_event_id}/team", response_model=DinnerEventResponse)
def set_dinner_team(dinner_event_id: int, body: DinnerTeamUpdate, db: Session = Depends(get_db)):
    return DinnerEventService(db).assign_team(dinner_event_id, body.cooking_team_id)


@router.get("/{dinner_event_id}/chef", response_model=ChefResponse)
def get_dinner_chef(dinner_event_id: int, db: Session = Depends(get_db)):
    chef = RotationService(db).chef_for_dinner(dinner_event_id)
    return ChefResponse(
        dinner_event_id=dinner_event_id,
        inhabitant_id=chef.id if chef else None,
        name=chef.full_name if chef else None,
    )


@router.get("/{dinner_event_id}/orders", response_model=OrderListResponse)
def list_dinner_orders(dinner_event_id: int, db: Session = Depends(get_db)):
    DinnerEventService(db).get_dinner(dinner_event_id)
    orders = OrderService(db).list_for_dinner(dinner_event_id)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        total=len(orders),
    )
