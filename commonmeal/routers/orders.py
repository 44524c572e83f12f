"""
Order router: book, release, cancel, claim and dining-mode edits.

The acting user is passed explicitly in the request body; there is no
authentication layer in front of these endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from commonmeal.db.session import get_db
from commonmeal.schemas.order import (
    DiningModeUpdate,
    OrderAction,
    OrderClaim,
    OrderCreate,
    OrderHistoryResponse,
    OrderResponse,
)
from commonmeal.services.booking import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def book_order(body: OrderCreate, db: Session = Depends(get_db)):
    """Book a ticket. Returns 409 if the inhabitant already holds one for the dinner."""
    return OrderService(db).book(
        dinner_event_id=body.dinner_event_id,
        inhabitant_id=body.inhabitant_id,
        booked_by_user_id=body.booked_by_user_id,
        dinner_mode=body.dinner_mode,
        is_guest_ticket=body.is_guest_ticket,
        ticket_price_id=body.ticket_price_id,
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db)):
    return OrderService(db).get_order(order_id)


@router.get("/{order_id}/history", response_model=List[OrderHistoryResponse])
def get_order_history(order_id: int, db: Session = Depends(get_db)):
    return OrderService(db).history(order_id)


@router.post("/{order_id}/release", response_model=OrderResponse)
def release_order(order_id: int, body: OrderAction, db: Session = Depends(get_db)):
    """Release a ticket before the cancellation deadline (422 after it)."""
    return OrderService(db).release(order_id, performed_by_user_id=body.performed_by_user_id)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    body: OrderAction,
    admin: bool = Query(False, description="Administrative cancellation ignores the deadline"),
    db: Session = Depends(get_db),
):
    return OrderService(db).cancel(order_id, performed_by_user_id=body.performed_by_user_id, admin=admin)


@router.post("/{order_id}/claim", response_model=OrderResponse)
def claim_order(order_id: int, body: OrderClaim, db: Session = Depends(get_db)):
    """Claim a released ticket. 409 when it is no longer RELEASED."""
    return OrderService(db).claim(
        order_id,
        inhabitant_id=body.inhabitant_id,
        performed_by_user_id=body.performed_by_user_id,
    )


@router.patch("/{order_id}/dining-mode", response_model=OrderResponse)
def update_dining_mode(order_id: int, body: DiningModeUpdate, db: Session = Depends(get_db)):
    return OrderService(db).update_dining_mode(
        order_id,
        body.dinner_mode,
        performed_by_user_id=body.performed_by_user_id,
    )
