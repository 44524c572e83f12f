"""
Inhabitant router: standing dinner preferences.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from commonmeal.db.session import get_db
from commonmeal.schemas.order import DinnerPreferencesResponse, DinnerPreferencesUpdate
from commonmeal.services.prebooking import PrebookingService

router = APIRouter(prefix="/inhabitants", tags=["inhabitants"])


@router.put("/{inhabitant_id}/preferences", response_model=DinnerPreferencesResponse)
def set_dinner_preferences(inhabitant_id: int, body: DinnerPreferencesUpdate, db: Session = Depends(get_db)):
    """
    Replace an inhabitant's weekday preferences and re-prebook their
    household in the active season.
    """
    service = PrebookingService(db)
    inhabitant = service.set_preferences(inhabitant_id, body.preferences)
    result = service.scaffold(household_id=inhabitant.household_id)
    db.refresh(inhabitant)
    return DinnerPreferencesResponse(
        inhabitant_id=inhabitant.id,
        dinner_preferences=inhabitant.dinner_preferences,
        prebooking=result.to_dict(),
    )
