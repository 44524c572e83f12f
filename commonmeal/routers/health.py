"""
Health check router: database connectivity and the active season.
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commonmeal.db.session import get_db
from commonmeal.models.season import Season

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Liveness only - always returns OK."""
    return {"status": "ok"}


@router.get("/api/health")
def api_health_check(db: Session = Depends(get_db)):
    """
    Readiness check.

    503 when the database is unreachable. A missing or duplicated active
    season is reported but does not fail the check; bookings fall back to
    the dinner's own season.
    """
    try:
        db.execute(text("SELECT 1"))
        active = list(db.scalars(select(Season.short_name).where(Season.is_active.is_(True))))
    except SQLAlchemyError as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "services": {"database": {"status": "error", "message": str(e)}}},
        )

    season_status = "ok" if len(active) == 1 else ("missing" if not active else "conflict")
    return {
        "status": "ok",
        "services": {
            "database": {"status": "ok"},
            "active_season": {"status": season_status, "short_names": active},
        },
    }
