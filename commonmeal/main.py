import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from commonmeal.core.config import get_settings
from commonmeal.core.errors import DomainError
from commonmeal.routers.billing import router as billing_router
from commonmeal.routers.dinner_events import router as dinner_events_router
from commonmeal.routers.health import router as health_router
from commonmeal.routers.inhabitants import router as inhabitants_router
from commonmeal.routers.jobs import router as jobs_router
from commonmeal.routers.orders import router as orders_router
from commonmeal.routers.seasons import router as seasons_router
from commonmeal.services.season_import import SeasonImportError

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Shared-meal logistics for a cohousing community - seasons, cooking rotation, ticket booking and monthly billing.",
    version="0.1.0",
)


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Map domain errors to their HTTP status with a structured body."""
    if exc.status_code >= 500:
        logger.error(f"Domain integrity failure on {request.url.path}: {exc}")
    else:
        logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code.value, "message": exc.message},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Invalid input detected below the schema layer (bad CSV, bad dates)."""
    content = {"error": "invalid_input", "message": str(exc)}
    if isinstance(exc, SeasonImportError):
        content["errors"] = [e.model_dump() for e in exc.errors]
    return JSONResponse(status_code=400, content=content)


# Global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected server errors with structured response."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID"),
        }
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(seasons_router, prefix="/api")
app.include_router(dinner_events_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
app.include_router(inhabitants_router, prefix="/api")
app.include_router(billing_router, prefix="/api")
app.include_router(jobs_router, prefix="/api")


@app.get("/")
def read_root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "docs": "/docs",
        "health": "/health"
    }
