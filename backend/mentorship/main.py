# backend/mentorship/main.py
"""
Mentorship scheduling API.

Run locally with::

    uvicorn mentorship.main:app --reload --app-dir backend
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .core.config import settings
from .core.exceptions import DomainException
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import availability as availability_v1, health as health_v1, sessions as sessions_v1

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

API_TITLE = "Mentorship Scheduling API"
API_DESCRIPTION = "Mentor availability, slot generation and session negotiation."


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(f"Environment: {settings.environment}")
    if settings.environment == "local":
        from .database import init_db

        init_db()
    yield
    logger.info(f"{API_TITLE} shutting down...")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Render domain errors not already converted by a router."""
    http_exc = exc.to_http_exception()
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": jsonable_encoder(http_exc.detail)},
        headers=http_exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed requests share the VALIDATION_ERROR code with service-level validation."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "message": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "details": {"errors": jsonable_encoder(exc.errors())},
            }
        },
    )


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(health_v1.router)
api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(sessions_v1.router, prefix="/sessions")
app.include_router(api_v1)


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
