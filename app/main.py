"""
FastAPI application main module.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.config import get_settings
from app.core.exceptions import DomainError
from app.database import init_db
from app.routers import bookings, locations
from app.services.booking_service import get_booking_service

logger = logging.getLogger(__name__)


async def run_expiry_sweeps(interval_seconds: float):
    """Expire overdue bookings every ``interval_seconds`` until cancelled."""
    service = get_booking_service()
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await service.expire_overdue_bookings()
        except Exception:
            logger.exception("Expiry sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    sweeper = None
    if settings.expiry_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(run_expiry_sweeps(settings.expiry_sweep_interval_seconds))
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Parking space booking service with real-time availability",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify allowed origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


# Include routers
app.include_router(bookings.router)
app.include_router(locations.router)


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "name": settings.app_name,
        "status": "healthy",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "ok"}
