"""
Trek Bookings API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.dependencies import shutdown_notifier
from domain.errors import BookingError
from settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # Let queued emails go out before the process exits.
    shutdown_notifier()


# Create FastAPI application
app = FastAPI(
    title="Trek Bookings API",
    description="REST API for trek slot availability, bookings and vouchers",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.message}",
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {field}: {first.get('msg')}" if field else f"Invalid request: {first.get('msg')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        f"Unhandled error on {request.method} {request.url.path}",
        extra={"path": request.url.path},
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "trek-bookings-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Trek Bookings API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import admin, bookings, slots, vouchers

app.include_router(slots.router, prefix="/api", tags=["Slots"])
app.include_router(bookings.router, prefix="/api", tags=["Bookings"])
app.include_router(vouchers.router, prefix="/api", tags=["Vouchers"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])
