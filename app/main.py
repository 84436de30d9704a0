"""
Intercity Dispatch - FastAPI Application
Main entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import setup_logging
from app.api import (
    routes_router,
    orders_router,
    legs_router,
    trips_router,
    trip_events_router,
)


settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    setup_logging()
    logger.info(f"Starting {settings.app_title} v{settings.app_version} ({settings.app_env})")

    # Initialize database tables (important for SQLite)
    from app.database import init_db
    await init_db()
    logger.info("Database tables initialized")

    yield
    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_title,
    version=settings.app_version,
    description="""
    ## Intercity Dispatch API

    Matches shipping companies' delivery orders with drivers who travel
    between cities on recurring routes.

    ### Features
    - **Route Catalog**: City-pair routes and each driver's weekly capacity profile
    - **Order Intake**: Orders with a primary recipient and any number of extra stops
    - **Allocation**: Driver acceptance reserves trip capacity and builds pickup/delivery legs
    - **Leg Ledger**: Forward-only leg progress drives order and trip status
    - **Reconciliation**: Detects capacity and fan-out drift on trips

    ### Main Endpoints
    - `POST /api/v1/orders` - Create an order
    - `POST /api/v1/orders/{id}/accept` - Driver accepts an order
    - `POST /api/v1/legs/{id}/advance` - Advance a pickup or delivery leg
    - `GET /api/v1/trips/{id}/next-action` - Driver's next stop
    - `GET /api/v1/trips/{id}/events` - SSE stream of ledger events
    """,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API routers
app.include_router(routes_router, prefix=settings.api_prefix)
app.include_router(orders_router, prefix=settings.api_prefix)
app.include_router(legs_router, prefix=settings.api_prefix)
app.include_router(trips_router, prefix=settings.api_prefix)
app.include_router(trip_events_router, prefix=settings.api_prefix)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": settings.app_title,
        "version": settings.app_version,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with a database round trip."""
    from sqlalchemy import text
    from app.database import engine

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return {
        "status": "healthy",
        "database": "connected",
    }
