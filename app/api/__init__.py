"""API routers package initialization."""

from app.api.routes import router as routes_router
from app.api.orders import router as orders_router
from app.api.legs import router as legs_router
from app.api.trips import router as trips_router
from app.api.trip_events import router as trip_events_router

__all__ = [
    "routes_router",
    "orders_router",
    "legs_router",
    "trips_router",
    "trip_events_router",
]
