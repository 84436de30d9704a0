"""Models package initialization - imports all models for easy access."""

from app.models.route import Route, DriverRouteProfile
from app.models.order import DeliveryOrder, DeliveryStop, OrderStatus, TERMINAL_ORDER_STATUSES
from app.models.trip import Trip, TripStatus, ACTIVE_TRIP_STATUSES
from app.models.leg import PickupLeg, DeliveryLeg, LegStatus, LEG_TRANSITIONS

__all__ = [
    # Route catalog
    "Route",
    "DriverRouteProfile",
    # Orders
    "DeliveryOrder",
    "DeliveryStop",
    "OrderStatus",
    "TERMINAL_ORDER_STATUSES",
    # Trips
    "Trip",
    "TripStatus",
    "ACTIVE_TRIP_STATUSES",
    # Leg ledger
    "PickupLeg",
    "DeliveryLeg",
    "LegStatus",
    "LEG_TRANSITIONS",
]
