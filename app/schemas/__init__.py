"""Schemas package initialization."""

from app.schemas.route import (
    RouteCreate,
    RouteUpdate,
    RouteResponse,
    DriverRouteProfileCreate,
    DriverRouteProfileUpdate,
    DriverRouteProfileResponse,
)
from app.schemas.order import (
    DeliveryStopInput,
    OrderCreate,
    DeliveryStopResponse,
    OrderResponse,
    AcceptOrderRequest,
    CancelOrderRequest,
    CompletedOrdersCount,
)
from app.schemas.trip import (
    TripResponse,
    PickupLegResponse,
    DeliveryLegResponse,
    AcceptOrderResponse,
    LegAdvanceRequest,
    LegAdvanceResponse,
    NextActionResponse,
    ManifestOrderGroup,
    TripManifestResponse,
    OrderTrackingResponse,
    CancelTripRequest,
    IntegrityIssueResponse,
    IntegrityReportResponse,
)

__all__ = [
    # Route catalog
    "RouteCreate",
    "RouteUpdate",
    "RouteResponse",
    "DriverRouteProfileCreate",
    "DriverRouteProfileUpdate",
    "DriverRouteProfileResponse",
    # Orders
    "DeliveryStopInput",
    "OrderCreate",
    "DeliveryStopResponse",
    "OrderResponse",
    "AcceptOrderRequest",
    "CancelOrderRequest",
    "CompletedOrdersCount",
    # Trips and legs
    "TripResponse",
    "PickupLegResponse",
    "DeliveryLegResponse",
    "AcceptOrderResponse",
    "LegAdvanceRequest",
    "LegAdvanceResponse",
    "NextActionResponse",
    "ManifestOrderGroup",
    "TripManifestResponse",
    "OrderTrackingResponse",
    "CancelTripRequest",
    "IntegrityIssueResponse",
    "IntegrityReportResponse",
]
