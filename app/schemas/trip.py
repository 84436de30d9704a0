"""
Pydantic schemas for trips and the leg ledger.
Acceptance results, leg advancement, next action, manifest, tracking
and integrity reports.
"""

import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.leg import LegStatus
from app.models.order import OrderStatus
from app.models.trip import TripStatus


class TripResponse(BaseModel):
    """Trip header with its capacity ledger."""
    id: UUID
    driver_id: UUID
    route_id: UUID
    profile_id: UUID
    travel_date: datetime.date
    status: TripStatus
    ceiling_packages: int
    ceiling_weight_kg: float
    consumed_packages: int
    consumed_weight_kg: float
    accepts_multiple_pickups: bool
    accepts_multiple_deliveries: bool
    planned_departure_at: Optional[datetime.datetime] = None
    planned_arrival_at: Optional[datetime.datetime] = None
    actual_departure_at: Optional[datetime.datetime] = None
    actual_arrival_at: Optional[datetime.datetime] = None
    cancellation_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class PickupLegResponse(BaseModel):
    id: UUID
    trip_id: UUID
    order_id: UUID
    pickup_order: int
    pickup_address: str
    status: LegStatus
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    failure_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class DeliveryLegResponse(BaseModel):
    id: UUID
    trip_id: UUID
    order_id: UUID
    pickup_leg_id: UUID
    stop_id: Optional[UUID] = None
    sequence: int
    recipient_name: str
    recipient_phone: str
    delivery_address: str
    status: LegStatus
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    failure_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class AcceptOrderResponse(BaseModel):
    """Response schema for POST /api/v1/orders/{id}/accept."""
    order_id: UUID
    order_status: OrderStatus
    already_accepted: bool = Field(
        False,
        description="True when this call was a retry of an acceptance that already succeeded",
    )
    trip: TripResponse
    pickup_leg: PickupLegResponse
    delivery_legs: List[DeliveryLegResponse]


class LegAdvanceRequest(BaseModel):
    """Request schema for POST /api/v1/legs/{id}/advance."""
    status: LegStatus
    failure_reason: Optional[str] = Field(None, max_length=500)


class LegAdvanceResponse(BaseModel):
    leg_id: UUID
    leg_type: Literal["pickup", "delivery"]
    status: LegStatus
    order_id: UUID
    order_status: OrderStatus
    trip_id: UUID
    trip_status: TripStatus


class NextActionResponse(BaseModel):
    """What the driver should do next on a trip. leg is None when the trip is done."""
    trip_id: UUID
    trip_status: TripStatus
    action: Optional[Literal["pickup", "delivery"]] = None
    order_id: Optional[UUID] = None
    order_number: Optional[str] = None
    leg_id: Optional[UUID] = None
    leg_status: Optional[LegStatus] = None
    sequence: Optional[int] = None
    address: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    remaining_legs: int = 0


class ManifestOrderGroup(BaseModel):
    """All legs of one order on a trip."""
    order_id: UUID
    order_number: str
    order_status: OrderStatus
    package_count: int
    total_weight_kg: float
    pickup_leg: Optional[PickupLegResponse] = None
    delivery_legs: List[DeliveryLegResponse] = Field(default_factory=list)


class TripManifestResponse(BaseModel):
    """Response schema for GET /api/v1/trips/{id}/manifest."""
    trip: TripResponse
    orders: List[ManifestOrderGroup]
    required_packages: int = Field(..., description="Sum of package counts over non-cancelled orders")
    required_weight_kg: float = Field(..., description="Sum of weights over non-cancelled orders")
    capacity_consistent: bool


class OrderTrackingResponse(BaseModel):
    """Response schema for order tracking: order status plus its legs."""
    order_id: UUID
    order_number: str
    status: OrderStatus
    trip_id: Optional[UUID] = None
    pickup_leg: Optional[PickupLegResponse] = None
    delivery_legs: List[DeliveryLegResponse] = Field(default_factory=list)


class CancelTripRequest(BaseModel):
    """Request schema for POST /api/v1/trips/{id}/cancel."""
    reason: str = Field(..., min_length=1, max_length=500)


class IntegrityIssueResponse(BaseModel):
    trip_id: UUID
    order_id: Optional[UUID] = None
    kind: str
    message: str
    expected: Optional[float] = None
    actual: Optional[float] = None


class IntegrityReportResponse(BaseModel):
    """Reconciliation report for one or more trips."""
    checked_trips: int
    ok: bool
    issues: List[IntegrityIssueResponse] = Field(default_factory=list)
