"""
Pydantic schemas for the route catalog API.
Routes and driver route profiles.
"""

from datetime import datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class RouteCreate(BaseModel):
    """Request schema for POST /api/v1/routes."""
    name: str = Field(..., min_length=1, max_length=255)
    origin_city: str = Field(..., min_length=1, max_length=120)
    destination_city: str = Field(..., min_length=1, max_length=120)
    distance_km: float = Field(0.0, ge=0)
    avg_travel_minutes: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_distinct_cities(self) -> "RouteCreate":
        if self.origin_city.strip().lower() == self.destination_city.strip().lower():
            raise ValueError("Origin and destination cities must differ")
        return self


class RouteUpdate(BaseModel):
    """Request schema for PATCH /api/v1/routes/{id}."""
    is_active: bool


class RouteResponse(BaseModel):
    """Response schema for a route."""
    id: UUID
    name: str
    origin_city: str
    destination_city: str
    distance_km: float
    avg_travel_minutes: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


def _normalize_days(v: Optional[List[int]]) -> Optional[List[int]]:
    if v is None:
        return v
    if not v:
        raise ValueError("At least one day of week is required")
    for day in v:
        if day < 1 or day > 7:
            raise ValueError("Days of week must be ISO weekdays 1 (Monday) to 7 (Sunday)")
    return sorted(set(v))


class DriverRouteProfileCreate(BaseModel):
    """Request schema for POST /api/v1/driver-route-profiles."""
    driver_id: UUID
    route_id: UUID
    days_of_week: List[int] = Field(..., description="ISO weekdays, 1 = Monday")
    departure_time: time
    arrival_time: Optional[time] = None
    max_packages: int = Field(..., ge=1)
    max_weight_kg: float = Field(..., gt=0)
    accepts_multiple_pickups: bool = True
    accepts_multiple_deliveries: bool = True

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: List[int]) -> List[int]:
        return _normalize_days(v)


class DriverRouteProfileUpdate(BaseModel):
    """Request schema for PATCH /api/v1/driver-route-profiles/{id}. All fields optional."""
    days_of_week: Optional[List[int]] = None
    departure_time: Optional[time] = None
    arrival_time: Optional[time] = None
    max_packages: Optional[int] = Field(None, ge=1)
    max_weight_kg: Optional[float] = Field(None, gt=0)
    accepts_multiple_pickups: Optional[bool] = None
    accepts_multiple_deliveries: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return _normalize_days(v)

    @model_validator(mode="after")
    def check_no_null_fields(self) -> "DriverRouteProfileUpdate":
        # Omit a field to leave it unchanged; only arrival_time may be cleared
        nulled = sorted(
            name for name in self.model_fields_set
            if name != "arrival_time" and getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self


class DriverRouteProfileResponse(BaseModel):
    """Response schema for a driver route profile."""
    id: UUID
    driver_id: UUID
    route_id: UUID
    days_of_week: List[int]
    departure_time: time
    arrival_time: Optional[time] = None
    max_packages: int
    max_weight_kg: float
    accepts_multiple_pickups: bool
    accepts_multiple_deliveries: bool
    is_active: bool
    updated_at: datetime

    model_config = {"from_attributes": True}
