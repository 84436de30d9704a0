"""
Pydantic schemas for the delivery order API.
Intake, acceptance and cancellation requests plus order responses.
"""

import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.order import OrderStatus


class DeliveryStopInput(BaseModel):
    """An extra drop-off point. Sequence defaults to the next free slot (2, 3, ...)."""
    sequence: Optional[int] = Field(None, ge=2, description="Stop sequence; the primary recipient is 1")
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_phone: str = Field(..., min_length=8, max_length=20)
    address: str = Field(..., min_length=1)
    reference_point: Optional[str] = None


class OrderCreate(BaseModel):
    """Request schema for POST /api/v1/orders."""
    company_id: UUID
    route_id: UUID
    scheduled_date: datetime.date
    order_number: Optional[str] = Field(None, min_length=1, max_length=50)
    package_count: int = Field(1, ge=1)
    total_weight_kg: float = Field(..., gt=0)
    volume_m3: Optional[float] = Field(None, ge=0)
    content_description: Optional[str] = None
    notes: Optional[str] = None
    pickup_address: str = Field(..., min_length=1)
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_phone: str = Field(..., min_length=8, max_length=20)
    delivery_address: str = Field(..., min_length=1)
    stops: List[DeliveryStopInput] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "example": {
                "company_id": "9a4c3f0e-8d55-4f0b-9d5e-0f6f2b9b7c11",
                "route_id": "1e0f4a52-3c5b-4b1e-a6f6-6a3b8f1c2d77",
                "scheduled_date": "2026-11-20",
                "package_count": 6,
                "total_weight_kg": 18.5,
                "pickup_address": "Rua das Flores 120, Centro, Campinas",
                "recipient_name": "Ana Souza",
                "recipient_phone": "11987654321",
                "delivery_address": "Av. Paulista 1000, Bela Vista, Sao Paulo",
                "stops": [
                    {
                        "recipient_name": "Bruno Lima",
                        "recipient_phone": "11912345678",
                        "address": "Rua Augusta 500, Consolacao, Sao Paulo",
                    }
                ],
            }
        }
    }


class DeliveryStopResponse(BaseModel):
    id: UUID
    sequence: int
    recipient_name: str
    recipient_phone: str
    address: str
    reference_point: Optional[str] = None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    """Response schema for an order with its extra stops."""
    id: UUID
    order_number: str
    company_id: UUID
    route_id: UUID
    scheduled_date: datetime.date
    package_count: int
    total_weight_kg: float
    volume_m3: Optional[float] = None
    pickup_address: str
    recipient_name: str
    recipient_phone: str
    delivery_address: str
    status: OrderStatus
    trip_id: Optional[UUID] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime
    stops: List[DeliveryStopResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class AcceptOrderRequest(BaseModel):
    """Request schema for POST /api/v1/orders/{id}/accept."""
    driver_id: UUID


class CancelOrderRequest(BaseModel):
    """Request schema for POST /api/v1/orders/{id}/cancel."""
    reason: str = Field(..., min_length=1, max_length=500)


class CompletedOrdersCount(BaseModel):
    """Completed-order count read by the referral engine."""
    company_id: UUID
    completed_orders: int
