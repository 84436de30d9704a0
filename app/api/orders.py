"""
Delivery order API endpoints.
Intake, acceptance by a driver, cancellation and tracking.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.events import publish_ledger_event
from app.database import get_db
from app.schemas.order import (
    OrderCreate,
    OrderResponse,
    AcceptOrderRequest,
    CancelOrderRequest,
    CompletedOrdersCount,
)
from app.schemas.trip import (
    AcceptOrderResponse,
    DeliveryLegResponse,
    OrderTrackingResponse,
    PickupLegResponse,
    TripResponse,
)
from app.services.allocation import accept_order, cancel_order
from app.services.intake import create_order, get_order, count_completed_orders
from app.services.ledger import order_tracking

router = APIRouter(tags=["Orders"])


@router.post(
    "/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Create an order with its extra stops and open it for drivers.",
)
async def create_order_endpoint(
    request: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await create_order(db, request)
    await db.commit()
    return OrderResponse.model_validate(order)


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order_endpoint(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await get_order(db, order_id)
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/accept",
    response_model=AcceptOrderResponse,
    summary="Accept order",
    description=(
        "Accept an order onto the driver's trip for its route and date. "
        "Creates the trip if needed and returns the pickup and delivery legs. "
        "Retrying an acceptance the same driver already holds is safe."
    ),
    responses={
        404: {"description": "Order not found"},
        409: {"description": "Capacity exceeded or order held by another driver"},
    },
)
async def accept_order_endpoint(
    order_id: UUID,
    request: AcceptOrderRequest,
    db: AsyncSession = Depends(get_db),
) -> AcceptOrderResponse:
    result = await accept_order(db, request.driver_id, order_id)
    await db.commit()

    if not result.already_accepted:
        await publish_ledger_event(
            "ORDER_ACCEPTED",
            trip_id=result.trip.id,
            order_id=result.order.id,
            payload={
                "driver_id": str(request.driver_id),
                "delivery_legs": len(result.delivery_legs),
                "consumed_packages": result.trip.consumed_packages,
                "consumed_weight_kg": result.trip.consumed_weight_kg,
            },
        )

    return AcceptOrderResponse(
        order_id=result.order.id,
        order_status=result.order.status,
        already_accepted=result.already_accepted,
        trip=TripResponse.model_validate(result.trip),
        pickup_leg=PickupLegResponse.model_validate(result.pickup_leg),
        delivery_legs=[DeliveryLegResponse.model_validate(leg) for leg in result.delivery_legs],
    )


@router.post(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    description="Cancel an order, releasing its capacity and closing its open legs.",
)
async def cancel_order_endpoint(
    order_id: UUID,
    request: CancelOrderRequest,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    result = await cancel_order(db, order_id, request.reason)
    await db.commit()

    order = result.order
    if order.trip_id is not None and not result.already_cancelled:
        await publish_ledger_event(
            "ORDER_CANCELLED",
            trip_id=order.trip_id,
            order_id=order.id,
            payload={"reason": request.reason},
        )
    return OrderResponse.model_validate(order)


@router.get(
    "/orders/{order_id}/tracking",
    response_model=OrderTrackingResponse,
    summary="Track order",
    description="Order status with its pickup and delivery legs.",
)
async def track_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> OrderTrackingResponse:
    return await order_tracking(db, order_id)


@router.get(
    "/companies/{company_id}/completed-orders",
    response_model=CompletedOrdersCount,
    summary="Count completed orders",
)
async def completed_orders(
    company_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> CompletedOrdersCount:
    count = await count_completed_orders(db, company_id)
    return CompletedOrdersCount(company_id=company_id, completed_orders=count)
