"""
Leg ledger read service.
Trip lookups, the driver's next action, trip manifests and order tracking.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models import (
    DeliveryLeg,
    DeliveryOrder,
    LegStatus,
    OrderStatus,
    PickupLeg,
    Trip,
    TripStatus,
)
from app.schemas.trip import (
    DeliveryLegResponse,
    ManifestOrderGroup,
    NextActionResponse,
    OrderTrackingResponse,
    PickupLegResponse,
    TripManifestResponse,
    TripResponse,
)
from app.services.allocation import load_trip
from app.services.intake import get_order

logger = logging.getLogger(__name__)


async def get_trip(db: AsyncSession, trip_id: UUID) -> Trip:
    return await load_trip(db, trip_id)


async def list_driver_trips(
    db: AsyncSession,
    driver_id: UUID,
    travel_date: Optional[date] = None,
    status: Optional[TripStatus] = None,
) -> List[Trip]:
    query = select(Trip).where(Trip.driver_id == driver_id)
    if travel_date is not None:
        query = query.where(Trip.travel_date == travel_date)
    if status is not None:
        query = query.where(Trip.status == status)
    result = await db.execute(query.order_by(Trip.travel_date.desc(), Trip.created_at))
    return list(result.scalars().all())


async def trip_legs(db: AsyncSession, trip_id: UUID) -> Tuple[List[PickupLeg], List[DeliveryLeg]]:
    """All legs of a trip: pickups by pickup order, deliveries by sequence."""
    pickups = await db.execute(
        select(PickupLeg)
        .where(PickupLeg.trip_id == trip_id)
        .order_by(PickupLeg.pickup_order)
    )
    deliveries = await db.execute(
        select(DeliveryLeg)
        .where(DeliveryLeg.trip_id == trip_id)
        .order_by(DeliveryLeg.sequence)
    )
    return list(pickups.scalars().all()), list(deliveries.scalars().all())


def _first_sequences(deliveries: List[DeliveryLeg]) -> Dict[UUID, int]:
    first: Dict[UUID, int] = {}
    for leg in deliveries:
        first.setdefault(leg.order_id, leg.sequence)
    return first


async def next_action(db: AsyncSession, trip_id: UUID) -> NextActionResponse:
    """
    The single leg the driver should work on next.

    Legs are walked in ascending delivery sequence. An order's pickup comes
    right before its first drop-off, and drop-offs are only offered once
    their pickup has been collected. Returns an empty action when every leg
    is finished.
    """
    trip = await load_trip(db, trip_id)
    pickups, deliveries = await trip_legs(db, trip.id)
    first_sequence = _first_sequences(deliveries)
    pickup_by_order = {leg.order_id: leg for leg in pickups}

    candidates = []
    for leg in pickups:
        if not leg.status.is_terminal:
            key = (first_sequence.get(leg.order_id, 0), 0, leg.pickup_order)
            candidates.append((key, "pickup", leg))
    for leg in deliveries:
        if leg.status.is_terminal:
            continue
        pickup = pickup_by_order.get(leg.order_id)
        if pickup is not None and pickup.status != LegStatus.DELIVERED:
            continue
        candidates.append(((first_sequence[leg.order_id], 1, leg.sequence), "delivery", leg))

    open_legs = sum(1 for leg in [*pickups, *deliveries] if not leg.status.is_terminal)
    if not candidates:
        return NextActionResponse(trip_id=trip.id, trip_status=trip.status, remaining_legs=open_legs)

    _, action, leg = min(candidates, key=lambda candidate: candidate[0])
    order_result = await db.execute(select(DeliveryOrder).where(DeliveryOrder.id == leg.order_id))
    order = order_result.scalar_one()

    if action == "pickup":
        return NextActionResponse(
            trip_id=trip.id,
            trip_status=trip.status,
            action=action,
            order_id=order.id,
            order_number=order.order_number,
            leg_id=leg.id,
            leg_status=leg.status,
            sequence=leg.pickup_order,
            address=leg.pickup_address,
            remaining_legs=open_legs,
        )
    return NextActionResponse(
        trip_id=trip.id,
        trip_status=trip.status,
        action=action,
        order_id=order.id,
        order_number=order.order_number,
        leg_id=leg.id,
        leg_status=leg.status,
        sequence=leg.sequence,
        address=leg.delivery_address,
        recipient_name=leg.recipient_name,
        recipient_phone=leg.recipient_phone,
        remaining_legs=open_legs,
    )


async def trip_manifest(db: AsyncSession, trip_id: UUID) -> TripManifestResponse:
    """Every order on a trip with its legs, plus the capacity cross-check."""
    trip = await load_trip(db, trip_id)
    pickups, deliveries = await trip_legs(db, trip.id)

    leg_order_ids = {leg.order_id for leg in pickups}
    orders_result = await db.execute(
        select(DeliveryOrder).where(
            or_(DeliveryOrder.trip_id == trip.id, DeliveryOrder.id.in_(list(leg_order_ids)))
        )
    )
    orders = {order.id: order for order in orders_result.scalars().all()}

    first_sequence = _first_sequences(deliveries)
    groups: Dict[UUID, ManifestOrderGroup] = {}
    for order_id in sorted(orders, key=lambda oid: first_sequence.get(oid, 0)):
        order = orders[order_id]
        groups[order_id] = ManifestOrderGroup(
            order_id=order.id,
            order_number=order.order_number,
            order_status=order.status,
            package_count=order.package_count,
            total_weight_kg=order.total_weight_kg,
        )
    for leg in pickups:
        groups[leg.order_id].pickup_leg = PickupLegResponse.model_validate(leg)
    for leg in deliveries:
        groups[leg.order_id].delivery_legs.append(DeliveryLegResponse.model_validate(leg))

    # Only orders still holding a reservation count against the trip
    holding = [
        order for order in orders.values()
        if order.trip_id == trip.id and order.status != OrderStatus.CANCELLED
    ]
    required_packages = sum(order.package_count for order in holding)
    required_weight = sum(order.total_weight_kg for order in holding)
    eps = get_settings().capacity_epsilon
    consistent = (
        trip.consumed_packages == required_packages
        and abs(trip.consumed_weight_kg - required_weight) <= eps
    )

    return TripManifestResponse(
        trip=TripResponse.model_validate(trip),
        orders=list(groups.values()),
        required_packages=required_packages,
        required_weight_kg=round(required_weight, 3),
        capacity_consistent=consistent,
    )


async def order_tracking(db: AsyncSession, order_id: UUID) -> OrderTrackingResponse:
    """Order status plus its legs on the trip currently holding it."""
    order = await get_order(db, order_id)
    tracking = OrderTrackingResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        trip_id=order.trip_id,
    )
    if order.trip_id is None:
        return tracking

    pickup_result = await db.execute(
        select(PickupLeg).where(
            PickupLeg.trip_id == order.trip_id,
            PickupLeg.order_id == order.id,
        )
    )
    pickup = pickup_result.scalar_one_or_none()
    if pickup is not None:
        tracking.pickup_leg = PickupLegResponse.model_validate(pickup)

    delivery_result = await db.execute(
        select(DeliveryLeg)
        .where(
            DeliveryLeg.trip_id == order.trip_id,
            DeliveryLeg.order_id == order.id,
        )
        .order_by(DeliveryLeg.sequence)
    )
    tracking.delivery_legs = [
        DeliveryLegResponse.model_validate(leg) for leg in delivery_result.scalars().all()
    ]
    return tracking
