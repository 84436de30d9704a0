"""
Leg progress service.

Drives pickup and delivery legs forward through
pending -> in_transit -> delivered | failed and derives order and trip
status from the legs. Legs never move backwards or skip a step.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import (
    DeliveryLeg,
    DeliveryOrder,
    LegStatus,
    OrderStatus,
    PickupLeg,
    Trip,
    TripStatus,
    LEG_TRANSITIONS,
)
from app.services.intake import get_order

logger = logging.getLogger(__name__)

OPEN_LEG_STATUSES = (LegStatus.PENDING, LegStatus.IN_TRANSIT)


@dataclass
class LegAdvanceResult:
    leg: Union[PickupLeg, DeliveryLeg]
    leg_type: str
    order: DeliveryOrder
    trip: Trip


def check_transition(current: LegStatus, new: LegStatus) -> None:
    """Raise unless `new` is the next legal step after `current`."""
    if new not in LEG_TRANSITIONS[current]:
        raise ValidationError(
            f"Leg cannot move from {current.value} to {new.value}",
            code="ILLEGAL_LEG_TRANSITION",
            details={
                "from": current.value,
                "to": new.value,
                "allowed": sorted(s.value for s in LEG_TRANSITIONS[current]),
            },
            status_code=409,
        )


async def count_open_legs(db: AsyncSession, trip_id: UUID) -> int:
    """Pickup plus delivery legs on a trip that are still pending or in transit."""
    pickups = await db.execute(
        select(func.count(PickupLeg.id)).where(
            PickupLeg.trip_id == trip_id,
            PickupLeg.status.in_(OPEN_LEG_STATUSES),
        )
    )
    deliveries = await db.execute(
        select(func.count(DeliveryLeg.id)).where(
            DeliveryLeg.trip_id == trip_id,
            DeliveryLeg.status.in_(OPEN_LEG_STATUSES),
        )
    )
    return int(pickups.scalar_one()) + int(deliveries.scalar_one())


async def complete_trip_if_done(db: AsyncSession, trip: Trip, now: datetime) -> bool:
    """Close an in-progress trip once none of its legs are open."""
    if trip.status != TripStatus.IN_PROGRESS:
        return False
    if await count_open_legs(db, trip.id):
        return False
    trip.status = TripStatus.COMPLETED
    trip.actual_arrival_at = now
    await db.flush()
    logger.info(f"Trip {trip.id} completed")
    return True


async def _load_leg(db: AsyncSession, leg_id: UUID) -> Tuple[Union[PickupLeg, DeliveryLeg], str]:
    result = await db.execute(
        select(DeliveryLeg)
        .where(DeliveryLeg.id == leg_id)
        .execution_options(populate_existing=True)
    )
    leg = result.scalar_one_or_none()
    if leg is not None:
        return leg, "delivery"

    result = await db.execute(
        select(PickupLeg)
        .where(PickupLeg.id == leg_id)
        .execution_options(populate_existing=True)
    )
    leg = result.scalar_one_or_none()
    if leg is not None:
        return leg, "pickup"
    raise NotFoundError("Leg", leg_id)


async def _order_delivery_legs(db: AsyncSession, trip_id: UUID, order_id: UUID):
    result = await db.execute(
        select(DeliveryLeg)
        .where(DeliveryLeg.trip_id == trip_id, DeliveryLeg.order_id == order_id)
        .order_by(DeliveryLeg.sequence)
    )
    return list(result.scalars().all())


async def _on_pickup_progress(
    db: AsyncSession,
    leg: PickupLeg,
    order: DeliveryOrder,
    now: datetime,
) -> None:
    if leg.status == LegStatus.DELIVERED:
        if order.status == OrderStatus.DRIVER_ACCEPTED:
            order.status = OrderStatus.PICKED_UP
        return

    if leg.status == LegStatus.FAILED:
        # Nothing was collected, so none of the drop-offs can happen
        for delivery in await _order_delivery_legs(db, leg.trip_id, order.id):
            if delivery.status == LegStatus.PENDING:
                delivery.status = LegStatus.FAILED
                delivery.completed_at = now
                delivery.failure_reason = "Pickup failed"
        order.status = OrderStatus.FAILED
        logger.info(f"Pickup for order {order.order_number} failed; order failed")


async def _on_delivery_progress(db: AsyncSession, leg: DeliveryLeg, order: DeliveryOrder) -> None:
    if leg.status == LegStatus.IN_TRANSIT:
        if order.status in (OrderStatus.DRIVER_ACCEPTED, OrderStatus.PICKED_UP):
            order.status = OrderStatus.IN_TRANSIT
        return

    deliveries = await _order_delivery_legs(db, leg.trip_id, order.id)
    if any(not d.status.is_terminal for d in deliveries):
        return

    delivered = sum(1 for d in deliveries if d.status == LegStatus.DELIVERED)
    if delivered == len(deliveries):
        order.status = OrderStatus.COMPLETED
    elif delivered == 0:
        order.status = OrderStatus.FAILED
    else:
        order.status = OrderStatus.PARTIALLY_DELIVERED
    logger.info(
        f"Order {order.order_number} finished as {order.status.value} "
        f"({delivered}/{len(deliveries)} drop-offs delivered)"
    )


async def advance_leg(
    db: AsyncSession,
    leg_id: UUID,
    new_status: LegStatus,
    failure_reason: Optional[str] = None,
) -> LegAdvanceResult:
    """
    Move one leg a single step forward and derive order and trip status.

    A delivery leg may only leave pending after its order's pickup leg was
    delivered. The status write is conditional on the status read, so two
    drivers' apps racing on the same leg cannot both win.

    Raises:
        NotFoundError: no pickup or delivery leg with this id
        ValidationError: illegal transition or pickup not yet collected (409)
        ConflictError: the leg changed underneath this call
    """
    leg, leg_type = await _load_leg(db, leg_id)
    current = leg.status
    check_transition(current, new_status)

    # Order row first, same lock order as acceptance and cancellation
    order = await get_order(db, leg.order_id, for_update=True)

    if leg_type == "delivery" and current == LegStatus.PENDING:
        pickup_result = await db.execute(select(PickupLeg).where(PickupLeg.id == leg.pickup_leg_id))
        pickup = pickup_result.scalar_one()
        if pickup.status != LegStatus.DELIVERED:
            raise ValidationError(
                f"Order {order.order_number} has not been picked up yet",
                code="PICKUP_NOT_COLLECTED",
                details={"pickup_leg_id": str(pickup.id), "pickup_status": pickup.status.value},
                status_code=409,
            )

    now = datetime.utcnow()
    values = {"status": new_status}
    if new_status == LegStatus.IN_TRANSIT:
        values["started_at"] = now
    else:
        values["completed_at"] = now
    if new_status == LegStatus.FAILED:
        values["failure_reason"] = failure_reason

    model = DeliveryLeg if leg_type == "delivery" else PickupLeg
    result = await db.execute(
        update(model)
        .where(model.id == leg.id, model.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            f"Leg {leg.id} changed concurrently; reload and retry",
            code="LEG_STATUS_CHANGED",
            details={"leg_id": str(leg.id), "expected_status": current.value},
        )
    for key, value in values.items():
        set_committed_value(leg, key, value)

    result = await db.execute(
        select(Trip)
        .where(Trip.id == leg.trip_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    trip = result.scalar_one()

    if trip.status == TripStatus.SCHEDULED and current == LegStatus.PENDING:
        trip.status = TripStatus.IN_PROGRESS
        trip.actual_departure_at = now
        logger.info(f"Trip {trip.id} departed")

    if leg_type == "pickup":
        await _on_pickup_progress(db, leg, order, now)
    else:
        await _on_delivery_progress(db, leg, order)
    await db.flush()

    await complete_trip_if_done(db, trip, now)

    logger.info(
        f"{leg_type.capitalize()} leg {leg.id} {current.value} -> {new_status.value} "
        f"(order {order.order_number}: {order.status.value}, trip {trip.id}: {trip.status.value})"
    )
    return LegAdvanceResult(leg=leg, leg_type=leg_type, order=order, trip=trip)
