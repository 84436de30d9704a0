"""
Allocation engine.

Turns an accepted (driver, order) pairing into a consistent set of Trip,
PickupLeg and DeliveryLeg rows, or rejects it cleanly. Every check runs
before the first write; the capacity reservation is a single conditional
UPDATE on the trip row, so concurrent acceptances can never push a trip past
its ceiling. The caller owns the transaction: get_db commits on success and
rolls back everything on any exception.

Lock order is always order row -> trip row -> leg rows.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, date, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update, and_, or_, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.config import get_settings
from app.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models import (
    DeliveryOrder,
    DeliveryLeg,
    DriverRouteProfile,
    LegStatus,
    OrderStatus,
    PickupLeg,
    Route,
    Trip,
    TripStatus,
    ACTIVE_TRIP_STATUSES,
    TERMINAL_ORDER_STATUSES,
)
from app.services.catalog import find_matching_profile
from app.services.intake import get_order
from app.services.leg_progress import count_open_legs, complete_trip_if_done

logger = logging.getLogger(__name__)


@dataclass
class AcceptResult:
    """Outcome of an acceptance: the trip and the legs materialized for the order."""
    order: DeliveryOrder
    trip: Trip
    pickup_leg: PickupLeg
    delivery_legs: List[DeliveryLeg]
    already_accepted: bool = False



@dataclass
class CancelResult:
    order: DeliveryOrder
    already_cancelled: bool = False


async def load_trip(db: AsyncSession, trip_id: UUID, for_update: bool = False) -> Trip:
    query = (
        select(Trip)
        .where(Trip.id == trip_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    trip = result.scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip", trip_id)
    return trip


async def find_active_trip(
    db: AsyncSession,
    driver_id: UUID,
    route_id: UUID,
    travel_date: date,
) -> Optional[Trip]:
    """The driver's scheduled or in-progress trip for a route and date, if any."""
    result = await db.execute(
        select(Trip)
        .where(
            and_(
                Trip.driver_id == driver_id,
                Trip.route_id == route_id,
                Trip.travel_date == travel_date,
                Trip.status.in_(ACTIVE_TRIP_STATUSES),
            )
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def planned_window(
    profile: DriverRouteProfile,
    route: Route,
    travel_date: date,
) -> Tuple[datetime, Optional[datetime]]:
    """
    Planned departure/arrival for a trip instantiated from a profile.
    Arrival falls back to departure + the route's average travel time.
    """
    departure = datetime.combine(travel_date, profile.departure_time)
    if profile.arrival_time is not None:
        arrival = datetime.combine(travel_date, profile.arrival_time)
        if arrival <= departure:
            arrival += timedelta(days=1)  # overnight run
        return departure, arrival
    if route.avg_travel_minutes:
        return departure, departure + timedelta(minutes=route.avg_travel_minutes)
    return departure, None


async def _create_trip(
    db: AsyncSession,
    driver_id: UUID,
    order: DeliveryOrder,
    profile: DriverRouteProfile,
) -> Trip:
    """Instantiate a trip from a profile, freezing its ceiling and flags."""
    route_result = await db.execute(select(Route).where(Route.id == order.route_id))
    route = route_result.scalar_one()
    departure, arrival = planned_window(profile, route, order.scheduled_date)

    trip = Trip(
        driver_id=driver_id,
        route_id=order.route_id,
        profile_id=profile.id,
        travel_date=order.scheduled_date,
        status=TripStatus.SCHEDULED,
        ceiling_packages=profile.max_packages,
        ceiling_weight_kg=profile.max_weight_kg,
        accepts_multiple_pickups=profile.accepts_multiple_pickups,
        accepts_multiple_deliveries=profile.accepts_multiple_deliveries,
        consumed_packages=0,
        consumed_weight_kg=0.0,
        last_delivery_sequence=0,
        last_pickup_order=0,
        planned_departure_at=departure,
        planned_arrival_at=arrival,
    )
    db.add(trip)
    try:
        await db.flush()
    except IntegrityError:
        # Another acceptance created the active trip for this key first
        raise ConflictError(
            "Trip for this driver, route and date was created concurrently; retry",
            code="TRIP_CREATION_RACE",
            details={
                "driver_id": str(driver_id),
                "route_id": str(order.route_id),
                "travel_date": order.scheduled_date.isoformat(),
            },
        )

    logger.info(
        f"Trip {trip.id} created for driver {driver_id} on {trip.travel_date} "
        f"from profile {profile.id} (ceiling {trip.ceiling_packages} pkg / {trip.ceiling_weight_kg} kg)"
    )
    return trip


def _capacity_details(trip_id, ceiling_packages, ceiling_weight, consumed_packages, consumed_weight, packages, weight) -> dict:
    return {
        "trip_id": str(trip_id) if trip_id else None,
        "required_packages": packages,
        "required_weight_kg": weight,
        "remaining_packages": ceiling_packages - consumed_packages,
        "remaining_weight_kg": round(ceiling_weight - consumed_weight, 3),
    }


def _check_fits_profile(profile: DriverRouteProfile, order: DeliveryOrder) -> None:
    """An order that would not fit an empty trip must not create one."""
    eps = get_settings().capacity_epsilon
    if (
        order.package_count > profile.max_packages
        or order.total_weight_kg > profile.max_weight_kg + eps
    ):
        raise CapacityExceededError(
            f"Order {order.order_number} exceeds the driver's trip capacity",
            details=_capacity_details(
                None, profile.max_packages, profile.max_weight_kg, 0, 0.0,
                order.package_count, order.total_weight_kg,
            ),
        )


def _check_delivery_flag(accepts_multiple_deliveries: bool, order: DeliveryOrder, stop_count: int) -> None:
    if stop_count and not accepts_multiple_deliveries:
        raise ValidationError(
            f"Order {order.order_number} has {stop_count} extra stop(s) but the trip "
            f"does not accept multiple deliveries",
            code="MULTIPLE_DELIVERIES_NOT_ACCEPTED",
            details={"order_id": str(order.id), "extra_stops": stop_count},
        )


async def reserve_capacity(
    db: AsyncSession,
    trip: Trip,
    packages: int,
    weight_kg: float,
    delivery_leg_count: int,
) -> Trip:
    """
    Reserve capacity and leg sequence numbers on a trip in one statement.

    The UPDATE only matches while the trip is active and the order fits on
    both dimensions; a single-pickup trip additionally only matches while
    empty. Zero rows affected means the reservation lost, and nothing was
    written. The counters read back afterwards were advanced under this
    statement's row lock, so the sequence range belongs to this caller alone.
    """
    eps = get_settings().capacity_epsilon
    result = await db.execute(
        update(Trip)
        .where(
            Trip.id == trip.id,
            Trip.status.in_(ACTIVE_TRIP_STATUSES),
            Trip.consumed_packages + packages <= Trip.ceiling_packages,
            Trip.consumed_weight_kg + weight_kg <= Trip.ceiling_weight_kg + eps,
            or_(Trip.accepts_multiple_pickups.is_(True), Trip.consumed_packages == 0),
        )
        .values(
            consumed_packages=Trip.consumed_packages + packages,
            consumed_weight_kg=Trip.consumed_weight_kg + weight_kg,
            last_delivery_sequence=Trip.last_delivery_sequence + delivery_leg_count,
            last_pickup_order=Trip.last_pickup_order + 1,
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(
        trip,
        attribute_names=[
            "status",
            "consumed_packages",
            "consumed_weight_kg",
            "last_delivery_sequence",
            "last_pickup_order",
        ],
    )

    if result.rowcount == 1:
        return trip

    if not trip.is_active:
        raise ConflictError(
            f"Trip {trip.id} is {trip.status.value} and no longer accepts orders",
            code="TRIP_NOT_ACTIVE",
            details={"trip_id": str(trip.id), "status": trip.status.value},
        )
    details = _capacity_details(
        trip.id, trip.ceiling_packages, trip.ceiling_weight_kg,
        trip.consumed_packages, trip.consumed_weight_kg, packages, weight_kg,
    )
    if not trip.accepts_multiple_pickups and trip.consumed_packages > 0:
        raise CapacityExceededError(
            f"Trip {trip.id} takes a single pickup and already has one",
            code="PICKUP_LIMIT_REACHED",
            details=details,
        )
    raise CapacityExceededError(
        f"Trip {trip.id} cannot absorb {packages} package(s) / {weight_kg} kg",
        details=details,
    )


async def release_capacity(db: AsyncSession, trip: Trip, packages: int, weight_kg: float) -> Trip:
    """Give an order's reservation back to its trip, floored at zero."""
    eps = get_settings().capacity_epsilon
    remaining_packages = Trip.consumed_packages - packages
    remaining_weight = Trip.consumed_weight_kg - weight_kg
    await db.execute(
        update(Trip)
        .where(Trip.id == trip.id)
        .values(
            consumed_packages=case((remaining_packages < 0, 0), else_=remaining_packages),
            consumed_weight_kg=case((remaining_weight < eps, 0.0), else_=remaining_weight),
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(trip, attribute_names=["consumed_packages", "consumed_weight_kg"])
    return trip


async def _existing_acceptance(
    db: AsyncSession,
    driver_id: UUID,
    order: DeliveryOrder,
) -> AcceptResult:
    """Replay of an acceptance that already happened: read back, write nothing."""
    trip = await load_trip(db, order.trip_id)
    if trip.driver_id != driver_id:
        raise ConflictError(
            f"Order {order.order_number} was already accepted by another driver",
            code="ORDER_ALREADY_ACCEPTED",
            details={"order_id": str(order.id), "trip_id": str(trip.id)},
        )

    pickup_result = await db.execute(
        select(PickupLeg).where(
            PickupLeg.trip_id == trip.id,
            PickupLeg.order_id == order.id,
        )
    )
    delivery_result = await db.execute(
        select(DeliveryLeg)
        .where(
            DeliveryLeg.trip_id == trip.id,
            DeliveryLeg.order_id == order.id,
        )
        .order_by(DeliveryLeg.sequence)
    )
    logger.info(f"Order {order.order_number} already on trip {trip.id}; returning existing legs")
    return AcceptResult(
        order=order,
        trip=trip,
        pickup_leg=pickup_result.scalar_one(),
        delivery_legs=list(delivery_result.scalars().all()),
        already_accepted=True,
    )


async def accept_order(db: AsyncSession, driver_id: UUID, order_id: UUID) -> AcceptResult:
    """
    Accept an order onto the driver's trip for the order's route and date.

    Creates the trip on first use, reserves capacity once per order, and
    materializes one pickup leg plus one delivery leg per stop (primary
    recipient first, then extra stops in ascending sequence). Retrying for
    an order this driver already holds returns the existing legs without
    reserving again.

    Args:
        db: Database session (the caller commits)
        driver_id: Authenticated driver
        order_id: Order to accept

    Returns:
        AcceptResult with the trip and the order's legs

    Raises:
        NotFoundError: order missing
        ValidationError: order not awaiting a driver, no matching profile,
            or extra stops on a single-delivery trip
        CapacityExceededError: the trip cannot absorb the order
        ConflictError: accepted by another driver, or lost a race
    """
    # Lock the order; its stop list is read in the same transaction
    order = await get_order(db, order_id, for_update=True)
    stops = list(order.stops)

    if order.status == OrderStatus.CANCELLED:
        raise ValidationError(
            f"Order {order.order_number} is cancelled",
            code="ORDER_NOT_AWAITING_DRIVER",
            details={"order_id": str(order.id), "status": order.status.value},
        )
    if order.trip_id is not None:
        return await _existing_acceptance(db, driver_id, order)
    if order.status != OrderStatus.AWAITING_DRIVER:
        raise ValidationError(
            f"Order {order.order_number} is {order.status.value}, not awaiting a driver",
            code="ORDER_NOT_AWAITING_DRIVER",
            details={"order_id": str(order.id), "status": order.status.value},
        )

    profile = await find_matching_profile(db, driver_id, order.route_id, order.scheduled_date)
    if profile is None:
        raise ValidationError(
            f"Driver {driver_id} has no active profile on this route for "
            f"{order.scheduled_date.isoformat()}",
            code="NO_MATCHING_PROFILE",
            details={
                "driver_id": str(driver_id),
                "route_id": str(order.route_id),
                "weekday": order.scheduled_date.isoweekday(),
            },
        )

    packages = order.package_count
    weight_kg = order.total_weight_kg
    delivery_leg_count = 1 + len(stops)

    trip = await find_active_trip(db, driver_id, order.route_id, order.scheduled_date)
    if trip is None:
        _check_delivery_flag(profile.accepts_multiple_deliveries, order, len(stops))
        _check_fits_profile(profile, order)
        trip = await _create_trip(db, driver_id, order, profile)
    else:
        _check_delivery_flag(trip.accepts_multiple_deliveries, order, len(stops))

    trip = await reserve_capacity(db, trip, packages, weight_kg, delivery_leg_count)
    first_sequence = trip.last_delivery_sequence - delivery_leg_count + 1

    pickup_leg = PickupLeg(
        trip_id=trip.id,
        order_id=order.id,
        pickup_order=trip.last_pickup_order,
        pickup_address=order.pickup_address,
        status=LegStatus.PENDING,
    )
    db.add(pickup_leg)
    await db.flush()

    # Primary recipient first, then every stop row loaded above
    delivery_legs = [
        DeliveryLeg(
            trip_id=trip.id,
            order_id=order.id,
            pickup_leg_id=pickup_leg.id,
            stop_id=None,
            sequence=first_sequence,
            recipient_name=order.recipient_name,
            recipient_phone=order.recipient_phone,
            delivery_address=order.delivery_address,
            status=LegStatus.PENDING,
        )
    ]
    for offset, stop in enumerate(stops, start=1):
        delivery_legs.append(DeliveryLeg(
            trip_id=trip.id,
            order_id=order.id,
            pickup_leg_id=pickup_leg.id,
            stop_id=stop.id,
            sequence=first_sequence + offset,
            recipient_name=stop.recipient_name,
            recipient_phone=stop.recipient_phone,
            delivery_address=stop.address,
            status=LegStatus.PENDING,
        ))
    db.add_all(delivery_legs)
    await db.flush()

    claimed = await db.execute(
        update(DeliveryOrder)
        .where(
            DeliveryOrder.id == order.id,
            DeliveryOrder.trip_id.is_(None),
            DeliveryOrder.status == OrderStatus.AWAITING_DRIVER,
        )
        .values(trip_id=trip.id, status=OrderStatus.DRIVER_ACCEPTED)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise ConflictError(
            f"Order {order.order_number} was accepted concurrently",
            code="ORDER_ALREADY_ACCEPTED",
            details={"order_id": str(order.id)},
        )
    set_committed_value(order, "trip_id", trip.id)
    set_committed_value(order, "status", OrderStatus.DRIVER_ACCEPTED)

    logger.info(
        f"Order {order.order_number} accepted by driver {driver_id} onto trip {trip.id}: "
        f"1 pickup + {len(delivery_legs)} delivery leg(s), seq {first_sequence}-"
        f"{trip.last_delivery_sequence}, consumed {trip.consumed_packages}/{trip.ceiling_packages} pkg, "
        f"{trip.consumed_weight_kg}/{trip.ceiling_weight_kg} kg"
    )
    return AcceptResult(
        order=order,
        trip=trip,
        pickup_leg=pickup_leg,
        delivery_legs=delivery_legs,
    )


async def _cancel_open_legs(db: AsyncSession, trip_id: UUID, order_id: UUID, reason: str) -> int:
    """Move every non-terminal leg of an order on a trip to CANCELLED."""
    pickup_result = await db.execute(
        select(PickupLeg).where(PickupLeg.trip_id == trip_id, PickupLeg.order_id == order_id)
    )
    delivery_result = await db.execute(
        select(DeliveryLeg).where(DeliveryLeg.trip_id == trip_id, DeliveryLeg.order_id == order_id)
    )
    cancelled = 0
    now = datetime.utcnow()
    for leg in [*pickup_result.scalars().all(), *delivery_result.scalars().all()]:
        if leg.status.is_terminal:
            continue
        leg.status = LegStatus.CANCELLED
        leg.completed_at = now
        leg.failure_reason = reason
        cancelled += 1
    await db.flush()
    return cancelled


async def _settle_emptied_trip(db: AsyncSession, trip: Trip) -> None:
    """
    Decide what happens to a trip after one of its orders was cancelled.

    A trip with open legs is left alone. An emptied trip that has not
    departed is cancelled when cancel_empty_trips is on; an in-progress one
    whose remaining legs are all finished is completed.
    """
    open_legs = await count_open_legs(db, trip.id)
    if open_legs:
        return

    if trip.status == TripStatus.SCHEDULED:
        if get_settings().cancel_empty_trips:
            trip.status = TripStatus.CANCELLED
            trip.cancellation_reason = "All orders cancelled"
            await db.flush()
            logger.info(f"Trip {trip.id} emptied before departure; cancelled (cancel_empty_trips=on)")
        else:
            logger.info(f"Trip {trip.id} emptied before departure; kept scheduled (cancel_empty_trips=off)")
        return

    await complete_trip_if_done(db, trip, datetime.utcnow())


async def cancel_order(db: AsyncSession, order_id: UUID, reason: str) -> CancelResult:
    """
    Cancel an order from any non-terminal state.

    Releases the order's capacity to its trip, closes its open legs as
    CANCELLED and applies the empty-trip policy. Cancelling an order that is
    already cancelled is a no-op reported with already_cancelled set.
    """
    order = await get_order(db, order_id, for_update=True)

    if order.status == OrderStatus.CANCELLED:
        logger.info(f"Order {order.order_number} already cancelled; nothing to do")
        return CancelResult(order=order, already_cancelled=True)
    if order.status in TERMINAL_ORDER_STATUSES:
        raise ValidationError(
            f"Order {order.order_number} is {order.status.value} and can no longer be cancelled",
            code="ORDER_ALREADY_FINISHED",
            details={"order_id": str(order.id), "status": order.status.value},
        )

    trip = None
    if order.trip_id is not None:
        trip = await load_trip(db, order.trip_id, for_update=True)
        await release_capacity(db, trip, order.package_count, order.total_weight_kg)
        closed = await _cancel_open_legs(db, trip.id, order.id, f"Order cancelled: {reason}")
        logger.info(
            f"Order {order.order_number} released {order.package_count} pkg / "
            f"{order.total_weight_kg} kg from trip {trip.id}; {closed} leg(s) cancelled"
        )

    order.status = OrderStatus.CANCELLED
    order.cancellation_reason = reason
    order.cancelled_at = datetime.utcnow()
    await db.flush()
    logger.info(f"Order {order.order_number} cancelled: {reason}")

    if trip is not None:
        await _settle_emptied_trip(db, trip)
    return CancelResult(order=order)


async def _lock_active_orders(db: AsyncSession, trip_id: UUID) -> List[DeliveryOrder]:
    result = await db.execute(
        select(DeliveryOrder)
        .where(
            DeliveryOrder.trip_id == trip_id,
            DeliveryOrder.status.not_in(list(TERMINAL_ORDER_STATUSES)),
        )
        .with_for_update()
    )
    return list(result.scalars().all())


async def cancel_trip(db: AsyncSession, trip_id: UUID, reason: str) -> Trip:
    """
    Cancel a trip that has not started.

    Only legal while the trip is scheduled and no leg has moved past pending.
    Every open leg is cancelled and the trip's active orders go back to
    awaiting_driver with their trip cleared, so another trip can take them.
    """
    # Orders first, then the trip: same lock order as acceptance
    await _lock_active_orders(db, trip_id)
    trip = await load_trip(db, trip_id, for_update=True)
    # Re-read under the trip lock: an acceptance that held it may have committed meanwhile
    orders = await _lock_active_orders(db, trip_id)

    if trip.status == TripStatus.CANCELLED:
        return trip
    if trip.status != TripStatus.SCHEDULED:
        raise ValidationError(
            f"Trip {trip.id} is {trip.status.value} and can no longer be cancelled",
            code="TRIP_ALREADY_STARTED",
            details={"trip_id": str(trip.id), "status": trip.status.value},
        )

    pickup_result = await db.execute(select(PickupLeg).where(PickupLeg.trip_id == trip.id))
    delivery_result = await db.execute(select(DeliveryLeg).where(DeliveryLeg.trip_id == trip.id))
    legs = [*pickup_result.scalars().all(), *delivery_result.scalars().all()]
    progressed = [leg for leg in legs if leg.status not in (LegStatus.PENDING, LegStatus.CANCELLED)]
    if progressed:
        raise ValidationError(
            f"Trip {trip.id} has {len(progressed)} leg(s) past pending",
            code="TRIP_ALREADY_STARTED",
            details={"trip_id": str(trip.id), "progressed_legs": [str(leg.id) for leg in progressed]},
        )

    now = datetime.utcnow()
    for leg in legs:
        if leg.status == LegStatus.PENDING:
            leg.status = LegStatus.CANCELLED
            leg.completed_at = now
            leg.failure_reason = f"Trip cancelled: {reason}"

    for order in orders:
        order.trip_id = None
        order.status = OrderStatus.AWAITING_DRIVER

    trip.consumed_packages = 0
    trip.consumed_weight_kg = 0.0
    trip.status = TripStatus.CANCELLED
    trip.cancellation_reason = reason
    await db.flush()

    logger.info(
        f"Trip {trip.id} cancelled ({reason}); {len(orders)} order(s) released back to awaiting_driver"
    )
    return trip
