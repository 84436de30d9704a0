"""
Trip reconciliation.

Recomputes what a trip's capacity ledger and leg fan-out should be from the
orders and stops it holds, and reports every drift. Drift means a bug or a
manual edit somewhere; it is logged at ERROR and surfaced, never repaired
silently.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import IntegrityViolation
from app.models import (
    DeliveryLeg,
    DeliveryOrder,
    DeliveryStop,
    OrderStatus,
    PickupLeg,
    Trip,
    TripStatus,
)
from app.services.allocation import load_trip

logger = logging.getLogger(__name__)

CAPACITY_DRIFT = "capacity_drift"
CEILING_BREACH = "ceiling_breach"
PICKUP_COUNT = "pickup_count"
FAN_OUT_MISMATCH = "fan_out_mismatch"
SEQUENCE_GAP = "sequence_gap"


@dataclass
class IntegrityIssue:
    """One invariant a trip currently violates."""
    trip_id: UUID
    kind: str
    message: str
    order_id: Optional[UUID] = None
    expected: Optional[float] = None
    actual: Optional[float] = None


@dataclass
class ReconciliationReport:
    checked_trips: int
    issues: List[IntegrityIssue]

    @property
    def ok(self) -> bool:
        return not self.issues


async def _stop_counts(db: AsyncSession, order_ids: List[UUID]) -> Dict[UUID, int]:
    if not order_ids:
        return {}
    result = await db.execute(
        select(DeliveryStop.order_id, func.count(DeliveryStop.id))
        .where(DeliveryStop.order_id.in_(order_ids))
        .group_by(DeliveryStop.order_id)
    )
    return {order_id: int(count) for order_id, count in result.all()}


def _check_capacity(trip: Trip, orders: List[DeliveryOrder]) -> List[IntegrityIssue]:
    eps = get_settings().capacity_epsilon
    issues = []
    required_packages = sum(order.package_count for order in orders)
    required_weight = sum(order.total_weight_kg for order in orders)

    if trip.consumed_packages != required_packages:
        issues.append(IntegrityIssue(
            trip_id=trip.id,
            kind=CAPACITY_DRIFT,
            message="consumed_packages does not match the orders on the trip",
            expected=required_packages,
            actual=trip.consumed_packages,
        ))
    if abs(trip.consumed_weight_kg - required_weight) > eps:
        issues.append(IntegrityIssue(
            trip_id=trip.id,
            kind=CAPACITY_DRIFT,
            message="consumed_weight_kg does not match the orders on the trip",
            expected=round(required_weight, 6),
            actual=trip.consumed_weight_kg,
        ))
    if trip.consumed_packages > trip.ceiling_packages:
        issues.append(IntegrityIssue(
            trip_id=trip.id,
            kind=CEILING_BREACH,
            message="consumed_packages exceeds the trip ceiling",
            expected=trip.ceiling_packages,
            actual=trip.consumed_packages,
        ))
    if trip.consumed_weight_kg > trip.ceiling_weight_kg + eps:
        issues.append(IntegrityIssue(
            trip_id=trip.id,
            kind=CEILING_BREACH,
            message="consumed_weight_kg exceeds the trip ceiling",
            expected=trip.ceiling_weight_kg,
            actual=trip.consumed_weight_kg,
        ))
    return issues


async def reconcile_trip(db: AsyncSession, trip_id: UUID) -> List[IntegrityIssue]:
    """
    Check one trip against the orders it holds.

    Checks:
        - consumed packages/weight equal the sum over its non-cancelled orders
        - consumed never exceeds the ceiling
        - each held order has exactly one pickup leg
        - each held order has 1 + (extra stops) delivery legs
        - an order's delivery sequences form one contiguous run

    A cancelled trip holds no orders, so only its zeroed ledger is checked.
    """
    trip = await load_trip(db, trip_id)

    if trip.status == TripStatus.CANCELLED:
        orders: List[DeliveryOrder] = []
    else:
        result = await db.execute(
            select(DeliveryOrder).where(
                DeliveryOrder.trip_id == trip.id,
                DeliveryOrder.status != OrderStatus.CANCELLED,
            )
        )
        orders = list(result.scalars().all())

    issues = _check_capacity(trip, orders)

    order_ids = [order.id for order in orders]
    stop_counts = await _stop_counts(db, order_ids)
    pickup_counts: Dict[UUID, int] = {}
    sequences: Dict[UUID, List[int]] = {}
    if order_ids:
        pickup_result = await db.execute(
            select(PickupLeg.order_id, func.count(PickupLeg.id))
            .where(PickupLeg.trip_id == trip.id, PickupLeg.order_id.in_(order_ids))
            .group_by(PickupLeg.order_id)
        )
        pickup_counts = {order_id: int(count) for order_id, count in pickup_result.all()}
        delivery_result = await db.execute(
            select(DeliveryLeg.order_id, DeliveryLeg.sequence)
            .where(DeliveryLeg.trip_id == trip.id, DeliveryLeg.order_id.in_(order_ids))
            .order_by(DeliveryLeg.sequence)
        )
        for order_id, sequence in delivery_result.all():
            sequences.setdefault(order_id, []).append(sequence)

    for order in orders:
        pickups = pickup_counts.get(order.id, 0)
        if pickups != 1:
            issues.append(IntegrityIssue(
                trip_id=trip.id,
                order_id=order.id,
                kind=PICKUP_COUNT,
                message=f"Order {order.order_number} has {pickups} pickup leg(s)",
                expected=1,
                actual=pickups,
            ))

        expected_legs = 1 + stop_counts.get(order.id, 0)
        order_sequences = sequences.get(order.id, [])
        if len(order_sequences) != expected_legs:
            issues.append(IntegrityIssue(
                trip_id=trip.id,
                order_id=order.id,
                kind=FAN_OUT_MISMATCH,
                message=f"Order {order.order_number} has {len(order_sequences)} delivery leg(s)",
                expected=expected_legs,
                actual=len(order_sequences),
            ))
        if order_sequences and order_sequences != list(
            range(order_sequences[0], order_sequences[0] + len(order_sequences))
        ):
            issues.append(IntegrityIssue(
                trip_id=trip.id,
                order_id=order.id,
                kind=SEQUENCE_GAP,
                message=f"Order {order.order_number} delivery sequences are not contiguous: {order_sequences}",
            ))

    for issue in issues:
        logger.error(f"Trip {trip.id} integrity drift [{issue.kind}]: {issue.message}")
    return issues


async def reconcile_all(
    db: AsyncSession,
    travel_date: Optional[date] = None,
    include_finished: bool = False,
) -> ReconciliationReport:
    """Reconcile every active trip, optionally limited to one travel date."""
    query = select(Trip.id)
    if not include_finished:
        query = query.where(Trip.status.in_([TripStatus.SCHEDULED, TripStatus.IN_PROGRESS]))
    if travel_date is not None:
        query = query.where(Trip.travel_date == travel_date)
    result = await db.execute(query.order_by(Trip.travel_date, Trip.created_at))
    trip_ids = list(result.scalars().all())

    issues: List[IntegrityIssue] = []
    for trip_id in trip_ids:
        issues.extend(await reconcile_trip(db, trip_id))

    logger.info(f"Reconciled {len(trip_ids)} trip(s): {len(issues)} issue(s)")
    return ReconciliationReport(checked_trips=len(trip_ids), issues=issues)


async def assert_trip_integrity(db: AsyncSession, trip_id: UUID) -> None:
    """Raise IntegrityViolation if the trip has drifted."""
    issues = await reconcile_trip(db, trip_id)
    if issues:
        raise IntegrityViolation(
            f"Trip {trip_id} violates {len(issues)} ledger invariant(s)",
            details={
                "trip_id": str(trip_id),
                "issues": [
                    {**asdict(issue), "trip_id": str(issue.trip_id),
                     "order_id": str(issue.order_id) if issue.order_id else None}
                    for issue in issues
                ],
            },
        )
