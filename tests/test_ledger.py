"""
Tests for the leg ledger: next action, manifest, tracking and
reconciliation drift detection.
"""

import pytest
from sqlalchemy import delete, update

from app.core.exceptions import IntegrityViolation
from app.models import DeliveryLeg, LegStatus, OrderStatus, Trip
from app.services.allocation import accept_order, cancel_order, cancel_trip
from app.services.leg_progress import advance_leg
from app.services.ledger import list_driver_trips, next_action, order_tracking, trip_manifest
from app.services.reconciliation import (
    CAPACITY_DRIFT,
    CEILING_BREACH,
    FAN_OUT_MISMATCH,
    SEQUENCE_GAP,
    assert_trip_integrity,
    reconcile_all,
    reconcile_trip,
)


async def run_leg(db_session, leg_id, final=LegStatus.DELIVERED):
    await advance_leg(db_session, leg_id, LegStatus.IN_TRANSIT)
    await advance_leg(db_session, leg_id, final)


class TestNextAction:
    """The driver is walked through legs in delivery sequence."""

    async def test_walks_trip_in_order(self, db_session, profile, driver_id, make_order):
        order_a = await make_order(extra_stops=1)
        order_b = await make_order()
        accepted_a = await accept_order(db_session, driver_id, order_a.id)
        accepted_b = await accept_order(db_session, driver_id, order_b.id)
        trip_id = accepted_a.trip.id

        action = await next_action(db_session, trip_id)
        assert action.action == "pickup"
        assert action.leg_id == accepted_a.pickup_leg.id
        assert action.order_number == order_a.order_number
        assert action.address == order_a.pickup_address
        assert action.remaining_legs == 5

        await run_leg(db_session, accepted_a.pickup_leg.id)
        action = await next_action(db_session, trip_id)
        assert action.action == "delivery"
        assert action.sequence == 1
        assert action.recipient_name == order_a.recipient_name

        for leg in accepted_a.delivery_legs:
            await run_leg(db_session, leg.id)
        action = await next_action(db_session, trip_id)
        assert action.action == "pickup"
        assert action.leg_id == accepted_b.pickup_leg.id

        await run_leg(db_session, accepted_b.pickup_leg.id)
        await run_leg(db_session, accepted_b.delivery_legs[0].id)
        action = await next_action(db_session, trip_id)
        assert action.action is None
        assert action.remaining_legs == 0

    async def test_in_transit_leg_stays_next(self, db_session, profile, driver_id, make_order):
        order = await make_order()
        accepted = await accept_order(db_session, driver_id, order.id)
        await advance_leg(db_session, accepted.pickup_leg.id, LegStatus.IN_TRANSIT)

        action = await next_action(db_session, accepted.trip.id)
        assert action.leg_id == accepted.pickup_leg.id
        assert action.leg_status == LegStatus.IN_TRANSIT

    async def test_cancelled_order_skipped(self, db_session, profile, driver_id, make_order):
        order_a = await make_order()
        order_b = await make_order()
        accepted_a = await accept_order(db_session, driver_id, order_a.id)
        accepted_b = await accept_order(db_session, driver_id, order_b.id)
        await cancel_order(db_session, order_a.id, "Withdrawn")

        action = await next_action(db_session, accepted_a.trip.id)
        assert action.leg_id == accepted_b.pickup_leg.id


class TestManifest:

    async def test_groups_legs_by_order(self, db_session, profile, driver_id, make_order):
        order_a = await make_order(package_count=3, extra_stops=2)
        order_b = await make_order(package_count=2)
        trip = (await accept_order(db_session, driver_id, order_a.id)).trip
        await accept_order(db_session, driver_id, order_b.id)

        manifest = await trip_manifest(db_session, trip.id)
        assert [group.order_id for group in manifest.orders] == [order_a.id, order_b.id]
        assert [len(group.delivery_legs) for group in manifest.orders] == [3, 1]
        assert all(group.pickup_leg is not None for group in manifest.orders)
        assert manifest.required_packages == 5
        assert manifest.trip.consumed_packages == 5
        assert manifest.capacity_consistent is True

    async def test_cancelled_order_not_counted(self, db_session, profile, driver_id, make_order):
        order_a = await make_order(package_count=3)
        order_b = await make_order(package_count=2)
        trip = (await accept_order(db_session, driver_id, order_a.id)).trip
        await accept_order(db_session, driver_id, order_b.id)
        await cancel_order(db_session, order_a.id, "Withdrawn")

        manifest = await trip_manifest(db_session, trip.id)
        assert manifest.required_packages == 2
        assert manifest.capacity_consistent is True
        cancelled_group = next(g for g in manifest.orders if g.order_id == order_a.id)
        assert cancelled_group.order_status == OrderStatus.CANCELLED


class TestTracking:

    async def test_unassigned_order(self, db_session, make_order):
        order = await make_order()
        tracking = await order_tracking(db_session, order.id)
        assert tracking.status == OrderStatus.AWAITING_DRIVER
        assert tracking.trip_id is None
        assert tracking.pickup_leg is None
        assert tracking.delivery_legs == []

    async def test_accepted_order(self, db_session, profile, driver_id, make_order):
        order = await make_order(extra_stops=1)
        accepted = await accept_order(db_session, driver_id, order.id)
        tracking = await order_tracking(db_session, order.id)
        assert tracking.trip_id == accepted.trip.id
        assert tracking.pickup_leg.id == accepted.pickup_leg.id
        assert [leg.sequence for leg in tracking.delivery_legs] == [1, 2]

    async def test_driver_trips(self, db_session, profile, driver_id, make_order, travel_date):
        order = await make_order()
        trip = (await accept_order(db_session, driver_id, order.id)).trip
        trips = await list_driver_trips(db_session, driver_id, travel_date=travel_date)
        assert [t.id for t in trips] == [trip.id]


class TestReconciliation:
    """Drift between the capacity ledger, orders and legs is reported."""

    async def test_clean_trip(self, db_session, profile, driver_id, make_order):
        order_a = await make_order(package_count=4, extra_stops=2)
        order_b = await make_order(package_count=3)
        trip = (await accept_order(db_session, driver_id, order_a.id)).trip
        await accept_order(db_session, driver_id, order_b.id)
        await cancel_order(db_session, order_b.id, "Withdrawn")

        assert await reconcile_trip(db_session, trip.id) == []
        await assert_trip_integrity(db_session, trip.id)

    async def test_capacity_drift_detected(self, db_session, profile, driver_id, make_order):
        order = await make_order(package_count=4)
        trip = (await accept_order(db_session, driver_id, order.id)).trip
        await db_session.execute(
            update(Trip).where(Trip.id == trip.id)
            .values(consumed_packages=7)
            .execution_options(synchronize_session=False)
        )

        issues = await reconcile_trip(db_session, trip.id)
        assert [issue.kind for issue in issues] == [CAPACITY_DRIFT]
        assert issues[0].expected == 4
        assert issues[0].actual == 7

        with pytest.raises(IntegrityViolation) as exc_info:
            await assert_trip_integrity(db_session, trip.id)
        assert exc_info.value.status_code == 500
        assert exc_info.value.details["issues"][0]["kind"] == CAPACITY_DRIFT

    async def test_ceiling_breach_detected(self, db_session, profile, driver_id, make_order):
        order = await make_order(package_count=4)
        trip = (await accept_order(db_session, driver_id, order.id)).trip
        await db_session.execute(
            update(Trip).where(Trip.id == trip.id)
            .values(ceiling_packages=3)
            .execution_options(synchronize_session=False)
        )
        kinds = [issue.kind for issue in await reconcile_trip(db_session, trip.id)]
        assert kinds == [CEILING_BREACH]

    async def test_missing_delivery_leg_detected(self, db_session, profile, driver_id, make_order):
        order = await make_order(extra_stops=2)
        accepted = await accept_order(db_session, driver_id, order.id)
        await db_session.execute(
            delete(DeliveryLeg).where(DeliveryLeg.id == accepted.delivery_legs[-1].id)
        )

        issues = await reconcile_trip(db_session, accepted.trip.id)
        assert [issue.kind for issue in issues] == [FAN_OUT_MISMATCH]
        assert issues[0].order_id == order.id
        assert issues[0].expected == 3
        assert issues[0].actual == 2

    async def test_sequence_gap_detected(self, db_session, profile, driver_id, make_order):
        order = await make_order(extra_stops=1)
        accepted = await accept_order(db_session, driver_id, order.id)
        await db_session.execute(
            update(DeliveryLeg)
            .where(DeliveryLeg.id == accepted.delivery_legs[-1].id)
            .values(sequence=5)
            .execution_options(synchronize_session=False)
        )
        kinds = [issue.kind for issue in await reconcile_trip(db_session, accepted.trip.id)]
        assert kinds == [SEQUENCE_GAP]

    async def test_reconcile_all_skips_cancelled(self, db_session, profile, driver_id, make_order):
        order_a = await make_order()
        trip = (await accept_order(db_session, driver_id, order_a.id)).trip
        await cancel_trip(db_session, trip.id, "Weather")

        report = await reconcile_all(db_session)
        assert report.checked_trips == 0
        assert report.ok

        report = await reconcile_all(db_session, include_finished=True)
        assert report.checked_trips == 1
        assert report.ok
