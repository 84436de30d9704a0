"""
Tests for order and trip cancellation.
Cancelling gives capacity back and closes open legs without touching
finished ones.
"""

import pytest
from sqlalchemy import select

from app.config import get_settings
from app.core.exceptions import ValidationError
from app.models import DeliveryLeg, LegStatus, OrderStatus, PickupLeg, TripStatus
from app.services import allocation
from app.services.allocation import accept_order, cancel_order, cancel_trip
from app.services.leg_progress import advance_leg
from app.services.reconciliation import reconcile_trip


async def order_legs(db_session, order_id):
    pickups = await db_session.execute(select(PickupLeg).where(PickupLeg.order_id == order_id))
    deliveries = await db_session.execute(
        select(DeliveryLeg).where(DeliveryLeg.order_id == order_id).order_by(DeliveryLeg.sequence)
    )
    return list(pickups.scalars().all()), list(deliveries.scalars().all())


class TestCancelOrder:

    async def test_cancellation_frees_capacity(self, db_session, profile, driver_id, make_order):
        """Cancelling a 6-package order on a full trip makes room for a 5-package one."""
        order_a = await make_order(package_count=6, extra_stops=1)
        order_b = await make_order(package_count=5)
        order_c = await make_order(package_count=4)
        trip = (await accept_order(db_session, driver_id, order_a.id)).trip
        await accept_order(db_session, driver_id, order_c.id)
        assert trip.consumed_packages == 10

        cancelled = (await cancel_order(db_session, order_a.id, "Shipment withdrawn")).order
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancellation_reason == "Shipment withdrawn"
        assert cancelled.cancelled_at is not None
        assert trip.consumed_packages == 4

        pickups, deliveries = await order_legs(db_session, order_a.id)
        assert len(pickups) == 1 and len(deliveries) == 2
        assert all(leg.status == LegStatus.CANCELLED for leg in [*pickups, *deliveries])

        result = await accept_order(db_session, driver_id, order_b.id)
        assert result.trip.id == trip.id
        assert result.trip.consumed_packages == 9

    async def test_cancel_is_idempotent(self, db_session, profile, driver_id, make_order):
        order = await make_order(package_count=3)
        other = await make_order(package_count=2)
        trip = (await accept_order(db_session, driver_id, order.id)).trip
        await accept_order(db_session, driver_id, other.id)

        first = await cancel_order(db_session, order.id, "first")
        again = await cancel_order(db_session, order.id, "second")
        assert first.already_cancelled is False
        assert again.already_cancelled is True
        assert again.order.cancellation_reason == "first"
        assert trip.consumed_packages == 2

    async def test_cancel_unassigned_order(self, db_session, make_order):
        order = await make_order()
        cancelled = (await cancel_order(db_session, order.id, "Duplicate")).order
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.trip_id is None

    async def test_finished_order_cannot_be_cancelled(self, db_session, make_order):
        order = await make_order()
        order.status = OrderStatus.COMPLETED
        await db_session.flush()
        with pytest.raises(ValidationError) as exc_info:
            await cancel_order(db_session, order.id, "Too late")
        assert exc_info.value.code == "ORDER_ALREADY_FINISHED"

    async def test_last_order_cancels_scheduled_trip(self, db_session, profile, driver_id, make_order):
        order = await make_order()
        trip = (await accept_order(db_session, driver_id, order.id)).trip

        await cancel_order(db_session, order.id, "Customer withdrew")
        assert trip.status == TripStatus.CANCELLED
        assert trip.consumed_packages == 0

        # A fresh order for the same day gets a new trip
        later = await make_order()
        result = await accept_order(db_session, driver_id, later.id)
        assert result.trip.id != trip.id

    async def test_empty_trip_kept_when_policy_off(self, db_session, profile, driver_id, make_order, monkeypatch):
        monkeypatch.setattr(get_settings(), "cancel_empty_trips", False)
        order = await make_order()
        trip = (await accept_order(db_session, driver_id, order.id)).trip

        await cancel_order(db_session, order.id, "Customer withdrew")
        assert trip.status == TripStatus.SCHEDULED
        assert trip.consumed_packages == 0

    async def test_delivered_legs_survive_cancellation(self, db_session, profile, driver_id, make_order):
        """After pickup, cancelling keeps the collected pickup and closes the drop-offs."""
        order = await make_order(package_count=2, extra_stops=1)
        other = await make_order(package_count=1)
        result = await accept_order(db_session, driver_id, order.id)
        trip = result.trip
        await accept_order(db_session, driver_id, other.id)

        await advance_leg(db_session, result.pickup_leg.id, LegStatus.IN_TRANSIT)
        await advance_leg(db_session, result.pickup_leg.id, LegStatus.DELIVERED)

        await cancel_order(db_session, order.id, "Recipient moved")
        pickups, deliveries = await order_legs(db_session, order.id)
        assert pickups[0].status == LegStatus.DELIVERED
        assert all(leg.status == LegStatus.CANCELLED for leg in deliveries)
        assert trip.status == TripStatus.IN_PROGRESS
        assert trip.consumed_packages == 1


class TestCancelTrip:

    async def test_orders_released(self, db_session, profile, driver_id, make_order):
        first = await make_order(package_count=2, extra_stops=1)
        second = await make_order(package_count=3)
        trip = (await accept_order(db_session, driver_id, first.id)).trip
        await accept_order(db_session, driver_id, second.id)

        cancelled = await cancel_trip(db_session, trip.id, "Vehicle breakdown")
        assert cancelled.status == TripStatus.CANCELLED
        assert cancelled.consumed_packages == 0
        assert cancelled.cancellation_reason == "Vehicle breakdown"

        for order in (first, second):
            await db_session.refresh(order, attribute_names=["status", "trip_id"])
            assert order.status == OrderStatus.AWAITING_DRIVER
            assert order.trip_id is None
            pickups, deliveries = await order_legs(db_session, order.id)
            assert all(leg.status == LegStatus.CANCELLED for leg in [*pickups, *deliveries])

        # Released orders can be taken again on a new trip
        result = await accept_order(db_session, driver_id, first.id)
        assert result.trip.id != trip.id
        assert [leg.sequence for leg in result.delivery_legs] == [1, 2]

    async def test_started_trip_cannot_be_cancelled(self, db_session, profile, driver_id, make_order):
        order = await make_order()
        result = await accept_order(db_session, driver_id, order.id)
        await advance_leg(db_session, result.pickup_leg.id, LegStatus.IN_TRANSIT)

        with pytest.raises(ValidationError) as exc_info:
            await cancel_trip(db_session, result.trip.id, "Too late")
        assert exc_info.value.code == "TRIP_ALREADY_STARTED"

    async def test_cancel_trip_twice(self, db_session, profile, driver_id, make_order):
        order = await make_order()
        trip = (await accept_order(db_session, driver_id, order.id)).trip
        await cancel_trip(db_session, trip.id, "Weather")
        again = await cancel_trip(db_session, trip.id, "Weather")
        assert again.status == TripStatus.CANCELLED

    async def test_order_accepted_while_waiting_for_trip_lock(
        self, db_session, profile, driver_id, make_order, monkeypatch
    ):
        """An order that lands on the trip just before the trip lock is taken is released too."""
        first = await make_order(package_count=2)
        late = await make_order(package_count=3)
        trip = (await accept_order(db_session, driver_id, first.id)).trip

        original_load_trip = allocation.load_trip
        late_results = []

        async def accept_then_lock(db, trip_id, for_update=False):
            if for_update and not late_results:
                late_results.append(await accept_order(db, driver_id, late.id))
            return await original_load_trip(db, trip_id, for_update=for_update)

        monkeypatch.setattr(allocation, "load_trip", accept_then_lock)
        cancelled = await cancel_trip(db_session, trip.id, "Vehicle breakdown")

        assert late_results[0].trip.id == trip.id
        assert cancelled.consumed_packages == 0
        for order in (first, late):
            assert order.status == OrderStatus.AWAITING_DRIVER
            assert order.trip_id is None
            pickups, deliveries = await order_legs(db_session, order.id)
            assert all(leg.status == LegStatus.CANCELLED for leg in [*pickups, *deliveries])
        assert await reconcile_trip(db_session, trip.id) == []
