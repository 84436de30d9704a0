"""
HTTP tests for the dispatch API.
Covers status codes and the error envelope end to end.
"""

import pytest
from uuid import uuid4

from app.schemas.order import OrderCreate
from app.schemas.route import RouteCreate, DriverRouteProfileCreate
from tests.fixtures.test_data import (
    generate_order_payload,
    generate_profile_payload,
    generate_route_payload,
)

API = "/api/v1"


async def post_route(client) -> dict:
    body = RouteCreate(**generate_route_payload()).model_dump(mode="json")
    response = await client.post(f"{API}/routes", json=body)
    assert response.status_code == 201
    return response.json()


async def post_profile(client, driver_id, route_id, **kwargs) -> dict:
    payload = generate_profile_payload(driver_id, route_id, **kwargs)
    body = DriverRouteProfileCreate(**payload).model_dump(mode="json")
    response = await client.post(f"{API}/driver-route-profiles", json=body)
    assert response.status_code == 201
    return response.json()


async def post_order(client, route_id, travel_date, **kwargs) -> dict:
    payload = generate_order_payload(route_id, travel_date, **kwargs)
    body = OrderCreate(**payload).model_dump(mode="json")
    response = await client.post(f"{API}/orders", json=body)
    assert response.status_code == 201
    return response.json()


async def advance(client, leg_id, status, failure_reason=None):
    return await client.post(
        f"{API}/legs/{leg_id}/advance",
        json={"status": status, "failure_reason": failure_reason},
    )


@pytest.fixture
async def setup(client, travel_date):
    """Route plus a 10 package / 100 kg profile for one driver."""
    driver_id = uuid4()
    route = await post_route(client)
    profile = await post_profile(client, driver_id, route["id"])
    return {"driver_id": str(driver_id), "route": route, "profile": profile, "date": travel_date}


class TestHealth:

    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestCatalogApi:

    async def test_route_lifecycle(self, client):
        route = await post_route(client)
        response = await client.get(f"{API}/routes/{route['id']}")
        assert response.status_code == 200
        assert response.json()["origin_city"] == route["origin_city"]

        response = await client.patch(f"{API}/routes/{route['id']}", json={"is_active": False})
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = await client.get(f"{API}/routes")
        assert route["id"] not in [r["id"] for r in response.json()]

    async def test_missing_route_envelope(self, client):
        response = await client.get(f"{API}/routes/{uuid4()}")
        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "ROUTE_NOT_FOUND"
        assert "message" in error

    async def test_driver_profiles(self, client, setup):
        response = await client.get(f"{API}/drivers/{setup['driver_id']}/route-profiles")
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [setup["profile"]["id"]]

        response = await client.patch(
            f"{API}/driver-route-profiles/{setup['profile']['id']}",
            json={"max_packages": 12},
        )
        assert response.status_code == 200
        assert response.json()["max_packages"] == 12

    @pytest.mark.parametrize("field", ["max_packages", "days_of_week"])
    async def test_profile_patch_null_rejected(self, client, setup, field):
        profile_id = setup["profile"]["id"]
        response = await client.patch(f"{API}/driver-route-profiles/{profile_id}", json={field: None})
        assert response.status_code == 422

        profiles = (await client.get(f"{API}/drivers/{setup['driver_id']}/route-profiles")).json()
        assert profiles[0][field] == setup["profile"][field]


class TestOrdersApi:

    async def test_create_and_get(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"], extra_stops=2)
        assert order["status"] == "awaiting_driver"
        assert [s["sequence"] for s in order["stops"]] == [2, 3]

        response = await client.get(f"{API}/orders/{order['id']}")
        assert response.status_code == 200
        assert response.json()["order_number"] == order["order_number"]

    async def test_invalid_payload(self, client, setup):
        body = OrderCreate(**generate_order_payload(setup["route"]["id"], setup["date"])).model_dump(mode="json")
        body["package_count"] = 0
        response = await client.post(f"{API}/orders", json=body)
        assert response.status_code == 422

    async def test_accept_flow(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"], package_count=6, extra_stops=1)
        response = await client.post(
            f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["order_status"] == "driver_accepted"
        assert body["already_accepted"] is False
        assert body["trip"]["consumed_packages"] == 6
        assert [leg["sequence"] for leg in body["delivery_legs"]] == [1, 2]

        # Retry is safe
        response = await client.post(
            f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]}
        )
        assert response.status_code == 200
        assert response.json()["already_accepted"] is True
        assert response.json()["trip"]["consumed_packages"] == 6

        events = await client.get(f"{API}/trips/{body['trip']['id']}/events/recent")
        assert [e["event_type"] for e in events.json()["events"]] == ["ORDER_ACCEPTED"]

    async def test_accept_by_other_driver(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"])
        await client.post(f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]})

        other = uuid4()
        await post_profile(client, other, setup["route"]["id"])
        response = await client.post(f"{API}/orders/{order['id']}/accept", json={"driver_id": str(other)})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ORDER_ALREADY_ACCEPTED"

    async def test_capacity_exceeded(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"], package_count=11)
        response = await client.post(
            f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]}
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CAPACITY_EXCEEDED"

    async def test_no_profile(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"])
        response = await client.post(f"{API}/orders/{order['id']}/accept", json={"driver_id": str(uuid4())})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "NO_MATCHING_PROFILE"

    async def test_accept_missing_order(self, client, setup):
        response = await client.post(f"{API}/orders/{uuid4()}/accept", json={"driver_id": setup["driver_id"]})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"

    async def test_cancel_and_tracking(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"], package_count=2)
        other = await post_order(client, setup["route"]["id"], setup["date"], package_count=3)
        accepted = await client.post(
            f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]}
        )
        await client.post(f"{API}/orders/{other['id']}/accept", json={"driver_id": setup["driver_id"]})
        trip_id = accepted.json()["trip"]["id"]

        response = await client.post(f"{API}/orders/{order['id']}/cancel", json={"reason": "Withdrawn"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        tracking = (await client.get(f"{API}/orders/{order['id']}/tracking")).json()
        assert tracking["status"] == "cancelled"
        assert all(leg["status"] == "cancelled" for leg in tracking["delivery_legs"])

        trip = (await client.get(f"{API}/trips/{trip_id}")).json()
        assert trip["consumed_packages"] == 3

    async def test_repeated_cancel_publishes_once(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"])
        other = await post_order(client, setup["route"]["id"], setup["date"])
        accepted = await client.post(
            f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]}
        )
        await client.post(f"{API}/orders/{other['id']}/accept", json={"driver_id": setup["driver_id"]})
        trip_id = accepted.json()["trip"]["id"]

        for _ in range(2):
            response = await client.post(f"{API}/orders/{order['id']}/cancel", json={"reason": "Withdrawn"})
            assert response.status_code == 200
            assert response.json()["status"] == "cancelled"

        events = (await client.get(f"{API}/trips/{trip_id}/events/recent")).json()["events"]
        assert [e["event_type"] for e in events].count("ORDER_CANCELLED") == 1

    async def test_completed_count(self, client):
        response = await client.get(f"{API}/companies/{uuid4()}/completed-orders")
        assert response.status_code == 200
        assert response.json()["completed_orders"] == 0


class TestTripsApi:

    async def test_drive_trip(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"])
        body = (await client.post(
            f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]}
        )).json()
        trip_id = body["trip"]["id"]
        pickup_id = body["pickup_leg"]["id"]
        drop_id = body["delivery_legs"][0]["id"]

        next_action = (await client.get(f"{API}/trips/{trip_id}/next-action")).json()
        assert next_action["action"] == "pickup"
        assert next_action["leg_id"] == pickup_id

        response = await advance(client, drop_id, "in_transit")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "PICKUP_NOT_COLLECTED"

        response = await advance(client, pickup_id, "delivered")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ILLEGAL_LEG_TRANSITION"

        for leg_id in (pickup_id, drop_id):
            assert (await advance(client, leg_id, "in_transit")).status_code == 200
            response = await advance(client, leg_id, "delivered")
            assert response.status_code == 200

        final = response.json()
        assert final["order_status"] == "completed"
        assert final["trip_status"] == "completed"

        manifest = (await client.get(f"{API}/trips/{trip_id}/manifest")).json()
        assert manifest["capacity_consistent"] is True
        assert manifest["orders"][0]["delivery_legs"][0]["status"] == "delivered"

        integrity = (await client.get(f"{API}/trips/{trip_id}/integrity")).json()
        assert integrity["ok"] is True
        assert integrity["issues"] == []

        trips = (await client.get(f"{API}/drivers/{setup['driver_id']}/trips")).json()
        assert [t["id"] for t in trips] == [trip_id]

    async def test_advance_missing_leg(self, client):
        response = await advance(client, uuid4(), "in_transit")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "LEG_NOT_FOUND"

    async def test_cancel_trip(self, client, setup):
        order = await post_order(client, setup["route"]["id"], setup["date"])
        body = (await client.post(
            f"{API}/orders/{order['id']}/accept", json={"driver_id": setup["driver_id"]}
        )).json()
        trip_id = body["trip"]["id"]

        response = await client.post(f"{API}/trips/{trip_id}/cancel", json={"reason": "Breakdown"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        released = (await client.get(f"{API}/orders/{order['id']}")).json()
        assert released["status"] == "awaiting_driver"
        assert released["trip_id"] is None

    async def test_missing_trip(self, client):
        response = await client.get(f"{API}/trips/{uuid4()}/manifest")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TRIP_NOT_FOUND"
