"""
Test data generators for creating realistic dispatch scenarios.
"""

import random
import uuid
from datetime import date, time, timedelta
from typing import List, Optional

from faker import Faker

fake = Faker()

CITY_PAIRS = [
    ("Campinas", "Sao Paulo", 95.0, 90),
    ("Curitiba", "Florianopolis", 300.0, 260),
    ("Belo Horizonte", "Rio de Janeiro", 440.0, 390),
    ("Recife", "Joao Pessoa", 120.0, 110),
]


def next_weekday(weekday: int, start: Optional[date] = None) -> date:
    """Next date (strictly after start) falling on an ISO weekday."""
    start = start or date.today()
    days_ahead = (weekday - start.isoweekday()) % 7 or 7
    return start + timedelta(days=days_ahead)


def phone() -> str:
    return f"11{random.randint(900000000, 999999999)}"


def generate_route_payload() -> dict:
    origin, destination, distance, minutes = random.choice(CITY_PAIRS)
    return {
        "name": f"{origin} - {destination}",
        "origin_city": origin,
        "destination_city": destination,
        "distance_km": distance,
        "avg_travel_minutes": minutes,
    }


def generate_profile_payload(
    driver_id: uuid.UUID,
    route_id: uuid.UUID,
    days_of_week: Optional[List[int]] = None,
    max_packages: int = 10,
    max_weight_kg: float = 100.0,
    accepts_multiple_pickups: bool = True,
    accepts_multiple_deliveries: bool = True,
) -> dict:
    return {
        "driver_id": driver_id,
        "route_id": route_id,
        "days_of_week": days_of_week or [1, 2, 3, 4, 5, 6, 7],
        "departure_time": time(7, 30),
        "arrival_time": None,
        "max_packages": max_packages,
        "max_weight_kg": max_weight_kg,
        "accepts_multiple_pickups": accepts_multiple_pickups,
        "accepts_multiple_deliveries": accepts_multiple_deliveries,
    }


def generate_stop_payloads(count: int) -> List[dict]:
    return [
        {
            "recipient_name": fake.name(),
            "recipient_phone": phone(),
            "address": fake.street_address(),
            "reference_point": None,
        }
        for _ in range(count)
    ]


def generate_order_payload(
    route_id: uuid.UUID,
    scheduled_date: date,
    package_count: int = 1,
    total_weight_kg: Optional[float] = None,
    extra_stops: int = 0,
    company_id: Optional[uuid.UUID] = None,
) -> dict:
    """
    Generate an intake payload.

    Args:
        route_id: Route the order travels on
        scheduled_date: Travel date
        package_count: Packages in the order
        total_weight_kg: Defaults to 2 kg per package
        extra_stops: Extra drop-offs beyond the primary recipient
    """
    return {
        "company_id": company_id or uuid.uuid4(),
        "route_id": route_id,
        "scheduled_date": scheduled_date,
        "package_count": package_count,
        "total_weight_kg": total_weight_kg if total_weight_kg is not None else 2.0 * package_count,
        "content_description": fake.sentence(nb_words=4),
        "pickup_address": fake.street_address(),
        "recipient_name": fake.name(),
        "recipient_phone": phone(),
        "delivery_address": fake.street_address(),
        "stops": generate_stop_payloads(extra_stops),
    }
