"""
Route catalog service.
Routes and driver route profiles: the reference data trips are built from.
"""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.models import Route, DriverRouteProfile
from app.schemas.route import (
    RouteCreate,
    DriverRouteProfileCreate,
    DriverRouteProfileUpdate,
)

logger = logging.getLogger(__name__)


async def create_route(db: AsyncSession, payload: RouteCreate) -> Route:
    """Register a new city-pair route."""
    route = Route(
        name=payload.name,
        origin_city=payload.origin_city,
        destination_city=payload.destination_city,
        distance_km=payload.distance_km,
        avg_travel_minutes=payload.avg_travel_minutes,
        is_active=True,
    )
    db.add(route)
    await db.flush()
    logger.info(f"Route {route.id} created: {route.origin_city} -> {route.destination_city}")
    return route


async def get_route(db: AsyncSession, route_id: UUID) -> Route:
    result = await db.execute(select(Route).where(Route.id == route_id))
    route = result.scalar_one_or_none()
    if not route:
        raise NotFoundError("Route", route_id)
    return route


async def list_routes(db: AsyncSession, active_only: bool = True) -> List[Route]:
    query = select(Route)
    if active_only:
        query = query.where(Route.is_active.is_(True))
    result = await db.execute(query.order_by(Route.name))
    return list(result.scalars().all())


async def set_route_active(db: AsyncSession, route_id: UUID, is_active: bool) -> Route:
    """
    Activate or deactivate a route.
    Inactive routes reject new orders and profiles; existing trips keep running.
    """
    route = await get_route(db, route_id)
    route.is_active = is_active
    await db.flush()
    logger.info(f"Route {route.id} active={is_active}")
    return route


async def create_profile(db: AsyncSession, payload: DriverRouteProfileCreate) -> DriverRouteProfile:
    """Create a driver's recurring capacity/schedule template for a route."""
    route = await get_route(db, payload.route_id)
    if not route.is_active:
        raise ValidationError(
            f"Route {route.id} is inactive",
            code="ROUTE_INACTIVE",
            details={"route_id": str(route.id)},
        )

    profile = DriverRouteProfile(
        driver_id=payload.driver_id,
        route_id=payload.route_id,
        days_of_week=payload.days_of_week,
        departure_time=payload.departure_time,
        arrival_time=payload.arrival_time,
        max_packages=payload.max_packages,
        max_weight_kg=payload.max_weight_kg,
        accepts_multiple_pickups=payload.accepts_multiple_pickups,
        accepts_multiple_deliveries=payload.accepts_multiple_deliveries,
        is_active=True,
    )
    db.add(profile)
    await db.flush()
    logger.info(
        f"Profile {profile.id} created for driver {profile.driver_id} on route {profile.route_id}"
    )
    return profile


async def get_profile(db: AsyncSession, profile_id: UUID) -> DriverRouteProfile:
    result = await db.execute(
        select(DriverRouteProfile).where(DriverRouteProfile.id == profile_id)
    )
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFoundError("Driver route profile", profile_id)
    return profile


async def update_profile(
    db: AsyncSession,
    profile_id: UUID,
    changes: DriverRouteProfileUpdate,
) -> DriverRouteProfile:
    """
    Apply a partial update to a profile.

    Trips already created from this profile keep the ceiling they froze at
    creation time; only trips instantiated afterwards see the new values.
    """
    profile = await get_profile(db, profile_id)
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    await db.flush()
    logger.info(f"Profile {profile.id} updated: {sorted(changes.model_dump(exclude_unset=True))}")
    return profile


async def list_driver_profiles(db: AsyncSession, driver_id: UUID) -> List[DriverRouteProfile]:
    result = await db.execute(
        select(DriverRouteProfile)
        .where(DriverRouteProfile.driver_id == driver_id)
        .order_by(DriverRouteProfile.created_at)
    )
    return list(result.scalars().all())


async def find_matching_profile(
    db: AsyncSession,
    driver_id: UUID,
    route_id: UUID,
    travel_date: date,
) -> Optional[DriverRouteProfile]:
    """
    Find the driver's active profile for a route that runs on the travel
    date's weekday. Returns None when the driver doesn't serve that day.
    """
    result = await db.execute(
        select(DriverRouteProfile)
        .where(
            and_(
                DriverRouteProfile.driver_id == driver_id,
                DriverRouteProfile.route_id == route_id,
                DriverRouteProfile.is_active.is_(True),
            )
        )
        .order_by(DriverRouteProfile.created_at)
    )
    weekday = travel_date.isoweekday()
    for profile in result.scalars().all():
        if profile.covers(weekday):
            return profile
    return None
