"""
Route catalog API endpoints.
Routes, driver route profiles and a driver's trips.
"""

from datetime import date as date_type
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models import TripStatus
from app.schemas.route import (
    RouteCreate,
    RouteUpdate,
    RouteResponse,
    DriverRouteProfileCreate,
    DriverRouteProfileUpdate,
    DriverRouteProfileResponse,
)
from app.schemas.trip import TripResponse
from app.services import catalog
from app.services.ledger import list_driver_trips

router = APIRouter(tags=["Routes"])


@router.post(
    "/routes",
    response_model=RouteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create route",
)
async def create_route(
    request: RouteCreate,
    db: AsyncSession = Depends(get_db),
) -> RouteResponse:
    route = await catalog.create_route(db, request)
    await db.commit()
    return RouteResponse.model_validate(route)


@router.get(
    "/routes",
    response_model=List[RouteResponse],
    summary="List routes",
)
async def list_routes(
    active_only: bool = Query(True, description="Only return active routes"),
    db: AsyncSession = Depends(get_db),
) -> List[RouteResponse]:
    routes = await catalog.list_routes(db, active_only=active_only)
    return [RouteResponse.model_validate(r) for r in routes]


@router.get(
    "/routes/{route_id}",
    response_model=RouteResponse,
    summary="Get route details",
)
async def get_route(
    route_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> RouteResponse:
    route = await catalog.get_route(db, route_id)
    return RouteResponse.model_validate(route)


@router.patch(
    "/routes/{route_id}",
    response_model=RouteResponse,
    summary="Activate or deactivate route",
)
async def update_route(
    route_id: UUID,
    request: RouteUpdate,
    db: AsyncSession = Depends(get_db),
) -> RouteResponse:
    route = await catalog.set_route_active(db, route_id, request.is_active)
    await db.commit()
    return RouteResponse.model_validate(route)


@router.post(
    "/driver-route-profiles",
    response_model=DriverRouteProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create driver route profile",
    description="Register the days, times and capacity a driver offers on a route.",
)
async def create_profile(
    request: DriverRouteProfileCreate,
    db: AsyncSession = Depends(get_db),
) -> DriverRouteProfileResponse:
    profile = await catalog.create_profile(db, request)
    await db.commit()
    return DriverRouteProfileResponse.model_validate(profile)


@router.patch(
    "/driver-route-profiles/{profile_id}",
    response_model=DriverRouteProfileResponse,
    summary="Update driver route profile",
    description="Changes apply to trips created afterwards; existing trips keep their ceiling.",
)
async def update_profile(
    profile_id: UUID,
    request: DriverRouteProfileUpdate,
    db: AsyncSession = Depends(get_db),
) -> DriverRouteProfileResponse:
    profile = await catalog.update_profile(db, profile_id, request)
    await db.commit()
    return DriverRouteProfileResponse.model_validate(profile)


@router.get(
    "/drivers/{driver_id}/route-profiles",
    response_model=List[DriverRouteProfileResponse],
    summary="List a driver's route profiles",
)
async def list_driver_profiles(
    driver_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[DriverRouteProfileResponse]:
    profiles = await catalog.list_driver_profiles(db, driver_id)
    return [DriverRouteProfileResponse.model_validate(p) for p in profiles]


@router.get(
    "/drivers/{driver_id}/trips",
    response_model=List[TripResponse],
    summary="List a driver's trips",
)
async def get_driver_trips(
    driver_id: UUID,
    travel_date: Optional[date_type] = Query(None, description="Only trips on this date"),
    trip_status: Optional[TripStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> List[TripResponse]:
    trips = await list_driver_trips(db, driver_id, travel_date=travel_date, status=trip_status)
    return [TripResponse.model_validate(t) for t in trips]
