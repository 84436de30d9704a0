"""
Trip API endpoints.
Trip details, manifest, the driver's next action, cancellation and
integrity checks.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.events import publish_ledger_event
from app.database import get_db
from app.schemas.trip import (
    CancelTripRequest,
    IntegrityIssueResponse,
    IntegrityReportResponse,
    NextActionResponse,
    TripManifestResponse,
    TripResponse,
)
from app.services.allocation import cancel_trip
from app.services.ledger import get_trip, next_action, trip_manifest
from app.services.reconciliation import reconcile_trip

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.get(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Get trip",
)
async def get_trip_endpoint(
    trip_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TripResponse:
    trip = await get_trip(db, trip_id)
    return TripResponse.model_validate(trip)


@router.get(
    "/{trip_id}/manifest",
    response_model=TripManifestResponse,
    summary="Get trip manifest",
    description="All orders on the trip with their pickup and delivery legs.",
)
async def get_manifest(
    trip_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TripManifestResponse:
    return await trip_manifest(db, trip_id)


@router.get(
    "/{trip_id}/next-action",
    response_model=NextActionResponse,
    summary="Get next action",
    description="The next leg the driver should work on, in delivery sequence order.",
)
async def get_next_action(
    trip_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> NextActionResponse:
    return await next_action(db, trip_id)


@router.post(
    "/{trip_id}/cancel",
    response_model=TripResponse,
    summary="Cancel trip",
    description="Cancel a trip that has not started; its orders go back to awaiting a driver.",
)
async def cancel_trip_endpoint(
    trip_id: UUID,
    request: CancelTripRequest,
    db: AsyncSession = Depends(get_db),
) -> TripResponse:
    trip = await cancel_trip(db, trip_id, request.reason)
    await db.commit()
    await publish_ledger_event("TRIP_CANCELLED", trip_id=trip.id, payload={"reason": request.reason})
    return TripResponse.model_validate(trip)


@router.get(
    "/{trip_id}/integrity",
    response_model=IntegrityReportResponse,
    summary="Check trip integrity",
    description="Recompute the trip's capacity ledger and leg fan-out and report any drift.",
)
async def get_integrity(
    trip_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> IntegrityReportResponse:
    issues = await reconcile_trip(db, trip_id)
    return IntegrityReportResponse(
        checked_trips=1,
        ok=not issues,
        issues=[
            IntegrityIssueResponse(
                trip_id=issue.trip_id,
                order_id=issue.order_id,
                kind=issue.kind,
                message=issue.message,
                expected=issue.expected,
                actual=issue.actual,
            )
            for issue in issues
        ],
    )
