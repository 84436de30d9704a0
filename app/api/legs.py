"""
Leg API endpoints.
Handles POST /api/v1/legs/{id}/advance from the driver app.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.events import publish_ledger_event
from app.database import get_db
from app.schemas.trip import LegAdvanceRequest, LegAdvanceResponse
from app.services.leg_progress import advance_leg

router = APIRouter(prefix="/legs", tags=["Legs"])


@router.post(
    "/{leg_id}/advance",
    response_model=LegAdvanceResponse,
    summary="Advance leg",
    description=(
        "Move a pickup or delivery leg one step: pending -> in_transit -> "
        "delivered | failed. Order and trip status follow the legs."
    ),
    responses={
        404: {"description": "Leg not found"},
        409: {"description": "Illegal transition, pickup not collected, or lost race"},
    },
)
async def advance_leg_endpoint(
    leg_id: UUID,
    request: LegAdvanceRequest,
    db: AsyncSession = Depends(get_db),
) -> LegAdvanceResponse:
    result = await advance_leg(db, leg_id, request.status, request.failure_reason)
    await db.commit()

    await publish_ledger_event(
        "LEG_ADVANCED",
        trip_id=result.trip.id,
        order_id=result.order.id,
        payload={
            "leg_id": str(result.leg.id),
            "leg_type": result.leg_type,
            "status": result.leg.status.value,
            "order_status": result.order.status.value,
            "trip_status": result.trip.status.value,
        },
    )

    return LegAdvanceResponse(
        leg_id=result.leg.id,
        leg_type=result.leg_type,
        status=result.leg.status,
        order_id=result.order.id,
        order_status=result.order.status,
        trip_id=result.trip.id,
        trip_status=result.trip.status,
    )
