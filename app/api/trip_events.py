"""
Trip Events SSE Endpoint.

Server-Sent Events stream of committed ledger changes for one trip, for
dispatch dashboards and driver apps.
"""

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse
from uuid import UUID
import json

from app.core.events import trip_event_bus


router = APIRouter(prefix="/trips", tags=["Trip Events"])


@router.get("/{trip_id}/events")
async def trip_events_stream(trip_id: UUID):
    """
    Server-Sent Events endpoint for one trip.

    Replays the trip's recent events, then streams live ones.
    """
    trip_key = str(trip_id)

    async def event_generator():
        init_event = {
            "type": "connected",
            "message": "SSE connection established",
            "trip_id": trip_key,
        }
        yield f"data: {json.dumps(init_event)}\n\n"

        for event in trip_event_bus.get_recent_events(trip_id=trip_key):
            yield f"data: {json.dumps(event)}\n\n"

        async for event in trip_event_bus.subscribe():
            if event.get("trip_id") != trip_key:
                continue
            yield f"data: {json.dumps(event)}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/{trip_id}/events/recent")
async def get_recent_trip_events(
    trip_id: UUID,
    limit: int = Query(50, ge=1, le=200, description="Maximum events to return"),
):
    """Recent ledger events for a trip (non-streaming)."""
    events = trip_event_bus.get_recent_events(trip_id=str(trip_id), limit=limit)
    return {"events": events, "count": len(events)}
