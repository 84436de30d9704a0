"""
Trip ledger event bus for real-time SSE updates.

Routers publish an event after each committed ledger change (order
accepted, leg advanced, order or trip cancelled) so dispatch dashboards and
driver apps can follow a trip live.
"""

from typing import AsyncIterator, Dict, Any, List, Optional
import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class TripEventBus:
    """
    Simple in-process pub/sub for trip ledger events.

    Multiple listeners (SSE connections) can subscribe. Events are only
    published after the transaction that produced them committed.
    """

    def __init__(self, max_recent: int = 200, max_queue: int = 500) -> None:
        self._subscribers: List[asyncio.Queue] = []
        self._max_queue = max_queue  # Per subscriber; a slow client loses its oldest events
        self._lock = asyncio.Lock()
        self._recent_events: List[Dict[str, Any]] = []
        self._max_recent = max_recent  # Kept for late joiners

    async def subscribe(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Async generator yielding events. Callers iterate and send as SSE.

        Yields:
            Ledger event dictionaries
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)

        async with self._lock:
            self._subscribers.append(queue)

        try:
            while True:
                event = await queue.get()
                yield event
        finally:
            async with self._lock:
                if queue in self._subscribers:
                    self._subscribers.remove(queue)

    async def publish(self, event: Dict[str, Any]) -> None:
        """Publish an event to all subscribers."""
        async with self._lock:
            self._recent_events.append(event)
            if len(self._recent_events) > self._max_recent:
                self._recent_events = self._recent_events[-self._max_recent:]

            for queue in self._subscribers:
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    queue.get_nowait()
                    queue.put_nowait(event)
                    logger.warning("SSE subscriber is falling behind; dropped its oldest event")

    def get_recent_events(
        self,
        trip_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """
        Get recent events, optionally filtered by trip.

        Args:
            trip_id: Filter by specific trip (optional)
            limit: Maximum events to return
        """
        events = self._recent_events
        if trip_id:
            events = [e for e in events if e.get("trip_id") == trip_id]
        return events[-limit:]

    def clear(self) -> None:
        self._recent_events = []


# Global singleton
trip_event_bus = TripEventBus()


def make_ledger_event(
    event_type: str,
    trip_id: Optional[Any],
    order_id: Optional[Any] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Create a standardized ledger event dictionary.

    Args:
        event_type: e.g. "ORDER_ACCEPTED", "LEG_ADVANCED", "ORDER_CANCELLED", "TRIP_CANCELLED"
        trip_id: Trip the event belongs to
        order_id: Order involved, if any
        payload: Optional additional data for the event
    """
    return {
        "event_type": event_type,
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "trip_id": str(trip_id) if trip_id else None,
        "order_id": str(order_id) if order_id else None,
        "payload": payload or {},
    }


async def publish_ledger_event(
    event_type: str,
    trip_id: Optional[Any],
    order_id: Optional[Any] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """Convenience function to build and publish a ledger event."""
    event = make_ledger_event(event_type, trip_id, order_id, payload)
    await trip_event_bus.publish(event)
    logger.debug(f"Published {event_type} for trip {event['trip_id']}")
