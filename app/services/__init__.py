"""Services package initialization."""

from app.services.catalog import (
    create_route,
    get_route,
    list_routes,
    set_route_active,
    create_profile,
    update_profile,
    list_driver_profiles,
    find_matching_profile,
)
from app.services.intake import create_order, get_order, count_completed_orders
from app.services.allocation import accept_order, cancel_order, cancel_trip, AcceptResult, CancelResult
from app.services.leg_progress import advance_leg, LegAdvanceResult
from app.services.ledger import get_trip, list_driver_trips, next_action, trip_manifest, order_tracking
from app.services.reconciliation import (
    reconcile_trip,
    reconcile_all,
    assert_trip_integrity,
    IntegrityIssue,
    ReconciliationReport,
)

__all__ = [
    # Route catalog
    "create_route",
    "get_route",
    "list_routes",
    "set_route_active",
    "create_profile",
    "update_profile",
    "list_driver_profiles",
    "find_matching_profile",
    # Intake
    "create_order",
    "get_order",
    "count_completed_orders",
    # Allocation
    "accept_order",
    "cancel_order",
    "cancel_trip",
    "AcceptResult",
    "CancelResult",
    "advance_leg",
    "LegAdvanceResult",
    # Ledger
    "get_trip",
    "list_driver_trips",
    "next_action",
    "trip_manifest",
    "order_tracking",
    "reconcile_trip",
    "reconcile_all",
    "assert_trip_integrity",
    "IntegrityIssue",
    "ReconciliationReport",
]
