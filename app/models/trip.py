"""
Trip database model.
A concrete dated voyage by one driver along one route, with a frozen
capacity ceiling and the running capacity ledger.
"""

import enum
import uuid
from datetime import datetime, date
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import Float, Integer, Boolean, Text, Date, DateTime, ForeignKey, Enum, Index, CheckConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, GUID

if TYPE_CHECKING:
    from app.models.route import Route, DriverRouteProfile
    from app.models.order import DeliveryOrder
    from app.models.leg import PickupLeg, DeliveryLeg


class TripStatus(str, enum.Enum):
    """Lifecycle of a trip."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_TRIP_STATUSES = (TripStatus.SCHEDULED, TripStatus.IN_PROGRESS)

_ACTIVE_TRIP_PREDICATE = text("status IN ('SCHEDULED', 'IN_PROGRESS')")


class Trip(Base):
    """
    Trip model. Created lazily by the first accepted order for a
    (driver, route, date); later orders for the same key reuse it.
    """
    __tablename__ = "trips"
    __table_args__ = (
        # One active trip per driver/route/date; finished trips don't block a new one
        Index(
            "uq_trips_active_driver_route_date",
            "driver_id",
            "route_id",
            "travel_date",
            unique=True,
            postgresql_where=_ACTIVE_TRIP_PREDICATE,
            sqlite_where=_ACTIVE_TRIP_PREDICATE,
        ),
        CheckConstraint("consumed_packages >= 0", name="ck_trips_consumed_packages_non_negative"),
        CheckConstraint("consumed_weight_kg >= 0", name="ck_trips_consumed_weight_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        primary_key=True,
        default=uuid.uuid4,
    )
    driver_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    route_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("routes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("driver_route_profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    travel_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[TripStatus] = mapped_column(
        Enum(TripStatus),
        nullable=False,
        default=TripStatus.SCHEDULED,
    )

    # Ceiling and flags, frozen from the profile at creation
    ceiling_packages: Mapped[int] = mapped_column(Integer, nullable=False)
    ceiling_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    accepts_multiple_pickups: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    accepts_multiple_deliveries: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Capacity ledger
    consumed_packages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    consumed_weight_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Per-trip counters, advanced in the same UPDATE that reserves capacity
    last_delivery_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_pickup_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timing
    planned_departure_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    planned_arrival_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_departure_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_arrival_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    # Relationships
    route: Mapped["Route"] = relationship("Route")
    profile: Mapped["DriverRouteProfile"] = relationship("DriverRouteProfile", back_populates="trips")
    orders: Mapped[List["DeliveryOrder"]] = relationship("DeliveryOrder", back_populates="trip")
    pickup_legs: Mapped[List["PickupLeg"]] = relationship(
        "PickupLeg",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="PickupLeg.pickup_order",
    )
    delivery_legs: Mapped[List["DeliveryLeg"]] = relationship(
        "DeliveryLeg",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="DeliveryLeg.sequence",
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TRIP_STATUSES

    @property
    def remaining_packages(self) -> int:
        return self.ceiling_packages - self.consumed_packages

    @property
    def remaining_weight_kg(self) -> float:
        return self.ceiling_weight_kg - self.consumed_weight_kg

    def __repr__(self) -> str:
        return (
            f"<Trip(id={self.id}, driver_id={self.driver_id}, date={self.travel_date}, "
            f"packages={self.consumed_packages}/{self.ceiling_packages})>"
        )
