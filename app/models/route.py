"""
Route catalog database models.
Includes Route (a named city-pair corridor) and DriverRouteProfile
(a driver's recurring capacity/schedule template for a route).
"""

import uuid
from datetime import datetime, time
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Float, Integer, Boolean, DateTime, Time, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, GUID

if TYPE_CHECKING:
    from app.models.trip import Trip


class Route(Base):
    """
    Route model representing an intercity corridor drivers can serve.
    Reference data: created by an operator, deactivated rather than deleted.
    """
    __tablename__ = "routes"

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    origin_city: Mapped[str] = mapped_column(String(120), nullable=False)
    destination_city: Mapped[str] = mapped_column(String(120), nullable=False)
    distance_km: Mapped[float] = mapped_column(Float, default=0.0)
    avg_travel_minutes: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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
    driver_profiles: Mapped[List["DriverRouteProfile"]] = relationship(
        "DriverRouteProfile",
        back_populates="route",
    )

    def __repr__(self) -> str:
        return f"<Route(id={self.id}, name={self.name})>"


class DriverRouteProfile(Base):
    """
    A driver's recurring offer to serve a route.

    Only used as a template: when the first order for a (driver, route, date)
    is accepted, a Trip copies the capacity and flags from here and freezes them.
    """
    __tablename__ = "driver_route_profiles"

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
    # ISO weekdays, 1 = Monday ... 7 = Sunday
    days_of_week: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)
    departure_time: Mapped[time] = mapped_column(Time, nullable=False)
    arrival_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    max_packages: Mapped[int] = mapped_column(Integer, nullable=False)
    max_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    accepts_multiple_pickups: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    accepts_multiple_deliveries: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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
    route: Mapped["Route"] = relationship("Route", back_populates="driver_profiles")
    trips: Mapped[List["Trip"]] = relationship("Trip", back_populates="profile")

    def covers(self, weekday: int) -> bool:
        """Check whether the profile runs on an ISO weekday."""
        return weekday in (self.days_of_week or [])

    def __repr__(self) -> str:
        return f"<DriverRouteProfile(id={self.id}, driver_id={self.driver_id}, route_id={self.route_id})>"
