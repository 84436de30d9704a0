"""
Leg ledger database models.
PickupLeg: one collection event per order per trip.
DeliveryLeg: one drop-off event per stop (primary recipient + extra stops).
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, GUID

if TYPE_CHECKING:
    from app.models.trip import Trip
    from app.models.order import DeliveryOrder, DeliveryStop


class LegStatus(str, enum.Enum):
    """
    Status of a pickup or delivery leg.
    For a pickup leg DELIVERED means the cargo was collected.
    CANCELLED is only set by order/trip cancellation, never by advancing.
    """
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (LegStatus.DELIVERED, LegStatus.FAILED, LegStatus.CANCELLED)


# Forward-only machine driven by the driver app
LEG_TRANSITIONS = {
    LegStatus.PENDING: frozenset({LegStatus.IN_TRANSIT}),
    LegStatus.IN_TRANSIT: frozenset({LegStatus.DELIVERED, LegStatus.FAILED}),
    LegStatus.DELIVERED: frozenset(),
    LegStatus.FAILED: frozenset(),
    LegStatus.CANCELLED: frozenset(),
}


class PickupLeg(Base):
    """Driver visits the shipping company once to collect the whole order."""
    __tablename__ = "pickup_legs"
    __table_args__ = (
        UniqueConstraint("trip_id", "order_id", name="uq_pickup_legs_trip_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        primary_key=True,
        default=uuid.uuid4,
    )
    trip_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("delivery_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pickup_order: Mapped[int] = mapped_column(Integer, nullable=False)
    pickup_address: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[LegStatus] = mapped_column(
        Enum(LegStatus),
        nullable=False,
        default=LegStatus.PENDING,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
    trip: Mapped["Trip"] = relationship("Trip", back_populates="pickup_legs")
    order: Mapped["DeliveryOrder"] = relationship("DeliveryOrder")
    delivery_legs: Mapped[List["DeliveryLeg"]] = relationship(
        "DeliveryLeg",
        back_populates="pickup_leg",
        order_by="DeliveryLeg.sequence",
    )

    def __repr__(self) -> str:
        return f"<PickupLeg(id={self.id}, order_id={self.order_id}, status={self.status})>"


class DeliveryLeg(Base):
    """
    One drop-off of an order. An order with k extra stops has k+1 rows on
    its trip, so (trip_id, order_id) is deliberately not unique.
    """
    __tablename__ = "delivery_legs"
    __table_args__ = (
        UniqueConstraint("trip_id", "sequence", name="uq_delivery_legs_trip_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        primary_key=True,
        default=uuid.uuid4,
    )
    trip_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("delivery_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pickup_leg_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("pickup_legs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Null means the order's primary recipient
    stop_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(),
        ForeignKey("delivery_stops.id", ondelete="CASCADE"),
        nullable=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[LegStatus] = mapped_column(
        Enum(LegStatus),
        nullable=False,
        default=LegStatus.PENDING,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
    trip: Mapped["Trip"] = relationship("Trip", back_populates="delivery_legs")
    order: Mapped["DeliveryOrder"] = relationship("DeliveryOrder")
    pickup_leg: Mapped["PickupLeg"] = relationship("PickupLeg", back_populates="delivery_legs")
    stop: Mapped[Optional["DeliveryStop"]] = relationship("DeliveryStop")

    def __repr__(self) -> str:
        return f"<DeliveryLeg(id={self.id}, sequence={self.sequence}, status={self.status})>"
