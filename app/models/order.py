"""
Delivery order database models.
Includes DeliveryOrder and its extra DeliveryStop rows.
"""

import enum
import uuid
from datetime import datetime, date
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Float, Integer, Text, Date, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, GUID

if TYPE_CHECKING:
    from app.models.route import Route
    from app.models.trip import Trip


class OrderStatus(str, enum.Enum):
    """Lifecycle of a delivery order."""
    DRAFT = "draft"
    AWAITING_DRIVER = "awaiting_driver"
    DRIVER_ACCEPTED = "driver_accepted"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"
    PARTIALLY_DELIVERED = "partially_delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ORDER_STATUSES


TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.PARTIALLY_DELIVERED,
    OrderStatus.FAILED,
    OrderStatus.CANCELLED,
})


class DeliveryOrder(Base):
    """
    A company's shipment request along a route.

    The primary recipient lives inline on the order (stop 1); extra drop-offs
    are DeliveryStop rows starting at sequence 2.
    """
    __tablename__ = "delivery_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        primary_key=True,
        default=uuid.uuid4,
    )
    order_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    route_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("routes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Cargo
    package_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    volume_m3: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    content_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Address snapshots
    pickup_address: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus),
        nullable=False,
        default=OrderStatus.DRAFT,
        index=True,
    )
    trip_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(),
        ForeignKey("trips.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

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
    trip: Mapped[Optional["Trip"]] = relationship("Trip", back_populates="orders")
    stops: Mapped[List["DeliveryStop"]] = relationship(
        "DeliveryStop",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="DeliveryStop.sequence",
    )

    def __repr__(self) -> str:
        return f"<DeliveryOrder(id={self.id}, number={self.order_number}, status={self.status})>"


class DeliveryStop(Base):
    """
    An extra drop-off point of an order beyond its primary recipient.
    Written in the same transaction as the order, before it becomes matchable.
    """
    __tablename__ = "delivery_stops"
    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="uq_delivery_stops_order_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        primary_key=True,
        default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("delivery_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    reference_point: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
    order: Mapped["DeliveryOrder"] = relationship("DeliveryOrder", back_populates="stops")

    def __repr__(self) -> str:
        return f"<DeliveryStop(order_id={self.order_id}, sequence={self.sequence})>"
