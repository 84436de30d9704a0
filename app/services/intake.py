"""
Order intake service.

Creates a DeliveryOrder together with all of its DeliveryStop rows in one
transaction. The order is inserted as DRAFT and only flipped to
AWAITING_DRIVER after every stop has been flushed, so acceptance can never
observe an order whose stop list is still being written.
"""

import logging
import secrets
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import get_settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import DeliveryOrder, DeliveryStop, OrderStatus, Route
from app.schemas.order import OrderCreate, DeliveryStopInput

logger = logging.getLogger(__name__)


def generate_order_number(scheduled_on: date) -> str:
    """Human-facing order number, e.g. IM-20261120-4F9A1C."""
    prefix = get_settings().order_number_prefix
    return f"{prefix}-{scheduled_on:%Y%m%d}-{secrets.token_hex(3).upper()}"


def assign_stop_sequences(stops: List[DeliveryStopInput]) -> List[int]:
    """
    Resolve the sequence of every extra stop.

    Stops without an explicit sequence are numbered 2, 3, ... in the order
    given. Explicit sequences must be unique and together form the
    contiguous range 2..k+1. Mixing explicit and implicit sequences is
    rejected.
    """
    if not stops:
        return []

    explicit = [s.sequence for s in stops if s.sequence is not None]
    if not explicit:
        return list(range(2, len(stops) + 2))

    if len(explicit) != len(stops):
        raise ValidationError(
            "Either all stops carry a sequence or none do",
            code="INVALID_STOP_SEQUENCE",
        )
    if sorted(explicit) != list(range(2, len(stops) + 2)):
        raise ValidationError(
            "Stop sequences must be unique and contiguous starting at 2",
            code="INVALID_STOP_SEQUENCE",
            details={"sequences": explicit},
        )
    return explicit


async def create_order(db: AsyncSession, payload: OrderCreate) -> DeliveryOrder:
    """
    Create an order and its stops, then open it for matching.

    Args:
        db: Database session (the caller commits)
        payload: Intake form

    Returns:
        The AWAITING_DRIVER order with stops loaded
    """
    route_result = await db.execute(select(Route).where(Route.id == payload.route_id))
    route = route_result.scalar_one_or_none()
    if not route:
        raise NotFoundError("Route", payload.route_id)
    if not route.is_active:
        raise ValidationError(
            f"Route {route.id} is inactive",
            code="ROUTE_INACTIVE",
            details={"route_id": str(route.id)},
        )

    sequences = assign_stop_sequences(payload.stops)

    order_number = payload.order_number or generate_order_number(payload.scheduled_date)
    existing = await db.execute(
        select(DeliveryOrder.id).where(DeliveryOrder.order_number == order_number)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(
            f"Order number {order_number} already exists",
            code="DUPLICATE_ORDER_NUMBER",
            details={"order_number": order_number},
        )

    order = DeliveryOrder(
        order_number=order_number,
        company_id=payload.company_id,
        route_id=payload.route_id,
        scheduled_date=payload.scheduled_date,
        package_count=payload.package_count,
        total_weight_kg=payload.total_weight_kg,
        volume_m3=payload.volume_m3,
        content_description=payload.content_description,
        notes=payload.notes,
        pickup_address=payload.pickup_address,
        recipient_name=payload.recipient_name,
        recipient_phone=payload.recipient_phone,
        delivery_address=payload.delivery_address,
        status=OrderStatus.DRAFT,
    )
    db.add(order)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent intake using the same number
        raise ConflictError(
            f"Order number {order_number} already exists",
            code="DUPLICATE_ORDER_NUMBER",
            details={"order_number": order_number},
        )

    for stop_input, sequence in zip(payload.stops, sequences):
        db.add(DeliveryStop(
            order_id=order.id,
            sequence=sequence,
            recipient_name=stop_input.recipient_name,
            recipient_phone=stop_input.recipient_phone,
            address=stop_input.address,
            reference_point=stop_input.reference_point,
        ))
    await db.flush()

    # Last statement: the order becomes matchable only once its stops exist
    order.status = OrderStatus.AWAITING_DRIVER
    await db.flush()

    logger.info(
        f"Order {order.order_number} ({order.id}) created with {len(sequences)} extra stop(s), "
        f"{order.package_count} package(s), {order.total_weight_kg} kg"
    )
    return await get_order(db, order.id)


async def get_order(db: AsyncSession, order_id: UUID, for_update: bool = False) -> DeliveryOrder:
    """
    Load an order with its stops in ascending sequence.

    Args:
        for_update: Lock the order row for the rest of the transaction
    """
    query = (
        select(DeliveryOrder)
        .where(DeliveryOrder.id == order_id)
        .options(selectinload(DeliveryOrder.stops))
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


async def count_completed_orders(db: AsyncSession, company_id: UUID) -> int:
    """Completed orders of a company, read by the referral/commission engine."""
    result = await db.execute(
        select(func.count(DeliveryOrder.id)).where(
            DeliveryOrder.company_id == company_id,
            DeliveryOrder.status == OrderStatus.COMPLETED,
        )
    )
    return int(result.scalar_one())


async def list_company_orders(
    db: AsyncSession,
    company_id: UUID,
    status: Optional[OrderStatus] = None,
) -> List[DeliveryOrder]:
    query = (
        select(DeliveryOrder)
        .where(DeliveryOrder.company_id == company_id)
        .options(selectinload(DeliveryOrder.stops))
        .order_by(DeliveryOrder.created_at.desc())
    )
    if status is not None:
        query = query.where(DeliveryOrder.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())
