"""Initial schema - Route catalog, orders, trips and leg ledger

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ORDER_STATUSES = (
    'DRAFT', 'AWAITING_DRIVER', 'DRIVER_ACCEPTED', 'PICKED_UP', 'IN_TRANSIT',
    'COMPLETED', 'PARTIALLY_DELIVERED', 'FAILED', 'CANCELLED',
)
TRIP_STATUSES = ('SCHEDULED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED')
LEG_STATUSES = ('PENDING', 'IN_TRANSIT', 'DELIVERED', 'FAILED', 'CANCELLED')


def _enum_sql(name: str, values: Sequence[str]) -> str:
    return f"CREATE TYPE {name} AS ENUM ({', '.join(repr(v) for v in values)})"


def upgrade() -> None:
    # Create enum types
    op.execute(_enum_sql('orderstatus', ORDER_STATUSES))
    op.execute(_enum_sql('tripstatus', TRIP_STATUSES))
    op.execute(_enum_sql('legstatus', LEG_STATUSES))

    # Create routes table
    op.create_table(
        'routes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('origin_city', sa.String(120), nullable=False),
        sa.Column('destination_city', sa.String(120), nullable=False),
        sa.Column('distance_km', sa.Float(), nullable=False, server_default='0.0'),
        sa.Column('avg_travel_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # Create driver_route_profiles table
    op.create_table(
        'driver_route_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('driver_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('route_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('routes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('days_of_week', postgresql.JSON(), nullable=False),
        sa.Column('departure_time', sa.Time(), nullable=False),
        sa.Column('arrival_time', sa.Time(), nullable=True),
        sa.Column('max_packages', sa.Integer(), nullable=False),
        sa.Column('max_weight_kg', sa.Float(), nullable=False),
        sa.Column('accepts_multiple_pickups', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('accepts_multiple_deliveries', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # Create trips table
    op.create_table(
        'trips',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('driver_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('route_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('routes.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('profile_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('driver_route_profiles.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('travel_date', sa.Date(), nullable=False, index=True),
        sa.Column('status', postgresql.ENUM(*TRIP_STATUSES, name='tripstatus', create_type=False), nullable=False, server_default='SCHEDULED'),
        sa.Column('ceiling_packages', sa.Integer(), nullable=False),
        sa.Column('ceiling_weight_kg', sa.Float(), nullable=False),
        sa.Column('accepts_multiple_pickups', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('accepts_multiple_deliveries', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('consumed_packages', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consumed_weight_kg', sa.Float(), nullable=False, server_default='0.0'),
        sa.Column('last_delivery_sequence', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_pickup_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('planned_departure_at', sa.DateTime(), nullable=True),
        sa.Column('planned_arrival_at', sa.DateTime(), nullable=True),
        sa.Column('actual_departure_at', sa.DateTime(), nullable=True),
        sa.Column('actual_arrival_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('consumed_packages >= 0', name='ck_trips_consumed_packages_non_negative'),
        sa.CheckConstraint('consumed_weight_kg >= 0', name='ck_trips_consumed_weight_non_negative'),
    )
    # One active trip per driver/route/date
    op.create_index(
        'uq_trips_active_driver_route_date',
        'trips',
        ['driver_id', 'route_id', 'travel_date'],
        unique=True,
        postgresql_where=sa.text("status IN ('SCHEDULED', 'IN_PROGRESS')"),
    )

    # Create delivery_orders table
    op.create_table(
        'delivery_orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_number', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('route_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('routes.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('scheduled_date', sa.Date(), nullable=False, index=True),
        sa.Column('package_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_weight_kg', sa.Float(), nullable=False),
        sa.Column('volume_m3', sa.Float(), nullable=True),
        sa.Column('content_description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('pickup_address', sa.Text(), nullable=False),
        sa.Column('recipient_name', sa.String(255), nullable=False),
        sa.Column('recipient_phone', sa.String(20), nullable=False),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('status', postgresql.ENUM(*ORDER_STATUSES, name='orderstatus', create_type=False), nullable=False, server_default='DRAFT', index=True),
        sa.Column('trip_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('trips.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # Create delivery_stops table
    op.create_table(
        'delivery_stops',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('delivery_orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('recipient_name', sa.String(255), nullable=False),
        sa.Column('recipient_phone', sa.String(20), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('reference_point', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('order_id', 'sequence', name='uq_delivery_stops_order_sequence'),
    )

    # Create pickup_legs table
    op.create_table(
        'pickup_legs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('trip_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('delivery_orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('pickup_order', sa.Integer(), nullable=False),
        sa.Column('pickup_address', sa.Text(), nullable=False),
        sa.Column('status', postgresql.ENUM(*LEG_STATUSES, name='legstatus', create_type=False), nullable=False, server_default='PENDING'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('trip_id', 'order_id', name='uq_pickup_legs_trip_order'),
    )

    # Create delivery_legs table (k+1 rows per order, so no (trip_id, order_id) unique)
    op.create_table(
        'delivery_legs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('trip_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('delivery_orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('pickup_leg_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('pickup_legs.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('stop_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('delivery_stops.id', ondelete='CASCADE'), nullable=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('recipient_name', sa.String(255), nullable=False),
        sa.Column('recipient_phone', sa.String(20), nullable=False),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('status', postgresql.ENUM(*LEG_STATUSES, name='legstatus', create_type=False), nullable=False, server_default='PENDING'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('trip_id', 'sequence', name='uq_delivery_legs_trip_sequence'),
    )


def downgrade() -> None:
    op.drop_table('delivery_legs')
    op.drop_table('pickup_legs')
    op.drop_table('delivery_stops')
    op.drop_table('delivery_orders')
    op.drop_index('uq_trips_active_driver_route_date', table_name='trips')
    op.drop_table('trips')
    op.drop_table('driver_route_profiles')
    op.drop_table('routes')

    op.execute("DROP TYPE IF EXISTS legstatus")
    op.execute("DROP TYPE IF EXISTS tripstatus")
    op.execute("DROP TYPE IF EXISTS orderstatus")
