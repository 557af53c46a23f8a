"""initial schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('ADMIN', 'EMPLOYEE', name='user_role')
shipment_status = sa.Enum(
    'PENDING', 'PICKED_UP', 'IN_TRANSIT', 'OUT_FOR_DELIVERY', 'DELIVERED', 'CANCELLED', 'ON_HOLD',
    name='shipment_status',
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'locations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('country', sa.String(100), nullable=False),
        sa.Column('postal_code', sa.String(20), nullable=True),
        sa.Column('latitude', sa.Float, nullable=True),
        sa.Column('longitude', sa.Float, nullable=True),
    )

    op.create_table(
        'dimensions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('length', sa.Float, nullable=False),
        sa.Column('width', sa.Float, nullable=False),
        sa.Column('height', sa.Float, nullable=False),
    )

    op.create_table(
        'shipments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tracking_number', sa.String(50), nullable=False),
        sa.Column('shipper_name', sa.String(200), nullable=False),
        sa.Column('shipper_phone', sa.String(50), nullable=True),
        sa.Column('shipper_email', sa.String(255), nullable=True),
        sa.Column('consignee_name', sa.String(200), nullable=False),
        sa.Column('consignee_phone', sa.String(50), nullable=True),
        sa.Column('consignee_email', sa.String(255), nullable=True),
        sa.Column('pickup_location_id', sa.String(36), sa.ForeignKey('locations.id'), nullable=False),
        sa.Column('delivery_location_id', sa.String(36), sa.ForeignKey('locations.id'), nullable=False),
        sa.Column('dimensions_id', sa.String(36), sa.ForeignKey('dimensions.id'), nullable=True),
        sa.Column('carrier_name', sa.String(100), nullable=True),
        sa.Column('carrier_phone', sa.String(50), nullable=True),
        sa.Column('weight', sa.Float, nullable=True),
        sa.Column('rate', sa.Float, nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('status', shipment_status, nullable=False),
        sa.Column('is_flagged', sa.Boolean, nullable=False),
        sa.Column('flag_reason', sa.Text, nullable=True),
        sa.Column('pickup_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('estimated_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_by_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('updated_by_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_shipments_tracking_number', 'shipments', ['tracking_number'], unique=True)
    op.create_index('ix_shipments_carrier_name', 'shipments', ['carrier_name'])
    op.create_index('ix_shipments_status', 'shipments', ['status'])
    op.create_index('ix_shipments_created_at', 'shipments', ['created_at'])

    op.create_table(
        'tracking_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('shipment_id', sa.String(36), sa.ForeignKey('shipments.id'), nullable=False),
        sa.Column('status', sa.String(100), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('location_id', sa.String(36), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
    )
    op.create_index('ix_tracking_events_shipment_id', 'tracking_events', ['shipment_id'])


def downgrade() -> None:
    op.drop_table('tracking_events')
    op.drop_table('shipments')
    op.drop_table('dimensions')
    op.drop_table('locations')
    op.drop_table('users')
    shipment_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
