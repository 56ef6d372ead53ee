"""initial dormitory schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False))
    return columns


def upgrade() -> None:
    op.create_table(
        'auth_accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('requested_role', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('last_sign_in_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_auth_accounts_id', 'auth_accounts', ['id'])
    op.create_index('ix_auth_accounts_email', 'auth_accounts', ['email'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=180), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    op.create_table(
        'rooms',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_number', sa.String(length=40), nullable=False),
        sa.Column('floor', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('price_per_month', sa.Float(), nullable=False, server_default='0'),
        sa.Column('amenities', sa.JSON(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_rooms_id', 'rooms', ['id'])
    op.create_index('ix_rooms_room_number', 'rooms', ['room_number'], unique=True)
    op.create_index('ix_rooms_is_available', 'rooms', ['is_available'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        *_timestamps(),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_room_id', 'bookings', ['room_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_created_at', 'bookings', ['created_at'])
    op.create_index('ix_bookings_room_status', 'bookings', ['room_id', 'status'])

    op.create_table(
        'attendance',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('check_in', sa.DateTime(), nullable=True),
        sa.Column('check_out', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('user_id', 'date', name='uq_attendance_user_date'),
    )
    op.create_index('ix_attendance_id', 'attendance', ['id'])
    op.create_index('ix_attendance_user_id', 'attendance', ['user_id'])
    op.create_index('ix_attendance_date', 'attendance', ['date'])

    op.create_table(
        'mess_menu',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('day_of_week', sa.String(length=12), nullable=False),
        sa.Column('meal_type', sa.String(length=12), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_mess_menu_id', 'mess_menu', ['id'])
    op.create_index('ix_mess_menu_day_of_week', 'mess_menu', ['day_of_week'])
    op.create_index('ix_mess_menu_day_meal', 'mess_menu', ['day_of_week', 'meal_type'])

    op.create_table(
        'hostels',
        sa.Column('id', sa.Integer(), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('size', sa.String(length=10), nullable=False),
        sa.Column('location_tier', sa.String(length=10), nullable=False),
        sa.Column('commission_rate', sa.Float(), nullable=False),
        sa.Column('price_range_min', sa.Float(), nullable=False, server_default='0'),
        sa.Column('price_range_max', sa.Float(), nullable=False, server_default='0'),
        sa.Column('amenities', sa.JSON(), nullable=False),
        sa.Column('photos', sa.JSON(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_approved', sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_hostels_name', 'hostels', ['name'])
    op.create_index('ix_hostels_city', 'hostels', ['city'])
    op.create_index('ix_hostels_location_tier', 'hostels', ['location_tier'])
    op.create_index('ix_hostels_is_approved', 'hostels', ['is_approved'])
    op.create_index('ix_hostels_created_at', 'hostels', ['created_at'])

    op.create_table(
        'complaints',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id'), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        *_timestamps(),
    )
    op.create_index('ix_complaints_id', 'complaints', ['id'])
    op.create_index('ix_complaints_user_id', 'complaints', ['user_id'])


def downgrade() -> None:
    for table in ('complaints', 'hostels', 'mess_menu', 'attendance', 'bookings', 'rooms', 'users', 'auth_accounts'):
        op.drop_table(table)
