"""initial padel schema

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-03-02 09:14:27.518430

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = '3f1a9c2d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role            = sa.Enum('member', 'community_manager', 'super_admin', name='user_role')
session_status       = sa.Enum('active', 'completed', 'cancelled', name='sessionstatus')
booking_payment      = sa.Enum('pending', 'completed', 'failed', 'refunded', name='bookingpaymentstatus')
cancellation_status  = sa.Enum('pending_replacement', 'cancelled', name='cancellationstatus')
refund_status        = sa.Enum('pending', 'completed', 'failed', name='refundstatus')
payment_status       = sa.Enum('pending', 'succeeded', 'failed', 'refunded', name='paymentstatus')


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id',              sa.Integer(),     primary_key=True, autoincrement=True),
        sa.Column('email',           sa.String(255),   nullable=False),
        sa.Column('hashed_password', sa.String(255),   nullable=False),
        sa.Column('role',            user_role,        nullable=False),
        sa.Column('is_active',       sa.Boolean(),     nullable=False, server_default=sa.true()),
        sa.Column('name',            sa.String(255),   nullable=True),
        sa.Column('phone',           sa.String(50),    nullable=True),
        sa.Column('skill_level',     sa.String(60),    nullable=True),
        sa.Column('location',        sa.String(255),   nullable=True),
        sa.Column('push_token',      sa.String(255),   nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'communities',
        sa.Column('id',                  sa.Integer(),   primary_key=True, autoincrement=True),
        sa.Column('parent_community_id', sa.Integer(),   sa.ForeignKey('communities.id', ondelete='CASCADE'), nullable=True),
        sa.Column('manager_id',          sa.Integer(),   sa.ForeignKey('users.id',       ondelete='SET NULL'), nullable=True),
        sa.Column('name',                sa.String(255), nullable=False),
        sa.Column('description',         sa.Text(),      nullable=True),
        sa.Column('location',            sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_communities_parent_community_id', 'communities', ['parent_community_id'])
    op.create_index('ix_communities_manager_id',          'communities', ['manager_id'])

    op.create_table(
        'community_members',
        sa.Column('id',           sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('community_id', sa.Integer(), sa.ForeignKey('communities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id',      sa.Integer(), sa.ForeignKey('users.id',       ondelete='CASCADE'), nullable=False),
        sa.Column('joined_at',    sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('community_id', 'user_id', name='uq_community_members_community_user'),
    )
    op.create_index('ix_community_members_community_id', 'community_members', ['community_id'])
    op.create_index('ix_community_members_user_id',      'community_members', ['user_id'])

    op.create_table(
        'session_templates',
        sa.Column('id',               sa.Integer(),        primary_key=True, autoincrement=True),
        sa.Column('community_id',     sa.Integer(),        sa.ForeignKey('communities.id', ondelete='CASCADE'),  nullable=False),
        sa.Column('sub_community_id', sa.Integer(),        sa.ForeignKey('communities.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_by',       sa.Integer(),        sa.ForeignKey('users.id',       ondelete='SET NULL'), nullable=True),
        sa.Column('title',            sa.String(255),      nullable=False),
        sa.Column('description',      sa.Text(),           nullable=True),
        sa.Column('day_of_week',      sa.Integer(),        nullable=False),
        sa.Column('time_of_day',      sa.Time(),           nullable=False),
        sa.Column('duration_minutes', sa.Integer(),        nullable=False, server_default='90'),
        sa.Column('price',            sa.Numeric(10, 2),   nullable=False),
        sa.Column('max_players',      sa.Integer(),        nullable=False),
        sa.Column('free_cancellation_hours',        sa.Integer(), nullable=False, server_default='24'),
        sa.Column('allow_conditional_cancellation', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active',                      sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_session_templates_day_of_week'),
        sa.CheckConstraint('max_players > 0',             name='ck_session_templates_max_players'),
        sa.CheckConstraint('price >= 0',                  name='ck_session_templates_price'),
    )
    op.create_index('ix_session_templates_community_id', 'session_templates', ['community_id'])

    op.create_table(
        'sessions',
        sa.Column('id',                       sa.Integer(),      primary_key=True, autoincrement=True),
        sa.Column('community_id',             sa.Integer(),      sa.ForeignKey('communities.id',       ondelete='CASCADE'),  nullable=False),
        sa.Column('sub_community_id',         sa.Integer(),      sa.ForeignKey('communities.id',       ondelete='SET NULL'), nullable=True),
        sa.Column('created_from_template_id', sa.Integer(),      sa.ForeignKey('session_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_by',               sa.Integer(),      sa.ForeignKey('users.id',             ondelete='SET NULL'), nullable=True),
        sa.Column('title',                    sa.String(255),    nullable=False),
        sa.Column('description',              sa.Text(),         nullable=True),
        sa.Column('location',                 sa.String(255),    nullable=False, server_default='TBD'),
        sa.Column('google_maps_url',          sa.String(500),    nullable=True),
        sa.Column('datetime',                 sa.DateTime(timezone=True), nullable=False),
        sa.Column('price',                    sa.Numeric(10, 2), nullable=False),
        sa.Column('max_players',              sa.Integer(),      nullable=False),
        sa.Column('booked_count',             sa.Integer(),      nullable=False, server_default='0'),
        sa.Column('status',                   session_status,    nullable=False, server_default='active'),
        sa.Column('visibility',               sa.Boolean(),      nullable=False, server_default=sa.true()),
        sa.Column('free_cancellation_hours',        sa.Integer(), nullable=True, server_default='24'),
        sa.Column('allow_conditional_cancellation', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('booked_count >= 0',           name='ck_sessions_booked_count_non_negative'),
        sa.CheckConstraint('booked_count <= max_players', name='ck_sessions_booked_count_capacity'),
        sa.CheckConstraint('max_players > 0',             name='ck_sessions_max_players'),
        sa.CheckConstraint('price >= 0',                  name='ck_sessions_price'),
        sa.UniqueConstraint('created_from_template_id', 'datetime', name='uq_sessions_template_datetime'),
    )
    op.create_index('ix_sessions_community_id',             'sessions', ['community_id'])
    op.create_index('ix_sessions_created_from_template_id', 'sessions', ['created_from_template_id'])
    op.create_index('ix_sessions_datetime',                 'sessions', ['datetime'])

    op.create_table(
        'bookings',
        sa.Column('id',                        sa.Integer(),      primary_key=True, autoincrement=True),
        sa.Column('user_id',                   sa.Integer(),      sa.ForeignKey('users.id',    ondelete='CASCADE'), nullable=False),
        sa.Column('session_id',                sa.Integer(),      sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('payment_status',            booking_payment,   nullable=False),
        sa.Column('cancelled_at',              sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_status',       cancellation_status, nullable=True),
        sa.Column('refund_status',             refund_status,     nullable=True),
        sa.Column('refund_amount',             sa.Numeric(10, 2), nullable=True),
        sa.Column('replaced_by_user_id',       sa.Integer(),      sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('timestamp',                 sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at',                sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('version_id',                sa.Integer(),      nullable=False, server_default='1'),
    )
    op.create_index('ix_bookings_user_id',             'bookings', ['user_id'])
    op.create_index('ix_bookings_session_id',          'bookings', ['session_id'])
    op.create_index('ix_bookings_cancellation_status', 'bookings', ['cancellation_status'])

    op.create_table(
        'payments',
        sa.Column('id',                       sa.Integer(),      primary_key=True, autoincrement=True),
        sa.Column('booking_id',               sa.Integer(),      sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount',                   sa.Numeric(10, 2), nullable=False),
        sa.Column('platform_fee',             sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('net_amount',               sa.Numeric(10, 2), nullable=False),
        sa.Column('status',                   payment_status,    nullable=False),
        sa.Column('payment_method',           sa.String(200),    nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(200),    nullable=True),
        sa.Column('stripe_refund_id',         sa.String(200),    nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payments_booking_id',               'payments', ['booking_id'])
    op.create_index('ix_payments_stripe_payment_intent_id', 'payments', ['stripe_payment_intent_id'])


def downgrade() -> None:
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('sessions')
    op.drop_table('session_templates')
    op.drop_table('community_members')
    op.drop_table('communities')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (payment_status, refund_status, cancellation_status, booking_payment, session_status, user_role):
        enum_type.drop(bind, checkfirst=True)
