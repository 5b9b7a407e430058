"""create scheduling tables

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

calendar_provider_enum = sa.Enum('CAL', name='calendar_provider_enum')
scheduling_type_enum = sa.Enum(
    'MANAGED', 'OFFICE_HOURS', 'GROUP_SESSION', 'ROUND_ROBIN', 'COLLECTIVE',
    name='scheduling_type_enum',
)
booking_status_enum = sa.Enum(
    'CONFIRMED', 'PENDING', 'CANCELLED', 'REJECTED', 'RESCHEDULED',
    name='booking_status_enum',
)
session_status_enum = sa.Enum(
    'SCHEDULED', 'COMPLETED', 'CANCELLED', name='session_status_enum'
)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema - users, Cal.com integration, event types, bookings, sessions."""
    op.create_table(
        'users',
        sa.Column('ulid', sa.String(26), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('first_name', sa.String(255), nullable=True),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('roles', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('ulid', name='pk_users'),
    )
    op.create_index('ix_users_user_id', 'users', ['user_id'], unique=True)

    op.create_table(
        'coach_profiles',
        sa.Column('ulid', sa.String(26), nullable=False),
        sa.Column('user_ulid', sa.String(26), nullable=False),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['user_ulid'], ['users.ulid'],
            name='fk_coach_profiles_user_ulid_users', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('ulid', name='pk_coach_profiles'),
        sa.UniqueConstraint('user_ulid', name='uq_coach_profiles_user_ulid'),
    )

    op.create_table(
        'calendar_integrations',
        sa.Column('ulid', sa.String(26), nullable=False),
        sa.Column('user_ulid', sa.String(26), nullable=False),
        sa.Column('provider', calendar_provider_enum, nullable=False),
        sa.Column('cal_managed_user_id', sa.Integer(), nullable=True),
        sa.Column('cal_username', sa.String(255), nullable=True),
        sa.Column('cal_access_token', sa.Text(), nullable=True),
        sa.Column('cal_refresh_token', sa.Text(), nullable=True),
        sa.Column('cal_access_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_zone', sa.String(64), nullable=False),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['user_ulid'], ['users.ulid'],
            name='fk_calendar_integrations_user_ulid_users', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('ulid', name='pk_calendar_integrations'),
        sa.UniqueConstraint('user_ulid', name='uq_calendar_integrations_user_ulid'),
    )
    op.create_index(
        'ix_calendar_integrations_cal_managed_user_id',
        'calendar_integrations', ['cal_managed_user_id'],
    )

    op.create_table(
        'cal_event_types',
        sa.Column('ulid', sa.String(26), nullable=False),
        sa.Column('calendar_integration_ulid', sa.String(26), nullable=False),
        sa.Column('cal_event_type_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('slug', sa.String(255), nullable=True),
        sa.Column('length_in_minutes', sa.Integer(), nullable=False),
        sa.Column('scheduling', scheduling_type_enum, nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('is_free', sa.Boolean(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('discount_percentage', sa.Float(), nullable=True),
        sa.Column('minimum_booking_notice', sa.Integer(), nullable=False),
        sa.Column('before_event_buffer', sa.Integer(), nullable=False),
        sa.Column('after_event_buffer', sa.Integer(), nullable=False),
        sa.Column('slot_interval', sa.Integer(), nullable=True),
        sa.Column('max_participants', sa.Integer(), nullable=True),
        sa.Column('locations', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('hidden', sa.Boolean(), nullable=False),
        sa.Column('organization_ulid', sa.String(26), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['calendar_integration_ulid'], ['calendar_integrations.ulid'],
            name='fk_cal_event_types_calendar_integration_ulid_calendar_integrations',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('ulid', name='pk_cal_event_types'),
    )
    op.create_index(
        'ix_cal_event_types_calendar_integration_ulid',
        'cal_event_types', ['calendar_integration_ulid'],
    )
    op.create_index(
        'ix_cal_event_types_cal_event_type_id', 'cal_event_types', ['cal_event_type_id']
    )

    op.create_table(
        'coaching_availability_schedules',
        sa.Column('ulid', sa.String(26), nullable=False),
        sa.Column('user_ulid', sa.String(26), nullable=False),
        sa.Column('cal_schedule_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('time_zone', sa.String(64), nullable=False),
        sa.Column('availability', sa.JSON(), nullable=False),
        sa.Column('overrides', sa.JSON(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['user_ulid'], ['users.ulid'],
            name='fk_coaching_availability_schedules_user_ulid_users',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('ulid', name='pk_coaching_availability_schedules'),
        sa.UniqueConstraint(
            'cal_schedule_id', name='uq_coaching_availability_schedules_cal_schedule_id'
        ),
    )
    op.create_index(
        'ix_coaching_availability_schedules_user_ulid',
        'coaching_availability_schedules', ['user_ulid'],
    )

    op.create_table(
        'cal_bookings',
        sa.Column('ulid', sa.String(26), nullable=False),
        sa.Column('user_ulid', sa.String(26), nullable=True),
        sa.Column('coach_user_ulid', sa.String(26), nullable=True),
        sa.Column('calendar_integration_ulid', sa.String(26), nullable=True),
        sa.Column('cal_booking_uid', sa.String(255), nullable=False),
        sa.Column('cal_booking_id', sa.Integer(), nullable=True),
        sa.Column('cal_event_type_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attendee_name', sa.String(255), nullable=True),
        sa.Column('attendee_email', sa.String(320), nullable=True),
        sa.Column('meeting_url', sa.Text(), nullable=True),
        sa.Column('status', booking_status_enum, nullable=False),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['user_ulid'], ['users.ulid'],
            name='fk_cal_bookings_user_ulid_users', ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['coach_user_ulid'], ['users.ulid'],
            name='fk_cal_bookings_coach_user_ulid_users', ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['calendar_integration_ulid'], ['calendar_integrations.ulid'],
            name='fk_cal_bookings_calendar_integration_ulid_calendar_integrations',
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('ulid', name='pk_cal_bookings'),
    )
    op.create_index('ix_cal_bookings_cal_booking_uid', 'cal_bookings', ['cal_booking_uid'], unique=True)
    op.create_index('ix_cal_bookings_user_ulid', 'cal_bookings', ['user_ulid'])
    op.create_index('ix_cal_bookings_coach_user_ulid', 'cal_bookings', ['coach_user_ulid'])

    op.create_table(
        'sessions',
        sa.Column('ulid', sa.String(26), nullable=False),
        sa.Column('coach_ulid', sa.String(26), nullable=False),
        sa.Column('mentee_ulid', sa.String(26), nullable=False),
        sa.Column('cal_booking_ulid', sa.String(26), nullable=True),
        sa.Column('cal_event_type_ulid', sa.String(26), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', session_status_enum, nullable=False),
        sa.Column('topic', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.String(320), nullable=True),
        sa.Column('cancelled_by_ulid', sa.String(26), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['coach_ulid'], ['users.ulid'],
            name='fk_sessions_coach_ulid_users', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['mentee_ulid'], ['users.ulid'],
            name='fk_sessions_mentee_ulid_users', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['cal_booking_ulid'], ['cal_bookings.ulid'],
            name='fk_sessions_cal_booking_ulid_cal_bookings', ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['cal_event_type_ulid'], ['cal_event_types.ulid'],
            name='fk_sessions_cal_event_type_ulid_cal_event_types', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('ulid', name='pk_sessions'),
    )
    op.create_index('ix_sessions_coach_ulid', 'sessions', ['coach_ulid'])
    op.create_index('ix_sessions_mentee_ulid', 'sessions', ['mentee_ulid'])
    op.create_index('ix_sessions_cal_booking_ulid', 'sessions', ['cal_booking_ulid'])


def downgrade() -> None:
    """Downgrade schema - drop scheduling tables and enums."""
    op.drop_table('sessions')
    op.drop_table('cal_bookings')
    op.drop_table('coaching_availability_schedules')
    op.drop_table('cal_event_types')
    op.drop_table('calendar_integrations')
    op.drop_table('coach_profiles')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        session_status_enum,
        booking_status_enum,
        scheduling_type_enum,
        calendar_provider_enum,
    ):
        enum_type.drop(bind, checkfirst=True)
