"""Create workshop lifecycle tables

Revision ID: w001_create_workshop_tables
Revises:
Create Date: 2026-10-18

This migration creates the tables for the workshop lifecycle:
- workshops: Workshop definition, pricing and the seat counter
- external_people: Non-member attendees keyed by email
- workshop_waitlist_entries: Invitation pool
- workshop_registrations: One row per attendee per workshop
- payment_sessions: Cached checkout artifacts
- workshop_refunds: One refund per registration
- processed_webhook_events: Processor callbacks already applied
- workshop_interests: Interest in draft workshops
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'w001_create_workshop_tables'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_REGISTRATION = "status IN ('invited', 'confirmed', 'pre_checked')"


def upgrade() -> None:
    # Create workshops table
    op.create_table(
        'workshops',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),

        # Capacity & batching
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('batch_size', sa.Integer(), nullable=False),
        sa.Column('cool_off_days', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('last_batch_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('occupied_seats', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('refund_window_days', sa.Integer(), nullable=True),

        # Pricing
        sa.Column('price_member', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_non_member', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),

        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint(
            "status IN ('draft', 'published', 'finished', 'cancelled')",
            name='check_workshop_status',
        ),
        sa.CheckConstraint('capacity > 0', name='check_workshop_capacity_positive'),
        sa.CheckConstraint('batch_size > 0', name='check_workshop_batch_size_positive'),
        sa.CheckConstraint(
            'occupied_seats >= 0 AND occupied_seats <= capacity',
            name='check_workshop_occupied_seats',
        ),
        sa.CheckConstraint('ends_at > starts_at', name='check_workshop_dates'),
    )
    op.create_index('ix_workshops_status', 'workshops', ['status'])
    op.create_index('ix_workshops_starts_at', 'workshops', ['starts_at'])

    # Create external_people table
    op.create_table(
        'external_people',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_external_people_email', 'external_people', ['email'], unique=True)

    # Create workshop_waitlist_entries table
    op.create_table(
        'workshop_waitlist_entries',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('member_id', sa.String(), nullable=True),  # No FK - members live in the auth service
        sa.Column('external_person_id', sa.String(), sa.ForeignKey('external_people.id'), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('last_no_show_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_workshop_id', sa.String(), sa.ForeignKey('workshops.id'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),

        sa.CheckConstraint(
            '(member_id IS NULL) <> (external_person_id IS NULL)',
            name='check_waitlist_single_identity',
        ),
        sa.CheckConstraint(
            "status IN ('waiting', 'completed', 'withdrawn')",
            name='check_waitlist_status',
        ),
    )
    op.create_index('ix_workshop_waitlist_entries_member_id', 'workshop_waitlist_entries', ['member_id'])
    op.create_index('ix_workshop_waitlist_entries_external_person_id', 'workshop_waitlist_entries', ['external_person_id'])
    op.create_index('ix_workshop_waitlist_entries_status', 'workshop_waitlist_entries', ['status'])
    op.create_index(
        'idx_waitlist_entries_ordering',
        'workshop_waitlist_entries',
        ['priority', 'joined_at'],
        postgresql_where=sa.text("status = 'waiting'"),
    )

    # Create workshop_registrations table
    op.create_table(
        'workshop_registrations',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('workshop_id', sa.String(), sa.ForeignKey('workshops.id'), nullable=False),
        sa.Column('member_id', sa.String(), nullable=True),
        sa.Column('external_person_id', sa.String(), sa.ForeignKey('external_people.id'), nullable=True),
        sa.Column('waitlist_entry_id', sa.String(), sa.ForeignKey('workshop_waitlist_entries.id'), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='invited'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('invited_at', sa.DateTime(timezone=True), nullable=True),

        # Payment
        sa.Column('payment_token', sa.String(64), nullable=True),
        sa.Column('payment_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_session_id', sa.String(), nullable=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=True),
        sa.Column('amount_paid', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),

        # Onboarding
        sa.Column('onboarding_token', sa.String(64), nullable=True),
        sa.Column('onboarding_token_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('onboarding_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('insurance_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('media_consent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('signature_url', sa.String(1024), nullable=True),

        # Attendance
        sa.Column('checked_in_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attendance_marked_by', sa.String(), nullable=True),
        sa.Column('attendance_notes', sa.Text(), nullable=True),
        sa.Column('follow_up_sent_at', sa.DateTime(timezone=True), nullable=True),

        # Exit
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint(
            '(member_id IS NULL) <> (external_person_id IS NULL)',
            name='check_registration_single_attendee',
        ),
        sa.CheckConstraint(
            "status IN ('invited', 'confirmed', 'pre_checked', 'attended', "
            "'no_show', 'cancelled', 'refunded')",
            name='check_registration_status',
        ),
    )
    op.create_index('ix_workshop_registrations_workshop_id', 'workshop_registrations', ['workshop_id'])
    op.create_index('ix_workshop_registrations_member_id', 'workshop_registrations', ['member_id'])
    op.create_index('ix_workshop_registrations_external_person_id', 'workshop_registrations', ['external_person_id'])
    op.create_index('ix_workshop_registrations_email', 'workshop_registrations', ['email'])
    op.create_index('ix_workshop_registrations_status', 'workshop_registrations', ['status'])
    op.create_index('ix_workshop_registrations_payment_token', 'workshop_registrations', ['payment_token'], unique=True)
    op.create_index('ix_workshop_registrations_payment_intent_id', 'workshop_registrations', ['payment_intent_id'])
    op.create_index('ix_workshop_registrations_onboarding_token', 'workshop_registrations', ['onboarding_token'], unique=True)
    op.create_index(
        'uq_active_member_registration',
        'workshop_registrations',
        ['workshop_id', 'member_id'],
        unique=True,
        postgresql_where=sa.text(ACTIVE_REGISTRATION),
    )
    op.create_index(
        'uq_active_external_registration',
        'workshop_registrations',
        ['workshop_id', 'external_person_id'],
        unique=True,
        postgresql_where=sa.text(ACTIVE_REGISTRATION),
    )

    # Create payment_sessions table
    op.create_table(
        'payment_sessions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('intent_key', sa.String(255), nullable=False),
        sa.Column('generation', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('artifact_id', sa.String(255), nullable=False),
        sa.Column('artifact_ids', sa.JSON(), nullable=False),
        sa.Column('client_secret', sa.String(255), nullable=True),
        sa.Column('amounts', sa.JSON(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('retired_reason', sa.String(50), nullable=True),

        sa.UniqueConstraint('user_id', 'intent_key', 'generation', name='uq_payment_session_generation'),
    )
    op.create_index('ix_payment_sessions_user_id', 'payment_sessions', ['user_id'])
    op.create_index('ix_payment_sessions_artifact_id', 'payment_sessions', ['artifact_id'])
    op.create_index('ix_payment_sessions_expires_at', 'payment_sessions', ['expires_at'])
    op.create_index('ix_payment_sessions_is_used', 'payment_sessions', ['is_used'])

    # Create workshop_refunds table
    op.create_table(
        'workshop_refunds',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('registration_id', sa.String(), sa.ForeignKey('workshop_registrations.id'), nullable=False),
        sa.Column('workshop_id', sa.String(), sa.ForeignKey('workshops.id'), nullable=False),
        sa.Column('provider_code', sa.String(50), nullable=False, server_default='stripe'),
        sa.Column('provider_refund_id', sa.String(255), nullable=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=False, unique=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('reason', sa.String(100), nullable=False),
        sa.Column('reason_details', sa.Text(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('failure_code', sa.String(100), nullable=True),
        sa.Column('failure_message', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.String(), nullable=True),
        sa.Column('processed_by', sa.String(), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name='check_refund_status',
        ),
        sa.CheckConstraint('amount >= 0', name='check_refund_amount'),
    )
    op.create_index('ix_workshop_refunds_registration_id', 'workshop_refunds', ['registration_id'], unique=True)
    op.create_index('ix_workshop_refunds_workshop_id', 'workshop_refunds', ['workshop_id'])
    op.create_index('ix_workshop_refunds_provider_refund_id', 'workshop_refunds', ['provider_refund_id'])
    op.create_index('ix_workshop_refunds_status', 'workshop_refunds', ['status'])

    # Create processed_webhook_events table
    op.create_table(
        'processed_webhook_events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('provider_code', sa.String(50), nullable=False, server_default='stripe'),
        sa.Column('provider_event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('object_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='processing'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        'ix_processed_webhook_events_provider_event_id',
        'processed_webhook_events',
        ['provider_event_id'],
        unique=True,
    )

    # Create workshop_interests table
    op.create_table(
        'workshop_interests',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('workshop_id', sa.String(), sa.ForeignKey('workshops.id'), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('workshop_id', 'user_id', name='uq_workshop_interest_user'),
    )
    op.create_index('ix_workshop_interests_workshop_id', 'workshop_interests', ['workshop_id'])


def downgrade() -> None:
    op.drop_table('workshop_interests')
    op.drop_table('processed_webhook_events')
    op.drop_table('workshop_refunds')
    op.drop_table('payment_sessions')
    op.drop_table('workshop_registrations')
    op.drop_table('workshop_waitlist_entries')
    op.drop_table('external_people')
    op.drop_table('workshops')
