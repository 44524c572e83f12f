"""Initial schema for the common meal service

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Adds:
- reference data: users, households, inhabitants, allergy_types, allergies
- seasons and ticket_prices
- cooking_teams and cooking_team_assignments
- dinner_events, dinner_event_allergens, orders and order_history
- billing: billing_period_summaries, invoices, transactions
- job_runs
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Reference data
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'households',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('heynabo_id', sa.Integer(), nullable=False, unique=True),
        sa.Column('pbs_id', sa.Integer(), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('moved_in_date', sa.Date(), nullable=True),
        sa.Column('move_out_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'inhabitants',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('heynabo_id', sa.Integer(), nullable=False, unique=True),
        sa.Column('household_id', sa.Integer(), sa.ForeignKey('households.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('picture_url', sa.String(500), nullable=True),
        sa.Column('dinner_preferences', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_inhabitants_household_id', 'inhabitants', ['household_id'])

    op.create_table(
        'allergy_types',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'allergies',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('inhabitant_id', sa.Integer(), sa.ForeignKey('inhabitants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('allergy_type_id', sa.Integer(), sa.ForeignKey('allergy_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('inhabitant_comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('inhabitant_id', 'allergy_type_id', name='uq_allergies_inhabitant_type'),
    )

    # Season calendar
    op.create_table(
        'seasons',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('short_name', sa.String(50), nullable=False, unique=True),
        sa.Column('season_start', sa.Date(), nullable=False),
        sa.Column('season_end', sa.Date(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('cooking_days', sa.JSON(), nullable=False),
        sa.Column('holidays', sa.JSON(), nullable=False),
        sa.Column('ticket_is_cancellable_days_before', sa.Integer(), nullable=False, server_default='8'),
        sa.Column('dining_mode_is_editable_minutes_before', sa.Integer(), nullable=False, server_default='90'),
        sa.Column('consecutive_cooking_days', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'ticket_prices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('season_id', sa.Integer(), sa.ForeignKey('seasons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ticket_type', sa.String(20), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('maximum_age_limit', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_ticket_prices_season_id', 'ticket_prices', ['season_id'])

    # Rotation
    op.create_table(
        'cooking_teams',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('season_id', sa.Integer(), sa.ForeignKey('seasons.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('affinity', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('season_id', 'name', name='uq_cooking_teams_season_name'),
    )

    op.create_table(
        'cooking_team_assignments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('cooking_team_id', sa.Integer(), sa.ForeignKey('cooking_teams.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('inhabitant_id', sa.Integer(), sa.ForeignKey('inhabitants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('allocation_percentage', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('affinity', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('cooking_team_id', 'inhabitant_id', name='uq_team_assignments_team_inhabitant'),
    )

    # Dinners and orders
    op.create_table(
        'dinner_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('menu_title', sa.String(255), nullable=False, server_default='TBD'),
        sa.Column('menu_description', sa.Text(), nullable=True),
        sa.Column('menu_picture_url', sa.String(500), nullable=True),
        sa.Column('state', sa.String(20), nullable=False, server_default='SCHEDULED'),
        sa.Column('total_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('chef_id', sa.Integer(), sa.ForeignKey('inhabitants.id', ondelete='SET NULL'), nullable=True),
        sa.Column('cooking_team_id', sa.Integer(), sa.ForeignKey('cooking_teams.id', ondelete='SET NULL'), nullable=True),
        sa.Column('season_id', sa.Integer(), sa.ForeignKey('seasons.id', ondelete='SET NULL'), nullable=True),
        sa.Column('heynabo_event_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('idx_dinner_events_date', 'dinner_events', ['date'])
    op.create_index('idx_dinner_events_season_date', 'dinner_events', ['season_id', 'date'])

    op.create_table(
        'dinner_event_allergens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('dinner_event_id', sa.Integer(), sa.ForeignKey('dinner_events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('allergy_type_id', sa.Integer(), sa.ForeignKey('allergy_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('dinner_event_id', 'allergy_type_id', name='uq_dinner_event_allergens_event_type'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('dinner_event_id', sa.Integer(), sa.ForeignKey('dinner_events.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('inhabitant_id', sa.Integer(), sa.ForeignKey('inhabitants.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('booked_by_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('ticket_price_id', sa.Integer(), sa.ForeignKey('ticket_prices.id', ondelete='SET NULL'), nullable=True),
        sa.Column('price_at_booking', sa.Integer(), nullable=True),
        sa.Column('dinner_mode', sa.String(20), nullable=False, server_default='DINEIN'),
        sa.Column('state', sa.String(20), nullable=False, server_default='BOOKED'),
        sa.Column('is_guest_ticket', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    # One live ticket per inhabitant per dinner
    op.create_index(
        'uq_orders_inhabitant_dinner_active',
        'orders',
        ['inhabitant_id', 'dinner_event_id'],
        unique=True,
        postgresql_where=sa.text("is_guest_ticket = false AND state <> 'CANCELLED'"),
        sqlite_where=sa.text("is_guest_ticket = 0 AND state <> 'CANCELLED'"),
    )
    op.create_index('idx_orders_dinner_state', 'orders', ['dinner_event_id', 'state'])

    op.create_table(
        'order_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('audit_data', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('inhabitant_id', sa.Integer(), nullable=True),
        sa.Column('dinner_event_id', sa.Integer(), nullable=True),
        sa.Column('season_id', sa.Integer(), nullable=True),
    )
    op.create_index('idx_order_history_order', 'order_history', ['order_id'])
    op.create_index('idx_order_history_dinner_event', 'order_history', ['dinner_event_id'])
    op.create_index('idx_order_history_inhabitant', 'order_history', ['inhabitant_id'])

    # Billing
    op.create_table(
        'billing_period_summaries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('billing_period', sa.String(7), nullable=False, unique=True),
        sa.Column('share_token', sa.String(64), nullable=False, unique=True),
        sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('household_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ticket_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cutoff_date', sa.Date(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('cutoff_date', sa.Date(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('billing_period', sa.String(7), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('household_id', sa.Integer(), sa.ForeignKey('households.id', ondelete='SET NULL'), nullable=True),
        sa.Column(
            'billing_period_summary_id',
            sa.Integer(),
            sa.ForeignKey('billing_period_summaries.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('pbs_id', sa.Integer(), nullable=False),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('billing_period', 'pbs_id', name='uq_invoices_period_pbs'),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('order_snapshot', sa.JSON(), nullable=False),
        sa.Column('user_snapshot', sa.JSON(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('user_email_handle', sa.String(255), nullable=False),
        sa.Column('billing_period', sa.String(7), nullable=False),
        sa.Column('pbs_id', sa.Integer(), nullable=False),
        sa.Column('household_id', sa.Integer(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('idx_transactions_period_pbs', 'transactions', ['billing_period', 'pbs_id'])

    # Jobs
    op.create_table(
        'job_runs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='RUNNING'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('result_summary', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('triggered_by', sa.String(100), nullable=False, server_default='SCHEDULER'),
    )
    op.create_index('idx_job_runs_type_started', 'job_runs', ['job_type', 'started_at'])


def downgrade() -> None:
    op.drop_table('job_runs')
    op.drop_table('transactions')
    op.drop_table('invoices')
    op.drop_table('billing_period_summaries')
    op.drop_table('order_history')
    op.drop_table('orders')
    op.drop_table('dinner_event_allergens')
    op.drop_table('dinner_events')
    op.drop_table('cooking_team_assignments')
    op.drop_table('cooking_teams')
    op.drop_table('ticket_prices')
    op.drop_table('seasons')
    op.drop_table('allergies')
    op.drop_table('allergy_types')
    op.drop_table('inhabitants')
    op.drop_table('households')
    op.drop_table('users')
