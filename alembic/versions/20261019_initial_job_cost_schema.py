"""initial_job_cost_schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

Initial schema for Job Cost Forecasting.
Adds:
- jobs: contracted work with dates and contract value
- schedule_of_values: budget lines with (area, system) grouping
- labor_cost_records, invoices, invoice_allocations: cost records
- progress_reports, progress_report_lines: approved completion snapshots
- cost_to_complete_forecasts: persisted forecasts with partial unique
  indexes over non-archived rows
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACTIVE_FORECAST = "status != 'archived'"
ACTIVE_FORECAST_WITH_REPORT = "status != 'archived' AND progress_report_id IS NOT NULL"


def upgrade() -> None:
    """Upgrade schema."""

    # =========================================================================
    # 1. Create jobs table
    # =========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('job_number', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('contract_value_cents', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_jobs_id', 'jobs', ['id'], unique=False)
    op.create_index('ix_jobs_uuid', 'jobs', ['uuid'], unique=True)
    op.create_index('ix_jobs_job_number', 'jobs', ['job_number'], unique=True)

    # =========================================================================
    # 2. Create schedule_of_values table
    # =========================================================================
    op.create_table(
        'schedule_of_values',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.String(length=20), nullable=True),
        sa.Column('cost_code', sa.String(length=50), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('area', sa.String(length=100), nullable=True),
        sa.Column('system', sa.String(length=100), nullable=True),
        sa.Column('phase', sa.String(length=100), nullable=True),
        # Budget (in cents)
        sa.Column('budget_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('budget_value_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sort_order', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_schedule_of_values_id', 'schedule_of_values', ['id'], unique=False)
    op.create_index('ix_schedule_of_values_uuid', 'schedule_of_values', ['uuid'], unique=True)
    op.create_index('ix_schedule_of_values_job_id', 'schedule_of_values', ['job_id'], unique=False)
    op.create_index('ix_schedule_of_values_cost_code', 'schedule_of_values', ['cost_code'], unique=False)
    op.create_index('ix_schedule_of_values_area', 'schedule_of_values', ['area'], unique=False)
    op.create_index('ix_schedule_of_values_system', 'schedule_of_values', ['system'], unique=False)

    # =========================================================================
    # 3. Create labor_cost_records table
    # =========================================================================
    op.create_table(
        'labor_cost_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('worker_name', sa.String(length=200), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True, server_default='pending'),
        sa.Column('cost_code', sa.String(length=50), nullable=True),
        sa.Column('budget_line_id', sa.Integer(), nullable=True),
        sa.Column('area', sa.String(length=100), nullable=True),
        sa.Column('system', sa.String(length=100), nullable=True),
        sa.Column('total_hours', sa.Float(), nullable=True, server_default='0'),
        sa.Column('labor_cost_cents', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('burden_rate', sa.Float(), nullable=True, server_default='0.35'),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
        sa.ForeignKeyConstraint(['budget_line_id'], ['schedule_of_values.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_labor_cost_records_id', 'labor_cost_records', ['id'], unique=False)
    op.create_index('ix_labor_cost_records_uuid', 'labor_cost_records', ['uuid'], unique=True)
    op.create_index('ix_labor_cost_records_job_id', 'labor_cost_records', ['job_id'], unique=False)
    op.create_index('ix_labor_cost_records_work_date', 'labor_cost_records', ['work_date'], unique=False)
    op.create_index('ix_labor_cost_records_status', 'labor_cost_records', ['status'], unique=False)
    op.create_index('ix_labor_cost_records_cost_code', 'labor_cost_records', ['cost_code'], unique=False)
    op.create_index('ix_labor_cost_records_budget_line_id', 'labor_cost_records', ['budget_line_id'], unique=False)

    # =========================================================================
    # 4. Create invoices and invoice_allocations tables
    # =========================================================================
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=100), nullable=False),
        sa.Column('vendor_name', sa.String(length=200), nullable=True),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=True, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_invoices_id', 'invoices', ['id'], unique=False)
    op.create_index('ix_invoices_uuid', 'invoices', ['uuid'], unique=True)
    op.create_index('ix_invoices_job_id', 'invoices', ['job_id'], unique=False)
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=False)
    op.create_index('ix_invoices_invoice_date', 'invoices', ['invoice_date'], unique=False)

    op.create_table(
        'invoice_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('cost_code', sa.String(length=50), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('budget_line_id', sa.Integer(), nullable=True),
        sa.Column('area', sa.String(length=100), nullable=True),
        sa.Column('system', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['budget_line_id'], ['schedule_of_values.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_invoice_allocations_id', 'invoice_allocations', ['id'], unique=False)
    op.create_index('ix_invoice_allocations_invoice_id', 'invoice_allocations', ['invoice_id'], unique=False)
    op.create_index('ix_invoice_allocations_cost_code', 'invoice_allocations', ['cost_code'], unique=False)
    op.create_index('ix_invoice_allocations_budget_line_id', 'invoice_allocations', ['budget_line_id'], unique=False)

    # =========================================================================
    # 5. Create progress_reports and progress_report_lines tables
    # =========================================================================
    op.create_table(
        'progress_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('report_number', sa.String(length=50), nullable=False),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=True),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True, server_default='draft'),
        # Workflow audit
        sa.Column('submitted_by', sa.String(length=100), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=100), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('invoiced_by', sa.String(length=100), nullable=True),
        sa.Column('invoiced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_progress_reports_id', 'progress_reports', ['id'], unique=False)
    op.create_index('ix_progress_reports_uuid', 'progress_reports', ['uuid'], unique=True)
    op.create_index('ix_progress_reports_job_id', 'progress_reports', ['job_id'], unique=False)
    op.create_index('ix_progress_reports_report_date', 'progress_reports', ['report_date'], unique=False)
    op.create_index('ix_progress_reports_status', 'progress_reports', ['status'], unique=False)

    op.create_table(
        'progress_report_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('report_id', sa.Integer(), nullable=False),
        sa.Column('area', sa.String(length=100), nullable=True),
        sa.Column('system', sa.String(length=100), nullable=True),
        # Completion to date (in cents and percent)
        sa.Column('budget_value_cents', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('submitted_ctd_cents', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('submitted_ctd_percent', sa.Float(), nullable=True, server_default='0'),
        sa.Column('approved_ctd_cents', sa.Integer(), nullable=True),
        sa.Column('approved_ctd_percent', sa.Float(), nullable=True, server_default='0'),
        sa.Column('previous_ctd_cents', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('previous_ctd_percent', sa.Float(), nullable=True, server_default='0'),
        sa.ForeignKeyConstraint(['report_id'], ['progress_reports.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_progress_report_lines_id', 'progress_report_lines', ['id'], unique=False)
    op.create_index('ix_progress_report_lines_report_id', 'progress_report_lines', ['report_id'], unique=False)

    # =========================================================================
    # 6. Create cost_to_complete_forecasts table
    # =========================================================================
    op.create_table(
        'cost_to_complete_forecasts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('forecast_period', sa.String(length=50), nullable=False),
        sa.Column('month_number', sa.Integer(), nullable=False),
        sa.Column('progress_report_id', sa.Integer(), nullable=True),
        sa.Column('progress_report_number', sa.String(length=50), nullable=True),
        sa.Column('progress_report_date', sa.Date(), nullable=True),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True, server_default='draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        # Lifecycle audit
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('submitted_by', sa.String(length=100), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('archived_by', sa.String(length=100), nullable=True),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
        sa.ForeignKeyConstraint(['progress_report_id'], ['progress_reports.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_cost_to_complete_forecasts_id', 'cost_to_complete_forecasts', ['id'], unique=False)
    op.create_index('ix_cost_to_complete_forecasts_uuid', 'cost_to_complete_forecasts', ['uuid'], unique=True)
    op.create_index('ix_cost_to_complete_forecasts_job_id', 'cost_to_complete_forecasts', ['job_id'], unique=False)
    op.create_index('ix_cost_to_complete_forecasts_status', 'cost_to_complete_forecasts', ['status'], unique=False)
    op.create_index(
        'ix_cost_to_complete_forecasts_progress_report_id', 'cost_to_complete_forecasts',
        ['progress_report_id'], unique=False
    )
    # One active forecast per (job, month) and per (job, progress report)
    op.create_index(
        'uq_active_forecast_job_month', 'cost_to_complete_forecasts',
        ['job_id', 'month_number'], unique=True,
        sqlite_where=sa.text(ACTIVE_FORECAST),
        postgresql_where=sa.text(ACTIVE_FORECAST),
    )
    op.create_index(
        'uq_active_forecast_progress_report', 'cost_to_complete_forecasts',
        ['job_id', 'progress_report_id'], unique=True,
        sqlite_where=sa.text(ACTIVE_FORECAST_WITH_REPORT),
        postgresql_where=sa.text(ACTIVE_FORECAST_WITH_REPORT),
    )


def downgrade() -> None:
    """Downgrade schema."""

    # Drop cost_to_complete_forecasts
    op.drop_index('uq_active_forecast_progress_report', table_name='cost_to_complete_forecasts')
    op.drop_index('uq_active_forecast_job_month', table_name='cost_to_complete_forecasts')
    op.drop_index('ix_cost_to_complete_forecasts_progress_report_id', table_name='cost_to_complete_forecasts')
    op.drop_index('ix_cost_to_complete_forecasts_status', table_name='cost_to_complete_forecasts')
    op.drop_index('ix_cost_to_complete_forecasts_job_id', table_name='cost_to_complete_forecasts')
    op.drop_index('ix_cost_to_complete_forecasts_uuid', table_name='cost_to_complete_forecasts')
    op.drop_index('ix_cost_to_complete_forecasts_id', table_name='cost_to_complete_forecasts')
    op.drop_table('cost_to_complete_forecasts')

    # Drop progress reports
    op.drop_index('ix_progress_report_lines_report_id', table_name='progress_report_lines')
    op.drop_index('ix_progress_report_lines_id', table_name='progress_report_lines')
    op.drop_table('progress_report_lines')
    op.drop_index('ix_progress_reports_status', table_name='progress_reports')
    op.drop_index('ix_progress_reports_report_date', table_name='progress_reports')
    op.drop_index('ix_progress_reports_job_id', table_name='progress_reports')
    op.drop_index('ix_progress_reports_uuid', table_name='progress_reports')
    op.drop_index('ix_progress_reports_id', table_name='progress_reports')
    op.drop_table('progress_reports')

    # Drop invoices
    op.drop_index('ix_invoice_allocations_budget_line_id', table_name='invoice_allocations')
    op.drop_index('ix_invoice_allocations_cost_code', table_name='invoice_allocations')
    op.drop_index('ix_invoice_allocations_invoice_id', table_name='invoice_allocations')
    op.drop_index('ix_invoice_allocations_id', table_name='invoice_allocations')
    op.drop_table('invoice_allocations')
    op.drop_index('ix_invoices_invoice_date', table_name='invoices')
    op.drop_index('ix_invoices_invoice_number', table_name='invoices')
    op.drop_index('ix_invoices_job_id', table_name='invoices')
    op.drop_index('ix_invoices_uuid', table_name='invoices')
    op.drop_index('ix_invoices_id', table_name='invoices')
    op.drop_table('invoices')

    # Drop labor_cost_records
    op.drop_index('ix_labor_cost_records_budget_line_id', table_name='labor_cost_records')
    op.drop_index('ix_labor_cost_records_cost_code', table_name='labor_cost_records')
    op.drop_index('ix_labor_cost_records_status', table_name='labor_cost_records')
    op.drop_index('ix_labor_cost_records_work_date', table_name='labor_cost_records')
    op.drop_index('ix_labor_cost_records_job_id', table_name='labor_cost_records')
    op.drop_index('ix_labor_cost_records_uuid', table_name='labor_cost_records')
    op.drop_index('ix_labor_cost_records_id', table_name='labor_cost_records')
    op.drop_table('labor_cost_records')

    # Drop schedule_of_values
    op.drop_index('ix_schedule_of_values_system', table_name='schedule_of_values')
    op.drop_index('ix_schedule_of_values_area', table_name='schedule_of_values')
    op.drop_index('ix_schedule_of_values_cost_code', table_name='schedule_of_values')
    op.drop_index('ix_schedule_of_values_job_id', table_name='schedule_of_values')
    op.drop_index('ix_schedule_of_values_uuid', table_name='schedule_of_values')
    op.drop_index('ix_schedule_of_values_id', table_name='schedule_of_values')
    op.drop_table('schedule_of_values')

    # Drop jobs
    op.drop_index('ix_jobs_job_number', table_name='jobs')
    op.drop_index('ix_jobs_uuid', table_name='jobs')
    op.drop_index('ix_jobs_id', table_name='jobs')
    op.drop_table('jobs')
