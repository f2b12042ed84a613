"""
Cost Breakdown Service - Monthly labor and invoice cost by dimension.

Groups approved labor and invoice allocations by calendar month and one of
cost code, area, system or phase. Area, system and phase come from the SOV
line each record is attributed to; unattributed records land in 'Unassigned'.

The monthly cost report lays the same records out one row per month, next
to the approved progress that was earned by the end of that month.
"""
from datetime import date
from typing import Optional
import logging

import pandas as pd
from sqlalchemy.orm import Session

from jobcost.config import get_config
from jobcost.domain.entities import UNASSIGNED
from jobcost.domain.exceptions import ValidationError
from jobcost.infrastructure.repositories import JobRepository, ProgressReportRepository
from .cost_aggregation_service import CostAggregationService
from .progress_reconciler import end_of_day

logger = logging.getLogger(__name__)

BREAKDOWN_DIMENSIONS = ("cost_code", "area", "system", "phase")
FRAME_COLUMNS = ['period', 'group', 'source', 'amount_cents', 'hours', 'matched']


class CostBreakdownService:
    """Monthly cost pivot and monthly cost report for one job."""

    def __init__(self, session: Session, config=None):
        self.session = session
        self.config = config or get_config()
        self.job_repo = JobRepository(session)
        self.report_repo = ProgressReportRepository(session)
        self.aggregator = CostAggregationService(session, self.config)

    def _records_frame(self, job_id: int, cutoff, group_by: str) -> pd.DataFrame:
        """One row per cost record, attributed once by the aggregation pass."""
        index = self.aggregator.load_group_index(job_id)
        cost_map = self.aggregator.aggregate_costs(job_id, cutoff, index)

        rows = []
        for result in cost_map.matches:
            record = result.record
            if group_by == "cost_code":
                group = record.normalized_cost_code or UNASSIGNED
            else:
                line = index.line(result.budget_line_id) if result.matched else None
                group = (getattr(line, group_by) if line else None) or UNASSIGNED
            rows.append({
                'period': f"{record.record_date:%Y-%m}",
                'group': group,
                'source': record.source.value,
                'amount_cents': record.amount_cents,
                'hours': record.hours,
                'matched': result.matched,
            })
        return pd.DataFrame(rows, columns=FRAME_COLUMNS)

    def breakdown(self, job_id: int, group_by: str = "cost_code", as_of_date: Optional[date] = None) -> dict:
        """
        Build the monthly breakdown.

        Args:
            job_id: Job identifier
            group_by: One of cost_code, area, system, phase
            as_of_date: Optional inclusive cutoff, defaults to today

        Returns:
            Dict with labor and invoice rows per (period, group), a
            group x period pivot of total cost, and totals per period
        """
        if group_by not in BREAKDOWN_DIMENSIONS:
            raise ValidationError("group_by", f"must be one of {', '.join(BREAKDOWN_DIMENSIONS)}")

        self.job_repo.get_or_raise(job_id)
        as_of_date = as_of_date or date.today()
        df = self._records_frame(job_id, end_of_day(as_of_date), group_by)

        result = {
            'job_id': job_id,
            'group_by': group_by,
            'as_of_date': as_of_date.isoformat(),
            'periods': [],
            'labor_costs': [],
            'invoice_costs': [],
            'pivot': {},
            'totals_by_period': {},
        }
        if df.empty:
            return result

        labor = df[df['source'] == 'labor'].groupby(['period', 'group']).agg(
            total_cost=('amount_cents', 'sum'),
            total_hours=('hours', 'sum'),
            entries=('amount_cents', 'size'),
        ).reset_index()
        invoices = df[df['source'] == 'invoice'].groupby(['period', 'group']).agg(
            total_amount=('amount_cents', 'sum'),
            allocations=('amount_cents', 'size'),
        ).reset_index()

        pivot = df.pivot_table(
            index='group', columns='period', values='amount_cents', aggfunc='sum', fill_value=0
        )
        totals = df.groupby('period')['amount_cents'].sum()

        result['periods'] = sorted(df['period'].unique().tolist())
        result['labor_costs'] = [
            {
                'period': r.period,
                'group': r.group,
                'total_cost': int(r.total_cost),
                'total_hours': float(r.total_hours),
                'entries': int(r.entries),
            }
            for r in labor.itertuples(index=False)
        ]
        result['invoice_costs'] = [
            {
                'period': r.period,
                'group': r.group,
                'total_amount': int(r.total_amount),
                'allocations': int(r.allocations),
            }
            for r in invoices.itertuples(index=False)
        ]
        result['pivot'] = {
            group: {period: int(value) for period, value in row.items()}
            for group, row in pivot.iterrows()
        }
        result['totals_by_period'] = {period: int(value) for period, value in totals.items()}
        return result

    def monthly_cost_report(self, job_id: int, as_of_date: Optional[date] = None) -> dict:
        """
        Cost and earned value month by month.

        Months run contiguously from the first month with cost or an
        approved report through the last one, bounded by as_of_date.
        Earned to date is the approved CTD of the latest approved or
        invoiced report dated on or before the month's end.

        Returns:
            Dict with one row per month and job totals
        """
        self.job_repo.get_or_raise(job_id)
        as_of_date = as_of_date or date.today()
        df = self._records_frame(job_id, end_of_day(as_of_date), "cost_code")
        reports = [r for r in self.report_repo.get_approved_by_job(job_id) if r.report_date <= as_of_date]

        result = {
            'job_id': job_id,
            'as_of_date': as_of_date.isoformat(),
            'months': [],
            'totals': {
                'labor_cost': 0,
                'invoice_cost': 0,
                'total_cost': 0,
                'labor_hours': 0.0,
                'unattributed_cost': 0,
                'earned_to_date': 0,
            },
        }

        periods = set(df['period']) | {f"{r.report_date:%Y-%m}" for r in reports}
        if not periods:
            return result

        months = pd.period_range(min(periods), max(periods), freq='M').strftime('%Y-%m').tolist()

        def monthly(frame, column='amount_cents', fill=0):
            return frame.groupby('period')[column].sum().reindex(months, fill_value=fill)

        labor = monthly(df[df['source'] == 'labor'])
        invoices = monthly(df[df['source'] == 'invoice'])
        hours = monthly(df, 'hours', 0.0)
        unattributed = monthly(df[~df['matched'].astype(bool)])

        cumulative = 0
        earned_before = 0
        position = 0
        latest = None
        for month in months:
            while position < len(reports) and f"{reports[position].report_date:%Y-%m}" <= month:
                latest = reports[position]
                position += 1
            earned = latest.summary['approved_ctd_cents'] if latest else 0

            labor_cost = int(labor[month])
            invoice_cost = int(invoices[month])
            cumulative += labor_cost + invoice_cost
            result['months'].append({
                'period': month,
                'labor_cost': labor_cost,
                'invoice_cost': invoice_cost,
                'total_cost': labor_cost + invoice_cost,
                'labor_hours': float(hours[month]),
                'unattributed_cost': int(unattributed[month]),
                'cumulative_cost': cumulative,
                'progress_report_number': latest.report_number if latest else None,
                'earned_to_date': earned,
                'earned_this_period': earned - earned_before,
            })
            earned_before = earned

        totals = result['totals']
        for row in result['months']:
            totals['labor_cost'] += row['labor_cost']
            totals['invoice_cost'] += row['invoice_cost']
            totals['total_cost'] += row['total_cost']
            totals['labor_hours'] += row['labor_hours']
            totals['unattributed_cost'] += row['unattributed_cost']
        totals['earned_to_date'] = earned_before
        logger.debug(f"Job {job_id} monthly cost report: {len(months)} months through {as_of_date}")
        return result
