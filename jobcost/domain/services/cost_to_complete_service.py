"""
Cost-to-Complete Service - Fresh earned value reports per period.

Pipeline for one period:
1. Resolve the period to an approved progress report and cutoff
2. Aggregate cost at the cutoff (and at the previous report's cutoff)
3. Sum line-level cost into (Area, System) groups
4. Compute group metrics and roll up to the project

Project cost to date is always max(flat total, attributed total), in this
report and in the earned-vs-burned analysis alike.
"""
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from jobcost.config import get_config
from jobcost.domain.entities import (
    CostToCompleteReport,
    EVMParameters,
    GroupKey,
    LineCost,
    LineMetrics,
    ProjectMetrics,
    ResolvedPeriod,
)
from jobcost.domain.exceptions import InvalidPeriodError, ValidationError
from jobcost.infrastructure.repositories import JobRepository
from .budget_grouping import BudgetGroupIndex
from .cost_aggregation_service import CostAggregationService
from .evm_calculator import compute_line_metrics, roll_up
from .progress_reconciler import ProgressReconciler, end_of_day, progress_inputs

logger = logging.getLogger(__name__)

GROUP_BY_OPTIONS = ("flat", "area", "system")


def _percent(part: float, whole: float) -> float:
    return (part / whole * 100) if whole else 0.0


# =============================================================================
# Line Items and Summary (pure)
# =============================================================================

def apply_forecast_values(item: dict, final_cost: int, final_value: int) -> dict:
    """Set forecasted final cost/value on a line item and recompute its fee."""
    item['forecasted_final_cost'] = int(final_cost)
    item['forecasted_final_value'] = int(final_value)
    item['fee'] = item['forecasted_final_value'] - item['forecasted_final_cost']
    item['fee_percent'] = _percent(item['fee'], item['forecasted_final_value'])
    return item


def line_item_from_metrics(metrics: LineMetrics, previous_cost: int, previous_earned: int) -> dict:
    """
    Build the persisted line item shape for one group.

    Period deltas are floored at zero.
    """
    item = {
        'group_key': metrics.key.label,
        'area': metrics.key.area,
        'system': metrics.key.system,
        'budget_cost': metrics.budget_cost,
        'budget_value': metrics.bac,
        'cost_to_date': metrics.ac,
        'labor_cost_to_date': metrics.labor_cost,
        'invoice_cost_to_date': metrics.invoice_cost,
        'labor_hours_to_date': metrics.total_hours,
        'cost_this_period': max(0, metrics.ac - previous_cost),
        'approved_ctd_percent': metrics.percent_complete,
        'earned_to_date': metrics.ev,
        'earned_this_period': max(0, metrics.ev - previous_earned),
        'planned_value': metrics.pv,
        'cost_variance': metrics.cv,
        'schedule_variance': metrics.sv,
        'cpi': metrics.cpi,
        'spi': metrics.spi,
        'eac': metrics.eac,
        'etc': metrics.etc,
        'vac': metrics.vac,
        'tcpi': metrics.tcpi,
        'status': metrics.status,
        'projected_final_cost': metrics.forecast_final_cost,
    }
    return apply_forecast_values(item, metrics.forecast_final_cost, metrics.bac)


def build_summary(
    line_items: List[dict],
    project: ProjectMetrics,
    cost_this_period: int,
    earned_this_period: int,
    contract_value: int,
) -> dict:
    """
    Project summary from line items and rolled-up metrics.

    Forecast totals come from the line items so human overrides flow into
    the summary; unattributed cost is added on top of the line forecasts.
    """
    forecast_cost = sum(item['forecasted_final_cost'] for item in line_items) + project.unattributed_cost
    forecast_value = sum(item['forecasted_final_value'] for item in line_items)
    period_fee = earned_this_period - cost_this_period
    forecast_variance = forecast_cost - project.budget_cost
    margin = forecast_value - forecast_cost

    return {
        'contract_value': contract_value,
        'total_budget': project.budget_cost,
        'total_budget_value': project.bac,
        'cost_this_period': cost_this_period,
        'cost_to_date': project.ac,
        'attributed_cost_to_date': project.attributed_cost,
        'unattributed_cost': project.unattributed_cost,
        'earned_this_period': earned_this_period,
        'earned_to_date': project.ev,
        'percent_complete': project.percent_complete,
        'planned_value': project.pv,
        'cost_variance': project.cv,
        'schedule_variance': project.sv,
        'cpi': project.cpi,
        'spi': project.spi,
        'eac': project.eac,
        'etc': project.etc,
        'vac': project.vac,
        'tcpi': project.tcpi,
        'status': project.status,
        'period_fee': period_fee,
        'period_fee_percent': _percent(period_fee, earned_this_period),
        'forecast_final_cost': forecast_cost,
        'forecast_final_value': forecast_value,
        'forecast_variance': forecast_variance,
        'forecast_variance_percent': _percent(forecast_variance, project.budget_cost),
        'margin_at_completion': margin,
        'margin_at_completion_percent': _percent(margin, forecast_value),
        'lines_over_budget': project.lines_over_budget,
        'lines_at_risk': project.lines_at_risk,
        'lines_with_negative_fee': sum(1 for item in line_items if item['fee'] < 0),
    }


class CostToCompleteService:
    """Builds cost-to-complete and earned-vs-burned reports. Never persists."""

    def __init__(self, session: Session, config=None):
        self.session = session
        self.config = config or get_config()
        self.params = EVMParameters.from_config(self.config)
        self.job_repo = JobRepository(session)
        self.aggregator = CostAggregationService(session, self.config)
        self.reconciler = ProgressReconciler(session, self.config)

    # =========================================================================
    # Cost-to-Complete
    # =========================================================================

    def resolve(self, job_id: int, period=None) -> ResolvedPeriod:
        """Resolve a period, defaulting to the latest valid one."""
        if period is not None and str(period).strip() != "":
            return self.reconciler.resolve_period(job_id, period)
        latest = self.reconciler.latest_period(job_id)
        if latest is None:
            raise InvalidPeriodError("latest", "the job has no approved progress reports")
        return latest

    def build_report(self, job_id: int, period=None) -> CostToCompleteReport:
        """
        Run aggregation, grouping, reconciliation and EVM math for a period.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidPeriodError: If the period is not valid for the job
            CostAggregationError: If cost aggregation fails
        """
        job = self.job_repo.get_or_raise(job_id)
        resolved = self.resolve(job_id, period)
        return self.build_for_period(job, resolved)

    def build_for_period(self, job, resolved: ResolvedPeriod) -> CostToCompleteReport:
        index = self.aggregator.load_group_index(job.id)
        cost_map = self.aggregator.aggregate_costs(job.id, resolved.cutoff, index)
        group_costs = index.summarize_costs(cost_map)

        previous_costs: Dict[GroupKey, LineCost] = {}
        previous_project_cost = 0
        if resolved.previous_cutoff is not None:
            previous_map = self.aggregator.aggregate_costs(job.id, resolved.previous_cutoff, index)
            previous_costs = index.summarize_costs(previous_map)
            previous_project_cost = previous_map.project_cost_to_date

        progress = progress_inputs(resolved.progress_report, resolved.previous_approved)
        self._warn_unmatched_progress(job.id, index, progress)

        metrics = [
            compute_line_metrics(group, group_costs.get(group.key), progress.get(group.key), self.params)
            for group in index
        ]
        project = roll_up(metrics, self.params, flat_total=cost_map.flat_total)

        line_items = [
            line_item_from_metrics(
                m,
                previous_costs.get(m.key, LineCost()).total_cost,
                resolved.previous_amount(m.key),
            )
            for m in metrics
        ]
        cost_this_period = max(0, project.ac - previous_project_cost)
        earned_this_period = max(0, project.ev - sum(
            resolved.previous_amount(key) for key in index.groups
        ))
        summary = build_summary(
            line_items, project, cost_this_period, earned_this_period,
            job.contract_value_cents or 0,
        )

        return CostToCompleteReport(
            job_id=job.id,
            period=resolved,
            line_items=line_items,
            project=project,
            summary=summary,
            cost_map=cost_map,
            cost_this_period=cost_this_period,
            earned_this_period=earned_this_period,
            contract_value=job.contract_value_cents or 0,
            match_statistics=dict(cost_map.strategy_counts),
        )

    def _warn_unmatched_progress(self, job_id: int, index: BudgetGroupIndex, progress: dict) -> None:
        for key in progress:
            if key not in index:
                logger.warning(
                    f"Job {job_id}: progress reported for {key.label}, "
                    f"which has no Schedule of Values lines; its earned value is ignored"
                )

    # =========================================================================
    # Earned vs Burned
    # =========================================================================

    def earned_vs_burned(
        self,
        job_id: int,
        as_of_date: Optional[date] = None,
        group_by: str = "flat",
    ) -> dict:
        """
        Earned value against actual cost, grouped by area, system or group.

        EV always comes from the latest approved progress report, whatever
        the as-of date; the as-of date only bounds actual cost.
        """
        if group_by not in GROUP_BY_OPTIONS:
            raise ValidationError("group_by", f"must be one of {', '.join(GROUP_BY_OPTIONS)}")

        job = self.job_repo.get_or_raise(job_id)
        as_of_date = as_of_date or date.today()
        report = self.reconciler.latest_approved_report(job_id)

        index = self.aggregator.load_group_index(job_id)
        cost_map = self.aggregator.aggregate_costs(job_id, end_of_day(as_of_date), index)
        group_costs = index.summarize_costs(cost_map)
        progress = progress_inputs(report, {})
        self._warn_unmatched_progress(job_id, index, progress)

        metrics = [
            compute_line_metrics(group, group_costs.get(group.key), progress.get(group.key), self.params)
            for group in index
        ]
        totals = roll_up(metrics, self.params, flat_total=cost_map.flat_total)

        return {
            'job_id': job.id,
            'as_of_date': as_of_date.isoformat(),
            'group_by': group_by,
            'progress_report': {
                'id': report.id,
                'report_number': report.report_number,
                'report_date': report.report_date.isoformat(),
            } if report else None,
            'rows': self._group_rows(metrics, group_by),
            'totals': totals.to_dict(),
            'match_statistics': dict(cost_map.strategy_counts),
        }

    def _group_rows(self, metrics: Iterable[LineMetrics], group_by: str) -> List[dict]:
        if group_by == "flat":
            return [dict(m.to_dict(), group=m.key.label) for m in metrics]

        buckets: "OrderedDict[str, List[LineMetrics]]" = OrderedDict()
        for m in metrics:
            name = m.key.area if group_by == "area" else m.key.system
            buckets.setdefault(name, []).append(m)
        return [
            dict(roll_up(members, self.params).to_dict(), group=name)
            for name, members in buckets.items()
        ]
