"""
Domain Services - Cost aggregation, progress reconciliation, earned value and forecasts.
"""

from .budget_grouping import BudgetGroupIndex, build_group_index
from .cost_matching import (
    MatchingStrategy, ByDirectReference, ByCostCode, ByAreaSystemGroup, CostMatchResolver,
)
from .cost_aggregation_service import CostAggregationService
from .progress_reconciler import ProgressReconciler
from .evm_calculator import compute_line_metrics, roll_up, forecast_final_cost
from .cost_to_complete_service import CostToCompleteService
from .forecast_lifecycle_service import (
    ForecastLifecycleService, derive_volatile_fields, forecast_to_dict,
)
from .cost_breakdown_service import CostBreakdownService
from .progress_report_service import ProgressReportService, report_to_dict

__all__ = [
    'BudgetGroupIndex',
    'build_group_index',
    'MatchingStrategy',
    'ByDirectReference',
    'ByCostCode',
    'ByAreaSystemGroup',
    'CostMatchResolver',
    'CostAggregationService',
    'ProgressReconciler',
    'compute_line_metrics',
    'roll_up',
    'forecast_final_cost',
    'CostToCompleteService',
    'ForecastLifecycleService',
    'derive_volatile_fields',
    'forecast_to_dict',
    'CostBreakdownService',
    'ProgressReportService',
    'report_to_dict',
]
